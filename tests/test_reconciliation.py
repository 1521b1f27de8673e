import json
import logging
from datetime import timedelta

import pytest

from app.core.exceptions import (
    ForbiddenError, InvalidStateError, InvalidWebhookSignatureError, NotFoundError,
    PaymentReconciliationError, SignatureMismatchError, ValidationError
)
from app.db.models import (
    BookingStatus, Payment, PaymentStatus, WebhookEvent, WebhookEventStatus
)
from app.core.logging_config import get_logger
from app.utils.notifications import NotificationKind

from conftest import NOW, WEBHOOK_SECRET, caller_for, sign, webhook_body

CONFIRMATIONS = [NotificationKind.BOOKING_CONFIRMED_REQUESTER, NotificationKind.BOOKING_CONFIRMED_PROVIDER]


@pytest.fixture
def advance_order(db, payment_service, requester, approved_booking):
    return payment_service.create_advance_order(db, caller_for(requester), approved_booking.uuid)


def captured(order_id, amount, payment_id="pay_hook1"):
    body = webhook_body("payment.captured", order_id, amount, payment_id=payment_id, status="captured")
    return body, sign(body, WEBHOOK_SECRET)


def confirmations(notifier):
    return [k for k in notifier.kinds() if k in CONFIRMATIONS]


class TestClientVerification:
    def test_confirms_booking(self, db, reconciliation, requester, approved_booking, advance_order, notifier):
        result = reconciliation.verify_client_payment(
            db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"),
            caller=caller_for(requester), now=NOW
        )
        assert result.changed is True
        assert result.booking_transition == BookingStatus.CONFIRMED
        assert result.booking.status == BookingStatus.CONFIRMED
        assert result.payment.status == PaymentStatus.PAID
        assert result.payment.gateway_payment_id == "pay_1"
        assert confirmations(notifier) == CONFIRMATIONS

    def test_bad_signature(self, db, reconciliation, advance_order):
        with pytest.raises(SignatureMismatchError):
            reconciliation.verify_client_payment(db, advance_order.order_id, "pay_1", "deadbeef", now=NOW)
        assert db.query(Payment).one().status == PaymentStatus.CREATED

    def test_unknown_order(self, db, reconciliation):
        with pytest.raises(NotFoundError):
            reconciliation.verify_client_payment(db, "order_nope", "pay_1", sign("order_nope|pay_1"), now=NOW)

    def test_only_payer_may_submit(self, db, reconciliation, provider, advance_order):
        with pytest.raises(ForbiddenError):
            reconciliation.verify_client_payment(
                db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"),
                caller=caller_for(provider), now=NOW
            )

    def test_repeat_is_noop(self, db, reconciliation, advance_order, notifier):
        args = (db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"))
        reconciliation.verify_client_payment(*args, now=NOW)
        result = reconciliation.verify_client_payment(*args, now=NOW)
        assert result.changed is False
        assert result.booking.status == BookingStatus.CONFIRMED
        assert confirmations(notifier) == CONFIRMATIONS


class TestWebhook:
    def test_captured_confirms_booking(self, db, reconciliation, approved_booking, advance_order, notifier):
        body, signature = captured(advance_order.order_id, 570000)
        event = reconciliation.handle_webhook(db, body, signature, "evt_1")

        assert event.status == WebhookEventStatus.PROCESSED
        assert event.event_type == "payment.captured"
        assert event.gateway_order_id == advance_order.order_id
        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.CONFIRMED
        assert confirmations(notifier) == CONFIRMATIONS

    def test_redelivery_is_idempotent(self, db, reconciliation, approved_booking, advance_order, notifier):
        body, signature = captured(advance_order.order_id, 570000)
        reconciliation.handle_webhook(db, body, signature, "evt_1")
        event = reconciliation.handle_webhook(db, body, signature, "evt_1")

        assert event.status == WebhookEventStatus.PROCESSED
        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.CONFIRMED
        assert db.query(Payment).one().status == PaymentStatus.PAID
        assert confirmations(notifier) == CONFIRMATIONS
        assert db.query(WebhookEvent).count() == 2

    def test_invalid_signature_stores_nothing(self, db, reconciliation, advance_order):
        body, _ = captured(advance_order.order_id, 570000)
        with pytest.raises(InvalidWebhookSignatureError):
            reconciliation.handle_webhook(db, body, sign(body, "wrong-secret"), "evt_1")
        with pytest.raises(SignatureMismatchError):
            reconciliation.handle_webhook(db, body, None, "evt_1")
        assert db.query(WebhookEvent).count() == 0
        assert db.query(Payment).one().status == PaymentStatus.CREATED

    def test_body_must_match_signature_exactly(self, db, reconciliation, advance_order):
        body, signature = captured(advance_order.order_id, 570000)
        reformatted = json.dumps(json.loads(body), indent=2).encode("utf-8")
        with pytest.raises(InvalidWebhookSignatureError):
            reconciliation.handle_webhook(db, reformatted, signature)

    def test_unknown_order_keeps_payload(self, db, reconciliation):
        body, signature = captured("order_unknown", 570000)
        with pytest.raises(PaymentReconciliationError) as exc:
            reconciliation.handle_webhook(db, body, signature, "evt_9")
        assert exc.value.code == "UNKNOWN_ORDER"

        event = db.query(WebhookEvent).one()
        assert event.status == WebhookEventStatus.FAILED
        assert event.payload == body.decode("utf-8")
        assert event.error

    def test_amount_mismatch(self, db, reconciliation, approved_booking, advance_order):
        body, signature = captured(advance_order.order_id, 100)
        with pytest.raises(PaymentReconciliationError) as exc:
            reconciliation.handle_webhook(db, body, signature)
        assert exc.value.code == "AMOUNT_MISMATCH"
        assert db.query(WebhookEvent).one().status == WebhookEventStatus.FAILED
        assert db.query(Payment).one().status == PaymentStatus.CREATED
        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.PAYMENT_PENDING

    def test_failed_then_captured(self, db, reconciliation, approved_booking, advance_order):
        body = webhook_body(
            "payment.failed", advance_order.order_id, 570000, payment_id="pay_f1",
            error_description="Card declined"
        )
        event = reconciliation.handle_webhook(db, body, sign(body, WEBHOOK_SECRET))
        assert event.status == WebhookEventStatus.PROCESSED

        payment = db.query(Payment).one()
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Card declined"
        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.PAYMENT_PENDING

        body, signature = captured(advance_order.order_id, 570000, payment_id="pay_ok")
        reconciliation.handle_webhook(db, body, signature)
        db.refresh(payment)
        db.refresh(approved_booking)
        assert payment.status == PaymentStatus.PAID
        assert approved_booking.status == BookingStatus.CONFIRMED

    def test_failed_after_capture_ignored(self, db, reconciliation, advance_order):
        body, signature = captured(advance_order.order_id, 570000)
        reconciliation.handle_webhook(db, body, signature)

        failed = webhook_body("payment.failed", advance_order.order_id, 570000, payment_id="pay_late")
        reconciliation.handle_webhook(db, failed, sign(failed, WEBHOOK_SECRET))
        assert db.query(Payment).one().status == PaymentStatus.PAID

    def test_other_events_ignored(self, db, reconciliation, advance_order):
        body = json.dumps({"event": "order.paid", "payload": {}}).encode("utf-8")
        event = reconciliation.handle_webhook(db, body, sign(body, WEBHOOK_SECRET))
        assert event.status == WebhookEventStatus.IGNORED

    def test_late_capture_of_replaced_order(
        self, db, payment_service, reconciliation, requester, approved_booking, advance_order, notifier, caplog
    ):
        failed = webhook_body("payment.failed", advance_order.order_id, 570000, payment_id="pay_f1")
        reconciliation.handle_webhook(db, failed, sign(failed, WEBHOOK_SECRET), "evt_fail")

        retry = payment_service.create_advance_order(db, caller_for(requester), approved_booking.uuid)
        assert retry.order_id != advance_order.order_id
        reconciliation.verify_client_payment(
            db, retry.order_id, "pay_2", sign(f"{retry.order_id}|pay_2"), caller=caller_for(requester), now=NOW
        )

        # the bank settles the first attempt after all
        body, signature = captured(advance_order.order_id, 570000, payment_id="pay_late")
        with caplog.at_level(logging.ERROR, logger="vendor_bookings"):
            with pytest.raises(PaymentReconciliationError) as exc:
                reconciliation.handle_webhook(db, body, signature, "evt_late")
        assert exc.value.code == "DUPLICATE_CAPTURE"
        assert exc.value.details["order_id"] == advance_order.order_id

        late = db.query(Payment).filter(Payment.gateway_order_id == advance_order.order_id).one()
        assert late.status == PaymentStatus.PAID
        assert late.gateway_payment_id == "pay_late"
        event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_late").one()
        assert event.status == WebhookEventStatus.FAILED
        assert "twice" in event.error

        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.CONFIRMED
        assert approved_booking.payment_id != late.id
        assert confirmations(notifier) == CONFIRMATIONS
        assert any(
            r.name == "vendor_bookings.payments" and "twice" in r.getMessage() for r in caplog.records
        )

    @pytest.mark.parametrize("body", [b"[]", b'"payment.captured"', b"42"])
    def test_body_must_be_object(self, db, reconciliation, body):
        with pytest.raises(ValidationError):
            reconciliation.handle_webhook(db, body, sign(body, WEBHOOK_SECRET), "evt_odd")
        assert db.query(WebhookEvent).count() == 0

    def test_payload_without_payment_entity(self, db, reconciliation):
        body = json.dumps({"event": "payment.captured", "payload": []}).encode("utf-8")
        with pytest.raises(PaymentReconciliationError) as exc:
            reconciliation.handle_webhook(db, body, sign(body, WEBHOOK_SECRET))
        assert exc.value.code == "UNKNOWN_ORDER"
        event = db.query(WebhookEvent).one()
        assert event.status == WebhookEventStatus.FAILED
        assert event.gateway_order_id is None


class TestConvergence:
    def test_client_then_webhook(self, db, reconciliation, approved_booking, advance_order, notifier):
        reconciliation.verify_client_payment(
            db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"), now=NOW
        )
        body, signature = captured(advance_order.order_id, 570000, payment_id="pay_1")
        reconciliation.handle_webhook(db, body, signature)

        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.CONFIRMED
        assert confirmations(notifier) == CONFIRMATIONS

    def test_webhook_then_client(self, db, reconciliation, approved_booking, advance_order, notifier):
        body, signature = captured(advance_order.order_id, 570000, payment_id="pay_1")
        reconciliation.handle_webhook(db, body, signature)
        result = reconciliation.verify_client_payment(
            db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"), now=NOW
        )

        assert result.changed is False
        assert result.booking.status == BookingStatus.CONFIRMED
        assert confirmations(notifier) == CONFIRMATIONS


class TestSettlement:
    def test_full_lifecycle(self, db, payment_service, reconciliation, requester, approved_booking, advance_order,
                            notifier):
        reconciliation.verify_client_payment(
            db, advance_order.order_id, "pay_1", sign(f"{advance_order.order_id}|pay_1"), now=NOW
        )
        advance = db.query(Payment).filter(Payment.gateway_order_id == advance_order.order_id).one()
        assert advance.status == PaymentStatus.PAID

        later = NOW + timedelta(days=12)
        remaining = payment_service.create_remaining_order(db, caller_for(requester), approved_booking.uuid, now=later)
        body, signature = captured(remaining.order_id, 1330000, payment_id="pay_2")
        reconciliation.handle_webhook(db, body, signature)

        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.COMPLETED
        assert approved_booking.remaining_amount == 0
        balance = db.query(Payment).filter(Payment.gateway_order_id == remaining.order_id).one()
        assert balance.status == PaymentStatus.COMPLETED
        assert NotificationKind.BOOKING_COMPLETED_REQUESTER in notifier.kinds()
        assert NotificationKind.BOOKING_COMPLETED_PROVIDER in notifier.kinds()


class TestReplay:
    def test_replays_unprocessed_event(self, db, reconciliation, admin, approved_booking, advance_order):
        body, signature = captured(advance_order.order_id, 570000)
        event = WebhookEvent(
            event_type="payment.captured",
            gateway_order_id=advance_order.order_id,
            payload=body.decode("utf-8"),
            signature=signature,
            status=WebhookEventStatus.RECEIVED,
        )
        db.add(event)
        db.commit()

        replayed = reconciliation.replay_webhook_event(db, admin, event.uuid)
        assert replayed.status == WebhookEventStatus.PROCESSED
        db.refresh(approved_booking)
        assert approved_booking.status == BookingStatus.CONFIRMED

        with pytest.raises(InvalidStateError):
            reconciliation.replay_webhook_event(db, admin, event.uuid)

    def test_admin_only(self, db, reconciliation, requester):
        with pytest.raises(ForbiddenError):
            reconciliation.replay_webhook_event(db, caller_for(requester), "evt")

    def test_unknown_event(self, db, reconciliation, admin):
        with pytest.raises(NotFoundError):
            reconciliation.replay_webhook_event(db, admin, "missing")


def test_component_loggers_nest_under_app_logger():
    assert get_logger().name == "vendor_bookings"
    assert get_logger("payments").name == "vendor_bookings.payments"
    assert get_logger("payments").parent is get_logger()
