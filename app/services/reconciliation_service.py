"""
Payment reconciliation
Client checkout verification and gateway webhooks, both converging on the same
booking and payment state through conditional updates.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.orm import Session

from app.db.models import (
    Booking, BookingStatus, Payment, PaymentPurpose, PaymentStatus, WebhookEvent, WebhookEventStatus
)
from app.db.transitions import guarded_update
from app.core.config import settings
from app.core.exceptions import (
    ForbiddenError, InvalidStateError, InvalidWebhookSignatureError, NotFoundError,
    PaymentReconciliationError, SignatureMismatchError, ValidationError
)
from app.core.logging_config import get_logger
from app.core.security import CallerIdentity
from app.services.payment_service import paid_amount
from app.services.pricing_service import from_minor_units
from app.services.razorpay_service import RazorpayGateway
from app.utils.notifications import NotificationKind, Notifier, booking_notification_data
from app.utils.time_utils import ensure_aware, utcnow

logger = get_logger("payments")

# an order stays payable after a failed attempt
CAPTURABLE_STATUSES = (PaymentStatus.CREATED, PaymentStatus.FAILED)


@dataclass(frozen=True)
class ReconciliationResult:
    booking: Booking
    payment: Payment
    changed: bool
    booking_transition: Optional[BookingStatus] = None


class ReconciliationService:
    """Service for confirming gateway payments"""

    def __init__(self, gateway: RazorpayGateway, notifier: Optional[Notifier] = None):
        self.gateway = gateway
        self.notifier = notifier or Notifier()

    # ── Client verification ─────────────────────────────────────────────────

    def verify_client_payment(
        self,
        db: Session,
        order_id: str,
        payment_id: str,
        signature: str,
        caller: Optional[CallerIdentity] = None,
        now: Optional[datetime] = None
    ) -> ReconciliationResult:
        """
        Confirm a payment from the checkout callback

        Args:
            db: Database session
            order_id: Gateway order id
            payment_id: Gateway payment id
            signature: HMAC over "order_id|payment_id"
            caller: Requester submitting the callback, checked when given
            now: Current time override

        Raises:
            SignatureMismatchError: Signature does not verify
            NotFoundError: No payment for this order id
            PaymentReconciliationError: Payment captured but booking cannot be advanced
        """
        if not self.gateway.verify_payment_signature(order_id, payment_id, signature):
            logger.error(f"SECURITY: payment signature mismatch for order {order_id} payment {payment_id}")
            raise SignatureMismatchError("Payment signature verification failed", code="SIGNATURE_MISMATCH")

        payment = db.query(Payment).filter(Payment.gateway_order_id == order_id).first()
        if not payment:
            raise NotFoundError("Payment order not found", details={"order_id": order_id})

        if caller is not None and not caller.is_admin and payment.booking.booked_by_vendor_id != caller.vendor_id:
            raise ForbiddenError("You are not the payer of this booking")

        return self._apply_capture(db, payment, payment_id, signature, source="client", now=now)

    # ── Shared capture path ─────────────────────────────────────────────────

    def _apply_capture(
        self,
        db: Session,
        payment: Payment,
        gateway_payment_id: Optional[str],
        signature: Optional[str],
        source: str,
        now: Optional[datetime] = None
    ) -> ReconciliationResult:
        now = ensure_aware(now) or utcnow()
        booking = payment.booking

        values: Dict[str, Any] = {"status": PaymentStatus.PAID, "failure_reason": None}
        if gateway_payment_id:
            values["gateway_payment_id"] = gateway_payment_id
        if signature:
            values["signature"] = signature

        if not guarded_update(db, Payment, payment.id, CAPTURABLE_STATUSES, values):
            db.rollback()
            db.refresh(payment)
            db.refresh(booking)
            logger.info(
                f"Payment for order {payment.gateway_order_id} already {payment.status.value}, "
                f"{source} confirmation is a no-op"
            )
            return ReconciliationResult(booking, payment, changed=False)

        transition, problem = self._advance_booking(db, booking, payment, now)

        if problem is None and paid_amount(db, booking.id) >= Decimal(booking.final_amount):
            guarded_update(db, Payment, payment.id, PaymentStatus.PAID, {"status": PaymentStatus.COMPLETED})

        db.commit()
        db.refresh(payment)
        db.refresh(booking)
        logger.info(
            f"Payment {payment.gateway_order_id} ({payment.purpose.value}) captured via {source}: "
            f"payment={payment.status.value} booking={booking.status.value}"
        )

        if problem is not None:
            logger.error(f"Reconciliation problem on booking {booking.uuid}: {problem.message}")
            raise problem

        if transition is not None:
            self._notify_transition(booking, payment, transition)
        return ReconciliationResult(booking, payment, changed=True, booking_transition=transition)

    def _advance_booking(
        self,
        db: Session,
        booking: Booking,
        payment: Payment,
        now: datetime
    ) -> Tuple[Optional[BookingStatus], Optional[PaymentReconciliationError]]:
        """
        Move the booking forward for a newly captured payment

        A capture that arrives after another payment of the same purpose
        already advanced the booking is kept as PAID and reported as a
        duplicate so it can be refunded.
        """
        details = {"booking_ref": booking.uuid, "order_id": payment.gateway_order_id}

        if payment.purpose == PaymentPurpose.ADVANCE:
            if guarded_update(
                db, Booking, booking.id, BookingStatus.PAYMENT_PENDING,
                {"status": BookingStatus.CONFIRMED, "confirmed_at": now, "payment_id": payment.id}
            ):
                return BookingStatus.CONFIRMED, None
            current = self._current_status(db, booking)
            if current in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
                return None, PaymentReconciliationError(
                    "Advance captured twice for this booking",
                    code="DUPLICATE_CAPTURE",
                    details=details
                )
            return None, PaymentReconciliationError(
                f"Advance captured but booking is {current.value}",
                code="BOOKING_NOT_PAYABLE",
                details=details
            )

        advance_paid = paid_amount(db, booking.id, PaymentPurpose.ADVANCE)
        this_payment = from_minor_units(payment.amount)
        if advance_paid + this_payment != Decimal(booking.final_amount):
            return None, PaymentReconciliationError(
                f"Remaining payment {this_payment} plus advance {advance_paid} "
                f"does not equal final amount {booking.final_amount}",
                code="AMOUNT_MISMATCH",
                details=details
            )
        if guarded_update(
            db, Booking, booking.id, BookingStatus.CONFIRMED,
            {"status": BookingStatus.COMPLETED, "remaining_amount": 0, "completed_at": now, "payment_id": payment.id}
        ):
            return BookingStatus.COMPLETED, None
        current = self._current_status(db, booking)
        if current == BookingStatus.COMPLETED:
            return None, PaymentReconciliationError(
                "Remaining balance captured twice for this booking",
                code="DUPLICATE_CAPTURE",
                details=details
            )
        return None, PaymentReconciliationError(
            f"Remaining captured but booking is {current.value}",
            code="BOOKING_NOT_PAYABLE",
            details=details
        )

    @staticmethod
    def _current_status(db: Session, booking: Booking) -> BookingStatus:
        return db.query(Booking.status).filter(Booking.id == booking.id).scalar()

    def _notify_transition(self, booking: Booking, payment: Payment, transition: BookingStatus) -> None:
        data = booking_notification_data(booking, amount_paid=from_minor_units(payment.amount))
        if transition == BookingStatus.CONFIRMED:
            self.notifier.notify(NotificationKind.BOOKING_CONFIRMED_REQUESTER, booking.requester.email, data)
            self.notifier.notify(NotificationKind.BOOKING_CONFIRMED_PROVIDER, booking.provider.email, data)
        elif transition == BookingStatus.COMPLETED:
            self.notifier.notify(NotificationKind.BOOKING_COMPLETED_REQUESTER, booking.requester.email, data)
            self.notifier.notify(NotificationKind.BOOKING_COMPLETED_PROVIDER, booking.provider.email, data)

    # ── Webhooks ────────────────────────────────────────────────────────────

    def handle_webhook(
        self,
        db: Session,
        raw_body: Union[bytes, str],
        signature: Optional[str],
        event_id: Optional[str] = None
    ) -> WebhookEvent:
        """
        Verify, store and process a gateway webhook delivery

        The raw body is stored before processing so failed deliveries can be
        replayed.

        Raises:
            InvalidWebhookSignatureError: Body signature does not verify
            ValidationError: Body is not a JSON object
            PaymentReconciliationError: Unknown order or mismatched amount
        """
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")

        if not self.gateway.verify_webhook_signature(raw_body, signature, settings.RAZORPAY_WEBHOOK_SECRET):
            logger.error(f"SECURITY: webhook signature mismatch (event id {event_id})")
            raise InvalidWebhookSignatureError("Invalid webhook signature", code="INVALID_SIGNATURE")

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Malformed webhook body") from e
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        entity = self._payment_entity(payload)
        event = WebhookEvent(
            event_id=event_id,
            event_type=payload.get("event"),
            gateway_order_id=entity.get("order_id"),
            payload=raw_body.decode("utf-8"),
            signature=signature,
            status=WebhookEventStatus.RECEIVED,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        logger.info(f"Webhook {event.event_type} stored as {event.uuid} (order {event.gateway_order_id})")

        return self.process_event(db, event)

    @staticmethod
    def _payment_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
        node: Any = payload
        for key in ("payload", "payment", "entity"):
            node = node.get(key) if isinstance(node, dict) else None
        return node if isinstance(node, dict) else {}

    def process_event(self, db: Session, event: WebhookEvent) -> WebhookEvent:
        """Apply a stored webhook event and record the outcome on it"""
        payload = json.loads(event.payload)
        try:
            outcome = self._dispatch(db, payload)
        except PaymentReconciliationError as e:
            db.rollback()
            self._finish_event(db, event, WebhookEventStatus.FAILED, e.message)
            logger.error(f"Webhook {event.uuid} failed reconciliation: {e.message}", exc_info=True)
            raise

        self._finish_event(db, event, outcome, None)
        return event

    def _dispatch(self, db: Session, payload: Dict[str, Any]) -> WebhookEventStatus:
        event_type = payload.get("event")
        entity = self._payment_entity(payload)

        if event_type not in ("payment.captured", "payment.failed"):
            logger.info(f"Ignoring webhook event {event_type}")
            return WebhookEventStatus.IGNORED

        order_id = entity.get("order_id")
        payment = db.query(Payment).filter(Payment.gateway_order_id == order_id).first() if order_id else None
        if payment is None:
            raise PaymentReconciliationError(
                "Webhook refers to an unknown order",
                code="UNKNOWN_ORDER",
                details={"order_id": order_id, "event": event_type}
            )

        if event_type == "payment.captured":
            amount = entity.get("amount")
            if amount is not None and int(amount) != payment.amount:
                raise PaymentReconciliationError(
                    "Captured amount does not match the order",
                    code="AMOUNT_MISMATCH",
                    details={"order_id": order_id, "expected": payment.amount, "received": int(amount)}
                )
            self._apply_capture(db, payment, entity.get("id"), None, source="webhook")
            return WebhookEventStatus.PROCESSED

        reason = entity.get("error_description") or entity.get("error_code") or "Payment failed"
        if guarded_update(
            db, Payment, payment.id, PaymentStatus.CREATED,
            {"status": PaymentStatus.FAILED, "failure_reason": reason,
             "gateway_payment_id": entity.get("id") or payment.gateway_payment_id}
        ):
            db.commit()
            logger.info(f"Payment for order {order_id} marked FAILED: {reason}")
        else:
            db.rollback()
            logger.info(f"payment.failed for order {order_id} ignored, payment already {payment.status.value}")
        return WebhookEventStatus.PROCESSED

    @staticmethod
    def _finish_event(db: Session, event: WebhookEvent, status: WebhookEventStatus, error: Optional[str]) -> None:
        event.status = status
        event.error = error
        event.processed_at = utcnow()
        db.commit()
        db.refresh(event)

    def replay_webhook_event(self, db: Session, caller: CallerIdentity, event_ref: str) -> WebhookEvent:
        """Re-run a stored webhook that failed or was never processed (admin only)"""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")

        event = db.query(WebhookEvent).filter(WebhookEvent.uuid == event_ref).first()
        if not event:
            raise NotFoundError("Webhook event not found")
        if event.status not in (WebhookEventStatus.FAILED, WebhookEventStatus.RECEIVED):
            raise InvalidStateError(
                f"Webhook event already {event.status.value}",
                details={"status": event.status.value}
            )

        logger.info(f"Replaying webhook event {event.uuid} ({event.event_type})")
        return self.process_event(db, event)
