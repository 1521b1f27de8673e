import os

# Configure before any app module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["AWS_ACCESS_KEY_ID"] = ""
os.environ["AWS_SECRET_ACCESS_KEY"] = ""

import hashlib
import hmac
import itertools
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from razorpay.utility import Utility
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.session import Base
from app.db import models  # noqa: F401
from app.db.models import (
    AdvanceType, BookingStatus, Coupon, CouponType, PricingUnit, Vendor,
    VendorBankDetails, VendorProduct
)
from app.core.security import CallerIdentity, Role
from app.schemas.booking import BookingCreate, Decision
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentService
from app.services.razorpay_service import RazorpayGateway
from app.services.reconciliation_service import ReconciliationService
from app.utils.notifications import Notifier

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"

# 11:30 IST on 10 Jan 2030
NOW = datetime(2030, 1, 10, 6, 0, tzinfo=timezone.utc)
TODAY = date(2030, 1, 10)


class RecordingNotifier(Notifier):
    """Keeps delivered notifications in memory"""

    def __init__(self):
        self.sent = []

    def deliver(self, kind, recipient, data):
        self.sent.append((kind, recipient, data))

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway_client():
    """Fake razorpay SDK client whose orders echo the requested amount

    Signature checks go through the real SDK utility.
    """
    counter = itertools.count(1)
    client = MagicMock()

    def create(data):
        return {
            "id": f"order_test{next(counter)}",
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data["receipt"],
            "status": "created",
        }

    client.order.create.side_effect = create
    client.auth = ("rzp_test_key", KEY_SECRET)
    client.utility = Utility(client)
    return client


@pytest.fixture
def gateway(gateway_client):
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret=KEY_SECRET,
        timeout=1.0,
        max_retries=3,
        backoff=0,
        client=gateway_client,
    )


@pytest.fixture
def booking_service(notifier):
    return BookingService(notifier)


@pytest.fixture
def payment_service(gateway):
    return PaymentService(gateway)


@pytest.fixture
def reconciliation(gateway, notifier):
    return ReconciliationService(gateway, notifier)


class Factory:
    """Row builders for tests"""

    def __init__(self, db: Session):
        self.db = db
        self._seq = itertools.count(1)

    def vendor(self, name=None, payout_ready=False) -> Vendor:
        n = next(self._seq)
        vendor = Vendor(full_name=name or f"Vendor {n}", email=f"vendor{n}@example.com")
        self.db.add(vendor)
        self.db.commit()
        self.db.refresh(vendor)
        if payout_ready:
            self.bank_details(vendor)
        return vendor

    def bank_details(self, vendor: Vendor) -> VendorBankDetails:
        details = VendorBankDetails(
            vendor_id=vendor.id,
            account_holder_name=vendor.full_name,
            account_number="123456789012",
            ifsc_code="HDFC0001234",
            is_payout_ready=True,
            confirmed_at=NOW,
        )
        self.db.add(details)
        self.db.commit()
        self.db.refresh(details)
        return details

    def product(
        self,
        vendor: Vendor,
        single=Decimal("12000"),
        multi=Decimal("10000"),
        advance_type=AdvanceType.PERCENTAGE,
        advance_value=Decimal("30"),
        pricing_unit=PricingUnit.PER_DAY,
    ) -> VendorProduct:
        product = VendorProduct(
            vendor_id=vendor.id,
            title="Banquet hall",
            base_price_single_day=single,
            base_price_multi_day=multi,
            pricing_unit=pricing_unit,
            advance_type=advance_type,
            advance_value=advance_value,
        )
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def coupon(self, code="SAVE1000", coupon_type=CouponType.FLAT, value=Decimal("1000"), **kwargs) -> Coupon:
        coupon = Coupon(code=code, coupon_type=coupon_type, value=value, **kwargs)
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon


@pytest.fixture
def factory(db):
    return Factory(db)


def caller_for(vendor: Vendor) -> CallerIdentity:
    return CallerIdentity(vendor_id=vendor.id)


@pytest.fixture
def admin():
    return CallerIdentity(vendor_id=None, role=Role.ADMIN)


@pytest.fixture
def provider(factory):
    return factory.vendor("Provider", payout_ready=True)


@pytest.fixture
def requester(factory):
    return factory.vendor("Requester")


@pytest.fixture
def product(factory, provider):
    return factory.product(provider)


@pytest.fixture
def requested_booking(db, booking_service, product, requester, factory):
    """20000 two-day booking with a 1000 flat coupon, awaiting the provider"""
    factory.coupon()
    return booking_service.create_booking(
        db,
        caller_for(requester),
        BookingCreate(
            product_ref=product.uuid,
            start_date=date(2030, 1, 20),
            end_date=date(2030, 1, 21),
            coupon_code="save1000",
        ),
        now=NOW,
    )


@pytest.fixture
def approved_booking(db, booking_service, requested_booking, provider):
    booking = booking_service.decide(
        db, caller_for(provider), requested_booking.uuid, Decision.APPROVE, now=NOW
    )
    assert booking.status == BookingStatus.PAYMENT_PENDING
    return booking


def sign(payload, secret=KEY_SECRET) -> str:
    """HMAC-SHA256 hex digest, as the gateway signs callbacks and webhooks"""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def webhook_body(event, order_id, amount, payment_id="pay_hook1", **entity) -> bytes:
    entity.update({"id": payment_id, "order_id": order_id, "amount": amount})
    return json.dumps({
        "event": event,
        "payload": {"payment": {"entity": entity}},
    }).encode("utf-8")


def confirm_booking(db, payment_service, reconciliation, booking, requester, payment_id="pay_adv1"):
    """Pay the advance through the client callback; returns the order handle"""
    handle = payment_service.create_advance_order(db, caller_for(requester), booking.uuid)
    reconciliation.verify_client_payment(
        db, handle.order_id, payment_id, sign(f"{handle.order_id}|{payment_id}"),
        caller=caller_for(requester), now=NOW
    )
    return handle
