"""
Database models for vendor bookings and payments
"""
import uuid
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, Integer, String, Boolean, Text, JSON, Numeric, Date, Time, DateTime,
    ForeignKey, Enum, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.session import Base


def generate_uuid() -> str:
    """Generate a unique UUID string"""
    return str(uuid.uuid4())


def _enum(enum_cls):
    # Stored as VARCHAR so new members do not need a database type migration
    return Enum(enum_cls, native_enum=False, length=30, validate_strings=True)


# Enums
class BookingStatus(str, PyEnum):
    """Booking lifecycle status"""
    REQUESTED = "REQUESTED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Statuses that hold a calendar window
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.REQUESTED,
    BookingStatus.PAYMENT_PENDING,
    BookingStatus.CONFIRMED,
)


class BookingType(str, PyEnum):
    """Booking type enumeration"""
    SINGLE_DAY = "SINGLE_DAY"
    MULTI_DAY = "MULTI_DAY"


class PricingUnit(str, PyEnum):
    """How a product is priced"""
    PER_DAY = "PER_DAY"
    PER_SESSION = "PER_SESSION"


class AdvanceType(str, PyEnum):
    """Advance payment rule type"""
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class CouponType(str, PyEnum):
    """Coupon discount type"""
    FLAT = "FLAT"
    PERCENT = "PERCENT"
    UPTO = "UPTO"


class PaymentStatus(str, PyEnum):
    """Payment status enumeration"""
    CREATED = "CREATED"
    PAID = "PAID"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"


class PaymentPurpose(str, PyEnum):
    """Which part of the booking amount a payment covers"""
    ADVANCE = "ADVANCE"
    REMAINING = "REMAINING"


class WebhookEventStatus(str, PyEnum):
    """Processing state of a stored gateway webhook"""
    RECEIVED = "RECEIVED"
    PROCESSED = "PROCESSED"
    IGNORED = "IGNORED"
    FAILED = "FAILED"


class Vendor(Base):
    """Marketplace vendor, acts as both provider and requester"""
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    full_name = Column(String(255), nullable=False)
    business_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    products = relationship("VendorProduct", back_populates="vendor")
    bank_details = relationship("VendorBankDetails", back_populates="vendor", uselist=False)
    calendar_blocks = relationship("CalendarBlock", back_populates="vendor", cascade='all, delete-orphan')


class VendorBankDetails(Base):
    """Payout bank account for a vendor"""
    __tablename__ = 'vendor_bank_details'

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), unique=True, nullable=False)
    account_holder_name = Column(String(255), nullable=False)
    account_number = Column(String(50), nullable=False)
    ifsc_code = Column(String(11), nullable=False)
    is_payout_ready = Column(Boolean, default=False, nullable=False)
    is_edited = Column(Boolean, default=False, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    # List of {"field", "old_value", "new_value"} awaiting admin approval
    pending_changes = Column(JSON, nullable=True)
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor", back_populates="bank_details")


class VendorProduct(Base):
    """Bookable product offered by a vendor"""
    __tablename__ = 'vendor_products'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    base_price_single_day = Column(Numeric(10, 2), nullable=False)
    base_price_multi_day = Column(Numeric(10, 2), nullable=False)
    pricing_unit = Column(_enum(PricingUnit), default=PricingUnit.PER_DAY, nullable=False)
    advance_type = Column(_enum(AdvanceType), default=AdvanceType.PERCENTAGE, nullable=False)
    advance_value = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor", back_populates="products")
    bookings = relationship("Booking", back_populates="product")


class Coupon(Base):
    """Discount coupon"""
    __tablename__ = 'coupon_codes'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    code = Column(String(50), unique=True, nullable=False, index=True)
    coupon_type = Column(_enum(CouponType), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    min_amount = Column(Numeric(10, 2), nullable=True)
    max_discount = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Booking(Base):
    """Booking of a vendor product by another vendor"""
    __tablename__ = 'vendor_bookings'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid, index=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False, index=True)
    booked_by_vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False, index=True)
    vendor_product_id = Column(Integer, ForeignKey('vendor_products.id'), nullable=False, index=True)
    # Active payment; payments also point back via booking_id
    payment_id = Column(Integer, nullable=True)

    booking_type = Column(_enum(BookingType), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    total_days = Column(Integer, nullable=False, default=1)

    total_amount = Column(Numeric(10, 2), nullable=False)
    coupon_code = Column(String(50), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    advance_amount = Column(Numeric(10, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(10, 2), nullable=False, default=0)
    # Advance rule frozen at approval
    advance_type = Column(_enum(AdvanceType), nullable=True)
    advance_value = Column(Numeric(10, 2), nullable=True)

    status = Column(_enum(BookingStatus), nullable=False, default=BookingStatus.REQUESTED, index=True)
    approval_expires_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    decided_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, ForeignKey('vendors.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    provider = relationship("Vendor", foreign_keys=[vendor_id])
    requester = relationship("Vendor", foreign_keys=[booked_by_vendor_id])
    product = relationship("VendorProduct", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking", order_by="Payment.id")

    __table_args__ = (
        Index('ix_vendor_bookings_product_dates', 'vendor_product_id', 'start_date', 'end_date'),
    )


class Payment(Base):
    """Gateway payment order for part of a booking amount"""
    __tablename__ = 'vendor_payments'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    booking_id = Column(Integer, ForeignKey('vendor_bookings.id'), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    vendor_product_id = Column(Integer, ForeignKey('vendor_products.id'), nullable=False)
    purpose = Column(_enum(PaymentPurpose), nullable=False)
    gateway_order_id = Column(String(100), unique=True, nullable=False, index=True)
    gateway_payment_id = Column(String(100), nullable=True)
    signature = Column(String(255), nullable=True)
    amount = Column(Integer, nullable=False)  # paise
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.CREATED)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")

    __table_args__ = (
        # at most one open order per booking and purpose
        Index(
            'uq_vendor_payments_open_order', 'booking_id', 'purpose', unique=True,
            postgresql_where=text("status = 'CREATED'"),
            sqlite_where=text("status = 'CREATED'"),
        ),
    )


class CalendarBlock(Base):
    """Vendor-declared unavailable date range"""
    __tablename__ = 'vendor_calendar_blocks'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vendor = relationship("Vendor", back_populates="calendar_blocks")


class WebhookEvent(Base):
    """Raw gateway webhook delivery, retained for replay"""
    __tablename__ = 'payment_webhook_events'

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, default=generate_uuid)
    event_id = Column(String(100), nullable=True, index=True)
    event_type = Column(String(100), nullable=True)
    gateway_order_id = Column(String(100), nullable=True, index=True)
    payload = Column(Text, nullable=False)
    signature = Column(String(255), nullable=True)
    status = Column(_enum(WebhookEventStatus), nullable=False, default=WebhookEventStatus.RECEIVED)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
