"""
Payment order orchestration
Creates gateway orders for the advance and the remaining balance of a booking
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import Booking, BookingStatus, Payment, PaymentPurpose, PaymentStatus
from app.core.config import settings
from app.core.exceptions import (
    ConflictError, ExternalServiceError, ForbiddenError, InvalidStateError,
    PaymentInitiationFailed, PaymentReconciliationError, ValidationError
)
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.services.booking_service import BookingService
from app.services.pricing_service import PricingService, from_minor_units, to_minor_units
from app.services.razorpay_service import RazorpayGateway
from app.utils.time_utils import business_today, ensure_aware, utcnow

SETTLED_PAYMENT_STATUSES = (PaymentStatus.PAID, PaymentStatus.COMPLETED)


@dataclass(frozen=True)
class OrderHandle:
    """Order details handed to the client for checkout"""
    booking_ref: str
    purpose: PaymentPurpose
    order_id: str
    amount: int
    currency: str
    key_id: str


def paid_amount(db: Session, booking_id: int, purpose: Optional[PaymentPurpose] = None) -> Decimal:
    """Sum of captured payments for a booking, in rupees"""
    query = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.booking_id == booking_id,
        Payment.status.in_(SETTLED_PAYMENT_STATUSES),
    )
    if purpose is not None:
        query = query.filter(Payment.purpose == purpose)
    return from_minor_units(int(query.scalar() or 0))


class PaymentService:
    """Service for creating gateway payment orders"""

    def __init__(self, gateway: RazorpayGateway):
        self.gateway = gateway

    def _open_order(self, db: Session, booking: Booking, purpose: PaymentPurpose) -> Optional[Payment]:
        return db.query(Payment).filter(
            Payment.booking_id == booking.id,
            Payment.purpose == purpose,
            Payment.status == PaymentStatus.CREATED,
        ).order_by(Payment.id.desc()).first()

    def _handle(self, booking: Booking, payment: Payment) -> OrderHandle:
        return OrderHandle(
            booking_ref=booking.uuid,
            purpose=payment.purpose,
            order_id=payment.gateway_order_id,
            amount=payment.amount,
            currency=payment.currency,
            key_id=self.gateway.key_id,
        )

    def _create_order(
        self,
        db: Session,
        booking: Booking,
        purpose: PaymentPurpose,
        amount: Decimal
    ) -> OrderHandle:
        """
        Reuse the booking's open order for this amount, or create a new one

        The gateway is called before anything is written, so a failed call
        leaves no trace in the database.
        """
        amount_minor = to_minor_units(amount)
        if amount_minor <= 0:
            raise ValidationError("Payment amount must be positive")

        existing = self._open_order(db, booking, purpose)
        if existing is not None:
            if existing.amount == amount_minor:
                logger.info(f"Reusing open {purpose.value} order {existing.gateway_order_id} for booking {booking.uuid}")
                return self._handle(booking, existing)
            raise ConflictError(
                "Another payment order is already open for this booking",
                code="ORDER_ALREADY_OPEN",
                details={"order_id": existing.gateway_order_id}
            )

        prefix = "adv" if purpose == PaymentPurpose.ADVANCE else "rem"
        receipt = f"{prefix}_{booking.id}_{int(utcnow().timestamp())}"
        try:
            order = self.gateway.create_order(amount_minor, settings.CURRENCY, receipt)
        except ExternalServiceError as e:
            logger.error(f"Could not create {purpose.value} order for booking {booking.uuid}: {e.message}")
            raise PaymentInitiationFailed(
                "Could not start payment, please try again",
                details={"booking_ref": booking.uuid, **e.details}
            ) from e

        if order.amount != amount_minor:
            logger.error(
                f"Gateway order {order.order_id} amount {order.amount} does not match requested {amount_minor}"
            )
            raise PaymentReconciliationError(
                "Gateway order amount mismatch",
                details={"order_id": order.order_id}
            )

        try:
            payment = Payment(
                booking_id=booking.id,
                vendor_id=booking.vendor_id,
                vendor_product_id=booking.vendor_product_id,
                purpose=purpose,
                gateway_order_id=order.order_id,
                amount=amount_minor,
                currency=order.currency,
                status=PaymentStatus.CREATED,
            )
            db.add(payment)
            db.flush()
            booking.payment_id = payment.id
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(
                f"Open {purpose.value} order already recorded for booking {booking.uuid}, "
                f"gateway order {order.order_id} left unused"
            )
            raise ConflictError(
                "Another payment order is already open for this booking",
                code="ORDER_ALREADY_OPEN",
                details={"booking_ref": booking.uuid}
            ) from e
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Failed to record gateway order {order.order_id} for booking {booking.uuid}", exc_info=True)
            raise

        db.refresh(payment)
        logger.info(
            f"{purpose.value} order {order.order_id} created for booking {booking.uuid}: {amount_minor} paise"
        )
        return self._handle(booking, payment)

    def create_advance_order(self, db: Session, caller: CallerIdentity, booking_ref: str) -> OrderHandle:
        """
        Create the advance payment order for an approved booking

        Raises:
            ForbiddenError: Caller is not the requester
            InvalidStateError: Booking is not awaiting payment
            PaymentReconciliationError: Frozen advance no longer matches its rule
            PaymentInitiationFailed: Gateway did not create the order
        """
        # booking row stays locked until the new order is committed
        try:
            booking = BookingService.get_by_ref(db, booking_ref, for_update=True)
            if booking.booked_by_vendor_id != caller.vendor_id:
                raise ForbiddenError("Only the requester can pay for this booking")
            if booking.status != BookingStatus.PAYMENT_PENDING:
                raise InvalidStateError(
                    f"Booking is {booking.status.value}, payment is not allowed",
                    details={"status": booking.status.value}
                )

            expected = PricingService.advance_of(booking.advance_type, booking.advance_value, booking.final_amount)
            if Decimal(booking.advance_amount) != expected:
                logger.error(
                    f"Advance mismatch on booking {booking.uuid}: stored={booking.advance_amount} computed={expected}"
                )
                raise PaymentReconciliationError(
                    "Advance amount does not match the approved terms",
                    details={"stored": str(booking.advance_amount), "computed": str(expected)}
                )

            return self._create_order(db, booking, PaymentPurpose.ADVANCE, expected)
        except Exception:
            db.rollback()
            raise

    def create_remaining_order(
        self,
        db: Session,
        caller: CallerIdentity,
        booking_ref: str,
        now: Optional[datetime] = None
    ) -> OrderHandle:
        """
        Create the order for the balance due after the event has ended

        Raises:
            ForbiddenError: Caller is not the requester
            InvalidStateError: Booking is not CONFIRMED or has no paid advance
            ValidationError: Event has not ended yet
            ConflictError: Nothing left to pay
        """
        now = ensure_aware(now) or utcnow()
        # booking row stays locked until the new order is committed
        try:
            booking = BookingService.get_by_ref(db, booking_ref, for_update=True)
            if booking.booked_by_vendor_id != caller.vendor_id:
                raise ForbiddenError("Only the requester can pay for this booking")
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidStateError(
                    f"Booking is {booking.status.value}, remaining payment is not allowed",
                    details={"status": booking.status.value}
                )
            if business_today(now) <= booking.end_date:
                raise ValidationError(
                    "Remaining payment opens after the event end date",
                    code="EVENT_NOT_ENDED",
                    details={"end_date": booking.end_date.isoformat()}
                )

            advance_paid = paid_amount(db, booking.id, PaymentPurpose.ADVANCE)
            if advance_paid <= 0:
                raise InvalidStateError("Advance payment not found", code="ADVANCE_NOT_PAID")

            remaining = Decimal(booking.final_amount) - advance_paid
            if remaining <= 0:
                raise ConflictError("Booking is already settled", code="ALREADY_SETTLED")

            return self._create_order(db, booking, PaymentPurpose.REMAINING, remaining)
        except Exception:
            db.rollback()
            raise
