"""
Booking lifecycle service
Creation, provider decision, expiry sweep, cancellation, notes and read queries
"""
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import (
    ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, Coupon, Payment, PaymentStatus,
    Vendor, VendorProduct
)
from app.db.transitions import guarded_update
from app.core.config import settings
from app.core.exceptions import (
    ConflictError, ExpiredError, ForbiddenError, InvalidStateError, NotFoundError,
    PayoutDetailsMissingError, ValidationError
)
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.schemas.booking import BookingCreate, Decision
from app.services.availability_service import AvailabilityService
from app.services.bank_details_service import BankDetailsService
from app.services.pricing_service import PricingService
from app.utils.notifications import NotificationKind, Notifier, booking_notification_data
from app.utils.pagination import PageInfo, paginate_query
from app.utils.time_utils import business_today, ensure_aware, utcnow


def count_words(text: Optional[str]) -> int:
    return len(text.split()) if text else 0


def validate_notes(notes: Optional[str]) -> Optional[str]:
    """Strip notes and enforce the word limit"""
    if notes is None:
        return None
    notes = notes.strip()
    if count_words(notes) > settings.MAX_NOTES_WORDS:
        raise ValidationError(
            f"Notes cannot exceed {settings.MAX_NOTES_WORDS} words",
            code="NOTES_TOO_LONG"
        )
    return notes or None


class BookingService:
    """Service for booking lifecycle operations"""

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or Notifier()

    # ── Creation ────────────────────────────────────────────────────────────

    def create_booking(
        self,
        db: Session,
        caller: CallerIdentity,
        data: BookingCreate,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Request a booking of another vendor's product

        The provider and product rows stay locked from the availability check
        until the insert commits.

        Args:
            db: Database session
            caller: Requesting vendor
            data: Product reference, dates, optional times, coupon and notes
            now: Current time override

        Returns:
            The new REQUESTED booking

        Raises:
            NotFoundError: Unknown or inactive product
            ForbiddenError: Caller owns the product
            ValidationError: Bad dates, times, notes or coupon
            ConflictError: Dates unavailable or caller already has an active booking
        """
        now = ensure_aware(now) or utcnow()
        today = business_today(now)
        if caller.vendor_id is None:
            raise ForbiddenError("Only vendors can book products")

        try:
            product = (
                db.query(VendorProduct)
                .filter(VendorProduct.uuid == data.product_ref, VendorProduct.is_active == True)  # noqa: E712
                .with_for_update()
                .first()
            )
            if not product:
                raise NotFoundError("Product not found or inactive")

            if product.vendor_id == caller.vendor_id:
                raise ForbiddenError("You cannot book your own product", code="SELF_BOOKING")

            provider = db.query(Vendor).filter(Vendor.id == product.vendor_id).with_for_update().first()
            requester = db.query(Vendor).filter(Vendor.id == caller.vendor_id).first()
            if not provider or not requester:
                raise NotFoundError("Vendor not found")

            booking_type, total_days = PricingService.booking_shape(data.start_date, data.end_date)
            if data.start_date < today:
                raise ValidationError("Start date cannot be in the past")
            PricingService.validate_session_times(product, booking_type, data.start_time, data.end_time)
            notes = validate_notes(data.notes)

            existing = db.query(Booking).filter(
                Booking.booked_by_vendor_id == caller.vendor_id,
                Booking.vendor_product_id == product.id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.end_date >= today,
            ).first()
            if existing:
                raise ConflictError(
                    "You already have an active booking for this product",
                    code="ACTIVE_BOOKING_EXISTS",
                    details={"booking_ref": existing.uuid}
                )

            availability = AvailabilityService.check_product(db, product, data.start_date, data.end_date)
            if not availability.available:
                conflict = availability.conflicting_range
                raise ConflictError(
                    "Selected dates are not available",
                    code="DATES_UNAVAILABLE",
                    details={
                        "conflicting_start": conflict.start_date.isoformat(),
                        "conflicting_end": conflict.end_date.isoformat(),
                        "next_available_date": availability.next_available_date.isoformat(),
                    }
                )

            coupon = PricingService.find_coupon(db, data.coupon_code)
            quote = PricingService.quote(product, booking_type, total_days, coupon, now=now)

            if coupon is not None:
                # Counted under the same transaction so an exhausted coupon cannot be overused
                claimed = db.query(Coupon).filter(
                    Coupon.id == coupon.id,
                    or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit)
                ).update({Coupon.usage_count: Coupon.usage_count + 1}, synchronize_session=False)
                if claimed != 1:
                    raise ValidationError("This coupon has reached its usage limit", code="COUPON_EXHAUSTED")

            booking = Booking(
                vendor_id=product.vendor_id,
                booked_by_vendor_id=caller.vendor_id,
                vendor_product_id=product.id,
                booking_type=booking_type,
                start_date=data.start_date,
                end_date=data.end_date,
                start_time=data.start_time,
                end_time=data.end_time,
                total_days=total_days,
                total_amount=quote.total_amount,
                coupon_code=quote.coupon_code,
                discount_amount=quote.discount_amount,
                final_amount=quote.final_amount,
                advance_amount=0,
                remaining_amount=quote.final_amount,
                status=BookingStatus.REQUESTED,
                approval_expires_at=now + timedelta(hours=settings.BOOKING_APPROVAL_WINDOW_HOURS),
                notes=notes,
            )
            db.add(booking)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Booking insert rejected by database constraint: {str(e)}")
            raise ConflictError("Selected dates are not available", code="DATES_UNAVAILABLE") from e
        except Exception:
            db.rollback()
            raise

        db.refresh(booking)
        logger.info(
            f"Booking {booking.uuid} requested by vendor {caller.vendor_id} for product {product.id} "
            f"({booking.start_date} to {booking.end_date}), final={booking.final_amount}"
        )

        data_out = booking_notification_data(booking)
        self.notifier.notify(NotificationKind.BOOKING_REQUESTED_PROVIDER, booking.provider.email, data_out)
        self.notifier.notify(NotificationKind.BOOKING_REQUESTED_REQUESTER, booking.requester.email, data_out)
        return booking

    # ── Decision ────────────────────────────────────────────────────────────

    def decide(
        self,
        db: Session,
        caller: CallerIdentity,
        booking_ref: str,
        decision: Decision,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Approve or reject a REQUESTED booking

        Only the first decision wins: the status change is conditional on the
        booking still being REQUESTED and inside its approval window.

        Raises:
            ForbiddenError: Caller is not the provider
            PayoutDetailsMissingError: Provider has no payout-ready bank details
            ExpiredError: Approval window has passed
            InvalidStateError: Booking is no longer REQUESTED
        """
        now = ensure_aware(now) or utcnow()
        booking = self.get_by_ref(db, booking_ref)

        if booking.vendor_id != caller.vendor_id:
            raise ForbiddenError("Only the provider can decide on this booking")

        if not BankDetailsService.is_payout_ready(db, booking.vendor_id):
            raise PayoutDetailsMissingError(
                "Add payout bank details before responding to bookings",
                code="PAYOUT_DETAILS_MISSING"
            )

        expires_at = ensure_aware(booking.approval_expires_at)
        if booking.status == BookingStatus.EXPIRED:
            raise ExpiredError("Approval window has passed", code="BOOKING_EXPIRED")
        if booking.status == BookingStatus.REQUESTED and expires_at is not None and now > expires_at:
            if self._expire_request(db, booking, now):
                db.commit()
                self._notify_expired(db, booking)
            else:
                db.rollback()
            raise ExpiredError("Approval window has passed", code="BOOKING_EXPIRED")

        if booking.status != BookingStatus.REQUESTED:
            raise InvalidStateError(
                f"Booking is already {booking.status.value}",
                details={"status": booking.status.value}
            )

        window_open = or_(Booking.approval_expires_at.is_(None), Booking.approval_expires_at >= now)
        if decision == Decision.APPROVE:
            product = booking.product
            advance = PricingService.advance_of(product.advance_type, product.advance_value, booking.final_amount)
            values = {
                "status": BookingStatus.PAYMENT_PENDING,
                "advance_type": product.advance_type,
                "advance_value": product.advance_value,
                "advance_amount": advance,
                "remaining_amount": booking.final_amount - advance,
                "decided_at": now,
                "approval_expires_at": None,
            }
        else:
            values = {"status": BookingStatus.REJECTED, "decided_at": now, "approval_expires_at": None}

        if not guarded_update(db, Booking, booking.id, BookingStatus.REQUESTED, values, [window_open]):
            db.rollback()
            db.refresh(booking)
            logger.info(f"Decision {decision.value} on booking {booking.uuid} lost to a concurrent change")
            raise InvalidStateError(
                f"Booking is already {booking.status.value}",
                details={"status": booking.status.value}
            )
        db.commit()
        db.refresh(booking)
        logger.info(f"Booking {booking.uuid} {decision.value} by vendor {caller.vendor_id} -> {booking.status.value}")

        kind = NotificationKind.BOOKING_APPROVED if decision == Decision.APPROVE else NotificationKind.BOOKING_REJECTED
        self.notifier.notify(kind, booking.requester.email, booking_notification_data(booking))
        return booking

    # ── Expiry sweep ────────────────────────────────────────────────────────

    def _expire_request(self, db: Session, booking: Booking, now: datetime) -> bool:
        return guarded_update(
            db, Booking, booking.id, BookingStatus.REQUESTED,
            {"status": BookingStatus.EXPIRED},
            [Booking.approval_expires_at < now]
        )

    def _notify_expired(self, db: Session, booking: Booking) -> None:
        db.refresh(booking)
        self.notifier.notify(
            NotificationKind.BOOKING_EXPIRED, booking.requester.email, booking_notification_data(booking)
        )

    def expire_stale_bookings(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Periodic sweep

        Moves REQUESTED bookings past their approval window and PAYMENT_PENDING
        bookings whose start date passed unpaid to EXPIRED, and completes fully
        prepaid CONFIRMED bookings once their end date has passed. Safe to run
        concurrently with decisions and with itself.

        Returns:
            Counts of rows changed per transition
        """
        now = ensure_aware(now) or utcnow()
        today = business_today(now)
        counts = {"expired_requests": 0, "expired_unpaid": 0, "completed_prepaid": 0}

        stale = db.query(Booking).filter(
            Booking.status == BookingStatus.REQUESTED,
            Booking.approval_expires_at < now,
        ).all()
        for booking in stale:
            if self._expire_request(db, booking, now):
                db.commit()
                counts["expired_requests"] += 1
                self._notify_expired(db, booking)
            else:
                db.rollback()

        unpaid = db.query(Booking.id).filter(
            Booking.status == BookingStatus.PAYMENT_PENDING,
            Booking.start_date < today,
        ).all()
        for (booking_id,) in unpaid:
            if guarded_update(db, Booking, booking_id, BookingStatus.PAYMENT_PENDING,
                              {"status": BookingStatus.EXPIRED}):
                counts["expired_unpaid"] += 1
        db.commit()

        prepaid = db.query(Booking.id).filter(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.remaining_amount <= 0,
            Booking.end_date < today,
        ).all()
        for (booking_id,) in prepaid:
            if guarded_update(db, Booking, booking_id, BookingStatus.CONFIRMED,
                              {"status": BookingStatus.COMPLETED, "remaining_amount": 0, "completed_at": now}):
                counts["completed_prepaid"] += 1
        db.commit()

        if any(counts.values()):
            logger.info(f"Expiry sweep: {counts}")
        return counts

    # ── Cancellation and notes ──────────────────────────────────────────────

    def cancel_booking(
        self,
        db: Session,
        caller: CallerIdentity,
        booking_ref: str,
        now: Optional[datetime] = None
    ) -> Booking:
        """Cancel an approved booking that has not been paid yet (either party)"""
        now = ensure_aware(now) or utcnow()
        booking = self.get_by_ref(db, booking_ref)
        self._require_party(booking, caller)

        if booking.status != BookingStatus.PAYMENT_PENDING:
            raise InvalidStateError(
                f"Booking cannot be cancelled while {booking.status.value}",
                details={"status": booking.status.value}
            )

        changed = guarded_update(
            db, Booking, booking.id, BookingStatus.PAYMENT_PENDING,
            {"status": BookingStatus.CANCELLED, "cancelled_at": now, "cancelled_by": caller.vendor_id}
        )
        if not changed:
            db.rollback()
            db.refresh(booking)
            raise InvalidStateError(
                f"Booking cannot be cancelled while {booking.status.value}",
                details={"status": booking.status.value}
            )

        open_orders = db.query(Payment.id).filter(
            Payment.booking_id == booking.id,
            Payment.status == PaymentStatus.CREATED,
        ).all()
        for (payment_id,) in open_orders:
            guarded_update(
                db, Payment, payment_id, PaymentStatus.CREATED,
                {"status": PaymentStatus.FAILED, "failure_reason": "Booking cancelled"}
            )
        db.commit()
        db.refresh(booking)
        logger.info(f"Booking {booking.uuid} cancelled by vendor {caller.vendor_id}")

        data_out = booking_notification_data(booking)
        other = booking.provider if caller.vendor_id == booking.booked_by_vendor_id else booking.requester
        self.notifier.notify(NotificationKind.BOOKING_CANCELLED, other.email, data_out)
        return booking

    def update_notes(self, db: Session, caller: CallerIdentity, booking_ref: str, notes: str) -> Booking:
        """Either party may edit notes once the booking is confirmed"""
        booking = self.get_by_ref(db, booking_ref)
        self._require_party(booking, caller)

        if booking.status not in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
            raise InvalidStateError(
                "Notes can only be edited on confirmed or completed bookings",
                details={"status": booking.status.value}
            )

        booking.notes = validate_notes(notes)
        db.commit()
        db.refresh(booking)
        logger.info(f"Notes updated on booking {booking.uuid} by vendor {caller.vendor_id}")
        return booking

    # ── Read models ─────────────────────────────────────────────────────────

    @staticmethod
    def get_by_ref(db: Session, booking_ref: str, for_update: bool = False) -> Booking:
        query = db.query(Booking).filter(Booking.uuid == booking_ref)
        if for_update:
            query = query.with_for_update()
        booking = query.first()
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    @staticmethod
    def _require_party(booking: Booking, caller: CallerIdentity) -> None:
        if caller.vendor_id not in (booking.vendor_id, booking.booked_by_vendor_id):
            raise ForbiddenError("You are not a party to this booking")

    def get_booking(self, db: Session, caller: CallerIdentity, booking_ref: str) -> Booking:
        """Booking by reference, visible to its two parties and admins"""
        booking = self.get_by_ref(db, booking_ref)
        if not caller.is_admin:
            self._require_party(booking, caller)
        return booking

    @staticmethod
    def list_bookings(
        db: Session,
        caller: CallerIdentity,
        as_role: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        page_size: int = settings.DEFAULT_PAGE_SIZE
    ) -> Tuple[List[Booking], PageInfo]:
        """
        Paginated bookings where the caller is provider and/or requester

        Args:
            as_role: "provider", "requester" or None for both
        """
        query = db.query(Booking)
        if as_role == "provider":
            query = query.filter(Booking.vendor_id == caller.vendor_id)
        elif as_role == "requester":
            query = query.filter(Booking.booked_by_vendor_id == caller.vendor_id)
        else:
            query = query.filter(or_(
                Booking.vendor_id == caller.vendor_id,
                Booking.booked_by_vendor_id == caller.vendor_id
            ))
        if status:
            query = query.filter(Booking.status == status)
        return paginate_query(query.order_by(Booking.created_at.desc(), Booking.id.desc()), page, page_size)

    @staticmethod
    def list_active_bookings(db: Session, caller: CallerIdentity, today: Optional[date] = None) -> List[Booking]:
        """Caller's bookings that still hold a calendar window"""
        today = today or business_today()
        return db.query(Booking).filter(
            or_(
                Booking.vendor_id == caller.vendor_id,
                Booking.booked_by_vendor_id == caller.vendor_id
            ),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.end_date >= today,
        ).order_by(Booking.start_date.asc()).all()
