"""
Pricing and advance calculation service
Handles booking totals, coupon discounts and advance/remaining split
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from app.db.models import (
    AdvanceType, BookingType, Coupon, CouponType, PricingUnit, VendorProduct
)
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging_config import logger
from app.utils.time_utils import ensure_aware, utcnow

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_rupees(amount: Decimal) -> Decimal:
    """Round half-up to whole rupees"""
    return Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a rupee amount to integer paise"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """Convert integer paise to rupees"""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class Quote:
    """Priced booking before any advance split"""
    booking_type: BookingType
    total_days: int
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    coupon_code: Optional[str] = None


class PricingService:
    """Service for pricing calculations"""

    @staticmethod
    def booking_shape(start_date: date, end_date: date) -> Tuple[BookingType, int]:
        """
        Derive booking type and day count from an inclusive date range

        Args:
            start_date: First day of the booking
            end_date: Last day of the booking

        Returns:
            Tuple of (booking type, total days)
        """
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")
        total_days = (end_date - start_date).days + 1
        booking_type = BookingType.MULTI_DAY if end_date > start_date else BookingType.SINGLE_DAY
        return booking_type, total_days

    @staticmethod
    def base_total(product: VendorProduct, booking_type: BookingType, total_days: int) -> Decimal:
        """Total before discount for a product and booking shape"""
        if booking_type == BookingType.MULTI_DAY:
            return Decimal(product.base_price_multi_day) * total_days
        return Decimal(product.base_price_single_day)

    @staticmethod
    def discount_for(coupon: Coupon, total_amount: Decimal, now: Optional[datetime] = None) -> Decimal:
        """
        Validate a coupon against a total and compute its discount

        Args:
            coupon: Coupon row
            total_amount: Booking total before discount
            now: Evaluation time (defaults to current UTC time)

        Returns:
            Discount amount, never more than total_amount

        Raises:
            ValidationError: If the coupon is inactive, expired, exhausted,
                below its minimum amount, or gives no discount
        """
        now = now or utcnow()
        if not coupon.is_active:
            raise ValidationError("This coupon is no longer active", code="COUPON_INACTIVE")

        expires_at = ensure_aware(coupon.expires_at)
        if expires_at is not None and expires_at < now:
            raise ValidationError("This coupon has expired", code="COUPON_EXPIRED")

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            raise ValidationError("This coupon has reached its usage limit", code="COUPON_EXHAUSTED")

        if coupon.min_amount is not None and total_amount < Decimal(coupon.min_amount):
            raise ValidationError(
                f"Minimum order amount of ₹{coupon.min_amount} required",
                code="COUPON_MIN_AMOUNT",
                details={"min_amount": str(coupon.min_amount)}
            )

        value = Decimal(coupon.value)
        max_discount = Decimal(coupon.max_discount) if coupon.max_discount is not None else None

        if coupon.coupon_type == CouponType.FLAT:
            discount = value
        elif coupon.coupon_type == CouponType.PERCENT:
            discount = round_rupees(total_amount * value / HUNDRED)
            if max_discount is not None:
                discount = min(discount, max_discount)
        elif coupon.coupon_type == CouponType.UPTO:
            if max_discount is None:
                raise ValidationError("Coupon is misconfigured", code="COUPON_INVALID")
            discount = min(round_rupees(total_amount * value / HUNDRED), max_discount)
        else:
            raise ValidationError("Unsupported coupon type", code="COUPON_INVALID")

        discount = min(max(discount, ZERO), total_amount)
        if discount <= ZERO:
            raise ValidationError("Coupon not applicable", code="COUPON_NOT_APPLICABLE")
        return discount

    @staticmethod
    def quote(
        product: VendorProduct,
        booking_type: BookingType,
        total_days: int,
        coupon: Optional[Coupon] = None,
        now: Optional[datetime] = None
    ) -> Quote:
        """
        Price a booking

        Args:
            product: Product being booked
            booking_type: SINGLE_DAY or MULTI_DAY
            total_days: Inclusive day count (>= 1)
            coupon: Optional coupon to apply
            now: Evaluation time for coupon expiry

        Returns:
            Quote with total, discount and final amounts
        """
        total_amount = PricingService.base_total(product, booking_type, total_days)
        discount_amount = ZERO
        if coupon is not None:
            discount_amount = PricingService.discount_for(coupon, total_amount, now=now)

        final_amount = total_amount - discount_amount
        return Quote(
            booking_type=booking_type,
            total_days=total_days,
            total_amount=total_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            coupon_code=coupon.code if coupon is not None else None,
        )

    @staticmethod
    def advance_of(advance_type: AdvanceType, advance_value: Decimal, final_amount: Decimal) -> Decimal:
        """
        Compute the advance for a final amount, clamped to [0, final_amount]

        Args:
            advance_type: PERCENTAGE or FIXED
            advance_value: Percentage (0-100] or fixed rupee amount
            final_amount: Amount after discount

        Returns:
            Advance amount in rupees
        """
        final_amount = Decimal(final_amount)
        if advance_type == AdvanceType.PERCENTAGE:
            advance = round_rupees(final_amount * Decimal(advance_value) / HUNDRED)
        else:
            advance = Decimal(advance_value)
        return min(max(advance, ZERO), final_amount)

    @staticmethod
    def validate_advance_rule(
        advance_type: AdvanceType,
        advance_value: Decimal,
        base_prices: Iterable[Decimal]
    ) -> None:
        """
        Check a product's advance rule against its base prices

        Raises:
            ValidationError: If PERCENTAGE is outside (0, 100] or FIXED is not
                strictly between 0 and every base price
        """
        value = Decimal(advance_value)
        if advance_type == AdvanceType.PERCENTAGE:
            if not (ZERO < value <= HUNDRED):
                raise ValidationError(
                    "Percentage advance must be greater than 0 and at most 100",
                    code="INVALID_ADVANCE"
                )
            return

        if value <= ZERO:
            raise ValidationError("Fixed advance must be greater than 0", code="INVALID_ADVANCE")
        for base_price in base_prices:
            if value >= Decimal(base_price):
                raise ValidationError(
                    f"Fixed advance ₹{value} must be less than base price ₹{base_price}",
                    code="INVALID_ADVANCE",
                    details={"advance_value": str(value), "base_price": str(base_price)}
                )

    @staticmethod
    def validate_session_times(product: VendorProduct, booking_type: BookingType, start_time, end_time) -> None:
        """Session-priced single-day bookings need a start and end time"""
        if product.pricing_unit != PricingUnit.PER_SESSION or booking_type != BookingType.SINGLE_DAY:
            return
        if start_time is None or end_time is None:
            raise ValidationError("Start and end time are required for this product")
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")

    @staticmethod
    def find_coupon(db: Session, coupon_code: Optional[str]) -> Optional[Coupon]:
        """Look up a coupon by code (case-insensitive)"""
        if not coupon_code or not coupon_code.strip():
            return None
        coupon = db.query(Coupon).filter(Coupon.code == coupon_code.strip().upper()).first()
        if not coupon:
            raise ValidationError("Invalid coupon code", code="COUPON_NOT_FOUND")
        return coupon

    @staticmethod
    def quote_for_product(
        db: Session,
        product_ref: str,
        start_date: date,
        end_date: date,
        coupon_code: Optional[str] = None
    ) -> Quote:
        """Price a prospective booking without creating it"""
        product = db.query(VendorProduct).filter(
            VendorProduct.uuid == product_ref,
            VendorProduct.is_active == True  # noqa: E712
        ).first()
        if not product:
            raise NotFoundError("Product not found")

        booking_type, total_days = PricingService.booking_shape(start_date, end_date)
        coupon = PricingService.find_coupon(db, coupon_code)
        quote = PricingService.quote(product, booking_type, total_days, coupon)
        logger.info(
            f"Quoted product {product.id}: total={quote.total_amount} "
            f"discount={quote.discount_amount} final={quote.final_amount}"
        )
        return quote


# Global instance
pricing_service = PricingService()
