"""
Availability checks against active bookings and vendor calendar blocks
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.db.models import (
    ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, CalendarBlock, VendorProduct
)
from app.core.exceptions import NotFoundError


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range that blocks a product"""
    start_date: date
    end_date: date
    source: str  # "BOOKING" or "BLOCK"


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflicting_range: Optional[DateRange] = None

    @property
    def next_available_date(self) -> Optional[date]:
        if self.conflicting_range is None:
            return None
        return self.conflicting_range.end_date + timedelta(days=1)


class AvailabilityService:
    """Service for availability operations"""

    @staticmethod
    def overlapping_bookings(
        db: Session,
        product_id: int,
        start_date: date,
        end_date: date,
        exclude_booking_id: Optional[int] = None
    ):
        """Query for active bookings of a product overlapping [start_date, end_date]"""
        query = db.query(Booking).filter(
            Booking.vendor_product_id == product_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_date <= end_date,
            Booking.end_date >= start_date,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query

    @staticmethod
    def overlapping_blocks(db: Session, vendor_id: int, start_date: date, end_date: date):
        """Query for vendor calendar blocks overlapping [start_date, end_date]"""
        return db.query(CalendarBlock).filter(
            CalendarBlock.vendor_id == vendor_id,
            CalendarBlock.start_date <= end_date,
            CalendarBlock.end_date >= start_date,
        )

    @staticmethod
    def check_product(db: Session, product: VendorProduct, start_date: date, end_date: date) -> AvailabilityResult:
        """
        Check whether a product is free for an inclusive date range

        Args:
            db: Database session
            product: Product to check
            start_date: First requested day
            end_date: Last requested day

        Returns:
            AvailabilityResult with the earliest-ending conflict when unavailable
        """
        conflicts: List[DateRange] = []

        booking = AvailabilityService.overlapping_bookings(
            db, product.id, start_date, end_date
        ).order_by(Booking.end_date.asc()).first()
        if booking:
            conflicts.append(DateRange(booking.start_date, booking.end_date, "BOOKING"))

        block = AvailabilityService.overlapping_blocks(
            db, product.vendor_id, start_date, end_date
        ).order_by(CalendarBlock.end_date.asc()).first()
        if block:
            conflicts.append(DateRange(block.start_date, block.end_date, "BLOCK"))

        if not conflicts:
            return AvailabilityResult(available=True)
        return AvailabilityResult(
            available=False,
            conflicting_range=min(conflicts, key=lambda r: r.end_date)
        )

    @staticmethod
    def is_available(db: Session, product_id: int, start_date: date, end_date: date) -> AvailabilityResult:
        """Availability for a product id; side-effect free"""
        product = db.query(VendorProduct).filter(VendorProduct.id == product_id).first()
        if not product:
            raise NotFoundError("Product not found")
        return AvailabilityService.check_product(db, product, start_date, end_date)

    @staticmethod
    def unavailable_ranges(db: Session, product: VendorProduct, from_date: date) -> List[DateRange]:
        """All booked or blocked ranges of a product ending on or after from_date"""
        bookings = db.query(Booking).filter(
            Booking.vendor_product_id == product.id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.end_date >= from_date,
        ).all()
        blocks = db.query(CalendarBlock).filter(
            CalendarBlock.vendor_id == product.vendor_id,
            CalendarBlock.end_date >= from_date,
        ).all()

        ranges = [DateRange(b.start_date, b.end_date, "BOOKING") for b in bookings]
        ranges.extend(DateRange(b.start_date, b.end_date, "BLOCK") for b in blocks)
        return sorted(ranges, key=lambda r: (r.start_date, r.end_date))

    @staticmethod
    def blocked_dates(db: Session, vendor_id: int) -> List[DateRange]:
        """Confirmed booking ranges of a vendor, for the vendor's own calendar"""
        bookings = db.query(Booking).filter(
            Booking.vendor_id == vendor_id,
            Booking.status == BookingStatus.CONFIRMED,
        ).order_by(Booking.start_date.asc()).all()
        return [DateRange(b.start_date, b.end_date, "BOOKING") for b in bookings]


# Global instance
availability_service = AvailabilityService()
