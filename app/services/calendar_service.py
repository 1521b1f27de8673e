"""
Vendor calendar blocks
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.db.models import ACTIVE_BOOKING_STATUSES, Booking, CalendarBlock, Vendor
from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.services.availability_service import AvailabilityService
from app.utils.time_utils import business_today


class CalendarService:
    """Service for vendor-declared unavailability"""

    @staticmethod
    def create_block(
        db: Session,
        caller: CallerIdentity,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CalendarBlock:
        """
        Block a date range on the caller's calendar

        Args:
            db: Database session
            caller: Vendor blocking their own calendar
            start_date: First blocked day
            end_date: Last blocked day (inclusive)
            reason: Optional note

        Returns:
            The new block

        Raises:
            ValidationError: Bad range, too long, or in the past
            ConflictError: Overlaps an active booking or another block
        """
        if caller.vendor_id is None:
            raise ForbiddenError("Only vendors can block dates")
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")
        if (end_date - start_date).days + 1 > settings.MAX_BLOCK_DAYS:
            raise ValidationError(
                f"You can block at most {settings.MAX_BLOCK_DAYS} days at a time",
                code="BLOCK_TOO_LONG"
            )
        if start_date < business_today(now):
            raise ValidationError("Cannot block dates in the past")

        try:
            vendor = db.query(Vendor).filter(Vendor.id == caller.vendor_id).with_for_update().first()
            if not vendor:
                raise NotFoundError("Vendor not found")

            booking = db.query(Booking).filter(
                Booking.vendor_id == caller.vendor_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.start_date <= end_date,
                Booking.end_date >= start_date,
            ).first()
            if booking:
                raise ConflictError(
                    "Selected dates overlap an existing booking",
                    code="OVERLAPS_BOOKING",
                    details={"booking_ref": booking.uuid}
                )

            if AvailabilityService.overlapping_blocks(db, caller.vendor_id, start_date, end_date).first():
                raise ConflictError("Selected dates are already blocked", code="OVERLAPS_BLOCK")

            block = CalendarBlock(
                vendor_id=caller.vendor_id,
                start_date=start_date,
                end_date=end_date,
                reason=reason.strip() if reason else None,
            )
            db.add(block)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(block)
        logger.info(f"Vendor {caller.vendor_id} blocked {start_date} to {end_date}")
        return block

    @staticmethod
    def delete_block(db: Session, caller: CallerIdentity, block_ref: str) -> None:
        """Remove one of the caller's own blocks"""
        block = db.query(CalendarBlock).filter(
            CalendarBlock.uuid == block_ref,
            CalendarBlock.vendor_id == caller.vendor_id,
        ).first()
        if not block:
            raise NotFoundError("Calendar block not found")

        db.delete(block)
        db.commit()
        logger.info(f"Vendor {caller.vendor_id} removed calendar block {block_ref}")

    @staticmethod
    def list_blocks(db: Session, caller: CallerIdentity) -> List[CalendarBlock]:
        return db.query(CalendarBlock).filter(
            CalendarBlock.vendor_id == caller.vendor_id
        ).order_by(CalendarBlock.start_date.asc()).all()


# Global instance
calendar_service = CalendarService()
