"""
Booking routes
  POST  /bookings/quote                 – price a prospective booking
  GET   /bookings/availability          – check a product's dates
  POST  /bookings                       – request a booking (status=REQUESTED)
  GET   /bookings                       – caller's bookings, paginated
  GET   /bookings/active                – caller's bookings that hold dates
  GET   /bookings/blocked-dates         – caller's confirmed booking ranges
  GET   /bookings/{booking_ref}         – single booking
  POST  /bookings/{booking_ref}/decision – provider approves or rejects
  POST  /bookings/{booking_ref}/cancel  – cancel an unpaid approved booking
  PATCH /bookings/{booking_ref}/notes   – edit notes on a confirmed booking
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db.models import BookingStatus, VendorProduct
from app.core.exceptions import NotFoundError, ValidationError
from app.core.security import CallerIdentity
from app.routes.dependencies import get_booking_service, get_caller, require_vendor
from app.schemas.booking import (
    AvailabilityResponse,
    BookingCreate,
    BookingDecisionRequest,
    BookingListResponse,
    BookingResponse,
    DateRangeResponse,
    NotesUpdate,
    QuoteRequest,
    QuoteResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.booking_service import BookingService
from app.services.pricing_service import PricingService
from app.utils.time_utils import business_today

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"]
)


@router.post("/quote", response_model=QuoteResponse)
def quote_booking(
    req: QuoteRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
):
    """Price a booking without creating it"""
    return PricingService.quote_for_product(db, req.product_ref, req.start_date, req.end_date, req.coupon_code)


@router.get("/availability", response_model=AvailabilityResponse)
def check_availability(
    product_ref: str,
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
):
    """Whether a product is free for an inclusive date range, plus its upcoming unavailable ranges"""
    if start_date > end_date:
        raise ValidationError("Start date must be on or before end date")

    product = db.query(VendorProduct).filter(VendorProduct.uuid == product_ref).first()
    if not product:
        raise NotFoundError("Product not found")

    result = AvailabilityService.check_product(db, product, start_date, end_date)
    ranges = AvailabilityService.unavailable_ranges(db, product, business_today())
    return AvailabilityResponse(
        available=result.available,
        conflicting_range=DateRangeResponse.model_validate(result.conflicting_range) if result.conflicting_range else None,
        next_available_date=result.next_available_date,
        unavailable_ranges=[DateRangeResponse.model_validate(r) for r in ranges],
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    booking_in: BookingCreate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Request a booking of another vendor's product"""
    return booking_service.create_booking(db, caller, booking_in)


@router.get("", response_model=BookingListResponse)
def list_bookings(
    role: Optional[str] = Query(None, pattern="^(provider|requester)$"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    """Bookings where the caller is provider or requester"""
    items, page_info = BookingService.list_bookings(db, caller, role, status_filter, page, page_size)
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in items],
        **page_info.model_dump()
    )


@router.get("/active", response_model=List[BookingResponse])
def list_active_bookings(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    return BookingService.list_active_bookings(db, caller)


@router.get("/blocked-dates", response_model=List[DateRangeResponse])
def blocked_dates(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    """Date ranges taken by the caller's confirmed bookings"""
    return AvailabilityService.blocked_dates(db, caller.vendor_id)


@router.get("/{booking_ref}", response_model=BookingResponse)
def get_booking(
    booking_ref: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
    booking_service: BookingService = Depends(get_booking_service),
):
    return booking_service.get_booking(db, caller, booking_ref)


@router.post("/{booking_ref}/decision", response_model=BookingResponse)
def decide_booking(
    booking_ref: str,
    body: BookingDecisionRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Provider approves or rejects a booking request"""
    return booking_service.decide(db, caller, booking_ref, body.decision)


@router.post("/{booking_ref}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_ref: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    booking_service: BookingService = Depends(get_booking_service),
):
    return booking_service.cancel_booking(db, caller, booking_ref)


@router.patch("/{booking_ref}/notes", response_model=BookingResponse)
def update_notes(
    booking_ref: str,
    body: NotesUpdate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    booking_service: BookingService = Depends(get_booking_service),
):
    return booking_service.update_notes(db, caller, booking_ref, body.notes)
