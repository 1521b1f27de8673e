"""
Pydantic schemas for Booking operations
"""
from __future__ import annotations
from typing import Optional, List
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum as PyEnum
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.db.models import BookingStatus, BookingType


class Decision(str, PyEnum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class BookingCreate(BaseModel):
    """Schema for requesting a booking"""
    product_ref: str
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('coupon_code', mode='before')
    @classmethod
    def normalize_coupon(cls, v):
        if v is None:
            return None
        v = str(v).strip().upper()
        return v or None


class BookingDecisionRequest(BaseModel):
    """Schema for approving or rejecting a booking"""
    decision: Decision


class NotesUpdate(BaseModel):
    """Schema for updating booking notes"""
    notes: str = Field(..., max_length=2000)


class QuoteRequest(BaseModel):
    """Schema for pricing a prospective booking"""
    product_ref: str
    start_date: date
    end_date: date
    coupon_code: Optional[str] = None


class QuoteResponse(BaseModel):
    booking_type: BookingType
    total_days: int
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    coupon_code: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DateRangeResponse(BaseModel):
    start_date: date
    end_date: date
    source: str

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    """Schema for availability check result"""
    available: bool
    conflicting_range: Optional[DateRangeResponse] = None
    next_available_date: Optional[date] = None
    unavailable_ranges: List[DateRangeResponse] = []


class BookingResponse(BaseModel):
    """Schema for booking response"""
    uuid: str
    vendor_id: int
    booked_by_vendor_id: int
    vendor_product_id: int
    booking_type: BookingType
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    total_days: int
    total_amount: Decimal
    coupon_code: Optional[str] = None
    discount_amount: Decimal
    final_amount: Decimal
    advance_amount: Decimal
    remaining_amount: Decimal
    status: BookingStatus
    approval_expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    decided_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    items: List[BookingResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool
