"""
Pydantic schemas for Coupon operations
"""
from __future__ import annotations
from typing import Optional
from datetime import date
from decimal import Decimal
from pydantic import BaseModel

from app.db.models import CouponType


class CouponValidateRequest(BaseModel):
    """Schema for checking a coupon against a prospective booking"""
    code: str
    product_ref: str
    start_date: date
    end_date: date


class CouponValidateResponse(BaseModel):
    valid: bool
    code: str
    coupon_type: Optional[CouponType] = None
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
