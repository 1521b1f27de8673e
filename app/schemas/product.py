"""
Pydantic schemas for vendor product pricing
"""
from __future__ import annotations
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from app.db.models import AdvanceType, PricingUnit


class ProductCreate(BaseModel):
    """Schema for creating a product (admin managed)"""
    vendor_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    base_price_single_day: Decimal = Field(..., gt=0)
    base_price_multi_day: Decimal = Field(..., gt=0)
    pricing_unit: PricingUnit = PricingUnit.PER_DAY
    advance_type: AdvanceType = AdvanceType.PERCENTAGE
    advance_value: Decimal


class ProductPricingUpdate(BaseModel):
    """Schema for changing product pricing"""
    base_price_single_day: Optional[Decimal] = Field(None, gt=0)
    base_price_multi_day: Optional[Decimal] = Field(None, gt=0)
    pricing_unit: Optional[PricingUnit] = None
    advance_type: Optional[AdvanceType] = None
    advance_value: Optional[Decimal] = None


class ProductResponse(BaseModel):
    uuid: str
    vendor_id: int
    title: str
    base_price_single_day: Decimal
    base_price_multi_day: Decimal
    pricing_unit: PricingUnit
    advance_type: AdvanceType
    advance_value: Decimal
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
