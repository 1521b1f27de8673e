"""
Pydantic schemas for vendor bank details
"""
from __future__ import annotations
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class BankDetailsSubmit(BaseModel):
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None


class FieldChange(BaseModel):
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class BankDetailsResponse(BaseModel):
    vendor_id: int
    account_holder_name: str
    account_number: str
    ifsc_code: str
    is_payout_ready: bool
    is_edited: bool
    confirmed_at: Optional[datetime] = None
    pending_changes: Optional[List[FieldChange]] = None
    admin_approved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
