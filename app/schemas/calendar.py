"""
Pydantic schemas for vendor calendar blocks
"""
from __future__ import annotations
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field


class CalendarBlockCreate(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=255)


class CalendarBlockResponse(BaseModel):
    uuid: str
    start_date: date
    end_date: date
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
