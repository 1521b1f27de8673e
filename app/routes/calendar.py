"""
Vendor calendar block routes
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import CallerIdentity
from app.routes.dependencies import require_vendor
from app.schemas.calendar import CalendarBlockCreate, CalendarBlockResponse
from app.services.calendar_service import calendar_service

router = APIRouter(
    prefix="/calendar/blocks",
    tags=["calendar"]
)


@router.get("", response_model=List[CalendarBlockResponse])
def list_blocks(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    return calendar_service.list_blocks(db, caller)


@router.post("", response_model=CalendarBlockResponse, status_code=status.HTTP_201_CREATED)
def create_block(
    block_in: CalendarBlockCreate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    """Mark a date range as unavailable on the caller's calendar"""
    return calendar_service.create_block(db, caller, block_in.start_date, block_in.end_date, block_in.reason)


@router.delete("/{block_ref}", status_code=status.HTTP_204_NO_CONTENT)
def delete_block(
    block_ref: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    calendar_service.delete_block(db, caller, block_ref)
