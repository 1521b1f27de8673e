"""
Vendor bank details routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.exceptions import NotFoundError
from app.core.security import CallerIdentity
from app.routes.dependencies import require_vendor
from app.schemas.bank_details import BankDetailsResponse, BankDetailsSubmit
from app.services.bank_details_service import bank_details_service

router = APIRouter(
    prefix="/vendors/me/bank-details",
    tags=["bank-details"]
)


@router.get("", response_model=BankDetailsResponse)
def get_bank_details(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    details = bank_details_service.get_for_vendor(db, caller.vendor_id)
    if not details:
        raise NotFoundError("Bank details not found")
    return details


@router.post("", response_model=BankDetailsResponse)
def submit_bank_details(
    body: BankDetailsSubmit,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
):
    """Add bank details, or request an edit when details already exist"""
    return bank_details_service.submit(db, caller, body.model_dump(exclude_none=True))
