"""
Admin routes for vendor bank detail edit requests
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import CallerIdentity
from app.routes.dependencies import require_admin
from app.schemas.bank_details import BankDetailsResponse
from app.services.bank_details_service import bank_details_service

router = APIRouter(
    prefix="/admin/api/bank-details",
    tags=["admin-bank-details"]
)


@router.post("/{vendor_id}/approve", response_model=BankDetailsResponse)
def approve_bank_details_edit(
    vendor_id: int,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """Apply a vendor's pending bank detail changes"""
    return bank_details_service.approve_edit(db, admin, vendor_id)


@router.post("/{vendor_id}/reject", response_model=BankDetailsResponse)
def reject_bank_details_edit(
    vendor_id: int,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    return bank_details_service.reject_edit(db, admin, vendor_id)
