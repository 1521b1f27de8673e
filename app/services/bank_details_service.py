"""
Vendor payout bank details and admin-approved edit requests
"""
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.db.models import Vendor, VendorBankDetails
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError, InvalidStateError
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.utils.time_utils import utcnow

IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")

# Fields an edit request may change
EDITABLE_FIELDS = ("account_holder_name", "account_number", "ifsc_code")


def normalize_bank_fields(data: Dict[str, Any]) -> Dict[str, str]:
    """Trim and validate submitted bank fields, keeping only editable ones"""
    cleaned: Dict[str, str] = {}
    for field in EDITABLE_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        value = str(value).strip()
        if field == "ifsc_code":
            value = value.upper()
            if not IFSC_PATTERN.match(value):
                raise ValidationError("Invalid IFSC code", code="INVALID_IFSC")
        if field == "account_number" and not value.isdigit():
            raise ValidationError("Account number must contain only digits", code="INVALID_ACCOUNT_NUMBER")
        if not value:
            raise ValidationError(f"{field} cannot be empty")
        cleaned[field] = value
    return cleaned


def build_diff(current: VendorBankDetails, changes: Dict[str, str]) -> List[Dict[str, Optional[str]]]:
    """Tagged diff entries for fields whose value actually changes"""
    diff = []
    for field, new_value in changes.items():
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Field '{field}' cannot be edited", code="FIELD_NOT_EDITABLE")
        old_value = getattr(current, field)
        if old_value != new_value:
            diff.append({"field": field, "old_value": old_value, "new_value": new_value})
    return diff


def apply_diff(details: VendorBankDetails, diff: List[Dict[str, Any]]) -> None:
    """Apply tagged diff entries through the allow-list"""
    for entry in diff:
        field = entry.get("field")
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Field '{field}' cannot be edited", code="FIELD_NOT_EDITABLE")
        setattr(details, field, entry.get("new_value"))


class BankDetailsService:
    """Service for vendor bank details"""

    @staticmethod
    def get_for_vendor(db: Session, vendor_id: int) -> Optional[VendorBankDetails]:
        return db.query(VendorBankDetails).filter(VendorBankDetails.vendor_id == vendor_id).first()

    @staticmethod
    def is_payout_ready(db: Session, vendor_id: int) -> bool:
        """Whether a vendor has confirmed payout bank details on file"""
        details = BankDetailsService.get_for_vendor(db, vendor_id)
        return bool(details and details.is_payout_ready)

    @staticmethod
    def submit(db: Session, caller: CallerIdentity, data: Dict[str, Any]) -> VendorBankDetails:
        """
        Store bank details on first submission, or open an edit request afterwards

        Args:
            db: Database session
            caller: Vendor submitting their own details
            data: account_holder_name, account_number, ifsc_code

        Returns:
            The bank details row
        """
        if caller.vendor_id is None:
            raise ForbiddenError("Only vendors can submit bank details")

        changes = normalize_bank_fields(data)
        details = BankDetailsService.get_for_vendor(db, caller.vendor_id)
        if details is None:
            missing = [f for f in EDITABLE_FIELDS if f not in changes]
            if missing:
                raise ValidationError("Missing bank details", details={"missing": missing})
            if not db.query(Vendor).filter(Vendor.id == caller.vendor_id).first():
                raise NotFoundError("Vendor not found")

            details = VendorBankDetails(
                vendor_id=caller.vendor_id,
                is_payout_ready=True,
                confirmed_at=utcnow(),
                **changes
            )
            db.add(details)
            db.commit()
            db.refresh(details)
            logger.info(f"Bank details added for vendor {caller.vendor_id}")
            return details

        return BankDetailsService.request_edit(db, details, changes)

    @staticmethod
    def request_edit(db: Session, details: VendorBankDetails, changes: Dict[str, str]) -> VendorBankDetails:
        """Record a pending edit as a tagged diff awaiting admin approval"""
        diff = build_diff(details, changes)
        if not diff:
            raise ValidationError("No changes detected", code="NO_CHANGES")

        details.pending_changes = diff
        db.commit()
        db.refresh(details)
        logger.info(
            f"Bank details edit requested for vendor {details.vendor_id}: "
            f"{[entry['field'] for entry in diff]}"
        )
        return details

    @staticmethod
    def approve_edit(db: Session, caller: CallerIdentity, vendor_id: int) -> VendorBankDetails:
        """Admin applies a pending edit request"""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")

        details = BankDetailsService.get_for_vendor(db, vendor_id)
        if not details:
            raise NotFoundError("Bank details not found")
        if not details.pending_changes:
            raise InvalidStateError("No pending changes to approve")

        apply_diff(details, details.pending_changes)
        details.pending_changes = None
        details.is_edited = True
        details.is_payout_ready = True
        details.admin_approved_at = utcnow()
        db.commit()
        db.refresh(details)
        logger.info(f"Bank details edit approved for vendor {vendor_id}")
        return details

    @staticmethod
    def reject_edit(db: Session, caller: CallerIdentity, vendor_id: int) -> VendorBankDetails:
        """Admin discards a pending edit request"""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")

        details = BankDetailsService.get_for_vendor(db, vendor_id)
        if not details:
            raise NotFoundError("Bank details not found")
        if not details.pending_changes:
            raise InvalidStateError("No pending changes to reject")

        details.pending_changes = None
        db.commit()
        db.refresh(details)
        logger.info(f"Bank details edit rejected for vendor {vendor_id}")
        return details


# Global instance
bank_details_service = BankDetailsService()
