from decimal import Decimal

import pytest

from app.core.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from app.db.models import AdvanceType
from app.schemas.product import ProductCreate, ProductPricingUpdate
from app.services.bank_details_service import BankDetailsService, apply_diff
from app.services.product_service import ProductService

from conftest import caller_for

DETAILS = {
    "account_holder_name": " Asha Rao ",
    "account_number": "001234567890",
    "ifsc_code": "hdfc0001234",
}


@pytest.fixture
def vendor(factory):
    return factory.vendor("Asha Rao")


@pytest.fixture
def details(db, vendor):
    return BankDetailsService.submit(db, caller_for(vendor), DETAILS)


class TestSubmit:
    def test_first_submission_is_payout_ready(self, db, vendor, details):
        assert details.account_holder_name == "Asha Rao"
        assert details.ifsc_code == "HDFC0001234"
        assert details.is_payout_ready is True
        assert details.confirmed_at is not None
        assert BankDetailsService.is_payout_ready(db, vendor.id)

    def test_vendor_without_details_not_ready(self, db, vendor):
        assert not BankDetailsService.is_payout_ready(db, vendor.id)

    def test_first_submission_needs_every_field(self, db, vendor):
        with pytest.raises(ValidationError) as exc:
            BankDetailsService.submit(db, caller_for(vendor), {"account_number": "123"})
        assert exc.value.details["missing"] == ["account_holder_name", "ifsc_code"]

    @pytest.mark.parametrize("field,value,code", [
        ("ifsc_code", "HDFC1234567", "INVALID_IFSC"),
        ("ifsc_code", "HDF0001234", "INVALID_IFSC"),
        ("account_number", "12-34", "INVALID_ACCOUNT_NUMBER"),
    ])
    def test_rejects_malformed_fields(self, db, vendor, field, value, code):
        with pytest.raises(ValidationError) as exc:
            BankDetailsService.submit(db, caller_for(vendor), dict(DETAILS, **{field: value}))
        assert exc.value.code == code

    def test_edit_becomes_pending_diff(self, db, vendor, details):
        updated = BankDetailsService.submit(
            db, caller_for(vendor), dict(DETAILS, account_number="999988887777")
        )
        assert updated.account_number == "001234567890"
        assert updated.pending_changes == [
            {"field": "account_number", "old_value": "001234567890", "new_value": "999988887777"}
        ]

    def test_edit_without_changes(self, db, vendor, details):
        with pytest.raises(ValidationError) as exc:
            BankDetailsService.submit(db, caller_for(vendor), DETAILS)
        assert exc.value.code == "NO_CHANGES"

    def test_admin_cannot_submit(self, db, admin):
        with pytest.raises(ForbiddenError):
            BankDetailsService.submit(db, admin, DETAILS)


class TestAdminReview:
    def test_approve_applies_changes(self, db, admin, vendor, details):
        BankDetailsService.submit(db, caller_for(vendor), {"ifsc_code": "ICIC0004321"})
        approved = BankDetailsService.approve_edit(db, admin, vendor.id)

        assert approved.ifsc_code == "ICIC0004321"
        assert approved.pending_changes is None
        assert approved.is_edited is True
        assert approved.admin_approved_at is not None

    def test_reject_discards_changes(self, db, admin, vendor, details):
        BankDetailsService.submit(db, caller_for(vendor), {"ifsc_code": "ICIC0004321"})
        rejected = BankDetailsService.reject_edit(db, admin, vendor.id)

        assert rejected.ifsc_code == "HDFC0001234"
        assert rejected.pending_changes is None

    def test_nothing_pending(self, db, admin, vendor, details):
        with pytest.raises(InvalidStateError):
            BankDetailsService.approve_edit(db, admin, vendor.id)

    def test_unknown_vendor(self, db, admin):
        with pytest.raises(NotFoundError):
            BankDetailsService.reject_edit(db, admin, 404)

    def test_vendor_cannot_approve_own_edit(self, db, vendor, details):
        with pytest.raises(ForbiddenError):
            BankDetailsService.approve_edit(db, caller_for(vendor), vendor.id)

    def test_diff_only_touches_allowed_fields(self, details):
        with pytest.raises(ValidationError) as exc:
            apply_diff(details, [{"field": "is_payout_ready", "new_value": False}])
        assert exc.value.code == "FIELD_NOT_EDITABLE"
        assert details.is_payout_ready is True


class TestProductPricing:
    def product_data(self, vendor, **overrides):
        data = dict(
            vendor_id=vendor.id,
            title="Stage lights",
            base_price_single_day=Decimal("1500"),
            base_price_multi_day=Decimal("1200"),
            advance_type=AdvanceType.FIXED,
            advance_value=Decimal("1000"),
        )
        data.update(overrides)
        return ProductCreate(**data)

    def test_admin_creates_product(self, db, admin, vendor):
        product = ProductService.create_product(db, admin, self.product_data(vendor))
        assert product.uuid
        assert product.advance_type == AdvanceType.FIXED

    def test_fixed_advance_must_stay_below_base_prices(self, db, admin, vendor):
        with pytest.raises(ValidationError) as exc:
            ProductService.create_product(db, admin, self.product_data(vendor, advance_value=Decimal("2000")))
        assert exc.value.code == "INVALID_ADVANCE"

    def test_vendor_cannot_manage_products(self, db, vendor):
        with pytest.raises(ForbiddenError):
            ProductService.create_product(db, caller_for(vendor), self.product_data(vendor))

    def test_pricing_update_validates_combined_rule(self, db, admin, vendor):
        product = ProductService.create_product(db, admin, self.product_data(vendor))
        with pytest.raises(ValidationError):
            ProductService.update_pricing(
                db, admin, product.uuid, ProductPricingUpdate(base_price_multi_day=Decimal("900"))
            )

        updated = ProductService.update_pricing(
            db, admin, product.uuid,
            ProductPricingUpdate(advance_type=AdvanceType.PERCENTAGE, advance_value=Decimal("25"))
        )
        assert updated.advance_type == AdvanceType.PERCENTAGE
        assert updated.advance_value == Decimal("25")
