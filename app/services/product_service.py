"""
Product pricing configuration
"""
from sqlalchemy.orm import Session

from app.db.models import Vendor, VendorProduct
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.schemas.product import ProductCreate, ProductPricingUpdate
from app.services.pricing_service import PricingService


class ProductService:
    """Service for product pricing operations"""

    @staticmethod
    def create_product(db: Session, caller: CallerIdentity, data: ProductCreate) -> VendorProduct:
        """Create a product after validating its advance rule (admin only)"""
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")
        if not db.query(Vendor).filter(Vendor.id == data.vendor_id).first():
            raise NotFoundError("Vendor not found")

        PricingService.validate_advance_rule(
            data.advance_type,
            data.advance_value,
            (data.base_price_single_day, data.base_price_multi_day)
        )

        product = VendorProduct(**data.model_dump())
        db.add(product)
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} created for vendor {product.vendor_id}")
        return product

    @staticmethod
    def update_pricing(
        db: Session,
        caller: CallerIdentity,
        product_ref: str,
        data: ProductPricingUpdate
    ) -> VendorProduct:
        """
        Change pricing fields of a product

        Existing bookings keep the amounts and advance rule frozen on them.
        """
        if not caller.is_admin:
            raise ForbiddenError("Admin access required")

        product = db.query(VendorProduct).filter(VendorProduct.uuid == product_ref).first()
        if not product:
            raise NotFoundError("Product not found")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        advance_type = changes.get("advance_type", product.advance_type)
        advance_value = changes.get("advance_value", product.advance_value)
        PricingService.validate_advance_rule(
            advance_type,
            advance_value,
            (
                changes.get("base_price_single_day", product.base_price_single_day),
                changes.get("base_price_multi_day", product.base_price_multi_day),
            )
        )

        for field, value in changes.items():
            setattr(product, field, value)
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} pricing updated: {sorted(changes)}")
        return product


# Global instance
product_service = ProductService()
