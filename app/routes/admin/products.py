"""
Admin routes for product pricing
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import CallerIdentity
from app.routes.dependencies import require_admin
from app.schemas.product import ProductCreate, ProductPricingUpdate, ProductResponse
from app.services.product_service import product_service

router = APIRouter(
    prefix="/admin/api/products",
    tags=["admin-products"]
)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product_in: ProductCreate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    return product_service.create_product(db, admin, product_in)


@router.patch("/{product_ref}/pricing", response_model=ProductResponse)
def update_product_pricing(
    product_ref: str,
    pricing_in: ProductPricingUpdate,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(require_admin),
):
    """Change base prices or the advance rule; existing bookings keep their snapshot"""
    return product_service.update_pricing(db, admin, product_ref, pricing_in)
