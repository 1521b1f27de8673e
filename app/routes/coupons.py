"""
Coupon routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import CallerIdentity
from app.routes.dependencies import get_caller
from app.schemas.coupon import CouponValidateRequest, CouponValidateResponse
from app.services.pricing_service import pricing_service

router = APIRouter(
    prefix="/coupons",
    tags=["coupons"]
)


@router.post("/validate", response_model=CouponValidateResponse)
def validate_coupon(
    req: CouponValidateRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
):
    """
    Check a coupon against a prospective booking

    Args:
        req: Coupon code, product and dates
        db: Database session
        caller: Authenticated caller

    Returns:
        Discount breakdown for the booking

    Raises:
        ValidationError: Unknown, expired or inapplicable coupon
    """
    coupon = pricing_service.find_coupon(db, req.code)
    quote = pricing_service.quote_for_product(db, req.product_ref, req.start_date, req.end_date, req.code)
    return CouponValidateResponse(
        valid=True,
        code=coupon.code,
        coupon_type=coupon.coupon_type,
        total_amount=quote.total_amount,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
    )
