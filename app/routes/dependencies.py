"""
Route dependencies: caller identity and service wiring
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.core.security import CallerIdentity, caller_from_claims, decode_access_token
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentService
from app.services.razorpay_service import RazorpayGateway
from app.services.reconciliation_service import ReconciliationService
from app.utils.notifications import Notifier


def _token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


def get_caller(request: Request) -> CallerIdentity:
    """
    Verified caller identity from the session token

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    claims = decode_access_token(token)
    caller = caller_from_claims(claims) if claims else None
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session"
        )
    return caller


def require_vendor(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    if caller.vendor_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Vendor account required"
        )
    return caller


def require_admin(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return caller


def get_gateway(request: Request) -> RazorpayGateway:
    """Gateway client created once at startup"""
    return request.app.state.gateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_booking_service(notifier: Notifier = Depends(get_notifier)) -> BookingService:
    return BookingService(notifier)


def get_payment_service(gateway: RazorpayGateway = Depends(get_gateway)) -> PaymentService:
    return PaymentService(gateway)


def get_reconciliation_service(
    gateway: RazorpayGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier)
) -> ReconciliationService:
    return ReconciliationService(gateway, notifier)
