"""
Payment routes for Razorpay integration
"""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.logging_config import logger
from app.core.security import CallerIdentity
from app.routes.dependencies import get_payment_service, get_reconciliation_service, require_vendor
from app.schemas.payment import OrderHandleResponse, PaymentVerifyRequest, PaymentVerifyResponse, WebhookAck
from app.services.payment_service import PaymentService
from app.services.reconciliation_service import ReconciliationService

router = APIRouter(
    prefix="/payments",
    tags=["payments"]
)


@router.post("/{booking_ref}/pay", response_model=OrderHandleResponse)
def pay_advance(
    booking_ref: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """
    Open a gateway order for the advance of an approved booking

    Returns:
        Order handle used by the client to start checkout
    """
    handle = payment_service.create_advance_order(db, caller, booking_ref)
    return OrderHandleResponse(**asdict(handle))


@router.post("/{booking_ref}/pay-remaining", response_model=OrderHandleResponse)
def pay_remaining(
    booking_ref: str,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Open a gateway order for the balance once the booking has ended"""
    handle = payment_service.create_remaining_order(db, caller, booking_ref)
    return OrderHandleResponse(**asdict(handle))


@router.post("/verify", response_model=PaymentVerifyResponse)
def verify_payment(
    body: PaymentVerifyRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(require_vendor),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    """Confirm a payment from the checkout callback values"""
    result = reconciliation.verify_client_payment(
        db,
        body.razorpay_order_id,
        body.razorpay_payment_id,
        body.razorpay_signature,
        caller=caller,
    )
    return PaymentVerifyResponse(
        booking_ref=result.booking.uuid,
        booking_status=result.booking.status,
        payment_status=result.payment.status,
        purpose=result.payment.purpose,
        changed=result.changed,
    )


@router.post("/webhook", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    x_razorpay_event_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Gateway webhook receiver

    The signature is computed over the exact request bytes, so the body is
    read raw rather than parsed by a schema.
    """
    raw_body = await request.body()
    logger.info(f"Razorpay webhook received (event id {x_razorpay_event_id})")
    event = reconciliation.handle_webhook(db, raw_body, x_razorpay_signature, x_razorpay_event_id)
    return WebhookAck(status=event.status.value, event_ref=event.uuid)
