"""
Pydantic schemas for Payment operations
"""
from __future__ import annotations
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from app.db.models import BookingStatus, PaymentPurpose, PaymentStatus


class OrderHandleResponse(BaseModel):
    """Values the client needs to open gateway checkout"""
    booking_ref: str
    purpose: PaymentPurpose
    order_id: str
    amount: int  # paise
    currency: str
    key_id: str


class PaymentVerifyRequest(BaseModel):
    """Checkout callback values submitted by the client"""
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentVerifyResponse(BaseModel):
    booking_ref: str
    booking_status: BookingStatus
    payment_status: PaymentStatus
    purpose: PaymentPurpose
    changed: bool


class PaymentResponse(BaseModel):
    uuid: str
    purpose: PaymentPurpose
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: int
    currency: str
    status: PaymentStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WebhookAck(BaseModel):
    status: str
    event_ref: Optional[str] = None
