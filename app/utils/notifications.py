"""
Booking notifications sent by email through AWS SES
"""
from enum import Enum as PyEnum
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.logging_config import logger


class NotificationKind(str, PyEnum):
    """Notification template kinds"""
    BOOKING_REQUESTED_PROVIDER = "BOOKING_REQUESTED_PROVIDER"
    BOOKING_REQUESTED_REQUESTER = "BOOKING_REQUESTED_REQUESTER"
    BOOKING_APPROVED = "BOOKING_APPROVED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CONFIRMED_REQUESTER = "BOOKING_CONFIRMED_REQUESTER"
    BOOKING_CONFIRMED_PROVIDER = "BOOKING_CONFIRMED_PROVIDER"
    BOOKING_COMPLETED_REQUESTER = "BOOKING_COMPLETED_REQUESTER"
    BOOKING_COMPLETED_PROVIDER = "BOOKING_COMPLETED_PROVIDER"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"


MESSAGES = {
    NotificationKind.BOOKING_REQUESTED_PROVIDER: (
        "New booking request for {product_title}",
        "You have a new booking request for {product_title} from {start_date} to {end_date}.\n"
        "Amount: ₹{final_amount}. Please approve or reject before {approval_expires_at}.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_REQUESTED_REQUESTER: (
        "Booking request sent for {product_title}",
        "Your booking request for {product_title} from {start_date} to {end_date} has been sent.\n"
        "The vendor will respond before {approval_expires_at}.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_APPROVED: (
        "Booking approved - pay advance to confirm",
        "Your booking for {product_title} was approved.\n"
        "Pay the advance of ₹{advance_amount} to confirm it. Remaining after the event: ₹{remaining_amount}.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_REJECTED: (
        "Booking request declined",
        "Your booking request for {product_title} from {start_date} to {end_date} was declined.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_CONFIRMED_REQUESTER: (
        "Booking confirmed",
        "Advance of ₹{amount_paid} received. Your booking for {product_title} "
        "from {start_date} to {end_date} is confirmed.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_CONFIRMED_PROVIDER: (
        "Booking confirmed by advance payment",
        "The advance of ₹{amount_paid} for {product_title} ({start_date} to {end_date}) has been paid.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_COMPLETED_REQUESTER: (
        "Payment complete",
        "Remaining payment of ₹{amount_paid} received for {product_title}. Your booking is complete.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_COMPLETED_PROVIDER: (
        "Booking settled",
        "The remaining payment of ₹{amount_paid} for {product_title} has been received.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_EXPIRED: (
        "Booking request expired",
        "Your booking request for {product_title} expired before the vendor responded.\n"
        "Booking reference: {booking_ref}",
    ),
    NotificationKind.BOOKING_CANCELLED: (
        "Booking cancelled",
        "The booking for {product_title} from {start_date} to {end_date} was cancelled.\n"
        "Booking reference: {booking_ref}",
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "-"


def render(kind: NotificationKind, data: Dict[str, Any]) -> tuple:
    """Render subject and plain text body for a notification kind"""
    subject, body = MESSAGES[kind]
    values = _Defaults({k: v for k, v in data.items() if v is not None})
    return subject.format_map(values), body.format_map(values)


class Notifier:
    """Best-effort notification sender; subclasses deliver, this one only logs"""

    def notify(self, kind: NotificationKind, recipient: Optional[str], data: Dict[str, Any]) -> None:
        """
        Send a notification, never raising

        Args:
            kind: Template kind
            recipient: Recipient email address
            data: Template values
        """
        if not recipient:
            logger.warning(f"Skipping {kind.value} notification: no recipient")
            return
        try:
            self.deliver(kind, recipient, data)
        except Exception as e:
            logger.error(f"Failed to send {kind.value} notification to {recipient}: {str(e)}", exc_info=True)

    def deliver(self, kind: NotificationKind, recipient: str, data: Dict[str, Any]) -> None:
        subject, _ = render(kind, data)
        logger.info(f"Notification {kind.value} to {recipient}: {subject}")


class SESNotifier(Notifier):
    """Notifier sending plain text email via AWS SES"""

    def __init__(self, ses_client=None):
        self.ses_client = ses_client or boto3.client(
            'ses',
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.SES_REGION
        )
        self.from_email = settings.SES_FROM_EMAIL
        self.from_name = settings.SES_FROM_NAME

    def deliver(self, kind: NotificationKind, recipient: str, data: Dict[str, Any]) -> None:
        subject, body_text = render(kind, data)
        try:
            response = self.ses_client.send_email(
                Source=f"{self.from_name} <{self.from_email}>",
                Destination={'ToAddresses': [recipient]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {'Text': {'Data': body_text, 'Charset': 'UTF-8'}},
                }
            )
            logger.info(f"Email {kind.value} sent to {recipient}. MessageId: {response['MessageId']}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error sending {kind.value} email to {recipient}: {str(e)}")


def booking_notification_data(booking, **extra) -> Dict[str, Any]:
    """Common template values for a booking"""
    product = booking.product
    data = {
        "booking_ref": booking.uuid,
        "product_title": product.title if product else None,
        "start_date": booking.start_date.isoformat() if booking.start_date else None,
        "end_date": booking.end_date.isoformat() if booking.end_date else None,
        "final_amount": booking.final_amount,
        "advance_amount": booking.advance_amount,
        "remaining_amount": booking.remaining_amount,
        "approval_expires_at": booking.approval_expires_at.isoformat() if booking.approval_expires_at else None,
        "status": booking.status.value if booking.status else None,
    }
    data.update(extra)
    return data
