"""
Razorpay payment gateway service
Handles order creation with timeouts and bounded retries, and signature checks through the SDK utility
"""
import random
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

import razorpay
import requests

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging_config import get_logger

logger = get_logger("payments")


@dataclass(frozen=True)
class GatewayOrder:
    """Order handle returned by the gateway"""
    order_id: str
    amount: int
    currency: str
    receipt: str


class TimeoutSession(requests.Session):
    """requests session that applies a default timeout to every call"""

    def __init__(self, timeout: float):
        super().__init__()
        self.timeout = timeout

    def request(self, *args, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(*args, **kwargs)


# Errors worth retrying: network trouble and gateway-side failures
RETRYABLE_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    razorpay.errors.ServerError,
    razorpay.errors.GatewayError,
)


def retry_delay(attempt: int, backoff: float) -> float:
    """Exponential backoff with a little jitter"""
    if backoff <= 0:
        return 0.0
    base = backoff * (2 ** (attempt - 1))
    return base + random.uniform(0, 0.1 * backoff * attempt)


class RazorpayGateway:
    """Razorpay payment gateway client"""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        client: Any = None,
    ):
        """Initialize Razorpay client with credentials"""
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.timeout = timeout if timeout is not None else settings.RAZORPAY_TIMEOUT_SECONDS
        self.max_retries = max(1, max_retries if max_retries is not None else settings.RAZORPAY_MAX_RETRIES)
        self.backoff = backoff if backoff is not None else settings.RAZORPAY_RETRY_BACKOFF_SECONDS

        if not self.key_id or not self.key_secret:
            logger.warning("Razorpay credentials not fully configured. Payment integration may not work.")

        self.client = client or razorpay.Client(
            session=TimeoutSession(self.timeout),
            auth=(self.key_id, self.key_secret)
        )
        logger.info(
            f"Razorpay gateway initialized (timeout={self.timeout}s, max_retries={self.max_retries})"
        )

    def create_order(self, amount_minor: int, currency: str, receipt: str) -> GatewayOrder:
        """
        Create a gateway order

        Args:
            amount_minor: Amount in paise
            currency: Currency code
            receipt: Merchant receipt reference (max 40 chars)

        Returns:
            GatewayOrder with the gateway order id

        Raises:
            ExternalServiceError: If the gateway rejects the order or keeps failing after retries
        """
        payload = {
            "amount": int(amount_minor),
            "currency": currency,
            "receipt": receipt[:40],
            "payment_capture": 1,
        }

        attempt = 1
        while True:
            try:
                order = self.client.order.create(data=payload)
                break
            except RETRYABLE_ERRORS as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"Razorpay order creation failed after {attempt} attempts for receipt {receipt}: {str(e)}"
                    )
                    raise ExternalServiceError(
                        "Payment gateway unavailable",
                        code="GATEWAY_UNAVAILABLE",
                        details={"receipt": receipt, "attempts": attempt}
                    ) from e
                delay = retry_delay(attempt, self.backoff)
                logger.warning(
                    f"Razorpay order creation attempt {attempt} failed for receipt {receipt}, "
                    f"retrying in {delay:.2f}s: {str(e)}"
                )
                time.sleep(delay)
                attempt += 1
            except razorpay.errors.BadRequestError as e:
                logger.error(f"Razorpay rejected order for receipt {receipt}: {str(e)}")
                raise ExternalServiceError(
                    "Payment gateway rejected the order",
                    code="GATEWAY_REJECTED",
                    details={"receipt": receipt}
                ) from e

        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            logger.error(f"Razorpay order response missing id for receipt {receipt}: {order}")
            raise ExternalServiceError("Invalid response from payment gateway", code="GATEWAY_BAD_RESPONSE")

        logger.info(f"Razorpay order {order_id} created for receipt {receipt} amount={amount_minor} {currency}")
        return GatewayOrder(
            order_id=order_id,
            amount=int(order.get("amount", amount_minor)),
            currency=order.get("currency", currency),
            receipt=order.get("receipt", receipt),
        )

    def verify_webhook_signature(
        self,
        raw_body: Union[str, bytes],
        signature: Optional[str],
        secret: Optional[str] = None
    ) -> bool:
        """Check the X-Razorpay-Signature header against the exact request body"""
        secret = secret if secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        if not signature or not secret:
            return False
        try:
            if isinstance(raw_body, bytes):
                raw_body = raw_body.decode("utf-8")
            self.client.utility.verify_webhook_signature(raw_body, signature, secret)
        except UnicodeDecodeError:
            logger.warning("Webhook body is not valid UTF-8")
            return False
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        """Check the checkout signature over order_id|payment_id"""
        if not signature:
            return False
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            return False
        return True
