"""
Domain exceptions for booking and payment operations

Services raise these; the API layer converts them to HTTP responses.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain errors"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the error payload"""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationError(DomainException):
    """Bad input shape or range. Never retried."""

    status_code = HTTP_422_UNPROCESSABLE


class PayoutDetailsMissingError(ValidationError):
    """Provider has no payout-ready bank details on file"""


class NotFoundError(DomainException):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainException):
    """Double booking, already-decided booking or already-settled payment"""

    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(ConflictError):
    """Entity is not in the status the operation requires"""


class ExpiredError(DomainException):
    """A deadline has passed"""

    status_code = status.HTTP_410_GONE


class ForbiddenError(DomainException):
    """Actor is not a party to the resource"""

    status_code = status.HTTP_403_FORBIDDEN


class SignatureMismatchError(DomainException):
    """Payment signature did not verify"""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidWebhookSignatureError(SignatureMismatchError):
    """Webhook body signature did not verify"""


class ExternalServiceError(DomainException):
    """Gateway timeout, connection failure or 5xx"""

    status_code = status.HTTP_502_BAD_GATEWAY


class PaymentInitiationFailed(ExternalServiceError):
    """Gateway order could not be created after retries"""


class PaymentReconciliationError(DomainException):
    """Amounts or order ids from the gateway do not match local records"""

    status_code = HTTP_422_UNPROCESSABLE
