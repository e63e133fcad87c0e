"""Error taxonomy for registration and payment verification."""

from __future__ import annotations

from typing import Any, Optional


class RegistrationError(Exception):
    """Base error; carries the HTTP status the app-level handler responds with."""

    status_code = 500
    default_message = "An error occurred while processing the registration"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)


class InvalidRegistration(RegistrationError):
    """Input failed validation; nothing was written."""

    status_code = 400
    default_message = "Invalid registration request"


class PaymentSignatureInvalid(RegistrationError):
    status_code = 400
    default_message = "Invalid payment signature. Possible fraud attempt."


class OrderMismatch(RegistrationError):
    status_code = 400
    default_message = "Order ID mismatch"


class TeamNotFound(RegistrationError):
    status_code = 404
    default_message = "Team not found"


class PaymentAlreadyVerified(RegistrationError):
    """The team already left the Initiated state (duplicate or concurrent callback)."""

    status_code = 409
    default_message = "Payment has already been verified for this team"


class DuplicateRegistration(RegistrationError):
    status_code = 409
    default_message = "A member with these details is already registered"


class PaymentGatewayUnavailable(RegistrationError):
    """The gateway is not configured in this process."""

    status_code = 503
    default_message = "Payment gateway is not configured"


class PaymentGatewayError(RegistrationError):
    """The gateway was configured but the call failed or timed out."""

    status_code = 502
    default_message = "Payment gateway request failed"


class StoreError(RegistrationError):
    status_code = 500
    default_message = "An error occurred while saving the registration"


class RateLimitExceeded(RegistrationError):
    status_code = 429
    default_message = "Too many requests. Please slow down."


__all__ = [
    "DuplicateRegistration",
    "InvalidRegistration",
    "OrderMismatch",
    "PaymentAlreadyVerified",
    "PaymentGatewayError",
    "PaymentGatewayUnavailable",
    "PaymentSignatureInvalid",
    "RateLimitExceeded",
    "RegistrationError",
    "StoreError",
    "TeamNotFound",
]
