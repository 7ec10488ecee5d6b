"""Request-scoped error taxonomy.

Every failure raised by the member and payment code derives from
``AppError``. The HTTP layer maps each class to a status code and a
public message; nothing here is fatal to the process.

    AppError
    ├── ValidationError      400  missing or malformed input
    ├── NotFound             404  no matching member
    ├── InactiveMembership   400  member may not be marked paid
    ├── InvalidSignature     400  webhook HMAC mismatch (no detail)
    ├── VerificationFailed   400  gateway reports a non-successful transaction
    ├── GatewayError         500  transport/parse failure talking to Paystack
    └── StoreError           500  persistence failure
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status: int = 500
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(AppError):
    status = 400
    default_message = "Invalid request"


class NotFound(AppError):
    status = 404
    default_message = "User not found"


class InactiveMembership(AppError):
    status = 400
    default_message = "Membership is not active"


class InvalidSignature(AppError):
    status = 400
    default_message = "Invalid signature"

    def __init__(self):
        # The public message never varies, whatever the cause.
        super().__init__(self.default_message)


class VerificationFailed(AppError):
    status = 400
    default_message = "Payment verification failed"


class GatewayError(AppError):
    """Paystack call failed; the caller may retry.

    ``details`` carries Paystack's own ``message`` field when one was
    returned, and is the only upstream text exposed to clients.
    """

    status = 500
    default_message = "Error connecting to Paystack API"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class StoreError(AppError):
    status = 500
    default_message = "Database error"
