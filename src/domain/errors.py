from __future__ import annotations

from typing import Any


class LedgerError(RuntimeError):
    """Base class for errors the API maps to a client-facing response."""

    status_code = 500
    message = "Server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def payload(self) -> dict[str, Any]:
        return {"message": self.message}


class InvalidTransaction(LedgerError):
    status_code = 400
    message = "Invalid transaction"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def payload(self) -> dict[str, Any]:
        return {"errors": [{"field": self.field, "message": self.message}]}


class AuthenticationError(LedgerError):
    status_code = 401
    message = "Not authorized"


class EmailAlreadyRegistered(LedgerError):
    status_code = 400
    message = "User already exists"


class TransactionNotFound(LedgerError):
    status_code = 404
    message = "Transaction not found"


class AccountNotFound(LedgerError):
    status_code = 404
    message = "User not found"


class QuotaExceeded(LedgerError):
    status_code = 403
    message = "Subscription limit reached. Please upgrade your plan."

    def __init__(self, subscription_status: str) -> None:
        super().__init__()
        self.subscription_status = subscription_status

    def payload(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "subscriptionStatus": self.subscription_status,
            "needsUpgrade": True,
        }


class SubscriptionStateError(LedgerError):
    status_code = 400


class EmptyUpload(LedgerError):
    status_code = 400
    message = "No file uploaded"


class ReceiptExtractionError(LedgerError):
    status_code = 502
    message = "Failed to scan receipt. Please try again."


class PaymentProviderError(LedgerError):
    status_code = 502
    message = "Error creating payment link"


class InvalidSignature(LedgerError):
    status_code = 401
    message = "Invalid signature"


class UnsupportedUpload(LedgerError):
    status_code = 400
    message = "Invalid file type"


class UploadTooLarge(LedgerError):
    status_code = 413
    message = "File too large"
