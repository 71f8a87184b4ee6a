"""Domain exceptions and helpers for standardized error responses."""
from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class PayledgerError(Exception):
    """Base class for every error raised by the ledger core."""

    code = "PAYLEDGER_ERROR"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details or None)


# --- Webhook ingestion -----------------------------------------------------


class SignatureInvalid(PayledgerError):
    """Invalid webhook signature."""

    code = "WEBHOOK_SIGNATURE_INVALID"


class PayloadInvalid(PayledgerError):
    """Invalid webhook payload."""

    code = "WEBHOOK_PAYLOAD_INVALID"


class OrderReferenceMissing(PayledgerError):
    """No order reference found in the webhook metadata."""

    code = "ORDER_REFERENCE_MISSING"


class OrderNotFound(PayledgerError):
    """Order not found."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Order not found: {reference}", reference=reference)


class TransactionNotFound(PayledgerError):
    """Transaction not found."""

    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}", transaction_id=transaction_id)


# --- Refund requests -------------------------------------------------------


class RefundValidationError(PayledgerError):
    """Refund request rejected before reaching the provider."""

    code = "REFUND_INVALID"


class RefundsDisabled(RefundValidationError):
    """Refunds are disabled in configuration."""

    code = "REFUNDS_DISABLED"


class WrongPaymentMethod(RefundValidationError):
    """Order is not paid with this payment provider."""

    code = "WRONG_PAYMENT_METHOD"


class InvalidAmount(RefundValidationError):
    """Refund amount must be greater than zero."""

    code = "INVALID_AMOUNT"


class PartialNotAllowed(RefundValidationError):
    """Partial refunds are disabled."""

    code = "PARTIAL_REFUND_NOT_ALLOWED"


class ExceedsRefundable(RefundValidationError):
    """Refund amount exceeds the refundable amount."""

    code = "EXCEEDS_REFUNDABLE"


class NothingToRefund(RefundValidationError):
    """Nothing to refund."""

    code = "NOTHING_TO_REFUND"


class MissingPaymentIdentifier(RefundValidationError):
    """Missing provider payment identifier for order."""

    code = "MISSING_PAYMENT_IDENTIFIER"


class RefundApiFailure(PayledgerError):
    """Provider refund API call failed."""

    code = "REFUND_API_FAILURE"

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message, status_code=status_code, retryable=retryable)


__all__ = [
    "error_response",
    "PayledgerError",
    "SignatureInvalid",
    "PayloadInvalid",
    "OrderReferenceMissing",
    "OrderNotFound",
    "TransactionNotFound",
    "RefundValidationError",
    "RefundsDisabled",
    "WrongPaymentMethod",
    "InvalidAmount",
    "PartialNotAllowed",
    "ExceedsRefundable",
    "NothingToRefund",
    "MissingPaymentIdentifier",
    "RefundApiFailure",
]
