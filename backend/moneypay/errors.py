# Overview: Typed failures raised by the ledger services and mapped to HTTP by the routes.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for recoverable business-rule failures."""

    code = "LEDGER_ERROR"
    http_status = 400
    default_message = "Ledger operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Not found"


class RecipientNotFoundError(NotFoundError):
    code = "RECIPIENT_NOT_FOUND"
    default_message = "Recipient not found"


class InsufficientBalanceError(LedgerError):
    code = "INSUFFICIENT_BALANCE"
    default_message = "Insufficient balance"


class ForbiddenError(LedgerError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Not allowed"


class InvalidStateError(LedgerError):
    code = "INVALID_STATE"
    http_status = 409
    default_message = "Record is not pending"


class InvalidAmountError(LedgerError):
    code = "INVALID_AMOUNT"
    default_message = "Invalid amount"


class ForbiddenCounterpartyError(LedgerError):
    code = "FORBIDDEN_COUNTERPARTY"
    default_message = "You can't send money to this person"


class OperationFailedError(LedgerError):
    """
    Unexpected persistence failure.

    Raised after the operation was rolled back, so callers may retry it.
    Kept distinct from business errors.
    """

    code = "OPERATION_FAILED"
    http_status = 500
    default_message = "Operation failed, please retry"


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"
