"""
Operation Outcome Models

Every public ledger and account operation returns a LedgerOutcome
instead of raising. The code mirrors HTTP status semantics so a transport
layer can forward it verbatim.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Machine-readable failure names."""
    # Not found
    ACCOUNT_NOT_FOUND = "account_not_found"
    TRIGGER_ACCOUNT_NOT_FOUND = "trigger_account_not_found"
    TRANSACTION_NOT_FOUND = "transaction_not_found"

    # Invalid input
    UNKNOWN_TOKEN = "unknown_token"
    INVALID_INPUT = "invalid_input"

    # Invalid state
    NOT_PENDING = "not_pending"

    # Funds
    INSUFFICIENT_FUNDS = "insufficient_funds"
    BALANCE_OVERFLOW = "balance_overflow"

    # Account service
    DUPLICATE_LOGIN = "duplicate_login"
    INVALID_CREDENTIALS = "invalid_credentials"

    # Backend
    STORAGE_FAILURE = "storage_failure"


ERROR_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.ACCOUNT_NOT_FOUND: 404,
    ErrorCode.TRIGGER_ACCOUNT_NOT_FOUND: 404,
    ErrorCode.TRANSACTION_NOT_FOUND: 404,
    ErrorCode.UNKNOWN_TOKEN: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_PENDING: 400,
    ErrorCode.INSUFFICIENT_FUNDS: 402,
    ErrorCode.BALANCE_OVERFLOW: 402,
    ErrorCode.DUPLICATE_LOGIN: 409,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.STORAGE_FAILURE: 500,
}


class LedgerOutcome(BaseModel):
    """
    Structured result of an operation.

    kind/code/message are always present; error is set only on failure
    and payload only when there is something to return.
    """

    kind: OutcomeKind
    code: int = Field(
        ...,
        ge=100,
        le=599,
        description="HTTP-style status code"
    )
    message: str
    error: Optional[ErrorCode] = None
    payload: Optional[dict[str, Any]] = None

    @classmethod
    def success(
        cls,
        message: str,
        payload: Optional[dict[str, Any]] = None,
        code: int = 200,
    ) -> "LedgerOutcome":
        return cls(
            kind=OutcomeKind.SUCCESS,
            code=code,
            message=message,
            payload=payload,
        )

    @classmethod
    def failure(cls, error: ErrorCode, message: str) -> "LedgerOutcome":
        return cls(
            kind=OutcomeKind.ERROR,
            code=ERROR_STATUS_CODES[error],
            message=message,
            error=error,
        )

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    def to_dict(self) -> dict:
        """Plain JSON-ready dict for transports."""
        return self.model_dump(mode="json", exclude_none=True)
