"""
Ledger Exceptions

Raised inside the transfer engine and account service and converted into
LedgerOutcome values at their public boundary. Each class carries the
ErrorCode its outcome reports.
"""

from peerledger.models.outcome import ErrorCode


class LedgerError(Exception):
    """Base exception for refused ledger and account operations."""

    code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, **details):
        self.details = details
        super().__init__(message)


class AccountNotFoundError(LedgerError):
    """An account id or login did not resolve."""
    code = ErrorCode.ACCOUNT_NOT_FOUND


class TriggerAccountNotFoundError(LedgerError):
    """The account that triggered a pending transfer no longer resolves."""
    code = ErrorCode.TRIGGER_ACCOUNT_NOT_FOUND


class TransactionNotFoundError(LedgerError):
    """No matching transaction in the account's history."""
    code = ErrorCode.TRANSACTION_NOT_FOUND


class UnknownTokenError(LedgerError):
    """Token name is not in the catalog."""
    code = ErrorCode.UNKNOWN_TOKEN


class InvalidInputError(LedgerError):
    """Bad amount, self-transfer, blank field and similar."""
    code = ErrorCode.INVALID_INPUT


class NotPendingError(LedgerError):
    """Receive or decline on a record that is already settled or failed."""
    code = ErrorCode.NOT_PENDING


class InsufficientFundsError(LedgerError):
    """Paying account balance is below the transfer cost."""
    code = ErrorCode.INSUFFICIENT_FUNDS


class BalanceOverflowError(LedgerError):
    """Crediting would push a balance past the configured maximum."""
    code = ErrorCode.BALANCE_OVERFLOW


class DuplicateLoginError(LedgerError):
    """Registration with a login that already exists."""
    code = ErrorCode.DUPLICATE_LOGIN


class InvalidCredentialsError(LedgerError):
    """Unknown login or wrong password."""
    code = ErrorCode.INVALID_CREDENTIALS
