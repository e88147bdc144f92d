"""Transfer engine package."""

from peerledger.ledger.engine import TransferEngine
from peerledger.ledger.exceptions import (
    AccountNotFoundError,
    BalanceOverflowError,
    DuplicateLoginError,
    InsufficientFundsError,
    InvalidCredentialsError,
    InvalidInputError,
    LedgerError,
    NotPendingError,
    TransactionNotFoundError,
    TriggerAccountNotFoundError,
    UnknownTokenError,
)
from peerledger.ledger.locks import AccountLockRegistry

__all__ = [
    "AccountLockRegistry",
    "TransferEngine",
    # Exceptions
    "AccountNotFoundError",
    "BalanceOverflowError",
    "DuplicateLoginError",
    "InsufficientFundsError",
    "InvalidCredentialsError",
    "InvalidInputError",
    "LedgerError",
    "NotPendingError",
    "TransactionNotFoundError",
    "TriggerAccountNotFoundError",
    "UnknownTokenError",
]
