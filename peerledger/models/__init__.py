"""
Data Models Package

This package contains all Pydantic models used in the Peer Ledger system.
All data flowing through the system must conform to these schemas.
"""

from peerledger.models.ledger import (
    ALLOWED_TRANSITIONS,
    DEFAULT_TOKEN_CATALOG,
    Account,
    Credentials,
    PublicProfile,
    Theme,
    TokenCatalog,
    TokenType,
    TransactionRecord,
    TransactionStatus,
)
from peerledger.models.outcome import (
    ERROR_STATUS_CODES,
    ErrorCode,
    LedgerOutcome,
    OutcomeKind,
)
from peerledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ALLOWED_TRANSITIONS",
    "DEFAULT_TOKEN_CATALOG",
    "Account",
    "Credentials",
    "PublicProfile",
    "Theme",
    "TokenCatalog",
    "TokenType",
    "TransactionRecord",
    "TransactionStatus",
    # Outcomes
    "ERROR_STATUS_CODES",
    "ErrorCode",
    "LedgerOutcome",
    "OutcomeKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
