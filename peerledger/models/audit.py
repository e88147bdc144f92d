"""
Audit Models for Peer Ledger

Every ledger outcome and every account change is logged for audit purposes.
This provides:
1. Complete traceability of balance movements
2. Debugging information when a transfer is refused
3. Ability to reconstruct history independently of account records

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from peerledger.models.ledger import TransactionRecord


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Accounts
    ACCOUNT_REGISTERED = "account_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    PROFILE_UPDATED = "profile_updated"
    VERIFICATION_CHANGED = "verification_changed"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Transfers
    TRANSFER_SETTLED = "transfer_settled"
    TRANSFER_PENDING = "transfer_pending"
    TRANSFER_RECEIVED = "transfer_received"
    TRANSFER_DECLINED = "transfer_declined"

    # Refusals
    OPERATION_REJECTED = "operation_rejected"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('account' or 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Account id or transaction id"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


def _transaction_details(record: TransactionRecord) -> dict[str, Any]:
    return {
        "trigger_id": record.trigger_id,
        "receiver_id": record.receiver_id,
        "amount": record.amount,
        "token_name": record.token_name,
        "cost": record.cost,
        "status": record.status.value,
    }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_registered(account_id, login)
        event = AuditEventBuilder.transfer_settled(record, correlation_id)
    """

    @staticmethod
    def account_registered(
        account_id: int,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_REGISTERED,
            entity_type="account",
            entity_id=str(account_id),
            correlation_id=correlation_id,
            description=f"Account registered: {login}",
            details={"login": login},
        )

    @staticmethod
    def login_succeeded(
        account_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="account",
            entity_id=str(account_id),
            correlation_id=correlation_id,
            description=f"Account {account_id} authenticated",
        )

    @staticmethod
    def login_failed(
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            correlation_id=correlation_id,
            description="Authentication failed",
            details={"login": login},
        )

    @staticmethod
    def profile_updated(
        account_id: int,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="account",
            entity_id=str(account_id),
            correlation_id=correlation_id,
            description=f"Profile updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def verification_changed(
        account_id: int,
        verified: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VERIFICATION_CHANGED,
            entity_type="account",
            entity_id=str(account_id),
            correlation_id=correlation_id,
            description=f"Account {account_id} {'verified' if verified else 'unverified'}",
            details={"verified": verified},
        )

    @staticmethod
    def balance_adjusted(
        account_id: int,
        old_balance: int,
        new_balance: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=str(account_id),
            correlation_id=correlation_id,
            description=f"Balance of account {account_id} set to {new_balance}",
            details={
                "old_balance": old_balance,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def transfer_settled(
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_SETTLED,
            entity_type="transaction",
            entity_id=str(record.transaction_id),
            correlation_id=correlation_id,
            description=(
                f"Transfer settled: {record.amount} {record.token_name} "
                f"from {record.trigger_id} to {record.receiver_id}"
            ),
            details=_transaction_details(record),
        )

    @staticmethod
    def transfer_pending(
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_PENDING,
            entity_type="transaction",
            entity_id=str(record.transaction_id),
            correlation_id=correlation_id,
            description=(
                f"Transfer awaiting receiver: {record.amount} {record.token_name} "
                f"from {record.trigger_id} to {record.receiver_id}"
            ),
            details=_transaction_details(record),
        )

    @staticmethod
    def transfer_received(
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_RECEIVED,
            entity_type="transaction",
            entity_id=str(record.transaction_id),
            correlation_id=correlation_id,
            description=f"Pending transfer received by account {record.receiver_id}",
            details=_transaction_details(record),
        )

    @staticmethod
    def transfer_declined(
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_DECLINED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=str(record.transaction_id),
            correlation_id=correlation_id,
            description=f"Pending transfer declined by account {record.receiver_id}",
            details=_transaction_details(record),
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        error_code: str,
        message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"{operation} rejected: {error_code}",
            details={"operation": operation, **(details or {})},
            error_code=error_code,
            error_message=message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
