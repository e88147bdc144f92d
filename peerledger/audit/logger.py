"""
Audit Logger

DESIGN DECISION: Every ledger outcome is logged, refusals included.
This provides:
1. Complete traceability of balance movements
2. Debugging capability when a transfer is refused
3. A history that does not depend on account records

The audit logger:
- Is async like the storage it writes to
- Gracefully handles failures (a broken audit store never fails a transfer)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from peerledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from peerledger.models.ledger import TransactionRecord
from peerledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


_logging_configured = False


def configure_logging(level: str = "INFO") -> bool:
    """
    Route structlog output through the stdlib root logger at `level`.

    Runs once per process. Returns False when logging was already configured.
    """
    global _logging_configured
    if _logging_configured:
        return False
    logging.basicConfig(level=level.upper(), format="%(message)s")
    _logging_configured = True
    return True


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_registered(
        self,
        account_id: int,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_registered(
            account_id=account_id,
            login=login,
            correlation_id=correlation_id,
        ))

    async def log_login_succeeded(
        self,
        account_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.login_succeeded(
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_login_failed(
        self,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.login_failed(
            login=login,
            correlation_id=correlation_id,
        ))

    async def log_profile_updated(
        self,
        account_id: int,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.profile_updated(
            account_id=account_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_verification_changed(
        self,
        account_id: int,
        verified: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.verification_changed(
            account_id=account_id,
            verified=verified,
            correlation_id=correlation_id,
        ))

    async def log_balance_adjusted(
        self,
        account_id: int,
        old_balance: int,
        new_balance: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_adjusted(
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_transfer_settled(
        self,
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an immediately settled transfer."""
        await self.log(AuditEventBuilder.transfer_settled(record, correlation_id))

    async def log_transfer_pending(
        self,
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a deferred transfer waiting for its receiver."""
        await self.log(AuditEventBuilder.transfer_pending(record, correlation_id))

    async def log_transfer_received(
        self,
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_received(record, correlation_id))

    async def log_transfer_declined(
        self,
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_declined(record, correlation_id))

    async def log_operation_rejected(
        self,
        operation: str,
        error_code: str,
        message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an operation that failed a precondition."""
        await self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            error_code=error_code,
            message=message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. a transfer from the
    console) and pass it through all subsequent operations.
    """
    return uuid4()
