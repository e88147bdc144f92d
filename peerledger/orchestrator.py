"""
Main Orchestrator for Peer Ledger

Ties the components together and exposes the flows a caller (the console,
or any future transport) needs:
1. Account flow (register -> authenticate -> profile)
2. Transfer flow (resolve counterparty -> trigger -> receive / decline)

DESIGN DECISION: The orchestrator owns no ledger logic. It resolves
logins to account ids and forwards to the engine, so every balance change
still goes through TransferEngine.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from peerledger.accounts import AccountService
from peerledger.audit import AuditLogger
from peerledger.config import get_settings
from peerledger.ledger import TransferEngine
from peerledger.models.ledger import TokenCatalog, TransactionRecord
from peerledger.models.outcome import ErrorCode, LedgerOutcome
from peerledger.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
)


@dataclass
class LedgerApp:
    """Wired application components."""

    storage: AccountStorageInterface
    engine: TransferEngine
    accounts: AccountService
    audit_logger: AuditLogger
    audit_storage: Optional[AuditStorageInterface] = None

    async def transfer_by_login(
        self,
        from_id: int,
        to_login: str,
        amount: int,
        token_name: str,
        deferred: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """Trigger a transfer to the account registered under to_login."""
        receiver = await self.storage.get_account_by_login((to_login or "").strip())
        if receiver is None:
            return LedgerOutcome.failure(
                ErrorCode.ACCOUNT_NOT_FOUND,
                f"Account not found: {to_login}",
            )
        return await self.engine.trigger(
            from_id,
            receiver.id,
            amount,
            token_name,
            deferred=deferred,
            correlation_id=correlation_id,
        )

    async def pending_for(self, account_id: int) -> list[TransactionRecord]:
        """Pending transfers the account can receive or decline."""
        return [
            record
            for record in await self.storage.list_transactions(account_id)
            if record.is_pending and record.receiver_id == account_id
        ]


def create_app_components(
    use_audit_storage: bool = True,
    catalog: Optional[TokenCatalog] = None,
) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        use_audit_storage: Whether to keep audit events in an audit store.
                    Set to False to log them locally only.
        catalog: Token catalog; defaults to DEFAULT_TOKEN_CATALOG.
    """
    settings = get_settings()
    app_settings = settings.app

    storage = InMemoryAccountStorage(catalog)
    audit_storage = InMemoryAuditStorage() if use_audit_storage else None
    audit_logger = AuditLogger(audit_storage)

    engine = TransferEngine(
        storage,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )
    accounts = AccountService(
        storage,
        audit_logger=audit_logger,
        settings=app_settings,
    )

    return LedgerApp(
        storage=storage,
        engine=engine,
        accounts=accounts,
        audit_logger=audit_logger,
        audit_storage=audit_storage,
    )
