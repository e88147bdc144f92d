"""
In-Memory Storage Implementation

DESIGN DECISION: The in-memory store is the default backend and the one
every test runs against.

TRADEOFFS:
- Nothing survives a restart
- Fine for a single process; a persistent store must implement
  commit_settlement as one database transaction

All mutations run under one threading lock with no awaits inside, so a
commit is atomic both for coroutines on one loop and for threads (the
Streamlit console runs sessions on separate threads).
"""

import itertools
import threading
from typing import Optional
from uuid import UUID

from peerledger.models.audit import AuditEvent
from peerledger.models.ledger import (
    DEFAULT_TOKEN_CATALOG,
    Account,
    Credentials,
    PublicProfile,
    TokenCatalog,
    TokenType,
    TransactionRecord,
)
from peerledger.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
)


class InMemoryAccountStorage(AccountStorageInterface):
    """
    Dict-backed account store.

    Accounts are indexed by id and by login; transactions live in a single
    table keyed by transaction_id.
    """

    def __init__(self, catalog: Optional[TokenCatalog] = None):
        self._catalog = catalog or DEFAULT_TOKEN_CATALOG
        self._accounts: dict[int, Account] = {}
        self._ids_by_login: dict[str, int] = {}
        self._transactions: dict[UUID, TransactionRecord] = {}
        self._next_id = itertools.count(1)
        self._mutex = threading.Lock()

    async def create_account(
        self,
        credentials: Credentials,
        profile: Optional[PublicProfile] = None,
    ) -> Account:
        with self._mutex:
            if credentials.login in self._ids_by_login:
                raise DuplicateError(f"Login already exists: {credentials.login}")

            account = Account(
                id=next(self._next_id),
                credentials=credentials.model_copy(),
                profile=profile.model_copy() if profile else PublicProfile(),
            )
            self._accounts[account.id] = account
            self._ids_by_login[credentials.login] = account.id
            return account.model_copy(deep=True)

    async def get_account(self, account_id: int) -> Optional[Account]:
        with self._mutex:
            account = self._accounts.get(account_id)
            return account.model_copy(deep=True) if account else None

    async def get_account_by_login(self, login: str) -> Optional[Account]:
        with self._mutex:
            account_id = self._ids_by_login.get(login)
            if account_id is None:
                return None
            return self._accounts[account_id].model_copy(deep=True)

    async def list_accounts(self) -> list[Account]:
        with self._mutex:
            return [
                self._accounts[account_id].model_copy(deep=True)
                for account_id in sorted(self._accounts)
            ]

    async def update_account(self, account: Account) -> Account:
        with self._mutex:
            stored = self._accounts.get(account.id)
            if stored is None:
                raise NotFoundError(f"Account not found: {account.id}")

            new_login = account.credentials.login
            owner = self._ids_by_login.get(new_login)
            if owner is not None and owner != account.id:
                raise DuplicateError(f"Login already exists: {new_login}")

            updated = stored.model_copy(
                update={
                    "credentials": account.credentials.model_copy(),
                    "is_verified": account.is_verified,
                    "profile": account.profile.model_copy(),
                },
                deep=True,
            )
            if new_login != stored.login:
                del self._ids_by_login[stored.login]
                self._ids_by_login[new_login] = account.id
            self._accounts[account.id] = updated
            return updated.model_copy(deep=True)

    def token_catalog(self) -> list[TokenType]:
        return self._catalog.all()

    def find_token(self, name: str) -> Optional[TokenType]:
        return self._catalog.get(name)

    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionRecord]:
        with self._mutex:
            record = self._transactions.get(transaction_id)
            return record.model_copy() if record else None

    async def list_transactions(self, account_id: int) -> list[TransactionRecord]:
        with self._mutex:
            account = self._accounts.get(account_id)
            if account is None:
                return []
            return [
                self._transactions[transaction_id].model_copy()
                for transaction_id in account.history
            ]

    async def commit_settlement(
        self,
        accounts: list[Account],
        transaction: Optional[TransactionRecord] = None,
    ) -> None:
        with self._mutex:
            # Validate everything before the first write
            for account in accounts:
                if account.id not in self._accounts:
                    raise NotFoundError(f"Account not found: {account.id}")

            staged = {
                account.id: self._accounts[account.id].model_copy(
                    update={
                        "balance": account.balance,
                        "token_holdings": dict(account.token_holdings),
                        "history": list(account.history),
                    },
                    deep=True,
                )
                for account in accounts
            }

            self._accounts.update(staged)
            if transaction is not None:
                self._transactions[transaction.transaction_id] = transaction.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._mutex = threading.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        with self._mutex:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._mutex:
            return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        with self._mutex:
            return [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._mutex:
            return list(reversed(self._events[-limit:])) if limit > 0 else []
