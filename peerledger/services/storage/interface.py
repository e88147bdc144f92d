"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Unit test the transfer engine against an in-memory store
2. Swap in a persistent store without touching ledger logic
3. Keep the collaborator contract (profile code never writes balances)
   enforced at the storage boundary

The interface is intentionally small: account custody, the token catalog,
the canonical transaction table and one atomic commit.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from peerledger.models.audit import AuditEvent
from peerledger.models.ledger import (
    Account,
    Credentials,
    PublicProfile,
    TokenType,
    TransactionRecord,
)


class AccountStorageInterface(ABC):
    """
    Abstract interface for account and transaction storage.

    Reads return detached copies. The only way to change a balance or a
    history is commit_settlement, which writes everything it is given
    as one unit.
    """

    @abstractmethod
    async def create_account(
        self,
        credentials: Credentials,
        profile: Optional[PublicProfile] = None,
    ) -> Account:
        """
        Create an account with the next sequential id.

        Balance starts at 0 with empty holdings and history.

        Raises:
            DuplicateError: If the login is already taken
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[Account]:
        """
        Retrieve an account by id.

        Returns:
            A copy of the account if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_account_by_login(self, login: str) -> Optional[Account]:
        """
        Retrieve an account by login.

        Returns:
            A copy of the account if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all accounts ordered by id."""
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """
        Persist the non-ledger fields of an account.

        Credentials, verification flag and profile are written; balance,
        token holdings and history of the stored record are kept as they are.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    def token_catalog(self) -> list[TokenType]:
        """All transferable token types."""
        pass

    @abstractmethod
    def find_token(self, name: str) -> Optional[TokenType]:
        """Look up a token type by exact name."""
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[TransactionRecord]:
        """
        Retrieve a transaction from the canonical table.

        Returns:
            A copy of the record if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_transactions(self, account_id: int) -> list[TransactionRecord]:
        """
        Get the records referenced by an account's history.

        Returns:
            Records in history order (oldest first); empty for unknown accounts
        """
        pass

    @abstractmethod
    async def commit_settlement(
        self,
        accounts: list[Account],
        transaction: Optional[TransactionRecord] = None,
    ) -> None:
        """
        Atomically write ledger state.

        For each account, balance, token holdings and history replace the
        stored values. The transaction, if given, is inserted or replaced
        in the canonical table. Either everything is written or nothing is.

        Raises:
            NotFoundError: If any account doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: 'account' or 'transaction'
            entity_id: The account id or transaction id, as a string
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
