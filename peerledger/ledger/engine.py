"""
Transfer Engine

Moves currency between two accounts and tracks each transfer through its
settlement lifecycle:

    trigger            -> Success            (funds move now)
    trigger(deferred)  -> Pending -> Success (funds move at receive)
                                  -> Error   (receiver declined, nothing moves)

GUARANTEES:
- Each operation is one critical section over the accounts it touches,
  ending in a single commit_settlement call
- Preconditions are checked before anything is written, so a refused
  operation leaves balances and histories untouched
- Public methods never raise for a refused operation; they return a
  LedgerOutcome
"""

from datetime import datetime
from typing import Optional, Union
from uuid import UUID

import structlog

from peerledger.audit import AuditLogger
from peerledger.config import LedgerSettings, get_settings
from peerledger.ledger.exceptions import (
    AccountNotFoundError,
    BalanceOverflowError,
    InsufficientFundsError,
    InvalidInputError,
    LedgerError,
    NotPendingError,
    TransactionNotFoundError,
    TriggerAccountNotFoundError,
    UnknownTokenError,
)
from peerledger.ledger.locks import AccountLockRegistry
from peerledger.models.ledger import (
    Account,
    TokenType,
    TransactionRecord,
    TransactionStatus,
)
from peerledger.models.outcome import ErrorCode, LedgerOutcome
from peerledger.services.storage import AccountStorageInterface, StorageError


logger = structlog.get_logger(__name__)

TransactionKey = Union[UUID, str]


def _record_payload(record: TransactionRecord) -> dict:
    return {
        "transaction_id": str(record.transaction_id),
        "transaction": record.model_dump(mode="json"),
    }


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _loggable(value):
    """Caller-supplied value as it may appear in messages and audit details."""
    # Huge ints cannot be rendered as decimal strings
    if isinstance(value, int) and value.bit_length() > 128:
        return f"<{value.bit_length()}-bit integer>"
    return value


class TransferEngine:
    """
    Balance-transfer ledger over an injected account store.

    The engine is the only writer of balances, histories and transaction
    records.
    """

    def __init__(
        self,
        storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        locks: Optional[AccountLockRegistry] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._locks = locks or AccountLockRegistry()

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def trigger(
        self,
        from_id: int,
        to_id: int,
        amount: int,
        token_name: str,
        deferred: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Transfer `amount` units of `token_name` from one account to another.

        With deferred=False the cost is moved immediately and the record is
        created as Success. With deferred=True the record is created as
        Pending and nothing moves until the receiver calls receive().

        Failure codes: 404 account, 400 unknown token / bad input,
        402 insufficient funds / overflow.
        """
        try:
            record = await self._trigger(from_id, to_id, amount, token_name, deferred)
        except LedgerError as e:
            return await self._refused("trigger", e, correlation_id, {
                "from_id": from_id,
                "to_id": to_id,
                "amount": _loggable(amount),
                "token_name": token_name,
            })
        except StorageError as e:
            return await self._storage_failed("trigger", e, correlation_id)

        if self._audit_logger:
            if deferred:
                await self._audit_logger.log_transfer_pending(record, correlation_id)
            else:
                await self._audit_logger.log_transfer_settled(record, correlation_id)

        message = (
            f"Transfer of {_loggable(amount)} {token_name} is waiting for account {to_id}"
            if deferred
            else f"Transferred {_loggable(amount)} {token_name} ({record.cost}) to account {to_id}"
        )
        return LedgerOutcome.success(message, payload=_record_payload(record))

    async def receive(
        self,
        account_id: int,
        transaction_id: TransactionKey,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Settle a pending transfer addressed to `account_id`.

        Failure codes: 404 account / transaction / trigger account,
        400 not pending, 402 insufficient funds.
        """
        try:
            record = await self._receive(account_id, transaction_id)
        except LedgerError as e:
            return await self._refused("receive", e, correlation_id, {
                "account_id": account_id,
                "transaction_id": str(transaction_id),
            })
        except StorageError as e:
            return await self._storage_failed("receive", e, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_transfer_received(record, correlation_id)

        return LedgerOutcome.success(
            f"Received {record.amount} {record.token_name} from account {record.trigger_id}",
            payload=_record_payload(record),
        )

    async def decline(
        self,
        account_id: int,
        transaction_id: TransactionKey,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Refuse a pending transfer addressed to `account_id`.

        The record ends in Error and no funds move.
        """
        try:
            record = await self._decline(account_id, transaction_id)
        except LedgerError as e:
            return await self._refused("decline", e, correlation_id, {
                "account_id": account_id,
                "transaction_id": str(transaction_id),
            })
        except StorageError as e:
            return await self._storage_failed("decline", e, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_transfer_declined(record, correlation_id)

        return LedgerOutcome.success(
            f"Declined transfer from account {record.trigger_id}",
            payload=_record_payload(record),
        )

    async def history(self, account_id: int) -> LedgerOutcome:
        """An account's transaction records, oldest first."""
        try:
            account = await self._storage.get_account(account_id)
            if account is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")
            records = await self._storage.list_transactions(account_id)
        except LedgerError as e:
            return LedgerOutcome.failure(e.code, str(e))
        except StorageError as e:
            return await self._storage_failed("history", e, None)

        return LedgerOutcome.success(
            f"{len(records)} transactions",
            payload={
                "account_id": account_id,
                "balance": account.balance,
                "transactions": [r.model_dump(mode="json") for r in records],
            },
        )

    async def set_balance(
        self,
        account_id: int,
        balance: int,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Administrative funding: overwrite an account's balance.

        Bounded by 0 and max_balance. Creates no transaction record.
        """
        try:
            old_balance = await self._set_balance(account_id, balance)
        except LedgerError as e:
            return await self._refused("set_balance", e, correlation_id, {
                "account_id": account_id,
                "balance": _loggable(balance),
            })
        except StorageError as e:
            return await self._storage_failed("set_balance", e, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_balance_adjusted(
                account_id=account_id,
                old_balance=old_balance,
                new_balance=balance,
                correlation_id=correlation_id,
            )

        return LedgerOutcome.success(
            f"Balance of account {account_id} set to {balance}",
            payload={"account_id": account_id, "balance": balance},
        )

    # -------------------------------------------------------------------------
    # Operation bodies (raise LedgerError)
    # -------------------------------------------------------------------------

    async def _trigger(
        self,
        from_id: int,
        to_id: int,
        amount: int,
        token_name: str,
        deferred: bool,
    ) -> TransactionRecord:
        # Accounts are never deleted, so resolving before locking is safe
        await self._require_account(from_id)
        await self._require_account(to_id)
        if from_id == to_id:
            raise InvalidInputError("Cannot transfer to the same account")

        token = self._require_token(token_name)
        if not _is_positive_int(amount):
            raise InvalidInputError(f"Amount must be a positive integer, got {_loggable(amount)!r}")

        async with self._locks.hold(from_id, to_id):
            sender = await self._require_account(from_id)
            receiver = await self._require_account(to_id)

            cost = self._cost(token, amount)
            self._check_funds(sender, receiver, cost)

            now = datetime.utcnow()
            record = TransactionRecord(
                trigger_id=from_id,
                receiver_id=to_id,
                trigger_acknowledged=True,
                receiver_acknowledged=not deferred,
                timestamp=now,
                amount=amount,
                token_name=token.name,
                cost=cost,
                status=TransactionStatus.PENDING if deferred else TransactionStatus.SUCCESS,
                settled_at=None if deferred else now,
            )

            if not deferred:
                sender.balance -= cost
                receiver.balance += cost
            sender.history.append(record.transaction_id)
            receiver.history.append(record.transaction_id)

            await self._storage.commit_settlement([sender, receiver], record)

        logger.debug(
            "transfer_committed",
            transaction_id=str(record.transaction_id),
            status=record.status.value,
        )
        return record

    async def _receive(self, account_id: int, transaction_id: TransactionKey) -> TransactionRecord:
        account = await self._require_account(account_id)
        record = await self._find_receivable(account, transaction_id)

        async with self._locks.hold(account_id, record.trigger_id):
            # Re-read: another receive/decline may have won the race
            account = await self._require_account(account_id)
            record = await self._find_receivable(account, transaction_id)
            self._require_pending(record)

            sender = await self._storage.get_account(record.trigger_id)
            if sender is None:
                raise TriggerAccountNotFoundError(
                    f"Trigger account not found: {record.trigger_id}"
                )

            token = self._require_token(record.token_name)
            cost = self._cost(token, record.amount)
            self._check_funds(sender, account, cost)

            sender.balance -= cost
            account.balance += cost
            record.transition_to(TransactionStatus.SUCCESS)
            record.receiver_acknowledged = True
            record.cost = cost
            record.settled_at = datetime.utcnow()

            await self._storage.commit_settlement([sender, account], record)

        return record

    async def _decline(self, account_id: int, transaction_id: TransactionKey) -> TransactionRecord:
        account = await self._require_account(account_id)
        record = await self._find_receivable(account, transaction_id)

        async with self._locks.hold(account_id, record.trigger_id):
            account = await self._require_account(account_id)
            record = await self._find_receivable(account, transaction_id)
            self._require_pending(record)

            record.transition_to(TransactionStatus.ERROR)
            record.receiver_acknowledged = True

            await self._storage.commit_settlement([], record)

        return record

    async def _set_balance(self, account_id: int, balance: int) -> int:
        await self._require_account(account_id)
        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            raise InvalidInputError(f"Balance must be a non-negative integer, got {_loggable(balance)!r}")
        if balance > self._settings.max_balance:
            raise BalanceOverflowError(
                f"Balance {_loggable(balance)} exceeds maximum {self._settings.max_balance}"
            )

        async with self._locks.hold(account_id):
            account = await self._require_account(account_id)
            old_balance = account.balance
            account.balance = balance
            await self._storage.commit_settlement([account])

        return old_balance

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def _require_account(self, account_id: int) -> Account:
        account = await self._storage.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account not found: {account_id}")
        return account

    def _require_token(self, token_name: str) -> TokenType:
        token = self._storage.find_token(token_name)
        if token is None:
            raise UnknownTokenError(f"Unknown token: {token_name}")
        return token

    @staticmethod
    def _require_pending(record: TransactionRecord) -> None:
        if not record.is_pending:
            raise NotPendingError(
                f"Transaction {record.transaction_id} is {record.status.value}, not pending"
            )

    async def _find_receivable(
        self,
        account: Account,
        transaction_id: TransactionKey,
    ) -> TransactionRecord:
        """The record must be in the account's history with the account as receiver."""
        try:
            key = transaction_id if isinstance(transaction_id, UUID) else UUID(str(transaction_id))
        except ValueError:
            raise TransactionNotFoundError(f"Transaction not found: {transaction_id}")

        record = None
        if key in account.history:
            record = await self._storage.get_transaction(key)
        if record is None or record.receiver_id != account.id:
            raise TransactionNotFoundError(
                f"Transaction {key} not found for account {account.id}"
            )
        return record

    def _cost(self, token: TokenType, amount: int) -> int:
        cost = token.cost_for(amount, self._settings.cost_rounding)
        # No balance can exceed max_balance, so no sender can cover this
        if cost > self._settings.max_balance:
            raise InsufficientFundsError(
                f"Cost of {_loggable(amount)} {token.name} exceeds the "
                f"maximum balance {self._settings.max_balance}"
            )
        return cost

    def _check_funds(self, sender: Account, receiver: Account, cost: int) -> None:
        if sender.balance < cost:
            raise InsufficientFundsError(
                f"Account {sender.id} has {sender.balance}, needs {cost}"
            )
        if receiver.balance + cost > self._settings.max_balance:
            raise BalanceOverflowError(
                f"Crediting {cost} would push account {receiver.id} past {self._settings.max_balance}"
            )

    # -------------------------------------------------------------------------
    # Outcome helpers
    # -------------------------------------------------------------------------

    async def _refused(
        self,
        operation: str,
        error: LedgerError,
        correlation_id: Optional[UUID],
        details: dict,
    ) -> LedgerOutcome:
        if self._audit_logger:
            await self._audit_logger.log_operation_rejected(
                operation=operation,
                error_code=error.code.value,
                message=str(error),
                details=details,
                correlation_id=correlation_id,
            )
        return LedgerOutcome.failure(error.code, str(error))

    async def _storage_failed(
        self,
        operation: str,
        error: StorageError,
        correlation_id: Optional[UUID],
    ) -> LedgerOutcome:
        logger.error("ledger_storage_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type="storage",
                error_message=str(error),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
        return LedgerOutcome.failure(ErrorCode.STORAGE_FAILURE, f"{operation} failed: {error}")
