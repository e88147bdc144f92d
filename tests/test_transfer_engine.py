"""
Tests for the transfer engine.

Covers immediate and deferred transfers, the receive/decline lifecycle,
failure codes, and the balance invariants under concurrency.
"""

import asyncio
import random
from uuid import UUID, uuid4

import pytest

from peerledger.audit import AuditLogger
from peerledger.config import LedgerSettings
from peerledger.ledger import AccountLockRegistry, TransferEngine
from peerledger.models.audit import AuditEventType
from peerledger.models.ledger import Credentials, TransactionRecord, TransactionStatus
from peerledger.models.outcome import ErrorCode, OutcomeKind
from peerledger.services.storage import InMemoryAccountStorage, StorageError

from conftest import YieldingAccountStorage


async def _snapshot(storage, *account_ids):
    accounts = [await storage.get_account(i) for i in account_ids]
    return [a.model_dump() for a in accounts]


class TestTriggerScenarios:
    """The reference scenarios for trigger and receive."""

    @pytest.mark.asyncio
    async def test_gold_transfer_settles_immediately(self, engine, storage, make_account):
        """A (100) sends 5 Gold at price 10 to B (0)."""
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 5, "Gold")

        assert outcome.kind == OutcomeKind.SUCCESS
        assert outcome.code == 200
        a = await storage.get_account(a.id)
        b = await storage.get_account(b.id)
        assert a.balance == 50
        assert b.balance == 50

        history_a = await storage.list_transactions(a.id)
        history_b = await storage.list_transactions(b.id)
        assert len(history_a) == 1
        assert len(history_b) == 1
        assert history_a[0].status == TransactionStatus.SUCCESS
        assert str(history_a[0].transaction_id) == outcome.payload["transaction_id"]

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, engine, storage, make_account):
        """1000 Gold costs 10000, A only has 50."""
        a = await make_account("alice", 50)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 1000, "Gold")

        assert outcome.kind == OutcomeKind.ERROR
        assert outcome.code == 402
        assert outcome.error == ErrorCode.INSUFFICIENT_FUNDS
        assert (await storage.get_account(a.id)).balance == 50
        assert (await storage.get_account(b.id)).balance == 0

    @pytest.mark.asyncio
    async def test_unknown_token(self, engine, make_account):
        """Silver is not in the catalog."""
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 1, "Silver")

        assert outcome.code == 400
        assert outcome.error == ErrorCode.UNKNOWN_TOKEN

    @pytest.mark.asyncio
    async def test_receive_on_settled_record_is_not_pending(self, engine, make_account):
        """A direct transfer is already Success, so receive refuses it."""
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold")

        outcome = await engine.receive(b.id, triggered.payload["transaction_id"])

        assert outcome.code == 400
        assert outcome.error == ErrorCode.NOT_PENDING


class TestTriggerPreconditions:
    """Failure codes and the order they are checked in."""

    @pytest.mark.asyncio
    async def test_unknown_receiver(self, engine, make_account):
        a = await make_account("alice", 100)

        outcome = await engine.trigger(a.id, 999, 1, "Gold")

        assert outcome.code == 404
        assert outcome.error == ErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_sender(self, engine, make_account):
        b = await make_account("bob")

        outcome = await engine.trigger(999, b.id, 1, "Gold")

        assert outcome.error == ErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_accounts_checked_before_token(self, engine, make_account):
        a = await make_account("alice", 100)

        outcome = await engine.trigger(a.id, 999, 1, "Silver")

        assert outcome.error == ErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_token_checked_before_funds(self, engine, make_account):
        a = await make_account("alice")
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 1000, "Silver")

        assert outcome.error == ErrorCode.UNKNOWN_TOKEN

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    async def test_bad_amount(self, engine, make_account, amount):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, amount, "Gold")

        assert outcome.code == 400
        assert outcome.error == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [10**4400, 10**1_000_000], ids=["10**4400", "10**1_000_000"])
    async def test_huge_amount_is_refused(self, engine, storage, audit_storage, make_account, amount):
        """Test amounts whose cost no balance could cover return 402."""
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, amount, "Gold")

        assert outcome.code == 402
        assert outcome.error == ErrorCode.INSUFFICIENT_FUNDS
        assert (await storage.get_account(a.id)).balance == 100
        assert (await storage.get_account(b.id)).balance == 0
        assert await storage.list_transactions(a.id) == []
        rejected = (await audit_storage.get_recent_events())[0]
        assert rejected.event_type == AuditEventType.OPERATION_REJECTED
        assert "bit integer" in rejected.details["amount"]

    @pytest.mark.asyncio
    async def test_huge_negative_amount_is_invalid(self, engine, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, -(10**5000), "Gold")

        assert outcome.code == 400
        assert outcome.error == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_large_amount_priced_exactly(self, storage, audit_logger):
        """Test an 18-digit cost is carried through exactly."""
        engine = TransferEngine(storage, audit_logger=audit_logger, settings=LedgerSettings())
        a = await storage.create_account(Credentials(login="alice", password_hash="00", salt="00"))
        b = await storage.create_account(Credentials(login="bob", password_hash="00", salt="00"))
        amount = 10**17 + 1
        await engine.set_balance(a.id, amount * 25)

        outcome = await engine.trigger(a.id, b.id, amount, "Platinum")

        assert outcome.is_success
        assert outcome.payload["transaction"]["cost"] == amount * 25
        assert (await storage.get_account(b.id)).balance == amount * 25

    @pytest.mark.asyncio
    async def test_self_transfer_rejected(self, engine, make_account):
        a = await make_account("alice", 100)

        outcome = await engine.trigger(a.id, a.id, 1, "Gold")

        assert outcome.error == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_balance_overflow(self, storage, audit_logger):
        engine = TransferEngine(
            storage,
            audit_logger=audit_logger,
            settings=LedgerSettings(max_balance=100),
        )
        a = await storage.create_account(Credentials(login="alice", password_hash="00", salt="00"))
        b = await storage.create_account(Credentials(login="bob", password_hash="00", salt="00"))
        await engine.set_balance(a.id, 100)
        await engine.set_balance(b.id, 60)

        outcome = await engine.trigger(a.id, b.id, 5, "Gold")

        assert outcome.code == 402
        assert outcome.error == ErrorCode.BALANCE_OVERFLOW
        assert (await storage.get_account(a.id)).balance == 100
        assert (await storage.get_account(b.id)).balance == 60

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(self, engine, storage, make_account):
        a = await make_account("alice", 50)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 5, "Gold")

        assert outcome.is_success
        assert (await storage.get_account(a.id)).balance == 0


class TestLedgerProperties:
    """Conservation, history symmetry and failure idempotence."""

    @pytest.mark.asyncio
    async def test_conservation_over_random_transfers(self, engine, storage, make_account):
        accounts = [await make_account(f"user{i}", 500) for i in range(4)]
        ids = [a.id for a in accounts]
        rng = random.Random(7)

        for _ in range(200):
            from_id, to_id = rng.sample(ids, 2)
            token = rng.choice(["Gold", "Platinum", "Credit"])
            before = await _snapshot(storage, from_id, to_id)
            outcome = await engine.trigger(from_id, to_id, rng.randint(1, 20), token)
            after = await _snapshot(storage, from_id, to_id)

            assert before[0]["balance"] + before[1]["balance"] == after[0]["balance"] + after[1]["balance"]
            if not outcome.is_success:
                assert before == after

        balances = [a.balance for a in await storage.list_accounts()]
        assert sum(balances) == 2000
        assert all(balance >= 0 for balance in balances)

    @pytest.mark.asyncio
    async def test_history_symmetry(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        await engine.trigger(a.id, b.id, 2, "Gold")

        record_a = (await storage.list_transactions(a.id))[0]
        record_b = (await storage.list_transactions(b.id))[0]
        assert record_a == record_b
        assert record_a.trigger_acknowledged is True
        assert record_a.receiver_acknowledged is True
        assert (record_a.amount, record_a.timestamp, record_a.status) == (
            record_b.amount, record_b.timestamp, record_b.status
        )

    @pytest.mark.asyncio
    async def test_failed_trigger_leaves_histories_unchanged(self, engine, storage, make_account):
        a = await make_account("alice", 10)
        b = await make_account("bob")
        before = await _snapshot(storage, a.id, b.id)

        await engine.trigger(a.id, b.id, 2, "Gold")
        await engine.trigger(a.id, b.id, 1, "Silver")
        await engine.trigger(a.id, 77, 1, "Gold")

        assert await _snapshot(storage, a.id, b.id) == before

    @pytest.mark.asyncio
    async def test_history_is_chronological(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        first = await engine.trigger(a.id, b.id, 1, "Gold")
        second = await engine.trigger(a.id, b.id, 2, "Gold")

        history = await storage.list_transactions(b.id)
        assert [str(r.transaction_id) for r in history] == [
            first.payload["transaction_id"],
            second.payload["transaction_id"],
        ]


class TestDeferredTransfers:
    """Pending records, receive and decline."""

    @pytest.mark.asyncio
    async def test_deferred_trigger_moves_no_funds(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)

        assert outcome.is_success
        assert (await storage.get_account(a.id)).balance == 100
        assert (await storage.get_account(b.id)).balance == 0
        record = (await storage.list_transactions(b.id))[0]
        assert record.status == TransactionStatus.PENDING
        assert record.trigger_acknowledged is True
        assert record.receiver_acknowledged is False
        assert record.settled_at is None

    @pytest.mark.asyncio
    async def test_receive_settles_and_is_visible_from_both_sides(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        transaction_id = UUID(triggered.payload["transaction_id"])

        outcome = await engine.receive(b.id, transaction_id)

        assert outcome.is_success
        assert (await storage.get_account(a.id)).balance == 50
        assert (await storage.get_account(b.id)).balance == 50
        for account_id in (a.id, b.id):
            record = (await storage.list_transactions(account_id))[0]
            assert record.status == TransactionStatus.SUCCESS
            assert record.receiver_acknowledged is True
            assert record.settled_at is not None

    @pytest.mark.asyncio
    async def test_receive_accepts_string_key(self, engine, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 1, "Gold", deferred=True)

        outcome = await engine.receive(b.id, triggered.payload["transaction_id"])

        assert outcome.is_success

    @pytest.mark.asyncio
    async def test_second_receive_is_not_pending(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        key = triggered.payload["transaction_id"]

        await engine.receive(b.id, key)
        outcome = await engine.receive(b.id, key)

        assert outcome.error == ErrorCode.NOT_PENDING
        assert (await storage.get_account(b.id)).balance == 50

    @pytest.mark.asyncio
    async def test_pending_transfers_are_distinguishable(self, engine, storage, make_account):
        """Two pending transfers from the same sender settle independently."""
        a = await make_account("alice", 100)
        b = await make_account("bob")
        first = await engine.trigger(a.id, b.id, 1, "Gold", deferred=True)
        second = await engine.trigger(a.id, b.id, 3, "Gold", deferred=True)

        await engine.receive(b.id, second.payload["transaction_id"])

        statuses = {
            str(r.transaction_id): r.status
            for r in await storage.list_transactions(b.id)
        }
        assert statuses[first.payload["transaction_id"]] == TransactionStatus.PENDING
        assert statuses[second.payload["transaction_id"]] == TransactionStatus.SUCCESS
        assert (await storage.get_account(b.id)).balance == 30

    @pytest.mark.asyncio
    async def test_receive_insufficient_funds_leaves_record_pending(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        await engine.set_balance(a.id, 10)

        outcome = await engine.receive(b.id, triggered.payload["transaction_id"])

        assert outcome.code == 402
        assert outcome.error == ErrorCode.INSUFFICIENT_FUNDS
        assert (await storage.get_account(a.id)).balance == 10
        assert (await storage.get_account(b.id)).balance == 0
        record = (await storage.list_transactions(b.id))[0]
        assert record.status == TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_receive_unknown_account(self, engine):
        outcome = await engine.receive(42, uuid4())

        assert outcome.code == 404
        assert outcome.error == ErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", [uuid4(), "not-a-uuid"])
    async def test_receive_unknown_transaction(self, engine, make_account, key):
        b = await make_account("bob")

        outcome = await engine.receive(b.id, key)

        assert outcome.code == 404
        assert outcome.error == ErrorCode.TRANSACTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_sender_cannot_receive_own_transfer(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)

        outcome = await engine.receive(a.id, triggered.payload["transaction_id"])

        assert outcome.error == ErrorCode.TRANSACTION_NOT_FOUND
        assert (await storage.get_account(a.id)).balance == 100

    @pytest.mark.asyncio
    async def test_other_account_cannot_receive(self, engine, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        c = await make_account("carol")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)

        outcome = await engine.receive(c.id, triggered.payload["transaction_id"])

        assert outcome.error == ErrorCode.TRANSACTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_receive_with_missing_trigger_account(self, engine, storage, make_account):
        b = await make_account("bob")
        orphan = TransactionRecord(
            trigger_id=42,
            receiver_id=b.id,
            trigger_acknowledged=True,
            amount=1,
            token_name="Gold",
            cost=10,
        )
        b.history.append(orphan.transaction_id)
        await storage.commit_settlement([b], orphan)

        outcome = await engine.receive(b.id, orphan.transaction_id)

        assert outcome.code == 404
        assert outcome.error == ErrorCode.TRIGGER_ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_decline_marks_error_without_moving_funds(self, engine, storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        key = triggered.payload["transaction_id"]

        outcome = await engine.decline(b.id, key)

        assert outcome.is_success
        assert (await storage.get_account(a.id)).balance == 100
        assert (await storage.get_account(b.id)).balance == 0
        assert (await storage.list_transactions(a.id))[0].status == TransactionStatus.ERROR

    @pytest.mark.asyncio
    async def test_error_is_terminal(self, engine, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        key = triggered.payload["transaction_id"]
        await engine.decline(b.id, key)

        assert (await engine.receive(b.id, key)).error == ErrorCode.NOT_PENDING
        assert (await engine.decline(b.id, key)).error == ErrorCode.NOT_PENDING


class TestHistoryAndFunding:

    @pytest.mark.asyncio
    async def test_history_outcome(self, engine, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        await engine.trigger(a.id, b.id, 1, "Credit")

        outcome = await engine.history(a.id)

        assert outcome.is_success
        assert outcome.payload["balance"] == 99
        assert len(outcome.payload["transactions"]) == 1
        assert outcome.payload["transactions"][0]["status"] == "success"

    @pytest.mark.asyncio
    async def test_history_unknown_account(self, engine):
        outcome = await engine.history(5)

        assert outcome.code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("balance", [-1, 2.5])
    async def test_set_balance_rejects_bad_values(self, engine, make_account, balance):
        a = await make_account("alice")

        outcome = await engine.set_balance(a.id, balance)

        assert outcome.error == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_set_balance_respects_maximum(self, storage, make_account):
        engine = TransferEngine(storage, settings=LedgerSettings(max_balance=1000))
        a = await make_account("alice")

        outcome = await engine.set_balance(a.id, 1001)

        assert outcome.error == ErrorCode.BALANCE_OVERFLOW

    @pytest.mark.asyncio
    async def test_set_balance_creates_no_transaction(self, engine, storage, make_account):
        """Test funding changes the balance and nothing else."""
        a = await make_account("alice")

        outcome = await engine.set_balance(a.id, 100)

        assert outcome.is_success
        assert outcome.payload == {"account_id": a.id, "balance": 100}
        account = await storage.get_account(a.id)
        assert account.balance == 100
        assert account.history == []
        assert await storage.list_transactions(a.id) == []

    @pytest.mark.asyncio
    async def test_set_balance_huge_value(self, engine, storage, make_account):
        a = await make_account("alice", 10)

        outcome = await engine.set_balance(a.id, 10**5000)

        assert outcome.code == 402
        assert outcome.error == ErrorCode.BALANCE_OVERFLOW
        assert (await storage.get_account(a.id)).balance == 10


class TestAuditTrail:

    @pytest.mark.asyncio
    async def test_settled_transfer_is_audited(self, engine, audit_storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")

        outcome = await engine.trigger(a.id, b.id, 1, "Gold")

        events = await audit_storage.get_events_by_entity(
            "transaction", outcome.payload["transaction_id"]
        )
        assert [e.event_type for e in events] == [AuditEventType.TRANSFER_SETTLED]

    @pytest.mark.asyncio
    async def test_refusal_is_audited(self, engine, audit_storage, make_account):
        a = await make_account("alice")
        b = await make_account("bob")
        correlation_id = uuid4()

        await engine.trigger(a.id, b.id, 1, "Gold", correlation_id=correlation_id)

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.OPERATION_REJECTED
        assert events[0].error_code == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_deferred_lifecycle_is_audited(self, engine, audit_storage, make_account):
        a = await make_account("alice", 100)
        b = await make_account("bob")
        triggered = await engine.trigger(a.id, b.id, 1, "Gold", deferred=True)
        key = triggered.payload["transaction_id"]
        await engine.receive(b.id, key)

        events = await audit_storage.get_events_by_entity("transaction", key)
        assert [e.event_type for e in events] == [
            AuditEventType.TRANSFER_PENDING,
            AuditEventType.TRANSFER_RECEIVED,
        ]


class TestStorageFailures:

    @pytest.mark.asyncio
    async def test_commit_failure_returns_outcome(self):
        class FailingStorage(InMemoryAccountStorage):
            async def commit_settlement(self, accounts, transaction=None):
                if transaction is not None:
                    raise StorageError("disk full")
                return await super().commit_settlement(accounts, transaction)

        storage = FailingStorage()
        engine = TransferEngine(storage, audit_logger=AuditLogger())
        a = await storage.create_account(Credentials(login="alice", password_hash="00", salt="00"))
        b = await storage.create_account(Credentials(login="bob", password_hash="00", salt="00"))
        await engine.set_balance(a.id, 100)

        outcome = await engine.trigger(a.id, b.id, 1, "Gold")

        assert outcome.code == 500
        assert outcome.error == ErrorCode.STORAGE_FAILURE
        assert (await storage.get_account(a.id)).balance == 100
        assert (await storage.get_account(b.id)).balance == 0


class TestConcurrency:
    """Interleaved transfers over a store that yields on every call."""

    @pytest.fixture
    def yielding_storage(self):
        return YieldingAccountStorage()

    @pytest.fixture
    def yielding_engine(self, yielding_storage):
        return TransferEngine(yielding_storage, settings=LedgerSettings())

    async def _account(self, storage, engine, login, balance=0):
        account = await storage.create_account(
            Credentials(login=login, password_hash="00", salt="00")
        )
        if balance:
            await engine.set_balance(account.id, balance)
        return account

    @pytest.mark.asyncio
    async def test_no_lost_updates(self, yielding_storage, yielding_engine):
        """Twenty concurrent 10-unit debits from a balance of 100: exactly ten succeed."""
        a = await self._account(yielding_storage, yielding_engine, "alice", 100)
        b = await self._account(yielding_storage, yielding_engine, "bob")

        outcomes = await asyncio.gather(*[
            yielding_engine.trigger(a.id, b.id, 1, "Gold") for _ in range(20)
        ])

        assert sum(o.is_success for o in outcomes) == 10
        assert all(
            o.error == ErrorCode.INSUFFICIENT_FUNDS for o in outcomes if not o.is_success
        )
        assert (await yielding_storage.get_account(a.id)).balance == 0
        assert (await yielding_storage.get_account(b.id)).balance == 100
        assert len(await yielding_storage.list_transactions(b.id)) == 10

    @pytest.mark.asyncio
    async def test_opposite_transfers_do_not_deadlock(self, yielding_storage, yielding_engine):
        a = await self._account(yielding_storage, yielding_engine, "alice", 1000)
        b = await self._account(yielding_storage, yielding_engine, "bob", 1000)

        transfers = []
        for _ in range(25):
            transfers.append(yielding_engine.trigger(a.id, b.id, 3, "Credit"))
            transfers.append(yielding_engine.trigger(b.id, a.id, 5, "Credit"))
        outcomes = await asyncio.wait_for(asyncio.gather(*transfers), timeout=10)

        assert all(o.is_success for o in outcomes)
        assert (await yielding_storage.get_account(a.id)).balance == 1000 + 25 * 2
        assert (await yielding_storage.get_account(b.id)).balance == 1000 - 25 * 2

    @pytest.mark.asyncio
    async def test_observer_never_sees_half_applied_transfer(self, yielding_storage, yielding_engine):
        ids = [
            (await self._account(yielding_storage, yielding_engine, f"user{i}", 300)).id
            for i in range(3)
        ]
        rng = random.Random(11)
        done = asyncio.Event()
        observed_totals = set()

        async def observe():
            while not done.is_set():
                accounts = await yielding_storage.list_accounts()
                observed_totals.add(sum(a.balance for a in accounts))
                await asyncio.sleep(0)

        async def transfer():
            for _ in range(40):
                from_id, to_id = rng.sample(ids, 2)
                await yielding_engine.trigger(from_id, to_id, rng.randint(1, 30), "Credit")
            done.set()

        await asyncio.gather(observe(), transfer())

        assert observed_totals == {900}

    @pytest.mark.asyncio
    async def test_concurrent_receive_settles_once(self, yielding_storage, yielding_engine):
        a = await self._account(yielding_storage, yielding_engine, "alice", 100)
        b = await self._account(yielding_storage, yielding_engine, "bob")
        triggered = await yielding_engine.trigger(a.id, b.id, 5, "Gold", deferred=True)
        key = triggered.payload["transaction_id"]

        outcomes = await asyncio.gather(*[
            yielding_engine.receive(b.id, key) for _ in range(5)
        ])

        assert sum(o.is_success for o in outcomes) == 1
        assert {o.error for o in outcomes if not o.is_success} == {ErrorCode.NOT_PENDING}
        assert (await yielding_storage.get_account(a.id)).balance == 50
        assert (await yielding_storage.get_account(b.id)).balance == 50


class TestAccountLockRegistry:
    """Tests for the per-account lock ordering."""

    def test_one_lock_per_account(self):
        locks = AccountLockRegistry()
        assert locks.lock_for(1) is locks.lock_for(1)
        assert locks.lock_for(1) is not locks.lock_for(2)
        assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_hold_acquires_sorted_and_releases(self):
        locks = AccountLockRegistry()

        async with locks.hold(3, 1, 3):
            assert locks.lock_for(1).locked()
            assert locks.lock_for(3).locked()
            assert not locks.lock_for(2).locked()

        assert not locks.lock_for(1).locked()
        assert not locks.lock_for(3).locked()

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self):
        locks = AccountLockRegistry()

        with pytest.raises(RuntimeError):
            async with locks.hold(1, 2):
                raise RuntimeError("boom")

        assert not locks.lock_for(1).locked()
        assert not locks.lock_for(2).locked()
