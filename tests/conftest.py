"""Shared fixtures for the Peer Ledger tests."""

import asyncio

import pytest

from peerledger.audit import AuditLogger
from peerledger.config import AppSettings, LedgerSettings
from peerledger.accounts import AccountService
from peerledger.ledger import TransferEngine
from peerledger.models.ledger import Credentials
from peerledger.services.storage import InMemoryAccountStorage, InMemoryAuditStorage


class YieldingAccountStorage(InMemoryAccountStorage):
    """
    In-memory store that yields to the event loop on every read and commit,
    so concurrent coroutines actually interleave.
    """

    async def get_account(self, account_id):
        await asyncio.sleep(0)
        return await super().get_account(account_id)

    async def get_transaction(self, transaction_id):
        await asyncio.sleep(0)
        return await super().get_transaction(transaction_id)

    async def commit_settlement(self, accounts, transaction=None):
        await asyncio.sleep(0)
        return await super().commit_settlement(accounts, transaction)


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def app_settings():
    # Keep hashing cheap in tests
    return AppSettings(password_hash_iterations=1000)


@pytest.fixture
def storage():
    return InMemoryAccountStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def engine(storage, audit_logger, ledger_settings):
    return TransferEngine(storage, audit_logger=audit_logger, settings=ledger_settings)


@pytest.fixture
def account_service(storage, audit_logger, app_settings):
    return AccountService(storage, audit_logger=audit_logger, settings=app_settings)


@pytest.fixture
def make_account(storage, engine):
    """Create an account directly in the store, optionally funded."""

    async def _make(login: str, balance: int = 0):
        account = await storage.create_account(
            Credentials(login=login, password_hash="00", salt="00")
        )
        if balance:
            outcome = await engine.set_balance(account.id, balance)
            assert outcome.is_success, outcome.message
        return await storage.get_account(account.id)

    return _make
