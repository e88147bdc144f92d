"""Services package."""

from peerledger.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AccountStorageInterface",
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "NotFoundError",
    "StorageError",
]
