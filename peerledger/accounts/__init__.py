"""Account management package."""

from peerledger.accounts.service import (
    EDITABLE_PROFILE_FIELDS,
    AccountService,
    hash_password,
    verify_password,
)

__all__ = [
    "EDITABLE_PROFILE_FIELDS",
    "AccountService",
    "hash_password",
    "verify_password",
]
