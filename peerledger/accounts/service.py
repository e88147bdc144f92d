"""
Account Service

Registration, authentication, profile and verification for ledger accounts.

IMPORTANT BOUNDARIES:
1. This service NEVER writes balance, token holdings or history
   (the store's update_account ignores them anyway)
2. Passwords are stored only as salted PBKDF2-SHA256 hashes
3. Every operation returns a LedgerOutcome, same as the transfer engine
"""

import asyncio
import hashlib
import hmac
import secrets
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError

from peerledger.audit import AuditLogger
from peerledger.config import AppSettings, get_settings
from peerledger.ledger.exceptions import (
    AccountNotFoundError,
    DuplicateLoginError,
    InvalidCredentialsError,
    InvalidInputError,
    LedgerError,
)
from peerledger.models.ledger import Account, Credentials, PublicProfile, Theme
from peerledger.models.outcome import ErrorCode, LedgerOutcome
from peerledger.services.storage import (
    AccountStorageInterface,
    DuplicateError,
    StorageError,
)


# Profile fields a user may change through update_profile
EDITABLE_PROFILE_FIELDS = frozenset({"display_name", "bio", "avatar_url", "theme"})


def hash_password(password: str, salt: str, iterations: int) -> str:
    """Hex PBKDF2-SHA256 digest of password with a hex salt."""
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt),
        iterations,
    )
    return digest.hex()


def verify_password(password: str, credentials: Credentials) -> bool:
    candidate = hash_password(password, credentials.salt, credentials.iterations)
    return hmac.compare_digest(candidate, credentials.password_hash)


class AccountService:
    """
    Field-level account management on top of the account store.

    Login uniqueness is enforced by the store; this service turns the
    store's DuplicateError into a 409 outcome.
    """

    def __init__(
        self,
        storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def register(
        self,
        login: str,
        password: str,
        display_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Create an account.

        Returns 201 with the public view, 409 for a taken login,
        400 for a blank login or a too-short password.
        """
        try:
            login = (login or "").strip()
            if not login:
                raise InvalidInputError("Login cannot be blank")
            if len(password or "") < self._settings.min_password_length:
                raise InvalidInputError(
                    f"Password must have at least {self._settings.min_password_length} characters"
                )

            salt = secrets.token_hex(16)
            iterations = self._settings.password_hash_iterations
            # PBKDF2 runs in a worker thread so transfers keep moving
            password_hash = await asyncio.to_thread(hash_password, password, salt, iterations)
            credentials = Credentials(
                login=login,
                password_hash=password_hash,
                salt=salt,
                iterations=iterations,
            )
            profile = PublicProfile(display_name=display_name or login)

            try:
                account = await self._storage.create_account(credentials, profile)
            except DuplicateError:
                raise DuplicateLoginError(f"Login already exists: {login}")
        except ValidationError as e:
            return await self._refused("register", InvalidInputError(str(e)), correlation_id)
        except LedgerError as e:
            return await self._refused("register", e, correlation_id)
        except StorageError as e:
            return LedgerOutcome.failure(ErrorCode.STORAGE_FAILURE, f"register failed: {e}")

        if self._audit_logger:
            await self._audit_logger.log_account_registered(
                account_id=account.id,
                login=account.login,
                correlation_id=correlation_id,
            )

        return LedgerOutcome.success(
            f"Account {account.id} created",
            payload=account.public_view(),
            code=201,
        )

    async def authenticate(
        self,
        login: str,
        password: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        """
        Check a login/password pair.

        Unknown login and wrong password both give the same 401.
        """
        account = await self._storage.get_account_by_login((login or "").strip())
        verified = account is not None and await asyncio.to_thread(
            verify_password, password or "", account.credentials
        )
        if not verified:
            if self._audit_logger:
                await self._audit_logger.log_login_failed(login=login, correlation_id=correlation_id)
            return LedgerOutcome.failure(
                InvalidCredentialsError.code,
                "Invalid login or password",
            )

        if self._audit_logger:
            await self._audit_logger.log_login_succeeded(account.id, correlation_id)

        return LedgerOutcome.success(
            f"Authenticated as account {account.id}",
            payload={"account_id": account.id, **account.public_view()},
        )

    async def get_profile(self, account_id: int) -> LedgerOutcome:
        account = await self._storage.get_account(account_id)
        if account is None:
            return LedgerOutcome.failure(
                AccountNotFoundError.code,
                f"Account not found: {account_id}",
            )
        return LedgerOutcome.success("Profile", payload=account.public_view())

    async def update_profile(
        self,
        account_id: int,
        correlation_id: Optional[UUID] = None,
        **fields: Any,
    ) -> LedgerOutcome:
        """
        Change public profile fields.

        Only EDITABLE_PROFILE_FIELDS are accepted; anything else
        (balance, history, credentials...) is refused with 400.
        """
        try:
            unknown = set(fields) - EDITABLE_PROFILE_FIELDS
            if unknown:
                raise InvalidInputError(
                    f"Fields cannot be updated: {', '.join(sorted(unknown))}"
                )
            if not fields:
                raise InvalidInputError("No profile fields given")

            account = await self._require_account(account_id)
            for name, value in fields.items():
                setattr(account.profile, name, value)
            account = await self._storage.update_account(account)
        except ValidationError as e:
            return await self._refused("update_profile", InvalidInputError(str(e)), correlation_id)
        except LedgerError as e:
            return await self._refused("update_profile", e, correlation_id)
        except StorageError as e:
            return LedgerOutcome.failure(ErrorCode.STORAGE_FAILURE, f"update_profile failed: {e}")

        if self._audit_logger:
            await self._audit_logger.log_profile_updated(
                account_id=account_id,
                fields=sorted(fields),
                correlation_id=correlation_id,
            )

        return LedgerOutcome.success("Profile updated", payload=account.public_view())

    async def set_theme(
        self,
        account_id: int,
        theme: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        try:
            theme = Theme(theme)
        except ValueError:
            return LedgerOutcome.failure(
                ErrorCode.INVALID_INPUT,
                f"Unknown theme: {theme}. Allowed: {', '.join(t.value for t in Theme)}",
            )
        return await self.update_profile(account_id, correlation_id=correlation_id, theme=theme)

    async def set_verified(
        self,
        account_id: int,
        verified: bool,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerOutcome:
        try:
            account = await self._require_account(account_id)
            account.is_verified = verified
            account = await self._storage.update_account(account)
        except ValidationError as e:
            return await self._refused("set_verified", InvalidInputError(str(e)), correlation_id)
        except LedgerError as e:
            return await self._refused("set_verified", e, correlation_id)
        except StorageError as e:
            return LedgerOutcome.failure(ErrorCode.STORAGE_FAILURE, f"set_verified failed: {e}")

        if self._audit_logger:
            await self._audit_logger.log_verification_changed(
                account_id=account_id,
                verified=verified,
                correlation_id=correlation_id,
            )

        return LedgerOutcome.success(
            f"Account {account_id} {'verified' if verified else 'unverified'}",
            payload=account.public_view(),
        )

    async def _require_account(self, account_id: int) -> Account:
        account = await self._storage.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account not found: {account_id}")
        return account

    async def _refused(
        self,
        operation: str,
        error: LedgerError,
        correlation_id: Optional[UUID],
    ) -> LedgerOutcome:
        if self._audit_logger:
            await self._audit_logger.log_operation_rejected(
                operation=operation,
                error_code=error.code.value,
                message=str(error),
                correlation_id=correlation_id,
            )
        return LedgerOutcome.failure(error.code, str(error))
