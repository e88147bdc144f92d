"""
Core Data Models for Peer Ledger

These models define the strict schemas for accounts, token types and
transaction records. They are designed to:
1. Enforce ledger invariants at runtime (no negative balance, fixed ids)
2. Provide clear validation error messages
3. Be serializable for storage, logging and transports

DESIGN DECISION: A transaction is stored exactly once, keyed by its
transaction_id. Account histories hold only those ids, so a status change
is visible from both parties without any synchronization step.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionStatus(str, Enum):
    """
    Settlement status of a transaction record.

    Success and Error are terminal.
    """
    PENDING = "pending"  # Recorded, funds not moved yet
    SUCCESS = "success"  # Funds moved
    ERROR = "error"      # Settlement refused, funds never moved


# Pending is the only state with outgoing edges
ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({TransactionStatus.SUCCESS, TransactionStatus.ERROR}),
    TransactionStatus.SUCCESS: frozenset(),
    TransactionStatus.ERROR: frozenset(),
}


class Theme(str, Enum):
    """UI theme preference stored on the public profile."""
    LIGHT = "light"
    DARK = "dark"


# =============================================================================
# TOKEN CATALOG
# =============================================================================

COST_ROUNDING_MODES = frozenset({"ceiling", "half_up"})


class TokenType(BaseModel):
    """
    A named unit of value with a fixed unit price.

    Transfers are denominated in token units; the ledger moves
    amount * unit_price currency units.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Unique token name"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Descriptive text"
    )
    unit_price: Decimal = Field(
        ...,
        gt=0,
        description="Price of one token unit in currency units"
    )
    origin: Optional[str] = Field(
        default=None,
        description="Where the token comes from (issuer, contract address, URL)"
    )

    def cost_for(self, amount: int, rounding: str = "ceiling") -> int:
        """
        Currency cost of transferring `amount` units.

        Fractional costs are rounded to a whole currency unit; the default
        rounds up so the sender never pays less than the listed price.
        Computed on exact integers, so any amount prices without overflow
        or precision loss.
        """
        if rounding not in COST_ROUNDING_MODES:
            raise ValueError(f"Unsupported cost rounding: {rounding}")
        numerator, denominator = self.unit_price.as_integer_ratio()
        cost, remainder = divmod(amount * numerator, denominator)
        if remainder and (rounding == "ceiling" or 2 * remainder >= denominator):
            cost += 1
        return cost


class TokenCatalog:
    """
    Read-only catalog of transferable token types.

    Built once at startup; lookups are by exact token name.
    """

    def __init__(self, tokens: Iterable[TokenType]):
        by_name: dict[str, TokenType] = {}
        for token in tokens:
            if token.name in by_name:
                raise ValueError(f"Duplicate token name in catalog: {token.name}")
            by_name[token.name] = token
        self._tokens = MappingProxyType(by_name)

    def get(self, name: str) -> Optional[TokenType]:
        return self._tokens.get(name)

    def all(self) -> list[TokenType]:
        return list(self._tokens.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tokens

    def __iter__(self) -> Iterator[TokenType]:
        return iter(self._tokens.values())

    def __len__(self) -> int:
        return len(self._tokens)


DEFAULT_TOKEN_CATALOG = TokenCatalog([
    TokenType(
        name="Gold",
        description="Standard transfer token",
        unit_price=Decimal("10"),
        origin="peerledger:genesis",
    ),
    TokenType(
        name="Platinum",
        description="High value transfer token",
        unit_price=Decimal("25"),
        origin="peerledger:genesis",
    ),
    TokenType(
        name="Credit",
        description="One token per currency unit",
        unit_price=Decimal("1"),
        origin="peerledger:genesis",
    ),
])


# =============================================================================
# ACCOUNT MODELS
# =============================================================================

class Credentials(BaseModel):
    """
    Login credentials.

    Only the salted hash is ever stored.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    login: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique login name"
    )
    password_hash: str = Field(
        ...,
        description="Hex encoded PBKDF2 hash"
    )
    salt: str = Field(
        ...,
        description="Hex encoded salt"
    )
    iterations: int = Field(
        default=200_000,
        ge=1,
        description="PBKDF2 iterations the hash was computed with"
    )


class PublicProfile(BaseModel):
    """Fields any other user may see."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    display_name: Optional[str] = Field(
        default=None,
        max_length=100
    )
    bio: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    avatar_url: Optional[str] = Field(
        default=None,
        max_length=500
    )
    theme: Theme = Theme.LIGHT


class Account(BaseModel):
    """
    A user's identity plus balance and transaction history.

    CRITICAL: balance is validated on every assignment, so a debit
    that would go negative raises before anything is written.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(
        ...,
        ge=1,
        frozen=True,
        description="Sequential account identifier"
    )
    credentials: Credentials
    is_verified: bool = False
    profile: PublicProfile = Field(default_factory=PublicProfile)
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    # Private ledger data
    balance: int = Field(
        default=0,
        ge=0,
        description="Balance in currency units"
    )
    token_holdings: dict[str, int] = Field(
        default_factory=dict,
        description="Held token units by token name"
    )
    history: list[UUID] = Field(
        default_factory=list,
        description="Transaction ids, oldest first"
    )

    @field_validator('token_holdings')
    @classmethod
    def validate_holdings(cls, v: dict[str, int]) -> dict[str, int]:
        for name, units in v.items():
            if units < 0:
                raise ValueError(f"Token holding for {name} cannot be negative")
        return v

    @property
    def login(self) -> str:
        return self.credentials.login

    def public_view(self) -> dict:
        """Everything except credentials and private ledger data."""
        return {
            "id": self.id,
            "login": self.login,
            "is_verified": self.is_verified,
            "created_at": self.created_at.isoformat(),
            **self.profile.model_dump(mode="json"),
        }


# =============================================================================
# TRANSACTION MODEL
# =============================================================================

class TransactionRecord(BaseModel):
    """
    Audit entry describing a balance movement between two accounts.

    Created by the transfer engine; only the engine changes status,
    and only along ALLOWED_TRANSITIONS.
    """
    model_config = ConfigDict(validate_assignment=True)

    transaction_id: UUID = Field(
        default_factory=uuid4,
        description="Stable transaction identifier"
    )
    trigger_id: int = Field(
        ...,
        ge=1,
        description="Account that initiated the transfer"
    )
    receiver_id: int = Field(
        ...,
        ge=1,
        description="Account that receives the funds"
    )
    trigger_acknowledged: bool = False
    receiver_acknowledged: bool = False
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the transfer was triggered"
    )
    amount: int = Field(
        ...,
        gt=0,
        description="Token units transferred"
    )
    token_name: str = Field(
        ...,
        min_length=1
    )
    cost: int = Field(
        ...,
        ge=0,
        description="Currency units moved (or to be moved) at settlement"
    )
    status: TransactionStatus = TransactionStatus.PENDING
    settled_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    def involves(self, account_id: int) -> bool:
        return account_id in (self.trigger_id, self.receiver_id)

    def transition_to(self, status: TransactionStatus) -> None:
        """
        Move to a new status.

        Raises:
            ValueError: If the edge is not in ALLOWED_TRANSITIONS
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Cannot move transaction {self.transaction_id} "
                f"from {self.status.value} to {status.value}"
            )
        self.status = status
