from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, TypeVar

T = TypeVar("T")

RetryableOperation = Callable[[], Awaitable[T]]

MAX_SYMBOL_LENGTH = 8
MAX_DECIMALS = 9


class CreationStep(str, Enum):
    PAYMENT = "payment"
    MINT = "mint"
    METADATA = "metadata"
    REVOKES = "revokes"
    VERIFICATION = "verification"


class StepStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    step: CreationStep
    status: StepStatus
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"step": self.step.value, "status": self.status.value}
        if self.detail:
            payload["detail"] = self.detail
        return payload


ProgressListener = Callable[[ProgressEvent], None]


@dataclass(slots=True, frozen=True)
class TokenCreationRequest:
    wallet_address: str
    name: str
    symbol: str
    supply: int
    decimals: int
    payment_transaction_id: str
    description: str | None = None
    image_url: str | None = None
    revoke_mint: bool = False
    revoke_freeze: bool = False
    revoke_metadata_authority: bool = False

    @property
    def base_units(self) -> int:
        return self.supply * (10**self.decimals)


@dataclass(slots=True, frozen=True)
class RevocationVerification:
    mint: bool
    freeze: bool
    metadata: bool

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass(slots=True)
class TokenRecord:
    creator_wallet: str
    name: str
    symbol: str
    description: str | None
    image_url: str | None
    supply: int
    decimals: int
    mint_address: str
    user_token_account: str
    mint_authority: str | None
    freeze_authority: str | None
    metadata_uri: str | None
    revocation_verification: RevocationVerification
    payment_signature: str
    network: str
    id: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class TokenCreationResult:
    record: TokenRecord
    steps: list[ProgressEvent]

    def to_response_token(self) -> dict[str, Any]:
        token = self.record.to_dict()
        token["mintAddress"] = self.record.mint_address
        token["userTokenAccount"] = self.record.user_token_account
        token["verificationStatus"] = self.record.revocation_verification.to_dict()
        return token


class TokenRecordStore(Protocol):
    async def count_recent_tokens(self, *, wallet_address: str, since: datetime) -> int: ...

    async def insert_token(self, *, record: TokenRecord) -> TokenRecord: ...


class CreationGuardStore(Protocol):
    async def acquire_creation_guard(self, *, wallet_address: str, owner_id: str, ttl_seconds: int) -> bool: ...

    async def release_creation_guard(self, *, wallet_address: str, owner_id: str) -> bool: ...
