from __future__ import annotations

from enum import Enum


class ChainErrorKind(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    BLOCKHASH_NOT_FOUND = "blockhash_not_found"
    UNKNOWN = "unknown"


NON_RETRYABLE_KINDS = frozenset({ChainErrorKind.INSUFFICIENT_FUNDS, ChainErrorKind.BLOCKHASH_NOT_FOUND})

_KIND_MARKERS: tuple[tuple[str, ChainErrorKind], ...] = (
    ("insufficient funds", ChainErrorKind.INSUFFICIENT_FUNDS),
    ("insufficient lamports", ChainErrorKind.INSUFFICIENT_FUNDS),
    ("blockhash not found", ChainErrorKind.BLOCKHASH_NOT_FOUND),
)


class TokenCreationError(Exception):
    pass


class ValidationError(TokenCreationError):
    pass


class RateLimitError(TokenCreationError):
    pass


class PaymentVerificationError(TokenCreationError):
    pass


class MetadataError(TokenCreationError):
    pass


class DatabaseError(TokenCreationError):
    def __init__(self, message: str, *, mint_address: str | None = None) -> None:
        super().__init__(message)
        self.mint_address = mint_address


class ChainError(TokenCreationError):
    def __init__(self, kind: ChainErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS


class NonRetryableChainError(ChainError):
    pass


class RetryableChainError(ChainError):
    def __init__(self, kind: ChainErrorKind, message: str, *, attempts: int) -> None:
        super().__init__(kind, message)
        self.attempts = attempts


def classify_chain_error(error: BaseException) -> ChainErrorKind:
    if isinstance(error, ChainError):
        return error.kind

    text = str(error).lower()
    for marker, kind in _KIND_MARKERS:
        if marker in text:
            return kind
    return ChainErrorKind.UNKNOWN


def describe_error(error: BaseException) -> str:
    if isinstance(error, (ValidationError, RateLimitError, PaymentVerificationError)):
        return str(error)
    if isinstance(error, DatabaseError):
        if error.mint_address is None:
            return str(error)
        return "Token was minted but could not be saved to the catalog. Please contact support with your mint address."

    kind = classify_chain_error(error)
    if kind is ChainErrorKind.INSUFFICIENT_FUNDS:
        return "Insufficient SOL balance to cover token creation fees. Please top up the service wallet and retry."
    if kind is ChainErrorKind.BLOCKHASH_NOT_FOUND:
        return "Network congestion detected: the transaction expired before confirmation. Please try again."

    text = str(error).lower()
    if "timeout" in text or "timed out" in text:
        return "The Solana RPC endpoint timed out. Please try again in a moment."
    if "429" in text or "too many requests" in text:
        return "Network congestion detected: RPC rate limit reached. Please try again shortly."
    return str(error) or "Token creation failed"
