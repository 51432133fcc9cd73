from .chain import SolanaChainGateway, load_keypair
from .errors import (
    ChainError,
    ChainErrorKind,
    DatabaseError,
    MetadataError,
    NonRetryableChainError,
    PaymentVerificationError,
    RateLimitError,
    RetryableChainError,
    TokenCreationError,
    ValidationError,
    describe_error,
)
from .orchestrator import TokenCreationOrchestrator
from .payments import PaymentVerifier, quote_fee, quote_fee_lamports
from .rate_limit import RateLimiter
from .retry import with_retry
from .sanitizer import parse_request, sanitize_request
from .types import (
    CreationStep,
    ProgressEvent,
    StepStatus,
    TokenCreationRequest,
    TokenCreationResult,
    TokenRecord,
)

__all__ = [
    "ChainError",
    "ChainErrorKind",
    "CreationStep",
    "DatabaseError",
    "MetadataError",
    "NonRetryableChainError",
    "PaymentVerificationError",
    "PaymentVerifier",
    "ProgressEvent",
    "RateLimitError",
    "RateLimiter",
    "RetryableChainError",
    "SolanaChainGateway",
    "StepStatus",
    "TokenCreationError",
    "TokenCreationOrchestrator",
    "TokenCreationRequest",
    "TokenCreationResult",
    "TokenRecord",
    "ValidationError",
    "describe_error",
    "load_keypair",
    "parse_request",
    "quote_fee",
    "quote_fee_lamports",
    "sanitize_request",
    "with_retry",
]
