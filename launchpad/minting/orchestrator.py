from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from launchpad.common import guarded_call, log_event

from .errors import DatabaseError, MetadataError
from .metadata import MetadataFields, MetadataState, check_metadata_fields
from .payments import PaymentVerifier, quote_fee_lamports
from .rate_limit import RateLimiter
from .retry import DEFAULT_INITIAL_DELAY_SECONDS, DEFAULT_MAX_RETRIES, Sleeper, with_retry
from .sanitizer import sanitize_request
from .types import (
    CreationStep,
    ProgressEvent,
    ProgressListener,
    RevocationVerification,
    StepStatus,
    TokenCreationRequest,
    TokenCreationResult,
    TokenRecord,
    TokenRecordStore,
)

T = TypeVar("T")


def _as_metadata_error(prefix: str) -> Callable[[Exception], Exception]:
    def wrap(error: Exception) -> Exception:
        if isinstance(error, MetadataError):
            return error
        return MetadataError(f"{prefix}: {error}")

    return wrap


class ChainGateway(Protocol):
    @property
    def signer_pubkey(self) -> Pubkey: ...

    async def probe(self) -> str: ...

    async def create_mint(
        self,
        *,
        mint_keypair: Keypair,
        decimals: int,
        freeze_authority: Pubkey | None,
    ) -> Pubkey: ...

    async def create_associated_account(self, *, mint: Pubkey, owner: Pubkey) -> Pubkey: ...

    async def mint_supply(self, *, mint: Pubkey, destination: Pubkey, amount: int) -> str | None: ...

    async def set_mint_authority(self, *, mint: Pubkey, new_authority: Pubkey | None) -> str | None: ...

    async def attach_metadata(self, *, mint: Pubkey, fields: MetadataFields, update_authority: Pubkey) -> Pubkey: ...

    async def revoke_metadata_authority(self, *, mint: Pubkey) -> str | None: ...

    async def fetch_mint_authorities(self, mint: Pubkey) -> Any: ...

    async def fetch_metadata(self, mint: Pubkey) -> MetadataState | None: ...


class ProgressTracker:
    def __init__(self, listener: ProgressListener | None = None) -> None:
        self._listener = listener
        self._current: CreationStep | None = None
        self.events: list[ProgressEvent] = []

    def _emit(self, step: CreationStep, status: StepStatus, detail: str | None = None) -> None:
        event = ProgressEvent(step=step, status=status, detail=detail)
        self.events.append(event)
        if self._listener is not None:
            self._listener(event)

    def start(self, step: CreationStep) -> None:
        self._current = step
        self._emit(step, StepStatus.LOADING)

    def complete(self, detail: str | None = None) -> None:
        if self._current is None:
            return
        self._emit(self._current, StepStatus.COMPLETED, detail)
        self._current = None

    def fail(self, detail: str | None = None) -> None:
        if self._current is None:
            return
        self._emit(self._current, StepStatus.ERROR, detail)
        self._current = None


class TokenCreationOrchestrator:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        chain: ChainGateway,
        records: TokenRecordStore,
        rate_limiter: RateLimiter,
        payment_verifier: PaymentVerifier,
        network: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._logger = logger
        self._chain = chain
        self._records = records
        self._rate_limiter = rate_limiter
        self._payments = payment_verifier
        self._network = network
        self._max_retries = max_retries
        self._initial_delay_seconds = initial_delay_seconds
        self._sleep = sleep

    @property
    def network(self) -> str:
        return self._network

    async def _retry(self, operation: Callable[[], Awaitable[T]], name: str) -> T:
        return await with_retry(
            operation,
            max_retries=self._max_retries,
            initial_delay_seconds=self._initial_delay_seconds,
            logger=self._logger,
            operation_name=name,
            sleep=self._sleep,
        )

    async def create_token(
        self,
        request: TokenCreationRequest,
        *,
        on_progress: ProgressListener | None = None,
    ) -> TokenCreationResult:
        sanitized = sanitize_request(request)
        progress = ProgressTracker(on_progress)

        log_event(
            self._logger,
            level="info",
            event="token_creation_started",
            message="Starting token creation",
            wallet_address=sanitized.wallet_address,
            symbol=sanitized.symbol,
            supply=sanitized.supply,
            decimals=sanitized.decimals,
        )

        async with self._rate_limiter.admit(sanitized.wallet_address):
            try:
                record = await self._run(sanitized, progress)
            except Exception as error:
                progress.fail(str(error))
                raise

        log_event(
            self._logger,
            level="info",
            event="token_creation_completed",
            message="Token created successfully",
            wallet_address=record.creator_wallet,
            mint_address=record.mint_address,
            token_id=record.id,
        )
        return TokenCreationResult(record=record, steps=list(progress.events))

    async def _run(self, request: TokenCreationRequest, progress: ProgressTracker) -> TokenRecord:
        owner = Pubkey.from_string(request.wallet_address)

        progress.start(CreationStep.PAYMENT)
        await self._payments.verify(
            signature=request.payment_transaction_id,
            payer=request.wallet_address,
            expected_lamports=quote_fee_lamports(
                revoke_mint=request.revoke_mint,
                revoke_freeze=request.revoke_freeze,
            ),
        )
        progress.complete()

        progress.start(CreationStep.MINT)
        await self._retry(self._chain.probe, "rpc_probe")

        # Freeze authority cannot be changed later in this flow.
        freeze_authority = None if request.revoke_freeze else owner
        # Reused across retries so at most one mint account is created.
        mint_keypair = Keypair()
        mint = await self._retry(
            lambda: self._chain.create_mint(
                mint_keypair=mint_keypair,
                decimals=request.decimals,
                freeze_authority=freeze_authority,
            ),
            "create_mint",
        )
        log_event(
            self._logger,
            level="info",
            event="token_mint_created",
            message="Token mint created",
            mint_address=str(mint),
        )

        token_account = await self._retry(
            lambda: self._chain.create_associated_account(mint=mint, owner=owner),
            "create_token_account",
        )
        await self._retry(
            lambda: self._chain.mint_supply(mint=mint, destination=token_account, amount=request.base_units),
            "mint_supply",
        )
        progress.complete()

        progress.start(CreationStep.METADATA)
        metadata_uri = await self._attach_metadata(request, mint=mint, owner=owner)
        progress.complete(None if metadata_uri else "skipped")

        progress.start(CreationStep.REVOKES)
        new_mint_authority = None if request.revoke_mint else owner
        await self._retry(
            lambda: self._chain.set_mint_authority(mint=mint, new_authority=new_mint_authority),
            "revoke_mint_authority" if request.revoke_mint else "transfer_mint_authority",
        )
        if request.revoke_metadata_authority and metadata_uri:
            await self._revoke_metadata(mint)
        progress.complete()

        progress.start(CreationStep.VERIFICATION)
        verification, mint_authority, chain_freeze_authority = await self._verify(request, mint=mint)
        record = TokenRecord(
            creator_wallet=request.wallet_address,
            name=request.name,
            symbol=request.symbol,
            description=request.description,
            image_url=request.image_url,
            supply=request.supply,
            decimals=request.decimals,
            mint_address=str(mint),
            user_token_account=str(token_account),
            mint_authority=mint_authority,
            freeze_authority=chain_freeze_authority,
            metadata_uri=metadata_uri,
            revocation_verification=verification,
            payment_signature=request.payment_transaction_id,
            network=self._network,
        )
        saved = await self._persist(record)
        progress.complete()
        return saved

    async def _attach_metadata(
        self,
        request: TokenCreationRequest,
        *,
        mint: Pubkey,
        owner: Pubkey,
    ) -> str | None:
        if not request.image_url:
            return None

        update_authority = self._chain.signer_pubkey if request.revoke_metadata_authority else owner
        fields = MetadataFields(name=request.name, symbol=request.symbol, uri=request.image_url)

        async def attach() -> Pubkey:
            check_metadata_fields(fields)
            return await self._retry(
                lambda: self._chain.attach_metadata(mint=mint, fields=fields, update_authority=update_authority),
                "attach_metadata",
            )

        attached = await guarded_call(
            attach,
            logger=self._logger,
            event="metadata_attach_failed",
            message="Continuing without token metadata",
            wrap_error=_as_metadata_error("Metadata attach failed"),
            mint_address=str(mint),
        )
        return request.image_url if attached is not None else None

    async def _revoke_metadata(self, mint: Pubkey) -> None:
        await guarded_call(
            lambda: self._retry(
                lambda: self._chain.revoke_metadata_authority(mint=mint),
                "revoke_metadata_authority",
            ),
            logger=self._logger,
            event="metadata_revoke_failed",
            message="Metadata authority was not revoked",
            wrap_error=_as_metadata_error("Metadata authority revocation failed"),
            mint_address=str(mint),
        )

    async def _verify(
        self,
        request: TokenCreationRequest,
        *,
        mint: Pubkey,
    ) -> tuple[RevocationVerification, str | None, str | None]:
        authorities = await self._retry(lambda: self._chain.fetch_mint_authorities(mint), "verify_mint")

        metadata_ok = True
        if request.revoke_metadata_authority:
            state = await self._retry(lambda: self._chain.fetch_metadata(mint), "verify_metadata")
            # Only an existing immutable account counts as revoked.
            metadata_ok = state is not None and not state.is_mutable

        verification = RevocationVerification(
            mint=not request.revoke_mint or authorities.mint_authority is None,
            freeze=not request.revoke_freeze or authorities.freeze_authority is None,
            metadata=metadata_ok,
        )
        if not (verification.mint and verification.freeze and verification.metadata):
            log_event(
                self._logger,
                level="warning",
                event="revocation_unverified",
                message="On-chain authorities do not match the requested revocations",
                mint_address=str(mint),
                verification=verification.to_dict(),
            )

        mint_authority = str(authorities.mint_authority) if authorities.mint_authority is not None else None
        freeze_authority = str(authorities.freeze_authority) if authorities.freeze_authority is not None else None
        return verification, mint_authority, freeze_authority

    async def _persist(self, record: TokenRecord) -> TokenRecord:
        try:
            return await self._records.insert_token(record=record)
        except Exception as error:
            # No rollback: the mint stays on-chain without a catalog entry.
            log_event(
                self._logger,
                level="error",
                event="token_persist_failed",
                message="Token minted on-chain but catalog write failed",
                mint_address=record.mint_address,
                wallet_address=record.creator_wallet,
                error=str(error),
            )
            raise DatabaseError(f"Database error: {error}", mint_address=record.mint_address) from error
