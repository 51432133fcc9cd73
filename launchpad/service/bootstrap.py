from __future__ import annotations

import contextlib
import logging

from aiohttp import web
from solders.pubkey import Pubkey

from launchpad.common import log_event
from launchpad.minting import (
    PaymentVerifier,
    RateLimiter,
    SolanaChainGateway,
    TokenCreationOrchestrator,
    load_keypair,
)
from launchpad.storage import StorageGateway, StorageSettings

from .http import LaunchpadApi, create_app
from .settings import AppSettings


def resolve_fee_wallet(app_settings: AppSettings, signer_pubkey: Pubkey) -> Pubkey:
    if app_settings.fee_wallet_address:
        return Pubkey.from_string(app_settings.fee_wallet_address)
    return signer_pubkey


async def build_application(
    *,
    logger: logging.Logger,
    app_settings: AppSettings,
    storage_settings: StorageSettings,
) -> web.Application:
    signer = load_keypair(app_settings.private_key)
    chain = SolanaChainGateway(logger=logger, rpc_url=app_settings.solana_rpc_url, signer=signer)
    storage = StorageGateway(storage_settings, logger)

    payment_verifier = PaymentVerifier(
        logger=logger,
        fetcher=chain,
        fee_wallet=resolve_fee_wallet(app_settings, signer.pubkey()),
        enabled=app_settings.verify_payment,
    )
    if not app_settings.verify_payment:
        log_event(
            logger,
            level="warning",
            event="payment_verification_disabled",
            message="Payment signatures are accepted without on-chain verification",
        )

    rate_limiter = RateLimiter(
        logger=logger,
        records=storage,
        guards=storage,
        window_seconds=app_settings.rate_limit_window_seconds,
        guard_ttl_seconds=storage_settings.creation_guard_ttl_seconds,
    )
    orchestrator = TokenCreationOrchestrator(
        logger=logger,
        chain=chain,
        records=storage,
        rate_limiter=rate_limiter,
        payment_verifier=payment_verifier,
        network=app_settings.solana_network,
        max_retries=app_settings.retry_max_attempts,
        initial_delay_seconds=app_settings.retry_initial_delay_seconds,
    )
    api = LaunchpadApi(
        logger=logger,
        orchestrator=orchestrator,
        payment_verifier=payment_verifier,
        dependencies=[chain, storage],
    )
    app = create_app(api)

    async def on_startup(_app: web.Application) -> None:
        await storage.connect()
        await chain.connect()
        log_event(
            logger,
            level="info",
            event="service_started",
            message="Token launchpad service started",
            network=app_settings.solana_network,
            port=app_settings.http_port,
        )

    async def on_cleanup(_app: web.Application) -> None:
        with contextlib.suppress(Exception):
            await chain.close()
        with contextlib.suppress(Exception):
            await storage.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app
