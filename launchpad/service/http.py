from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

from aiohttp import web

from launchpad.common import log_event
from launchpad.minting import (
    PaymentVerifier,
    TokenCreationOrchestrator,
    TokenCreationResult,
    ValidationError,
    describe_error,
    parse_request,
    quote_fee,
)

from .settings import to_bool

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class HealthCheck(Protocol):
    async def healthcheck(self) -> None: ...


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except web.HTTPException as error:
        error.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


class LaunchpadApi:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        orchestrator: TokenCreationOrchestrator,
        payment_verifier: PaymentVerifier,
        dependencies: list[HealthCheck] | None = None,
    ) -> None:
        self._logger = logger
        self._orchestrator = orchestrator
        self._payments = payment_verifier
        self._dependencies = dependencies or []

    def _failure(self, error: Exception) -> web.Response:
        return web.json_response(
            {
                "success": False,
                "network": self._orchestrator.network,
                "error": describe_error(error),
                "originalError": str(error),
            },
            status=400,
        )

    async def create_token(self, request: web.Request) -> web.Response:
        try:
            payload: Any = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._failure(ValidationError("Request body must be valid JSON"))

        try:
            token_request = parse_request(payload)
            log_event(
                self._logger,
                level="info",
                event="create_token_received",
                message="Received token creation request",
                wallet_address=token_request.wallet_address,
            )
            # Runs to completion even if the client disconnects.
            task = asyncio.ensure_future(self._orchestrator.create_token(token_request))
            try:
                result = await asyncio.shield(task)
            except asyncio.CancelledError:
                task.add_done_callback(self._log_detached_result)
                raise
        except Exception as error:
            log_event(
                self._logger,
                level="error",
                event="token_creation_failed",
                message="Token creation failed",
                error=str(error),
                error_type=type(error).__name__,
            )
            return self._failure(error)

        return web.json_response(
            {
                "success": True,
                "network": self._orchestrator.network,
                "token": result.to_response_token(),
                "steps": [event.to_dict() for event in result.steps],
            }
        )

    def _log_detached_result(self, task: asyncio.Future[TokenCreationResult]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log_event(
                self._logger,
                level="error",
                event="token_creation_detached_failed",
                message="Token creation failed after the client disconnected",
                error=str(error),
                error_type=type(error).__name__,
            )
            return
        log_event(
            self._logger,
            level="info",
            event="token_creation_detached_completed",
            message="Token creation finished after the client disconnected",
            mint_address=task.result().record.mint_address,
        )

    async def fee_quote(self, request: web.Request) -> web.Response:
        quote = quote_fee(
            revoke_mint=to_bool(request.query.get("revokeMint"), False),
            revoke_freeze=to_bool(request.query.get("revokeFreeze"), False),
        )
        payload = quote.to_dict()
        payload["feeWallet"] = str(self._payments.fee_wallet)
        payload["network"] = self._orchestrator.network
        return web.json_response(payload)

    async def healthz(self, _request: web.Request) -> web.Response:
        try:
            await asyncio.gather(*(dependency.healthcheck() for dependency in self._dependencies))
        except Exception as error:
            log_event(
                self._logger,
                level="warning",
                event="healthcheck_failed",
                message="Dependency healthcheck failed",
                error=str(error),
            )
            return web.json_response({"ok": False, "error": str(error)}, status=503)
        return web.json_response({"ok": True, "network": self._orchestrator.network})


def create_app(api: LaunchpadApi) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app.router.add_post("/create-token", api.create_token)
    app.router.add_get("/fee-quote", api.fee_quote)
    app.router.add_get("/healthz", api.healthz)
    return app
