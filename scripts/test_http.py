from __future__ import annotations

import asyncio
import logging
import unittest
from unittest.mock import AsyncMock, MagicMock

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase
from solders.pubkey import Pubkey

from launchpad.minting.errors import DatabaseError
from launchpad.minting.orchestrator import TokenCreationOrchestrator
from launchpad.minting.payments import PaymentVerifier
from launchpad.minting.rate_limit import RateLimiter
from launchpad.service.http import LaunchpadApi, create_app
from launchpad_fakes import FakeChain, InMemoryGuardStore, InMemoryTokenStore


class CreateTokenEndpointTests(AioHTTPTestCase):
    async def get_application(self) -> web.Application:
        logger = logging.getLogger("test.http")
        self.wallet = str(Pubkey.new_unique())
        self.chain = FakeChain()
        self.records = InMemoryTokenStore()
        payment_verifier = PaymentVerifier(logger=logger, fetcher=MagicMock(), fee_wallet=self.chain.signer_pubkey)
        orchestrator = TokenCreationOrchestrator(
            logger=logger,
            chain=self.chain,
            records=self.records,
            rate_limiter=RateLimiter(logger=logger, records=self.records, guards=InMemoryGuardStore()),
            payment_verifier=payment_verifier,
            network="devnet",
            sleep=AsyncMock(),
        )
        self.dependency = MagicMock()
        self.dependency.healthcheck = AsyncMock()
        api = LaunchpadApi(
            logger=logger,
            orchestrator=orchestrator,
            payment_verifier=payment_verifier,
            dependencies=[self.dependency],
        )
        return create_app(api)

    def _payload(self, **token_data: object) -> dict[str, object]:
        data: dict[str, object] = {
            "name": "DogeCoin",
            "symbol": "doge",
            "supply": 1_000_000_000,
            "decimals": 9,
            "revokeMint": True,
            "revokeFreeze": True,
            "revokeMetadata": False,
        }
        data.update(token_data)
        return {"walletAddress": self.wallet, "tokenData": data, "transactionSignature": "payment-signature"}

    async def test_preflight_allows_any_origin(self) -> None:
        response = await self.client.options("/create-token")

        self.assertEqual(response.status, 200)
        self.assertEqual(response.headers["Access-Control-Allow-Origin"], "*")

    async def test_successful_creation(self) -> None:
        response = await self.client.post("/create-token", json=self._payload())
        body = await response.json()

        self.assertEqual(response.status, 200)
        self.assertEqual(response.headers["Access-Control-Allow-Origin"], "*")
        self.assertTrue(body["success"])
        self.assertEqual(body["network"], "devnet")
        self.assertEqual(body["token"]["symbol"], "DOGE")
        self.assertIsNone(body["token"]["mint_authority"])
        self.assertEqual(body["token"]["mintAddress"], str(self.chain.mint))
        self.assertEqual(body["token"]["verificationStatus"], {"mint": True, "freeze": True, "metadata": True})
        self.assertEqual(body["steps"][-1], {"step": "verification", "status": "completed"})

    async def test_validation_failure_returns_400(self) -> None:
        response = await self.client.post("/create-token", json=self._payload(symbol="!!"))
        body = await response.json()

        self.assertEqual(response.status, 400)
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "Missing required fields")
        self.assertEqual(body["originalError"], "Missing required fields")

    async def test_database_failure_is_reported(self) -> None:
        self.records.fail_insert = True

        response = await self.client.post("/create-token", json=self._payload())
        body = await response.json()

        self.assertEqual(response.status, 400)
        self.assertFalse(body["success"])
        self.assertIn("could not be saved", body["error"])
        self.assertIn("Database error", body["originalError"])
        self.assertIn("create_mint", self.chain.calls)

    async def test_invalid_json_is_rejected(self) -> None:
        response = await self.client.post("/create-token", data="{not json")
        body = await response.json()

        self.assertEqual(response.status, 400)
        self.assertFalse(body["success"])

    async def test_fee_quote(self) -> None:
        response = await self.client.get("/fee-quote", params={"revokeMint": "true"})
        body = await response.json()

        self.assertEqual(body["totalLamports"], 200_000_000)
        self.assertEqual(body["feeWallet"], str(self.chain.signer_pubkey))

    async def test_healthz_reports_dependency_failure(self) -> None:
        self.dependency.healthcheck.side_effect = RuntimeError("redis down")

        response = await self.client.get("/healthz")

        self.assertEqual(response.status, 503)


class DetachedCreationTests(unittest.IsolatedAsyncioTestCase):
    async def test_failure_after_disconnect_is_logged(self) -> None:
        release = asyncio.Event()

        async def create_token(_request: object) -> None:
            await release.wait()
            raise DatabaseError("Database error: deadline exceeded", mint_address="mint")

        orchestrator = MagicMock()
        orchestrator.network = "devnet"
        orchestrator.create_token = create_token
        api = LaunchpadApi(
            logger=logging.getLogger("test.http.detached"),
            orchestrator=orchestrator,
            payment_verifier=MagicMock(),
        )
        request = MagicMock()
        request.json = AsyncMock(
            return_value={
                "walletAddress": str(Pubkey.new_unique()),
                "tokenData": {"name": "DogeCoin", "symbol": "DOGE", "supply": 1},
                "transactionSignature": "payment-signature",
            }
        )

        handler = asyncio.create_task(api.create_token(request))
        for _ in range(5):
            await asyncio.sleep(0)
        handler.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await handler

        with self.assertLogs("test.http.detached", level="ERROR") as logs:
            release.set()
            for _ in range(5):
                await asyncio.sleep(0)

        self.assertEqual(logs.records[0].event, "token_creation_detached_failed")
        self.assertEqual(logs.records[0].error_type, "DatabaseError")


if __name__ == "__main__":
    unittest.main()
