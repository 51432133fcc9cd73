from __future__ import annotations

import logging
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from solders.pubkey import Pubkey

from launchpad.minting.errors import (
    DatabaseError,
    NonRetryableChainError,
    RateLimitError,
    ValidationError,
    describe_error,
)
from launchpad.minting.orchestrator import TokenCreationOrchestrator
from launchpad.minting.payments import PaymentVerifier
from launchpad.minting.rate_limit import RateLimiter
from launchpad.minting.types import CreationStep, StepStatus, TokenCreationRequest
from launchpad_fakes import FakeChain, InMemoryGuardStore, InMemoryTokenStore


def _make_request(wallet: str, **overrides: object) -> TokenCreationRequest:
    values: dict[str, object] = {
        "wallet_address": wallet,
        "name": "DogeCoin",
        "symbol": "DOGE",
        "supply": 1_000_000_000,
        "decimals": 9,
        "revoke_mint": True,
        "revoke_freeze": True,
        "revoke_metadata_authority": False,
        "payment_transaction_id": "payment-signature",
    }
    values.update(overrides)
    return TokenCreationRequest(**values)  # type: ignore[arg-type]


class OrchestratorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        logger = logging.getLogger("test.orchestrator")
        self.wallet = str(Pubkey.new_unique())
        self.chain = FakeChain()
        self.records = InMemoryTokenStore()
        self.guards = InMemoryGuardStore()
        self.sleep = AsyncMock()
        self.orchestrator = TokenCreationOrchestrator(
            logger=logger,
            chain=self.chain,
            records=self.records,
            rate_limiter=RateLimiter(logger=logger, records=self.records, guards=self.guards),
            payment_verifier=PaymentVerifier(
                logger=logger,
                fetcher=MagicMock(),
                fee_wallet=self.chain.signer_pubkey,
                enabled=False,
            ),
            network="devnet",
            sleep=self.sleep,
        )

    async def test_full_revocation_scenario(self) -> None:
        result = await self.orchestrator.create_token(_make_request(self.wallet))
        record = result.record

        self.assertIsNone(record.mint_authority)
        self.assertIsNone(record.freeze_authority)
        self.assertTrue(record.revocation_verification.mint)
        self.assertTrue(record.revocation_verification.freeze)
        self.assertTrue(record.revocation_verification.metadata)
        self.assertEqual(record.mint_address, str(self.chain.mint))
        self.assertEqual(record.id, "token-1")
        self.assertEqual(self.chain.minted, 1_000_000_000 * 10**9)
        self.assertEqual(self.guards.guards, {})
        self.assertNotIn("attach_metadata", self.chain.calls)

        token = result.to_response_token()
        self.assertEqual(token["mintAddress"], str(self.chain.mint))
        self.assertEqual(token["verificationStatus"], {"mint": True, "freeze": True, "metadata": True})

    async def test_progress_is_monotonic_per_step(self) -> None:
        seen = []
        result = await self.orchestrator.create_token(_make_request(self.wallet), on_progress=seen.append)

        self.assertEqual(seen, result.steps)
        completed = [event.step for event in seen if event.status is StepStatus.COMPLETED]
        self.assertEqual(
            completed,
            [
                CreationStep.PAYMENT,
                CreationStep.MINT,
                CreationStep.METADATA,
                CreationStep.REVOKES,
                CreationStep.VERIFICATION,
            ],
        )

    async def test_authorities_are_handed_to_requester_when_not_revoked(self) -> None:
        result = await self.orchestrator.create_token(
            _make_request(self.wallet, revoke_mint=False, revoke_freeze=False)
        )

        self.assertEqual(result.record.mint_authority, self.wallet)
        self.assertEqual(result.record.freeze_authority, self.wallet)
        self.assertTrue(result.record.revocation_verification.mint)
        self.assertTrue(result.record.revocation_verification.freeze)

    async def test_metadata_attach_and_revoke(self) -> None:
        result = await self.orchestrator.create_token(
            _make_request(
                self.wallet,
                image_url="https://example.com/doge.png",
                revoke_metadata_authority=True,
            )
        )

        self.assertEqual(result.record.metadata_uri, "https://example.com/doge.png")
        self.assertTrue(result.record.revocation_verification.metadata)
        self.assertIsNotNone(self.chain.metadata)
        self.assertEqual(self.chain.metadata.update_authority, self.chain.signer_pubkey)
        self.assertIn("revoke_metadata_authority", self.chain.calls)

    async def test_metadata_failure_is_not_fatal(self) -> None:
        self.chain.fail_attach_metadata = True

        result = await self.orchestrator.create_token(
            _make_request(
                self.wallet,
                image_url="https://example.com/doge.png",
                revoke_metadata_authority=True,
            )
        )

        self.assertIsNone(result.record.metadata_uri)
        self.assertEqual(self.chain.calls.count("attach_metadata"), 3)
        self.assertNotIn("revoke_metadata_authority", self.chain.calls)
        self.assertEqual(len(self.records.records), 1)
        self.assertFalse(result.record.revocation_verification.metadata)

    async def test_metadata_revocation_without_image_is_unverified(self) -> None:
        result = await self.orchestrator.create_token(_make_request(self.wallet, revoke_metadata_authority=True))

        self.assertNotIn("attach_metadata", self.chain.calls)
        self.assertIsNone(result.record.metadata_uri)
        self.assertTrue(result.record.revocation_verification.mint)
        self.assertFalse(result.record.revocation_verification.metadata)

    async def test_multibyte_name_over_limit_never_touches_chain(self) -> None:
        with self.assertRaises(ValidationError):
            await self.orchestrator.create_token(
                _make_request(self.wallet, name="\u00dc" * 20, image_url="https://example.com/doge.png")
            )

        self.assertEqual(self.chain.calls, [])

    async def test_unconfirmed_mint_is_reused_on_retry(self) -> None:
        self.chain.unconfirmed_mint_attempts = 1

        result = await self.orchestrator.create_token(_make_request(self.wallet))

        self.assertEqual(self.chain.calls.count("create_mint"), 2)
        self.assertEqual(len(self.chain.created_mints), 1)
        self.assertEqual(result.record.mint_address, str(self.chain.created_mints[0]))

    async def test_persistence_failure_leaves_mint_on_chain(self) -> None:
        self.records.fail_insert = True

        with self.assertRaises(DatabaseError) as ctx:
            await self.orchestrator.create_token(_make_request(self.wallet))

        self.assertIn("create_mint", self.chain.calls)
        self.assertEqual(ctx.exception.mint_address, str(self.chain.mint))
        self.assertIn("could not be saved", describe_error(ctx.exception))
        self.assertEqual(self.records.records, [])
        self.assertEqual(self.guards.guards, {})

    async def test_rate_limited_wallet_never_touches_chain(self) -> None:
        self.records.add_history(self.wallet, datetime.now(timezone.utc) - timedelta(seconds=30))

        with self.assertRaises(RateLimitError):
            await self.orchestrator.create_token(_make_request(self.wallet))

        self.assertEqual(self.chain.calls, [])

    async def test_second_request_within_window_is_rejected(self) -> None:
        await self.orchestrator.create_token(_make_request(self.wallet))

        with self.assertRaises(RateLimitError):
            await self.orchestrator.create_token(_make_request(self.wallet))

    async def test_invalid_request_fails_validation(self) -> None:
        with self.assertRaises(ValidationError):
            await self.orchestrator.create_token(_make_request(self.wallet, name="<b></b>"))

        self.assertEqual(self.chain.calls, [])

    async def test_failed_step_is_reported_as_error(self) -> None:
        self.chain.create_mint = AsyncMock(side_effect=RuntimeError("insufficient funds for rent"))  # type: ignore[method-assign]
        seen = []

        with self.assertRaises(NonRetryableChainError):
            await self.orchestrator.create_token(_make_request(self.wallet), on_progress=seen.append)

        self.assertEqual(self.chain.create_mint.await_count, 1)
        self.assertEqual(seen[-1].step, CreationStep.MINT)
        self.assertEqual(seen[-1].status, StepStatus.ERROR)


if __name__ == "__main__":
    unittest.main()
