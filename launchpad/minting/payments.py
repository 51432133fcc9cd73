from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, Sequence

from solders.pubkey import Pubkey

from launchpad.common import log_event

from .errors import PaymentVerificationError

LAMPORTS_PER_SOL = 1_000_000_000

BASE_FEE_SOL = Decimal("0.15")
REVOKE_MINT_FEE_SOL = Decimal("0.05")
REVOKE_FREEZE_FEE_SOL = Decimal("0.05")


@dataclass(slots=True, frozen=True)
class FeeQuote:
    base_sol: Decimal
    revoke_mint_sol: Decimal
    revoke_freeze_sol: Decimal

    @property
    def total_sol(self) -> Decimal:
        return self.base_sol + self.revoke_mint_sol + self.revoke_freeze_sol

    @property
    def total_lamports(self) -> int:
        return int(self.total_sol * LAMPORTS_PER_SOL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "baseSol": str(self.base_sol),
            "revokeMintSol": str(self.revoke_mint_sol),
            "revokeFreezeSol": str(self.revoke_freeze_sol),
            "totalSol": str(self.total_sol),
            "totalLamports": self.total_lamports,
        }


def quote_fee(*, revoke_mint: bool, revoke_freeze: bool) -> FeeQuote:
    return FeeQuote(
        base_sol=BASE_FEE_SOL,
        revoke_mint_sol=REVOKE_MINT_FEE_SOL if revoke_mint else Decimal("0"),
        revoke_freeze_sol=REVOKE_FREEZE_FEE_SOL if revoke_freeze else Decimal("0"),
    )


def quote_fee_lamports(*, revoke_mint: bool, revoke_freeze: bool) -> int:
    return quote_fee(revoke_mint=revoke_mint, revoke_freeze=revoke_freeze).total_lamports


def fee_wallet_delta(
    *,
    account_keys: Sequence[Pubkey],
    num_required_signatures: int,
    pre_balances: Sequence[int],
    post_balances: Sequence[int],
    payer: Pubkey,
    fee_wallet: Pubkey,
) -> int:
    keys = list(account_keys)
    if payer not in keys[:num_required_signatures]:
        raise PaymentVerificationError("Payment transaction was not signed by the requesting wallet")
    if fee_wallet not in keys:
        raise PaymentVerificationError("Payment transaction does not pay the fee wallet")

    index = keys.index(fee_wallet)
    if index >= len(pre_balances) or index >= len(post_balances):
        raise PaymentVerificationError("Payment transaction balances are incomplete")
    return int(post_balances[index]) - int(pre_balances[index])


class TransactionFetcher(Protocol):
    async def fetch_transaction(self, signature: str) -> Any: ...


class PaymentVerifier:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        fetcher: TransactionFetcher,
        fee_wallet: Pubkey,
        enabled: bool = False,
    ) -> None:
        self._logger = logger
        self._fetcher = fetcher
        self._fee_wallet = fee_wallet
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def fee_wallet(self) -> Pubkey:
        return self._fee_wallet

    async def verify(self, *, signature: str, payer: str, expected_lamports: int) -> None:
        if not signature:
            raise PaymentVerificationError("Missing payment transaction signature")
        if not self._enabled:
            log_event(
                self._logger,
                level="debug",
                event="payment_verification_skipped",
                message="Payment signature accepted without on-chain verification",
                signature=signature,
            )
            return

        try:
            response = await self._fetcher.fetch_transaction(signature)
        except ValueError as error:
            raise PaymentVerificationError("Invalid payment transaction signature") from error

        value = getattr(response, "value", None)
        if value is None:
            raise PaymentVerificationError("Payment transaction was not found or is not confirmed yet")

        meta = value.transaction.meta
        if meta is None or meta.err is not None:
            raise PaymentVerificationError("Payment transaction failed on-chain")

        message = value.transaction.transaction.message
        delta = fee_wallet_delta(
            account_keys=message.account_keys,
            num_required_signatures=message.header.num_required_signatures,
            pre_balances=meta.pre_balances,
            post_balances=meta.post_balances,
            payer=Pubkey.from_string(payer),
            fee_wallet=self._fee_wallet,
        )
        if delta < expected_lamports:
            raise PaymentVerificationError(
                f"Payment of {delta} lamports is below the required {expected_lamports} lamports"
            )

        log_event(
            self._logger,
            level="info",
            event="payment_verified",
            message="Payment transaction verified",
            signature=signature,
            lamports=delta,
        )
