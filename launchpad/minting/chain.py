from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import VersionedTransaction
from spl.token.async_client import AsyncToken
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    AuthorityType,
    InitializeMintParams,
    get_associated_token_address,
    initialize_mint,
)

from launchpad.common import log_event

from .metadata import (
    MetadataFields,
    MetadataState,
    create_metadata_account_v3,
    find_metadata_address,
    parse_metadata_account,
    revoke_update_authority,
)


def load_keypair(raw: str) -> Keypair:
    value = raw.strip()
    if not value:
        raise ValueError("PRIVATE_KEY is required.")

    if value.startswith("["):
        arr = json.loads(value)
        if not isinstance(arr, list):
            raise ValueError("PRIVATE_KEY JSON must be an integer array.")
        return Keypair.from_bytes(bytes(arr))

    with contextlib.suppress(Exception):
        return Keypair.from_base58_string(value)

    raise ValueError("Unsupported PRIVATE_KEY format.")


@dataclass(slots=True, frozen=True)
class MintAuthorities:
    mint_authority: Pubkey | None
    freeze_authority: Pubkey | None


class SolanaChainGateway:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_url: str,
        signer: Keypair,
        client: AsyncClient | None = None,
    ) -> None:
        self._logger = logger
        self._rpc_url = rpc_url
        self._signer = signer
        self._client = client
        self._tx_opts = TxOpts(skip_confirmation=False, preflight_commitment=Confirmed)

    @property
    def signer_pubkey(self) -> Pubkey:
        return self._signer.pubkey()

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self._rpc_url, commitment=Confirmed)
        return self._client

    async def connect(self) -> None:
        await self.probe()
        log_event(
            self._logger,
            level="info",
            event="rpc_connected",
            message="Connected to Solana RPC",
            rpc_url=self._rpc_url,
            signer=str(self.signer_pubkey),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def healthcheck(self) -> None:
        await self.probe()

    async def probe(self) -> str:
        response = await self.client.get_latest_blockhash(Confirmed)
        blockhash = response.value.blockhash
        if blockhash is None:
            raise RuntimeError("Missing blockhash in RPC response.")
        return str(blockhash)

    def _token(self, mint: Pubkey) -> AsyncToken:
        return AsyncToken(self.client, mint, TOKEN_PROGRAM_ID, self._signer)

    async def create_mint(
        self,
        *,
        mint_keypair: Keypair,
        decimals: int,
        freeze_authority: Pubkey | None,
    ) -> Pubkey:
        mint = mint_keypair.pubkey()
        # A previous attempt may have landed before its confirmation failed.
        existing = await self.client.get_account_info(mint)
        if existing.value is not None:
            log_event(
                self._logger,
                level="info",
                event="token_mint_exists",
                message="Mint account already exists",
                mint=str(mint),
            )
            return mint

        rent = await self.client.get_minimum_balance_for_rent_exemption(MINT_LEN)
        instructions = [
            create_account(
                CreateAccountParams(
                    from_pubkey=self._signer.pubkey(),
                    to_pubkey=mint,
                    lamports=rent.value,
                    space=MINT_LEN,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=decimals,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    mint_authority=self._signer.pubkey(),
                    freeze_authority=freeze_authority,
                )
            ),
        ]
        await self._send_instructions(instructions, extra_signers=[mint_keypair])
        return mint

    async def create_associated_account(self, *, mint: Pubkey, owner: Pubkey) -> Pubkey:
        expected = get_associated_token_address(owner, mint)
        existing = await self.client.get_account_info(expected)
        if existing.value is not None:
            log_event(
                self._logger,
                level="info",
                event="token_account_exists",
                message="Associated token account already exists",
                mint=str(mint),
                token_account=str(expected),
            )
            return expected

        return await self._token(mint).create_associated_token_account(owner=owner, skip_confirmation=False)

    async def token_account_amount(self, token_account: Pubkey) -> int:
        response = await self.client.get_token_account_balance(token_account)
        return int(response.value.amount)

    async def mint_supply(self, *, mint: Pubkey, destination: Pubkey, amount: int) -> str | None:
        # A previous attempt may have landed before its confirmation failed.
        with contextlib.suppress(Exception):
            if await self.token_account_amount(destination) >= amount:
                return None

        response = await self._token(mint).mint_to(
            dest=destination,
            mint_authority=self._signer,
            amount=amount,
            opts=self._tx_opts,
        )
        return str(response.value)

    async def fetch_mint_authorities(self, mint: Pubkey) -> MintAuthorities:
        info = await self._token(mint).get_mint_info()
        return MintAuthorities(
            mint_authority=info.mint_authority,
            freeze_authority=info.freeze_authority,
        )

    async def set_mint_authority(self, *, mint: Pubkey, new_authority: Pubkey | None) -> str | None:
        current = await self.fetch_mint_authorities(mint)
        if current.mint_authority == new_authority:
            return None
        if current.mint_authority != self._signer.pubkey():
            raise RuntimeError(f"Service signer no longer holds mint authority for {mint}")

        response = await self._token(mint).set_authority(
            account=mint,
            current_authority=self._signer,
            authority_type=AuthorityType.MINT_TOKENS,
            new_authority=new_authority,
            opts=self._tx_opts,
        )
        return str(response.value)

    async def _send_instructions(
        self,
        instructions: list[Instruction],
        *,
        extra_signers: list[Keypair] | None = None,
    ) -> str:
        blockhash_response = await self.client.get_latest_blockhash(Confirmed)
        message = MessageV0.try_compile(
            self._signer.pubkey(),
            instructions,
            [],
            blockhash_response.value.blockhash,
        )
        transaction = VersionedTransaction(message, [self._signer, *(extra_signers or [])])
        response = await self.client.send_raw_transaction(bytes(transaction), opts=self._tx_opts)
        return str(response.value)

    async def fetch_metadata(self, mint: Pubkey) -> MetadataState | None:
        response = await self.client.get_account_info(find_metadata_address(mint))
        if response.value is None:
            return None
        return parse_metadata_account(bytes(response.value.data))

    async def attach_metadata(
        self,
        *,
        mint: Pubkey,
        fields: MetadataFields,
        update_authority: Pubkey,
    ) -> Pubkey:
        metadata_address = find_metadata_address(mint)
        if await self.fetch_metadata(mint) is not None:
            return metadata_address

        instruction = create_metadata_account_v3(
            mint=mint,
            mint_authority=self._signer.pubkey(),
            payer=self._signer.pubkey(),
            update_authority=update_authority,
            fields=fields,
        )
        await self._send_instructions([instruction])
        return metadata_address

    async def revoke_metadata_authority(self, *, mint: Pubkey) -> str | None:
        state = await self.fetch_metadata(mint)
        if state is None:
            raise RuntimeError(f"Metadata account for {mint} does not exist")
        if not state.is_mutable:
            return None
        if state.update_authority != self._signer.pubkey():
            raise RuntimeError(f"Service signer is not the metadata update authority for {mint}")

        return await self._send_instructions(
            [revoke_update_authority(mint=mint, update_authority=self._signer.pubkey())]
        )

    async def fetch_transaction(self, signature: str) -> Any:
        return await self.client.get_transaction(
            Signature.from_string(signature),
            encoding="base64",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
