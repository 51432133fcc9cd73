from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from launchpad.minting.chain import MintAuthorities
from launchpad.minting.metadata import MetadataFields, MetadataState
from launchpad.minting.types import TokenRecord


class FakeChain:
    def __init__(self) -> None:
        self.signer_pubkey = Pubkey.new_unique()
        self.mint = Pubkey.new_unique()
        self.token_account = Pubkey.new_unique()
        self.mint_authority: Pubkey | None = None
        self.freeze_authority: Pubkey | None = None
        self.minted = 0
        self.metadata: MetadataState | None = None
        self.calls: list[str] = []
        self.fail_attach_metadata = False
        self.unconfirmed_mint_attempts = 0
        self.created_mints: list[Pubkey] = []

    async def probe(self) -> str:
        self.calls.append("probe")
        return "11111111111111111111111111111111"

    async def create_mint(
        self,
        *,
        mint_keypair: Keypair,
        decimals: int,
        freeze_authority: Pubkey | None,
    ) -> Pubkey:
        self.calls.append("create_mint")
        self.mint = mint_keypair.pubkey()
        if self.mint not in self.created_mints:
            self.created_mints.append(self.mint)
        if self.unconfirmed_mint_attempts > 0:
            self.unconfirmed_mint_attempts -= 1
            raise RuntimeError("transaction confirmation timed out")
        self.mint_authority = self.signer_pubkey
        self.freeze_authority = freeze_authority
        return self.mint

    async def create_associated_account(self, *, mint: Pubkey, owner: Pubkey) -> Pubkey:
        self.calls.append("create_associated_account")
        return self.token_account

    async def mint_supply(self, *, mint: Pubkey, destination: Pubkey, amount: int) -> str | None:
        self.calls.append("mint_supply")
        self.minted = amount
        return "mint-sig"

    async def set_mint_authority(self, *, mint: Pubkey, new_authority: Pubkey | None) -> str | None:
        self.calls.append("set_mint_authority")
        self.mint_authority = new_authority
        return "authority-sig"

    async def attach_metadata(self, *, mint: Pubkey, fields: MetadataFields, update_authority: Pubkey) -> Pubkey:
        self.calls.append("attach_metadata")
        if self.fail_attach_metadata:
            raise RuntimeError("metadata program unavailable")
        self.metadata = MetadataState(
            update_authority=update_authority,
            mint=mint,
            name=fields.name,
            symbol=fields.symbol,
            uri=fields.uri,
            is_mutable=True,
        )
        return Pubkey.new_unique()

    async def revoke_metadata_authority(self, *, mint: Pubkey) -> str | None:
        self.calls.append("revoke_metadata_authority")
        if self.metadata is not None:
            self.metadata = replace(self.metadata, is_mutable=False)
        return "metadata-sig"

    async def fetch_mint_authorities(self, mint: Pubkey) -> MintAuthorities:
        self.calls.append("fetch_mint_authorities")
        return MintAuthorities(
            mint_authority=self.mint_authority,
            freeze_authority=self.freeze_authority,
        )

    async def fetch_metadata(self, mint: Pubkey) -> MetadataState | None:
        self.calls.append("fetch_metadata")
        return self.metadata


class InMemoryTokenStore:
    def __init__(self) -> None:
        self.records: list[TokenRecord] = []
        self.history: list[tuple[str, datetime]] = []
        self.fail_insert = False

    def add_history(self, wallet_address: str, created_at: datetime) -> None:
        self.history.append((wallet_address, created_at))

    async def count_recent_tokens(self, *, wallet_address: str, since: datetime) -> int:
        return sum(1 for wallet, created_at in self.history if wallet == wallet_address and created_at >= since)

    async def insert_token(self, *, record: TokenRecord) -> TokenRecord:
        if self.fail_insert:
            raise RuntimeError("permission denied on tokens collection")
        created_at = datetime.now(timezone.utc)
        saved = replace(record, id=f"token-{len(self.records) + 1}", created_at=created_at.isoformat())
        self.records.append(saved)
        self.history.append((record.creator_wallet, created_at))
        return saved


class InMemoryGuardStore:
    def __init__(self) -> None:
        self.guards: dict[str, str] = {}

    async def acquire_creation_guard(self, *, wallet_address: str, owner_id: str, ttl_seconds: int) -> bool:
        if wallet_address in self.guards:
            return False
        self.guards[wallet_address] = owner_id
        return True

    async def release_creation_guard(self, *, wallet_address: str, owner_id: str) -> bool:
        if self.guards.get(wallet_address) != owner_id:
            return False
        del self.guards[wallet_address]
        return True
