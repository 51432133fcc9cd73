from __future__ import annotations

import struct
from dataclasses import dataclass

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from .errors import MetadataError

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

CREATE_METADATA_ACCOUNT_V3 = 33
UPDATE_METADATA_ACCOUNT_V2 = 15

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200


@dataclass(slots=True, frozen=True)
class MetadataFields:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0


def find_metadata_address(mint: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )
    return address


def _borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def _borsh_option(payload: bytes | None) -> bytes:
    if payload is None:
        return b"\x00"
    return b"\x01" + payload


def check_metadata_fields(fields: MetadataFields) -> None:
    # Limits are byte lengths of the UTF-8 encoding.
    if len(fields.name.encode("utf-8")) > MAX_NAME_LENGTH:
        raise MetadataError(f"Metadata name exceeds {MAX_NAME_LENGTH} bytes")
    if len(fields.symbol.encode("utf-8")) > MAX_SYMBOL_LENGTH:
        raise MetadataError(f"Metadata symbol exceeds {MAX_SYMBOL_LENGTH} bytes")
    if len(fields.uri.encode("utf-8")) > MAX_URI_LENGTH:
        raise MetadataError(f"Metadata uri exceeds {MAX_URI_LENGTH} bytes")


def _encode_data_v2(fields: MetadataFields) -> bytes:
    check_metadata_fields(fields)
    return b"".join(
        [
            _borsh_string(fields.name),
            _borsh_string(fields.symbol),
            _borsh_string(fields.uri),
            struct.pack("<H", fields.seller_fee_basis_points),
            _borsh_option(None),  # creators
            _borsh_option(None),  # collection
            _borsh_option(None),  # uses
        ]
    )


def create_metadata_account_v3(
    *,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    fields: MetadataFields,
    is_mutable: bool = True,
) -> Instruction:
    data = b"".join(
        [
            bytes([CREATE_METADATA_ACCOUNT_V3]),
            _encode_data_v2(fields),
            struct.pack("<?", is_mutable),
            _borsh_option(None),  # collection_details
        ]
    )
    update_authority_is_signer = update_authority == payer or update_authority == mint_authority
    accounts = [
        AccountMeta(pubkey=find_metadata_address(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=update_authority_is_signer, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, data, accounts)


def update_metadata_account_v2(
    *,
    mint: Pubkey,
    update_authority: Pubkey,
    is_mutable: bool | None = None,
) -> Instruction:
    data = b"".join(
        [
            bytes([UPDATE_METADATA_ACCOUNT_V2]),
            _borsh_option(None),  # data
            _borsh_option(None),  # update_authority
            _borsh_option(None),  # primary_sale_happened
            _borsh_option(struct.pack("<?", is_mutable) if is_mutable is not None else None),
        ]
    )
    accounts = [
        AccountMeta(pubkey=find_metadata_address(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, data, accounts)


def revoke_update_authority(*, mint: Pubkey, update_authority: Pubkey) -> Instruction:
    return update_metadata_account_v2(mint=mint, update_authority=update_authority, is_mutable=False)


@dataclass(slots=True, frozen=True)
class MetadataState:
    update_authority: Pubkey
    mint: Pubkey
    name: str
    symbol: str
    uri: str
    is_mutable: bool


def _read_borsh_string(data: bytes, offset: int) -> tuple[str, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    offset += 4
    raw = data[offset : offset + length]
    if len(raw) != length:
        raise ValueError("Metadata account data is truncated")
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace"), offset + length


def parse_metadata_account(data: bytes) -> MetadataState:
    if len(data) < 65:
        raise ValueError("Metadata account data is too short")

    update_authority = Pubkey.from_bytes(data[1:33])
    mint = Pubkey.from_bytes(data[33:65])
    offset = 65
    name, offset = _read_borsh_string(data, offset)
    symbol, offset = _read_borsh_string(data, offset)
    uri, offset = _read_borsh_string(data, offset)
    offset += 2  # seller_fee_basis_points

    has_creators = data[offset]
    offset += 1
    if has_creators:
        (creator_count,) = struct.unpack_from("<I", data, offset)
        offset += 4 + creator_count * 34

    offset += 1  # primary_sale_happened
    if offset >= len(data):
        raise ValueError("Metadata account data is truncated")
    is_mutable = bool(data[offset])

    return MetadataState(
        update_authority=update_authority,
        mint=mint,
        name=name,
        symbol=symbol,
        uri=uri,
        is_mutable=is_mutable,
    )
