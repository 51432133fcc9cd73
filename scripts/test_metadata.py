from __future__ import annotations

import struct
import unittest

from solders.pubkey import Pubkey

from launchpad.minting.errors import MetadataError
from launchpad.minting.metadata import (
    CREATE_METADATA_ACCOUNT_V3,
    TOKEN_METADATA_PROGRAM_ID,
    UPDATE_METADATA_ACCOUNT_V2,
    MetadataFields,
    check_metadata_fields,
    create_metadata_account_v3,
    find_metadata_address,
    parse_metadata_account,
    revoke_update_authority,
)


def _padded(value: str, width: int) -> bytes:
    raw = value.encode("utf-8").ljust(width, b"\x00")
    return struct.pack("<I", len(raw)) + raw


def _make_account_data(*, update_authority: Pubkey, mint: Pubkey, is_mutable: bool) -> bytes:
    return b"".join(
        [
            b"\x04",
            bytes(update_authority),
            bytes(mint),
            _padded("DogeCoin", 32),
            _padded("DOGE", 10),
            _padded("https://example.com/doge.png", 200),
            struct.pack("<H", 0),
            b"\x01",
            struct.pack("<I", 1),
            bytes(update_authority) + b"\x01\x64",
            b"\x00",
            b"\x01" if is_mutable else b"\x00",
            b"\x00" * 16,
        ]
    )


class MetadataInstructionTests(unittest.TestCase):
    def test_create_instruction_layout(self) -> None:
        mint = Pubkey.new_unique()
        payer = Pubkey.new_unique()
        requester = Pubkey.new_unique()

        instruction = create_metadata_account_v3(
            mint=mint,
            mint_authority=payer,
            payer=payer,
            update_authority=requester,
            fields=MetadataFields(name="DogeCoin", symbol="DOGE", uri="https://example.com/doge.png"),
        )

        self.assertEqual(instruction.program_id, TOKEN_METADATA_PROGRAM_ID)
        self.assertEqual(instruction.data[0], CREATE_METADATA_ACCOUNT_V3)
        self.assertEqual(instruction.data[1:5], struct.pack("<I", len("DogeCoin")))
        self.assertEqual(instruction.accounts[0].pubkey, find_metadata_address(mint))
        self.assertFalse(instruction.accounts[4].is_signer)
        self.assertTrue(instruction.accounts[3].is_signer)

    def test_overlong_name_is_rejected(self) -> None:
        payer = Pubkey.new_unique()
        with self.assertRaises(MetadataError):
            create_metadata_account_v3(
                mint=Pubkey.new_unique(),
                mint_authority=payer,
                payer=payer,
                update_authority=payer,
                fields=MetadataFields(name="X" * 33, symbol="DOGE", uri=""),
            )

    def test_multibyte_name_is_measured_in_bytes(self) -> None:
        with self.assertRaises(MetadataError):
            check_metadata_fields(MetadataFields(name="\u00dc" * 20, symbol="DOGE", uri=""))
        check_metadata_fields(MetadataFields(name="\u00dc" * 16, symbol="DOGE", uri=""))

    def test_revoke_instruction_marks_immutable(self) -> None:
        authority = Pubkey.new_unique()
        instruction = revoke_update_authority(mint=Pubkey.new_unique(), update_authority=authority)

        self.assertEqual(bytes(instruction.data), bytes([UPDATE_METADATA_ACCOUNT_V2, 0, 0, 0, 1, 0]))
        self.assertTrue(instruction.accounts[1].is_signer)
        self.assertEqual(instruction.accounts[1].pubkey, authority)

    def test_parse_account_reads_mutability(self) -> None:
        authority = Pubkey.new_unique()
        mint = Pubkey.new_unique()

        state = parse_metadata_account(_make_account_data(update_authority=authority, mint=mint, is_mutable=False))

        self.assertEqual(state.update_authority, authority)
        self.assertEqual(state.mint, mint)
        self.assertEqual(state.name, "DogeCoin")
        self.assertEqual(state.symbol, "DOGE")
        self.assertEqual(state.uri, "https://example.com/doge.png")
        self.assertFalse(state.is_mutable)

    def test_parse_rejects_truncated_data(self) -> None:
        with self.assertRaises(ValueError):
            parse_metadata_account(b"\x04" * 20)


if __name__ == "__main__":
    unittest.main()
