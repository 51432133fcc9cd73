from __future__ import annotations

import re
from dataclasses import replace
from typing import Any, Mapping

from solders.pubkey import Pubkey

from .errors import ValidationError
from .metadata import MAX_NAME_LENGTH, MAX_URI_LENGTH
from .types import MAX_DECIMALS, MAX_SYMBOL_LENGTH, TokenCreationRequest

HTML_TAG_RE = re.compile(r"<[^>]*>")
SYMBOL_DISALLOWED_RE = re.compile(r"[^A-Z0-9]")

MAX_BASE_UNITS = 2**64 - 1


def strip_html(value: str | None) -> str:
    if not value:
        return ""
    return HTML_TAG_RE.sub("", value).strip()


def sanitize_symbol(value: str | None) -> str:
    if not value:
        return ""
    return SYMBOL_DISALLOWED_RE.sub("", strip_html(value).upper())


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field_name} must be an integer")


def _optional_text(value: Any, *, field_name: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    return value


def parse_request(payload: Mapping[str, Any]) -> TokenCreationRequest:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")

    token_data = payload.get("tokenData")
    if not isinstance(token_data, Mapping):
        raise ValidationError("Missing required fields")

    return TokenCreationRequest(
        wallet_address=str(payload.get("walletAddress") or ""),
        name=str(token_data.get("name") or ""),
        symbol=str(token_data.get("symbol") or ""),
        description=_optional_text(token_data.get("description"), field_name="description"),
        image_url=_optional_text(token_data.get("imageUrl"), field_name="imageUrl"),
        supply=_to_int(token_data.get("supply"), field_name="supply"),
        decimals=_to_int(token_data.get("decimals", 9), field_name="decimals"),
        revoke_mint=_to_bool(token_data.get("revokeMint")),
        revoke_freeze=_to_bool(token_data.get("revokeFreeze")),
        revoke_metadata_authority=_to_bool(token_data.get("revokeMetadata")),
        payment_transaction_id=str(payload.get("transactionSignature") or ""),
    )


def sanitize_request(request: TokenCreationRequest) -> TokenCreationRequest:
    wallet_address = (request.wallet_address or "").strip()
    name = strip_html(request.name)
    symbol = sanitize_symbol(request.symbol)

    if not wallet_address or not name or not symbol:
        raise ValidationError("Missing required fields")
    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise ValidationError(f"Symbol must be at most {MAX_SYMBOL_LENGTH} characters")
    if len(name.encode("utf-8")) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} bytes")

    try:
        Pubkey.from_string(wallet_address)
    except ValueError as error:
        raise ValidationError("Invalid Solana wallet address") from error

    if request.supply <= 0:
        raise ValidationError("Supply must be a positive integer")
    if not 0 <= request.decimals <= MAX_DECIMALS:
        raise ValidationError(f"Decimals must be between 0 and {MAX_DECIMALS}")
    if request.supply * (10**request.decimals) > MAX_BASE_UNITS:
        raise ValidationError("Supply is too large for the requested decimals")

    payment_transaction_id = (request.payment_transaction_id or "").strip()
    if not payment_transaction_id:
        raise ValidationError("Missing payment transaction signature")

    description = strip_html(request.description) or None
    image_url = (request.image_url or "").strip() or None
    if image_url is not None and len(image_url.encode("utf-8")) > MAX_URI_LENGTH:
        raise ValidationError(f"Image URL must be at most {MAX_URI_LENGTH} bytes")

    return replace(
        request,
        wallet_address=wallet_address,
        name=name,
        symbol=symbol,
        description=description,
        image_url=image_url,
        payment_transaction_id=payment_transaction_id,
    )
