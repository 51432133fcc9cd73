from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

DEFAULT_RPC_URLS = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
}


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def normalize_network(value: str) -> str:
    network = (value or "").strip().lower()
    if network in {"mainnet", "mainnet-beta"}:
        return "mainnet-beta"
    if network in DEFAULT_RPC_URLS:
        return network
    return "devnet"


@dataclass(slots=True)
class AppSettings:
    solana_network: str
    solana_rpc_url: str
    private_key: str = field(repr=False)
    fee_wallet_address: str
    verify_payment: bool
    retry_max_attempts: int
    retry_initial_delay_seconds: float
    rate_limit_window_seconds: float
    http_host: str
    http_port: int

    @classmethod
    def from_env(cls) -> "AppSettings":
        network = normalize_network(os.getenv("SOLANA_NETWORK", "devnet"))
        return cls(
            solana_network=network,
            solana_rpc_url=os.getenv("SOLANA_RPC_URL", "").strip() or DEFAULT_RPC_URLS[network],
            private_key=os.getenv("PRIVATE_KEY", ""),
            fee_wallet_address=os.getenv("FEE_WALLET_ADDRESS", "").strip(),
            verify_payment=to_bool(os.getenv("VERIFY_PAYMENT"), False),
            retry_max_attempts=max(1, to_int(os.getenv("RETRY_MAX_ATTEMPTS"), 3)),
            retry_initial_delay_seconds=max(
                0.0,
                to_float(os.getenv("RETRY_INITIAL_DELAY_SECONDS"), 1.0),
            ),
            rate_limit_window_seconds=max(
                1.0,
                to_float(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60.0),
            ),
            http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
            http_port=max(1, to_int(os.getenv("HTTP_PORT") or os.getenv("PORT"), 8080)),
        )
