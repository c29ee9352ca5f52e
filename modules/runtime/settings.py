from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from modules.chain.rpc import DEFAULT_CLUSTER, MAX_MULTIPLE_ACCOUNTS, normalize_cluster
from modules.distribution.fees import FALLBACK_FEE_LAMPORTS, SAFETY_BUFFER_LAMPORTS


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


@dataclass(slots=True)
class AppSettings:
    cluster: str
    rpc_url: str
    rpc_timeout_seconds: float
    rpc_commitment: str
    payer_public_key: str
    token_mint: str
    distribution_amount: str
    generate_wallet_count: int
    recipients_csv_path: str
    mainnet_ack_fees: bool
    mainnet_ack_irreversible: bool
    ata_lookup_chunk_size: int
    safety_buffer_lamports: int
    fallback_fee_lamports: int
    run_preflight: bool
    log_level: str

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            cluster=normalize_cluster(os.getenv("SOLANA_CLUSTER", DEFAULT_CLUSTER)),
            rpc_url=os.getenv("SOLANA_RPC_URL", "").strip(),
            rpc_timeout_seconds=max(1.0, to_float(os.getenv("RPC_TIMEOUT_SECONDS"), 8.0)),
            rpc_commitment=(os.getenv("RPC_COMMITMENT", "confirmed").strip() or "confirmed"),
            payer_public_key=os.getenv("PAYER_PUBLIC_KEY", "").strip(),
            token_mint=os.getenv("TOKEN_MINT", "").strip(),
            distribution_amount=os.getenv("DISTRIBUTION_AMOUNT", "").strip(),
            generate_wallet_count=min(100, max(0, to_int(os.getenv("GENERATE_WALLET_COUNT"), 0))),
            recipients_csv_path=os.getenv("RECIPIENTS_CSV", "").strip(),
            mainnet_ack_fees=to_bool(os.getenv("MAINNET_ACK_FEES"), False),
            mainnet_ack_irreversible=to_bool(os.getenv("MAINNET_ACK_IRREVERSIBLE"), False),
            ata_lookup_chunk_size=min(
                MAX_MULTIPLE_ACCOUNTS,
                max(1, to_int(os.getenv("ATA_LOOKUP_CHUNK_SIZE"), MAX_MULTIPLE_ACCOUNTS)),
            ),
            safety_buffer_lamports=max(
                0,
                to_int(os.getenv("SAFETY_BUFFER_LAMPORTS"), SAFETY_BUFFER_LAMPORTS),
            ),
            fallback_fee_lamports=max(
                0,
                to_int(os.getenv("FALLBACK_FEE_LAMPORTS"), FALLBACK_FEE_LAMPORTS),
            ),
            run_preflight=to_bool(os.getenv("RUN_PREFLIGHT"), False),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip() or "INFO",
        )
