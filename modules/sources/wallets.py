from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

from solders.keypair import Keypair

from modules.distribution.errors import DistributionValidationError

MIN_WALLET_COUNT = 1
MAX_WALLET_COUNT = 100


@dataclass(slots=True, frozen=True)
class GeneratedWallet:
    index: int
    public_address: str
    private_key_base64: str = field(repr=False)


def validate_wallet_count(raw_count: Any) -> int:
    message = f"Please enter a number between {MIN_WALLET_COUNT} and {MAX_WALLET_COUNT}."
    if isinstance(raw_count, bool):
        raise DistributionValidationError(message)
    try:
        count = float(str(raw_count).strip())
    except (TypeError, ValueError):
        raise DistributionValidationError(message) from None
    if not count.is_integer() or count < MIN_WALLET_COUNT or count > MAX_WALLET_COUNT:
        raise DistributionValidationError(message)
    return int(count)


def generate_wallets(count: Any) -> list[GeneratedWallet]:
    """Fresh keypairs numbered from 1; secrets stay in memory only."""
    total = validate_wallet_count(count)
    wallets: list[GeneratedWallet] = []
    for index in range(1, total + 1):
        keypair = Keypair()
        wallets.append(
            GeneratedWallet(
                index=index,
                public_address=str(keypair.pubkey()),
                private_key_base64=base64.b64encode(bytes(keypair)).decode("ascii"),
            )
        )
    return wallets
