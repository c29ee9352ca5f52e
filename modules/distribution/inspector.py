from __future__ import annotations

import logging
from typing import Any, Iterable

from solders.pubkey import Pubkey

from modules.common import get_logger, log_event

from .addresses import TOKEN_PROGRAM_ID, derive_associated_token_address, to_pubkey
from .errors import DistributionValidationError, require_capability
from .recipients import address_of
from .split import normalize_decimals
from .types import AtaInspectionEntry, AtaInspectionResult

# getMultipleAccounts accepts at most 100 keys per request.
ATA_LOOKUP_CHUNK_SIZE = 100


def _chunks(items: list[str], size: int) -> Iterable[tuple[int, list[str]]]:
    for start in range(0, len(items), size):
        yield start, items[start : start + size]


async def inspect_accounts(
    connection: Any,
    mint: Any,
    recipients: Any,
    *,
    decimals: int,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
    chunk_size: int = ATA_LOOKUP_CHUNK_SIZE,
    logger: logging.Logger | None = None,
) -> AtaInspectionResult:
    """Derive every recipient's token account and look up which ones already exist.

    Lookups go out in chunks of at most ``chunk_size`` addresses. The result keeps the
    input order and holds exactly one entry per recipient.
    """
    require_capability(
        connection,
        "get_multiple_accounts_info",
        "Missing Solana connection for account inspection.",
    )
    token_decimals = normalize_decimals(decimals)
    recipient_list = list(recipients or ())
    if not recipient_list:
        raise DistributionValidationError("No recipients provided for account inspection.")
    if chunk_size < 1 or chunk_size > ATA_LOOKUP_CHUNK_SIZE:
        raise DistributionValidationError(
            f"Account lookup chunk size must be between 1 and {ATA_LOOKUP_CHUNK_SIZE}."
        )

    mint_key = to_pubkey(mint)
    owners = [to_pubkey(address_of(item)) for item in recipient_list]
    derived = [
        str(derive_associated_token_address(owner, mint_key, token_program_id))
        for owner in owners
    ]

    needs_creation = [True] * len(derived)
    for start, chunk in _chunks(derived, chunk_size):
        infos = await connection.get_multiple_accounts_info(chunk) or []
        for offset in range(len(chunk)):
            info = infos[offset] if offset < len(infos) else None
            needs_creation[start + offset] = info is None

    entries = [
        AtaInspectionEntry(
            recipient=str(owner),
            derived_account_address=address,
            needs_creation=missing,
        )
        for owner, address, missing in zip(owners, derived, needs_creation)
    ]
    result = AtaInspectionResult.from_entries(mint=str(mint_key), entries=entries, decimals=token_decimals)
    log_event(
        get_logger(logger),
        level="info",
        event="ata_inspection_completed",
        message="Recipient token accounts inspected",
        mint=result.mint,
        recipient_count=len(entries),
        missing_count=result.missing_count,
        existing_count=result.existing_count,
        chunk_size=chunk_size,
    )
    return result
