from __future__ import annotations

import asyncio
import logging
from typing import Any

from solders.pubkey import Pubkey
from solders.transaction import Transaction

from modules.common import get_logger, log_event

from .addresses import derive_associated_token_address, to_pubkey
from .errors import DistributionValidationError, require_capability
from .split import normalize_decimals, normalize_raw_amount
from .transactions import TOKEN_ACCOUNT_SIZE, build_distribution_transaction
from .types import AtaInspectionEntry, AtaInspectionResult, FeeHeadroomEstimate

SAFETY_BUFFER_LAMPORTS = 2_000_000
FALLBACK_FEE_LAMPORTS = 5_000


def require_inspection_entries(inspection: AtaInspectionResult | None) -> tuple[AtaInspectionEntry, ...]:
    entries = tuple(getattr(inspection, "entries", None) or ())
    if not entries:
        raise DistributionValidationError("Account inspection has no recipients.")
    return entries


def require_positive_amount(per_recipient_raw: Any) -> int:
    amount_raw = normalize_raw_amount(per_recipient_raw)
    if amount_raw <= 0:
        raise DistributionValidationError("Per-recipient amount must be greater than zero.")
    return amount_raw


async def fetch_recent_blockhash(connection: Any) -> str | None:
    """Fresh blockhash when the connection can provide one, otherwise ``None``."""
    if not callable(getattr(connection, "get_latest_blockhash", None)):
        return None
    return await connection.get_latest_blockhash()


async def price_transaction(
    connection: Any,
    transaction: Transaction,
    *,
    fallback_fee_lamports: int,
    logger: logging.Logger,
    shape: str,
) -> int:
    if not callable(getattr(connection, "get_fee_for_message", None)):
        log_event(
            logger,
            level="info",
            event="fee_price_fallback",
            message="Connection cannot price messages; using fallback fee",
            shape=shape,
            fallback_fee_lamports=fallback_fee_lamports,
        )
        return fallback_fee_lamports

    try:
        fee = await connection.get_fee_for_message(transaction.message)
    except asyncio.CancelledError:
        raise
    except Exception as error:
        log_event(
            logger,
            level="warning",
            event="fee_price_fallback",
            message="Fee pricing failed; using fallback fee",
            shape=shape,
            fallback_fee_lamports=fallback_fee_lamports,
            error=str(error),
        )
        return fallback_fee_lamports

    if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
        log_event(
            logger,
            level="info",
            event="fee_price_fallback",
            message="Node returned no fee for message; using fallback fee",
            shape=shape,
            fallback_fee_lamports=fallback_fee_lamports,
        )
        return fallback_fee_lamports
    return fee


async def _priced_shape(
    connection: Any,
    *,
    payer: Pubkey,
    mint: Pubkey,
    source_account: Pubkey,
    entry: AtaInspectionEntry,
    amount_raw: int,
    decimals: int,
    include_create_account: bool,
    fallback_fee_lamports: int,
    logger: logging.Logger,
) -> int:
    blockhash = await fetch_recent_blockhash(connection)
    transaction = build_distribution_transaction(
        payer=payer,
        mint=mint,
        source_account=source_account,
        recipient=to_pubkey(entry.recipient),
        recipient_account=to_pubkey(entry.derived_account_address),
        amount_raw=amount_raw,
        decimals=decimals,
        include_create_account=include_create_account,
        blockhash=blockhash,
    )
    return await price_transaction(
        connection,
        transaction,
        fallback_fee_lamports=fallback_fee_lamports,
        logger=logger,
        shape="create_and_transfer" if include_create_account else "transfer",
    )


async def estimate_fee_headroom(
    connection: Any,
    payer: Any,
    mint: Any,
    per_recipient_raw: Any,
    inspection: AtaInspectionResult,
    *,
    safety_buffer_lamports: int = SAFETY_BUFFER_LAMPORTS,
    fallback_fee_lamports: int = FALLBACK_FEE_LAMPORTS,
    logger: logging.Logger | None = None,
) -> FeeHeadroomEstimate:
    """Compare the payer's balance with fees, rent for new accounts and a safety buffer.

    Two representative transactions are priced: a plain transfer into an existing
    account and a transfer that also creates the recipient's account. Rent is looked
    up once and applied to every missing account.
    """
    resolved_logger = get_logger(logger)
    if connection is None:
        raise DistributionValidationError("Missing Solana connection for fee headroom estimation.")
    require_capability(connection, "get_balance", "Connection does not support balance lookup.")
    require_capability(
        connection,
        "get_minimum_balance_for_rent_exemption",
        "Connection does not support rent lookup.",
    )

    payer_key = to_pubkey(payer)
    mint_key = to_pubkey(mint)
    amount_raw = require_positive_amount(per_recipient_raw)
    entries = require_inspection_entries(inspection)
    decimals = normalize_decimals(inspection.decimals)
    source_account = derive_associated_token_address(payer_key, mint_key)

    existing_entry = next((entry for entry in entries if not entry.needs_creation), entries[0])
    missing_entry = next((entry for entry in entries if entry.needs_creation), entries[0])
    missing_count = sum(1 for entry in entries if entry.needs_creation)
    existing_count = len(entries) - missing_count

    shape_args = {
        "payer": payer_key,
        "mint": mint_key,
        "source_account": source_account,
        "amount_raw": amount_raw,
        "decimals": decimals,
        "fallback_fee_lamports": fallback_fee_lamports,
        "logger": resolved_logger,
    }
    payer_balance, rent_per_account, fee_existing, fee_missing = await asyncio.gather(
        connection.get_balance(str(payer_key)),
        connection.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SIZE),
        _priced_shape(connection, entry=existing_entry, include_create_account=False, **shape_args),
        _priced_shape(connection, entry=missing_entry, include_create_account=True, **shape_args),
    )

    required_balance = (
        fee_existing * existing_count
        + fee_missing * missing_count
        + rent_per_account * missing_count
        + safety_buffer_lamports
    )
    estimate = FeeHeadroomEstimate(
        payer_balance=int(payer_balance),
        required_balance=required_balance,
        fee_per_existing_account=fee_existing,
        fee_per_missing_account=fee_missing,
        rent_per_new_account=int(rent_per_account),
        missing_count=missing_count,
        existing_count=existing_count,
        safety_buffer=safety_buffer_lamports,
        passes=int(payer_balance) >= required_balance,
    )
    log_event(
        resolved_logger,
        level="info" if estimate.passes else "warning",
        event="fee_headroom_estimated",
        message="Fee headroom estimated",
        payer=str(payer_key),
        payer_balance=estimate.payer_balance,
        required_balance=estimate.required_balance,
        missing_count=missing_count,
        existing_count=existing_count,
        passes=estimate.passes,
    )
    return estimate
