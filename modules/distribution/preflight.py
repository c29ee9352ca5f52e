from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from modules.common import get_logger, log_event

from .addresses import derive_associated_token_address, to_pubkey
from .errors import require_capability
from .fees import fetch_recent_blockhash, require_inspection_entries, require_positive_amount
from .split import normalize_decimals
from .transactions import build_distribution_transaction
from .types import PreflightFailure, PreflightResult


def format_simulation_error(error: Any, logs: Any = None) -> str:
    error_text = error if isinstance(error, str) else json.dumps(error, separators=(",", ":"), default=str)
    first_log = logs[0] if isinstance(logs, (list, tuple)) and logs else ""
    if first_log:
        return f"{error_text} ({first_log})"
    return error_text


def _simulation_value(result: Any) -> dict[str, Any]:
    if isinstance(result, dict) and isinstance(result.get("value"), dict):
        return result["value"]
    if isinstance(result, dict):
        return result
    return {}


async def run_preflight(
    connection: Any,
    payer: Any,
    mint: Any,
    per_recipient_raw: Any,
    inspection: Any,
    *,
    logger: logging.Logger | None = None,
) -> PreflightResult:
    """Simulate one unsigned transfer per inspected recipient.

    Every entry is scanned. Simulation errors and per-recipient setup exceptions
    become ``PreflightFailure`` rows instead of aborting the pass.
    """
    resolved_logger = get_logger(logger)
    require_capability(
        connection,
        "simulate_transaction",
        "Connection does not support transaction simulation.",
    )
    payer_key = to_pubkey(payer)
    mint_key = to_pubkey(mint)
    amount_raw = require_positive_amount(per_recipient_raw)
    entries = require_inspection_entries(inspection)
    decimals = normalize_decimals(inspection.decimals)
    source_account = derive_associated_token_address(payer_key, mint_key)

    failures: list[PreflightFailure] = []
    for entry in entries:
        try:
            transaction = build_distribution_transaction(
                payer=payer_key,
                mint=mint_key,
                source_account=source_account,
                recipient=to_pubkey(entry.recipient),
                recipient_account=to_pubkey(entry.derived_account_address),
                amount_raw=amount_raw,
                decimals=decimals,
                include_create_account=entry.needs_creation,
                blockhash=await fetch_recent_blockhash(connection),
            )
            simulation = _simulation_value(await connection.simulate_transaction(transaction))
            simulation_error = simulation.get("err")
            if not simulation_error:
                continue
            failure = PreflightFailure(
                recipient=entry.recipient,
                error=format_simulation_error(simulation_error, simulation.get("logs")),
            )
        except asyncio.CancelledError:
            raise
        except Exception as error:
            failure = PreflightFailure(recipient=entry.recipient, error=str(error) or type(error).__name__)

        failures.append(failure)
        log_event(
            resolved_logger,
            level="warning",
            event="preflight_recipient_failed",
            message="Preflight simulation failed for recipient",
            recipient=failure.recipient,
            needs_creation=entry.needs_creation,
            error=failure.error,
        )

    scanned_count = len(entries)
    failed_count = len(failures)
    result = PreflightResult(
        passed=failed_count == 0 and scanned_count > 0,
        scanned_count=scanned_count,
        failed_count=failed_count,
        failures=tuple(failures),
    )
    log_event(
        resolved_logger,
        level="info" if result.passed else "warning",
        event="preflight_completed",
        message="Preflight simulation completed",
        mint=str(mint_key),
        scanned_count=scanned_count,
        failed_count=failed_count,
        passed=result.passed,
    )
    return result
