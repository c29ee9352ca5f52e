from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from modules.common import guarded_call, log_event
from modules.distribution.coordinator import DistributionCoordinator
from modules.distribution.state import run_recipient_set
from modules.runtime import AppSettings, setup_logger
from modules.storage import RedisReportStore, ReportStoreSettings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Plan an SPL token distribution and optionally simulate it before any transfer."
    )
    parser.add_argument("--cluster", help="devnet, testnet or mainnet-beta")
    parser.add_argument("--rpc-url", help="Explicit RPC endpoint")
    parser.add_argument("--payer", help="Connected wallet public key")
    parser.add_argument("--mint", help="Token mint to distribute")
    parser.add_argument("--amount", help="Total amount in UI units, e.g. 10.5")
    parser.add_argument("--generate", type=int, help="Generate N recipient wallets (1..100)")
    parser.add_argument("--recipients-csv", help="CSV file with recipient addresses")
    parser.add_argument("--ack-mainnet", action="store_true", help="Acknowledge mainnet fees and irreversibility")
    parser.add_argument("--preflight", action="store_true", help="Run simulation after planning")
    parser.add_argument("--log-level", help="Logger level")
    return parser.parse_args(argv)


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    changes: dict[str, Any] = {}
    if args.cluster:
        changes["cluster"] = args.cluster
    if args.rpc_url:
        changes["rpc_url"] = args.rpc_url
    if args.payer:
        changes["payer_public_key"] = args.payer
    if args.mint:
        changes["token_mint"] = args.mint
    if args.amount is not None:
        changes["distribution_amount"] = args.amount
    if args.generate is not None:
        changes["generate_wallet_count"] = args.generate
    if args.recipients_csv:
        changes["recipients_csv_path"] = args.recipients_csv
    if args.ack_mainnet:
        changes["mainnet_ack_fees"] = True
        changes["mainnet_ack_irreversible"] = True
    if args.preflight:
        changes["run_preflight"] = True
    if args.log_level:
        changes["log_level"] = args.log_level
    return replace(settings, **changes)


async def open_report_store(logger: logging.Logger) -> RedisReportStore | None:
    store_settings = ReportStoreSettings.from_env()
    if not store_settings.enabled:
        return None
    store = RedisReportStore(store_settings, logger)
    connected = await guarded_call(
        lambda: _connect(store),
        logger=logger,
        event="report_store_unavailable",
        message="Report store disabled; Redis connection failed",
        default=False,
    )
    return store if connected else None


async def _connect(store: RedisReportStore) -> bool:
    await store.connect()
    return True


def build_summary(coordinator: DistributionCoordinator) -> dict[str, Any]:
    state = coordinator.state
    distribution = state.distribution
    run_set = run_recipient_set(state)
    return {
        "cluster": state.cluster,
        "endpoint": state.endpoint,
        "payer": state.wallet.public_key,
        "token_inventory": {
            "status": state.token_inventory.status,
            "selected_mint": state.token_inventory.selected_mint,
            "count": len(state.token_inventory.items),
            "error": state.token_inventory.error,
        },
        "run_set": {
            "size": len(run_set),
            "generated_count": run_set.generated_count,
            "imported_count": run_set.imported_count,
            "duplicates_skipped": run_set.duplicates_skipped,
            "invalid_csv_rows": len(state.recipient_import.invalid_rows),
        },
        "plan": distribution.plan.to_dict() if distribution.plan else None,
        "plan_error": distribution.plan_error,
        "fee_estimate": distribution.fee_estimate.to_dict() if distribution.fee_estimate else None,
        "fee_estimate_error": distribution.fee_estimate_error,
        "preflight": distribution.preflight.to_dict(),
        "gate": coordinator.gate().to_dict(),
    }


async def run_planning_pass(
    *,
    logger: logging.Logger,
    settings: AppSettings,
    coordinator: DistributionCoordinator,
) -> dict[str, Any]:
    await coordinator.set_mainnet_checklist(
        acknowledge_fees=settings.mainnet_ack_fees,
        acknowledge_irreversible=settings.mainnet_ack_irreversible,
    )
    await coordinator.set_amount(settings.distribution_amount)

    if settings.generate_wallet_count > 0:
        await coordinator.generate_wallets(settings.generate_wallet_count)
    if settings.recipients_csv_path:
        csv_text = Path(settings.recipients_csv_path).read_text(encoding="utf-8")
        await coordinator.import_recipients_csv(csv_text)

    if settings.payer_public_key:
        try:
            await coordinator.connect_wallet(settings.payer_public_key)
        except Exception as error:
            log_event(
                logger,
                level="error",
                event="token_inventory_unavailable",
                message="Wallet connected, but token inventory failed to load",
                error=str(error),
            )
    if settings.token_mint:
        await coordinator.select_token(settings.token_mint)

    if settings.run_preflight:
        gate = coordinator.gate()
        if gate.can_run_preflight:
            await coordinator.run_preflight()
        else:
            log_event(
                logger,
                level="warning",
                event="preflight_skipped",
                message="Preflight skipped; static checks are not satisfied",
                first_failing_check=gate.first_failing_check,
                next_action=gate.next_action,
            )

    return build_summary(coordinator)


async def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = apply_overrides(AppSettings.from_env(), args)
    logger = setup_logger(settings.log_level)

    report_store = await open_report_store(logger)
    coordinator = DistributionCoordinator(
        cluster=settings.cluster,
        endpoint=settings.rpc_url or None,
        logger=logger,
        report_store=report_store,
        chunk_size=settings.ata_lookup_chunk_size,
        safety_buffer_lamports=settings.safety_buffer_lamports,
        fallback_fee_lamports=settings.fallback_fee_lamports,
        commitment=settings.rpc_commitment,
        timeout_seconds=settings.rpc_timeout_seconds,
    )

    try:
        summary = await run_planning_pass(logger=logger, settings=settings, coordinator=coordinator)
    finally:
        await coordinator.close()
        if report_store is not None:
            await guarded_call(
                report_store.close,
                logger=logger,
                event="report_store_close_failed",
                message="Failed to close report store",
            )
        log_event(logger, level="info", event="shutdown_completed", message="Shutdown completed")

    print(json.dumps(summary, indent=2, default=str))
    gate = summary["gate"]
    if settings.run_preflight:
        return 0 if gate["can_start_distribution"] else 1
    return 0 if gate["all_static_checks_pass"] else 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
