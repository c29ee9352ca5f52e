from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from modules.chain import (
    CLUSTER_ENDPOINTS,
    DEFAULT_CLUSTER,
    ConnectionContext,
    TokenInventoryLoader,
    create_connection_context,
    pick_selected_mint,
)
from modules.common import get_logger, guarded_call, log_event
from modules.sources import RecipientImport, generate_wallets, parse_recipients_csv

from .addresses import to_pubkey
from .errors import DistributionGateError, DistributionValidationError
from .fees import FALLBACK_FEE_LAMPORTS, SAFETY_BUFFER_LAMPORTS, estimate_fee_headroom
from .gate import derive_gate_model, required_mainnet_acknowledgement
from .inspector import ATA_LOOKUP_CHUNK_SIZE, inspect_accounts
from .preflight import run_preflight
from .split import build_split_plan
from .state import (
    AppState,
    DistributionState,
    MainnetChecklist,
    StateContainer,
    TokenInventoryState,
    WalletState,
    is_wallet_connected,
    run_recipient_set,
    selected_token,
)
from .types import (
    PREFLIGHT_FAILED,
    PREFLIGHT_PASSED,
    PREFLIGHT_RUNNING,
    DistributionChecks,
    DistributionGateModel,
    PreflightFailure,
    PreflightState,
    TokenAsset,
)

ConnectionFactory = Callable[[str, str | None], ConnectionContext]
InventoryLoader = Callable[[Any, str], Awaitable[list[TokenAsset]]]

REPORT_WRITE_TIMEOUT_SECONDS = 2.0
PLAN_REQUIRES_INPUTS = "Select a token and ensure at least one recipient to compute a plan."


class RequestGeneration:
    """Monotonic request ids for one kind of async recompute; only the newest may apply."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def begin(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, request_id: int) -> bool:
        return request_id == self._current

    def invalidate(self) -> None:
        self._current += 1


@dataclass(slots=True, frozen=True)
class InventoryRefreshResult:
    status: str
    count: int = 0


def normalize_cluster_choice(cluster: str) -> str:
    value = (cluster or "").strip().lower()
    if value == "mainnet":
        value = "mainnet-beta"
    if value not in CLUSTER_ENDPOINTS:
        raise DistributionValidationError(f"Unsupported Solana cluster: {cluster}")
    return value


class DistributionCoordinator:
    def __init__(
        self,
        *,
        cluster: str = DEFAULT_CLUSTER,
        endpoint: str | None = None,
        logger: logging.Logger | None = None,
        connection_factory: ConnectionFactory | None = None,
        load_inventory: InventoryLoader | None = None,
        inspect: Callable[..., Awaitable[Any]] = inspect_accounts,
        estimate: Callable[..., Awaitable[Any]] = estimate_fee_headroom,
        preflight: Callable[..., Awaitable[Any]] = run_preflight,
        report_store: Any | None = None,
        chunk_size: int = ATA_LOOKUP_CHUNK_SIZE,
        safety_buffer_lamports: int = SAFETY_BUFFER_LAMPORTS,
        fallback_fee_lamports: int = FALLBACK_FEE_LAMPORTS,
        commitment: str = "confirmed",
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = get_logger(logger)
        self._commitment = commitment
        self._timeout_seconds = timeout_seconds
        self._connection_factory = connection_factory or self._default_connection_factory
        self._load_inventory = load_inventory or self._default_load_inventory
        self._inspect = inspect
        self._estimate = estimate
        self._preflight = preflight
        self._report_store = report_store
        self._chunk_size = chunk_size
        self._safety_buffer_lamports = safety_buffer_lamports
        self._fallback_fee_lamports = fallback_fee_lamports

        self._endpoint_overrides: dict[str, str] = {}
        initial_cluster = normalize_cluster_choice(cluster)
        if endpoint:
            self._endpoint_overrides[initial_cluster] = endpoint

        self._inventory_requests = RequestGeneration()
        self._planning_requests = RequestGeneration()
        self._preflight_requests = RequestGeneration()
        self._retired_connections: list[Any] = []

        self._context: ConnectionContext | None = self._open_context(initial_cluster)
        self._container = StateContainer(
            AppState(
                cluster=initial_cluster,
                endpoint=self._context.endpoint if self._context else None,
            )
        )

    @property
    def state(self) -> AppState:
        return self._container.state

    @property
    def connection(self) -> Any | None:
        return self._context.connection if self._context else None

    def gate(self) -> DistributionGateModel:
        distribution = self.state.distribution
        return derive_gate_model(distribution.checks, distribution.preflight.status)

    def _default_connection_factory(self, cluster: str, endpoint: str | None) -> ConnectionContext:
        return create_connection_context(
            cluster,
            endpoint=endpoint,
            logger=self._logger,
            commitment=self._commitment,
            timeout_seconds=self._timeout_seconds,
        )

    async def _default_load_inventory(self, connection: Any, owner: str) -> list[TokenAsset]:
        return await TokenInventoryLoader(connection, logger=self._logger).load(owner)

    def _open_context(self, cluster: str) -> ConnectionContext | None:
        try:
            return self._connection_factory(cluster, self._endpoint_overrides.get(cluster))
        except (ValueError, RuntimeError) as error:
            log_event(
                self._logger,
                level="error",
                event="connection_setup_failed",
                message="Failed to create Solana connection",
                cluster=cluster,
                error=str(error),
            )
            return None

    async def close(self) -> None:
        connections = list(self._retired_connections)
        if self.connection is not None:
            connections.append(self.connection)
        self._retired_connections.clear()
        for connection in connections:
            close = getattr(connection, "close", None)
            if callable(close):
                await guarded_call(
                    close,
                    logger=self._logger,
                    event="connection_close_failed",
                    message="Failed to close Solana connection",
                )

    async def _report(self, action: Callable[[], Awaitable[Any]], *, event: str) -> None:
        if self._report_store is None:
            return
        await guarded_call(
            action,
            logger=self._logger,
            event=event,
            message="Report store write failed",
            timeout_seconds=REPORT_WRITE_TIMEOUT_SECONDS,
        )

    async def set_cluster(self, cluster: str) -> InventoryRefreshResult:
        next_cluster = normalize_cluster_choice(cluster)
        context = self._connection_factory(next_cluster, self._endpoint_overrides.get(next_cluster))
        if self.connection is not None:
            self._retired_connections.append(self.connection)
        self._context = context
        self._container.replace(cluster=next_cluster, endpoint=context.endpoint)
        log_event(
            self._logger,
            level="info",
            event="cluster_changed",
            message="Active cluster changed",
            cluster=next_cluster,
            endpoint=context.endpoint,
        )
        await self.recompute_distribution()
        if not is_wallet_connected(self.state):
            self._clear_inventory()
            await self.recompute_distribution()
            return InventoryRefreshResult(status="idle")
        return await self.refresh_token_inventory()

    async def connect_wallet(self, public_key: Any) -> InventoryRefreshResult:
        owner = str(to_pubkey(public_key))
        self._container.replace(wallet=WalletState(connected=True, public_key=owner))
        log_event(
            self._logger,
            level="info",
            event="wallet_connected",
            message="Wallet connected",
            public_key=owner,
        )
        return await self.refresh_token_inventory()

    async def disconnect_wallet(self) -> None:
        self._container.replace(wallet=WalletState())
        self._clear_inventory()
        self._reset_distribution()
        log_event(self._logger, level="info", event="wallet_disconnected", message="Wallet disconnected")
        await self.recompute_distribution()

    def _clear_inventory(self) -> None:
        self._inventory_requests.invalidate()
        self._container.replace(token_inventory=TokenInventoryState())

    def _reset_distribution(self) -> None:
        self._planning_requests.invalidate()
        self._preflight_requests.invalidate()
        self._container.replace(distribution=DistributionState())

    async def refresh_token_inventory(self, *, preferred_mint: str | None = None) -> InventoryRefreshResult:
        state = self.state
        if not is_wallet_connected(state):
            self._clear_inventory()
            await self.recompute_distribution()
            return InventoryRefreshResult(status="idle")

        owner = str(state.wallet.public_key)
        loaded_for = (state.cluster, owner)
        previous_mint = preferred_mint or state.token_inventory.selected_mint
        request_id = self._inventory_requests.begin()
        self._container.replace(
            token_inventory=TokenInventoryState(status="loading", loaded_for=loaded_for)
        )
        await self.recompute_distribution()

        try:
            items = await self._load_inventory(self.connection, owner)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if not self._inventory_requests.is_current(request_id):
                self._log_stale("token_inventory_stale", "Discarded stale token inventory failure", request_id)
                return InventoryRefreshResult(status="stale")
            self._container.replace(
                token_inventory=TokenInventoryState(status="error", loaded_for=loaded_for, error=str(error))
            )
            log_event(
                self._logger,
                level="warning",
                event="token_inventory_failed",
                message="Token inventory failed to load",
                owner=owner,
                cluster=state.cluster,
                error=str(error),
            )
            await self.recompute_distribution()
            raise

        if not self._inventory_requests.is_current(request_id):
            self._log_stale("token_inventory_stale", "Discarded stale token inventory", request_id)
            return InventoryRefreshResult(status="stale")

        assets = tuple(items)
        self._container.replace(
            token_inventory=TokenInventoryState(
                status="ready",
                items=assets,
                selected_mint=pick_selected_mint(list(assets), previous_mint),
                loaded_for=loaded_for,
            )
        )
        log_event(
            self._logger,
            level="info",
            event="token_inventory_loaded",
            message="Token inventory loaded",
            owner=owner,
            cluster=state.cluster,
            count=len(assets),
        )
        await self.recompute_distribution()
        return InventoryRefreshResult(status="ready", count=len(assets))

    async def select_token(self, mint: str | None) -> DistributionState | None:
        self._container.replace_inventory(selected_mint=mint or None)
        return await self.recompute_distribution()

    async def set_amount(self, amount_text: Any) -> DistributionState | None:
        self._container.replace_distribution(total_ui_amount=str(amount_text or ""))
        return await self.recompute_distribution()

    async def set_mainnet_checklist(
        self,
        *,
        acknowledge_fees: bool,
        acknowledge_irreversible: bool,
    ) -> DistributionState | None:
        self._container.replace_distribution(
            mainnet_checklist=MainnetChecklist(
                acknowledge_fees=bool(acknowledge_fees),
                acknowledge_irreversible=bool(acknowledge_irreversible),
            )
        )
        return await self.recompute_distribution()

    async def generate_wallets(self, count: Any) -> DistributionState | None:
        wallets = generate_wallets(count)
        self._container.replace(generated_wallets=tuple(wallets))
        log_event(
            self._logger,
            level="info",
            event="wallets_generated",
            message="Generated wallets",
            count=len(wallets),
        )
        return await self.recompute_distribution()

    async def clear_generated_wallets(self) -> DistributionState | None:
        self._container.replace(generated_wallets=())
        return await self.recompute_distribution()

    async def import_recipients_csv(self, csv_text: str) -> RecipientImport:
        parsed = parse_recipients_csv(csv_text)
        self._container.replace(imported_recipients=parsed.recipients, recipient_import=parsed)
        log_event(
            self._logger,
            level="info",
            event="recipients_imported",
            message="Recipient CSV imported",
            valid=len(parsed.recipients),
            invalid=len(parsed.invalid_rows),
            duplicates=parsed.duplicate_count,
            run_set_size=len(run_recipient_set(self.state)),
        )
        await self.recompute_distribution()
        return parsed

    async def clear_imported_recipients(self) -> DistributionState | None:
        self._container.replace(imported_recipients=(), recipient_import=RecipientImport())
        return await self.recompute_distribution()

    def _log_stale(self, event: str, message: str, request_id: int) -> None:
        log_event(self._logger, level="debug", event=event, message=message, request_id=request_id)

    async def recompute_distribution(self) -> DistributionState | None:
        """Rebuild plan, checks and fee estimate from the current state.

        Returns ``None`` when a newer recompute started before this one resolved; the
        stale result is not applied. Every recompute resets preflight to idle.
        """
        request_id = self._planning_requests.begin()
        self._preflight_requests.invalidate()
        # An earlier pass no longer matches the inputs.
        self._container.replace_distribution(
            preflight=PreflightState(),
            checks=replace(self.state.distribution.checks, preflight_passed=False),
        )

        state = self.state
        distribution = state.distribution
        token = selected_token(state)
        recipients = run_recipient_set(state)
        checklist = distribution.mainnet_checklist
        connection = self.connection

        wallet_connected = is_wallet_connected(state)
        token_selected = token is not None
        token_supported = token is not None and token.supported_program
        recipients_ready = len(recipients) > 0
        mainnet_acknowledged = required_mainnet_acknowledgement(
            state.cluster,
            acknowledge_fees=checklist.acknowledge_fees,
            acknowledge_irreversible=checklist.acknowledge_irreversible,
        )

        plan = None
        plan_error = None
        if token is not None and recipients_ready:
            try:
                plan = build_split_plan(distribution.total_ui_amount, token.decimals, len(recipients))
            except DistributionValidationError as error:
                plan_error = str(error)
        elif distribution.total_ui_amount.strip():
            plan_error = PLAN_REQUIRES_INPUTS

        balance_sufficient = bool(plan and token and token.balance_raw >= plan.planned_transfer_total_raw)

        inspection = None
        fee_estimate = None
        fee_estimate_error = None
        should_estimate = (
            wallet_connected
            and token_supported
            and recipients_ready
            and plan is not None
            and balance_sufficient
            and connection is not None
        )
        if should_estimate:
            try:
                inspection = await self._inspect(
                    connection,
                    token.mint,
                    recipients.addresses,
                    decimals=token.decimals,
                    chunk_size=self._chunk_size,
                    logger=self._logger,
                )
                if not self._planning_requests.is_current(request_id):
                    self._log_stale("distribution_recompute_stale", "Discarded stale account inspection", request_id)
                    return None

                fee_estimate = await self._estimate(
                    connection,
                    state.wallet.public_key,
                    token.mint,
                    plan.per_recipient_raw,
                    inspection,
                    safety_buffer_lamports=self._safety_buffer_lamports,
                    fallback_fee_lamports=self._fallback_fee_lamports,
                    logger=self._logger,
                )
            except asyncio.CancelledError:
                raise
            except Exception as error:
                fee_estimate_error = str(error)
                log_event(
                    self._logger,
                    level="warning",
                    event="fee_headroom_failed",
                    message="Fee headroom estimation failed",
                    error=fee_estimate_error,
                    error_type=type(error).__name__,
                )

        if not self._planning_requests.is_current(request_id):
            self._log_stale("distribution_recompute_stale", "Discarded stale distribution recompute", request_id)
            return None

        checks = DistributionChecks(
            wallet_connected=wallet_connected,
            token_selected=token_selected,
            token_supported=token_supported,
            recipients_ready=recipients_ready,
            amount_valid=plan is not None,
            balance_sufficient=balance_sufficient,
            fee_headroom_sufficient=bool(fee_estimate is not None and fee_estimate.passes),
            mainnet_acknowledged=mainnet_acknowledged,
            preflight_passed=False,
        )
        next_distribution = replace(
            self.state.distribution,
            plan=plan,
            plan_error=plan_error,
            checks=checks,
            fee_estimate=fee_estimate,
            fee_estimate_error=fee_estimate_error,
            inspection=inspection,
            preflight=PreflightState(),
        )
        self._container.replace(distribution=next_distribution)
        log_event(
            self._logger,
            level="debug",
            event="distribution_recomputed",
            message="Distribution plan recomputed",
            request_id=request_id,
            recipient_count=len(recipients),
            amount_valid=checks.amount_valid,
            fee_headroom_sufficient=checks.fee_headroom_sufficient,
        )
        if plan is not None and self._report_store is not None:
            snapshot = {
                "cluster": state.cluster,
                "mint": token.mint if token else None,
                **plan.to_dict(),
                "checks": checks.to_dict(),
                "fee_estimate": fee_estimate.to_dict() if fee_estimate else None,
            }
            await self._report(lambda: self._report_store.save_plan(snapshot), event="plan_snapshot_failed")
        return next_distribution

    async def run_preflight(self) -> PreflightState | None:
        """Simulate the current plan for every recipient.

        Raises ``DistributionGateError`` when static checks fail or a run is in
        progress. Returns ``None`` when the result went stale before it resolved.
        """
        if self.state.distribution.preflight.status == PREFLIGHT_RUNNING:
            raise DistributionGateError("Preflight simulation is already running.", check="preflight_passed")

        refreshed = await self.recompute_distribution()
        if refreshed is None:
            return None

        gate = self.gate()
        if not gate.all_static_checks_pass:
            raise DistributionGateError(
                "Distribution preflight is blocked until all static validations pass. " + gate.next_action,
                check=gate.first_failing_check,
            )

        state = self.state
        token = selected_token(state)
        distribution = state.distribution
        if token is None or distribution.plan is None or distribution.inspection is None:
            raise DistributionGateError("Distribution preflight is unavailable until planning data is complete.")

        request_id = self._preflight_requests.begin()
        target_count = len(distribution.inspection.entries)
        self._container.replace_distribution(
            checks=replace(distribution.checks, preflight_passed=False),
            preflight=PreflightState(status=PREFLIGHT_RUNNING, scanned_count=target_count),
        )
        log_event(
            self._logger,
            level="info",
            event="preflight_started",
            message="Running distribution preflight simulation",
            request_id=request_id,
            recipient_count=target_count,
        )

        try:
            result = await self._preflight(
                self.connection,
                state.wallet.public_key,
                token.mint,
                distribution.plan.per_recipient_raw,
                distribution.inspection,
                logger=self._logger,
            )
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if not self._preflight_requests.is_current(request_id):
                self._log_stale("preflight_stale", "Discarded stale preflight failure", request_id)
                return None
            preflight_state = PreflightState(
                status=PREFLIGHT_FAILED,
                scanned_count=target_count,
                failed_count=target_count,
                failures=(PreflightFailure(recipient="preflight", error=str(error)),),
            )
            log_event(
                self._logger,
                level="error",
                event="preflight_error",
                message="Distribution preflight failed",
                error=str(error),
                error_type=type(error).__name__,
            )
            return await self._apply_preflight(preflight_state, passed=False)

        if not self._preflight_requests.is_current(request_id):
            self._log_stale("preflight_stale", "Discarded stale preflight result", request_id)
            return None

        passed = bool(result.passed)
        preflight_state = PreflightState(
            status=PREFLIGHT_PASSED if passed else PREFLIGHT_FAILED,
            scanned_count=int(result.scanned_count),
            failed_count=int(result.failed_count),
            failures=tuple(result.failures),
        )
        return await self._apply_preflight(preflight_state, passed=passed)

    async def _apply_preflight(self, preflight_state: PreflightState, *, passed: bool) -> PreflightState:
        latest = self.state.distribution
        self._container.replace_distribution(
            checks=replace(latest.checks, preflight_passed=passed),
            preflight=preflight_state,
        )
        if self._report_store is not None:
            snapshot = {"cluster": self.state.cluster, **preflight_state.to_dict()}
            await self._report(lambda: self._report_store.save_preflight(snapshot), event="preflight_snapshot_failed")
            await self._report(
                lambda: self._report_store.record_event(
                    "preflight_completed",
                    status=preflight_state.status,
                    scanned_count=preflight_state.scanned_count,
                    failed_count=preflight_state.failed_count,
                ),
                event="preflight_event_failed",
            )
        return preflight_state

    async def start_distribution(self) -> str:
        """Confirm the run is ready; transfers are not submitted."""
        gate = self.gate()
        if not gate.can_start_distribution:
            raise DistributionGateError(
                "Distribution start is blocked until all checks pass and preflight succeeds.",
                check=gate.first_failing_check,
            )
        message = "Distribution run is validated and ready."
        log_event(
            self._logger,
            level="info",
            event="distribution_ready",
            message=message,
            recipient_count=self.state.distribution.preflight.scanned_count,
        )
        await self._report(
            lambda: self._report_store.record_event("distribution_ready", cluster=self.state.cluster),
            event="distribution_event_failed",
        )
        return message
