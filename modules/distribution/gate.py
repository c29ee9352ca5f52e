from __future__ import annotations

from .types import (
    PREFLIGHT_PASSED,
    PREFLIGHT_RUNNING,
    DistributionChecks,
    DistributionGateModel,
    PreflightStatus,
)

NEXT_ACTIONS: dict[str, str] = {
    "wallet_connected": "Connect a wallet to plan a distribution.",
    "token_selected": "Select a token to distribute.",
    "token_supported": "Select a classic SPL token; Token-2022 mints are not supported.",
    "recipients_ready": "Generate wallets or import recipients to build the run set.",
    "amount_valid": "Enter a valid distribution amount for the selected token.",
    "balance_sufficient": "Fund the wallet with more of the selected token or lower the amount.",
    "fee_headroom_sufficient": "Fund the wallet with SOL to cover network fees and account rent.",
    "mainnet_acknowledged": "Acknowledge the mainnet fee and irreversibility checklist.",
    "preflight_passed": "Run preflight simulation before starting the distribution.",
}
PREFLIGHT_RUNNING_ACTION = "Wait for the preflight simulation to finish."
READY_ACTION = "Distribution is validated and ready to start."


def required_mainnet_acknowledgement(cluster: str, *, acknowledge_fees: bool, acknowledge_irreversible: bool) -> bool:
    """Mainnet needs both acknowledgements; other clusters pass unconditionally."""
    if cluster != "mainnet-beta":
        return True
    return bool(acknowledge_fees and acknowledge_irreversible)


def derive_gate_model(checks: DistributionChecks, preflight_status: PreflightStatus) -> DistributionGateModel:
    preflight_running = preflight_status == PREFLIGHT_RUNNING
    static_checks = checks.static_checks()
    first_failing = next((name for name, value in static_checks if not value), None)
    all_static = first_failing is None
    can_start = (
        all_static
        and checks.preflight_passed
        and preflight_status == PREFLIGHT_PASSED
        and not preflight_running
    )

    if first_failing is None and not checks.preflight_passed:
        first_failing = "preflight_passed"

    if first_failing is not None:
        next_action = NEXT_ACTIONS[first_failing]
        if first_failing == "preflight_passed" and preflight_running:
            next_action = PREFLIGHT_RUNNING_ACTION
    elif not can_start:
        next_action = NEXT_ACTIONS["preflight_passed"]
    else:
        next_action = READY_ACTION

    return DistributionGateModel(
        checks=checks,
        preflight_status=preflight_status,
        preflight_running=preflight_running,
        all_static_checks_pass=all_static,
        can_run_preflight=all_static and not preflight_running,
        can_start_distribution=can_start,
        first_failing_check=first_failing,
        next_action=next_action,
    )
