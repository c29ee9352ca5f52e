from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal

from modules.sources import GeneratedWallet, RecipientImport

from .recipients import build_run_recipient_set
from .types import (
    AtaInspectionResult,
    DistributionChecks,
    DistributionPlan,
    FeeHeadroomEstimate,
    PreflightState,
    RecipientAddress,
    RunRecipientSet,
    TokenAsset,
)

InventoryStatus = Literal["idle", "loading", "ready", "error"]


@dataclass(slots=True, frozen=True)
class WalletState:
    connected: bool = False
    public_key: str | None = None


@dataclass(slots=True, frozen=True)
class TokenInventoryState:
    status: InventoryStatus = "idle"
    items: tuple[TokenAsset, ...] = ()
    selected_mint: str | None = None
    loaded_for: tuple[str, str] | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class MainnetChecklist:
    acknowledge_fees: bool = False
    acknowledge_irreversible: bool = False


@dataclass(slots=True, frozen=True)
class DistributionState:
    total_ui_amount: str = ""
    plan: DistributionPlan | None = None
    plan_error: str | None = None
    checks: DistributionChecks = field(default_factory=DistributionChecks)
    fee_estimate: FeeHeadroomEstimate | None = None
    fee_estimate_error: str | None = None
    inspection: AtaInspectionResult | None = None
    preflight: PreflightState = field(default_factory=PreflightState)
    mainnet_checklist: MainnetChecklist = field(default_factory=MainnetChecklist)


@dataclass(slots=True, frozen=True)
class AppState:
    cluster: str
    endpoint: str | None = None
    generated_wallets: tuple[GeneratedWallet, ...] = ()
    imported_recipients: tuple[RecipientAddress, ...] = ()
    recipient_import: RecipientImport = field(default_factory=RecipientImport)
    wallet: WalletState = field(default_factory=WalletState)
    token_inventory: TokenInventoryState = field(default_factory=TokenInventoryState)
    distribution: DistributionState = field(default_factory=DistributionState)


def is_wallet_connected(state: AppState) -> bool:
    return bool(state.wallet.connected and state.wallet.public_key)


def selected_token(state: AppState) -> TokenAsset | None:
    mint = state.token_inventory.selected_mint
    if not mint:
        return None
    return next((item for item in state.token_inventory.items if item.mint == mint), None)


def run_recipient_set(state: AppState) -> RunRecipientSet:
    return build_run_recipient_set(state.generated_wallets, state.imported_recipients)


class StateContainer:
    """Holds the single application state; every write swaps in a new frozen tree."""

    def __init__(self, initial: AppState) -> None:
        self._state = initial

    @property
    def state(self) -> AppState:
        return self._state

    def replace(self, **changes: Any) -> AppState:
        self._state = replace(self._state, **changes)
        return self._state

    def replace_distribution(self, **changes: Any) -> AppState:
        return self.replace(distribution=replace(self._state.distribution, **changes))

    def replace_inventory(self, **changes: Any) -> AppState:
        return self.replace(token_inventory=replace(self._state.token_inventory, **changes))
