from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal, Protocol

RecipientSource = Literal["generated", "imported"]
PreflightStatus = Literal["idle", "running", "passed", "failed"]

PREFLIGHT_IDLE: PreflightStatus = "idle"
PREFLIGHT_RUNNING: PreflightStatus = "running"
PREFLIGHT_PASSED: PreflightStatus = "passed"
PREFLIGHT_FAILED: PreflightStatus = "failed"


@dataclass(slots=True, frozen=True)
class RecipientAddress:
    id: str
    public_address: str
    source: RecipientSource


@dataclass(slots=True, frozen=True)
class RunRecipientSet:
    recipients: tuple[RecipientAddress, ...] = ()
    generated_count: int = 0
    imported_count: int = 0
    duplicates_skipped: int = 0

    def __len__(self) -> int:
        return len(self.recipients)

    @property
    def addresses(self) -> list[str]:
        return [recipient.public_address for recipient in self.recipients]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class DistributionPlan:
    total_ui_amount_text: str
    decimals: int
    recipient_count: int
    total_raw: int
    per_recipient_raw: int
    remainder_raw: int
    planned_transfer_total_raw: int

    def to_dict(self) -> dict[str, Any]:
        # Raw amounts can exceed float precision in JSON consumers.
        payload = asdict(self)
        for key in ("total_raw", "per_recipient_raw", "remainder_raw", "planned_transfer_total_raw"):
            payload[key] = str(payload[key])
        return payload


@dataclass(slots=True, frozen=True)
class AtaInspectionEntry:
    recipient: str
    derived_account_address: str
    needs_creation: bool


@dataclass(slots=True, frozen=True)
class AtaInspectionResult:
    mint: str
    entries: tuple[AtaInspectionEntry, ...]
    missing_count: int
    existing_count: int
    decimals: int | None = None

    @classmethod
    def from_entries(
        cls,
        *,
        mint: str,
        entries: list[AtaInspectionEntry] | tuple[AtaInspectionEntry, ...],
        decimals: int | None = None,
    ) -> "AtaInspectionResult":
        frozen_entries = tuple(entries)
        missing_count = sum(1 for entry in frozen_entries if entry.needs_creation)
        return cls(
            mint=mint,
            entries=frozen_entries,
            missing_count=missing_count,
            existing_count=len(frozen_entries) - missing_count,
            decimals=decimals,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class FeeHeadroomEstimate:
    payer_balance: int
    required_balance: int
    fee_per_existing_account: int
    fee_per_missing_account: int
    rent_per_new_account: int
    missing_count: int
    existing_count: int
    safety_buffer: int
    passes: bool

    @property
    def headroom(self) -> int:
        return self.payer_balance - self.required_balance

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["headroom"] = self.headroom
        return payload


@dataclass(slots=True, frozen=True)
class PreflightFailure:
    recipient: str
    error: str


@dataclass(slots=True, frozen=True)
class PreflightResult:
    passed: bool
    scanned_count: int
    failed_count: int
    failures: tuple[PreflightFailure, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class DistributionChecks:
    wallet_connected: bool = False
    token_selected: bool = False
    token_supported: bool = False
    recipients_ready: bool = False
    amount_valid: bool = False
    balance_sufficient: bool = False
    fee_headroom_sufficient: bool = False
    mainnet_acknowledged: bool = False
    preflight_passed: bool = False

    def static_checks(self) -> tuple[tuple[str, bool], ...]:
        """Every check except ``preflight_passed``, in gating order."""
        return tuple(
            (item.name, getattr(self, item.name))
            for item in fields(self)
            if item.name != "preflight_passed"
        )

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class DistributionGateModel:
    checks: DistributionChecks
    preflight_status: PreflightStatus
    preflight_running: bool
    all_static_checks_pass: bool
    can_run_preflight: bool
    can_start_distribution: bool
    first_failing_check: str | None
    next_action: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class TokenAsset:
    mint: str
    decimals: int
    balance_raw: int
    balance_ui: str
    supported_program: bool
    token_program_id: str


class RpcConnection(Protocol):
    async def get_multiple_accounts_info(self, addresses: list[str]) -> list[dict[str, Any] | None]:
        ...

    async def get_balance(self, address: str) -> int:
        ...

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        ...

    async def get_fee_for_message(self, message: Any) -> int | None:
        ...

    async def get_latest_blockhash(self) -> str:
        ...

    async def simulate_transaction(self, transaction: Any) -> dict[str, Any]:
        ...


@dataclass(slots=True, frozen=True)
class PreflightState:
    status: PreflightStatus = PREFLIGHT_IDLE
    scanned_count: int = 0
    failed_count: int = 0
    failures: tuple[PreflightFailure, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
