from .addresses import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    derive_associated_token_address,
    find_program_address,
    is_valid_address,
)
from .errors import (
    ConnectionCapabilityError,
    DistributionGateError,
    DistributionValidationError,
    ProgramAddressError,
)
from .fees import FALLBACK_FEE_LAMPORTS, SAFETY_BUFFER_LAMPORTS, estimate_fee_headroom
from .gate import derive_gate_model
from .inspector import ATA_LOOKUP_CHUNK_SIZE, inspect_accounts
from .preflight import format_simulation_error, run_preflight
from .recipients import build_run_recipient_set
from .split import build_split_plan, format_raw_with_decimals, parse_ui_amount_to_raw
from .types import (
    AtaInspectionEntry,
    AtaInspectionResult,
    DistributionChecks,
    DistributionGateModel,
    DistributionPlan,
    FeeHeadroomEstimate,
    PreflightFailure,
    PreflightResult,
    PreflightState,
    RecipientAddress,
    RunRecipientSet,
    TokenAsset,
)

__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "ATA_LOOKUP_CHUNK_SIZE",
    "AtaInspectionEntry",
    "AtaInspectionResult",
    "ConnectionCapabilityError",
    "DistributionChecks",
    "DistributionGateError",
    "DistributionGateModel",
    "DistributionPlan",
    "DistributionValidationError",
    "FALLBACK_FEE_LAMPORTS",
    "FeeHeadroomEstimate",
    "PreflightFailure",
    "PreflightResult",
    "PreflightState",
    "ProgramAddressError",
    "RecipientAddress",
    "RunRecipientSet",
    "SAFETY_BUFFER_LAMPORTS",
    "TOKEN_2022_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "TokenAsset",
    "build_run_recipient_set",
    "build_split_plan",
    "derive_associated_token_address",
    "derive_gate_model",
    "estimate_fee_headroom",
    "find_program_address",
    "format_raw_with_decimals",
    "format_simulation_error",
    "inspect_accounts",
    "is_valid_address",
    "parse_ui_amount_to_raw",
    "run_preflight",
]
