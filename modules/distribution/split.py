from __future__ import annotations

import re
from typing import Any

from .errors import DistributionValidationError
from .types import DistributionPlan

MAX_TOKEN_DECIMALS = 18
UI_AMOUNT_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")
RAW_AMOUNT_RE = re.compile(r"^[0-9]+$")


def normalize_decimals(value: Any) -> int:
    if isinstance(value, bool):
        raise DistributionValidationError("Token decimals must be an integer between 0 and 18.")
    if isinstance(value, int):
        decimals = value
    else:
        try:
            decimals = int(str(value).strip())
        except (TypeError, ValueError):
            raise DistributionValidationError("Token decimals must be an integer between 0 and 18.") from None
    if decimals < 0 or decimals > MAX_TOKEN_DECIMALS:
        raise DistributionValidationError("Token decimals must be an integer between 0 and 18.")
    return decimals


def normalize_recipient_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise DistributionValidationError("Recipient count must be at least 1.")
    return value


def normalize_raw_amount(value: Any) -> int:
    if isinstance(value, bool):
        raise DistributionValidationError("Raw amount must be a non-negative integer.")
    if isinstance(value, int):
        if value < 0:
            raise DistributionValidationError("Raw amount cannot be negative.")
        return value
    if isinstance(value, str) and RAW_AMOUNT_RE.match(value.strip()):
        return int(value.strip())
    raise DistributionValidationError("Raw amount must be a non-negative integer.")


def parse_ui_amount_to_raw(amount_text: Any, decimals: Any) -> int:
    """Scale decimal amount text to an integer count of the token's smallest unit."""
    normalized_decimals = normalize_decimals(decimals)
    value = str(amount_text or "").strip()
    if not value:
        raise DistributionValidationError("Distribution amount is required.")
    if not UI_AMOUNT_RE.match(value):
        raise DistributionValidationError("Distribution amount must be a positive numeric value.")

    whole_text, _, fraction_text = value.partition(".")
    if normalized_decimals == 0 and fraction_text:
        raise DistributionValidationError(
            "Distribution amount cannot include decimals when token decimals is 0."
        )
    if len(fraction_text) > normalized_decimals:
        raise DistributionValidationError(
            f"Distribution amount exceeds {normalized_decimals} decimal place(s)."
        )

    scale = 10**normalized_decimals
    fraction = int(fraction_text.ljust(normalized_decimals, "0") or "0")
    total_raw = int(whole_text) * scale + fraction
    if total_raw <= 0:
        raise DistributionValidationError("Distribution amount must be greater than zero.")
    return total_raw


def format_raw_with_decimals(amount_raw: Any, decimals: Any) -> str:
    normalized_decimals = normalize_decimals(decimals)
    raw = normalize_raw_amount(amount_raw)
    if normalized_decimals == 0:
        return str(raw)

    whole, fraction = divmod(raw, 10**normalized_decimals)
    fraction_text = str(fraction).rjust(normalized_decimals, "0").rstrip("0")
    if not fraction_text:
        return str(whole)
    return f"{whole}.{fraction_text}"


def build_split_plan(total_ui_amount: Any, decimals: Any, recipient_count: Any) -> DistributionPlan:
    """Equal split of ``total_ui_amount`` across ``recipient_count`` recipients.

    The remainder stays with the payer; it is never spread over recipients.
    """
    normalized_decimals = normalize_decimals(decimals)
    normalized_count = normalize_recipient_count(recipient_count)
    total_raw = parse_ui_amount_to_raw(total_ui_amount, normalized_decimals)

    per_recipient_raw, remainder_raw = divmod(total_raw, normalized_count)
    if per_recipient_raw <= 0:
        raise DistributionValidationError(
            "Total amount is too small for the recipient count at the selected token decimals."
        )

    return DistributionPlan(
        total_ui_amount_text=str(total_ui_amount or "").strip(),
        decimals=normalized_decimals,
        recipient_count=normalized_count,
        total_raw=total_raw,
        per_recipient_raw=per_recipient_raw,
        remainder_raw=remainder_raw,
        planned_transfer_total_raw=per_recipient_raw * normalized_count,
    )
