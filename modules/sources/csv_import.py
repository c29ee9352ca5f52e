from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from typing import Callable

from modules.distribution.addresses import is_valid_address
from modules.distribution.types import RecipientAddress

ADDRESS_HEADERS = frozenset({"address", "publicaddress", "publickey", "wallet", "recipient"})
_NON_LETTERS_RE = re.compile(r"[^a-z]")


@dataclass(slots=True, frozen=True)
class InvalidRecipientRow:
    line: int
    value: str
    reason: str


@dataclass(slots=True, frozen=True)
class RecipientImport:
    recipients: tuple[RecipientAddress, ...] = ()
    invalid_rows: tuple[InvalidRecipientRow, ...] = ()
    duplicate_count: int = 0
    total_rows: int = 0


def _normalize_header(value: str) -> str:
    return _NON_LETTERS_RE.sub("", value.strip().lower())


def _parse_line(raw_line: str) -> list[str]:
    return next(csv.reader([raw_line]), [])


def parse_recipients_csv(
    raw_csv: str | None,
    *,
    validate_address: Callable[[str], bool] = is_valid_address,
) -> RecipientImport:
    """Read recipient addresses from CSV text.

    A first row naming an address column (address, publicAddress, publicKey, wallet,
    recipient) is treated as a header; otherwise column 0 is used from the first row
    on. Line numbers in ``invalid_rows`` are 1-based and count the header.
    """
    text = (raw_csv or "").strip()
    if not text:
        return RecipientImport()

    lines = text.splitlines()
    headers = [_normalize_header(cell) for cell in _parse_line(lines[0])]
    address_column = next((idx for idx, cell in enumerate(headers) if cell in ADDRESS_HEADERS), None)
    has_header = address_column is not None
    target_column = address_column if has_header else 0

    recipients: list[RecipientAddress] = []
    invalid_rows: list[InvalidRecipientRow] = []
    seen: set[str] = set()
    duplicate_count = 0

    for line_number, raw_line in enumerate(lines, start=1):
        if has_header and line_number == 1:
            continue
        if not raw_line.strip():
            continue

        cells = _parse_line(raw_line)
        value = cells[target_column].strip() if target_column < len(cells) else ""
        if not value:
            invalid_rows.append(InvalidRecipientRow(line=line_number, value="", reason="Missing recipient address."))
            continue
        if not validate_address(value):
            invalid_rows.append(InvalidRecipientRow(line=line_number, value=value, reason="Invalid Solana address."))
            continue
        if value in seen:
            duplicate_count += 1
            continue

        seen.add(value)
        recipients.append(
            RecipientAddress(id=f"csv-{len(recipients) + 1}", public_address=value, source="imported")
        )

    return RecipientImport(
        recipients=tuple(recipients),
        invalid_rows=tuple(invalid_rows),
        duplicate_count=duplicate_count,
        total_rows=len(lines) - (1 if has_header else 0),
    )
