from __future__ import annotations

from typing import Any, Iterable

from .types import RecipientAddress, RecipientSource, RunRecipientSet


def address_of(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        return str(item.get("public_address") or item.get("address") or "").strip()
    return str(getattr(item, "public_address", "") or "").strip()


def _id_of(item: Any, *, source: RecipientSource, position: int) -> str:
    explicit_id = item.get("id") if isinstance(item, dict) else getattr(item, "id", None)
    if explicit_id:
        return str(explicit_id)
    index = item.get("index") if isinstance(item, dict) else getattr(item, "index", None)
    return f"{source}-{index if index is not None else position}"


def _merge_source(
    items: Iterable[Any],
    *,
    source: RecipientSource,
    seen: set[str],
    merged: list[RecipientAddress],
) -> tuple[int, int]:
    accepted = 0
    duplicates = 0
    for position, item in enumerate(items, start=1):
        address = address_of(item)
        if not address:
            continue
        accepted += 1
        if address in seen:
            duplicates += 1
            continue
        seen.add(address)
        merged.append(
            RecipientAddress(
                id=_id_of(item, source=source, position=position),
                public_address=address,
                source=source,
            )
        )
    return accepted, duplicates


def build_run_recipient_set(
    generated: Iterable[Any] | None,
    imported: Iterable[Any] | None,
) -> RunRecipientSet:
    """Merge generated then imported recipients; the first occurrence of an address wins.

    ``generated_count`` and ``imported_count`` count non-empty source entries before
    deduplication; every dropped repeat (within or across sources) is counted once in
    ``duplicates_skipped``.
    """
    seen: set[str] = set()
    merged: list[RecipientAddress] = []

    generated_count, generated_duplicates = _merge_source(
        generated or (),
        source="generated",
        seen=seen,
        merged=merged,
    )
    imported_count, imported_duplicates = _merge_source(
        imported or (),
        source="imported",
        seen=seen,
        merged=merged,
    )

    return RunRecipientSet(
        recipients=tuple(merged),
        generated_count=generated_count,
        imported_count=imported_count,
        duplicates_skipped=generated_duplicates + imported_duplicates,
    )
