from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def serialize_for_redis(value: Any) -> str:
    """Hash field text: booleans as 1/0, scalars as-is, nested values as compact JSON."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, str)):
        return str(value)
    return encode_json(value)


def flatten_for_hash(payload: dict[str, Any]) -> dict[str, str]:
    """Redis hashes cannot hold ``None``; those fields are left out."""
    return {str(key): serialize_for_redis(value) for key, value in payload.items() if value is not None}
