from __future__ import annotations

import os
from dataclasses import dataclass

from modules.runtime.settings import to_int


@dataclass(slots=True)
class ReportStoreSettings:
    redis_url: str
    key_prefix: str
    report_ttl_seconds: int
    event_log_max_items: int

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    @property
    def plan_key(self) -> str:
        return f"{self.key_prefix}:plan"

    @property
    def preflight_key(self) -> str:
        return f"{self.key_prefix}:preflight"

    @property
    def events_key(self) -> str:
        return f"{self.key_prefix}:events"

    @classmethod
    def from_env(cls) -> "ReportStoreSettings":
        key_prefix = (os.getenv("REDIS_KEY_PREFIX", "distribution").strip(":") or "distribution")
        return cls(
            redis_url=os.getenv("REDIS_URL", "").strip(),
            key_prefix=key_prefix,
            report_ttl_seconds=max(60, to_int(os.getenv("REPORT_TTL_SECONDS"), 86400)),
            event_log_max_items=max(1, to_int(os.getenv("EVENT_LOG_MAX_ITEMS"), 500)),
        )
