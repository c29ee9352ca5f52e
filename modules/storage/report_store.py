from __future__ import annotations

import json
import logging
from typing import Any

from redis import asyncio as redis
from redis.asyncio.client import Redis

from modules.common import get_logger, log_event, sanitize_value

from .helpers import encode_json, flatten_for_hash, now_iso
from .settings import ReportStoreSettings


class RedisReportStore:
    """Latest plan and preflight snapshots plus a capped event log in Redis."""

    def __init__(
        self,
        settings: ReportStoreSettings,
        logger: logging.Logger | None = None,
        *,
        client: Redis | None = None,
    ) -> None:
        self.settings = settings
        self._logger = get_logger(logger)
        self._redis = client

    def _require_redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("Redis client is not initialized.")
        return self._redis

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.settings.redis_url, decode_responses=True)
        await self._redis.ping()
        log_event(
            self._logger,
            level="info",
            event="redis_connected",
            message="Connected to Redis",
            key_prefix=self.settings.key_prefix,
        )

    async def healthcheck(self) -> None:
        await self._require_redis().ping()

    async def close(self) -> None:
        if self._redis is None:
            return
        close = getattr(self._redis, "aclose", None)
        if close:
            await close()
        else:
            await self._redis.close()
        self._redis = None

    async def _replace_hash(self, key: str, payload: dict[str, Any]) -> None:
        redis_client = self._require_redis()
        mapping = flatten_for_hash({**payload, "updated_at": now_iso()})
        pipeline = redis_client.pipeline(transaction=True)
        pipeline.delete(key)
        pipeline.hset(key, mapping=mapping)
        pipeline.expire(key, self.settings.report_ttl_seconds)
        await pipeline.execute()

    async def save_plan(self, snapshot: dict[str, Any]) -> None:
        await self._replace_hash(self.settings.plan_key, snapshot)
        log_event(
            self._logger,
            level="debug",
            event="plan_snapshot_saved",
            message="Distribution plan snapshot saved",
            key=self.settings.plan_key,
        )

    async def save_preflight(self, snapshot: dict[str, Any]) -> None:
        await self._replace_hash(self.settings.preflight_key, snapshot)
        log_event(
            self._logger,
            level="debug",
            event="preflight_snapshot_saved",
            message="Preflight snapshot saved",
            key=self.settings.preflight_key,
        )

    async def record_event(self, event: str, **fields: Any) -> None:
        redis_client = self._require_redis()
        entry = {"event": event, "timestamp": now_iso(), **sanitize_value(fields)}
        key = self.settings.events_key
        pipeline = redis_client.pipeline(transaction=True)
        pipeline.lpush(key, encode_json(entry))
        pipeline.ltrim(key, 0, self.settings.event_log_max_items - 1)
        pipeline.expire(key, self.settings.report_ttl_seconds)
        await pipeline.execute()

    async def get_plan(self) -> dict[str, str]:
        return await self._require_redis().hgetall(self.settings.plan_key)

    async def get_preflight(self) -> dict[str, str]:
        return await self._require_redis().hgetall(self.settings.preflight_key)

    async def recent_events(self, limit: int = 50) -> list[dict[str, Any]]:
        raw_items = await self._require_redis().lrange(self.settings.events_key, 0, max(0, limit - 1))
        events: list[dict[str, Any]] = []
        for raw in raw_items:
            try:
                events.append(json.loads(raw))
            except (TypeError, ValueError):
                events.append({"event": "unparsed", "raw": raw})
        return events
