#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from modules.storage import RedisReportStore, ReportStoreSettings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print the latest distribution plan, preflight and events from Redis.")
    parser.add_argument("--limit", type=int, default=20, help="Number of recent events to show")
    parser.add_argument("--key-prefix", help="Override REDIS_KEY_PREFIX")
    parser.add_argument("--json", action="store_true", help="Emit one JSON document instead of text")
    return parser.parse_args(argv)


def summarize_events(events: list[dict[str, Any]]) -> dict[str, int]:
    counts = Counter(str(event.get("event") or "unknown") for event in events)
    return dict(counts.most_common())


async def collect(settings: ReportStoreSettings, limit: int) -> dict[str, Any]:
    store = RedisReportStore(settings)
    await store.connect()
    try:
        plan, preflight, events = await asyncio.gather(
            store.get_plan(),
            store.get_preflight(),
            store.recent_events(limit=max(1, limit)),
        )
    finally:
        await store.close()
    return {
        "plan": plan,
        "preflight": preflight,
        "events": events,
        "event_counts": summarize_events(events),
    }


def print_text(report: dict[str, Any]) -> None:
    for section in ("plan", "preflight"):
        values = report[section]
        print(f"[{section}]")
        if not values:
            print("  (none)")
        for key in sorted(values):
            print(f"  {key}: {values[key]}")

    print("[events]")
    for name, count in report["event_counts"].items():
        print(f"  {name}: {count}")
    for event in report["events"]:
        print(f"  {event.get('timestamp', '-')} {event.get('event')}")


def main(argv: list[str] | None = None) -> int:
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")
    args = parse_args(argv)

    settings = ReportStoreSettings.from_env()
    if args.key_prefix:
        settings.key_prefix = args.key_prefix.strip(":") or settings.key_prefix
    if not settings.enabled:
        print("[error] REDIS_URL is not set", file=sys.stderr)
        return 2

    report = asyncio.run(collect(settings, args.limit))
    if args.json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
    else:
        print_text(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
