from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Literal

from .bonus import total_bonus
from .debounce import Debouncer
from .fs_paths import ensure_path, write_private_text
from .log_store import parse_json_line

logger = logging.getLogger(__name__)

USAGE_CATEGORIES = ("files", "symbols", "agents")
DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class UsageRecord:
    key: str
    count: int
    lastUsed: int
    firstUsed: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def usage_row_schema(row: Any) -> Literal["current", "legacy"] | None:
    if not isinstance(row, dict):
        return None
    key = row.get("key")
    if not isinstance(key, str) or not key:
        return None
    if _is_number(row.get("count")) and _is_number(row.get("lastUsed")):
        return "current"
    if _is_number(row.get("timestamp")):
        return "legacy"
    return None


def migrate_usage_row(row: Any) -> UsageRecord | None:
    """Map either stored schema to a ``UsageRecord``; unknown shapes give None."""

    schema = usage_row_schema(row)
    if schema == "current":
        last_used = int(row["lastUsed"])
        first_used = row.get("firstUsed")
        return UsageRecord(
            key=row["key"],
            count=max(0, int(row["count"])),
            lastUsed=last_used,
            firstUsed=int(first_used) if _is_number(first_used) else last_used,
        )
    if schema == "legacy":
        ts = int(row["timestamp"])
        return UsageRecord(key=row["key"], count=1, lastUsed=ts, firstUsed=ts)
    return None


def merge_usage(existing: UsageRecord, incoming: UsageRecord) -> UsageRecord:
    return UsageRecord(
        key=existing.key,
        count=existing.count + incoming.count,
        lastUsed=max(existing.lastUsed, incoming.lastUsed),
        firstUsed=min(existing.firstUsed, incoming.firstUsed),
    )


class UsageHistory:
    """Usage counts for one category (files, symbols, agents) in a JSONL file."""

    def __init__(
        self,
        path: str | Path,
        *,
        max_entries: int = 500,
        ttl_days: int = 30,
        debounce_ms: int = 2000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path).expanduser()
        self.max_entries = max(1, int(max_entries))
        self.ttl_days = ttl_days
        self._clock = clock
        self._entries: dict[str, UsageRecord] = {}
        self._initialized = False
        self._dirty = False
        self._debouncer = Debouncer(self.flush, debounce_ms)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def initialize(self) -> None:
        if self._initialized:
            return
        self._entries = self._load()
        self._prune()
        self._initialized = True
        logger.debug("usage history loaded", extra={"path": str(self.path), "entries": len(self._entries)})

    def _load(self) -> dict[str, UsageRecord]:
        entries: dict[str, UsageRecord] = {}
        try:
            handle = self.path.open("r", encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return entries
        migrated = 0
        with handle:
            for line in handle:
                row = parse_json_line(line)
                if row is None:
                    continue
                try:
                    record = migrate_usage_row(row)
                except (TypeError, ValueError, OverflowError):
                    record = None
                if record is None:
                    logger.warning("skipping invalid usage row in %s", self.path)
                    continue
                if usage_row_schema(row) == "legacy":
                    migrated += 1
                    existing = entries.get(record.key)
                    entries[record.key] = merge_usage(existing, record) if existing else record
                else:
                    entries[record.key] = record
        if migrated:
            logger.info("upgraded %d legacy usage rows in %s", migrated, self.path)
        return entries

    def _prune(self) -> None:
        cutoff = self._now_ms() - self.ttl_days * DAY_MS
        expired = [key for key, entry in self._entries.items() if entry.lastUsed < cutoff]
        for key in expired:
            del self._entries[key]
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.values(), key=lambda e: e.lastUsed)[:overflow]
            for entry in oldest:
                del self._entries[entry.key]
        if expired or overflow > 0:
            self._dirty = True

    async def record_usage(self, key: str) -> UsageRecord:
        if not self._initialized:
            await self.initialize()
        now = self._now_ms()
        entry = self._entries.get(key)
        if entry:
            entry.count += 1
            entry.lastUsed = now
        else:
            entry = UsageRecord(key=key, count=1, lastUsed=now, firstUsed=now)
            self._entries[key] = entry
        self._prune()
        self._dirty = True
        self._debouncer.trigger()
        return entry

    def bonus(self, key: str, now_ms: int | None = None) -> int:
        entry = self._entries.get(key)
        if entry is None:
            return 0
        return total_bonus(entry.count, entry.lastUsed, now_ms)

    def get_entry(self, key: str) -> UsageRecord | None:
        return self._entries.get(key)

    def entries(self) -> list[UsageRecord]:
        return list(self._entries.values())

    async def clear(self) -> None:
        self._entries.clear()
        self._dirty = True
        await self.flush_now()

    async def flush(self) -> bool:
        if not self._dirty:
            return True
        lines = [json.dumps(entry.to_dict(), ensure_ascii=False) for entry in self._entries.values()]
        try:
            ensure_path(self.path)
            write_private_text(self.path, "\n".join(lines) + ("\n" if lines else ""))
        except OSError as exc:
            logger.exception("usage history save failed", exc_info=exc)
            return False
        self._dirty = False
        return True

    async def flush_now(self) -> bool:
        self._debouncer.cancel()
        return await self.flush()

    async def close(self) -> None:
        await self.flush_now()
        await self._debouncer.wait_idle()
