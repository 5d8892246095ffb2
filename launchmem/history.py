from __future__ import annotations

import asyncio
import datetime as dt
import logging
import secrets
import string
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .log_store import AppendOnlyLogStore
from .tail import DEFAULT_CHUNK_SIZE
from .types import ExportData, HistoryStats, LogRecord, is_valid_log_item

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 200
EXPORT_VERSION = "1.0"
# Delay before the startup line count runs, so it never competes with the first read.
COUNT_DELAY_S = 0.1

_BASE36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id(now_ms: int | None = None) -> str:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return _base36(now_ms) + suffix


def text_dedupe_key(record: LogRecord) -> str:
    return record.text


def _record_from_row(row: dict[str, Any]) -> LogRecord | None:
    try:
        return LogRecord.from_dict(row)
    except (KeyError, TypeError, ValueError, OverflowError):
        logger.warning("skipping unreadable history row %r", row.get("id"))
        return None


class RecentItemCache:
    """Bounded in-memory view over the history log, newest first.

    Writes go through to the append-only log; removals only hide items from
    this view. The durable log, and the cached total count derived from it,
    are left as they are.
    """

    def __init__(
        self,
        store: AppendOnlyLogStore,
        *,
        cache_size: int = DEFAULT_CACHE_SIZE,
        dedupe_key: Callable[[LogRecord], str] = text_dedupe_key,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.cache_size = max(1, int(cache_size))
        self._dedupe_key = dedupe_key
        self._clock = clock
        self._items: list[LogRecord] = []
        self._keys: set[str] = set()
        self._total_count = 0
        self._total_counted = False
        self._count_task: asyncio.Task | None = None

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        *,
        cache_size: int = DEFAULT_CACHE_SIZE,
        debounce_ms: int = 100,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> RecentItemCache:
        store = AppendOnlyLogStore(
            path, debounce_ms=debounce_ms, validate=is_valid_log_item, chunk_size=chunk_size
        )
        return cls(store, cache_size=cache_size)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def initialize(self) -> None:
        try:
            await self.store.ensure_exists()
            await self._load_recent()
        except OSError as exc:
            logger.exception("history initialization failed", exc_info=exc)
            self._items = []
            self._keys = set()
            self._total_count = 0
            self._total_counted = False
            return
        logger.info("history cache initialized with %d items", len(self._items))
        self._schedule_count()

    async def _load_recent(self) -> None:
        rows = await self.store.read_last(self.cache_size)
        items: list[LogRecord] = []
        keys: set[str] = set()
        for row in reversed(rows):
            record = _record_from_row(row)
            if record is None:
                continue
            key = self._dedupe_key(record)
            if key in keys:
                continue
            keys.add(key)
            items.append(record)
        self._items = items
        self._keys = keys
        logger.debug("loaded %d recent history items", len(items))

    def _schedule_count(self) -> None:
        if self._total_counted or self._count_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._count_task = loop.create_task(self._count_later())

    async def _count_later(self) -> None:
        try:
            await asyncio.sleep(COUNT_DELAY_S)
            await self.count_total()
        except Exception as exc:
            logger.warning("background history count failed", exc_info=exc)
        finally:
            self._count_task = None

    async def count_total(self) -> int:
        if self._total_counted:
            return self._total_count
        try:
            self._total_count = await self.store.count_all() + self.store.pending
        except OSError as exc:
            logger.exception("history count failed", exc_info=exc)
            self._total_count = len(self._items)
        self._total_counted = True
        return self._total_count

    def add(
        self, text: str, *, app_name: str | None = None, directory: str | None = None
    ) -> LogRecord | None:
        trimmed = text.strip()
        if not trimmed:
            logger.debug("ignoring empty history text")
            return None
        now_ms = self._now_ms()
        record = LogRecord(
            id=generate_id(now_ms),
            text=trimmed,
            timestamp=now_ms,
            app_name=app_name or None,
            directory=directory or None,
        )
        return self.add_record(record)

    def add_record(self, record: LogRecord) -> LogRecord:
        """Add ``record`` to the view and queue it for the log.

        When the newest cached item has the same dedupe key, it is updated in
        place and returned instead; no log line is written for it.
        """

        key = self._dedupe_key(record)
        if self._items and self._dedupe_key(self._items[0]) == key:
            head = self._items[0]
            head.timestamp = record.timestamp
            if record.app_name:
                head.app_name = record.app_name
            if record.directory:
                head.directory = record.directory
            logger.debug("coalesced history item %s", head.id)
            return head

        if key in self._keys:
            self._items = [item for item in self._items if self._dedupe_key(item) != key]
        self._items.insert(0, record)
        self._keys.add(key)
        while len(self._items) > self.cache_size:
            evicted = self._items.pop()
            self._keys.discard(self._dedupe_key(evicted))

        self.store.append(record.to_dict())
        if self._total_counted:
            self._total_count += 1
        logger.debug(
            "added history item",
            extra={"id": record.id, "length": len(record.text), "cache_size": len(self._items)},
        )
        return record

    def remove(self, item_id: str) -> bool:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                del self._items[index]
                self._keys.discard(self._dedupe_key(item))
                logger.debug("removed history item %s from cache (log kept)", item_id)
                return True
        return False

    def get_history(self, limit: int | None = None) -> list[LogRecord]:
        if not limit:
            return list(self._items)
        return self._items[: min(limit, self.cache_size)]

    def get_recent(self, limit: int = 10) -> list[LogRecord]:
        return self._items[:limit]

    def get_item(self, item_id: str) -> LogRecord | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def search(self, query: str, limit: int = 10) -> list[LogRecord]:
        needle = (query or "").strip().lower()
        if not needle:
            return []
        results: list[LogRecord] = []
        for item in self._items:
            if needle in item.text.lower():
                results.append(item)
                if len(results) >= limit:
                    break
        return results

    async def get_for_search(self, limit: int) -> list[LogRecord]:
        """Return up to ``limit`` newest items, reading the log when the cache is short."""

        if limit <= len(self._items):
            return self._items[:limit]
        try:
            await self.store.flush_now()
            rows = await self.store.read_last(limit)
        except OSError as exc:
            logger.exception("history tail read failed", exc_info=exc)
            return list(self._items)
        records = (_record_from_row(row) for row in reversed(rows))
        return [record for record in records if record is not None]

    def stats(self) -> HistoryStats:
        if not self._total_counted:
            self._schedule_count()
        items = self._items
        total_chars = sum(len(item.text) for item in items)
        timestamps = [item.timestamp for item in items]
        return {
            "totalItems": self._total_count if self._total_counted else len(items),
            "totalCharacters": total_chars,
            "averageLength": round(total_chars / len(items)) if items else 0,
            "oldestTimestamp": min(timestamps) if timestamps else None,
            "newestTimestamp": max(timestamps) if timestamps else None,
        }

    async def clear(self) -> None:
        await self.store.flush_now()
        self._items = []
        self._keys = set()
        logger.info("history cache cleared (log kept)")

    async def export(self) -> ExportData:
        await self.store.flush_now()
        rows = await self.store.export_all()
        rows.sort(key=lambda row: row["timestamp"], reverse=True)
        return {
            "version": EXPORT_VERSION,
            "exportDate": dt.datetime.now(dt.UTC).isoformat(),
            "history": rows,
            "stats": self.stats(),
        }

    async def import_(self, data: Any, *, merge: bool = False) -> int:
        history = data.get("history") if isinstance(data, dict) else None
        if not isinstance(history, list):
            raise ValueError("invalid export data")
        if not merge:
            await self.clear()
        valid = [item for item in history if is_valid_log_item(item)]
        # Written oldest first so a tail read sees the newest records last.
        valid.sort(key=lambda item: item["timestamp"])
        written = await self.store.write_many(valid)
        await self._load_recent()
        self._total_counted = False
        await self.count_total()
        logger.info("imported %d of %d history items (merge=%s)", written, len(history), merge)
        return written

    async def flush(self) -> bool:
        return await self.store.flush_now()

    async def close(self) -> None:
        if self._count_task is not None:
            self._count_task.cancel()
            self._count_task = None
        await self.store.close()
