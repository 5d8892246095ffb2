from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from .debounce import Debouncer
from .fs_paths import create_private_file, ensure_path
from .tail import DEFAULT_CHUNK_SIZE, read_last_n

logger = logging.getLogger(__name__)

# Streaming loops hand control back to the event loop this often.
YIELD_EVERY_LINES = 500


def parse_json_line(line: str) -> Any | None:
    line = line.strip()
    if not line:
        return None
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        logger.debug("skipping malformed log line", extra={"line": line[:200]})
        return None


class AppendOnlyLogStore:
    """Durable newline-delimited JSON log.

    Appends are queued and written in one batch by a debounced flush. A flush
    that fails puts its batch back at the head of the queue so the next attempt
    retries it in order. Records are never rewritten or deleted.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        debounce_ms: int = 100,
        validate: Callable[[Any], bool] | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.path = Path(path).expanduser()
        self.chunk_size = chunk_size
        self._validate = validate or (lambda item: isinstance(item, dict))
        self._queue: list[dict[str, Any]] = []
        self._inflight: asyncio.Future | None = None
        self._debouncer = Debouncer(self.flush, debounce_ms)

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    async def ensure_exists(self) -> bool:
        ensure_path(self.path)
        created = create_private_file(self.path)
        if created:
            logger.debug("created log file %s", self.path)
        return created

    def append(self, record: dict[str, Any]) -> None:
        self._queue.append(record)
        self._debouncer.trigger()

    async def flush(self) -> bool:
        while self._inflight is not None:
            await asyncio.shield(self._inflight)
        if not self._queue:
            return True
        batch = self._queue
        self._queue = []
        self._inflight = asyncio.get_running_loop().create_future()
        try:
            self._write_lines(batch)
        except OSError as exc:
            logger.exception(
                "log append failed; requeued %d records", len(batch), exc_info=exc
            )
            self._queue[:0] = batch
            return False
        finally:
            self._inflight.set_result(None)
            self._inflight = None
        logger.debug("appended %d records to %s", len(batch), self.path)
        return True

    async def flush_now(self) -> bool:
        self._debouncer.cancel()
        return await self.flush()

    async def write_many(self, records: Iterable[dict[str, Any]]) -> int:
        """Append ``records`` immediately, after anything already queued."""

        await self.flush_now()
        batch = list(records)
        if batch:
            self._write_lines(batch)
        return len(batch)

    async def close(self) -> None:
        await self.flush_now()
        await self._debouncer.wait_idle()

    def _write_lines(self, records: list[dict[str, Any]]) -> None:
        if not records:
            return
        payload = "\n".join(json.dumps(r, ensure_ascii=False) for r in records) + "\n"
        ensure_path(self.path)
        create_private_file(self.path)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(payload)

    async def export_all(self) -> list[dict[str, Any]]:
        """Stream the whole log and return every record that validates."""

        records: list[dict[str, Any]] = []
        skipped = 0
        try:
            handle = self.path.open("r", encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return records
        with handle:
            for index, line in enumerate(handle, start=1):
                if index % YIELD_EVERY_LINES == 0:
                    await asyncio.sleep(0)
                if not line.strip():
                    continue
                item = parse_json_line(line)
                if item is None or not self._validate(item):
                    skipped += 1
                    continue
                records.append(item)
        if skipped:
            logger.warning("skipped %d invalid lines in %s", skipped, self.path)
        return records

    async def count_all(self) -> int:
        """Count non-empty lines without keeping them in memory."""

        count = 0
        try:
            handle = self.path.open("rb")
        except FileNotFoundError:
            return 0
        with handle:
            for index, line in enumerate(handle, start=1):
                if index % YIELD_EVERY_LINES == 0:
                    await asyncio.sleep(0)
                if line.strip():
                    count += 1
        return count

    async def read_last(self, n: int) -> list[dict[str, Any]]:
        """Tail-read up to ``n`` lines and return the valid records, oldest first."""

        records: list[dict[str, Any]] = []
        for line in read_last_n(self.path, n, chunk_size=self.chunk_size):
            item = parse_json_line(line)
            if item is not None and self._validate(item):
                records.append(item)
        return records
