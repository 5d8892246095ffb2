from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .disk import DirectoryCacheStore
from .memory import MemoryCacheLayer
from .types import CacheEntry, CacheKey

logger = logging.getLogger(__name__)

# A recompute provider gets (directory, sub_kind) and returns fresh items, or
# None when it found nothing changed since the last save.
RecomputeResult = list[dict[str, Any]] | None
RecomputeFn = Callable[[str, str | None], Awaitable[RecomputeResult] | RecomputeResult]


class CacheState(enum.Enum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"


@dataclass
class CacheResult:
    items: list[dict[str, Any]] = field(default_factory=list)
    state: CacheState = CacheState.ABSENT
    partial: bool = False


class RefreshCoordinator:
    """Serve cached data immediately and recompute stale keys in the background.

    At most one recompute task per key is in flight. The task is tracked in
    ``_pending`` and removed in a ``finally`` block whatever the outcome.
    """

    def __init__(
        self,
        disk: DirectoryCacheStore,
        memory: MemoryCacheLayer | None = None,
        *,
        ttl_seconds: int | None = None,
        mode: str | None = "full",
    ) -> None:
        self.disk = disk
        self.memory = memory if memory is not None else disk.memory
        self.ttl_seconds = ttl_seconds
        self.mode = mode
        self._pending: dict[CacheKey, asyncio.Task] = {}

    def is_refreshing(self, key: CacheKey) -> bool:
        return key in self._pending

    @property
    def pending_keys(self) -> list[CacheKey]:
        return list(self._pending)

    async def _lookup(self, key: CacheKey, limit: int | None) -> CacheEntry | None:
        if self.memory is not None:
            cached = self.memory.get(key)
            if cached is not None:
                return cached
        entry = await self.disk.load(key, limit)
        if entry is not None and self.memory is not None:
            self.memory.put(key, entry, partial=entry.partial)
        return entry

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self.disk.is_valid(entry.metadata, self.ttl_seconds, sub_kind=entry.key.sub_kind)

    async def state(self, key: CacheKey) -> CacheState:
        if key in self._pending:
            return CacheState.REFRESHING
        metadata = await self.disk.load_metadata(key.directory)
        if metadata is None or (
            key.sub_kind is not None and key.sub_kind not in metadata.sub_kinds
        ):
            return CacheState.ABSENT
        if self.disk.is_valid(metadata, self.ttl_seconds, sub_kind=key.sub_kind):
            return CacheState.FRESH
        return CacheState.STALE

    async def get_or_refresh(
        self, key: CacheKey, recompute: RecomputeFn, *, limit: int | None = None
    ) -> CacheResult:
        """Return the best data available now; schedule a recompute if stale or absent."""

        entry = await self._lookup(key, limit)
        if entry is None:
            self.refresh(key, recompute)
            return CacheResult(items=[], state=CacheState.ABSENT)

        items = entry.items
        partial = entry.partial
        if limit is not None and len(items) > limit:
            items = items[:limit]
            partial = True

        if self._is_fresh(entry):
            return CacheResult(items=items, state=CacheState.FRESH, partial=partial)
        self.refresh(key, recompute)
        return CacheResult(items=items, state=CacheState.STALE, partial=partial)

    def refresh(self, key: CacheKey, recompute: RecomputeFn) -> bool:
        """Schedule a background recompute of ``key`` unless one is in flight."""

        if key in self._pending:
            logger.debug("refresh already in progress for %s", key)
            return False
        task = asyncio.get_running_loop().create_task(self._run_refresh(key, recompute))
        self._pending[key] = task
        return True

    async def _run_refresh(self, key: CacheKey, recompute: RecomputeFn) -> None:
        try:
            logger.debug("background refresh started for %s", key)
            result = recompute(key.directory, key.sub_kind)
            if inspect.isawaitable(result):
                result = await result
            if result is None:
                await self.disk.touch(key)
                if self.memory is not None:
                    self.memory.invalidate(key.directory, key.sub_kind)
                logger.debug("background refresh found no changes for %s", key)
                return
            metadata = await self.disk.save(key, result, self.mode)
            if self.memory is not None:
                self.memory.put(
                    key, CacheEntry(key=key, metadata=metadata, items=list(result))
                )
            logger.debug("background refresh stored %d items for %s", len(result), key)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("background refresh failed for %s", key, exc_info=exc)
        finally:
            self._pending.pop(key, None)

    async def drain(self) -> None:
        """Wait until no refresh is in flight."""

        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
