from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .types import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 20
DEFAULT_TTL_SECONDS = 300


@dataclass
class MemoryCacheEntry:
    payload: Any
    loaded_at: float


class MemoryCacheLayer:
    """Bounded LRU in front of the disk cache, with its own shorter TTL."""

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max(1, int(max_entries))
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, MemoryCacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[CacheKey]:
        """Keys from least to most recently used."""

        return list(self._entries)

    def get(self, key: CacheKey) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.loaded_at >= self.ttl_seconds:
            del self._entries[key]
            logger.debug("memory cache expired for %s", key)
            return None
        self._entries.move_to_end(key)
        return entry.payload

    def put(self, key: CacheKey, payload: Any, *, partial: bool = False) -> bool:
        """Cache ``payload`` as most recently used; refuse truncated payloads."""

        if partial:
            logger.debug("not caching partial payload for %s", key)
            return False
        self._entries[key] = MemoryCacheEntry(payload=payload, loaded_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("memory cache evicted %s", oldest)
        return True

    def invalidate(self, directory: str, sub_kind: str | None = None) -> int:
        """Drop entries for ``directory``; all of its sub-kinds unless one is given.

        The combined (no sub-kind) entry is always dropped since it includes
        every sub-kind's items.
        """

        doomed = [
            key
            for key in list(self._entries)
            if key.directory == directory
            and (sub_kind is None or key.sub_kind in (None, sub_kind))
        ]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
