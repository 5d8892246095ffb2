from __future__ import annotations

import logging

from .cache import (
    FILES_LAYOUT,
    SYMBOLS_LAYOUT,
    DirectoryCacheStore,
    MemoryCacheLayer,
    RefreshCoordinator,
)
from .config import LaunchmemConfig, load_config
from .history import RecentItemCache
from .usage import USAGE_CATEGORIES, UsageHistory

logger = logging.getLogger(__name__)


class LaunchmemContext:
    """Every log and cache service, built from one injected config.

    Construct, then ``await initialize()`` before first use and
    ``await close()`` on shutdown so queued writes reach disk.
    """

    def __init__(self, config: LaunchmemConfig | None = None) -> None:
        self.config = config or load_config()
        cfg = self.config
        self.history = RecentItemCache.from_path(
            cfg.history_path,
            cache_size=cfg.history_cache_size,
            debounce_ms=cfg.append_debounce_ms,
            chunk_size=cfg.tail_chunk_size,
        )
        self.memory = MemoryCacheLayer(
            max_entries=cfg.memory_cache_max_entries, ttl_seconds=cfg.memory_cache_ttl_s
        )
        self.file_cache = DirectoryCacheStore(
            cfg.cache_path,
            layout=FILES_LAYOUT,
            ttl_seconds=cfg.cache_ttl_s,
            memory=self.memory,
        )
        self.symbol_cache = DirectoryCacheStore(
            cfg.cache_path,
            layout=SYMBOLS_LAYOUT,
            ttl_seconds=cfg.cache_ttl_s,
            memory=MemoryCacheLayer(
                max_entries=cfg.memory_cache_max_entries, ttl_seconds=cfg.memory_cache_ttl_s
            ),
            track_recent=False,
        )
        self.file_refresh = RefreshCoordinator(self.file_cache, mode="recursive")
        self.symbol_refresh = RefreshCoordinator(self.symbol_cache, mode="full")
        self.usage = {
            category: UsageHistory(
                cfg.usage_path / f"{category}-usage-history.jsonl",
                max_entries=cfg.usage_max_entries,
                ttl_days=cfg.usage_ttl_days,
                debounce_ms=cfg.bulk_debounce_ms,
            )
            for category in USAGE_CATEGORIES
        }
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.history.initialize()
        await self.file_cache.initialize()
        await self.symbol_cache.initialize()
        for usage in self.usage.values():
            await usage.initialize()
        self._initialized = True
        logger.debug("launchmem services initialized from %s", self.config.data_path)

    def usage_for(self, category: str) -> UsageHistory:
        try:
            return self.usage[category]
        except KeyError:
            raise ValueError(f"unknown usage category: {category}") from None

    async def close(self) -> None:
        await self.file_refresh.close()
        await self.symbol_refresh.close()
        await self.history.close()
        for usage in self.usage.values():
            await usage.close()
        self._initialized = False
