from __future__ import annotations

from .disk import FILES_LAYOUT, SYMBOLS_LAYOUT, CacheLayout, DirectoryCacheStore
from .memory import MemoryCacheEntry, MemoryCacheLayer
from .refresh import CacheResult, CacheState, RefreshCoordinator
from .types import CacheEntry, CacheKey, CacheMetadata, CacheStats, SubKindInfo

__all__ = [
    "FILES_LAYOUT",
    "SYMBOLS_LAYOUT",
    "CacheEntry",
    "CacheKey",
    "CacheLayout",
    "CacheMetadata",
    "CacheResult",
    "CacheState",
    "CacheStats",
    "DirectoryCacheStore",
    "MemoryCacheEntry",
    "MemoryCacheLayer",
    "RefreshCoordinator",
    "SubKindInfo",
]
