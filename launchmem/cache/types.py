from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, NamedTuple

CACHE_VERSION = "2.0"
DEFAULT_TTL_SECONDS = 3600


class CacheKey(NamedTuple):
    directory: str
    sub_kind: str | None = None

    def __str__(self) -> str:
        if self.sub_kind:
            return f"{self.directory}:{self.sub_kind}"
        return self.directory


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def parse_timestamp(value: Any) -> dt.datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


@dataclass
class SubKindInfo:
    item_count: int
    mode: str | None = None


@dataclass
class CacheMetadata:
    version: str
    directory: str
    created_at: str
    updated_at: str
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    item_count: int = 0
    sub_kinds: dict[str, SubKindInfo] = field(default_factory=dict)
    mode: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "directory": self.directory,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "ttlSeconds": self.ttl_seconds,
            "itemCount": self.item_count,
            "subKinds": {
                name: {"itemCount": info.item_count, "mode": info.mode}
                for name, info in self.sub_kinds.items()
            },
        }
        if self.mode is not None:
            data["mode"] = self.mode
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheMetadata | None:
        """Build metadata from its JSON form, or None when required fields are missing."""

        version = data.get("version")
        directory = data.get("directory")
        created_at = data.get("createdAt")
        updated_at = data.get("updatedAt")
        if not all(isinstance(v, str) for v in (version, directory, created_at, updated_at)):
            return None
        sub_kinds: dict[str, SubKindInfo] = {}
        raw_sub_kinds = data.get("subKinds")
        if isinstance(raw_sub_kinds, dict):
            for name, info in raw_sub_kinds.items():
                if not isinstance(info, dict):
                    continue
                try:
                    count = int(info.get("itemCount", 0))
                except (TypeError, ValueError):
                    continue
                sub_kinds[str(name)] = SubKindInfo(item_count=count, mode=info.get("mode"))
        try:
            ttl_seconds = int(data.get("ttlSeconds", DEFAULT_TTL_SECONDS))
            item_count = int(data.get("itemCount", 0))
        except (TypeError, ValueError):
            return None
        return cls(
            version=version,
            directory=directory,
            created_at=created_at,
            updated_at=updated_at,
            ttl_seconds=ttl_seconds,
            item_count=item_count,
            sub_kinds=sub_kinds,
            mode=data.get("mode"),
        )


@dataclass
class CacheEntry:
    key: CacheKey
    metadata: CacheMetadata
    items: list[dict[str, Any]]
    # True when the read stopped early at a caller-supplied limit.
    partial: bool = False


@dataclass
class CacheStats:
    total_caches: int = 0
    total_items: int = 0
    oldest_cache: str | None = None
    newest_cache: str | None = None
    total_size_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCaches": self.total_caches,
            "totalItems": self.total_items,
            "oldestCache": self.oldest_cache,
            "newestCache": self.newest_cache,
            "totalSizeBytes": self.total_size_bytes,
        }
