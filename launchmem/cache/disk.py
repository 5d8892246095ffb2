from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, NamedTuple

from ..fs_paths import encode_directory_path, ensure_dir, write_private_lines, write_private_text
from ..log_store import YIELD_EVERY_LINES, parse_json_line
from .memory import MemoryCacheLayer
from .types import (
    CACHE_VERSION,
    DEFAULT_TTL_SECONDS,
    CacheEntry,
    CacheKey,
    CacheMetadata,
    CacheStats,
    SubKindInfo,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

GLOBAL_METADATA_FILE = "global-metadata.json"
MAX_RECENT_DIRECTORIES = 10


class CacheLayout(NamedTuple):
    metadata_file: str
    payload_prefix: str


FILES_LAYOUT = CacheLayout("metadata.json", "files")
SYMBOLS_LAYOUT = CacheLayout("symbol-metadata.json", "symbols")


def _iter_jsonl(items: Iterable[dict[str, Any]]) -> Iterable[str]:
    for item in items:
        yield json.dumps(item, ensure_ascii=False) + "\n"


class DirectoryCacheStore:
    """Per-directory disk cache: one metadata JSON file plus JSONL payloads.

    Layout under ``root``::

        <encoded-directory>/
            metadata.json            (layout.metadata_file)
            files.jsonl              (combined payload)
            symbols-<sub_kind>.jsonl (one per sub-kind when partitioned)

    Several layouts may share one folder; each only touches its own files.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        layout: CacheLayout = FILES_LAYOUT,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        memory: MemoryCacheLayer | None = None,
        track_recent: bool = True,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self.root = Path(root).expanduser()
        self.layout = layout
        self.ttl_seconds = ttl_seconds
        self.memory = memory
        self.track_recent = track_recent
        self._clock = clock

    async def initialize(self) -> None:
        ensure_dir(self.root)
        logger.debug("directory cache initialized at %s", self.root)

    # ---------- paths ----------
    def cache_path(self, directory: str) -> Path:
        return self.root / encode_directory_path(directory)

    def metadata_path(self, directory: str) -> Path:
        return self.cache_path(directory) / self.layout.metadata_file

    def payload_path(self, directory: str, sub_kind: str | None = None) -> Path:
        prefix = self.layout.payload_prefix
        name = f"{prefix}-{sub_kind}.jsonl" if sub_kind else f"{prefix}.jsonl"
        return self.cache_path(directory) / name

    def _is_payload_file(self, name: str) -> bool:
        prefix = self.layout.payload_prefix
        if not name.endswith(".jsonl"):
            return False
        return name == f"{prefix}.jsonl" or name.startswith(f"{prefix}-")

    @property
    def global_metadata_path(self) -> Path:
        return self.root / GLOBAL_METADATA_FILE

    # ---------- metadata ----------
    def _read_metadata_file(self, path: Path) -> CacheMetadata | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("unreadable cache metadata %s", path, exc_info=exc)
            return None
        if not isinstance(raw, dict):
            return None
        return CacheMetadata.from_dict(raw)

    async def load_metadata(self, directory: str) -> CacheMetadata | None:
        metadata = self._read_metadata_file(self.metadata_path(directory))
        if metadata is None:
            return None
        if metadata.version != CACHE_VERSION:
            logger.debug(
                "cache version mismatch for %s (expected %s, got %s)",
                directory,
                CACHE_VERSION,
                metadata.version,
            )
            return None
        if metadata.directory != directory:
            logger.debug("cache directory mismatch for %s", directory)
            return None
        return metadata

    def _write_metadata(self, directory: str, metadata: CacheMetadata) -> None:
        text = json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2)
        write_private_text(self.metadata_path(directory), text)

    def is_valid(
        self,
        metadata: CacheMetadata,
        ttl_seconds: int | None = None,
        *,
        sub_kind: str | None = None,
        now: dt.datetime | None = None,
    ) -> bool:
        """False for a zero-item cache (failed computation) or once the TTL elapsed."""

        if sub_kind is not None:
            info = metadata.sub_kinds.get(sub_kind)
            item_count = info.item_count if info else 0
        else:
            item_count = metadata.item_count
        if item_count == 0:
            logger.debug("cache invalid: zero items for %s", metadata.directory)
            return False
        if metadata.version != CACHE_VERSION:
            return False
        updated_at = parse_timestamp(metadata.updated_at)
        if updated_at is None:
            return False
        ttl = ttl_seconds if ttl_seconds is not None else metadata.ttl_seconds
        age = ((now or self._clock()) - updated_at).total_seconds()
        return age < ttl

    # ---------- save / load ----------
    async def save(
        self, key: CacheKey, items: list[dict[str, Any]], mode: str | None = None
    ) -> CacheMetadata:
        """Write metadata, then the payload file for ``key``."""

        directory = key.directory
        ensure_dir(self.cache_path(directory))
        now = self._clock().isoformat()
        existing = await self.load_metadata(directory)

        if key.sub_kind is not None:
            metadata = existing or CacheMetadata(
                version=CACHE_VERSION,
                directory=directory,
                created_at=now,
                updated_at=now,
                ttl_seconds=self.ttl_seconds,
            )
            metadata.sub_kinds[key.sub_kind] = SubKindInfo(item_count=len(items), mode=mode)
            metadata.item_count = sum(info.item_count for info in metadata.sub_kinds.values())
            metadata.updated_at = now
            metadata.ttl_seconds = self.ttl_seconds
            metadata.mode = mode
        else:
            metadata = CacheMetadata(
                version=CACHE_VERSION,
                directory=directory,
                created_at=existing.created_at if existing else now,
                updated_at=now,
                ttl_seconds=self.ttl_seconds,
                item_count=len(items),
                mode=mode,
            )

        self._write_metadata(directory, metadata)
        write_private_lines(self.payload_path(directory, key.sub_kind), _iter_jsonl(items))
        if self.memory is not None:
            self.memory.invalidate(directory, key.sub_kind)
        if self.track_recent:
            await self.set_last_used_directory(directory)
        logger.debug("saved cache for %s (%d items)", key, len(items))
        return metadata

    async def load(self, key: CacheKey, limit: int | None = None) -> CacheEntry | None:
        """Load ``key`` from disk, or None on a miss.

        With ``limit`` the payload is streamed only until ``limit`` items were
        read; the entry is then flagged ``partial`` if more items existed.
        """

        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive")
        metadata = await self.load_metadata(key.directory)
        if metadata is None:
            return None

        if key.sub_kind is not None:
            if key.sub_kind not in metadata.sub_kinds:
                return None
            paths = [self.payload_path(key.directory, key.sub_kind)]
        elif metadata.sub_kinds:
            paths = [self.payload_path(key.directory, name) for name in metadata.sub_kinds]
        else:
            paths = [self.payload_path(key.directory)]

        items: list[dict[str, Any]] = []
        partial = False
        for path in paths:
            remaining = None if limit is None else limit - len(items)
            if remaining == 0:
                partial = True
                break
            try:
                chunk, truncated = await self._read_payload(path, remaining)
            except FileNotFoundError:
                logger.debug("cache payload missing: %s", path)
                return None
            items.extend(chunk)
            if truncated:
                partial = True
                break
        return CacheEntry(key=key, metadata=metadata, items=items, partial=partial)

    async def _read_payload(
        self, path: Path, limit: int | None
    ) -> tuple[list[dict[str, Any]], bool]:
        items: list[dict[str, Any]] = []
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            for index, line in enumerate(handle, start=1):
                if index % YIELD_EVERY_LINES == 0:
                    await asyncio.sleep(0)
                if not line.strip():
                    continue
                if limit is not None and len(items) >= limit:
                    return items, True
                item = parse_json_line(line)
                if isinstance(item, dict):
                    items.append(item)
                else:
                    logger.warning("invalid line in cache file %s", path)
        return items, False

    async def touch(self, key: CacheKey) -> bool:
        """Refresh ``updatedAt`` only, extending the TTL without a payload rewrite."""

        metadata = await self.load_metadata(key.directory)
        if metadata is None:
            return False
        metadata.updated_at = self._clock().isoformat()
        try:
            self._write_metadata(key.directory, metadata)
        except OSError as exc:
            logger.exception("cache timestamp update failed for %s", key, exc_info=exc)
            return False
        logger.debug("touched cache for %s", key)
        return True

    # ---------- clearing ----------
    async def clear(self, directory: str, sub_kind: str | None = None) -> None:
        if self.memory is not None:
            self.memory.invalidate(directory, sub_kind)
        folder = self.cache_path(directory)
        if sub_kind is not None:
            self.payload_path(directory, sub_kind).unlink(missing_ok=True)
            metadata = await self.load_metadata(directory)
            if metadata is not None and metadata.sub_kinds.pop(sub_kind, None) is not None:
                metadata.item_count = sum(i.item_count for i in metadata.sub_kinds.values())
                metadata.updated_at = self._clock().isoformat()
                self._write_metadata(directory, metadata)
            logger.debug("cleared cache for %s:%s", directory, sub_kind)
            return
        self._remove_layout_files(folder)
        logger.info("cleared cache for %s", directory)

    def _remove_layout_files(self, folder: Path) -> None:
        if not folder.is_dir():
            return
        (folder / self.layout.metadata_file).unlink(missing_ok=True)
        for child in list(folder.iterdir()):
            if child.is_file() and self._is_payload_file(child.name):
                child.unlink(missing_ok=True)
        try:
            folder.rmdir()
        except OSError:
            # Other layouts still keep files here.
            pass

    async def clear_all(self) -> None:
        if self.memory is not None:
            self.memory.clear()
        if not self.root.is_dir():
            return
        for child in list(self.root.iterdir()):
            if child.is_dir():
                self._remove_layout_files(child)
        if self.track_recent:
            self.global_metadata_path.unlink(missing_ok=True)
        logger.info("cleared all caches under %s", self.root)

    # ---------- maintenance ----------
    def _iter_metadata(self) -> Iterable[tuple[Path, CacheMetadata]]:
        if not self.root.is_dir():
            return
        for child in sorted(self.root.iterdir()):
            if not child.is_dir():
                continue
            metadata = self._read_metadata_file(child / self.layout.metadata_file)
            if metadata is not None:
                yield child, metadata

    async def stats(self) -> CacheStats:
        stats = CacheStats()
        oldest: dt.datetime | None = None
        newest: dt.datetime | None = None
        for folder, metadata in self._iter_metadata():
            stats.total_caches += 1
            stats.total_items += metadata.item_count
            updated = parse_timestamp(metadata.updated_at)
            if updated is not None:
                if oldest is None or updated < oldest:
                    oldest = updated
                    stats.oldest_cache = metadata.directory
                if newest is None or updated > newest:
                    newest = updated
                    stats.newest_cache = metadata.directory
            for child in folder.iterdir():
                if child.is_file() and self._is_payload_file(child.name):
                    stats.total_size_bytes += child.stat().st_size
        return stats

    async def cleanup_old(self, max_age_days: float) -> int:
        """Remove caches whose last update is older than ``max_age_days``."""

        cutoff = self._clock() - dt.timedelta(days=max_age_days)
        removed = 0
        for folder, metadata in list(self._iter_metadata()):
            updated = parse_timestamp(metadata.updated_at)
            if updated is None or updated >= cutoff:
                continue
            if self.memory is not None:
                self.memory.invalidate(metadata.directory)
            self._remove_layout_files(folder)
            removed += 1
            logger.debug("removed old cache for %s", metadata.directory)
        logger.info("cache cleanup removed %d old caches", removed)
        return removed

    # ---------- recent directories ----------
    def _read_global_metadata(self) -> dict[str, Any]:
        try:
            data = json.loads(self.global_metadata_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            data = None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("unreadable global cache metadata", exc_info=exc)
            data = None
        if not isinstance(data, dict):
            data = {}
        recent = data.get("recentDirectories")
        return {
            "version": CACHE_VERSION,
            "lastUsedDirectory": data.get("lastUsedDirectory"),
            "lastUsedAt": data.get("lastUsedAt"),
            "recentDirectories": recent if isinstance(recent, list) else [],
        }

    async def last_used_directory(self) -> str | None:
        value = self._read_global_metadata().get("lastUsedDirectory")
        return value if isinstance(value, str) else None

    async def recent_directories(self) -> list[str]:
        recent = self._read_global_metadata()["recentDirectories"]
        return [
            item["directory"]
            for item in recent
            if isinstance(item, dict) and isinstance(item.get("directory"), str)
        ]

    async def set_last_used_directory(self, directory: str) -> None:
        data = self._read_global_metadata()
        now = self._clock().isoformat()
        recent = [
            item
            for item in data["recentDirectories"]
            if isinstance(item, dict) and item.get("directory") != directory
        ]
        recent.insert(0, {"directory": directory, "lastUsedAt": now})
        data["lastUsedDirectory"] = directory
        data["lastUsedAt"] = now
        data["recentDirectories"] = recent[:MAX_RECENT_DIRECTORIES]
        try:
            ensure_dir(self.root)
            write_private_text(self.global_metadata_path, json.dumps(data, indent=2))
        except OSError as exc:
            logger.warning("global cache metadata update failed", exc_info=exc)
