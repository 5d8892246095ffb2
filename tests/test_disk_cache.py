from __future__ import annotations

import asyncio
import datetime as dt
import json
from pathlib import Path

import pytest

from launchmem.cache import (
    FILES_LAYOUT,
    SYMBOLS_LAYOUT,
    CacheKey,
    CacheMetadata,
    DirectoryCacheStore,
    MemoryCacheLayer,
)
from launchmem.cache.types import CACHE_VERSION

NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.UTC)


class FakeClock:
    def __init__(self, start: dt.datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now


def _items(count: int) -> list[dict]:
    return [{"path": f"src/file{i}.py", "name": f"file{i}.py", "type": "file"} for i in range(count)]


def _metadata(item_count: int, updated_at: dt.datetime, ttl: int = 3600) -> CacheMetadata:
    stamp = updated_at.isoformat()
    return CacheMetadata(
        version=CACHE_VERSION,
        directory="/proj",
        created_at=stamp,
        updated_at=stamp,
        ttl_seconds=ttl,
        item_count=item_count,
    )


def test_zero_item_cache_is_invalid_even_when_new(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())

    assert store.is_valid(_metadata(0, NOW)) is False
    assert store.is_valid(_metadata(3, NOW)) is True


def test_validity_ends_when_age_reaches_ttl(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())
    metadata = _metadata(3, NOW - dt.timedelta(seconds=3600))

    assert store.is_valid(metadata) is False
    assert store.is_valid(metadata, ttl_seconds=3601) is True
    assert store.is_valid(metadata, now=NOW - dt.timedelta(seconds=1)) is True


def test_save_then_load_round_trip_with_layout(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())
    key = CacheKey("/Users/me/proj")

    async def main():
        await store.initialize()
        await store.save(key, _items(3), mode="recursive")
        return await store.load(key)

    entry = asyncio.run(main())
    folder = tmp_path / "-Users-me-proj"
    assert (folder / "metadata.json").is_file()
    assert (folder / "files.jsonl").is_file()
    assert entry.items == _items(3)
    assert entry.partial is False
    raw = json.loads((folder / "metadata.json").read_text())
    assert raw["itemCount"] == 3
    assert raw["version"] == "2.0"
    assert raw["mode"] == "recursive"


def test_limited_load_stops_early_and_flags_partial(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())
    key = CacheKey("/proj")

    async def main():
        await store.save(key, _items(10))
        limited = await store.load(key, limit=4)
        exact = await store.load(key, limit=10)
        return limited, exact

    limited, exact = asyncio.run(main())
    assert limited.items == _items(4)
    assert limited.partial is True
    assert exact.partial is False

    with pytest.raises(ValueError):
        asyncio.run(store.load(key, limit=0))


def test_missing_or_mismatched_cache_is_a_miss(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())
    key = CacheKey("/proj")

    async def main():
        missing = await store.load(key)
        await store.save(key, _items(2))
        path = store.metadata_path("/proj")
        raw = json.loads(path.read_text())
        raw["version"] = "1.0"
        path.write_text(json.dumps(raw))
        stale_version = await store.load(key)
        return missing, stale_version

    assert asyncio.run(main()) == (None, None)


def test_malformed_payload_lines_are_skipped(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())
    key = CacheKey("/proj")

    async def main():
        await store.save(key, _items(2))
        with store.payload_path("/proj").open("a", encoding="utf-8") as handle:
            handle.write("{broken\n")
            handle.write(json.dumps({"path": "late"}) + "\n")
        return await store.load(key)

    entry = asyncio.run(main())
    assert [item["path"] for item in entry.items] == ["src/file0.py", "src/file1.py", "late"]


def test_sub_kinds_are_stored_and_loaded_separately(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, layout=SYMBOLS_LAYOUT, clock=FakeClock())

    async def main():
        await store.save(CacheKey("/proj", "py"), [{"name": "main"}], mode="full")
        await store.save(CacheKey("/proj", "rs"), [{"name": "run"}, {"name": "new"}])
        python = await store.load(CacheKey("/proj", "py"))
        combined = await store.load(CacheKey("/proj"))
        absent = await store.load(CacheKey("/proj", "go"))
        metadata = await store.load_metadata("/proj")
        return python, combined, absent, metadata

    python, combined, absent, metadata = asyncio.run(main())
    folder = tmp_path / "-proj"
    assert (folder / "symbol-metadata.json").is_file()
    assert (folder / "symbols-py.jsonl").is_file()
    assert python.items == [{"name": "main"}]
    assert sorted(item["name"] for item in combined.items) == ["main", "new", "run"]
    assert absent is None
    assert metadata.item_count == 3
    assert store.is_valid(metadata, sub_kind="rs") is True
    assert store.is_valid(metadata, sub_kind="go") is False


def test_touch_extends_ttl_without_rewriting_payload(tmp_path: Path) -> None:
    clock = FakeClock()
    store = DirectoryCacheStore(tmp_path, clock=clock)
    key = CacheKey("/proj")

    async def main():
        await store.save(key, _items(2))
        payload = store.payload_path("/proj")
        before = payload.stat().st_mtime_ns
        clock.now = NOW + dt.timedelta(hours=2)
        stale = store.is_valid(await store.load_metadata("/proj"))
        touched = await store.touch(key)
        fresh = store.is_valid(await store.load_metadata("/proj"))
        return stale, touched, fresh, before, payload.stat().st_mtime_ns

    stale, touched, fresh, before, after = asyncio.run(main())
    assert (stale, touched, fresh) == (False, True, True)
    assert before == after


def test_save_and_clear_invalidate_memory_layer(tmp_path: Path) -> None:
    memory = MemoryCacheLayer()
    store = DirectoryCacheStore(tmp_path, memory=memory, clock=FakeClock())
    key = CacheKey("/proj")

    async def main():
        await store.save(key, _items(1))
        memory.put(key, "cached")
        await store.save(key, _items(2))
        after_save = key in memory
        memory.put(key, "cached")
        await store.clear("/proj")
        return after_save, key in memory, await store.load(key)

    assert asyncio.run(main()) == (False, False, None)
    assert not (tmp_path / "-proj").exists()


def test_layouts_share_folder_without_clobbering(tmp_path: Path) -> None:
    files = DirectoryCacheStore(tmp_path, layout=FILES_LAYOUT, clock=FakeClock())
    symbols = DirectoryCacheStore(
        tmp_path, layout=SYMBOLS_LAYOUT, track_recent=False, clock=FakeClock()
    )

    async def main():
        await files.save(CacheKey("/proj"), _items(2))
        await symbols.save(CacheKey("/proj", "py"), [{"name": "main"}])
        await files.clear("/proj")
        return await files.load(CacheKey("/proj")), await symbols.load(CacheKey("/proj", "py"))

    files_entry, symbols_entry = asyncio.run(main())
    assert files_entry is None
    assert symbols_entry.items == [{"name": "main"}]


def test_stats_and_cleanup_old(tmp_path: Path) -> None:
    clock = FakeClock()
    store = DirectoryCacheStore(tmp_path, clock=clock)

    async def main():
        clock.now = NOW - dt.timedelta(days=10)
        await store.save(CacheKey("/old"), _items(1))
        clock.now = NOW
        await store.save(CacheKey("/new"), _items(3))
        stats = await store.stats()
        removed = await store.cleanup_old(7)
        return stats, removed, await store.stats()

    stats, removed, after = asyncio.run(main())
    assert stats.total_caches == 2
    assert stats.total_items == 4
    assert stats.oldest_cache == "/old"
    assert stats.newest_cache == "/new"
    assert stats.total_size_bytes > 0
    assert removed == 1
    assert after.total_caches == 1


def test_recent_directories_are_capped_and_most_recent_first(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())

    async def main():
        for i in range(12):
            await store.set_last_used_directory(f"/p{i}")
        await store.set_last_used_directory("/p5")
        return await store.last_used_directory(), await store.recent_directories()

    last, recent = asyncio.run(main())
    assert last == "/p5"
    assert recent[0] == "/p5"
    assert len(recent) == 10
    assert recent.count("/p5") == 1


def test_clear_all_removes_every_cache(tmp_path: Path) -> None:
    store = DirectoryCacheStore(tmp_path, clock=FakeClock())

    async def main():
        await store.save(CacheKey("/a"), _items(1))
        await store.save(CacheKey("/b"), _items(1))
        await store.clear_all()
        return await store.stats(), await store.last_used_directory()

    stats, last = asyncio.run(main())
    assert stats.total_caches == 0
    assert last is None
