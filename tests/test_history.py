from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from launchmem.history import RecentItemCache, generate_id
from launchmem.types import LogRecord


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _cache(path: Path, *, cache_size: int = 200, clock=None) -> RecentItemCache:
    cache = RecentItemCache.from_path(path, cache_size=cache_size, debounce_ms=10_000)
    if clock is not None:
        cache._clock = clock
    return cache


def _disk_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def _write_log(path: Path, rows: list[dict]) -> None:
    path.write_text("".join(json.dumps(row) + "\n" for row in rows), encoding="utf-8")


def test_generate_id_is_unique_and_time_prefixed() -> None:
    ids = {generate_id(1_700_000_000_000) for _ in range(200)}
    assert len(ids) == 200
    assert all(item.startswith("loyw3v28") for item in ids)


def test_back_to_back_duplicate_coalesces_into_one_append(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"
    clock = FakeClock()

    async def main() -> RecentItemCache:
        cache = _cache(path, clock=clock)
        await cache.initialize()
        first = cache.add("ls -la")
        clock.advance(5)
        second = cache.add("  ls -la  ")
        assert second is first
        await cache.close()
        return cache

    cache = asyncio.run(main())
    lines = _disk_lines(path)
    assert len(lines) == 1
    assert cache.get_recent(1)[0].timestamp == int(clock.now * 1000)


def test_non_head_duplicate_is_moved_to_front_and_appended(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"

    async def main() -> RecentItemCache:
        cache = _cache(path)
        await cache.initialize()
        cache.add("foo")
        cache.add("bar")
        cache.add("foo")
        await cache.close()
        return cache

    cache = asyncio.run(main())
    assert [item.text for item in cache.get_history()] == ["foo", "bar"]
    assert [row["text"] for row in _disk_lines(path)] == ["foo", "bar", "foo"]


def test_empty_text_is_ignored(tmp_path: Path) -> None:
    async def main() -> LogRecord | None:
        cache = _cache(tmp_path / "history.jsonl")
        await cache.initialize()
        return cache.add("   ")

    assert asyncio.run(main()) is None


def test_initialize_loads_newest_first_and_dedupes(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"
    _write_log(
        path,
        [
            {"id": "a1", "text": "foo", "timestamp": 100},
            {"id": "a2", "text": "bar", "timestamp": 200},
            {"id": "a3", "text": "foo", "timestamp": 300, "appName": "Terminal"},
        ],
    )

    async def main() -> RecentItemCache:
        cache = _cache(path)
        await cache.initialize()
        return cache

    cache = asyncio.run(main())
    items = cache.get_history()
    assert [item.id for item in items] == ["a3", "a2"]
    assert items[0].app_name == "Terminal"


def test_cache_size_bounds_memory_but_not_disk(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"

    async def main() -> tuple[RecentItemCache, int]:
        cache = _cache(path, cache_size=3)
        await cache.initialize()
        for i in range(5):
            cache.add(f"entry {i}")
        await cache.flush()
        total = await cache.count_total()
        await cache.close()
        return cache, total

    cache, total = asyncio.run(main())
    assert [item.text for item in cache.get_history()] == ["entry 4", "entry 3", "entry 2"]
    assert total == 5
    assert len(_disk_lines(path)) == 5


def test_remove_hides_item_but_keeps_log_line(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"

    async def main() -> tuple[RecentItemCache, bool, bool]:
        cache = _cache(path)
        await cache.initialize()
        record = cache.add("secret")
        await cache.flush()
        removed = cache.remove(record.id)
        missing = cache.remove("does-not-exist")
        await cache.close()
        return cache, removed, missing

    cache, removed, missing = asyncio.run(main())
    assert removed is True
    assert missing is False
    assert cache.get_history() == []
    assert [row["text"] for row in _disk_lines(path)] == ["secret"]


def test_search_is_case_insensitive_and_limited(tmp_path: Path) -> None:
    async def main() -> RecentItemCache:
        cache = _cache(tmp_path / "history.jsonl")
        await cache.initialize()
        for text in ("Git status", "git log", "make test", "GIT push"):
            cache.add(text)
        return cache

    cache = asyncio.run(main())
    assert [item.text for item in cache.search("git", limit=2)] == ["GIT push", "git log"]
    assert cache.search("   ") == []


def test_get_for_search_reads_past_cache_from_log(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"
    _write_log(path, [{"id": f"i{i}", "text": f"t{i}", "timestamp": i} for i in range(10)])

    async def main() -> list[LogRecord]:
        cache = _cache(path, cache_size=2)
        await cache.initialize()
        return await cache.get_for_search(5)

    items = asyncio.run(main())
    assert [item.id for item in items] == ["i9", "i8", "i7", "i6", "i5"]


def test_stats_describe_cached_items(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"
    _write_log(
        path,
        [
            {"id": "a", "text": "ab", "timestamp": 100},
            {"id": "b", "text": "abcd", "timestamp": 300},
        ],
    )

    async def main() -> dict:
        cache = _cache(path)
        await cache.initialize()
        await cache.count_total()
        return dict(cache.stats())

    assert asyncio.run(main()) == {
        "totalItems": 2,
        "totalCharacters": 6,
        "averageLength": 3,
        "oldestTimestamp": 100,
        "newestTimestamp": 300,
    }


def test_export_then_import_into_fresh_log(tmp_path: Path) -> None:
    source = tmp_path / "source.jsonl"
    target = tmp_path / "target.jsonl"
    _write_log(
        source,
        [
            {"id": "a", "text": "first", "timestamp": 100},
            {"id": "b", "text": "second", "timestamp": 200, "directory": "/tmp"},
        ],
    )

    async def main() -> tuple[dict, int, RecentItemCache]:
        exporter = _cache(source)
        await exporter.initialize()
        data = await exporter.export()
        importer = _cache(target)
        await importer.initialize()
        written = await importer.import_(data)
        return data, written, importer

    data, written, importer = asyncio.run(main())
    assert data["version"] == "1.0"
    assert [row["id"] for row in data["history"]] == ["b", "a"]
    assert written == 2
    assert [row["id"] for row in _disk_lines(target)] == ["a", "b"]
    assert [item.id for item in importer.get_history()] == ["b", "a"]
    assert importer.get_item("b").directory == "/tmp"


def test_import_skips_invalid_rows_and_rejects_bad_payload(tmp_path: Path) -> None:
    async def main() -> int:
        cache = _cache(tmp_path / "history.jsonl")
        await cache.initialize()
        with pytest.raises(ValueError):
            await cache.import_({"nope": []})
        return await cache.import_(
            {
                "history": [
                    {"id": "ok", "text": "fine", "timestamp": 1},
                    {"id": "empty", "text": "", "timestamp": 2},
                    {"text": "no id", "timestamp": 3},
                    "garbage",
                ]
            },
            merge=True,
        )

    assert asyncio.run(main()) == 1


def test_non_finite_timestamp_row_is_skipped_on_load(tmp_path: Path) -> None:
    path = tmp_path / "history.jsonl"
    path.write_text(
        '{"id": "a1", "text": "foo", "timestamp": 100}\n'
        '{"id": "bad", "text": "x", "timestamp": 1e400}\n'
        '{"id": "nan", "text": "y", "timestamp": NaN}\n',
        encoding="utf-8",
    )

    async def main() -> tuple[RecentItemCache, list[LogRecord]]:
        cache = _cache(path, cache_size=1)
        await cache.initialize()
        return cache, await cache.get_for_search(5)

    cache, searched = asyncio.run(main())
    assert [item.id for item in cache.get_history()] == ["a1"]
    assert [item.id for item in searched] == ["a1"]
