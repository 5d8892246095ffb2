from __future__ import annotations

import asyncio
import datetime as dt
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..service import LaunchmemContext

T = TypeVar("T")


def run_with_context(
    context_factory: Callable[[], LaunchmemContext],
    body: Callable[[LaunchmemContext], Awaitable[T]],
) -> T:
    """Build a context, initialize it, run ``body``, and always close it."""

    async def _main() -> T:
        ctx = context_factory()
        await ctx.initialize()
        try:
            return await body(ctx)
        finally:
            await ctx.close()

    return asyncio.run(_main())


def format_ms(timestamp: Any) -> str:
    if not isinstance(timestamp, (int, float)):
        return "-"
    return dt.datetime.fromtimestamp(timestamp / 1000, tz=dt.UTC).strftime("%Y-%m-%d %H:%M")


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def compact_line(text: str, limit: int = 80) -> str:
    line = " ".join(text.split())
    if len(line) <= limit:
        return line
    return line[: limit - 1] + "…"
