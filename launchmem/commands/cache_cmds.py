from __future__ import annotations

import os

import typer
from rich import print
from rich.markup import escape

from ..cache import CacheKey, CacheState
from ..providers import list_directory_files
from ..service import LaunchmemContext
from .common import format_bytes, run_with_context


def files_cmd(*, context_factory, directory: str, limit: int, wait: bool) -> None:
    """List cached files for a directory, refreshing the cache when stale."""

    directory = os.path.abspath(os.path.expanduser(directory))
    if not os.path.isdir(directory):
        print(f"[red]Not a directory: {directory}[/red]")
        raise typer.Exit(code=1)

    async def body(ctx: LaunchmemContext):
        key = CacheKey(directory)
        result = await ctx.file_refresh.get_or_refresh(key, list_directory_files, limit=limit)
        if wait and result.state is not CacheState.FRESH:
            await ctx.file_refresh.drain()
            result = await ctx.file_refresh.get_or_refresh(
                key, list_directory_files, limit=limit
            )
        return result

    result = run_with_context(context_factory, body)
    print(f"[bold]{escape(directory)}[/bold] ({result.state.value}, {len(result.items)} shown)")
    for item in result.items:
        suffix = "/" if item.get("type") == "directory" else ""
        print(f"- {escape(str(item.get('path')))}{suffix}")
    if result.partial:
        print(f"[dim]Showing first {limit} entries[/dim]")


def stats_cmd(*, context_factory) -> None:
    async def body(ctx: LaunchmemContext):
        return await ctx.file_cache.stats(), await ctx.file_cache.last_used_directory()

    stats, last_used = run_with_context(context_factory, body)
    print("[bold]File cache[/bold]")
    print(f"- Caches: {stats.total_caches}")
    print(f"- Items: {stats.total_items}")
    print(f"- Size: {format_bytes(stats.total_size_bytes)}")
    print(f"- Oldest: {stats.oldest_cache or '-'}")
    print(f"- Newest: {stats.newest_cache or '-'}")
    print(f"- Last used directory: {last_used or '-'}")


def clear_cmd(*, context_factory, directory: str | None, all_caches: bool) -> None:
    if not directory and not all_caches:
        print("[red]Pass a directory or --all[/red]")
        raise typer.Exit(code=1)

    async def body(ctx: LaunchmemContext):
        if all_caches:
            await ctx.file_cache.clear_all()
            await ctx.symbol_cache.clear_all()
            return "all caches"
        target = os.path.abspath(os.path.expanduser(directory or ""))
        await ctx.file_cache.clear(target)
        await ctx.symbol_cache.clear(target)
        return target

    cleared = run_with_context(context_factory, body)
    print(f"[green]Cleared {cleared}[/green]")


def cleanup_cmd(*, context_factory, max_age_days: float) -> None:
    async def body(ctx: LaunchmemContext):
        removed = await ctx.file_cache.cleanup_old(max_age_days)
        removed += await ctx.symbol_cache.cleanup_old(max_age_days)
        return removed

    removed = run_with_context(context_factory, body)
    print(f"[green]Removed {removed} caches older than {max_age_days:g} days[/green]")
