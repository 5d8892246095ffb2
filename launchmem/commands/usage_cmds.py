from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from ..bonus import frequency_bonus, recency_bonus
from ..service import LaunchmemContext
from .common import format_ms, run_with_context


def record_cmd(*, context_factory, category: str, key: str) -> None:
    """Count one use of ``key``."""

    async def body(ctx: LaunchmemContext):
        return await ctx.usage_for(category).record_usage(key)

    try:
        entry = run_with_context(context_factory, body)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"{escape(entry.key)}: used {entry.count} times")


def show_cmd(*, context_factory, category: str, limit: int) -> None:
    """Show usage entries with their ranking bonus, highest first."""

    async def body(ctx: LaunchmemContext):
        usage = ctx.usage_for(category)
        return usage.entries()

    try:
        entries = run_with_context(context_factory, body)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    if not entries:
        print(f"[yellow]No {category} usage recorded yet[/yellow]")
        return
    scored = [
        (frequency_bonus(entry.count), recency_bonus(entry.lastUsed), entry) for entry in entries
    ]
    scored.sort(key=lambda row: row[0] + row[1], reverse=True)
    for freq, recency, entry in scored[:limit]:
        print(
            f"- {escape(entry.key)}: bonus={freq + recency} (freq {freq}, recency {recency}) "
            f"count={entry.count} last={format_ms(entry.lastUsed)}"
        )
