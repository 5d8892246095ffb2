from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import print
from rich.markup import escape

from ..service import LaunchmemContext
from .common import compact_line, format_ms, run_with_context


def add_cmd(
    *, context_factory, text: str, app_name: str | None, directory: str | None
) -> None:
    """Add an entry to the history log."""

    async def body(ctx: LaunchmemContext):
        return ctx.history.add(text, app_name=app_name, directory=directory)

    record = run_with_context(context_factory, body)
    if record is None:
        print("[yellow]Nothing to add (empty text)[/yellow]")
        raise typer.Exit(code=1)
    print(f"[green]Added[/green] {record.id}")


def recent_cmd(*, context_factory, limit: int) -> None:
    """Show the newest history entries."""

    async def body(ctx: LaunchmemContext):
        return await ctx.history.get_for_search(limit)

    for item in run_with_context(context_factory, body):
        print(f"{item.id}  {format_ms(item.timestamp)}  {escape(compact_line(item.text))}")


def search_cmd(*, context_factory, query: str, limit: int) -> None:
    """Case-insensitive substring search over the cached history."""

    async def body(ctx: LaunchmemContext):
        return ctx.history.search(query, limit=limit)

    results = run_with_context(context_factory, body)
    if not results:
        print("[yellow]No matches[/yellow]")
        return
    for item in results:
        print(f"{item.id}  {format_ms(item.timestamp)}  {escape(compact_line(item.text))}")


def stats_cmd(*, context_factory) -> None:
    async def body(ctx: LaunchmemContext):
        await ctx.history.count_total()
        return ctx.history.stats()

    stats = run_with_context(context_factory, body)
    print("[bold]History[/bold]")
    print(f"- Total items: {stats['totalItems']}")
    print(f"- Characters (cached): {stats['totalCharacters']}")
    print(f"- Average length: {stats['averageLength']}")
    print(f"- Oldest cached: {format_ms(stats['oldestTimestamp'])}")
    print(f"- Newest cached: {format_ms(stats['newestTimestamp'])}")


def export_cmd(*, context_factory, output: str) -> None:
    """Export the full history log to a JSON file."""

    async def body(ctx: LaunchmemContext):
        return await ctx.history.export()

    data = run_with_context(context_factory, body)
    output_path = Path(output).expanduser()
    output_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    print(f"[green]Exported {len(data['history'])} items to {output_path}[/green]")


def import_cmd(*, context_factory, input_path: str, merge: bool) -> None:
    """Import history from an export file."""

    path = Path(input_path).expanduser()
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    async def body(ctx: LaunchmemContext):
        return await ctx.history.import_(data, merge=merge)

    try:
        written = run_with_context(context_factory, body)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[green]Imported {written} items[/green]")
