from __future__ import annotations

from pathlib import Path

import typer
from rich import print

from . import __version__
from .commands import cache_cmds, history_cmds, usage_cmds
from .config import load_config
from .logging_config import configure_logging
from .service import LaunchmemContext

app = typer.Typer(help="launchmem: persistent history, usage and directory caches for a launcher")
history_app = typer.Typer(help="Input history log")
cache_app = typer.Typer(help="Directory file caches")
usage_app = typer.Typer(help="Usage counts and ranking bonuses")
app.add_typer(history_app, name="history")
app.add_typer(cache_app, name="cache")
app.add_typer(usage_app, name="usage")


def _context(config_path: str | None) -> LaunchmemContext:
    try:
        config = load_config(Path(config_path).expanduser() if config_path else None)
    except ValueError as exc:
        print(f"[red]Config error: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    configure_logging(config.log_level, config.log_path)
    return LaunchmemContext(config)


def _factory(config_path: str | None):
    return lambda: _context(config_path)


@history_app.command("add")
def history_add(
    text: str = typer.Argument(..., help="Text to record"),
    app_name: str = typer.Option(None, "--app", help="Application that submitted the text"),
    directory: str = typer.Option(None, help="Working directory at submit time"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Append an entry to the history log."""

    history_cmds.add_cmd(
        context_factory=_factory(config), text=text, app_name=app_name, directory=directory
    )


@history_app.command("recent")
def history_recent(
    limit: int = typer.Option(10, help="Number of entries to show"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Show the newest history entries."""

    history_cmds.recent_cmd(context_factory=_factory(config), limit=limit)


@history_app.command("search")
def history_search(
    query: str = typer.Argument(..., help="Substring to look for"),
    limit: int = typer.Option(10, help="Max results"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Search recent history entries."""

    history_cmds.search_cmd(context_factory=_factory(config), query=query, limit=limit)


@history_app.command("stats")
def history_stats(config: str = typer.Option(None, help="Path to config file")) -> None:
    """Show history statistics."""

    history_cmds.stats_cmd(context_factory=_factory(config))


@history_app.command("export")
def history_export(
    output: str = typer.Argument(..., help="Destination JSON file"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Export the full history log as JSON."""

    history_cmds.export_cmd(context_factory=_factory(config), output=output)


@history_app.command("import")
def history_import(
    input_path: str = typer.Argument(..., help="Export file to import"),
    merge: bool = typer.Option(False, help="Keep existing entries"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Import history from an export file."""

    history_cmds.import_cmd(context_factory=_factory(config), input_path=input_path, merge=merge)


@cache_app.command("files")
def cache_files(
    directory: str = typer.Argument(..., help="Directory to list"),
    limit: int = typer.Option(50, help="Max entries to show"),
    wait: bool = typer.Option(False, help="Wait for a refresh when the cache is stale"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """List files for a directory from its cache."""

    cache_cmds.files_cmd(
        context_factory=_factory(config), directory=directory, limit=limit, wait=wait
    )


@cache_app.command("stats")
def cache_stats(config: str = typer.Option(None, help="Path to config file")) -> None:
    """Show directory cache statistics."""

    cache_cmds.stats_cmd(context_factory=_factory(config))


@cache_app.command("clear")
def cache_clear(
    directory: str = typer.Argument(None, help="Directory whose cache to drop"),
    all_caches: bool = typer.Option(False, "--all", help="Drop every cache"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Drop the cache of one directory, or all caches."""

    cache_cmds.clear_cmd(
        context_factory=_factory(config), directory=directory, all_caches=all_caches
    )


@cache_app.command("cleanup")
def cache_cleanup(
    max_age_days: float = typer.Option(7.0, help="Remove caches not updated for this many days"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Remove old directory caches."""

    cache_cmds.cleanup_cmd(context_factory=_factory(config), max_age_days=max_age_days)


@usage_app.command("record")
def usage_record(
    category: str = typer.Argument(..., help="files, symbols or agents"),
    key: str = typer.Argument(..., help="Identifier that was used"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Count one use of an item."""

    usage_cmds.record_cmd(context_factory=_factory(config), category=category, key=key)


@usage_app.command("show")
def usage_show(
    category: str = typer.Argument(..., help="files, symbols or agents"),
    limit: int = typer.Option(20, help="Number of entries to show"),
    config: str = typer.Option(None, help="Path to config file"),
) -> None:
    """Show usage entries ranked by bonus."""

    usage_cmds.show_cmd(context_factory=_factory(config), category=category, limit=limit)


def main() -> None:
    app()


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)
