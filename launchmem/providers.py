from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 50000
# Directory entries scanned between yields to the event loop.
YIELD_EVERY_ENTRIES = 1000


def file_entry(entry: os.DirEntry, root: str) -> dict[str, Any] | None:
    try:
        is_dir = entry.is_dir(follow_symlinks=False)
        stat = entry.stat(follow_symlinks=False)
    except OSError:
        return None
    item: dict[str, Any] = {
        "path": os.path.relpath(entry.path, root),
        "name": entry.name,
        "type": "directory" if is_dir else "file",
    }
    if not is_dir:
        item["size"] = stat.st_size
    item["mtime"] = int(stat.st_mtime * 1000)
    return item


async def list_directory_files(
    directory: str,
    sub_kind: str | None = None,
    *,
    max_files: int = DEFAULT_MAX_FILES,
    include_hidden: bool = False,
) -> list[dict[str, Any]]:
    """List files under ``directory`` as compact cache entries.

    ``sub_kind``, when given, is a file extension filter: ``"py"`` keeps only
    ``*.py`` files and leaves directory entries out.
    """

    if not os.path.isdir(directory):
        raise FileNotFoundError(directory)
    suffix = f".{sub_kind}" if sub_kind else None
    items: list[dict[str, Any]] = []
    stack = [directory]
    scanned = 0
    while stack and len(items) < max_files:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.debug("skipping unreadable directory %s", current, exc_info=exc)
            continue
        subdirs: list[str] = []
        for entry in entries:
            scanned += 1
            if scanned % YIELD_EVERY_ENTRIES == 0:
                await asyncio.sleep(0)
            if not include_hidden and entry.name.startswith("."):
                continue
            item = file_entry(entry, directory)
            if item is None:
                continue
            if item["type"] == "directory":
                subdirs.append(entry.path)
                if suffix is not None:
                    continue
            elif suffix is not None and not entry.name.endswith(suffix):
                continue
            items.append(item)
            if len(items) >= max_files:
                break
        stack.extend(reversed(subdirs))
    return items
