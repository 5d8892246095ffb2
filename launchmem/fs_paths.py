from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

DIR_MODE = 0o700
FILE_MODE = 0o600
PATH_SEPARATOR_SUBSTITUTE = "-"


def ensure_path(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
    return resolved


def ensure_dir(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
    return resolved


def encode_directory_path(directory: str) -> str:
    """Turn ``/Users/me/src`` into ``-Users-me-src`` for use as a folder name."""

    encoded = directory.replace("/", PATH_SEPARATOR_SUBSTITUTE)
    if os.sep != "/":
        encoded = encoded.replace(os.sep, PATH_SEPARATOR_SUBSTITUTE)
    return encoded


def write_private_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` atomically with owner-only permissions."""

    write_private_lines(path, [text])


def write_private_lines(path: Path, chunks: Iterable[str]) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            for chunk in chunks:
                handle.write(chunk)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    os.replace(tmp_path, path)


def create_private_file(path: Path) -> bool:
    """Create an empty owner-only file. Returns False if it already existed."""

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
    except FileExistsError:
        return False
    os.close(fd)
    return True
