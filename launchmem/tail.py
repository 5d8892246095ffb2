from __future__ import annotations

from pathlib import Path

DEFAULT_CHUNK_SIZE = 8192


def read_last_n(
    path: str | Path, n: int, *, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> list[str]:
    """Return the last ``n`` non-empty lines of ``path``, oldest first.

    The file is scanned backward in ``chunk_size`` byte chunks from EOF, so the
    work done is proportional to the lines returned rather than the file size.
    Raw bytes are reassembled before decoding: a UTF-8 sequence never contains
    the newline byte, so splitting on ``b"\\n"`` cannot cut a character in half
    even when a chunk boundary does. Lines are stripped of surrounding
    whitespace. A missing file yields an empty list.
    """

    if n <= 0:
        return []
    chunk_size = max(1, int(chunk_size))
    try:
        handle = Path(path).open("rb")
    except FileNotFoundError:
        return []
    with handle:
        handle.seek(0, 2)
        position = handle.tell()
        collected: list[bytes] = []
        remainder = b""
        while position > 0 and len(collected) < n:
            read_size = min(chunk_size, position)
            position -= read_size
            handle.seek(position)
            pieces = (handle.read(read_size) + remainder).split(b"\n")
            # The first piece may continue in the previous chunk.
            remainder = pieces.pop(0) if position > 0 else b""
            for piece in reversed(pieces):
                if len(collected) >= n:
                    break
                if piece.strip():
                    collected.append(piece)
    collected.reverse()
    return [piece.decode("utf-8", errors="replace").strip() for piece in collected]
