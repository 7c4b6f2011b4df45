import os
import stat
from pathlib import Path
from typing import Iterator

from clip_media.core.errors import MediaAccessDeniedError, MediaNotFoundError


def check_readable_file(path: str | Path) -> os.stat_result:
    """
    Make sure `path` is an existing, regular, readable file.

    Returns:
        The stat result, so callers get the size without a second stat.

    Raises:
        MediaNotFoundError: path is missing or not a regular file
        MediaAccessDeniedError: path exists but cannot be read
    """
    try:
        st = os.stat(path)
    except FileNotFoundError as e:
        raise MediaNotFoundError(f"File not found: {path}") from e
    except PermissionError as e:
        raise MediaAccessDeniedError(f"File access denied: {path}") from e
    except OSError as e:
        raise MediaNotFoundError(f"Cannot stat {path}: {e}") from e

    if not stat.S_ISREG(st.st_mode):
        raise MediaNotFoundError(f"Not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise MediaAccessDeniedError(f"File access denied: {path}")
    return st


def read_window(
    path: str | Path,
    start: int,
    end: int,
    chunk_size: int = 256 * 1024,
) -> Iterator[bytes]:
    """
    Yield the bytes of the inclusive window [start, end] in bounded pieces.

    Each call opens its own handle, so concurrent windows on the same file
    never share a cursor. Stops early if the file shrank underneath us.
    """
    remaining = end - start + 1
    if remaining <= 0:
        return
    with open(path, "rb") as f:
        f.seek(start)
        while remaining > 0:
            piece = f.read(min(chunk_size, remaining))
            if not piece:
                break
            remaining -= len(piece)
            yield piece
