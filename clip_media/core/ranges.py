"""
Byte-range planning for video responses.

Pure functions, no I/O: the worker calls plan_video_response() once the file
size is known and the front-end reads only the planned window from disk.

An unparseable Range header is deliberately lenient: it degrades to the
initial-chunk response instead of a 400, which keeps picky media players
working.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

from clip_media.core.dto.response import InlineBytes, RangeWindow, ResponsePlan

INITIAL_CHUNK_SIZE = 1024 * 1024

_RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")


def parse_range_header(range_header: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Parse "bytes=<start>-<end>?" into (start, end).

    Returns (None, None) when the header is absent or unsupported (suffix
    ranges, garbage, end before start). For multi-range headers only the
    first range is considered. end is None when omitted.
    """
    if not range_header:
        return None, None
    value = range_header.strip().replace(" ", "")
    if "," in value:
        value = value.split(",", 1)[0]
    match = _RANGE_RE.match(value)
    if not match:
        return None, None
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else None
    if end is not None and end < start:
        return None, None
    return start, end


def plan_initial_chunk(
    file_size: int,
    content_type: str,
    *,
    chunk_size: int = INITIAL_CHUNK_SIZE,
) -> ResponsePlan:
    length = min(chunk_size, file_size)
    headers = {
        "Content-Type": content_type,
        "Accept-Ranges": "bytes",
        "Content-Length": str(length),
        "Cache-Control": "no-cache",
    }
    if length <= 0:
        return ResponsePlan(status=200, headers=headers, payload=InlineBytes(b""))
    headers["Content-Range"] = f"bytes 0-{length - 1}/{file_size}"
    return ResponsePlan(status=200, headers=headers, payload=RangeWindow(0, length - 1))


def plan_not_satisfiable(file_size: int) -> ResponsePlan:
    body = b"Invalid range"
    return ResponsePlan(
        status=416,
        headers={
            "Content-Type": "text/plain",
            "Content-Range": f"bytes */{file_size}",
            "Content-Length": str(len(body)),
            "Accept-Ranges": "bytes",
            "Cache-Control": "no-cache",
        },
        payload=InlineBytes(body),
    )


def plan_video_response(
    range_header: Optional[str],
    file_size: int,
    content_type: str,
    *,
    initial_chunk_size: int = INITIAL_CHUNK_SIZE,
) -> ResponsePlan:
    """Decide status, headers and byte window for one video request."""
    if file_size < 0:
        raise ValueError(f"Invalid file size: {file_size}")
    # No byte index exists, whatever the header says
    if file_size == 0:
        return plan_not_satisfiable(file_size)

    start, end = parse_range_header(range_header)
    if start is None:
        return plan_initial_chunk(file_size, content_type, chunk_size=initial_chunk_size)

    if end is None:
        end = file_size - 1
    if start >= file_size or end >= file_size:
        return plan_not_satisfiable(file_size)

    return ResponsePlan(
        status=206,
        headers={
            "Content-Type": content_type,
            "Content-Length": str(end - start + 1),
            "Content-Range": f"bytes {start}-{end}/{file_size}",
            "Accept-Ranges": "bytes",
            "Cache-Control": "no-cache",
        },
        payload=RangeWindow(start, end),
    )
