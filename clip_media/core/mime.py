from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

MediaKind = Literal["video", "image"]

DEFAULT_MIME = "application/octet-stream"

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def _normalize_extension(extension: str) -> str:
    ext = (extension or "").strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def resolve_mime(extension: str) -> str:
    """Map a file extension ("mp4" or ".MP4") to its content type."""
    return _MIME_TYPES.get(_normalize_extension(extension), DEFAULT_MIME)


def mime_for_path(path: str | Path) -> str:
    return resolve_mime(Path(path).suffix)


def classify(path: str | Path) -> Optional[MediaKind]:
    ext = Path(path).suffix.lower()
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    return None
