"""
Resource URL parsing.

The UI addresses local media through custom scheme URLs:

    clip-video:///C:/clips/match.mp4
    clip-video:////home/me/clips/match.mp4
    clip-editor:///C:/thumbs/match.png?width=640&height=0&quality=80

The path is everything after "scheme://" minus exactly one leading "/",
percent-decoded. The video scheme only serves videos; the image scheme
serves images (transcoded) and videos (ranged) by extension.
"""
from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from clip_media.core.dto.request import DEFAULT_QUALITY, ImageRequest, MediaRequest, VideoRequest
from clip_media.core.errors import UnsupportedMediaError
from clip_media.core.mime import classify

DEFAULT_VIDEO_SCHEME = "clip-video"
DEFAULT_IMAGE_SCHEME = "clip-editor"


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def _dimension(value: Optional[str]) -> int:
    try:
        return max(0, int(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def _quality(value: Optional[str], default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        quality = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return min(100, max(1, quality))


def build_media_request(
    path: str,
    *,
    video_only: bool,
    query: Optional[Mapping[str, str]] = None,
    headers: Optional[Mapping[str, str]] = None,
    default_quality: int = DEFAULT_QUALITY,
) -> MediaRequest:
    """Classify `path` and build the matching request."""
    if not path:
        raise UnsupportedMediaError("Missing file path")
    kind = classify(path)
    if kind == "video":
        return VideoRequest(file_path=path, range_header=_header(headers, "Range"))
    if video_only:
        raise UnsupportedMediaError(f"Not a video file: {path}")
    if kind == "image":
        query = query or {}
        if str(query.get("full", "")).lower() == "true":
            width = height = 0
        else:
            width = _dimension(query.get("width"))
            height = _dimension(query.get("height"))
        return ImageRequest(
            file_path=path,
            width=width,
            height=height,
            quality=_quality(query.get("quality"), default_quality),
        )
    raise UnsupportedMediaError(f"Unsupported file type: {path}")


def parse_resource_url(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    *,
    video_scheme: str = DEFAULT_VIDEO_SCHEME,
    image_scheme: str = DEFAULT_IMAGE_SCHEME,
    default_quality: int = DEFAULT_QUALITY,
) -> MediaRequest:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in {video_scheme, image_scheme}:
        raise UnsupportedMediaError(f"Unsupported scheme: {parts.scheme or '(none)'}")

    raw_path = parts.path[1:] if parts.path.startswith("/") else parts.path
    path = unquote(raw_path)
    query = {key: values[0] for key, values in parse_qs(parts.query).items() if values}
    return build_media_request(
        path,
        video_only=scheme == video_scheme,
        query=query,
        headers=headers,
        default_quality=default_quality,
    )


def build_resource_url(scheme: str, path: str, **query) -> str:
    """Inverse of parse_resource_url: scheme + "///" + quoted path + query."""
    url = f"{scheme}:///{quote(str(path), safe='/:')}"
    params = {key: value for key, value in query.items() if value is not None}
    if params:
        url = f"{url}?{urlencode(params)}"
    return url
