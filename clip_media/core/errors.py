from __future__ import annotations

from typing import Dict, Type


class MediaError(RuntimeError):
    """Base error for everything the media layer reports back to a caller."""

    code = "media_error"


class MediaNotFoundError(MediaError):
    code = "not_found"


class MediaAccessDeniedError(MediaError):
    code = "access_denied"


class UnsupportedMediaError(MediaError):
    code = "unsupported"


class TranscodeError(MediaError):
    """Image source could not be decoded, resized or re-encoded."""

    code = "transcode_failed"


class ProtocolError(MediaError):
    """Envelope did not match the worker wire protocol."""

    code = "protocol"


class WorkerChannelError(MediaError):
    """Worker died, was shut down, or the channel closed mid-flight."""

    code = "worker_channel"


class WorkerTimeoutError(WorkerChannelError):
    code = "worker_timeout"


_ERRORS_BY_CODE: Dict[str, Type[MediaError]] = {
    cls.code: cls
    for cls in (
        MediaError,
        MediaNotFoundError,
        MediaAccessDeniedError,
        UnsupportedMediaError,
        TranscodeError,
        ProtocolError,
        WorkerChannelError,
        WorkerTimeoutError,
    )
}


def error_from_code(code: str | None, message: str) -> MediaError:
    """Rebuild a typed error from its wire code. Unknown codes become MediaError."""
    cls = _ERRORS_BY_CODE.get(code or "", MediaError)
    return cls(message)
