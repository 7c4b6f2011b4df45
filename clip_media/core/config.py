"""
Media server configuration.

Settings come from a string key/value store (the host application's settings
table, environment variables, or a plain dict in tests). Every value is
parsed leniently: a bad value logs a warning and the default is kept.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class SettingsSource(Protocol):
    def get_config(self, key: str, default: str) -> str:
        ...


class DictSettings:
    """In-memory settings, mostly for tests and embedding."""

    def __init__(self, values: Optional[Mapping[str, object]] = None):
        self._values: Dict[str, str] = {k: str(v) for k, v in (values or {}).items()}

    def get_config(self, key: str, default: str) -> str:
        return self._values.get(key, default)

    def set_config(self, key: str, value: str) -> None:
        self._values[key] = str(value)


class EnvironmentSettings:
    """Reads CLIP_MEDIA_<KEY> environment variables."""

    def __init__(self, prefix: str = "CLIP_MEDIA_"):
        self._prefix = prefix

    def get_config(self, key: str, default: str) -> str:
        return os.getenv(f"{self._prefix}{key.upper()}", default)


def default_worker_count() -> int:
    return max(2, min(8, os.cpu_count() or 2))


@dataclass(frozen=True)
class MediaServerConfig:
    host: str = "127.0.0.1"
    port: int = 0                              # 0 = pick a free port
    worker_count: int = field(default_factory=default_worker_count)
    max_in_flight: Optional[int] = None        # None = worker_count * 16
    request_timeout_s: float = 30.0            # 0 disables the timeout
    initial_chunk_size: int = 1024 * 1024
    stream_chunk_size: int = 256 * 1024
    default_quality: int = 80
    thumbnail_max_age_s: int = 3600
    video_scheme: str = "clip-video"
    image_scheme: str = "clip-editor"
    base_dir: Path = field(default_factory=lambda: Path.home() / ".clip-media")
    # Required on every served URL; None = random per process
    access_token: Optional[str] = None

    @property
    def in_flight_limit(self) -> int:
        return self.max_in_flight if self.max_in_flight else self.worker_count * 16

    @property
    def log_dir(self) -> Path:
        return self.base_dir / "logs"

    @classmethod
    def from_settings(cls, settings: Optional[SettingsSource] = None) -> "MediaServerConfig":
        if settings is None:
            return cls()
        defaults = cls()

        def _int(key: str, default: int, minimum: int = 0, maximum: Optional[int] = None) -> int:
            raw = settings.get_config(key, str(default))
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning(f"Invalid value for {key!r}: {raw!r}, using {default}")
                return default
            value = max(minimum, value)
            if maximum is not None:
                value = min(maximum, value)
            return value

        def _float(key: str, default: float) -> float:
            raw = settings.get_config(key, str(default))
            try:
                return max(0.0, float(raw))
            except (TypeError, ValueError):
                logger.warning(f"Invalid value for {key!r}: {raw!r}, using {default}")
                return default

        max_in_flight = _int("max_in_flight", 0)
        base_dir = settings.get_config("base_dir", str(defaults.base_dir))

        return cls(
            host=settings.get_config("host", defaults.host) or defaults.host,
            port=_int("port", defaults.port, maximum=65535),
            worker_count=_int("worker_count", defaults.worker_count, minimum=1),
            max_in_flight=max_in_flight or None,
            request_timeout_s=_float("request_timeout_s", defaults.request_timeout_s),
            initial_chunk_size=_int("initial_chunk_size", defaults.initial_chunk_size, minimum=1),
            stream_chunk_size=_int("stream_chunk_size", defaults.stream_chunk_size, minimum=64 * 1024),
            default_quality=_int("default_quality", defaults.default_quality, minimum=1, maximum=100),
            thumbnail_max_age_s=_int("thumbnail_max_age_s", defaults.thumbnail_max_age_s),
            video_scheme=settings.get_config("video_scheme", defaults.video_scheme) or defaults.video_scheme,
            image_scheme=settings.get_config("image_scheme", defaults.image_scheme) or defaults.image_scheme,
            base_dir=Path(base_dir).expanduser() if base_dir else defaults.base_dir,
            access_token=settings.get_config("access_token", "") or None,
        )
