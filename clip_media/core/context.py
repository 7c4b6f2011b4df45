from __future__ import annotations

import logging
from typing import Optional

from clip_media.core.config import MediaServerConfig, SettingsSource
from clip_media.core.dispatcher import RequestDispatcher
from clip_media.core.resource_server import MediaResourceServer
from clip_media.core.worker.handler import MediaRequestHandler
from clip_media.core.worker.pool import MediaWorkerPool
from clip_media.media.transcoder import ImageTranscoder

logger = logging.getLogger(__name__)


class MediaContext:
    """
    Owns the media layer for the host process lifetime.

    Start it once at application startup and close it on shutdown; the
    worker pool, dispatcher and resource server live and die together.
    """

    def __init__(
        self,
        config: Optional[MediaServerConfig] = None,
        *,
        settings: Optional[SettingsSource] = None,
        transcoder: Optional[ImageTranscoder] = None,
    ):
        self.config = config or MediaServerConfig.from_settings(settings)

        self.handler = MediaRequestHandler(
            transcoder,
            initial_chunk_size=self.config.initial_chunk_size,
            thumbnail_max_age_s=self.config.thumbnail_max_age_s,
        )
        self.pool = MediaWorkerPool(self.handler, worker_count=self.config.worker_count)
        self.dispatcher = RequestDispatcher(
            self.pool,
            request_timeout_s=self.config.request_timeout_s,
            max_in_flight=self.config.in_flight_limit,
        )
        self._server: Optional[MediaResourceServer] = None
        self._started = False

    @property
    def server(self) -> MediaResourceServer:
        """The local resource server (created on first access)."""
        if self._server is None:
            self._server = MediaResourceServer(self.dispatcher, self.config)
        return self._server

    @property
    def started(self) -> bool:
        return self._started

    def start(self, *, serve: bool = True) -> None:
        if self._started:
            return
        transcoder = self.handler.transcoder
        logger.info(
            f"Starting media context: {self.config.worker_count} workers, "
            f"thumbnails as {transcoder.output_format} ({transcoder.output_mime})"
        )
        if transcoder.output_format != "WEBP":
            logger.warning("Qt WebP writer not available; thumbnails fall back to JPEG")
        self.pool.start()
        if serve:
            self.server.start()
        self._started = True

    def close(self) -> None:
        if self._server is not None:
            self._server.stop()
        self.dispatcher.close("Media context closed")
        self.pool.shutdown()
        self._started = False

    def __enter__(self) -> "MediaContext":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
