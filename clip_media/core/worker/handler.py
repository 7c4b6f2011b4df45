from __future__ import annotations

import logging
from typing import Optional

from clip_media.core.dto.request import ImageRequest, MediaRequest, VideoRequest
from clip_media.core.dto.response import InlineBytes, ResponsePlan
from clip_media.core.errors import MediaAccessDeniedError, MediaNotFoundError, UnsupportedMediaError
from clip_media.core.mime import mime_for_path
from clip_media.core.protocol import (
    Envelope,
    make_error_envelope,
    make_result_envelope,
    parse_request_envelope,
)
from clip_media.core.ranges import INITIAL_CHUNK_SIZE, plan_video_response
from clip_media.media.transcoder import ImageTranscoder
from clip_media.utils.file_utils import check_readable_file

logger = logging.getLogger(__name__)

VIDEO_ACCESS_ERROR = b"Error accessing video stream"


class MediaRequestHandler:
    """
    Blocking work for one media request. Runs on a worker thread.

    Holds no per-request state: the transcoder is stateless after
    construction, so one handler can serve many workers.
    """

    def __init__(
        self,
        transcoder: Optional[ImageTranscoder] = None,
        *,
        initial_chunk_size: int = INITIAL_CHUNK_SIZE,
        thumbnail_max_age_s: int = 3600,
    ):
        self._transcoder = transcoder or ImageTranscoder()
        self._initial_chunk_size = initial_chunk_size
        self._thumbnail_max_age_s = thumbnail_max_age_s

    @property
    def transcoder(self) -> ImageTranscoder:
        return self._transcoder

    def process(self, envelope: Envelope) -> Envelope:
        """Handle one request envelope. Never raises; failures become error envelopes."""
        request_id = envelope.get("id") if isinstance(envelope, dict) else None
        try:
            request_id, request = parse_request_envelope(envelope)
            plan = self.handle(request)
        except Exception as e:
            logger.warning(f"Request {request_id} failed: {type(e).__name__}: {e}")
            return make_error_envelope(request_id, e)
        return make_result_envelope(request_id, plan)

    def handle(self, request: MediaRequest) -> ResponsePlan:
        if isinstance(request, VideoRequest):
            return self.handle_video(request)
        if isinstance(request, ImageRequest):
            return self.handle_image(request)
        raise UnsupportedMediaError(f"Unknown request: {request!r}")

    # ------------------------------------------------------------
    # Video
    # ------------------------------------------------------------

    def handle_video(self, request: VideoRequest) -> ResponsePlan:
        try:
            st = check_readable_file(request.file_path)
        except (MediaNotFoundError, MediaAccessDeniedError) as e:
            logger.info(f"Video not accessible: {e}")
            return ResponsePlan(
                status=500,
                headers={
                    "Content-Type": "text/plain",
                    "Content-Length": str(len(VIDEO_ACCESS_ERROR)),
                    "Accept-Ranges": "bytes",
                    "Cache-Control": "no-cache",
                },
                payload=InlineBytes(VIDEO_ACCESS_ERROR),
            )

        file_size = request.file_size if request.file_size is not None else st.st_size
        plan = plan_video_response(
            request.range_header,
            file_size,
            mime_for_path(request.file_path),
            initial_chunk_size=self._initial_chunk_size,
        )
        logger.debug(
            f"Video plan {plan.status} for {request.file_path} "
            f"(range={request.range_header or 'none'}, size={file_size})"
        )
        return plan

    # ------------------------------------------------------------
    # Image
    # ------------------------------------------------------------

    def handle_image(self, request: ImageRequest) -> ResponsePlan:
        data = self._transcoder.transcode(
            request.file_path,
            width=request.width,
            height=request.height,
            quality=request.quality,
        )
        return ResponsePlan(
            status=200,
            headers={
                "Content-Type": self._transcoder.output_mime,
                "Content-Length": str(len(data)),
                "Cache-Control": f"max-age={self._thumbnail_max_age_s}",
            },
            payload=InlineBytes(data),
        )
