from __future__ import annotations

import asyncio
import json
import logging
import secrets
import threading
from typing import Iterator, Optional
from urllib.parse import quote, urlencode

from aiohttp import web

from clip_media.core.config import MediaServerConfig
from clip_media.core.dispatcher import RequestDispatcher
from clip_media.core.dto.request import ImageRequest, MediaRequest, VideoRequest
from clip_media.core.dto.response import RangeWindow, ResponsePlan
from clip_media.core.errors import (
    MediaAccessDeniedError,
    MediaError,
    MediaNotFoundError,
    TranscodeError,
    UnsupportedMediaError,
    WorkerChannelError,
    WorkerTimeoutError,
)
from clip_media.core.resource_url import build_media_request, parse_resource_url
from clip_media.utils.file_utils import read_window

logger = logging.getLogger(__name__)


class MediaResourceServer:
    """
    Local HTTP adapter for media resource requests.

    Stands in for the UI's custom-scheme interceptor: the UI (or its media
    player) is handed plain http://127.0.0.1:<port>/... URLs, each request is
    turned into a MediaRequest, submitted through the dispatcher, and the
    resulting plan is written back. Only byte windows the plan names are read
    from disk.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        config: Optional[MediaServerConfig] = None,
    ):
        self._dispatcher = dispatcher
        self._config = config or MediaServerConfig()
        self._host = self._config.host
        self._port = int(self._config.port)
        self._token = self._config.access_token or secrets.token_urlsafe(16)
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._started = threading.Event()
        self._start_error: Optional[Exception] = None
        # Metrics
        self._total_requests = 0
        self._errors = 0

    # ------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------

    @property
    def port(self) -> int:
        return self._port

    @property
    def base_url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def token(self) -> str:
        """Shared secret carried by every served URL."""
        return self._token

    def video_url(self, path: str) -> str:
        if not path:
            raise ValueError("Missing path for video URL")
        self.start()
        return f"{self.base_url}{self.route_for(VideoRequest(file_path=path))}"

    def image_url(
        self,
        path: str,
        width: int = 0,
        height: int = 0,
        quality: Optional[int] = None,
    ) -> str:
        if not path:
            raise ValueError("Missing path for image URL")
        self.start()
        request = ImageRequest(
            file_path=path,
            width=width,
            height=height,
            quality=quality if quality is not None else self._config.default_quality,
        )
        return f"{self.base_url}{self.route_for(request)}"

    def http_url_for(self, resource_url: str) -> str:
        """Translate a clip-video:// / clip-editor:// URL into a served URL."""
        request = self._parse_resource_url(resource_url)
        self.start()
        return f"{self.base_url}{self.route_for(request)}"

    def route_for(self, request: MediaRequest) -> str:
        if isinstance(request, VideoRequest):
            token = quote(self._token, safe="")
            return f"/video?path={quote(request.file_path, safe='')}&token={token}"
        params = {
            "path": request.file_path,
            "width": request.width,
            "height": request.height,
            "quality": request.quality,
            "token": self._token,
        }
        return f"/media?{urlencode(params)}"

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def start(self, timeout_s: float = 3.0) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._started.clear()
        self._start_error = None
        self._thread = threading.Thread(target=self._run, name="media-resource-server", daemon=True)
        self._thread.start()
        if not self._started.wait(timeout_s):
            raise RuntimeError("Media resource server failed to start (timeout)")
        if self._start_error:
            raise self._start_error

    def stop(self, timeout_s: float = 5.0) -> None:
        loop = self._loop
        thread = self._thread
        if not loop or not thread:
            return
        try:
            loop.call_soon_threadsafe(loop.stop)
        except RuntimeError:
            pass  # loop already closed
        thread.join(timeout_s)
        if thread.is_alive():
            logger.warning("Media resource server thread did not stop in time")
        self._thread = None
        self._loop = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_metrics(self) -> dict:
        return {
            "total_requests": self._total_requests,
            "errors": self._errors,
            "pending": self._dispatcher.pending_count,
            "dropped_replies": self._dispatcher.dropped_replies,
        }

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/video", self._handle_video)
        app.router.add_get("/media", self._handle_media)
        app.router.add_get("/resolve", self._handle_resolve)
        return app

    def _run(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._start_async())
        except Exception as exc:
            self._start_error = exc
        finally:
            self._started.set()
        if self._start_error:
            self._loop.close()
            return
        try:
            self._loop.run_forever()
        finally:
            try:
                self._loop.run_until_complete(self._shutdown_async())
            except Exception as e:
                logger.warning(f"Error during media server shutdown: {e}")
            self._loop.close()

    async def _start_async(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        if self._site and self._site._server and self._site._server.sockets:
            sock = self._site._server.sockets[0]
            self._port = int(sock.getsockname()[1])
        logger.info(f"Media resource server listening on {self.base_url}")

    async def _shutdown_async(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self._site = None
        logger.info("Media resource server stopped")

    # ------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------

    async def _handle_video(self, request: web.Request) -> web.StreamResponse:
        return await self._serve(request, video_only=True)

    async def _handle_media(self, request: web.Request) -> web.StreamResponse:
        return await self._serve(request, video_only=False)

    async def _handle_resolve(self, request: web.Request) -> web.StreamResponse:
        denied = self._check_token(request)
        if denied is not None:
            return denied
        url = request.query.get("url")
        if not url:
            return self._error_response(400, "MISSING_URL", "No resource URL specified.")
        try:
            media_request = self._parse_resource_url(url)
        except UnsupportedMediaError as e:
            return self._error_response(
                400,
                "UNSUPPORTED_TYPE",
                "This resource cannot be served.",
                details=str(e),
            )
        raise web.HTTPFound(self.route_for(media_request))

    async def _serve(self, request: web.Request, *, video_only: bool) -> web.StreamResponse:
        self._total_requests += 1
        denied = self._check_token(request)
        if denied is not None:
            return denied
        path = request.query.get("path")
        if not path:
            return self._error_response(400, "MISSING_PATH", "No file path specified.")

        try:
            media_request = build_media_request(
                path,
                video_only=video_only,
                query=request.query,
                headers=request.headers,
                default_quality=self._config.default_quality,
            )
        except UnsupportedMediaError as e:
            return self._error_response(
                400,
                "UNSUPPORTED_TYPE",
                "Not a video file." if video_only else "Unsupported file type.",
                details=str(e),
            )

        logger.debug(
            f"Media request #{self._total_requests}: {media_request.type} "
            f"{request.headers.get('Range') or 'full'} for {path}"
        )

        try:
            plan = await self._dispatcher.submit(media_request)
        except WorkerTimeoutError as e:
            self._errors += 1
            logger.warning(f"Worker timed out for {path}: {e}")
            return self._text_response(504, "Media worker timed out")
        except WorkerChannelError as e:
            self._errors += 1
            logger.warning(f"Worker channel failed for {path}: {e}")
            return self._text_response(503, "Media worker unavailable")
        except MediaNotFoundError:
            return self._text_response(404, "File not found")
        except MediaAccessDeniedError:
            return self._text_response(403, "File access denied")
        except (TranscodeError, MediaError) as e:
            self._errors += 1
            logger.warning(f"Processing failed for {path}: {e}")
            return self._text_response(500, "File processing failed")

        return await self._write_plan(request, media_request.file_path, plan)

    async def _write_plan(
        self,
        request: web.Request,
        path: str,
        plan: ResponsePlan,
    ) -> web.StreamResponse:
        window = plan.window
        if window is None:
            headers = {k: v for k, v in plan.headers.items() if k.lower() != "content-length"}
            return web.Response(status=plan.status, headers=headers, body=plan.body or b"")

        resp = web.StreamResponse(status=plan.status, headers=plan.headers)
        await resp.prepare(request)
        if request.method == "HEAD":
            await resp.write_eof()
            return resp

        written = 0
        pieces = self._iter_window(path, window)
        try:
            while True:
                piece = await asyncio.to_thread(next, pieces, None)
                if piece is None:
                    break
                # Check if client is still connected before writing
                if request.transport is None or request.transport.is_closing():
                    logger.debug(f"Client disconnected during range stream for {path}")
                    return resp
                await resp.write(piece)
                written += len(piece)
            if written < window.length:
                logger.warning(f"Short read for {path}: {written}/{window.length} bytes")
            await resp.write_eof()
        except (ConnectionResetError, BrokenPipeError) as e:
            # Client disconnected (e.g., video player seeking or closing)
            logger.debug(f"Client connection error during range stream: {e}")
        except OSError as e:
            self._errors += 1
            logger.warning(f"Failed reading {path} bytes {window.start}-{window.end}: {e}")
        finally:
            pieces.close()
        return resp

    def _check_token(self, request: web.Request) -> Optional[web.Response]:
        # Only URLs this process handed out may read from disk
        supplied = request.query.get("token", "")
        if secrets.compare_digest(supplied.encode(), self._token.encode()):
            return None
        logger.warning(f"Rejected {request.path} request without a valid token from {request.remote}")
        return self._error_response(403, "FORBIDDEN", "Missing or invalid access token.")

    def _iter_window(self, path: str, window: RangeWindow) -> Iterator[bytes]:
        return read_window(path, window.start, window.end, self._config.stream_chunk_size)

    def _parse_resource_url(self, url: str) -> MediaRequest:
        return parse_resource_url(
            url,
            video_scheme=self._config.video_scheme,
            image_scheme=self._config.image_scheme,
            default_quality=self._config.default_quality,
        )

    # ------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------

    @staticmethod
    def _text_response(status: int, text: str) -> web.Response:
        return web.Response(
            status=status,
            text=text,
            content_type="text/plain",
            headers={"Cache-Control": "no-cache"},
        )

    @staticmethod
    def _error_response(
        status: int,
        error_code: str,
        user_message: str,
        details: Optional[str] = None,
    ) -> web.Response:
        """Create a normalized JSON error response for malformed requests."""
        error_body = {
            "error": error_code,
            "user_message": user_message,
        }
        if details:
            error_body["details"] = details

        return web.Response(
            status=status,
            text=json.dumps(error_body),
            content_type="application/json",
        )
