from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from clip_media.core.dto.request import MediaRequest
from clip_media.core.dto.response import ResponsePlan
from clip_media.core.errors import MediaError, ProtocolError, WorkerChannelError, WorkerTimeoutError
from clip_media.core.protocol import Envelope, make_request_envelope, plan_from_envelope
from clip_media.core.worker.pool import MediaWorkerPool

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingRequest:
    future: asyncio.Future
    loop: asyncio.AbstractEventLoop
    kind: str


class RequestDispatcher:
    """
    Host-side end of the worker protocol.

    submit() tags each request with a fresh id, parks a future under that id
    and posts the envelope to the pool. Replies arrive on worker threads and
    are matched back by id only; completion order is unrelated to submission
    order. Unknown ids (late, duplicate or stale replies) are logged and
    dropped.
    """

    def __init__(
        self,
        pool: MediaWorkerPool,
        *,
        request_timeout_s: Optional[float] = 30.0,
        max_in_flight: Optional[int] = None,
    ):
        self._pool = pool
        self._timeout_s = request_timeout_s if request_timeout_s and request_timeout_s > 0 else None
        self._lock = threading.Lock()
        self._pending: Dict[str, _PendingRequest] = {}
        self._slots = asyncio.Semaphore(max_in_flight) if max_in_flight else None
        self._closed = False
        self._dropped_replies = 0
        pool.set_listener(self)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def dropped_replies(self) -> int:
        with self._lock:
            return self._dropped_replies

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, request: MediaRequest) -> ResponsePlan:
        """Run `request` on a worker and wait for its plan (or typed error)."""
        if self._closed:
            raise WorkerChannelError("Dispatcher is closed")
        if self._slots is None:
            return await self._submit(request)
        async with self._slots:
            return await self._submit(request)

    async def _submit(self, request: MediaRequest) -> ResponsePlan:
        loop = asyncio.get_running_loop()
        request_id = uuid.uuid4().hex
        future = loop.create_future()

        with self._lock:
            if self._closed:
                raise WorkerChannelError("Dispatcher is closed")
            self._pending[request_id] = _PendingRequest(future=future, loop=loop, kind=request.type)

        try:
            worker_name = self._pool.post(make_request_envelope(request_id, request))
            logger.debug(f"Dispatched {request.type} request {request_id} to {worker_name}")
            if self._timeout_s is None:
                return await future
            try:
                return await asyncio.wait_for(future, self._timeout_s)
            except asyncio.TimeoutError:
                raise WorkerTimeoutError(
                    f"{request.type} request {request_id} timed out after {self._timeout_s}s"
                ) from None
        finally:
            # Covers timeout, caller cancellation and post() failure; a
            # settled request was already removed by on_message().
            with self._lock:
                self._pending.pop(request_id, None)

    # --------------------------------------------------------
    # WorkerListener (called on worker threads)
    # --------------------------------------------------------

    def on_message(self, envelope: Envelope) -> None:
        request_id = envelope.get("id")
        with self._lock:
            pending = self._pending.pop(request_id, None) if isinstance(request_id, str) else None
            if pending is None:
                self._dropped_replies += 1
        if pending is None:
            logger.warning(f"Dropping reply for unknown request id {request_id!r}")
            return
        self._call_in_loop(pending, self._settle, pending.future, envelope)

    def on_channel_failure(self, request_ids: List[str], reason: str) -> None:
        failed: List[_PendingRequest] = []
        with self._lock:
            for request_id in request_ids:
                pending = self._pending.pop(request_id, None)
                if pending is not None:
                    failed.append(pending)
        for pending in failed:
            self._call_in_loop(pending, self._reject, pending.future, WorkerChannelError(reason))

    # --------------------------------------------------------

    def close(self, reason: str = "Dispatcher closed") -> None:
        """Reject every pending request and refuse new ones."""
        with self._lock:
            self._closed = True
            failed = list(self._pending.values())
            self._pending.clear()
        if failed:
            logger.info(f"Rejecting {len(failed)} pending request(s): {reason}")
        for pending in failed:
            self._call_in_loop(pending, self._reject, pending.future, WorkerChannelError(reason))

    @staticmethod
    def _call_in_loop(pending: _PendingRequest, callback, *args) -> None:
        try:
            pending.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Submitting loop already closed; its caller is gone.
            logger.debug(f"Loop closed before {pending.kind} request could be settled")

    @staticmethod
    def _settle(future: asyncio.Future, envelope: Envelope) -> None:
        if future.done():
            return
        try:
            plan = plan_from_envelope(envelope)
        except MediaError as e:
            future.set_exception(e)
            return
        except (KeyError, TypeError, ValueError) as e:
            future.set_exception(ProtocolError(f"Malformed result {envelope.get('id')}: {e}"))
            return
        future.set_result(plan)

    @staticmethod
    def _reject(future: asyncio.Future, error: BaseException) -> None:
        if not future.done():
            future.set_exception(error)
