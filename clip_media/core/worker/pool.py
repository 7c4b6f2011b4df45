from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, List, Optional, Protocol

from clip_media.core.errors import WorkerChannelError
from clip_media.core.protocol import Envelope
from clip_media.core.worker.handler import MediaRequestHandler

logger = logging.getLogger(__name__)


class WorkerListener(Protocol):
    def on_message(self, envelope: Envelope) -> None:
        ...

    def on_channel_failure(self, request_ids: List[str], reason: str) -> None:
        ...


class MediaRequestWorker:
    """
    One worker thread with its own inbox.

    Processes envelopes strictly one at a time. A handler is expected to turn
    every failure into an error envelope; if it raises anyway the thread is
    considered dead and `on_exit` reports it.
    """

    def __init__(
        self,
        name: str,
        handler: MediaRequestHandler,
        *,
        on_reply: Callable[["MediaRequestWorker", Envelope], None],
        on_exit: Callable[["MediaRequestWorker", Optional[BaseException]], None],
    ):
        self.name = name
        self._handler = handler
        self._on_reply = on_reply
        self._on_exit = on_exit
        self._inbox: "queue.Queue[Optional[Envelope]]" = queue.Queue()
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._thread: Optional[threading.Thread] = None
        self._stopping = False

    @property
    def load(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def stopping(self) -> bool:
        return self._stopping

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def post(self, envelope: Envelope) -> None:
        if self._stopping:
            raise WorkerChannelError(f"Worker {self.name} is stopping")
        with self._lock:
            self._in_flight.add(envelope["id"])
        self._inbox.put(envelope)

    def stop(self) -> None:
        self._stopping = True
        self._inbox.put(None)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def drain_in_flight(self) -> List[str]:
        with self._lock:
            ids = list(self._in_flight)
            self._in_flight.clear()
        return ids

    def _run(self) -> None:
        error: Optional[BaseException] = None
        try:
            while True:
                envelope = self._inbox.get()
                if envelope is None:
                    break
                reply = self._handler.process(envelope)
                with self._lock:
                    self._in_flight.discard(envelope.get("id"))
                self._on_reply(self, reply)
        except Exception as e:
            error = e
            logger.exception(f"Worker {self.name} crashed: {e}")
        finally:
            self._on_exit(self, error)


class MediaWorkerPool:
    """
    Fixed-size pool of media request workers.

    Envelopes go to the least-loaded worker. Replies and channel failures are
    forwarded to the registered listener (the dispatcher). A worker whose
    thread dies unexpectedly is replaced and its in-flight ids are reported
    as failed so no caller waits forever.
    """

    def __init__(
        self,
        handler: Optional[MediaRequestHandler] = None,
        *,
        worker_count: int = 2,
        name_prefix: str = "media-worker",
    ):
        self._handler = handler or MediaRequestHandler()
        self._worker_count = max(1, int(worker_count))
        self._name_prefix = name_prefix
        self._lock = threading.Lock()
        self._workers: List[MediaRequestWorker] = []
        self._listener: Optional[WorkerListener] = None
        self._running = False
        self._spawned = 0

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def running(self) -> bool:
        return self._running

    @property
    def handler(self) -> MediaRequestHandler:
        return self._handler

    def set_listener(self, listener: Optional[WorkerListener]) -> None:
        self._listener = listener

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            for _ in range(self._worker_count):
                self._workers.append(self._spawn_locked())
        logger.info(f"Media worker pool started with {self._worker_count} workers")

    def post(self, envelope: Envelope) -> str:
        """Queue an envelope on the least-loaded worker. Returns the worker name."""
        with self._lock:
            if not self._running or not self._workers:
                raise WorkerChannelError("Media worker pool is not running")
            worker = min(self._workers, key=lambda w: w.load)
            worker.post(envelope)
        return worker.name

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            workers = list(self._workers)
            self._workers.clear()
        for worker in workers:
            worker.stop()
        if wait:
            for worker in workers:
                worker.join(timeout)
                if worker.is_alive():
                    logger.warning(f"Worker {worker.name} did not stop within {timeout}s")
        logger.info("Media worker pool stopped")

    def __enter__(self) -> "MediaWorkerPool":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    # --------------------------------------------------------

    def _spawn_locked(self) -> MediaRequestWorker:
        self._spawned += 1
        worker = MediaRequestWorker(
            f"{self._name_prefix}-{self._spawned}",
            self._handler,
            on_reply=self._on_reply,
            on_exit=self._on_exit,
        )
        worker.start()
        return worker

    def _on_reply(self, worker: MediaRequestWorker, envelope: Envelope) -> None:
        listener = self._listener
        if listener is None:
            logger.warning(f"No listener for reply {envelope.get('id')} from {worker.name}; dropped")
            return
        try:
            listener.on_message(envelope)
        except Exception as e:
            logger.exception(f"Listener failed on reply {envelope.get('id')}: {e}")

    def _on_exit(self, worker: MediaRequestWorker, error: Optional[BaseException]) -> None:
        # Drain and replace under the pool lock so post() can never hand an
        # envelope to a worker after its in-flight ids were collected.
        replacement: Optional[MediaRequestWorker] = None
        with self._lock:
            orphaned = worker.drain_in_flight()
            if self._running and not worker.stopping and worker in self._workers:
                replacement = self._spawn_locked()
                self._workers[self._workers.index(worker)] = replacement

        if error is not None:
            reason = f"Worker {worker.name} died: {error}"
        else:
            reason = f"Worker {worker.name} stopped"
        if replacement is not None:
            logger.info(f"Replaced {worker.name} with {replacement.name}")

        if orphaned:
            logger.warning(f"{reason}; failing {len(orphaned)} in-flight request(s)")
            listener = self._listener
            if listener is not None:
                try:
                    listener.on_channel_failure(orphaned, reason)
                except Exception as e:
                    logger.exception(f"Listener failed on channel failure: {e}")
