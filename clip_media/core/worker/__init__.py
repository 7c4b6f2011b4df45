from clip_media.core.worker.handler import MediaRequestHandler
from clip_media.core.worker.pool import MediaRequestWorker, MediaWorkerPool, WorkerListener

__all__ = [
    "MediaRequestHandler",
    "MediaRequestWorker",
    "MediaWorkerPool",
    "WorkerListener",
]
