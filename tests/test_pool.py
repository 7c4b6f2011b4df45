import threading
from typing import List, Tuple

import pytest

from clip_media.core.dto import ResponsePlan
from clip_media.core.errors import WorkerChannelError
from clip_media.core.protocol import make_result_envelope
from clip_media.core.worker.pool import MediaWorkerPool


class ScriptedHandler:
    """Replies 204 to everything, crashes on "crash", blocks on "block" until released."""

    def __init__(self):
        self.release = threading.Event()

    def process(self, envelope):
        path = envelope["data"]["file_path"]
        if path == "crash":
            raise RuntimeError("segfault in image plugin")
        if path == "block":
            self.release.wait(5)
        return make_result_envelope(envelope["id"], ResponsePlan(204))


class RecordingListener:
    def __init__(self):
        self.messages: List[dict] = []
        self.failures: List[Tuple[List[str], str]] = []
        self.changed = threading.Condition()

    def on_message(self, envelope):
        with self.changed:
            self.messages.append(envelope)
            self.changed.notify_all()

    def on_channel_failure(self, request_ids, reason):
        with self.changed:
            self.failures.append((list(request_ids), reason))
            self.changed.notify_all()

    def wait_for(self, predicate, timeout=5.0):
        with self.changed:
            assert self.changed.wait_for(predicate, timeout)


def _envelope(request_id: str, path: str) -> dict:
    return {"id": request_id, "type": "video", "data": {"file_path": path}}


@pytest.fixture()
def scripted_pool():
    handler = ScriptedHandler()
    listener = RecordingListener()
    pool = MediaWorkerPool(handler, worker_count=2, name_prefix="test-worker")
    pool.set_listener(listener)
    pool.start()
    yield pool, handler, listener
    handler.release.set()
    pool.shutdown()


def test_replies_reach_listener(scripted_pool) -> None:
    pool, _, listener = scripted_pool
    for i in range(10):
        pool.post(_envelope(f"r{i}", f"{i}.mp4"))
    listener.wait_for(lambda: len(listener.messages) == 10)
    assert {m["id"] for m in listener.messages} == {f"r{i}" for i in range(10)}
    assert all(m["success"] for m in listener.messages)


def test_post_picks_least_loaded_worker(scripted_pool) -> None:
    pool, handler, listener = scripted_pool
    first = pool.post(_envelope("b1", "block"))
    second = pool.post(_envelope("b2", "block"))
    assert first != second
    handler.release.set()
    listener.wait_for(lambda: len(listener.messages) == 2)


def test_crashed_worker_fails_its_requests_and_is_replaced(scripted_pool) -> None:
    pool, _, listener = scripted_pool
    pool.post(_envelope("doomed", "crash"))
    listener.wait_for(lambda: listener.failures)
    ids, reason = listener.failures[0]
    assert ids == ["doomed"]
    assert "segfault" in reason

    # Pool is back to full strength and still serving
    for i in range(4):
        pool.post(_envelope(f"after{i}", "ok.mp4"))
    listener.wait_for(lambda: len(listener.messages) == 4)
    assert pool.worker_count == 2


def test_post_after_shutdown_raises(scripted_pool) -> None:
    pool, _, _ = scripted_pool
    pool.shutdown()
    assert not pool.running
    with pytest.raises(WorkerChannelError):
        pool.post(_envelope("late", "a.mp4"))


def test_context_manager_starts_and_stops() -> None:
    listener = RecordingListener()
    with MediaWorkerPool(ScriptedHandler(), worker_count=1) as pool:
        pool.set_listener(listener)
        assert pool.running
        pool.post(_envelope("cm", "a.mp4"))
        listener.wait_for(lambda: listener.messages)
    assert not pool.running
