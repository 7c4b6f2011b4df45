from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtCore import QCoreApplication
from PyQt6.QtGui import QColor, QImage

from clip_media.core.config import MediaServerConfig
from clip_media.core.dispatcher import RequestDispatcher
from clip_media.core.worker.handler import MediaRequestHandler
from clip_media.core.worker.pool import MediaWorkerPool

from tests.helpers import TOKEN


@pytest.fixture(scope="session", autouse=True)
def qt_core_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture()
def make_image(tmp_path: Path) -> Callable[..., Path]:
    def _make(width: int = 1920, height: int = 1080, name: str = "thumb.png") -> Path:
        img = QImage(width, height, QImage.Format.Format_RGB32)
        img.fill(QColor("#ff6b35"))
        path = tmp_path / name
        assert img.save(str(path), "PNG")
        return path

    return _make


@pytest.fixture()
def make_video(tmp_path: Path) -> Callable[..., Path]:
    """Fake video: the server never decodes video, it only serves bytes."""

    def _make(size: int = 3 * 1024 * 1024, name: str = "clip.mp4") -> Path:
        path = tmp_path / name
        pattern = bytes(range(256))
        data = (pattern * (size // len(pattern) + 1))[:size]
        path.write_bytes(data)
        return path

    return _make


@pytest.fixture()
def handler() -> MediaRequestHandler:
    return MediaRequestHandler()


@pytest.fixture()
def pool(handler: MediaRequestHandler):
    worker_pool = MediaWorkerPool(handler, worker_count=2)
    worker_pool.start()
    yield worker_pool
    worker_pool.shutdown()


@pytest.fixture()
def dispatcher(pool: MediaWorkerPool):
    request_dispatcher = RequestDispatcher(pool, request_timeout_s=10.0, max_in_flight=32)
    yield request_dispatcher
    request_dispatcher.close()


@pytest.fixture()
def server_config(tmp_path: Path) -> MediaServerConfig:
    return MediaServerConfig(worker_count=2, base_dir=tmp_path / "clip-media", access_token=TOKEN)
