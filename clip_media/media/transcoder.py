from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Tuple

from PyQt6.QtCore import QBuffer, QIODevice, QSize, Qt
from PyQt6.QtGui import QImage, QImageReader, QImageWriter

from clip_media.core.dto.request import DEFAULT_QUALITY
from clip_media.core.errors import TranscodeError
from clip_media.utils.file_utils import check_readable_file


logger = logging.getLogger(__name__)

_FORMAT_MIME = {
    "WEBP": "image/webp",
    "JPEG": "image/jpeg",
}


def _writable_formats() -> set[str]:
    return {bytes(fmt).decode("ascii", "ignore").lower() for fmt in QImageWriter.supportedImageFormats()}


def pick_output_format() -> str:
    """WebP when this Qt build can write it, JPEG otherwise (always bundled)."""
    if "webp" in _writable_formats():
        return "WEBP"
    return "JPEG"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_target_size(
    width: int,
    height: int,
    intrinsic: Optional[Tuple[int, int]],
) -> Optional[Tuple[int, int]]:
    """
    Resolve the requested box against the source's intrinsic size.

    Returns None for "no resize" (both sides unset). With one side set the
    other follows the source aspect ratio; with both set the box is used as-is.
    """
    width = max(0, int(width or 0))
    height = max(0, int(height or 0))
    if width <= 0 and height <= 0:
        return None
    if width > 0 and height > 0:
        return width, height

    if intrinsic is None:
        raise TranscodeError("Cannot derive missing dimension without intrinsic size")
    src_w, src_h = intrinsic
    if src_w <= 0 or src_h <= 0:
        raise TranscodeError(f"Invalid intrinsic size: {src_w}x{src_h}")

    if height <= 0:
        height = _round_half_up(width * (src_h / src_w))
    else:
        width = _round_half_up(height * (src_w / src_h))
    return max(1, width), max(1, height)


class ImageTranscoder:
    """
    Image decode / resize / re-encode for thumbnails.

    Responsibilities:
    - Read intrinsic dimensions (metadata only)
    - Decode, resize
    - Encode to a single lossy web format

    Non-responsibilities:
    - Caching
    - Threading
    - HTTP
    """

    def __init__(self, output_format: Optional[str] = None):
        self._format = (output_format or pick_output_format()).upper()
        if self._format not in _FORMAT_MIME:
            raise ValueError(f"Unsupported output format: {output_format}")

    @property
    def output_format(self) -> str:
        return self._format

    @property
    def output_mime(self) -> str:
        return _FORMAT_MIME[self._format]

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    def transcode(
        self,
        source: str | Path,
        width: int = 0,
        height: int = 0,
        quality: int = DEFAULT_QUALITY,
    ) -> bytes:
        """
        Re-encode `source` at `quality`, optionally resized.

        When exactly one of width/height is given this is a two-step
        operation: a metadata read for the intrinsic size, then the full
        decode + resize + encode pass.
        """
        path = Path(source)
        check_readable_file(path)

        intrinsic = None
        if (width > 0) != (height > 0):
            intrinsic = self.read_size(path)
        target = compute_target_size(width, height, intrinsic)

        img = self._load(path)
        if target is not None:
            img = self._resize(img, target)
        return self._encode(img, quality)

    def read_size(self, source: str | Path) -> Tuple[int, int]:
        reader = QImageReader(str(source))
        size = reader.size()
        if size.isValid() and size.width() > 0 and size.height() > 0:
            return size.width(), size.height()
        # Some plugins cannot report size without decoding
        img = self._load(Path(source))
        return img.width(), img.height()

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _load(self, source: Path) -> QImage:
        reader = QImageReader(str(source))
        img = reader.read()
        if img.isNull():
            raise TranscodeError(f"Failed to load image: {source} ({reader.errorString()})")
        return img

    def _resize(self, img: QImage, size: Tuple[int, int]) -> QImage:
        w, h = size
        scaled = img.scaled(
            QSize(w, h),
            Qt.AspectRatioMode.IgnoreAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        )
        if scaled.isNull():
            raise TranscodeError(f"Failed to resize image to {w}x{h}")
        return scaled

    def _encode(self, img: QImage, quality: int) -> bytes:
        quality = min(100, max(1, int(quality)))
        if self._format == "JPEG" and img.hasAlphaChannel():
            img = img.convertToFormat(QImage.Format.Format_RGB32)

        buffer = QBuffer()
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        try:
            ok = img.save(buffer, self._format, quality)
        finally:
            buffer.close()
        data = bytes(buffer.data())
        if not ok or not data:
            raise TranscodeError(f"Failed to encode image as {self._format}")
        logger.debug(f"Encoded {img.width()}x{img.height()} {self._format} q={quality}: {len(data)} bytes")
        return data
