import pytest
from PyQt6.QtGui import QColor, QImage

from clip_media.core.errors import MediaNotFoundError, TranscodeError
from clip_media.media.transcoder import ImageTranscoder, compute_target_size, pick_output_format


def _decode(data: bytes) -> QImage:
    img = QImage.fromData(data)
    assert not img.isNull()
    return img


def test_compute_target_size_derives_height() -> None:
    assert compute_target_size(640, 0, (1920, 1080)) == (640, 360)


def test_compute_target_size_derives_width() -> None:
    assert compute_target_size(0, 360, (1920, 1080)) == (640, 360)


def test_compute_target_size_box_is_used_as_is() -> None:
    assert compute_target_size(100, 100, None) == (100, 100)


def test_compute_target_size_no_resize() -> None:
    assert compute_target_size(0, 0, (1920, 1080)) is None


def test_compute_target_size_rounds_half_up_and_never_zero() -> None:
    assert compute_target_size(5, 0, (2, 1)) == (5, 3)
    assert compute_target_size(1, 0, (1000, 1)) == (1, 1)


def test_compute_target_size_needs_intrinsic() -> None:
    with pytest.raises(TranscodeError):
        compute_target_size(640, 0, None)
    with pytest.raises(TranscodeError):
        compute_target_size(640, 0, (0, 1080))


def test_output_format_matches_mime() -> None:
    transcoder = ImageTranscoder()
    assert transcoder.output_format == pick_output_format()
    assert transcoder.output_mime in {"image/webp", "image/jpeg"}


def test_unknown_output_format_rejected() -> None:
    with pytest.raises(ValueError):
        ImageTranscoder("BMP")


def test_width_only_keeps_aspect_ratio(make_image) -> None:
    source = make_image(1920, 1080)
    data = ImageTranscoder().transcode(source, width=640, quality=80)
    img = _decode(data)
    assert (img.width(), img.height()) == (640, 360)


def test_height_only_keeps_aspect_ratio(make_image) -> None:
    source = make_image(800, 400)
    img = _decode(ImageTranscoder().transcode(source, height=100))
    assert (img.width(), img.height()) == (200, 100)


def test_box_stretches(make_image) -> None:
    source = make_image(1920, 1080)
    img = _decode(ImageTranscoder().transcode(source, width=100, height=100))
    assert (img.width(), img.height()) == (100, 100)


def test_no_dimensions_keeps_original_size(make_image) -> None:
    source = make_image(320, 240)
    img = _decode(ImageTranscoder().transcode(source))
    assert (img.width(), img.height()) == (320, 240)


def test_jpeg_output(make_image) -> None:
    source = make_image(64, 64)
    data = ImageTranscoder("JPEG").transcode(source, quality=50)
    assert data[:2] == b"\xff\xd8"


def test_jpeg_drops_alpha(tmp_path) -> None:
    img = QImage(32, 32, QImage.Format.Format_ARGB32)
    img.fill(QColor(255, 0, 0, 128))
    path = tmp_path / "alpha.png"
    assert img.save(str(path), "PNG")
    out = _decode(ImageTranscoder("JPEG").transcode(path, width=16))
    assert (out.width(), out.height()) == (16, 16)


def test_read_size(make_image) -> None:
    source = make_image(300, 200)
    assert ImageTranscoder().read_size(source) == (300, 200)


def test_corrupt_image_fails(tmp_path) -> None:
    path = tmp_path / "broken.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\nnot really a png")
    with pytest.raises(TranscodeError):
        ImageTranscoder().transcode(path, width=640)
    with pytest.raises(TranscodeError):
        ImageTranscoder().transcode(path)


def test_missing_image_fails(tmp_path) -> None:
    with pytest.raises(MediaNotFoundError):
        ImageTranscoder().transcode(tmp_path / "gone.png", width=640)


def test_directory_is_not_an_image(tmp_path) -> None:
    with pytest.raises(MediaNotFoundError):
        ImageTranscoder().transcode(tmp_path)
