import logging
from pathlib import Path

from clip_media.core.config import (
    DictSettings,
    EnvironmentSettings,
    MediaServerConfig,
    default_worker_count,
)


def test_defaults() -> None:
    config = MediaServerConfig()
    assert config.host == "127.0.0.1"
    assert config.port == 0
    assert config.request_timeout_s == 30.0
    assert config.initial_chunk_size == 1024 * 1024
    assert config.in_flight_limit == config.worker_count * 16
    assert config.log_dir == Path.home() / ".clip-media" / "logs"
    assert MediaServerConfig.from_settings(None) == config


def test_default_worker_count_is_bounded() -> None:
    assert 2 <= default_worker_count() <= 8


def test_from_settings_parses_and_clamps(tmp_path) -> None:
    settings = DictSettings({
        "port": "8790",
        "worker_count": "0",
        "max_in_flight": 7,
        "request_timeout_s": "2.5",
        "default_quality": "150",
        "stream_chunk_size": "1",
        "base_dir": str(tmp_path),
        "video_scheme": "my-video",
    })
    config = MediaServerConfig.from_settings(settings)
    assert config.port == 8790
    assert config.worker_count == 1
    assert config.in_flight_limit == 7
    assert config.request_timeout_s == 2.5
    assert config.default_quality == 100
    assert config.stream_chunk_size == 64 * 1024
    assert config.video_scheme == "my-video"
    assert config.image_scheme == "clip-editor"
    assert config.log_dir == tmp_path / "logs"


def test_invalid_values_fall_back_to_defaults(caplog) -> None:
    settings = DictSettings({"port": "eighty", "request_timeout_s": "soon", "worker_count": "3"})
    with caplog.at_level(logging.WARNING, logger="clip_media.core.config"):
        config = MediaServerConfig.from_settings(settings)
    assert config.port == 0
    assert config.request_timeout_s == 30.0
    assert config.worker_count == 3
    assert "'port'" in caplog.text
    assert "'request_timeout_s'" in caplog.text


def test_zero_timeout_and_in_flight_mean_defaults() -> None:
    config = MediaServerConfig.from_settings(DictSettings({"request_timeout_s": "0", "max_in_flight": "0"}))
    assert config.request_timeout_s == 0.0
    assert config.max_in_flight is None


def test_environment_settings(monkeypatch) -> None:
    monkeypatch.setenv("CLIP_MEDIA_PORT", "9000")
    monkeypatch.setenv("CLIP_MEDIA_IMAGE_SCHEME", "thumbs")
    config = MediaServerConfig.from_settings(EnvironmentSettings())
    assert config.port == 9000
    assert config.image_scheme == "thumbs"


def test_dict_settings_round_trip() -> None:
    settings = DictSettings()
    assert settings.get_config("missing", "fallback") == "fallback"
    settings.set_config("log_level_core", "DEBUG")
    assert settings.get_config("log_level_core", "INFO") == "DEBUG"


def test_access_token_from_settings() -> None:
    assert MediaServerConfig.from_settings(DictSettings({"access_token": "s3cret"})).access_token == "s3cret"
    assert MediaServerConfig.from_settings(DictSettings({"access_token": ""})).access_token is None
    assert MediaServerConfig.from_settings(DictSettings()).access_token is None
