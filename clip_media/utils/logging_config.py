"""
Categorised logging for the media layer.

Each clip_media logger belongs to one category (core, network, worker, media).
A category has one level, stored in the host settings under
``log_level_<category>`` so it survives restarts.
"""
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict, Iterable, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_NAME = "clip_media.log"


class LoggerCategory:
    CORE = "core"          # context, config, dispatcher
    NETWORK = "network"    # local resource server
    WORKER = "worker"      # pool + request handler
    MEDIA = "media"        # transcoder


DEFAULT_LOG_LEVELS = {
    LoggerCategory.CORE: logging.INFO,
    LoggerCategory.NETWORK: logging.INFO,
    LoggerCategory.WORKER: logging.INFO,
    LoggerCategory.MEDIA: logging.WARNING,  # one line per thumbnail otherwise
}

MODULE_TO_CATEGORY = {
    'clip_media.core': LoggerCategory.CORE,
    'clip_media.core.context': LoggerCategory.CORE,
    'clip_media.core.config': LoggerCategory.CORE,
    'clip_media.core.dispatcher': LoggerCategory.CORE,
    'clip_media.core.resource_server': LoggerCategory.NETWORK,
    'clip_media.core.worker': LoggerCategory.WORKER,
    'clip_media.core.worker.pool': LoggerCategory.WORKER,
    'clip_media.core.worker.handler': LoggerCategory.WORKER,
    'clip_media.media': LoggerCategory.MEDIA,
    'clip_media.media.transcoder': LoggerCategory.MEDIA,
}

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ('aiohttp', 'asyncio')


def _settings_key(category: str) -> str:
    return f'log_level_{category}'


def _parse_level(name, fallback: int) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else fallback


def _modules_in(category: str) -> Iterable[str]:
    return (module for module, cat in MODULE_TO_CATEGORY.items() if cat == category)


class LoggingManager:
    """
    Owns the root handlers and the per-category levels.

    Args:
        log_dir: where clip_media.log (and its rotated copies) are written
        settings: optional get_config/set_config store for persisted levels
    """

    def __init__(self, log_dir: Optional[Path] = None, settings=None):
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".clip-media" / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.settings = settings
        self._levels: Dict[str, int] = {
            category: self._stored_level(category, default)
            for category, default in DEFAULT_LOG_LEVELS.items()
        }

    def _stored_level(self, category: str, default: int) -> int:
        if self.settings is None:
            return default
        stored = self.settings.get_config(_settings_key(category), logging.getLevelName(default))
        return _parse_level(stored, default)

    def get_category_level(self, category: str) -> int:
        return self._levels.get(category, logging.INFO)

    def get_all_levels(self) -> Dict[str, int]:
        return dict(self._levels)

    def set_category_level(self, category: str, level: int):
        """Change a category's level now and persist it when the store is writable."""
        self._levels[category] = level
        setter = getattr(self.settings, 'set_config', None)
        if setter is not None:
            setter(_settings_key(category), logging.getLevelName(level))
        self._apply(category, level)

    def _apply(self, category: str, level: int):
        for module in _modules_in(category):
            logging.getLogger(module).setLevel(level)

    def _build_handlers(self):
        formatter = logging.Formatter(LOG_FORMAT)
        # Rotate at midnight, keep a week
        to_file = TimedRotatingFileHandler(
            self.log_dir / LOG_FILE_NAME,
            when="midnight",
            backupCount=7,
            encoding="utf-8",
        )
        to_console = logging.StreamHandler()
        for handler in (to_file, to_console):
            handler.setFormatter(formatter)
        return to_file, to_console

    def setup_logging(self, root_level: int = logging.INFO):
        """Replace the root handlers with file + console and apply category levels."""
        root = logging.getLogger()
        for old in list(root.handlers):
            root.removeHandler(old)
            old.close()
        for handler in self._build_handlers():
            root.addHandler(handler)
        root.setLevel(root_level)

        for category, level in self._levels.items():
            self._apply(category, level)
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(log_dir: Optional[Path] = None, settings=None) -> LoggingManager:
    manager = LoggingManager(log_dir=log_dir, settings=settings)
    manager.setup_logging()
    return manager
