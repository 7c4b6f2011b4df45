"""
Headless entry point for the clip media server.

Runs the worker pool and local resource server without a UI, which is handy
for checking what a player sees:

    CLIP_MEDIA_PORT=8790 CLIP_MEDIA_ACCESS_TOKEN=dev python main.py
    curl -H "Range: bytes=0-999" "http://127.0.0.1:8790/video?path=/clips/match.mp4&token=dev"
"""
import logging
import signal
import sys
import threading

from PyQt6.QtCore import QCoreApplication, QtMsgType, qInstallMessageHandler


def qt_message_handler(mode, context, message):
    """Route Qt messages (image plugin warnings etc.) into logging."""
    if mode == QtMsgType.QtDebugMsg:
        logging.debug(f"Qt: {message}")
    elif mode == QtMsgType.QtInfoMsg:
        logging.info(f"Qt: {message}")
    elif mode == QtMsgType.QtWarningMsg:
        logging.warning(f"Qt: {message}")
    elif mode == QtMsgType.QtCriticalMsg:
        logging.error(f"Qt: {message}")
    elif mode == QtMsgType.QtFatalMsg:
        logging.critical(f"Qt: {message}")


def setup_logging(settings=None):
    """Configure application logging"""
    from clip_media.core.config import MediaServerConfig
    from clip_media.utils.logging_config import setup_logging as setup_categorized_logging

    config = MediaServerConfig.from_settings(settings)
    logging_manager = setup_categorized_logging(config.log_dir, settings)
    qInstallMessageHandler(qt_message_handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("Clip Media Server Starting")
    logger.info("="*50)

    return logging_manager


def main():
    """Main application entry point"""
    from clip_media.core.config import EnvironmentSettings
    from clip_media.core.context import MediaContext

    settings = EnvironmentSettings()
    setup_logging(settings)
    logger = logging.getLogger(__name__)

    # Image plugins are resolved through the application instance
    app = QCoreApplication(sys.argv)
    app.setApplicationName("Clip Media Server")

    stop_event = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop_event.set())
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    context = None
    try:
        context = MediaContext(settings=settings)
        context.start()
        logger.info(f"Serving media on {context.server.base_url} (token={context.server.token})")
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        logger.info("Shutting down...")
        if context is not None:
            context.close()
        logger.info("Media server closed")


if __name__ == "__main__":
    main()
