from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

ROOT_LOGGER_NAME = "msgdownloader"
LOG_FILE_NAME = "message_downloader.log"
LOG_LEVEL_ENV = "MESSAGE_DOWNLOADER_LOG_LEVEL"
_MAX_BYTES = 2 * 1024 * 1024
_BACKUPS = 3
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level_from_env(default: int) -> int:
    raw = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def configure_logging(logs_dir: str | None, level: int = logging.INFO) -> logging.Logger:
    """Attach file and console handlers to the app logger once.

    Calling again only updates the level; handlers are never duplicated.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(_level_from_env(level))
    if getattr(logger, "_msgdownloader_configured", False):
        return logger

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if logs_dir:
        try:
            os.makedirs(logs_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(logs_dir, LOG_FILE_NAME),
                maxBytes=_MAX_BYTES,
                backupCount=_BACKUPS,
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled: %s", exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    logger._msgdownloader_configured = True  # type: ignore[attr-defined]
    return logger
