from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("scinstrument.logging")
_PACKAGE_LOGGER = "scinstrument"
LOG_DIR_ENV = "SCINSTRUMENT_LOG_DIR"
LOG_LEVEL_ENV = "SCINSTRUMENT_LOG_LEVEL"
_LOG_FILE = "scinstrument.log"


def default_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".scinstrument" / "logs"


def get_log_path() -> Path:
    return default_log_dir() / _LOG_FILE


def configure_logging() -> None:
    logger = logging.getLogger(_PACKAGE_LOGGER)
    if not any(isinstance(handler, logging.NullHandler) for handler in logger.handlers):
        logger.addHandler(logging.NullHandler())
    level = os.environ.get(LOG_LEVEL_ENV)
    if not level:
        return
    try:
        logger.setLevel(level.upper())
    except ValueError:
        _LOGGER.warning("Ignoring unknown log level %r from %s", level, LOG_LEVEL_ENV)


def setup_file_logger(
    name: str,
    filename: str,
    *,
    level: int = logging.INFO,
) -> Path:
    logger = logging.getLogger(name)
    path = default_log_dir() / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    if any(isinstance(handler, logging.FileHandler) for handler in logger.handlers):
        return path
    if logger.level == logging.NOTSET:
        logger.setLevel(level)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
    return path


def log_exception(context: str, exc: BaseException) -> Path | None:
    try:
        log_dir = default_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        path = get_log_path()
        timestamp = datetime.now().isoformat()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
        return path
    except Exception as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None
