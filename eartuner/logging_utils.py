from __future__ import annotations

import logging
import os
import sys
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import get_cache_dir

_LOGGER = logging.getLogger("eartuner.logging")

LOG_DIR_ENV = "EARTUNER_LOG_DIR"
DEBUG_ENV = "EARTUNER_DEBUG"
LOG_FILE_NAME = "eartuner.log"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUPS = 3

# Marks handlers installed here so a forced reconfigure leaves foreign ones alone.
_OWNED_ATTR = "_eartuner_owned"
_configured = False


class _IconFormatter(logging.Formatter):
    ICONS = {
        logging.DEBUG: "🐛",
        logging.INFO: "🎹",
        logging.WARNING: "⚠️",
        logging.ERROR: "❌",
        logging.CRITICAL: "💥",
    }

    def __init__(self) -> None:
        super().__init__("%(icon)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        record.icon = self.ICONS.get(record.levelno, "")
        return super().format(record)


def debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "").strip().lower() not in ("", "0", "false", "no")


def get_log_dir() -> Path:
    override = os.environ.get(LOG_DIR_ENV)
    return Path(override).expanduser() if override else get_cache_dir() / "logs"


def get_log_path() -> Path:
    return get_log_dir() / LOG_FILE_NAME


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.__stderr__)
    handler.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)
    handler.setFormatter(_IconFormatter())
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return handler


def configure_logging(*, force: bool = False) -> None:
    """Attach the console and rotating-file handlers to the ``eartuner`` logger.

    Runs once per process unless ``force`` is set. The console handler is
    skipped when the host application already configured the root logger;
    mystery notes only reach the console with ``EARTUNER_DEBUG`` set, but
    always land in the log file.
    """

    global _configured
    if _configured and not force:
        return

    package_logger = logging.getLogger("eartuner")
    package_logger.setLevel(logging.DEBUG)
    for handler in list(package_logger.handlers):
        if getattr(handler, _OWNED_ATTR, False):
            package_logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    if force or not logging.getLogger().handlers:
        handlers.append(_console_handler())
    try:
        handlers.append(_file_handler(get_log_path()))
    except OSError as exc:
        _LOGGER.warning("File logging disabled: %s", exc, exc_info=True)

    for handler in handlers:
        setattr(handler, _OWNED_ATTR, True)
        package_logger.addHandler(handler)

    # Test and host handlers on the root logger still see our records.
    package_logger.propagate = True
    _configured = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` with its traceback to the log file; return its path."""

    path = get_log_path()
    stamp = datetime.now().isoformat(timespec="seconds")
    entry = "".join(
        [
            f"[{stamp}] {context} failed: {type(exc).__name__}: {exc}\n",
            *traceback.format_exception(type(exc), exc, exc.__traceback__),
            "\n",
        ]
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(entry)
    except OSError as log_exc:
        _LOGGER.warning("Could not write %s: %s", path, log_exc, exc_info=True)
        return None
    return path
