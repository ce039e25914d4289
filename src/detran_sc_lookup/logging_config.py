from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Playwright's driver logs every protocol hop at DEBUG.
NOISY_LOGGERS = ("playwright", "asyncio")

# One consultation with --diagnostics writes a few KB; keep a handful of weeks around.
_LOG_MAX_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3


def _file_handler(file_path: str) -> logging.Handler:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8")


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    """
    Console logging, plus a rotating log file when `file_path` is set.

    Safe to call twice: the CLI logs with env defaults first, then again once the config file
    (which may move the log file or change the level) has been loaded.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        handlers.append(_file_handler(file_path))

    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    noisy_level = os.getenv("NOISY_LOG_LEVEL", "WARNING")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
