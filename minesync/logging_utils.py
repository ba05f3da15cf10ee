"""Logging setup for the MineSync client.

Records go to a rotating text log under ``<log_root>/logs/``, optionally to a
JSON-lines file beside it, and to stderr. Sync code tags records with the
save they concern (``extra={"save": name}``); both file formats carry it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Union

LOG_SUBPATH = Path("logs") / "minesync.log"
STRUCTURED_LOG_SUBPATH = Path("logs") / "minesync.jsonl"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3
REPO_ROOT = Path(__file__).resolve().parent.parent
FALLBACK_ROOT = REPO_ROOT / ".minesync_runtime"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(save_tag)s: %(message)s"
CONSOLE_FORMAT = "minesync: %(levelname)s%(save_tag)s %(message)s"


class SaveFormatter(logging.Formatter):
    """Text formatter that renders the ``save`` extra as ``[name]``."""

    def format(self, record: logging.LogRecord) -> str:
        save = getattr(record, "save", None)
        record.save_tag = f" [{save}]" if save else ""
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        save = getattr(record, "save", None)
        if save:
            entry["save"] = save
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    log_root: Path,
    level: Union[str, int] = logging.INFO,
    structured: bool = False,
    console: bool = True,
    verbose: bool = True,
) -> Path:
    """Configure the ``minesync`` logger and return the text log path.

    Calling it again replaces the previous handlers. ``verbose`` lets INFO
    records (one per transferred save) reach the console; otherwise the
    console only shows warnings and errors. Files always get ``level``.
    """
    logger = logging.getLogger("minesync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    log_path = _resolve_log_path(log_root, LOG_SUBPATH)
    logger.addHandler(_rotating_handler(log_path, SaveFormatter(TEXT_FORMAT)))

    if structured:
        json_path = _resolve_log_path(log_root, STRUCTURED_LOG_SUBPATH)
        logger.addHandler(_rotating_handler(json_path, JSONFormatter()))

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(SaveFormatter(CONSOLE_FORMAT))
        console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
        logger.addHandler(console_handler)

    return log_path


def _rotating_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def _resolve_log_path(log_root: Path, subpath: Path) -> Path:
    primary = log_root / subpath
    try:
        primary.parent.mkdir(parents=True, exist_ok=True)
        return primary
    except PermissionError:
        fallback = FALLBACK_ROOT / subpath
        fallback.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Cannot write logs under '{log_root}'; using '{fallback.parent}'.",
            file=sys.stderr,
        )
        return fallback


__all__ = ["setup_logging", "JSONFormatter", "SaveFormatter", "LOG_SUBPATH", "STRUCTURED_LOG_SUBPATH"]
