"""Logging setup for the build tool's CLI and library callers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional


_LOG_FORMAT = "%(asctime)s,%(msecs)03d [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_console_configured = False
_file_handlers: dict[str, logging.Handler] = {}


def parse_level(name: str) -> int:
    value = logging.getLevelName(str(name).upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {name}")
    return value


def _formatter() -> logging.Formatter:
    return logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)


def configure_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """Console logging once per process; each distinct ``log_file`` gets one extra handler."""
    global _console_configured
    root = logging.getLogger()
    if not _console_configured:
        logging.basicConfig(level=level, format=_LOG_FORMAT, datefmt=_DATE_FORMAT)
        _console_configured = True
    root.setLevel(level)
    if log_file is None:
        return
    key = str(log_file.resolve())
    handler = _file_handlers.get(key)
    if handler is None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(_formatter())
        root.addHandler(handler)
        _file_handlers[key] = handler
    handler.setLevel(level)
