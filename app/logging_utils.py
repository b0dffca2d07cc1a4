from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s | %(message)s"

# Provider SDK loggers that log every request at INFO.
NOISY_LOGGERS = ("google", "grpc", "urllib3", "httpx")


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("APP_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(log_file: Path | None = None, *, level: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Later calls only attach ``log_file`` if it is not handled yet. The level
    comes from ``level`` or ``APP_LOG_LEVEL``; set it to DEBUG to see every
    repair rule and session state change.
    """
    resolved = _resolve_level(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    root_logger = logging.getLogger()
    if root_logger.handlers:
        if log_file:
            _ensure_file_handler(root_logger, log_file, level=resolved)
        return

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=handlers)


def _ensure_file_handler(logger: logging.Logger, log_file: Path, level: int) -> logging.Handler:
    target = log_file.resolve()
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == target:
            return handler
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
    return file_handler
