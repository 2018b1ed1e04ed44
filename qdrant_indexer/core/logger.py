"""
Centralized logging setup.
Console output plus a rotating rag_app.log in LOG_DIR (5MB, 3 backups).

Usage:
    from qdrant_indexer.core.logger import get_logger
    logger = get_logger(__name__, log_dir=settings.LOG_DIR, level=settings.LOG_LEVEL)
    logger.info("Hello!")
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "rag_app.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

# HTTP and SDK chatter drowns the per-chunk progress lines at INFO
QUIET_LOGGERS = ("urllib3", "google", "pypdf")

_handlers: List[logging.Handler] = []


def setup_logging(log_dir: str = "./data/logs", level: Union[int, str] = logging.INFO) -> Path:
    """
    Attach console + rotating file handlers to the root logger.

    Only the first call installs handlers; later calls just return the log
    file path so every module can call get_logger() freely.
    """
    log_path = Path(log_dir)
    log_file = log_path / LOG_FILE_NAME
    if _handlers:
        return log_file

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    log_path.mkdir(parents=True, exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler()
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )

    root = logging.getLogger()
    root.setLevel(level)
    for handler in (console, file_handler):
        handler.setLevel(level)
        handler.setFormatter(fmt)
        root.addHandler(handler)
        _handlers.append(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info("Logging initialized → %s", log_file)
    return log_file


def shutdown_logging():
    """Detach and close the handlers installed by setup_logging."""
    root = logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()


def get_logger(name: str, log_dir: str = "./data/logs",
               level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Get a named logger. Auto-initializes logging on first call."""
    setup_logging(log_dir, level)
    return logging.getLogger(name)
