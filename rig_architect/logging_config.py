"""Logging setup for the rig-architect CLI.

Console output goes to stderr. When a town is known, the same records also
go to {town_root}/logs/{process}.log, size-capped with a few backups; each
CLI invocation is short, so one rotating file is enough history.

Modules log through:
    from .logging_config import get_logger
    logger = get_logger(__name__)
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUPS = 3


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def setup_process_logging(
    process_name: str,
    level: int = logging.INFO,
    log_dir: Path | None = None,
) -> logging.Logger:
    """Configure the root logger once, at the CLI entry point.

    Console logging is always on. File logging is on only when log_dir is
    given; if it can't be created a warning is logged and the console
    handler is kept.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    fmt = f"[%(asctime)s] [{process_name}] [%(levelname)s] %(name)s: %(message)s"

    console_handler = FlushingStreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%H:%M:%S"))
    root.addHandler(console_handler)

    if log_dir is None:
        return root
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        root.warning("Log directory %s unavailable, file logging disabled: %s", log_dir, e)
        return root

    file_handler = RotatingFileHandler(
        log_dir / f"{process_name}.log",
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Call at module level: logger = get_logger(__name__)"""
    return logging.getLogger(name)
