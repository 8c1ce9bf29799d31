"""Per-session start/stop lock.

The manager checks the session table and then acts on it, so two callers
starting the same session at once can both see it absent. Callers that may
race take this lock around the operation:

    with SessionLock(town_root, mgr.session_name):
        await mgr.start()

Lock files live at {town_root}/.runtime/locks/{session}.lock and hold the
owner's PID. The lock is released when the holder exits, crash included.
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import IO

from .errors import LockHeldError
from .logging_config import get_logger

logger = get_logger(__name__)


def lock_dir(town_root: Path) -> Path:
    return town_root / ".runtime" / "locks"


class SessionLock:
    """Non-blocking exclusive flock for one session name."""

    def __init__(self, town_root: Path, session_name: str):
        self.lock_file = lock_dir(town_root) / f"{session_name}.lock"
        self.session_name = session_name
        self._file: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def holder_pid(self) -> int | None:
        try:
            raw = self.lock_file.read_text().strip()
        except OSError:
            return None
        return int(raw) if raw.isdigit() else None

    def acquire(self) -> None:
        """Take the lock or raise LockHeldError."""
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        f = open(self.lock_file, "a+")
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            f.close()
            holder = self.holder_pid()
            owner = f" (pid {holder})" if holder else ""
            raise LockHeldError(f"{self.session_name} is being changed by another process{owner}") from None

        f.seek(0)
        f.truncate()
        f.write(str(os.getpid()))
        f.flush()
        self._file = f
        logger.debug("Acquired lock %s", self.lock_file)

    def release(self) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
        logger.debug("Released lock %s", self.lock_file)

    def __enter__(self) -> SessionLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
