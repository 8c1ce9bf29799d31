"""Startup beacon and session PID tracking.

PID files:
  {town_root}/.runtime/pids/{session}.pid — pane PID at startup

A reaper can compare these against live tmux sessions to find agent
processes that outlived their session.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .logging_config import get_logger
from .tmux import Tmux

logger = get_logger(__name__)

BEACON_TAG = "[GAS TOWN]"


@dataclass
class BeaconConfig:
    """Who the startup prompt is addressed to, from whom, and why."""

    recipient: str
    sender: str
    topic: str


def build_startup_prompt(beacon: BeaconConfig, instructions: str, now: datetime | None = None) -> str:
    """First prompt handed to the agent: a beacon line, then instructions."""
    if now is None:
        now = datetime.now()
    stamp = now.strftime("%Y-%m-%d %H:%M")
    header = f"{BEACON_TAG} {beacon.recipient} <- {beacon.sender} • {stamp} • {beacon.topic}"
    return f"{header}\n\n{instructions}"


def pid_dir(town_root: Path) -> Path:
    return town_root / ".runtime" / "pids"


async def track_session_pid(town_root: Path, session_name: str, tmux: Tmux) -> int:
    """Record the session's pane PID. Returns the PID."""
    pid = await tmux.get_pane_pid(session_name)
    d = pid_dir(town_root)
    d.mkdir(parents=True, exist_ok=True)
    (d / f"{session_name}.pid").write_text(f"{pid}\n")
    logger.debug("Session %s: tracking pid %d", session_name, pid)
    return pid


def untrack_session_pid(town_root: Path, session_name: str) -> None:
    (pid_dir(town_root) / f"{session_name}.pid").unlink(missing_ok=True)


def tracked_pid(town_root: Path, session_name: str) -> int | None:
    """PID recorded at startup, or None if untracked or unreadable."""
    path = pid_dir(town_root) / f"{session_name}.pid"
    try:
        return int(path.read_text().strip())
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.debug("Ignoring PID file %s: %s", path, e)
        return None
