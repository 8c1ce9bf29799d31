"""Session driver — a thin async wrapper over the tmux binary.

Every query is one tmux subprocess. Nothing is cached: the tmux
session table is the only record of what is running, so callers always get
a fresh answer.

Session names are matched exactly (tmux "=name" targets) so that
"gt-foo-architect" never resolves to "gt-foo-architect-old".
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from dataclasses import dataclass
from datetime import datetime

import psutil

from . import config
from .errors import NoSuchSessionError, TmuxError
from .logging_config import get_logger

logger = get_logger(__name__)

# stderr fragments meaning "that session (or the whole server) isn't there"
_MISSING_SESSION_MARKERS = (
    "can't find session",
    "no server running",
    "session not found",
    "error connecting to",
    "no such file or directory",
)

# tmux key names recognized by send-keys (sent without -l flag)
TMUX_KEY_NAMES = frozenset(
    {
        "Enter",
        "Escape",
        "Space",
        "Tab",
        "BSpace",
        "Up",
        "Down",
        "Left",
        "Right",
    }
)

# Pattern for Ctrl/Alt key combos: C-a through C-z, M-a through M-z
_TMUX_KEY_COMBO_RE = re.compile(r"^[CM]-.{1,2}$")

# Text shown by Claude Code when launched with --dangerously-skip-permissions
BYPASS_WARNING_MARKER = "Bypass Permissions mode"

_INFO_FORMAT = "|".join(
    [
        "#{session_name}",
        "#{session_windows}",
        "#{session_created}",
        "#{session_attached}",
        "#{session_activity}",
        "#{session_last_attached}",
    ]
)


def _is_tmux_key(text: str) -> bool:
    """Check if text is a tmux key name (not literal text)."""
    if text in TMUX_KEY_NAMES:
        return True
    if _TMUX_KEY_COMBO_RE.match(text):
        return True
    return False


def _target(name: str) -> str:
    return f"={name}"


def _epoch(raw: str) -> datetime | None:
    try:
        value = int(raw)
    except ValueError:
        return None
    if value <= 0:
        return None
    return datetime.fromtimestamp(value)


@dataclass
class SessionInfo:
    """Metadata tmux reports for a session."""

    name: str
    windows: int = 0
    created: datetime | None = None
    attached: bool = False
    activity: datetime | None = None
    last_attached: datetime | None = None

    @classmethod
    def parse(cls, line: str) -> SessionInfo:
        """Parse one line of _INFO_FORMAT output."""
        parts = line.strip().split("|")
        parts += [""] * (6 - len(parts))
        name, windows, created, attached, activity, last_attached = parts[:6]
        return cls(
            name=name,
            windows=int(windows) if windows.isdigit() else 0,
            created=_epoch(created),
            attached=attached not in ("", "0"),
            activity=_epoch(activity),
            last_attached=_epoch(last_attached),
        )


@dataclass(frozen=True)
class Theme:
    """Status-bar colours for a rig's sessions."""

    name: str
    bg: str
    fg: str

    @property
    def style(self) -> str:
        return f"bg={self.bg},fg={self.fg}"


DEFAULT_PALETTE: tuple[Theme, ...] = (
    Theme("ocean", "#1e3a5f", "#e0e0e0"),
    Theme("forest", "#2d5a27", "#e0e0e0"),
    Theme("rust", "#8b4513", "#f5f5dc"),
    Theme("plum", "#4a2c4a", "#e0e0e0"),
    Theme("slate", "#3d4852", "#e0e0e0"),
    Theme("ember", "#7a2e1f", "#f5f5dc"),
    Theme("teal", "#1f5f5b", "#e0e0e0"),
    Theme("copper", "#6d4c2f", "#f5f5dc"),
    Theme("indigo", "#2e2a6b", "#e0e0e0"),
    Theme("olive", "#4b5320", "#f5f5dc"),
)


def assign_theme(rig_name: str, palette: tuple[Theme, ...] = DEFAULT_PALETTE) -> Theme:
    """Pick a theme for a rig. Same rig name, same theme, every time."""
    digest = hashlib.sha256(rig_name.encode()).digest()
    return palette[int.from_bytes(digest[:4], "big") % len(palette)]


def kill_process_tree(pid: int, timeout: float = config.KILL_GRACE_PERIOD) -> None:
    """Terminate pid and its descendants, SIGKILL whatever outlives timeout.

    Descendants are signalled before pid itself.
    """
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return

    procs = [*children, parent]
    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.debug("Cannot signal pid %d: %s", proc.pid, e)

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for proc in alive:
        try:
            logger.warning(f"Force killing stuck process PID {proc.pid}")
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.debug("Cannot kill pid %d: %s", proc.pid, e)
    if alive:
        psutil.wait_procs(alive, timeout=timeout)


class Tmux:
    """Async tmux client, optionally bound to a named socket (-L)."""

    def __init__(
        self,
        socket: str | None = None,
        poll_interval: float | None = None,
        kill_grace_period: float = config.KILL_GRACE_PERIOD,
    ):
        self.socket = socket if socket is not None else config.tmux_socket()
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.kill_grace_period = kill_grace_period

    def _base_cmd(self) -> list[str]:
        cmd = ["tmux"]
        if self.socket:
            cmd.extend(["-L", self.socket])
        return cmd

    async def _exec(self, *args: str) -> str:
        """Run one tmux command, return stdout."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._base_cmd(),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TmuxError(args, 127, f"tmux not found: {e}") from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            if any(marker in err.lower() for marker in _MISSING_SESSION_MARKERS):
                raise NoSuchSessionError(args, proc.returncode, err)
            raise TmuxError(args, proc.returncode, err)
        return stdout.decode("utf-8", errors="replace")

    # --- Queries ---

    async def has_session(self, name: str) -> bool:
        """True if the session is in tmux's session table."""
        try:
            await self._exec("has-session", "-t", _target(name))
            return True
        except NoSuchSessionError:
            return False

    async def get_session_info(self, name: str) -> SessionInfo:
        out = await self._exec("display-message", "-p", "-t", _target(name), _INFO_FORMAT)
        return SessionInfo.parse(out)

    async def get_pane_command(self, name: str) -> str:
        """Foreground command of the session's active pane."""
        out = await self._exec("display-message", "-p", "-t", _target(name), "#{pane_current_command}")
        return out.strip()

    async def get_pane_pid(self, name: str) -> int:
        out = await self._exec("display-message", "-p", "-t", _target(name), "#{pane_pid}")
        raw = out.strip()
        if not raw.isdigit():
            raise TmuxError(("display-message",), 0, f"unexpected pane_pid {raw!r}")
        return int(raw)

    async def is_agent_alive(self, name: str, shells: tuple[str, ...] = config.SUPPORTED_SHELLS) -> bool:
        """True if something other than a bare shell runs in the session.

        A session whose pane only shows its parent shell has lost the agent
        (crashed or exited) even though tmux still lists it.
        """
        try:
            command = await self.get_pane_command(name)
        except NoSuchSessionError:
            return False
        return bool(command) and command not in shells

    async def capture_pane(self, name: str, lines: int = 50) -> str:
        return await self._exec("capture-pane", "-p", "-t", _target(name), "-S", f"-{lines}")

    # --- Mutations ---

    async def new_session_with_command(self, name: str, work_dir: str, command: str) -> None:
        """Create a detached session running command in work_dir."""
        logger.info(f"Creating tmux session '{name}' in {work_dir}")
        await self._exec("new-session", "-d", "-s", name, "-c", work_dir, command)

    async def kill_session(self, name: str) -> None:
        await self._exec("kill-session", "-t", _target(name))

    async def kill_session_with_processes(self, name: str) -> None:
        """Kill the pane's process tree, then the session.

        Agents often ignore the SIGHUP tmux sends, so the tree is terminated
        explicitly, with SIGKILL after the grace period, before the session goes.
        """
        try:
            pane_pid = await self.get_pane_pid(name)
        except NoSuchSessionError:
            return
        except TmuxError as e:
            logger.debug("Session %s: pane pid lookup failed: %s", name, e)
            pane_pid = None

        if pane_pid is not None:
            await asyncio.to_thread(kill_process_tree, pane_pid, self.kill_grace_period)

        try:
            await self.kill_session(name)
        except NoSuchSessionError:
            pass

    async def set_environment(self, name: str, key: str, value: str) -> None:
        await self._exec("set-environment", "-t", _target(name), key, value)

    async def send_keys(self, name: str, text: str) -> None:
        """Send a key name ("Enter", "C-c") or literal text."""
        if _is_tmux_key(text):
            await self._exec("send-keys", "-t", _target(name), text)
        else:
            await self._exec("send-keys", "-t", _target(name), "-l", text)

    async def configure_session(self, name: str, theme: Theme, rig: str, worker: str, role: str) -> None:
        """Apply status-bar colours and labels. Stops at the first failure."""
        target = _target(name)
        await self._exec("set-option", "-t", target, "status-style", theme.style)
        await self._exec("set-option", "-t", target, "status-left-length", "40")
        await self._exec("set-option", "-t", target, "status-left", f"[{rig}/{worker}] ")
        await self._exec("set-option", "-t", target, "@gt_role", role)
        await self._exec("set-option", "-t", target, "@gt_rig", rig)

    # --- Waits ---

    async def wait_for_command(self, name: str, shells: tuple[str, ...], timeout: float) -> None:
        """Block until the pane runs something other than a shell.

        Raises TimeoutError when the deadline passes and TmuxError if the
        session disappears.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            command = await self.get_pane_command(name)
            if command and command not in shells:
                logger.debug("Session %s: agent running as %s", name, command)
                return
            if loop.time() >= deadline:
                raise TimeoutError(f"timed out after {timeout:.0f}s waiting for agent in {name} (pane: {command!r})")
            await asyncio.sleep(self.poll_interval)

    async def accept_bypass_permissions_warning(self, name: str, delay: float = 1.0) -> bool:
        """Dismiss Claude's bypass-permissions warning if it is on screen.

        Returns True if the dialog was found and accepted.
        """
        await asyncio.sleep(delay)
        content = await self.capture_pane(name, lines=30)
        if BYPASS_WARNING_MARKER not in content:
            return False
        # Option 2 is "Yes, I accept"
        await self.send_keys(name, "Down")
        await self.send_keys(name, "Enter")
        logger.info("Session %s: accepted bypass permissions warning", name)
        return True

    def attach_command(self, name: str) -> list[str]:
        """argv that hands the terminal to the session."""
        return [*self._base_cmd(), "attach-session", "-t", _target(name)]
