"""Shared fixtures for architect tests."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest

import rig_architect.config as config
from rig_architect.errors import NoSuchSessionError, TmuxError
from rig_architect.manager import ArchitectManager
from rig_architect.rig import load_rig
from rig_architect.tmux import SessionInfo, Theme, Tmux

RIG_NAME = "copperhead"


@dataclass
class FakeSession:
    name: str
    work_dir: str
    command: str
    pane_command: str
    pid: int
    env: dict[str, str] = field(default_factory=dict)
    options: dict[str, str] = field(default_factory=dict)
    screen: str = ""


class FakeTmux(Tmux):
    """In-memory tmux session table.

    agent_starts controls what a new session's pane runs: the agent
    ("claude") or nothing but its shell (so wait_for_command times out).
    fail maps a method name to the exception it should raise.
    """

    def __init__(self):
        super().__init__(socket="", poll_interval=0.01)
        self.sessions: dict[str, FakeSession] = {}
        self.agent_starts = True
        self.agent_command = "claude"
        self.fail: dict[str, Exception] = {}
        self.fail_env_keys: set[str] = set()
        self.calls: list[tuple] = []
        self._next_pid = 1000

    def _check(self, method: str) -> None:
        if method in self.fail:
            raise self.fail[method]

    def _get(self, name: str) -> FakeSession:
        session = self.sessions.get(name)
        if session is None:
            raise NoSuchSessionError(("display-message",), 1, f"can't find session: {name}")
        return session

    def add_session(self, name: str, pane_command: str = "claude", work_dir: str = "/tmp") -> FakeSession:
        """Seed the table directly (healthy by default, pass "bash" for a zombie)."""
        self._next_pid += 1
        session = FakeSession(name, work_dir, "", pane_command, self._next_pid)
        self.sessions[name] = session
        return session

    async def has_session(self, name):
        self.calls.append(("has_session", name))
        self._check("has_session")
        return name in self.sessions

    async def get_session_info(self, name):
        self._check("get_session_info")
        session = self._get(name)
        return SessionInfo(name=session.name, windows=1, created=datetime.now())

    async def get_pane_command(self, name):
        self._check("get_pane_command")
        return self._get(name).pane_command

    async def get_pane_pid(self, name):
        self._check("get_pane_pid")
        return self._get(name).pid

    async def capture_pane(self, name, lines=50):
        return self._get(name).screen

    async def new_session_with_command(self, name, work_dir, command):
        self.calls.append(("new_session", name, work_dir, command))
        self._check("new_session_with_command")
        if name in self.sessions:
            raise TmuxError(("new-session",), 1, f"duplicate session: {name}")
        self._next_pid += 1
        pane = self.agent_command if self.agent_starts else "bash"
        self.sessions[name] = FakeSession(name, work_dir, command, pane, self._next_pid)

    async def kill_session(self, name):
        self.calls.append(("kill_session", name))
        self._check("kill_session")
        self._get(name)
        del self.sessions[name]

    async def kill_session_with_processes(self, name):
        self.calls.append(("kill_session_with_processes", name))
        self._check("kill_session_with_processes")
        self.sessions.pop(name, None)

    async def set_environment(self, name, key, value):
        self.calls.append(("set_environment", name, key, value))
        if key in self.fail_env_keys:
            raise TmuxError(("set-environment",), 1, f"cannot set {key}")
        self._get(name).env[key] = value

    async def send_keys(self, name, text):
        self.calls.append(("send_keys", name, text))
        self._get(name)

    async def configure_session(self, name, theme: Theme, rig, worker, role):
        self.calls.append(("configure_session", name, theme.name))
        self._check("configure_session")
        self._get(name).options.update({"status-style": theme.style, "@gt_rig": rig, "@gt_role": role})

    async def accept_bypass_permissions_warning(self, name, delay=0.0):
        self._check("accept_bypass_permissions_warning")
        return await super().accept_bypass_permissions_warning(name, delay=0.0)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep host settings out of tests."""
    for var in ("GT_TOWN_ROOT", "GT_START_TIMEOUT", "GT_SETTLE_DELAY", "GT_TMUX_SOCKET"):
        monkeypatch.delenv(var, raising=False)
    config.clear_settings_cache()
    yield
    config.clear_settings_cache()


@pytest.fixture
def town(tmp_path) -> Path:
    """A town with one active rig registered."""
    root = tmp_path / "town"
    (root / "mayor").mkdir(parents=True)
    (root / "mayor" / "town.json").write_text(json.dumps({"name": "test-town"}))
    (root / RIG_NAME).mkdir()
    rigs = {"rigs": {RIG_NAME: {"path": RIG_NAME, "prefix": "cp"}}}
    (root / "rigs.json").write_text(json.dumps(rigs, indent=2))
    return root.resolve()


@pytest.fixture
def write_rigs(town):
    """Replace the town's rigs.json entries."""

    def _write(rigs: dict) -> None:
        (town / "rigs.json").write_text(json.dumps({"rigs": rigs}, indent=2))

    return _write


@pytest.fixture
def rig(town):
    return load_rig(town, RIG_NAME)


@pytest.fixture
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture
def manager(rig, fake_tmux) -> ArchitectManager:
    """Manager on the fake driver with short timeouts."""
    return ArchitectManager(rig, tmux=fake_tmux, start_timeout=0.1, settle_delay=0)
