"""Architect lifecycle — start, stop, status for one rig's architect session.

The tmux session is the source of truth for running state. Nothing is
persisted: every call re-queries tmux, so there is no cached state to go
stale. Session name: gt-{rig}-architect.

Start state machine:
  HEALTHY  → AlreadyRunningError, session untouched
  ZOMBIE   → kill the stale session, then start as ABSENT
  ABSENT   → full startup sequence

Concurrency contract: the manager takes no locks. Two start() calls racing
on the same rig can both see ABSENT; callers that may race must serialize
per rig (see lock.SessionLock, which the CLI uses).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from . import config
from .beads import AgentFields, Beads, agent_bead_id, resolve_prefix
from .errors import (
    AlreadyRunningError,
    BeadNotFoundError,
    ConfigResolutionError,
    NoSuchSessionError,
    NotRunningError,
    SessionCreationError,
    SessionKillError,
    SessionQueryError,
    StartupTimeoutError,
    TmuxError,
    UnknownAgentError,
    ZombieCleanupError,
)
from .health import SessionState, probe
from .logging_config import get_logger
from .rig import Rig, ensure_gitignore_patterns
from .session import BeaconConfig, build_startup_prompt, track_session_pid
from .startup import (
    agent_env,
    build_agent_startup_command,
    ensure_settings_for_role,
    resolve_role_agent_config,
    role_settings_dir,
)
from .tmux import SessionInfo, Tmux, assign_theme
from .workspace import find_town_root

logger = get_logger(__name__)

STARTUP_INSTRUCTIONS = "Run `gt prime` and check mail for review requests."


def session_name(rig_name: str, role: str = config.ROLE) -> str:
    """tmux session name for a rig's agent: gt-{rig}-{role}."""
    return f"gt-{rig_name}-{role}"


def parse_env_overrides(overrides: list[str] | None) -> list[tuple[str, str]]:
    """Split KEY=VALUE entries on the first "=". Entries without one are skipped."""
    pairs = []
    for entry in overrides or []:
        key, sep, value = entry.partition("=")
        if not sep:
            logger.debug("Ignoring malformed env override %r", entry)
            continue
        pairs.append((key, value))
    return pairs


@dataclass
class StartReport:
    """Outcome of a successful start. warnings lists the best-effort steps that failed."""

    session: str
    town_root: Path
    recovered_zombie: bool = False
    warnings: list[str] = field(default_factory=list)


class ArchitectManager:
    """Lifecycle manager for one rig's architect."""

    role = config.ROLE

    def __init__(
        self,
        rig: Rig,
        tmux: Tmux | None = None,
        beads: Beads | None = None,
        start_timeout: float | None = None,
        settle_delay: float | None = None,
    ):
        self.rig = rig
        self.tmux = tmux if tmux is not None else Tmux()
        self._beads = beads
        self.start_timeout = config.start_timeout() if start_timeout is None else start_timeout
        self.settle_delay = config.settle_delay() if settle_delay is None else settle_delay

    @property
    def session_name(self) -> str:
        return session_name(self.rig.name, self.role)

    def town_root(self) -> Path:
        """Town containing the rig, or the rig path itself if there is none."""
        try:
            root = find_town_root(self.rig.path)
        except OSError as e:
            logger.debug("Town root lookup from %s failed: %s", self.rig.path, e)
            root = None
        return root if root is not None else self.rig.path

    # --- Queries ---

    async def is_running(self) -> bool:
        """True if the session exists. Driver errors count as not running."""
        try:
            return await self.tmux.has_session(self.session_name)
        except TmuxError as e:
            logger.debug("Session %s: existence check failed: %s", self.session_name, e)
            return False

    async def state(self) -> SessionState:
        return await probe(self.tmux, self.session_name)

    async def status(self) -> SessionInfo:
        """Session metadata. Raises NotRunningError if there is no session."""
        try:
            running = await self.tmux.has_session(self.session_name)
        except TmuxError as e:
            raise SessionQueryError(f"checking session: {e}") from e
        if not running:
            raise NotRunningError()
        try:
            return await self.tmux.get_session_info(self.session_name)
        except TmuxError as e:
            raise SessionQueryError(f"reading session info: {e}") from e

    # --- Transitions ---

    async def start(self, agent_override: str | None = None, env_overrides: list[str] | None = None) -> StartReport:
        """Start the architect session.

        Raises AlreadyRunningError if healthy, ZombieCleanupError if a dead
        session can't be cleared, and ConfigResolutionError,
        SessionCreationError or StartupTimeoutError from the fatal steps.
        """
        name = self.session_name

        try:
            state = await self.state()
        except TmuxError as e:
            raise SessionQueryError(f"checking session: {e}") from e

        recovered = False
        if state is SessionState.HEALTHY:
            raise AlreadyRunningError()
        if state is SessionState.ZOMBIE:
            logger.info(f"Session {name}: agent dead, killing zombie session")
            try:
                await self.tmux.kill_session(name)
                recovered = True
            except NoSuchSessionError:
                logger.debug(f"Session {name}: zombie already gone")
            except TmuxError as e:
                raise ZombieCleanupError(f"killing zombie session: {e}") from e

        town_root = self.town_root()
        report = StartReport(session=name, town_root=town_root, recovered_zombie=recovered)
        work_dir = self.rig.path

        await self._best_effort(report, "ensuring agent bead", self._ensure_agent_bead, town_root)

        try:
            runtime_config = resolve_role_agent_config(self.role, town_root, self.rig.path, agent_override)
            ensure_settings_for_role(role_settings_dir(self.role, self.rig.path), work_dir, self.role, runtime_config)
        except (UnknownAgentError, OSError) as e:
            raise ConfigResolutionError(f"ensuring runtime settings: {e}") from e

        await self._best_effort(report, "updating .gitignore", self._ensure_gitignore, work_dir)

        prompt = build_startup_prompt(
            BeaconConfig(recipient=f"{self.rig.name}/{self.role}", sender="mayor", topic="review"),
            STARTUP_INSTRUCTIONS,
        )

        try:
            command = build_agent_startup_command(
                self.role, self.rig.name, town_root, self.rig.path, prompt, agent_override
            )
        except UnknownAgentError as e:
            raise ConfigResolutionError(f"building startup command: {e}") from e

        try:
            await self.tmux.new_session_with_command(name, str(work_dir), command)
        except TmuxError as e:
            raise SessionCreationError(f"creating tmux session: {e}") from e

        # Computed defaults first, CLI overrides last so they win
        env = list(agent_env(self.role, self.rig.name, town_root).items())
        env.extend(parse_env_overrides(env_overrides))
        for key, value in env:
            await self._best_effort(report, f"setting {key}", self.tmux.set_environment, name, key, value)

        theme = assign_theme(self.rig.name)
        await self._best_effort(
            report,
            "applying theme",
            self.tmux.configure_session,
            name,
            theme,
            self.rig.name,
            self.role,
            self.role,
        )

        try:
            await self.tmux.wait_for_command(name, config.SUPPORTED_SHELLS, self.start_timeout)
        except (TimeoutError, TmuxError) as e:
            await self._force_kill(name)
            raise StartupTimeoutError(f"waiting for architect to start: {e}") from e

        await self._best_effort(
            report, "accepting bypass permissions", self.tmux.accept_bypass_permissions_warning, name
        )
        await self._best_effort(report, "tracking session PID", track_session_pid, town_root, name, self.tmux)

        await asyncio.sleep(self.settle_delay)

        logger.info(f"Session {name}: architect started")
        return report

    async def stop(self) -> None:
        """Kill the session and its processes. Raises NotRunningError if absent."""
        name = self.session_name
        try:
            running = await self.tmux.has_session(name)
        except TmuxError as e:
            raise SessionQueryError(f"checking session: {e}") from e
        if not running:
            raise NotRunningError()
        try:
            await self.tmux.kill_session_with_processes(name)
        except TmuxError as e:
            raise SessionKillError(f"killing session {name}: {e}") from e
        logger.info(f"Session {name}: architect stopped")

    # --- Helpers ---

    async def _best_effort(
        self,
        report: StartReport,
        step: str,
        func: Callable[..., Awaitable[object] | object],
        *args: object,
    ) -> None:
        """Run a non-fatal step; log and record failures instead of raising."""
        try:
            result = func(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            message = f"{step}: {e}"
            logger.warning(f"Session {self.session_name}: {message}")
            report.warnings.append(message)

    async def _force_kill(self, name: str) -> None:
        try:
            await self.tmux.kill_session_with_processes(name)
        except TmuxError as e:
            logger.error(f"Session {name}: cleanup after failed start failed: {e}")

    def _beads_for(self, town_root: Path) -> Beads:
        if self._beads is None:
            self._beads = Beads(town_root)
        return self._beads

    def _ensure_agent_bead(self, town_root: Path) -> None:
        """Create the architect's bead if missing, so mail to {rig}/architect routes."""
        beads = self._beads_for(town_root)
        bead_id = agent_bead_id(resolve_prefix(town_root, self.rig.name), self.rig.name, self.role)
        try:
            beads.show(bead_id)
            return
        except BeadNotFoundError:
            pass
        beads.create_agent_bead(
            bead_id,
            f"Architect for {self.rig.name} - independent quality authority.",
            AgentFields(role_type=self.role, rig=self.rig.name, agent_state="idle"),
        )

    def _ensure_gitignore(self, work_dir: Path) -> None:
        added = ensure_gitignore_patterns(work_dir)
        if added:
            logger.debug("Added .gitignore patterns in %s: %s", work_dir, added)
