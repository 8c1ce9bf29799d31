"""Configuration helpers — safe to import from anywhere.

Settings files are read on demand and cached with an mtime check:

  {town_root}/settings/config.json   — town-wide defaults
  {rig_path}/settings/config.json    — per-rig overrides
"""

import json
import os
from pathlib import Path
from typing import Any

ROLE = "architect"

# Parent shells the agent runs under; a pane still showing one of these
# means the agent process has not taken over yet.
SUPPORTED_SHELLS = ("bash", "zsh", "sh", "fish", "tcsh", "ksh")

CLAUDE_START_TIMEOUT = 60.0  # seconds to wait for the agent process
SHUTDOWN_NOTIFY_DELAY = 0.5  # settle delay after startup
POLL_INTERVAL = 0.2  # wait_for_command poll period
KILL_GRACE_PERIOD = 3.0  # SIGTERM → SIGKILL escalation for the pane's process tree

DEFAULT_BEAD_PREFIX = "gt"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def start_timeout() -> float:
    """Seconds to wait for the agent process to appear (GT_START_TIMEOUT)."""
    return _env_float("GT_START_TIMEOUT", CLAUDE_START_TIMEOUT)


def settle_delay() -> float:
    """Post-startup settle delay in seconds (GT_SETTLE_DELAY)."""
    return _env_float("GT_SETTLE_DELAY", SHUTDOWN_NOTIFY_DELAY)


def tmux_socket() -> str | None:
    """Named tmux socket (GT_TMUX_SOCKET), or None for the default server."""
    return os.environ.get("GT_TMUX_SOCKET") or None


# Settings files, cached per path with an mtime check
_settings_cache: dict[Path, tuple[float, dict[str, Any]]] = {}

# Defaults if a settings file is missing or incomplete.
_TOWN_SETTINGS_DEFAULTS: dict[str, Any] = {
    "default_agent": "claude",
    "role_agents": {},
    "agents": {},
}

_RIG_SETTINGS_DEFAULTS: dict[str, Any] = {
    "agent": None,
    "role_agents": {},
}


def _load_settings(config_file: Path, defaults: dict[str, Any]) -> dict[str, Any]:
    try:
        mtime = config_file.stat().st_mtime
    except OSError:
        mtime = 0.0
    cached = _settings_cache.get(config_file)
    if cached is not None and cached[0] == mtime:
        return cached[1]

    settings = dict(defaults)
    if config_file.exists():
        try:
            loaded = json.loads(config_file.read_text())
            if isinstance(loaded, dict):
                settings.update(loaded)
        except (OSError, json.JSONDecodeError):
            pass
    _settings_cache[config_file] = (mtime, settings)
    return settings


def load_town_settings(town_root: Path) -> dict[str, Any]:
    """Load town settings, with mtime caching and defaults."""
    return _load_settings(town_root / "settings" / "config.json", _TOWN_SETTINGS_DEFAULTS)


def load_rig_settings(rig_path: Path) -> dict[str, Any]:
    """Load rig settings, with mtime caching and defaults."""
    return _load_settings(rig_path / "settings" / "config.json", _RIG_SETTINGS_DEFAULTS)


def clear_settings_cache() -> None:
    _settings_cache.clear()
