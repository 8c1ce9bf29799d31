"""Startup composition — which agent runs, with what settings and env.

Agent resolution order for a role (first hit wins):
  1. explicit override (--agent)
  2. rig settings    role_agents[role]
  3. rig settings    agent
  4. town settings   role_agents[role]
  5. town settings   default_agent
  6. "claude"

Aliases map to presets below; town settings may add or replace presets
under "agents": {alias: {command, args, prompt_mode, env}}.
"""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from typing_extensions import Self

from . import config
from .errors import ConfigResolutionError, UnknownAgentError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_AGENT = "claude"
PROMPT_MODES = ("arg", "none")


@dataclass
class RuntimeConfig:
    """A resolved agent: how to launch it and what it needs on disk."""

    agent: str
    command: str
    args: list[str] = field(default_factory=list)
    prompt_mode: str = "arg"  # "arg": prompt is the last argv entry; "none": not passed
    env: dict[str, str] = field(default_factory=dict)
    settings_kind: str | None = None  # "claude" agents get a settings.json

    @classmethod
    def from_dict(cls, agent: str, data: dict[str, Any]) -> Self:
        """Create from a settings entry.

        Missing or null fields take their defaults; fields of the wrong type
        raise ConfigResolutionError.
        """
        command = data.get("command") or agent
        args = data.get("args") or []
        prompt_mode = data.get("prompt_mode") or "arg"
        env = data.get("env") or {}
        settings_kind = data.get("settings_kind")

        if not isinstance(command, str):
            raise ConfigResolutionError(f"agent '{agent}': command must be a string, got {command!r}")
        if not isinstance(args, list):
            raise ConfigResolutionError(f"agent '{agent}': args must be a list, got {args!r}")
        if prompt_mode not in PROMPT_MODES:
            raise ConfigResolutionError(
                f"agent '{agent}': prompt_mode must be one of {PROMPT_MODES}, got {prompt_mode!r}"
            )
        if not isinstance(env, dict):
            raise ConfigResolutionError(f"agent '{agent}': env must be a mapping, got {env!r}")
        if settings_kind is not None and not isinstance(settings_kind, str):
            raise ConfigResolutionError(f"agent '{agent}': settings_kind must be a string, got {settings_kind!r}")

        return cls(
            agent=agent,
            command=command,
            args=[str(a) for a in args],
            prompt_mode=prompt_mode,
            env={str(k): str(v) for k, v in env.items()},
            settings_kind=settings_kind,
        )


AGENT_PRESETS: dict[str, dict[str, Any]] = {
    "claude": {
        "command": "claude",
        "args": ["--dangerously-skip-permissions"],
        "settings_kind": "claude",
    },
    "codex": {"command": "codex", "args": ["--yolo"]},
    "gemini": {"command": "gemini", "args": ["--approval-mode", "yolo"]},
    "cursor": {"command": "cursor-agent", "args": ["-f"]},
    "auggie": {"command": "auggie", "args": ["--allow-indexing"]},
    "amp": {"command": "amp", "args": ["--dangerously-allow-all", "--no-ide"], "prompt_mode": "none"},
}


def available_agents(town_root: Path) -> dict[str, dict[str, Any]]:
    """Presets merged with town-defined agents."""
    agents = {alias: dict(preset) for alias, preset in AGENT_PRESETS.items()}
    custom = _mapping(config.load_town_settings(town_root), "agents", "town settings")
    for alias, entry in custom.items():
        if not isinstance(entry, dict):
            raise ConfigResolutionError(f"town settings: agents.{alias} must be a mapping, got {entry!r}")
        agents[alias] = {**agents.get(alias, {}), **entry}
    return agents


def _mapping(settings: dict[str, Any], key: str, source: str) -> dict[str, Any]:
    """settings[key] as a dict ({} when missing or null)."""
    value = settings.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigResolutionError(f"{source}: {key} must be a mapping, got {value!r}")
    return value


def lookup_agent(alias: str, town_root: Path) -> RuntimeConfig:
    agents = available_agents(town_root)
    if alias not in agents:
        known = ", ".join(sorted(agents))
        raise UnknownAgentError(f"unknown agent '{alias}' (known: {known})")
    return RuntimeConfig.from_dict(alias, agents[alias])


def resolve_agent_alias(role: str, town_root: Path, rig_path: Path) -> str:
    rig_settings = config.load_rig_settings(rig_path)
    town_settings = config.load_town_settings(town_root)
    for source, candidate in (
        ("rig settings role_agents", _mapping(rig_settings, "role_agents", "rig settings").get(role)),
        ("rig settings agent", rig_settings.get("agent")),
        ("town settings role_agents", _mapping(town_settings, "role_agents", "town settings").get(role)),
        ("town settings default_agent", town_settings.get("default_agent")),
    ):
        if not candidate:
            continue
        if not isinstance(candidate, str):
            raise ConfigResolutionError(f"{source}: agent alias must be a string, got {candidate!r}")
        return candidate
    return DEFAULT_AGENT


def resolve_role_agent_config(
    role: str, town_root: Path, rig_path: Path, agent_override: str | None = None
) -> RuntimeConfig:
    """Resolve the agent a role runs. Raises UnknownAgentError or ConfigResolutionError."""
    alias = agent_override or resolve_agent_alias(role, town_root, rig_path)
    return lookup_agent(alias, town_root)


def role_settings_dir(role: str, rig_path: Path) -> Path:
    """Where a role's runtime settings live inside the rig."""
    return rig_path / role


def claude_settings(role: str) -> dict[str, Any]:
    return {
        "permissions": {"defaultMode": "bypassPermissions"},
        "hooks": {
            "SessionStart": [
                {"matcher": "", "hooks": [{"type": "command", "command": "gt prime"}]},
            ],
        },
        "env": {"GT_ROLE": role},
    }


def settings_file(settings_dir: Path) -> Path:
    return settings_dir / ".claude" / "settings.json"


def ensure_settings_for_role(settings_dir: Path, work_dir: Path, role: str, runtime_config: RuntimeConfig) -> None:
    """Materialize the settings the agent expects. Existing files are kept.

    Raises FileNotFoundError if work_dir is missing, OSError on write failure.
    """
    if not work_dir.is_dir():
        raise FileNotFoundError(f"work directory {work_dir} does not exist")
    if runtime_config.settings_kind != "claude":
        return

    path = settings_file(settings_dir)
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(claude_settings(role), indent=2) + "\n")
    logger.info(f"Wrote {role} settings to {path}")


def agent_env(role: str, rig_name: str, town_root: Path) -> dict[str, str]:
    """Environment every agent session of this role gets."""
    actor = f"{rig_name}/{role}"
    return {
        "GT_ROLE": role,
        "GT_RIG": rig_name,
        "GT_TOWN_ROOT": str(town_root),
        "BD_ACTOR": actor,
        "BEADS_AGENT_NAME": actor,
        "GIT_AUTHOR_NAME": actor,
    }


def build_agent_startup_command(
    role: str,
    rig_name: str,
    town_root: Path,
    rig_path: Path,
    prompt: str,
    agent_override: str | None = None,
) -> str:
    """Full shell command for the session. Raises UnknownAgentError."""
    rc = resolve_role_agent_config(role, town_root, rig_path, agent_override)

    env = {**agent_env(role, rig_name, town_root), **rc.env}
    argv = [rc.command, *rc.args]
    if rc.settings_kind == "claude":
        argv.extend(["--settings", str(settings_file(role_settings_dir(role, rig_path)))])
    if prompt and rc.prompt_mode == "arg":
        argv.append(prompt)

    assignments = [f"{k}={shlex.quote(v)}" for k, v in env.items()]
    return " ".join(["exec", "env", *assignments, *(shlex.quote(a) for a in argv)])
