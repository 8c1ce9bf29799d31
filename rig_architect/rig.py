"""Rig registry and workspace hygiene.

Registry layout:
  {town_root}/rigs.json — {"rigs": {name: {path, prefix, status}}}

path may be relative to the town root and defaults to {town_root}/{name}.
status is "active" (default), "parked" or "docked"; parked and docked rigs
refuse new agent sessions.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import RigNotFoundError, RigUnavailableError

RIGS_FILE = "rigs.json"

UNAVAILABLE_STATUSES = frozenset({"parked", "docked"})

# Patterns every rig root must ignore so agent runtime files stay out of git
GITIGNORE_PATTERNS = (
    ".runtime/",
    ".claude/",
    ".logs/",
    "architect/",
)


@dataclass(frozen=True)
class Rig:
    """A logical workspace: a name and its root directory."""

    name: str
    path: Path


def load_rigs(town_root: Path) -> dict[str, Any]:
    """Load the rig entries from rigs.json ({} if missing or unreadable)."""
    rigs_file = town_root / RIGS_FILE
    if not rigs_file.exists():
        return {}
    try:
        data = json.loads(rigs_file.read_text())
    except (json.JSONDecodeError, OSError):
        return {}
    rigs = data.get("rigs", {}) if isinstance(data, dict) else {}
    return rigs if isinstance(rigs, dict) else {}


def get_rig_info(town_root: Path, name: str) -> dict[str, Any] | None:
    """Get the raw registry entry for a rig, or None if not registered."""
    info = load_rigs(town_root).get(name)
    if info is None:
        return None
    return info if isinstance(info, dict) else {}


def load_rig(town_root: Path, name: str) -> Rig:
    """Resolve a registered rig name to a Rig."""
    info = get_rig_info(town_root, name)
    if info is None:
        raise RigNotFoundError(f"rig '{name}' not found in {town_root / RIGS_FILE}")
    raw_path = info.get("path")
    path = Path(raw_path).expanduser() if raw_path else Path(name)
    if not path.is_absolute():
        path = town_root / path
    return Rig(name=name, path=path.resolve())


def check_rig_available(town_root: Path, name: str) -> None:
    """Raise RigUnavailableError if the rig is parked or docked."""
    info = get_rig_info(town_root, name) or {}
    status = info.get("status", "active")
    if status in UNAVAILABLE_STATUSES:
        raise RigUnavailableError(f"rig '{name}' is {status}; unpark it before starting agents")


def infer_rig_from_cwd(town_root: Path, cwd: Path | None = None) -> str:
    """Name of the registered rig that contains cwd."""
    if cwd is None:
        cwd = Path.cwd()
    cwd = cwd.resolve()
    town_root = town_root.resolve()

    for name in load_rigs(town_root):
        rig_path = load_rig(town_root, name).path
        if cwd == rig_path or rig_path in cwd.parents:
            return name

    raise RigNotFoundError(f"{cwd} is not inside a registered rig")


def ensure_gitignore_patterns(work_dir: Path) -> list[str]:
    """Append any missing patterns to work_dir/.gitignore. Returns what was added."""
    gitignore = work_dir / ".gitignore"
    existing = gitignore.read_text() if gitignore.exists() else ""
    present = {line.strip() for line in existing.splitlines()}
    missing = [p for p in GITIGNORE_PATTERNS if p not in present]
    if not missing:
        return []

    lines = []
    if existing and not existing.endswith("\n"):
        lines.append("")
    lines.append("# Gas Town agent runtime")
    lines.extend(missing)
    with gitignore.open("a") as f:
        f.write("\n".join(lines) + "\n")
    return missing
