"""Agent identity records ("beads") for mail routing.

Storage:
  {town_root}/.beads/agents.json — bead_id → {id, description, type,
                                    role_type, rig, agent_state, created}

A bead makes an agent addressable (e.g. "copperhead/architect") whether or
not its session is running. Records are created once and never touched by
lifecycle operations afterwards.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import DEFAULT_BEAD_PREFIX
from .errors import BeadExistsError, BeadNotFoundError
from .logging_config import get_logger
from .rig import get_rig_info

logger = get_logger(__name__)


@dataclass
class AgentFields:
    """Role-specific fields stored on an agent bead."""

    role_type: str
    rig: str
    agent_state: str = "idle"


def agent_bead_id(prefix: str, rig: str, role: str, name: str = "") -> str:
    """Bead ID for an agent: {prefix}-{rig}-{role}[-{name}]."""
    parts = [prefix, rig, role]
    if name:
        parts.append(name)
    return "-".join(parts)


def get_prefix_for_rig(town_root: Path, rig_name: str) -> str:
    """Bead prefix configured for a rig, or "" if none is set."""
    info = get_rig_info(town_root, rig_name) or {}
    prefix = info.get("prefix") or ""
    return str(prefix).rstrip("-")


def resolve_prefix(town_root: Path, rig_name: str) -> str:
    return get_prefix_for_rig(town_root, rig_name) or DEFAULT_BEAD_PREFIX


class Beads:
    """JSON-file bead store rooted at a town."""

    def __init__(self, town_root: Path):
        self.town_root = town_root
        self.beads_dir = town_root / ".beads"
        self.agents_file = self.beads_dir / "agents.json"

    def _load(self) -> dict[str, Any]:
        if not self.agents_file.exists():
            return {}
        try:
            return json.loads(self.agents_file.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.debug("Failed to load bead store %s: %s", self.agents_file, e)
            return {}

    def _save(self, beads: dict[str, Any]) -> None:
        """Atomic write: tmp file + rename."""
        self.beads_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.agents_file.with_suffix(".tmp")
        tmp.write_text(json.dumps(beads, indent=2) + "\n")
        tmp.rename(self.agents_file)

    def show(self, bead_id: str) -> dict[str, Any]:
        """Return a bead record. Raises BeadNotFoundError."""
        record = self._load().get(bead_id)
        if record is None:
            raise BeadNotFoundError(f"bead '{bead_id}' not found")
        return record

    def create_agent_bead(self, bead_id: str, description: str, fields: AgentFields) -> dict[str, Any]:
        """Create an agent bead. Raises BeadExistsError if the ID is taken."""
        beads = self._load()
        if bead_id in beads:
            raise BeadExistsError(f"bead '{bead_id}' already exists")
        record = {
            "id": bead_id,
            "description": description,
            "type": "agent",
            **asdict(fields),
            "created": datetime.now().isoformat(),
        }
        beads[bead_id] = record
        self._save(beads)
        logger.info(f"Created agent bead {bead_id}")
        return record
