"""Town-root discovery.

A town is a directory containing mayor/town.json. Rigs live below it, so
the town root of any rig path is found by walking up. GT_TOWN_ROOT, when
set, short-circuits the walk.
"""

import os
from pathlib import Path

from .errors import WorkspaceNotFoundError

TOWN_MARKER = Path("mayor") / "town.json"


def is_town_root(path: Path) -> bool:
    return (path / TOWN_MARKER).is_file()


def find_town_root(start: Path) -> Path | None:
    """Walk up from start looking for a town. Returns None if there isn't one."""
    env_root = os.environ.get("GT_TOWN_ROOT")
    if env_root:
        candidate = Path(env_root).expanduser().resolve()
        if is_town_root(candidate):
            return candidate

    current = start.expanduser().resolve()
    for path in (current, *current.parents):
        if is_town_root(path):
            return path
    return None


def find_town_root_or_error(start: Path | None = None) -> Path:
    """Like find_town_root(), defaulting to cwd and raising when not found."""
    if start is None:
        start = Path.cwd()
    root = find_town_root(start)
    if root is None:
        raise WorkspaceNotFoundError(f"no town found at or above {start} (looking for {TOWN_MARKER})")
    return root
