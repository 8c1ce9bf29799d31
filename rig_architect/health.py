"""Health probe — three-way liveness for a named session.

  ABSENT   no entry in tmux's session table
  ZOMBIE   session exists, agent process gone (pane back at its shell)
  HEALTHY  session exists and the agent is running

Computed from two fresh tmux queries on every call; never stored.
"""

from enum import Enum

from .tmux import Tmux


class SessionState(str, Enum):
    ABSENT = "absent"
    ZOMBIE = "zombie"
    HEALTHY = "healthy"


async def probe(tmux: Tmux, session_name: str) -> SessionState:
    """Report the session's state. Read-only; driver errors propagate."""
    if not await tmux.has_session(session_name):
        return SessionState.ABSENT
    if await tmux.is_agent_alive(session_name):
        return SessionState.HEALTHY
    return SessionState.ZOMBIE
