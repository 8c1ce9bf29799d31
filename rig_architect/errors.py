"""Exception taxonomy for architect lifecycle operations.

AlreadyRunningError and NotRunningError are informational: callers report
them to the user without failing. Everything else under ArchitectError is a
real failure. TmuxError covers raw driver failures and lives under
RuntimeError like the other subprocess errors in this package.
"""


class ArchitectError(Exception):
    """Base class for lifecycle errors."""

    informational = False


class AlreadyRunningError(ArchitectError):
    """start() called while the agent is healthy."""

    informational = True

    def __init__(self, message: str = "architect already running"):
        super().__init__(message)


class NotRunningError(ArchitectError):
    """stop()/status() called while no session exists."""

    informational = True

    def __init__(self, message: str = "architect not running"):
        super().__init__(message)


class ConfigResolutionError(ArchitectError):
    """Settings or launch command could not be resolved. No session was created."""


class SessionCreationError(ArchitectError):
    """The multiplexer refused to create the session."""


class StartupTimeoutError(ArchitectError):
    """The agent process never appeared. The partial session has been killed."""


class ZombieCleanupError(ArchitectError):
    """A stale session could not be killed, so no new one was created."""


class SessionQueryError(ArchitectError):
    """The session table could not be queried."""


class SessionKillError(ArchitectError):
    """The session could not be killed."""


class RigNotFoundError(ArchitectError):
    pass


class RigUnavailableError(ArchitectError):
    """Rig is parked or docked."""


class WorkspaceNotFoundError(ArchitectError):
    pass


class UnknownAgentError(ArchitectError):
    pass


class BeadNotFoundError(ArchitectError):
    pass


class BeadExistsError(ArchitectError):
    pass


class LockHeldError(ArchitectError):
    """Another process is starting or stopping the same session."""


class TmuxError(RuntimeError):
    """A tmux command exited non-zero."""

    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str):
        self.cmd = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"tmux {' '.join(args[:1])} failed ({returncode}): {stderr}")


class NoSuchSessionError(TmuxError):
    """The target session (or the tmux server itself) does not exist."""


def is_informational(err: BaseException) -> bool:
    """True for errors that callers report as a status, not a failure."""
    return isinstance(err, ArchitectError) and err.informational
