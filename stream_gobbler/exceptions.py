"""Custom exceptions for stream_gobbler package.

LineGobbler itself never raises these: read and close faults are contained
inside the drain thread. They are raised by the command runners built on it.
"""


class GobblerError(Exception):
    """Base exception for stream_gobbler errors."""
    pass


class CommandExecutionFailedError(GobblerError):
    """Raised when a command cannot be spawned or its streams cannot be drained."""
    pass


class CommandTimeoutError(GobblerError):
    """Raised when a command does not exit, or its output does not close, within its timeout."""
    pass


class SSHConnectionError(GobblerError):
    """Raised when a remote command is run on a client without an active transport."""
    pass
