"""Background line drains for process output streams."""

from .gobbler import LineGobbler
from .process import CommandResult, run_command
from .remote import run_remote_command
from .stream import StreamName, default_printer
from .exceptions import (
    GobblerError,
    CommandExecutionFailedError,
    CommandTimeoutError,
    SSHConnectionError
)

__all__ = [
    "LineGobbler",
    "CommandResult",
    "run_command",
    "run_remote_command",
    "StreamName",
    "default_printer",
    "GobblerError",
    "CommandExecutionFailedError",
    "CommandTimeoutError",
    "SSHConnectionError"
]
__version__ = "0.1.0"
