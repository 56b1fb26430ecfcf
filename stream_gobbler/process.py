"""Run local commands with their output drained by LineGobblers."""

import codecs
import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

from .exceptions import CommandExecutionFailedError, CommandTimeoutError
from .gobbler import LineGobbler
from .stream import OutputCallback, bind_stream, default_printer

logger = logging.getLogger(__name__)

# How long to wait for the gobblers once a timed-out process group was killed
KILL_DRAIN_TIMEOUT = 5.0


@dataclass
class CommandResult:
    stdout: list[str]
    stderr: list[str]
    exit_code: int

    @property
    def output(self) -> str:
        return "\n".join(self.stdout)


def _kill(proc: subprocess.Popen) -> None:
    # Kill the whole session so grandchildren holding the pipes go too
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()


def _abort(proc: subprocess.Popen, gobblers) -> None:
    _kill(proc)
    proc.wait()
    for gobbler in gobblers:
        if not gobbler.join(KILL_DRAIN_TIMEOUT):
            logger.warning(f"{gobbler.name} still draining after kill")


def run_command(
    command: Union[str, Sequence[str]],
    output_callback: Optional[OutputCallback] = None,
    timeout: Optional[float] = None,
    verbose: bool = False,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    encoding: Optional[str] = None,
) -> CommandResult:
    """
    Run a command, draining stdout and stderr on two gobblers.
    Args:
        command: Shell command string, or argument list executed directly.
        output_callback: Optional `fn(line, stream)` called on the gobbler threads;
                        if not provided and `verbose=True`, a default printer is used.
        timeout: Seconds to wait for the process to exit and its output to
                 close (default: no limit, so a background child that keeps
                 the pipes open keeps this call waiting too).
        verbose: If True and no callback is supplied, prints lines live to console.
        cwd: Working directory for the process.
        env: Environment for the process (default: inherited).
        encoding: Output encoding (default: platform preferred encoding).
    Returns:
        CommandResult(stdout, stderr, exit_code) with the lines of each stream
    Raises:
        CommandExecutionFailedError: If the process cannot be started
        CommandTimeoutError: If the process or a child still holding its output
                             outlives `timeout`; the whole session is killed first
    """
    if encoding is not None:
        codecs.lookup(encoding)
    effective_cb = output_callback if output_callback else (default_printer if verbose else None)

    logger.info(f"Running command: {command}")
    try:
        proc = subprocess.Popen(
            command,
            shell=isinstance(command, str),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=(os.name == "posix"),
        )
    except OSError as e:
        logger.error(f"Failed to start command: {e}")
        raise CommandExecutionFailedError(f"Failed to start command: {e}") from e

    stdout: list[str] = []
    stderr: list[str] = []
    gobblers = (
        LineGobbler(proc.stdout, stdout, bind_stream(effective_cb, "stdout"),
                    encoding=encoding, name=f"gobbler-{proc.pid}-stdout"),
        LineGobbler(proc.stderr, stderr, bind_stream(effective_cb, "stderr"),
                    encoding=encoding, name=f"gobbler-{proc.pid}-stderr"),
    )
    for gobbler in gobblers:
        gobbler.start()

    deadline = None if timeout is None else time.monotonic() + timeout
    try:
        exit_code = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error(f"Command exceeded timeout of {timeout} seconds, killing pid {proc.pid}")
        _abort(proc, gobblers)
        raise CommandTimeoutError(f"Exceeded timeout of {timeout} seconds: {command}") from None

    # The lists are only complete once both streams hit end-of-stream.
    # A background grandchild can keep a pipe open after the shell exits.
    for gobbler in gobblers:
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        if not gobbler.join(remaining):
            logger.error(f"{gobbler.name} still open {timeout} seconds after start, killing the session")
            _abort(proc, gobblers)
            raise CommandTimeoutError(f"Output still open after timeout of {timeout} seconds: {command}")

    logger.info(f"Command exited with code {exit_code}")
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code)
