"""Run commands over an existing paramiko SSH client with gobbled output."""

import logging
import socket
import time
from typing import Optional

import paramiko
from paramiko.ssh_exception import SSHException

from .exceptions import CommandExecutionFailedError, CommandTimeoutError, SSHConnectionError
from .gobbler import LineGobbler
from .process import CommandResult
from .stream import OutputCallback, bind_stream, default_printer

logger = logging.getLogger(__name__)

# How often run_remote_command() checks whether the remote command has exited
EXIT_POLL_INTERVAL = 0.1
# How long to wait for the gobblers once a timed-out channel was closed
CLOSE_DRAIN_TIMEOUT = 5.0


def run_remote_command(
    client: paramiko.SSHClient,
    command: str,
    output_callback: Optional[OutputCallback] = None,
    timeout: float = 60.0,
    verbose: bool = False,
    encoding: str = "utf-8",
) -> CommandResult:
    """
    Run a command on a connected client, draining stdout and stderr on two gobblers.
    The channel files are opened in binary mode: paramiko's text mode decodes
    strictly, so one invalid byte would end the drain. Here undecodable bytes
    become U+FFFD and the drain goes on.
    Args:
        client: Connected paramiko SSHClient; the caller owns its lifecycle.
        command: Command to execute remotely.
        output_callback: Optional `fn(line, stream)` called on the gobbler threads;
                        if not provided and `verbose=True`, a default printer is used.
        timeout: Maximum time in seconds to wait for the command to exit.
        verbose: If True and no callback is supplied, prints lines live to console.
        encoding: Encoding of the remote output (default: utf-8).
    Returns:
        CommandResult(stdout, stderr, exit_code)
    Raises:
        SSHConnectionError: If the client has no active transport
        CommandExecutionFailedError: If the command cannot be started
        CommandTimeoutError: If the command outlives `timeout`; its channel is closed first
    """
    transport = client.get_transport()
    if transport is None or not transport.is_active():
        raise SSHConnectionError("SSH transport is not active")

    effective_cb = output_callback if output_callback else (default_printer if verbose else None)

    logger.info(f"Running remote command: {command}")
    try:
        chan = transport.open_session()
        chan.exec_command(command)
        chan.shutdown_write()
    except (SSHException, socket.error) as e:
        logger.error(f"Remote exec failed: {e}")
        raise CommandExecutionFailedError(f"Remote command execution failed: {e}") from e

    out_lines: list[str] = []
    err_lines: list[str] = []
    gobblers = (
        LineGobbler(chan.makefile("rb"), out_lines, bind_stream(effective_cb, "stdout"),
                    encoding=encoding, name=f"ssh-{chan.get_id()}-stdout"),
        LineGobbler(chan.makefile_stderr("rb"), err_lines, bind_stream(effective_cb, "stderr"),
                    encoding=encoding, name=f"ssh-{chan.get_id()}-stderr"),
    )
    for gobbler in gobblers:
        gobbler.start()

    try:
        deadline = time.monotonic() + timeout
        while not chan.exit_status_ready():
            if time.monotonic() > deadline:
                logger.error(f"Remote command exceeded timeout of {timeout} seconds")
                # a closed channel reads as end-of-stream on both files
                chan.close()
                for gobbler in gobblers:
                    if not gobbler.join(CLOSE_DRAIN_TIMEOUT):
                        logger.warning(f"{gobbler.name} still draining after channel close")
                raise CommandTimeoutError(f"Exceeded timeout of {timeout} seconds: {command}")
            time.sleep(EXIT_POLL_INTERVAL)

        exit_code = chan.recv_exit_status()
        # the exit status can arrive before the last output packets
        for gobbler in gobblers:
            gobbler.join(max(0.0, deadline - time.monotonic()) + CLOSE_DRAIN_TIMEOUT)
    finally:
        chan.close()

    logger.info(f"Remote command exited with code {exit_code}")
    return CommandResult(stdout=out_lines, stderr=err_lines, exit_code=exit_code)
