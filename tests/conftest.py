"""Shared pytest fixtures for stream_gobbler tests."""

import threading

import pytest
from unittest.mock import Mock

import paramiko.file


class FakeChannelFile:
    """Stand-in for paramiko's ChannelFile: readline() returns raw lines, empty at EOF."""

    def __init__(self, data):
        self._lines = data.splitlines(keepends=True)
        self._empty = data[:0]
        self.closed = False
        self.close_calls = 0

    def readline(self):
        if self.closed:
            raise OSError("File is closed")
        return self._lines.pop(0) if self._lines else self._empty

    def close(self):
        self.close_calls += 1
        self.closed = True

class BlockingStream:
    """Serves its lines, then blocks in readline() until someone closes it.

    A read interrupted by close() raises ValueError, like reading a closed file.
    """

    def __init__(self, lines=(), fail_on_double_close=False):
        self._lines = list(lines)
        self._closed = threading.Event()
        self.reading = threading.Event()
        self.fail_on_double_close = fail_on_double_close
        self.close_calls = 0

    @property
    def closed(self):
        return self._closed.is_set()

    def readline(self):
        if self._lines:
            return self._lines.pop(0)
        self.reading.set()
        self._closed.wait()
        raise ValueError("I/O operation on closed file")

    def close(self):
        self.close_calls += 1
        if self.closed and self.fail_on_double_close:
            raise ValueError("already closed")
        self._closed.set()


class BytesChannelFile(paramiko.file.BufferedFile):
    """A real paramiko BufferedFile serving fixed bytes, like a ChannelFile at end of data."""

    def __init__(self, data, mode="rb"):
        super().__init__()
        self._data = data
        self._set_mode(mode)

    def _read(self, size):
        chunk, self._data = self._data[:size], self._data[size:]
        return chunk


@pytest.fixture
def thread_errors(monkeypatch):
    """Collect exceptions that escape any thread during the test."""
    errors = []
    monkeypatch.setattr(threading, "excepthook", lambda args: errors.append(args.exc_value))
    return errors


@pytest.fixture
def ssh_client():
    """Wire up a client, transport and channel for a command that already exited with 0."""
    mock_client = Mock()
    mock_transport = Mock()
    mock_channel = Mock()

    mock_client.get_transport.return_value = mock_transport
    mock_transport.is_active.return_value = True
    mock_transport.open_session.return_value = mock_channel

    mock_channel.get_id.return_value = 7
    mock_channel.exit_status_ready.return_value = True
    mock_channel.recv_exit_status.return_value = 0
    mock_channel.makefile.return_value = BytesChannelFile(b"")
    mock_channel.makefile_stderr.return_value = BytesChannelFile(b"")

    return {
        'client': mock_client,
        'transport': mock_transport,
        'channel': mock_channel
    }
