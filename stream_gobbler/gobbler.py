"""Background line drain for process output streams."""

import codecs
import enum
import itertools
import logging
import threading
from typing import Callable, MutableSequence, Optional

from .stream import TextLineSource, open_text, strip_line_terminator

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

_ids = itertools.count(1)


class ExitReason(enum.Enum):
    """Why a read loop stopped. Logged only; callers always just see "stopped"."""
    END_OF_STREAM = "end of stream"
    EXTERNAL_CLOSE = "stream closed externally"
    FAULT = "fault"


class LineGobbler:
    """Drains a stream line by line on its own thread.

    A child process blocks once its stdout/stderr pipe buffer is full, so its
    output has to be read as fast as it is produced regardless of what the
    caller is doing. LineGobbler reads until end-of-stream and hands every line
    (terminator stripped) to the configured targets:
    - ``append_to``: each line is appended, in stream order
    - ``on_line``: each line is passed to the callback, after the append
    With no target the lines are read and discarded.

    The gobbler owns the stream: it closes it exactly once when the loop ends.
    There is no stop(). To end the drain early, end the producer: close the
    pipe's write end, kill the process, or ``shutdown()`` the socket. Closing
    a buffered stream (``Popen.stdout``, ``os.fdopen(fd, "rb")``) from another
    thread does not interrupt a blocked read in CPython: close() waits for the
    read to return. Read faults, including reads on a stream someone else
    closed, end the loop quietly and never reach the caller.
    """

    def __init__(
        self,
        stream,
        append_to: Optional[MutableSequence[str]] = None,
        on_line: Optional[LineCallback] = None,
        *,
        encoding: Optional[str] = None,
        errors: str = "replace",
        name: Optional[str] = None,
    ) -> None:
        """Bind a gobbler to a stream.

        Args:
            stream: Binary or text stream to drain (e.g. ``Popen.stdout``)
            append_to: Sequence receiving every line. list.append is atomic, but
                the sequence should only be read once the gobbler has finished
            on_line: Callback invoked with every line on the gobbler thread.
                It must return promptly: while it runs nobody drains the pipe
            encoding: Encoding for binary streams (default: platform preferred)
            errors: Decoding error handler for binary streams (default: "replace")
            name: Thread name (default: "gobbler-<n>")

        Raises:
            LookupError: If ``encoding`` is not a known codec
        """
        if encoding is not None:
            codecs.lookup(encoding)
        self._stream = stream
        self._append_to = append_to
        self._on_line = on_line
        self._encoding = encoding
        self._errors = errors
        self._source: Optional[TextLineSource] = None
        self._exit_reason: Optional[ExitReason] = None
        self._started = False
        self._start_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run, name=name or f"gobbler-{next(_ids)}", daemon=True
        )

    @property
    def name(self) -> str:
        return self._thread.name

    @property
    def lines(self) -> Optional[MutableSequence[str]]:
        """The ``append_to`` sequence, if one was given."""
        return self._append_to

    def start(self) -> None:
        """Start draining in the background and return immediately."""
        with self._start_lock:
            if self._started:
                logger.warning(f"{self.name} already started; a gobbler cannot be restarted")
                return
            self._started = True
        self._thread.start()
        logger.debug(f"{self.name} started")

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the read loop to finish.

        Returns:
            True if the gobbler has terminated, False on timeout or if it was
            never started
        """
        if not self._started:
            return False
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        delivered = 0
        try:
            for line in self._read_lines():
                if self._append_to is not None:
                    self._append_to.append(line)
                if self._on_line is not None:
                    self._on_line(line)
                delivered += 1
        except Exception:
            # Raised by a target, not by the stream: stop, but let it surface
            # through threading.excepthook instead of hiding it.
            self._exit_reason = ExitReason.FAULT
            logger.exception(f"{self.name}: line target failed after {delivered} lines")
            raise
        finally:
            self._close()
            reason = self._exit_reason or ExitReason.FAULT
            logger.debug(f"{self.name} stopped after {delivered} lines ({reason.value})")

    def _read_lines(self):
        try:
            self._source = open_text(self._stream, encoding=self._encoding, errors=self._errors)
            while True:
                line = self._source.readline()
                if not line:
                    self._exit_reason = ExitReason.END_OF_STREAM
                    return
                yield strip_line_terminator(line)
        except (OSError, ValueError) as e:
            # Reading a stream someone else closed is the normal way to stop us
            if getattr(self._stream, "closed", False):
                self._exit_reason = ExitReason.EXTERNAL_CLOSE
            else:
                self._exit_reason = ExitReason.FAULT
            logger.debug(f"{self.name}: read ended by {e.__class__.__name__}: {e}")

    def _close(self) -> None:
        source = self._source if self._source is not None else self._stream
        try:
            source.close()
        except Exception as e:
            logger.debug(f"{self.name}: ignoring error while closing stream: {e}")

    def __repr__(self) -> str:
        if not self._started:
            status = "new"
        elif self.is_alive():
            status = "running"
        else:
            status = "terminated"
        return f"LineGobbler({self.name}, {status})"
