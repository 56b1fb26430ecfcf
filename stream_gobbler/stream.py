import codecs
import io
import locale
import re
from collections import deque
from typing import Callable, Literal, Optional, Protocol, Union

StreamName = Literal["stdout", "stderr"]
OutputCallback = Callable[[str, StreamName], None]

_TERMINATORS = ("\r\n", "\n", "\r")
_LINE = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+")


class TextLineSource(Protocol):
    def readline(self) -> str: ...

    def close(self) -> None: ...


def default_printer(line: str, stream: StreamName) -> None:
    # Keep it minimal, callers can override
    print(f"[{stream}] {line}")


def bind_stream(cb: Optional[OutputCallback], stream: StreamName) -> Optional[Callable[[str], None]]:
    """Turn a `fn(line, stream)` callback into a per-line callback for one stream."""
    if cb is None:
        return None
    return lambda line: cb(line, stream)


def strip_line_terminator(line: str) -> str:
    """Remove a single trailing line terminator, if any."""
    for terminator in _TERMINATORS:
        if line.endswith(terminator):
            return line[: -len(terminator)]
    return line


class LineDecoder:
    """
    Adapts any object with a ``readline()`` method to text lines.
    Byte lines are decoded incrementally so a multi-byte sequence left over at
    end-of-stream is still returned; str lines are used as they come.
    Such objects (e.g. paramiko's ChannelFile) only split on ``\\n``, so a lone
    ``\\r`` inside a line is split here to match universal newlines.
    """
    def __init__(self, stream, encoding: Optional[str] = None, errors: str = "replace"):
        self._stream = stream
        self.encoding = encoding or locale.getpreferredencoding(False)
        self._decoder = codecs.getincrementaldecoder(self.encoding)(errors=errors)
        self._pending: deque[str] = deque()

    def readline(self) -> str:
        if not self._pending:
            self._pending.extend(_LINE.findall(self._read_text()))
        return self._pending.popleft() if self._pending else ""

    def _read_text(self) -> str:
        while True:
            raw: Union[bytes, str] = self._stream.readline()
            if isinstance(raw, str):
                return raw
            # an empty read is EOF: flush whatever the decoder still holds
            text = self._decoder.decode(raw, final=not raw)
            # "" means EOF to callers, so keep reading while bytes are pending
            if text or not raw:
                return text

    def close(self) -> None:
        self._stream.close()


def open_text(stream, encoding: Optional[str] = None, errors: str = "replace") -> TextLineSource:
    """Return a text line source reading from ``stream``.

    Args:
        stream: Text stream, binary io stream, or any object with ``readline()``
        encoding: Encoding for binary input (default: platform preferred encoding)
        errors: Decoding error handler for binary input (default: "replace")

    Returns:
        An object whose ``readline()`` yields str lines (terminator included,
        "" at end-of-stream) and whose ``close()`` closes ``stream``.
    """
    if isinstance(stream, io.TextIOBase):
        return stream
    if isinstance(stream, io.RawIOBase):
        stream = io.BufferedReader(stream)
    if isinstance(stream, io.BufferedIOBase):
        # newline=None maps \r\n and \r onto \n, like the universal newline mode of open()
        return io.TextIOWrapper(stream, encoding=encoding, errors=errors, newline=None)
    return LineDecoder(stream, encoding=encoding, errors=errors)
