"""Newline-delimited JSON-RPC framing for stdio transports.

The server writes one JSON value per ``\\n``-terminated line, but the pipe
delivers arbitrary chunks: a message may arrive split across reads (even
inside a multi-byte character) and one read may carry several messages.
FrameReader keeps the unterminated tail between reads and hands back only
complete, validated envelopes.
"""

import asyncio
import codecs
from collections.abc import AsyncIterator

from pydantic import ValidationError

from lens_core.errors import FrameParseError, create_error
from lens_core.logging import ServerLogger

from .protocol import Frame, JSONRPCBuilder

DEFAULT_CHUNK_SIZE = 65536


class FrameReader:
    """Reassemble JSON-RPC messages from chunked stdout data.

    One reader per connection. Malformed lines are logged, counted and
    dropped; they never affect the messages around them.
    """

    def __init__(self, logger: ServerLogger | None = None, server_name: str | None = None):
        """Initialize frame reader.

        Args:
            logger: Optional per-server logger for discarded lines
            server_name: Server name attached to FRAME_INVALID errors
        """
        self._logger = logger
        self._server_name = server_name or (logger.server_name if logger else None)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.discarded = 0
        self.last_error: FrameParseError | None = None

    @property
    def pending_fragment(self) -> str:
        """Unterminated text carried over to the next feed()."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Append a chunk and return every message it completes, in order.

        Args:
            chunk: Raw bytes from the pipe, or already decoded text

        Returns:
            Complete messages (possibly empty)
        """
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if "\n" not in text:
            self._buffer += text
            return []

        *lines, self._buffer = (self._buffer + text).split("\n")

        messages: list[Frame] = []
        for line in lines:
            message = self._parse_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def flush(self) -> str:
        """Drain the decoder and return (and clear) any unterminated fragment."""
        fragment = self._buffer + self._decoder.decode(b"", final=True)
        self.reset()
        return fragment

    def reset(self) -> None:
        """Drop buffered state."""
        self._buffer = ""
        self._decoder.reset()

    def _parse_line(self, line: str) -> Frame | None:
        line = line.removesuffix("\r")
        if not line.strip():
            return None

        try:
            return JSONRPCBuilder.parse(line)
        except ValidationError as e:
            reason = e.errors()[0]["msg"] if e.errors() else str(e)
            self._discard(line, reason)
            return None
        except ValueError as e:
            self._discard(line, str(e))
            return None

    def discard_fragment(self, reason: str = "unterminated message at end of stream") -> bool:
        """Flush the reader and count a non-blank leftover fragment as discarded.

        Returns:
            True if a fragment was discarded
        """
        fragment = self.flush()
        if not fragment.strip():
            return False
        self._discard(fragment, reason)
        return True

    def _discard(self, line: str, reason: str) -> None:
        self.discarded += 1
        self.last_error = create_error(
            "FRAME_INVALID",
            server_name=self._server_name,
            detail=reason,
        )
        if self._logger:
            self._logger.frame_discarded(line, reason)


async def iter_frames(
    stream: asyncio.StreamReader,
    reader: FrameReader,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[Frame]:
    """Yield messages read from a stream until EOF.

    Args:
        stream: Child process stdout
        reader: The connection's FrameReader
        chunk_size: Maximum bytes per read

    Yields:
        Complete messages in arrival order
    """
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        for message in reader.feed(chunk):
            yield message

    reader.discard_fragment()
