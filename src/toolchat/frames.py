"""Line framing for the chat service's event stream.

The service answers with newline-delimited text. Protocol lines carry a
``data: `` prefix followed by a JSON envelope; a body of ``[DONE]`` ends
the frame sequence. Anything else on the wire is ignored.
"""

import codecs
import logging

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class FrameBuffer:
    """Turns arbitrarily split chunks into complete frame bodies."""

    def __init__(self, prefix: str = DATA_PREFIX):
        self.prefix = prefix
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume a chunk and return the bodies of all lines it completes.

        The trailing partial line, if any, is held back until the next feed.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        lines = (self._pending + chunk).split("\n")
        self._pending = lines.pop()

        bodies = []
        for line in lines:
            body = self._extract(line)
            if body is not None:
                bodies.append(body)
        return bodies

    def flush(self) -> str | None:
        """Return the body of a buffered final line, if it is a frame."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not tail.strip():
            return None

        body = self._extract(tail)
        if body is None:
            logger.debug("Discarding trailing non-frame data: %r", tail[:80])
        return body

    def _extract(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.strip() or not line.startswith(self.prefix):
            return None
        return line[len(self.prefix):]


def is_done(body: str) -> bool:
    """Return True if a frame body is the end-of-stream sentinel."""
    return body.strip() == DONE_SENTINEL
