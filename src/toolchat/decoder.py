"""Live decoding of the chat service's event stream.

Each frame body is a JSON envelope ``{"error"?: str, "message": str}``
whose ``message`` is itself JSON of the form ``{"type": ..., "content": ...}``.
The decoder folds those events into the in-flight assistant turn, which is
always the last entry of the turn list it was given.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterable, Optional

from .core import StreamEvent, Turn
from .encoder import ToolBlock, call_names
from .frames import FrameBuffer, is_done
from .session import TranscriptSession

logger = logging.getLogger(__name__)


class DecoderState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


class StreamListener:
    """Receives out-of-band notifications from a decoder.

    Subclass and override what you need; every hook defaults to a no-op.
    """

    def on_update(self, turn: Turn) -> None:
        pass

    def on_chat_info(self, chat_id: str, content: dict) -> None:
        pass

    def on_message_info(self, user_message_id: str | None, assistant_message_id: str | None) -> None:
        pass


class LiveStreamDecoder:
    """Stateful consumer of one response stream."""

    def __init__(
        self,
        turns: list[Turn],
        session: Optional[TranscriptSession] = None,
        listener: Optional[StreamListener] = None,
    ):
        if not turns:
            raise ValueError("decoder needs an in-flight turn to write into")
        self.turns = turns
        self.session = session or TranscriptSession()
        self.listener = listener or StreamListener()
        self.state = DecoderState.IDLE
        self._buffer = FrameBuffer()
        self._text = ""
        self._block: Optional[ToolBlock] = None

    @property
    def turn(self) -> Turn:
        return self.turns[-1]

    @property
    def text(self) -> str:
        """Committed plain text, excluding any pending tool block."""
        return self._text

    @property
    def done(self) -> bool:
        return self.state in (DecoderState.COMPLETED, DecoderState.ABORTED, DecoderState.ERRORED)

    # ── Input ────────────────────────────────────────────────────────

    def feed(self, chunk: bytes | str) -> None:
        """Consume one raw chunk from the transport."""
        for body in self._buffer.feed(chunk):
            self.handle_frame(body)

    def finish(self) -> None:
        """Mark the end of the transport stream."""
        tail = self._buffer.flush()
        if tail is not None:
            self.handle_frame(tail)
        if not self.done:
            self._close_pending()
            self.state = DecoderState.COMPLETED

    def abort(self) -> None:
        """Stop decoding, keeping whatever text has accumulated."""
        if not self.done:
            self._close_pending()
            self.state = DecoderState.ABORTED

    def handle_frame(self, body: str) -> None:
        """Decode one frame body and dispatch its event."""
        if self.done:
            return
        self.state = DecoderState.STREAMING

        if is_done(body):
            self._close_pending()
            self.state = DecoderState.COMPLETED
            return

        try:
            envelope = json.loads(body)
            if not isinstance(envelope, dict):
                raise ValueError(f"envelope is {type(envelope).__name__}, not an object")

            if envelope.get("error"):
                self._fail(str(envelope["error"]))
                return

            message = envelope.get("message")
            if isinstance(message, str):
                message = json.loads(message)
            if not isinstance(message, dict):
                raise ValueError("envelope has no message object")
        except ValueError as e:
            logger.warning("Skipping malformed frame %r: %s", body[:120], e)
            return

        self.dispatch(StreamEvent(type=message.get("type", ""), content=message.get("content")))

    # ── Dispatch ─────────────────────────────────────────────────────

    def dispatch(self, event: StreamEvent) -> None:
        handler = getattr(self, f"_on_{event.type}", None)
        if handler is None:
            logger.debug("Ignoring stream event of type %r", event.type)
            return
        handler(event.content)
        self.listener.on_update(self.turn)

    def _on_text(self, content: Any) -> None:
        if content is None:
            return
        self._text += content if isinstance(content, str) else str(content)
        self._render()

    def _on_tool_calls(self, content: Any) -> None:
        if isinstance(content, dict):
            content = [content]
        if not isinstance(content, list) or not call_names(content):
            # the server announces calls before their names are resolved
            return

        if self._block is None:
            self._block = self.session.open_block()
        self._block.add_calls(content)
        self._render()

    def _on_tool_result(self, content: Any) -> None:
        if isinstance(content, dict):
            name = content.get("name") or ""
            result = content.get("result")
        else:
            name, result = "", content

        if self._block is None:
            self._block = self.session.open_block()
        self._block.add_result(result, name=name if isinstance(name, str) else "")

        if self._block.complete:
            self._text += self._block.render(closed=True)
            self._block = None
        self._render()

    def _on_chat_info(self, content: Any) -> None:
        if not isinstance(content, dict) or not content.get("id"):
            logger.warning("chat_info without an id: %r", content)
            return
        self.listener.on_chat_info(str(content["id"]), content)

    def _on_message_info(self, content: Any) -> None:
        if not isinstance(content, dict):
            return
        user_id = content.get("userMessageId")
        assistant_id = content.get("assistantMessageId")
        if user_id and len(self.turns) >= 2:
            self.turns[-2].id = str(user_id)
        if assistant_id:
            self.turns[-1].id = str(assistant_id)
        self.listener.on_message_info(user_id, assistant_id)

    def _on_error(self, content: Any) -> None:
        self._text += f"\n\nError: {content}"
        self.turn.is_error = True
        self._render()

    # ── Helpers ──────────────────────────────────────────────────────

    def _render(self) -> None:
        pending = self._block.render() if self._block is not None else ""
        self.turn.text = self._text + pending

    def _close_pending(self) -> None:
        if self._block is None:
            return
        logger.debug("Closing tool block %d with %d/%d results",
                     self._block.toolkey, len(self._block.results), self._block.expected)
        self._text += self._block.render(closed=True)
        self._block = None
        self._render()

    def _fail(self, message: str) -> None:
        self._block = None
        self.turns[-1] = Turn(
            id=self.session.next_turn_id(),
            text=f"Error: {message}",
            is_sent=False,
            timestamp=datetime.now(timezone.utc),
            is_error=True,
        )
        self.state = DecoderState.ERRORED
        self.listener.on_update(self.turn)


async def decode_stream(decoder: LiveStreamDecoder, chunks: AsyncIterable[bytes]) -> Turn:
    """Drive a decoder from an async chunk source until it ends.

    Cancellation of the awaiting task aborts the decoder and propagates.
    """
    try:
        async for chunk in chunks:
            decoder.feed(chunk)
            if decoder.done:
                break
    except asyncio.CancelledError:
        decoder.abort()
        raise
    decoder.finish()
    return decoder.turn
