"""Async client for the chat-completion service.

:class:`Conversation` holds one chat's turns and streams new answers into
them through :class:`~toolchat.decoder.LiveStreamDecoder`. Only one stream
may be in flight per conversation.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

import httpx

from .config import get_api_url
from .core import Turn, row_from_dict
from .decoder import LiveStreamDecoder, StreamListener, decode_stream
from .reconstruct import reconstruct_turns
from .session import TranscriptSession

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=None)


class ChatBusyError(RuntimeError):
    """Raised when a conversation already has a stream in flight."""


class ChatClient:
    """Thin wrapper around the service's chat endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url or get_api_url()
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def stream(self, path: str, **kwargs):
        """Open a streaming POST request; use as an async context manager."""
        return self._http.stream("POST", path, **kwargs)

    async def load_chat(self, chat_id: str) -> dict:
        """Fetch a stored chat payload: ``{"chat": ..., "messages": [...]}``."""
        resp = await self._http.get(f"/api/chat/{chat_id}")
        resp.raise_for_status()
        data = resp.json()
        if not data.get("success"):
            raise httpx.HTTPError(f"Service refused to load chat {chat_id}")
        return data["data"]

    async def abort(self, chat_id: str) -> None:
        resp = await self._http.post(f"/api/chat/{chat_id}/abort")
        resp.raise_for_status()


class Conversation(StreamListener):
    """The turns of one chat plus its single-stream guard."""

    def __init__(
        self,
        client: ChatClient,
        chat_id: Optional[str] = None,
        on_update: Optional[Callable[[Turn], None]] = None,
    ):
        self.client = client
        self.chat_id = chat_id
        self.title: Optional[str] = None
        self.turns: list[Turn] = []
        self.is_streaming = False
        self._on_update = on_update
        self._session = TranscriptSession()

    # ── Stream listener hooks ────────────────────────────────────────

    def on_update(self, turn: Turn) -> None:
        if self._on_update is not None:
            self._on_update(turn)

    def on_chat_info(self, chat_id: str, content: dict) -> None:
        logger.info("Chat id assigned: %s", chat_id)
        self.chat_id = chat_id
        if content.get("title"):
            self.title = content["title"]

    # ── Operations ───────────────────────────────────────────────────

    async def load(self, chat_id: str) -> list[Turn]:
        """Replace the turns with the stored history of ``chat_id``."""
        self._guard()
        self.is_streaming = True
        try:
            data = await self.client.load_chat(chat_id)
        except httpx.HTTPError as e:
            logger.warning("Failed to load chat %s: %s", chat_id, e)
            return self.turns
        finally:
            self.is_streaming = False

        self.chat_id = chat_id
        self.title = (data.get("chat") or {}).get("title")
        self._session = TranscriptSession()
        rows = [row_from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)]
        self.turns = reconstruct_turns(rows, self._session)
        return self.turns

    async def send(self, message: str, files: Iterable[Path] = ()) -> Turn:
        """Send a user message and stream the answer into a new turn."""
        self._guard()
        files = [Path(f) for f in files]

        data = {}
        if message:
            data["message"] = message
        if self.chat_id:
            data["chatId"] = self.chat_id
        upload = [("files", (f.name, f.read_bytes())) for f in files]

        now = datetime.now(timezone.utc)
        self.turns.append(Turn(
            id=self._session.next_turn_id(), text=message, is_sent=True,
            timestamp=now, files=[f.name for f in files],
        ))
        self.turns.append(Turn(id=self._session.next_turn_id(), timestamp=now))
        return await self._post("/api/chat", data=data, files=upload or None)

    async def retry(self, message_id: str) -> Turn:
        """Regenerate from ``message_id``, reusing its turn for the new answer."""
        self._guard()
        self._require_chat("retry")
        index = self._index_of(message_id)
        turn = self.turns[index]
        turn.text = ""
        turn.is_error = False
        self.turns = [*self.turns[:index], turn]

        body = {
            "chatId": self.chat_id,
            "messageId": turn.id if turn.is_sent else message_id,
        }
        return await self._post("/api/chat/retry", json=body)

    async def edit(self, message_id: str, content: str) -> Turn:
        """Replace a user message and regenerate the answer that follows it."""
        self._guard()
        self._require_chat("edit")
        index = self._index_of(message_id)
        if index + 1 >= len(self.turns):
            raise ValueError(f"No answer follows message {message_id}")

        self.turns[index].text = content
        answer = self.turns[index + 1]
        answer.text = ""
        answer.is_error = False
        self.turns = [*self.turns[:index + 1], answer]

        data = {
            "chatId": self.chat_id,
            "messageId": answer.id if answer.is_sent else message_id,
            "content": content,
        }
        return await self._post("/api/chat/edit", data=data)

    async def abort(self) -> None:
        """Ask the service to stop the in-flight answer."""
        if not self.is_streaming or not self.chat_id:
            return
        try:
            await self.client.abort(self.chat_id)
        except httpx.HTTPError as e:
            logger.error("Failed to abort chat %s: %s", self.chat_id, e)

    # ── Private helpers ──────────────────────────────────────────────

    def _guard(self) -> None:
        if self.is_streaming:
            raise ChatBusyError(f"Chat {self.chat_id or '(new)'} is already streaming")

    def _require_chat(self, action: str) -> None:
        if not self.chat_id:
            raise ValueError(f"Cannot {action} before the chat has an id")

    def _index_of(self, message_id: str) -> int:
        for index, turn in enumerate(self.turns):
            if turn.id == message_id:
                return index
        raise KeyError(message_id)

    async def _post(self, path: str, **kwargs) -> Turn:
        self.is_streaming = True
        decoder = LiveStreamDecoder(self.turns, session=self._session, listener=self)
        try:
            async with self.client.stream(path, **kwargs) as resp:
                resp.raise_for_status()
                await decode_stream(decoder, resp.aiter_bytes())
        except httpx.HTTPError as e:
            logger.warning("Chat stream failed: %s", e)
            self._fail(e)
        except ValueError as e:
            logger.exception("Failed to decode chat stream")
            self._fail(e)
        finally:
            self.is_streaming = False
        return self.turns[-1]

    def _fail(self, error: Exception) -> None:
        self.turns[-1] = Turn(
            id=self._session.next_turn_id(),
            text=f"Error: {error}",
            timestamp=datetime.now(timezone.utc),
            is_error=True,
        )
        self.on_update(self.turns[-1])
