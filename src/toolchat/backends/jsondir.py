"""JSON directory chat store.

Reads a directory of ``<chat_id>.json`` files, each holding the payload the
chat service returns when a chat is loaded::

    {"chat": {"id": ..., "title": ..., "createdAt": ...},
     "messages": [{"role": ..., "content": ..., "messageId": ..., ...}]}

A ``{"success": true, "data": {...}}`` wrapper around that payload is
accepted too, so raw API responses can be saved as-is.
"""

import json
import logging
from pathlib import Path

from ..config import get_chats_path
from ..core import Chat, RawMessageRow, parse_iso, row_from_dict
from ..store import ChatStore

logger = logging.getLogger(__name__)


class JsonDirChatStore(ChatStore):
    """Store backed by a directory of saved chat payloads."""

    name = "json"

    def get_base_path(self) -> Path:
        return get_chats_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    def list_chats(self) -> list[Chat]:
        base = self.get_base_path()
        if not base.is_dir():
            return []

        chats = []
        for chat_file in sorted(base.glob("*.json")):
            payload = self._load(chat_file)
            if payload is None:
                continue

            meta = payload.get("chat") or {}
            messages = payload.get("messages") or []
            chats.append(Chat(
                id=f"json:{chat_file.stem}",
                title=(meta.get("title") or "Untitled")[:80],
                created=parse_iso(meta.get("createdAt", meta.get("created_at"))),
                message_count=len(messages),
                source="json",
            ))

        return chats

    def get_chat_rows(self, chat_id: str) -> list[RawMessageRow]:
        """Get message rows for a chat.

        Chat IDs are formatted as: json:{file_stem}
        """
        local_id = self._local_id(chat_id)
        if local_id is None or "/" in local_id or "\\" in local_id:
            return []

        chat_file = self.get_base_path() / f"{local_id}.json"
        if not chat_file.is_file():
            return []

        payload = self._load(chat_file)
        if payload is None:
            return []

        rows = []
        for entry in payload.get("messages") or []:
            if not isinstance(entry, dict):
                continue
            rows.append(row_from_dict(entry))
        return rows

    # ── Private helpers ──────────────────────────────────────────────

    def _load(self, path: Path) -> dict | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read chat file %s: %s", path, e)
            return None

        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            logger.warning("Unexpected chat file layout in %s", path)
            return None
        return data
