"""SQLite chat store.

Reads the chat service's own database. Two tables matter:

- ``chats(id, title, created_at)``
- ``messages(id, content, role, chat_id, message_id, created_at, files)``

``messages.id`` is an autoincrement key, so ordering by it gives persistence
order. ``files`` is a JSON array. All access is read-only.
"""

import json
import logging
import sqlite3
from pathlib import Path

from ..config import get_db_path
from ..core import Chat, RawMessageRow, parse_iso
from ..store import ChatStore

logger = logging.getLogger(__name__)


class SqliteChatStore(ChatStore):
    """Store backed by the chat service's SQLite database."""

    name = "sqlite"

    def get_base_path(self) -> Path:
        return get_db_path()

    def is_available(self) -> bool:
        return self.get_base_path().is_file()

    def list_chats(self) -> list[Chat]:
        db_path = self.get_base_path()
        if not db_path.is_file():
            return []

        try:
            conn = self._connect(db_path)
            try:
                cur = conn.execute(
                    "SELECT c.id, c.title, c.created_at, COUNT(m.id) "
                    "FROM chats c LEFT JOIN messages m ON m.chat_id = c.id "
                    "GROUP BY c.id ORDER BY c.created_at DESC"
                )
                rows = cur.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning("Failed to list chats in %s: %s", db_path, e)
            return []

        return [
            Chat(
                id=f"sqlite:{chat_id}",
                title=title or "Untitled",
                created=parse_iso(created_at),
                message_count=count,
                source="sqlite",
            )
            for chat_id, title, created_at, count in rows
        ]

    def get_chat_rows(self, chat_id: str) -> list[RawMessageRow]:
        """Get message rows for a chat.

        Chat IDs are formatted as: sqlite:{chat_uuid}
        """
        local_id = self._local_id(chat_id)
        db_path = self.get_base_path()
        if local_id is None or not db_path.is_file():
            return []

        try:
            conn = self._connect(db_path)
            try:
                cur = conn.execute(
                    "SELECT id, content, role, chat_id, message_id, created_at, files "
                    "FROM messages WHERE chat_id = ? ORDER BY id",
                    (local_id,),
                )
                records = cur.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning("Failed to read messages for %s: %s", chat_id, e)
            return []

        return [self._record_to_row(record) for record in records]

    # ── Private helpers ──────────────────────────────────────────────

    def _connect(self, db_path: Path) -> sqlite3.Connection:
        return sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)

    def _record_to_row(self, record: tuple) -> RawMessageRow:
        row_id, content, role, chat_id, message_id, created_at, files = record
        return RawMessageRow(
            role=role,
            content=content or "",
            message_id=message_id or "",
            id=str(row_id),
            chat_id=chat_id,
            created_at=parse_iso(created_at),
            files=_parse_files(files),
        )


def _parse_files(value) -> list:
    if not value:
        return []
    try:
        files = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Unparseable files column: %r", value)
        return []
    return files if isinstance(files, list) else []
