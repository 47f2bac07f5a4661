"""Abstract base class for stored-chat sources."""

from abc import ABC, abstractmethod
from pathlib import Path

from .core import Chat, RawMessageRow


class ChatStore(ABC):
    """Base class for persisted chat backends.

    Each backend (SQLite database, JSON export directory) implements this
    interface to hand ordered message rows to the reconstructor.
    """

    name: str  # "sqlite", "json"

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the file or directory this store reads from."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this store's data exists on this machine."""
        ...

    @abstractmethod
    def list_chats(self) -> list[Chat]:
        """Return all stored chats."""
        ...

    @abstractmethod
    def get_chat_rows(self, chat_id: str) -> list[RawMessageRow]:
        """Return a chat's message rows in persistence order."""
        ...

    def get_chat(self, chat_id: str) -> Chat | None:
        """Return a single chat's metadata, or None if unknown."""
        return next((c for c in self.list_chats() if c.id == chat_id), None)

    def _local_id(self, chat_id: str) -> str | None:
        """Strip this store's namespace from a chat id."""
        prefix, _, local = chat_id.partition(":")
        if prefix != self.name or not local:
            return None
        return local
