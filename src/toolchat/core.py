"""Core data models for toolchat."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class Turn:
    """One displayed chat entry, user or assistant."""

    id: str
    text: str = ""
    is_sent: bool = False  # True for user-authored turns
    timestamp: Optional[datetime] = None
    files: list = field(default_factory=list)
    is_error: bool = False


@dataclass
class RawMessageRow:
    """A single persisted message record, as the chat service stores it."""

    role: str  # "user" | "assistant" | "tool_call" | "tool_result"
    content: str
    message_id: str = ""
    id: str = ""
    chat_id: str = ""
    created_at: Optional[datetime] = None
    tool_calls: Any = None  # list of calls, or a mapping of call lists
    files: list = field(default_factory=list)


@dataclass
class StreamEvent:
    """One decoded event from the live response stream."""

    type: str  # "text" | "tool_calls" | "tool_result" | "chat_info" | "message_info" | "error"
    content: Any = None


@dataclass
class Chat:
    """A stored conversation."""

    id: str  # namespaced: "sqlite:uuid", "json:uuid"
    title: str
    created: Optional[datetime] = None
    message_count: int = 0
    source: str = ""


def row_from_dict(data: dict) -> RawMessageRow:
    """Build a RawMessageRow from the chat service's message dict.

    Accepts the camelCase keys the service returns (``messageId``,
    ``createdAt``, ``toolCalls``) as well as the snake_case column names.
    """
    files = data.get("files") or []
    if not isinstance(files, list):
        files = [files]

    message_id = data.get("messageId", data.get("message_id"))
    row_id = data.get("id")
    return RawMessageRow(
        role=data.get("role", ""),
        content=data.get("content") or "",
        message_id=str(message_id) if message_id else "",
        id=str(row_id) if row_id is not None else "",
        chat_id=data.get("chatId", data.get("chat_id")) or "",
        created_at=parse_iso(data.get("createdAt", data.get("created_at"))),
        tool_calls=data.get("toolCalls", data.get("tool_calls")),
        files=files,
    )


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string."""
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value)
    except (ValueError, TypeError, AttributeError):
        return None
