"""Export reconstructed chats to Markdown and JSON formats."""

import json

from .core import Chat, Turn
from .encoder import ParsedToolBlock, split_transcript


def chat_to_markdown(chat: Chat, turns: list[Turn]) -> str:
    """Export a chat and its turns as clean Markdown.

    Embedded tool blocks are expanded into readable call/result sections.
    """
    lines = [f"# {chat.title}", ""]

    lines.append(f"**Source:** {chat.source}")
    if chat.created:
        lines.append(f"**Created:** {chat.created.isoformat()}")
    lines.append(f"**Turns:** {len(turns)}")
    lines.extend(["", "---", ""])

    for turn in turns:
        role_label = "User" if turn.is_sent else "Assistant"
        ts = ""
        if turn.timestamp:
            ts = f" ({turn.timestamp.strftime('%Y-%m-%d %H:%M')})"
        error = " [error]" if turn.is_error else ""
        lines.append(f"## {role_label}{ts}{error}")
        lines.append("")
        lines.append(_expand_tool_blocks(turn.text).strip())
        if turn.files:
            lines.append("")
            lines.append("**Files:** " + ", ".join(_file_label(f) for f in turn.files))
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def chat_to_json(chat: Chat, turns: list[Turn]) -> str:
    """Export a chat and its turns as structured JSON."""
    data = {
        "chat": {
            "id": chat.id,
            "title": chat.title,
            "source": chat.source,
            "message_count": chat.message_count,
            "created": chat.created.isoformat() if chat.created else None,
        },
        "turns": [turn_to_dict(turn) for turn in turns],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def turn_to_dict(turn: Turn) -> dict:
    """Convert a Turn to a JSON-serializable dict."""
    return {
        "id": turn.id,
        "text": turn.text,
        "is_sent": turn.is_sent,
        "timestamp": turn.timestamp.isoformat() if turn.timestamp else None,
        "files": turn.files,
        "is_error": turn.is_error,
    }


def _expand_tool_blocks(text: str) -> str:
    parts = []
    for piece in split_transcript(text):
        if isinstance(piece, ParsedToolBlock):
            parts.append(_block_to_markdown(piece))
        else:
            parts.append(piece)
    return "".join(parts)


def _block_to_markdown(block: ParsedToolBlock) -> str:
    lines = [f"**Tool:** {block.name or 'unknown'}", ""]
    for calls in block.calls:
        lines.extend(["Calls:", "```json", json.dumps(calls, indent=2, ensure_ascii=False), "```", ""])
    for result in block.results:
        lines.extend(["Result:", "```json", json.dumps(result, indent=2, ensure_ascii=False), "```", ""])
    return "\n".join(lines)


def _file_label(entry) -> str:
    if isinstance(entry, dict):
        return str(entry.get("name") or entry.get("path") or entry)
    return str(entry)
