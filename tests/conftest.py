"""Shared test fixtures for toolchat."""

import json
import sqlite3

import pytest


def frame(event_type, content) -> str:
    """Return one protocol line carrying an event."""
    envelope = {"message": json.dumps({"type": event_type, "content": content})}
    return f"data: {json.dumps(envelope)}\n"


def stream_bytes(*events, done=True) -> bytes:
    """Build a full event-stream body from (type, content) pairs."""
    body = "".join(frame(t, c) for t, c in events)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


SEARCH_CALL = {"name": "search", "arguments": {"query": "weather <today> #1"}}
FETCH_CALL = {"name": "fetch", "arguments": {"url": "https://example.com/ü"}}


@pytest.fixture
def tool_stream():
    """A live answer: text, two parallel calls, both results, more text."""
    return stream_bytes(
        ("text", "Let me check. "),
        ("tool_calls", [{"name": "", "arguments": {}}]),
        ("tool_calls", [SEARCH_CALL, FETCH_CALL]),
        ("tool_result", {"name": "search", "result": {"hits": ["sunny\n25°C"]}}),
        ("tool_result", {"name": "fetch", "result": "<html>#ok</html>"}),
        ("text", "It is sunny."),
    )


@pytest.fixture
def tool_rows():
    """The stored rows of the same exchange as ``tool_stream``."""
    return [
        {"role": "user", "content": "What's the weather?", "messageId": "u-1",
         "createdAt": "2025-03-01T09:00:00Z", "files": []},
        {"role": "assistant", "content": "Let me check. ", "messageId": "a-1",
         "createdAt": "2025-03-01T09:00:01Z", "files": []},
        {"role": "tool_call", "content": json.dumps([SEARCH_CALL, FETCH_CALL]), "messageId": "a-1",
         "createdAt": "2025-03-01T09:00:02Z", "files": []},
        {"role": "tool_result", "content": json.dumps({"hits": ["sunny\n25°C"]}), "messageId": "a-1",
         "createdAt": "2025-03-01T09:00:03Z", "files": []},
        {"role": "tool_result", "content": json.dumps("<html>#ok</html>"), "messageId": "a-1",
         "createdAt": "2025-03-01T09:00:04Z", "files": []},
        {"role": "assistant", "content": "It is sunny.", "messageId": "a-1",
         "createdAt": "2025-03-01T09:00:05Z", "files": []},
    ]


@pytest.fixture
def tmp_sqlite_db(tmp_path, tool_rows):
    """Create a synthetic chat service database with two chats."""
    db_path = tmp_path / "db" / "database.sqlite"
    db_path.parent.mkdir(parents=True)

    conn = sqlite3.connect(str(db_path))
    conn.execute("CREATE TABLE chats (id text PRIMARY KEY, title text NOT NULL, created_at text NOT NULL)")
    conn.execute(
        "CREATE TABLE messages ("
        "id integer PRIMARY KEY AUTOINCREMENT, content text NOT NULL, role text NOT NULL, "
        "chat_id text NOT NULL, message_id text NOT NULL, created_at text NOT NULL, files text NOT NULL)"
    )
    conn.execute("INSERT INTO chats VALUES (?, ?, ?)", ("chat-weather", "Weather check", "2025-03-01T09:00:00Z"))
    conn.execute("INSERT INTO chats VALUES (?, ?, ?)", ("chat-hello", "Say hello", "2025-02-01T08:00:00Z"))

    for row in tool_rows:
        conn.execute(
            "INSERT INTO messages (content, role, chat_id, message_id, created_at, files) VALUES (?, ?, ?, ?, ?, ?)",
            (row["content"], row["role"], "chat-weather", row["messageId"], row["createdAt"], json.dumps(row["files"])),
        )
    conn.execute(
        "INSERT INTO messages (content, role, chat_id, message_id, created_at, files) VALUES (?, ?, ?, ?, ?, ?)",
        ("Hello!", "user", "chat-hello", "u-9", "2025-02-01T08:00:00Z", json.dumps(["notes.txt"])),
    )
    conn.execute(
        "INSERT INTO messages (content, role, chat_id, message_id, created_at, files) VALUES (?, ?, ?, ?, ?, ?)",
        ("Hi there.", "assistant", "chat-hello", "a-9", "2025-02-01T08:00:01Z", "[]"),
    )
    conn.commit()
    conn.close()

    return db_path


@pytest.fixture
def tmp_chats_dir(tmp_path, tool_rows):
    """Create a directory of saved chat payloads."""
    chats = tmp_path / "chats"
    chats.mkdir()

    payload = {
        "chat": {"id": "c-1", "title": "Weather check", "createdAt": "2025-03-01T09:00:00Z"},
        "messages": tool_rows,
    }
    (chats / "c-1.json").write_text(json.dumps(payload), encoding="utf-8")

    wrapped = {
        "success": True,
        "data": {
            "chat": {"id": "c-2", "title": "Plan a trip", "createdAt": "2025-03-02T12:00:00Z"},
            "messages": [
                {"role": "user", "content": "Plan a trip", "messageId": "u-2", "createdAt": "2025-03-02T12:00:00Z", "files": []},
                {"role": "assistant", "content": "Where to?", "messageId": "a-2", "createdAt": "2025-03-02T12:00:01Z", "files": []},
            ],
        },
    }
    (chats / "c-2.json").write_text(json.dumps(wrapped), encoding="utf-8")
    (chats / "broken.json").write_text("{not json", encoding="utf-8")

    return chats


@pytest.fixture
def make_stream():
    """Return the stream body builder."""
    return stream_bytes


@pytest.fixture
def make_frame():
    """Return the single-frame builder."""
    return frame
