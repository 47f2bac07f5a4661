"""Tests for the stored-chat backends."""

from unittest.mock import patch

from toolchat.backends import get_available_stores
from toolchat.backends.jsondir import JsonDirChatStore
from toolchat.backends.sqlite import SqliteChatStore
from toolchat.encoder import parse_tool_blocks
from toolchat.reconstruct import reconstruct_turns


class TestSqliteChatStore:
    def test_is_available_with_data(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            assert store.is_available() is True

    def test_is_available_without_data(self, tmp_path):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_path / "missing.sqlite"):
            assert store.is_available() is False
            assert store.list_chats() == []

    def test_list_chats(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            chats = store.list_chats()
            assert [c.id for c in chats] == ["sqlite:chat-weather", "sqlite:chat-hello"]
            weather = chats[0]
            assert weather.title == "Weather check"
            assert weather.message_count == 6
            assert weather.source == "sqlite"
            assert weather.created is not None

    def test_get_chat(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            assert store.get_chat("sqlite:chat-hello").title == "Say hello"
            assert store.get_chat("sqlite:nope") is None

    def test_rows_in_persistence_order(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            rows = store.get_chat_rows("sqlite:chat-weather")
            assert [r.role for r in rows] == [
                "user", "assistant", "tool_call", "tool_result", "tool_result", "assistant",
            ]
            assert rows[0].message_id == "u-1"
            assert rows[0].chat_id == "chat-weather"

    def test_files_column_parsed(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            rows = store.get_chat_rows("sqlite:chat-hello")
            assert rows[0].files == ["notes.txt"]
            assert rows[1].files == []

    def test_rows_reconstruct(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            turns = reconstruct_turns(store.get_chat_rows("sqlite:chat-weather"))
            assert len(turns) == 2
            assert parse_tool_blocks(turns[1].text)[0].name == "search, fetch"

    def test_foreign_or_bad_ids(self, tmp_sqlite_db):
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_sqlite_db):
            assert store.get_chat_rows("json:chat-weather") == []
            assert store.get_chat_rows("invalid") == []
            assert store.get_chat_rows("sqlite:unknown") == []

    def test_corrupt_database(self, tmp_path):
        bad = tmp_path / "bad.sqlite"
        bad.write_bytes(b"this is not sqlite")
        store = SqliteChatStore()
        with patch.object(store, "get_base_path", return_value=bad):
            assert store.list_chats() == []
            assert store.get_chat_rows("sqlite:x") == []


class TestJsonDirChatStore:
    def test_list_chats_skips_broken_files(self, tmp_chats_dir):
        store = JsonDirChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_chats_dir):
            chats = store.list_chats()
            assert sorted(c.id for c in chats) == ["json:c-1", "json:c-2"]
            c1 = next(c for c in chats if c.id == "json:c-1")
            assert c1.title == "Weather check"
            assert c1.message_count == 6

    def test_wrapped_api_payload(self, tmp_chats_dir):
        store = JsonDirChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_chats_dir):
            rows = store.get_chat_rows("json:c-2")
            assert [r.content for r in rows] == ["Plan a trip", "Where to?"]

    def test_rows_keep_tool_content(self, tmp_chats_dir):
        store = JsonDirChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_chats_dir):
            rows = store.get_chat_rows("json:c-1")
            assert rows[2].role == "tool_call"
            assert rows[2].content.startswith("[")

    def test_path_traversal_rejected(self, tmp_chats_dir):
        store = JsonDirChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_chats_dir):
            assert store.get_chat_rows("json:../c-1") == []

    def test_missing_and_broken(self, tmp_chats_dir):
        store = JsonDirChatStore()
        with patch.object(store, "get_base_path", return_value=tmp_chats_dir):
            assert store.get_chat_rows("json:nope") == []
            assert store.get_chat_rows("json:broken") == []


def test_get_available_stores(tmp_sqlite_db, tmp_chats_dir):
    with (
        patch("toolchat.backends.sqlite.get_db_path", return_value=tmp_sqlite_db),
        patch("toolchat.backends.jsondir.get_chats_path", return_value=tmp_chats_dir),
    ):
        assert [s.name for s in get_available_stores()] == ["sqlite", "json"]


def test_get_available_stores_none(tmp_path):
    with (
        patch("toolchat.backends.sqlite.get_db_path", return_value=tmp_path / "none.sqlite"),
        patch("toolchat.backends.jsondir.get_chats_path", return_value=tmp_path / "none"),
    ):
        assert get_available_stores() == []
