"""Platform-aware path and URL resolution."""

import os
import sys
from pathlib import Path

DEFAULT_API_URL = "http://127.0.0.1:61990"


def get_data_path() -> Path:
    """Return the directory holding the chat service's local data."""
    env = os.environ.get("TOOLCHAT_DATA_PATH")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "toolchat"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "toolchat"
    else:  # Linux
        return Path.home() / ".config" / "toolchat"


def get_db_path() -> Path:
    """Return the path to the chat service's SQLite database."""
    env = os.environ.get("TOOLCHAT_DB_PATH")
    if env:
        return Path(env)

    return get_data_path() / "db" / "database.sqlite"


def get_chats_path() -> Path:
    """Return the directory of exported chat JSON files."""
    env = os.environ.get("TOOLCHAT_CHATS_PATH")
    if env:
        return Path(env)

    return get_data_path() / "chats"


def get_api_url() -> str:
    """Return the base URL of the chat-completion service."""
    return os.environ.get("TOOLCHAT_API_URL", DEFAULT_API_URL).rstrip("/")
