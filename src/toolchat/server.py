"""FastAPI web server for browsing reconstructed chats."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

from . import __version__
from .backends import get_available_stores
from .core import Turn
from .decoder import LiveStreamDecoder
from .export import chat_to_json, chat_to_markdown, turn_to_dict
from .reconstruct import reconstruct_turns
from .store import ChatStore

logger = logging.getLogger(__name__)

app = FastAPI(title="toolchat", version=__version__)

# Store cache (populated on first request)
_stores: list[ChatStore] | None = None


def _get_stores() -> list[ChatStore]:
    """Lazily initialize and cache stores."""
    global _stores
    if _stores is None:
        _stores = get_available_stores()
        logger.info("Detected stores: %s", [s.name for s in _stores])
    return _stores


def _find_store(chat_id: str) -> ChatStore:
    """Return the store owning a namespaced chat id, or raise 404."""
    source = chat_id.split(":", 1)[0] if ":" in chat_id else ""
    for s in _get_stores():
        if s.name == source:
            return s
    raise HTTPException(status_code=404, detail=f"Unknown source: {source or chat_id}")


def _chat_to_dict(chat) -> dict:
    """Convert a Chat dataclass to a JSON-serializable dict."""
    return {
        "id": chat.id,
        "title": chat.title,
        "created": chat.created.isoformat() if chat.created else None,
        "message_count": chat.message_count,
        "source": chat.source,
    }


def _load(chat_id: str):
    store = _find_store(chat_id)
    try:
        chat = store.get_chat(chat_id)
        rows = store.get_chat_rows(chat_id) if chat else []
    except Exception as e:
        logger.error("Failed to load chat %s: %s", chat_id, e)
        raise HTTPException(status_code=500, detail="Failed to load chat")

    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat, reconstruct_turns(rows)


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/sources")
async def get_sources():
    """Return list of available chat stores."""
    return [s.name for s in _get_stores()]


@app.get("/api/chats")
async def get_chats(
    source: str | None = Query(None, description="Filter by source"),
    search: str | None = Query(None, description="Search in titles"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Return all chats across all stores, newest first."""
    stores = _get_stores()
    if source:
        stores = [s for s in stores if s.name == source]

    all_chats = []
    for store in stores:
        try:
            all_chats.extend(store.list_chats())
        except Exception as e:
            logger.error("Failed to list chats for %s: %s", store.name, e)

    if search:
        search_lower = search.lower()
        all_chats = [c for c in all_chats if search_lower in c.title.lower()]

    all_chats.sort(key=_sort_key, reverse=True)

    total = len(all_chats)
    all_chats = all_chats[offset: offset + limit]

    return {
        "total": total,
        "chats": [_chat_to_dict(c) for c in all_chats],
    }


@app.get("/api/chat/{chat_id:path}")
async def get_chat(chat_id: str):
    """Return a chat's turns, rebuilt from its stored rows."""
    chat, turns = _load(chat_id)
    return {
        "chat": _chat_to_dict(chat),
        "turns": [turn_to_dict(t) for t in turns],
    }


@app.get("/api/export/{chat_id:path}")
async def export_chat(
    chat_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a chat as Markdown or JSON."""
    chat, turns = _load(chat_id)
    safe_title = "".join(c if c.isalnum() or c in "-_ " else "" for c in chat.title)[:50] or "chat"

    if format == "json":
        return Response(
            content=chat_to_json(chat, turns),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
        )
    return Response(
        content=chat_to_markdown(chat, turns),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
    )


@app.post("/api/decode")
async def decode_capture(request: Request):
    """Replay a captured event-stream body and return the resulting turn."""
    turns = [Turn(id="0", timestamp=datetime.now(timezone.utc))]
    decoder = LiveStreamDecoder(turns)
    async for chunk in request.stream():
        decoder.feed(chunk)
    decoder.finish()
    return {"state": decoder.state.value, "turn": turn_to_dict(decoder.turn)}


def _sort_key(chat) -> datetime:
    """Return a timezone-aware creation time, epoch when unknown."""
    if chat.created is None:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    if chat.created.tzinfo is None:
        return chat.created.replace(tzinfo=timezone.utc)
    return chat.created
