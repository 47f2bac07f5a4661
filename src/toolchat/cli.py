"""CLI entry point for toolchat."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

import click
import uvicorn

from .backends import get_available_stores
from .client import ChatBusyError, ChatClient, Conversation
from .core import Turn
from .decoder import LiveStreamDecoder
from .export import chat_to_json, chat_to_markdown
from .reconstruct import reconstruct_turns


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Rebuild assistant chat transcripts from streams and stored history."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the transcript browser API."""
    click.echo(f"Starting toolchat on http://{host}:{port}")
    uvicorn.run("toolchat.server:app", host=host, port=port, reload=False)


@main.command()
@click.argument("chat_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Output format.")
def replay(chat_id: str, fmt: str):
    """Print a stored chat, rebuilt from its message rows."""
    source = chat_id.split(":", 1)[0]
    store = next((s for s in get_available_stores() if s.name == source), None)
    if store is None:
        raise click.ClickException(f"Source not available: {source}")

    chat = store.get_chat(chat_id)
    if chat is None:
        raise click.ClickException(f"Chat not found: {chat_id}")

    turns = reconstruct_turns(store.get_chat_rows(chat_id))
    click.echo(chat_to_json(chat, turns) if fmt == "json" else chat_to_markdown(chat, turns))


@main.command()
@click.argument("capture", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--chunk-size", default=0, help="Feed the capture in chunks of N bytes (0: all at once).")
def decode(capture: Path, chunk_size: int):
    """Replay a captured event stream and print the resulting text."""
    raw = capture.read_bytes()
    turns = [Turn(id="0", timestamp=datetime.now(timezone.utc))]
    decoder = LiveStreamDecoder(turns)

    step = chunk_size if chunk_size > 0 else max(len(raw), 1)
    for start in range(0, len(raw), step):
        decoder.feed(raw[start:start + step])
    decoder.finish()

    click.echo(decoder.turn.text)
    if decoder.turn.is_error:
        raise click.ClickException("stream ended with an error")


@main.command()
@click.argument("message")
@click.option("--chat-id", default=None, help="Continue an existing chat.")
@click.option("--url", default=None, help="Chat service base URL.")
def send(message: str, chat_id: str | None, url: str | None):
    """Send a message and stream the answer."""

    async def run() -> Turn:
        async with ChatClient(base_url=url) as client:
            conversation = Conversation(client, chat_id=chat_id)
            turn = await conversation.send(message)
            if conversation.chat_id:
                click.echo(f"[chat {conversation.chat_id}]", err=True)
            return turn

    try:
        turn = asyncio.run(run())
    except ChatBusyError as e:
        raise click.ClickException(str(e))

    click.echo(turn.text)
    if turn.is_error:
        raise click.ClickException("the service reported an error")
