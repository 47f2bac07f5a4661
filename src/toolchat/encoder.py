"""Inline tool-call block format.

A turn's text embeds tool activity as a self-delimited block::

    <tool-call toolkey=3 name="search">##Tool Calls:<b64>##Tool Result:<b64></tool-call>

Call batches and results are JSON-encoded and then base64-encoded so that
payloads containing ``#``, ``<`` or newlines can never collide with the
block delimiters or with the surrounding text.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

CALLS_MARKER = "##Tool Calls:"
RESULT_MARKER = "##Tool Result:"
CLOSE_TAG = "</tool-call>"

_BLOCK_RE = re.compile(
    r'<tool-call toolkey=(\d+) name=("(?:[^"\\]|\\.)*")>(.*?)</tool-call>',
    re.DOTALL,
)
_SEGMENT_RE = re.compile(r"##(Tool Calls|Tool Result):([^#]*)")


def encode_segment(payload: Any) -> str:
    """Return the base64 form of a payload's compact JSON encoding."""
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    try:
        data = raw.encode("utf-8")
    except UnicodeEncodeError:
        # lone surrogates, e.g. text cut mid-emoji upstream; escape them as \uXXXX
        data = json.dumps(payload, separators=(",", ":")).encode("ascii")
    return base64.b64encode(data).decode("ascii")


def decode_segment(segment: str) -> Any:
    """Inverse of :func:`encode_segment`."""
    raw = base64.b64decode(segment.encode("ascii"), validate=True)
    return json.loads(raw.decode("utf-8"))


def call_names(batch: Any) -> list[str]:
    """Return the non-empty tool names of a call batch.

    A batch may be a single call, a list of calls, or a mapping whose values
    are lists of calls (the shape stored on assistant rows).
    """
    if isinstance(batch, dict) and "name" not in batch:
        calls = []
        for value in batch.values():
            calls.extend(value if isinstance(value, list) else [value])
    elif isinstance(batch, list):
        calls = batch
    else:
        calls = [batch]

    names = []
    for call in calls:
        if isinstance(call, dict):
            name = call.get("name")
            if name and isinstance(name, str):
                names.append(name)
    return names


@dataclass
class ToolBlock:
    """One inline block of tool calls and their results.

    Kept structured while it is being built; :meth:`render` is the only
    place the text form is produced.
    """

    toolkey: int
    calls: list = field(default_factory=list)
    results: list = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    expected: int = 0
    result_name: Optional[str] = None  # back-fill when no call carried a name

    def add_calls(self, batch: Any) -> int:
        """Add one batch of calls; return how many named calls it holds."""
        named = call_names(batch)
        self.calls.append(batch)
        for name in named:
            if name not in self.names:
                self.names.append(name)
        self.expected += len(named)
        return len(named)

    def add_result(self, payload: Any, name: str = "") -> None:
        self.results.append(payload)
        if name:
            self.result_name = name

    @property
    def complete(self) -> bool:
        return bool(self.results) and len(self.results) >= self.expected

    @property
    def display_name(self) -> str:
        if self.names:
            return ", ".join(self.names)
        return self.result_name or ""

    def render(self, closed: Optional[bool] = None) -> str:
        """Serialize the block.

        A closed block is followed by a blank line. A pending block still
        ends with the closing tag so the visible text is always well formed.
        """
        if closed is None:
            closed = self.complete

        parts = [f"\n<tool-call toolkey={self.toolkey} name={json.dumps(self.display_name, ensure_ascii=False)}>"]
        parts.extend(CALLS_MARKER + encode_segment(batch) for batch in self.calls)
        parts.extend(RESULT_MARKER + encode_segment(result) for result in self.results)
        parts.append(CLOSE_TAG)
        if closed:
            parts.append("\n\n")
        return "".join(parts)


@dataclass
class ParsedToolBlock:
    """A tool block read back out of turn text."""

    toolkey: int
    name: str
    calls: list = field(default_factory=list)
    results: list = field(default_factory=list)


def parse_tool_blocks(text: str) -> list[ParsedToolBlock]:
    """Return every tool block embedded in a turn's text."""
    return [piece for piece in split_transcript(text) if isinstance(piece, ParsedToolBlock)]


def split_transcript(text: str) -> list:
    """Split turn text into plain-text strings and ParsedToolBlock values."""
    pieces = []
    pos = 0
    for match in _BLOCK_RE.finditer(text):
        if match.start() > pos:
            pieces.append(text[pos:match.start()])
        pieces.append(_parse_block(match))
        pos = match.end()
    if pos < len(text):
        pieces.append(text[pos:])
    return pieces


def _parse_block(match: re.Match) -> ParsedToolBlock:
    try:
        name = json.loads(match.group(2))
    except json.JSONDecodeError:
        name = match.group(2).strip('"')

    block = ParsedToolBlock(toolkey=int(match.group(1)), name=name)
    for kind, segment in _SEGMENT_RE.findall(match.group(3)):
        try:
            payload = decode_segment(segment)
        except (binascii.Error, ValueError) as e:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            logger.warning("Undecodable segment in tool block %s: %s", block.toolkey, e)
            payload = segment
        if kind == "Tool Calls":
            block.calls.append(payload)
        else:
            block.results.append(payload)
    return block
