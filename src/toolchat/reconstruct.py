"""Rebuild a chat's turns from its persisted message rows.

Rows are replayed in persistence order through the same block encoding the
live decoder uses, so a replayed chat renders exactly like the streamed one.

Row roles:
- "user": always starts a new turn.
- "tool_call": buffered; opens an empty assistant turn if none is open.
- "tool_result": buffered; a run of consecutive results is folded, together
  with every buffered call, into one tool block.
- "assistant": plain text, or a call batch when ``tool_calls`` is set.
"""

import json
import logging
from typing import Any, Iterable, Optional

from .core import RawMessageRow, Turn
from .session import TranscriptSession

logger = logging.getLogger(__name__)


class TranscriptReconstructor:
    """Single-pass fold of message rows into turns."""

    def __init__(self, session: Optional[TranscriptSession] = None):
        self.session = session or TranscriptSession()

    def run(self, rows: Iterable[RawMessageRow]) -> list[Turn]:
        rows = list(rows)
        turns: list[Turn] = []
        call_buf: list = []
        result_buf: list = []

        for index, row in enumerate(rows):
            if row.role == "user":
                turns.append(self._to_turn(row))
                call_buf, result_buf = [], []
                continue

            last_is_sent = not turns or turns[-1].is_sent

            # assistant-side rows add their attachments to the open turn
            if not last_is_sent:
                turns[-1].files = [*turns[-1].files, *row.files]

            if row.role == "tool_call":
                call_buf.append(_load_payload(row))
                if last_is_sent:
                    turns.append(self._to_turn(row, text=""))

            elif row.role == "tool_result":
                result_buf.append(_load_payload(row))
                if index + 1 < len(rows) and rows[index + 1].role == "tool_result":
                    continue

                if last_is_sent:
                    turns.append(self._to_turn(row, text=""))
                turns[-1].text += self._fold(call_buf, result_buf)
                call_buf, result_buf = [], []

            elif row.role == "assistant":
                if _has_tool_calls(row.tool_calls):
                    if last_is_sent:
                        turns.append(self._to_turn(row))
                    elif row.content and not call_buf:
                        turns[-1].text += row.content
                    call_buf.append(row.tool_calls)
                elif last_is_sent:
                    turns.append(self._to_turn(row))
                else:
                    turns[-1].text += row.content

            else:
                logger.debug("Skipping row with unknown role %r", row.role)

        return turns

    def _fold(self, calls: list, results: list) -> str:
        block = self.session.open_block()
        for batch in calls:
            block.add_calls(batch)
        for result in results:
            block.add_result(result)
        return block.render(closed=True)

    def _to_turn(self, row: RawMessageRow, text: Optional[str] = None) -> Turn:
        return Turn(
            id=row.message_id or row.id or self.session.next_turn_id(),
            text=row.content if text is None else text,
            is_sent=row.role == "user",
            timestamp=row.created_at,
            files=list(row.files),
        )


def reconstruct_turns(rows: Iterable[RawMessageRow], session: Optional[TranscriptSession] = None) -> list[Turn]:
    """Return the turns of a chat rebuilt from its stored rows."""
    return TranscriptReconstructor(session).run(rows)


def _has_tool_calls(tool_calls: Any) -> bool:
    return isinstance(tool_calls, (list, dict)) and len(tool_calls) > 0


def _load_payload(row: RawMessageRow) -> Any:
    try:
        return json.loads(row.content)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Row %s has non-JSON %s content; keeping it as text",
                     row.message_id or row.id, row.role)
        return row.content
