"""Per-construction counters for live decodes and replays."""

from .encoder import ToolBlock


class TranscriptSession:
    """Scope of one live decode or one reconstruction pass.

    Toolkeys handed out by a session are unique within it and start at
    zero; create a new session for every conversation being built.
    """

    def __init__(self, first_toolkey: int = 0):
        self._toolkey = first_toolkey
        self._turn_id = 0

    @property
    def next_toolkey(self) -> int:
        return self._toolkey

    def open_block(self) -> ToolBlock:
        """Return a fresh ToolBlock and advance the toolkey."""
        block = ToolBlock(toolkey=self._toolkey)
        self._toolkey += 1
        return block

    def next_turn_id(self) -> str:
        """Return a provisional turn id, used until the server assigns one."""
        turn_id = str(self._turn_id)
        self._turn_id += 1
        return turn_id
