"""Rebuild assistant chat transcripts from live event streams or stored rows."""

__version__ = "0.1.0"
