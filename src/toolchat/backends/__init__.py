"""Auto-detect stored chat sources and provide a unified registry."""

import logging

from ..store import ChatStore
from .jsondir import JsonDirChatStore
from .sqlite import SqliteChatStore

logger = logging.getLogger(__name__)


def get_available_stores() -> list[ChatStore]:
    """Return the stores whose data exists on this machine."""
    stores = []
    for StoreClass in [SqliteChatStore, JsonDirChatStore]:
        try:
            store = StoreClass()
            if store.is_available():
                stores.append(store)
        except OSError as e:
            logger.warning("Skipping %s: %s", StoreClass.__name__, e)
    return stores
