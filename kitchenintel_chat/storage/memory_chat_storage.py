import logging
import threading
from typing import Dict, Optional

from .chat_storage import ChatStorage

logger = logging.getLogger(__name__)


class MemoryChatStorage(ChatStorage):
    """Storage kept in process memory. Lost on exit."""
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
        logger.debug(f"[STORAGE] Stored {len(value)} chars under '{key}'")

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    async def get_item_async(self, key: str) -> Optional[str]:
        return self.get_item(key)

    async def set_item_async(self, key: str, value: str) -> None:
        self.set_item(key, value)

    async def remove_item_async(self, key: str) -> None:
        self.remove_item(key)
