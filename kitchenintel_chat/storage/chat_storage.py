from abc import ABC, abstractmethod
from typing import Optional

LAST_SESSION_KEY = "last_chat_session_id"
"""Most recently started session id. Written for older front ends, never read back."""

TOKEN_KEY = "token"
"""Auth token written by the login view."""


def chat_log_key(session_id: str) -> str:
    """Storage key of the persisted message log of a session."""
    return f"chat_messages_{session_id}"


class StorageError(Exception):
    """Raised when a storage backend cannot read or write an item."""
    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class ChatStorage(ABC):
    """Base class for local key-value storage of chat state.

    Values are strings; callers serialize structured data themselves.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""
        raise NotImplementedError("Subclasses must implement get_item")

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        raise NotImplementedError("Subclasses must implement set_item")

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key. Removing a missing key is not an error."""
        raise NotImplementedError("Subclasses must implement remove_item")

    # Async versions, used on the event loop. Backends doing network I/O
    # must override them with non-blocking implementations.

    @abstractmethod
    async def get_item_async(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None (async version)."""
        raise NotImplementedError("Subclasses must implement get_item_async")

    @abstractmethod
    async def set_item_async(self, key: str, value: str) -> None:
        """Store value under key (async version)."""
        raise NotImplementedError("Subclasses must implement set_item_async")

    @abstractmethod
    async def remove_item_async(self, key: str) -> None:
        """Remove key (async version)."""
        raise NotImplementedError("Subclasses must implement remove_item_async")
