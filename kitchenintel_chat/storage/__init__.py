from .chat_storage import ChatStorage, StorageError, chat_log_key, LAST_SESSION_KEY, TOKEN_KEY
from .memory_chat_storage import MemoryChatStorage
from .file_chat_storage import FileChatStorage


def __getattr__(name):
    """Lazy imports for optional dependencies."""
    if name == "MongoDBChatStorage":
        from .mongodb_chat_storage import MongoDBChatStorage
        return MongoDBChatStorage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'ChatStorage',
    'StorageError',
    'MemoryChatStorage',
    'FileChatStorage',
    'MongoDBChatStorage',
    'chat_log_key',
    'LAST_SESSION_KEY',
    'TOKEN_KEY',
]
