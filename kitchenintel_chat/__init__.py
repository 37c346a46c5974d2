"""kitchenintel-chat — real-time chat client for the KitchenIntel assistant."""

from kitchenintel_chat.chat_models import (
    ChatMessage, ConnectionState, Role, WELCOME_MESSAGE_ID, DEFAULT_WELCOME_MESSAGE,
)
from kitchenintel_chat.chat_config import (
    ChatClientConfig, ReconnectPolicy, StorageConfig, TransportConfig,
)
from kitchenintel_chat.identity import MessageIdFactory, generate_session_id
from kitchenintel_chat.events import EventChannel, ObservableValue
from kitchenintel_chat.storage import (
    ChatStorage, FileChatStorage, MemoryChatStorage, StorageError,
)
from kitchenintel_chat.message_store import MessageStore
from kitchenintel_chat.transport import ChatTransport, ChatTransportError, MalformedFrameError
from kitchenintel_chat.session import ChatSession
from kitchenintel_chat.chat_controller import ChatController, HeadlessChatController

__all__ = [
    "ChatMessage",
    "ConnectionState",
    "Role",
    "WELCOME_MESSAGE_ID",
    "DEFAULT_WELCOME_MESSAGE",
    "ChatClientConfig",
    "ReconnectPolicy",
    "StorageConfig",
    "TransportConfig",
    "MessageIdFactory",
    "generate_session_id",
    "EventChannel",
    "ObservableValue",
    "ChatStorage",
    "FileChatStorage",
    "MemoryChatStorage",
    "MongoDBChatStorage",
    "StorageError",
    "MessageStore",
    "ChatTransport",
    "ChatTransportError",
    "MalformedFrameError",
    "ChatSession",
    "ChatController",
    "HeadlessChatController",
    "TerminalChatController",
]


def __getattr__(name: str):
    if name == "TerminalChatController":
        from kitchenintel_chat.terminal_chat import TerminalChatController
        return TerminalChatController
    if name == "MongoDBChatStorage":
        from kitchenintel_chat.storage.mongodb_chat_storage import MongoDBChatStorage
        return MongoDBChatStorage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
