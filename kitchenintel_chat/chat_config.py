"""Pydantic config models for the KitchenIntel chat client.

ReconnectPolicy — optional retry with exponential backoff after a dropped connection.
TransportConfig — where and how the chat WebSocket is opened.
StorageConfig — which backend persists message logs.
ChatClientConfig — everything a ChatSession needs, loadable from the environment.
"""

import os
from typing import Literal, Mapping, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from kitchenintel_chat.chat_models import DEFAULT_WELCOME_MESSAGE
from kitchenintel_chat.storage import ChatStorage, FileChatStorage, MemoryChatStorage


class ReconnectPolicy(BaseModel):
    """Retry policy for unexpectedly closed connections.

    ``max_attempts=0`` disables retries: a dropped connection stays dropped
    until the session is reset or the view is mounted again.
    """
    max_attempts: int = Field(default=0, ge=0)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    @property
    def enabled(self) -> bool:
        return self.max_attempts > 0

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before the given (0-based) attempt."""
        return min(self.max_delay, self.initial_delay * self.backoff_factor ** attempt)


class TransportConfig(BaseModel):
    """Connection settings of the chat WebSocket."""
    ws_base_url: str = "ws://localhost:8000"
    ws_path_template: str = "/ws/chat/{session_id}/"
    auth_token: Optional[str] = None
    connect_timeout: Optional[float] = Field(default=None, gt=0.0)
    """Seconds to wait for the handshake. None waits indefinitely."""
    announce_welcome_on_open: bool = True
    """Deliver the welcome message to the session once the connection opens."""
    reconnect: ReconnectPolicy = Field(default_factory=ReconnectPolicy)

    def url_for(self, session_id: str) -> str:
        path = self.ws_path_template.format(session_id=quote(session_id, safe=""))
        return self.ws_base_url.rstrip("/") + path


class StorageConfig(BaseModel):
    """Selects and configures the message log storage."""
    backend: Literal["memory", "file", "mongodb"] = "file"
    path: str = "~/.kitchenintel/chat"
    mongo_uri: str = ""
    mongo_db: str = "kitchenintel"
    mongo_collection: str = "chat_storage"

    def create_storage(self) -> ChatStorage:
        if self.backend == "memory":
            return MemoryChatStorage()
        if self.backend == "mongodb":
            from kitchenintel_chat.storage.mongodb_chat_storage import MongoDBChatStorage
            return MongoDBChatStorage(
                mongo_uri=self.mongo_uri,
                mongo_db=self.mongo_db,
                mongo_collection=self.mongo_collection,
            )
        return FileChatStorage(self.path)


class ChatClientConfig(BaseModel):
    """Complete client configuration."""
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    transport: TransportConfig = Field(default_factory=TransportConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ChatClientConfig":
        """Build a config from environment variables, falling back to defaults.

        Recognized variables: CHAT_WS_URL, CHAT_WS_PATH, CHAT_AUTH_TOKEN,
        CHAT_CONNECT_TIMEOUT, CHAT_RECONNECT_ATTEMPTS, CHAT_STORAGE,
        CHAT_STORAGE_PATH, MONGODB_CONNECTION, CHAT_MONGO_DB,
        CHAT_MONGO_COLLECTION, CHAT_WELCOME_MESSAGE.
        """
        env = os.environ if environ is None else environ

        transport: dict = {}
        if env.get("CHAT_WS_URL"):
            transport["ws_base_url"] = env["CHAT_WS_URL"]
        if env.get("CHAT_WS_PATH"):
            transport["ws_path_template"] = env["CHAT_WS_PATH"]
        if env.get("CHAT_AUTH_TOKEN"):
            transport["auth_token"] = env["CHAT_AUTH_TOKEN"]
        if env.get("CHAT_CONNECT_TIMEOUT"):
            transport["connect_timeout"] = float(env["CHAT_CONNECT_TIMEOUT"])
        if env.get("CHAT_RECONNECT_ATTEMPTS"):
            transport["reconnect"] = {"max_attempts": int(env["CHAT_RECONNECT_ATTEMPTS"])}

        storage: dict = {}
        if env.get("CHAT_STORAGE"):
            storage["backend"] = env["CHAT_STORAGE"]
        if env.get("CHAT_STORAGE_PATH"):
            storage["path"] = env["CHAT_STORAGE_PATH"]
        if env.get("MONGODB_CONNECTION"):
            storage["mongo_uri"] = env["MONGODB_CONNECTION"]
        if env.get("CHAT_MONGO_DB"):
            storage["mongo_db"] = env["CHAT_MONGO_DB"]
        if env.get("CHAT_MONGO_COLLECTION"):
            storage["mongo_collection"] = env["CHAT_MONGO_COLLECTION"]

        data: dict = {"transport": transport, "storage": storage}
        if env.get("CHAT_WELCOME_MESSAGE"):
            data["welcome_message"] = env["CHAT_WELCOME_MESSAGE"]
        return cls.model_validate(data)
