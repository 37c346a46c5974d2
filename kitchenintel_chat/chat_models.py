"""Models for chat handling."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator

from kitchenintel_chat.identity import format_timestamp

WELCOME_MESSAGE_ID = "1"
"""Reserved id of the welcome message pinned to the top of every session."""

DEFAULT_WELCOME_MESSAGE = (
    "**Hello!** I'm your *KitchenIntel AI* assistant. How can I help you today?\n\n"
    "You can ask me about:\n\n"
    "- Sales performance and trends\n"
    "- Menu item popularity\n"
    "- Customer preferences\n"
    "- Inventory management\n"
    "- Staff scheduling recommendations"
)


class Role(str, Enum):
    """Author of a chat message."""
    USER = "user"
    SYSTEM = "system"  # Remote assistant, content is markdown


class ConnectionState(str, Enum):
    """State of the real-time chat connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""
    id: str
    role: Role
    content: str
    timestamp: str

    @model_validator(mode="after")
    def _welcome_is_system(self) -> "ChatMessage":
        if self.id == WELCOME_MESSAGE_ID and self.role != Role.SYSTEM:
            raise ValueError(f"message id {WELCOME_MESSAGE_ID!r} is reserved for the system welcome message")
        return self

    @property
    def is_welcome(self) -> bool:
        return self.id == WELCOME_MESSAGE_ID

    @classmethod
    def welcome(cls, content: Optional[str] = None) -> "ChatMessage":
        """Create a fresh welcome message."""
        return cls(
            id=WELCOME_MESSAGE_ID,
            role=Role.SYSTEM,
            content=content or DEFAULT_WELCOME_MESSAGE,
            timestamp=format_timestamp(),
        )
