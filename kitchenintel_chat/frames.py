"""Wire frames exchanged with the chat backend.

Outbound frames are ``{"message": "<text>"}``. Inbound frames carry either a
single assistant reply or the full conversation history::

    {"message": "Sales were up 12% last week."}
    {"message": [{"role": "user", "content": "..."}, {"role": "assistant", "content": "..."}]}

Raw frames are validated once, in :func:`parse_frame`, into one of
:class:`SingleMessageFrame`, :class:`HistoryFrame` or :class:`MalformedFrame`.
"""

import json
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from kitchenintel_chat.chat_models import ChatMessage, Role
from kitchenintel_chat.identity import MessageIdFactory, format_timestamp


def translate_remote_role(role: Optional[str]) -> Role:
    """Map the backend's role vocabulary onto local roles."""
    return Role.SYSTEM if role == "assistant" else Role.USER


class OutboundFrame(BaseModel):
    """Frame sent to the backend for a user message."""
    message: str

    def to_wire(self) -> str:
        return self.model_dump_json()


class RemoteEntry(BaseModel):
    """One entry of a history frame, in the backend's vocabulary."""
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: str


class SingleMessageFrame(BaseModel):
    """A single assistant reply, appended to the log."""
    kind: Literal["single"] = "single"
    content: str

    def to_message(self, ids: MessageIdFactory) -> ChatMessage:
        return ChatMessage(
            id=ids.next_id(),
            role=Role.SYSTEM,
            content=self.content,
            timestamp=format_timestamp(),
        )


class HistoryFrame(BaseModel):
    """The full conversation history, replacing the log."""
    kind: Literal["history"] = "history"
    entries: List[RemoteEntry] = Field(default_factory=list)

    def to_messages(self, ids: MessageIdFactory) -> List[ChatMessage]:
        timestamp = format_timestamp()
        return [
            ChatMessage(
                id=ids.next_id(),
                role=translate_remote_role(entry.role),
                content=entry.content,
                timestamp=timestamp,
            )
            for entry in self.entries
        ]


class MalformedFrame(BaseModel):
    """A frame that could not be interpreted."""
    kind: Literal["malformed"] = "malformed"
    raw: str
    reason: str


InboundFrame = Annotated[
    Union[SingleMessageFrame, HistoryFrame, MalformedFrame],
    Field(discriminator="kind"),
]

_history_adapter = TypeAdapter(List[RemoteEntry])


def parse_frame(raw: Union[str, bytes]) -> InboundFrame:
    """Validate a raw inbound frame."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return MalformedFrame(raw=repr(raw), reason="binary frame is not valid UTF-8")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return MalformedFrame(raw=raw, reason=f"invalid JSON: {e.msg}")

    if not isinstance(data, dict) or "message" not in data:
        return MalformedFrame(raw=raw, reason="missing 'message' field")

    message = data["message"]
    if isinstance(message, str):
        if not message:
            return MalformedFrame(raw=raw, reason="empty message")
        return SingleMessageFrame(content=message)

    if isinstance(message, list):
        try:
            entries = _history_adapter.validate_python(message)
        except ValidationError as e:
            return MalformedFrame(raw=raw, reason=f"invalid history entries ({e.error_count()} errors)")
        return HistoryFrame(entries=entries)

    return MalformedFrame(raw=raw, reason=f"unsupported message type {type(message).__name__}")
