"""Chat session: one conversation with its identity, message log and connection."""

import logging
from typing import List, Optional, Union

from kitchenintel_chat.chat_config import ChatClientConfig
from kitchenintel_chat.chat_models import ChatMessage, ConnectionState, Role
from kitchenintel_chat.events import EventChannel, ObservableValue
from kitchenintel_chat.identity import MessageIdFactory, generate_session_id
from kitchenintel_chat.message_store import MessageStore
from kitchenintel_chat.storage import ChatStorage, LAST_SESSION_KEY, StorageError
from kitchenintel_chat.transport import ChatTransport

logger = logging.getLogger(__name__)


class ChatSession:
    """Owns the active conversation of a chat view.

    A session is started when the view mounts, replaced by a fresh one on
    :meth:`reset` and stopped when the view unmounts. State is exposed through
    observables so views never poll:

    - ``message_events`` publishes the message log after every change
    - ``transport.state`` publishes connection state changes
    - ``loading`` is True while a reply to the last user message is pending
    """

    def __init__(
        self,
        *,
        config: Optional[ChatClientConfig] = None,
        storage: ChatStorage,
        transport: Optional[ChatTransport] = None,
        ids: Optional[MessageIdFactory] = None,
    ):
        self.config = config or ChatClientConfig()
        self.storage = storage
        self.ids = ids or (transport.ids if transport else MessageIdFactory())
        self.transport = transport or ChatTransport(
            self.config.transport,
            ids=self.ids,
            welcome_content=self.config.welcome_message,
        )
        self.message_events: EventChannel[List[ChatMessage]] = EventChannel("messages")
        self.loading: ObservableValue[bool] = ObservableValue(False, "loading")
        self.session_id: Optional[str] = None
        self._store: Optional[MessageStore] = None
        self.transport.state.subscribe(self._on_connection_state)

    @property
    def store(self) -> MessageStore:
        if self._store is None:
            raise RuntimeError("Chat session has not been started")
        return self._store

    @property
    def messages(self) -> List[ChatMessage]:
        return self._store.messages if self._store else []

    @property
    def connection_state(self) -> ConnectionState:
        return self.transport.state.value

    @property
    def is_connected(self) -> bool:
        return self.transport.is_connected

    @property
    def is_loading(self) -> bool:
        return self.loading.value

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self, session_id: Optional[str] = None) -> bool:
        """Begin a conversation and connect it.

        Args:
            session_id: Resume this session and its persisted log instead of starting a new one

        Returns:
            True if the connection opened
        """
        if self._store is not None:
            # Let queued writes of the previous log land before starting over
            await self._store.flush()

        self.session_id = session_id or generate_session_id()
        try:
            await self.storage.set_item_async(LAST_SESSION_KEY, self.session_id)
        except StorageError as e:
            logger.warning(f"[SESSION] Could not record last session id: {e}")

        self._store = MessageStore(
            session_id=self.session_id,
            storage=self.storage,
            ids=self.ids,
            welcome_content=self.config.welcome_message,
            channel=self.message_events,
        )
        await self._store.load_from_storage_async()
        self._store.ensure_welcome_message()
        self.loading.set(False)
        logger.info(f"[SESSION] Started session {self.session_id}")

        return await self.transport.connect(self.session_id, self._on_received)

    async def reset(self) -> bool:
        """Discard the conversation and start over with a new session id."""
        old_id = self.session_id
        # Close first so late frames of the old session cannot re-persist its log
        await self.transport.close()
        if self._store is not None:
            self._store.reset_log()
        logger.info(f"[SESSION] Reset session {old_id}")
        return await self.start()

    async def stop(self) -> None:
        """Close the connection. The persisted log is kept."""
        await self.transport.dispose()
        if self._store is not None:
            await self._store.flush()
        self.loading.set(False)
        logger.info(f"[SESSION] Stopped session {self.session_id}")

    # ── Messages ──────────────────────────────────────────────

    async def send_message(self, text: str) -> bool:
        """Send a user message.

        Unlike :meth:`ChatTransport.send`, the text is trimmed before it is logged and sent.

        Returns:
            False without side effects when disconnected or text is blank
        """
        if not self.transport.can_send(text):
            return False
        content = text.strip()
        # Appended before the write so a fast reply cannot land above it
        self.store.add_user_message(content)
        self.loading.set(True)
        sent = await self.transport.send(content)
        if not sent:
            self.loading.set(False)
        return sent

    def _on_received(self, payload: Union[ChatMessage, List[ChatMessage]]) -> None:
        if self._store is None:
            return
        self._store.merge_received(payload)
        if isinstance(payload, list) or (payload.role == Role.SYSTEM and not payload.is_welcome):
            self.loading.set(False)

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state == ConnectionState.DISCONNECTED:
            self.loading.set(False)
