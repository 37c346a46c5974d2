"""Base ChatController wiring a ChatSession to a view.

Views (terminal, web) subclass this and implement the abstract hooks for
view-specific rendering. The controller holds no business logic beyond
forwarding user actions to the session and session state to the hooks.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from kitchenintel_chat.chat_config import ChatClientConfig
from kitchenintel_chat.chat_models import ChatMessage, ConnectionState
from kitchenintel_chat.session import ChatSession
from kitchenintel_chat.storage import ChatStorage, MemoryChatStorage

logger = logging.getLogger(__name__)

SEND_KEY = "Enter"


class ChatController(ABC):
    """Base chat controller.

    Subclass and implement the abstract hooks for rendering.
    """

    def __init__(
        self,
        *,
        session: Optional[ChatSession] = None,
        config: Optional[ChatClientConfig] = None,
        storage: Optional[ChatStorage] = None,
    ):
        """Initialize controller.

        Args:
            session: Session to drive; built from config and storage when omitted
            config: Client configuration used when no session is given
            storage: Storage used when no session is given (defaults to the configured backend)
        """
        if session is None:
            config = config or ChatClientConfig()
            session = ChatSession(
                config=config,
                storage=storage or config.storage.create_storage(),
            )
        self.session = session
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def messages(self) -> List[ChatMessage]:
        return self.session.messages

    @property
    def is_connected(self) -> bool:
        return self.session.is_connected

    @property
    def is_loading(self) -> bool:
        return self.session.is_loading

    def can_send(self, draft: str = "") -> bool:
        """Whether the send control is enabled for the draft."""
        return self.session.transport.can_send(draft) if draft else self.is_connected

    # ========== LIFECYCLE ==========

    async def mount(self) -> None:
        """Subscribe to session state and start the conversation."""
        self._unsubscribers = [
            self.session.message_events.subscribe(self._on_messages_changed),
            self.session.transport.state.subscribe(self._on_connection_changed),
            self.session.loading.subscribe(self._on_loading_changed),
        ]
        await self.session.start()

    async def unmount(self) -> None:
        """Stop the conversation and detach from the session."""
        await self.session.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ========== USER ACTIONS ==========

    async def send_message(self, text: str) -> bool:
        sent = await self.session.send_message(text)
        if not sent:
            logger.debug(f"[VIEW] Message not sent (connected={self.is_connected})")
        return sent

    async def handle_key(self, key: str, draft: str, shift: bool = False) -> bool:
        """Handle a key press in the message input.

        Enter without Shift sends the draft; Shift+Enter is left to the input.

        Returns:
            True if the key was consumed
        """
        if key != SEND_KEY or shift:
            return False
        await self.send_message(draft)
        return True

    async def request_reset(self) -> bool:
        """Reset the conversation after the user confirmed it."""
        if not await self._confirm_reset():
            return False
        await self.session.reset()
        return True

    # ========== ABSTRACT HOOKS ==========

    @abstractmethod
    def _on_messages_changed(self, messages: List[ChatMessage]) -> None:
        """Called with the full message log after every change."""
        pass

    @abstractmethod
    def _on_connection_changed(self, state: ConnectionState) -> None:
        """Called when the connection state changes."""
        pass

    @abstractmethod
    def _on_loading_changed(self, loading: bool) -> None:
        """Called when a reply starts or stops being pending."""
        pass

    @abstractmethod
    async def _confirm_reset(self) -> bool:
        """Ask the user to confirm discarding the conversation."""
        pass


class HeadlessChatController(ChatController):
    """Controller that records session state instead of rendering it.

    Useful for scripting the chat and as a test double for views.
    """

    def __init__(self, *, confirm_reset: bool = True, **kwargs):
        if "session" not in kwargs and "storage" not in kwargs:
            kwargs["storage"] = MemoryChatStorage()
        super().__init__(**kwargs)
        self.confirm_reset = confirm_reset
        self.rendered_messages: List[ChatMessage] = []
        self.connection_states: List[ConnectionState] = []
        self.loading_states: List[bool] = []

    def _on_messages_changed(self, messages: List[ChatMessage]) -> None:
        self.rendered_messages = messages

    def _on_connection_changed(self, state: ConnectionState) -> None:
        self.connection_states.append(state)

    def _on_loading_changed(self, loading: bool) -> None:
        self.loading_states.append(loading)

    async def _confirm_reset(self) -> bool:
        return self.confirm_reset
