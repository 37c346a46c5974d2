"""Ordered, deduplicated message log of one chat session.

The log merges three sources: the welcome message, frames delivered by the
transport and messages typed by the user. The welcome message, when present,
is always the first entry and never duplicated. Every change is persisted to
the session's storage key and published on the store's channel.

Inside a running event loop, storage writes are queued and run in order in
the background, so a slow backend never stalls the loop; :meth:`MessageStore.flush`
waits for them. Without a running loop they happen immediately.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Union

from pydantic import TypeAdapter, ValidationError

from kitchenintel_chat.chat_models import ChatMessage, Role
from kitchenintel_chat.events import EventChannel
from kitchenintel_chat.identity import MessageIdFactory, format_timestamp
from kitchenintel_chat.storage import ChatStorage, StorageError, chat_log_key

logger = logging.getLogger(__name__)

_log_adapter = TypeAdapter(List[ChatMessage])

ReceivedPayload = Union[ChatMessage, Sequence[ChatMessage]]


def _pin_welcome(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    """Move the first welcome message to the front and drop any further ones."""
    welcome = next((m for m in messages if m.is_welcome), None)
    if welcome is None:
        return list(messages)
    return [welcome] + [m for m in messages if not m.is_welcome]


class MessageStore:
    """Authoritative message log of a single session."""

    def __init__(
        self,
        *,
        session_id: str,
        storage: ChatStorage,
        ids: Optional[MessageIdFactory] = None,
        welcome_content: Optional[str] = None,
        channel: Optional[EventChannel[List[ChatMessage]]] = None,
    ):
        """Initialize an empty store.

        Args:
            session_id: Session whose log this store owns, used as storage namespace
            storage: Backend receiving the persisted log
            ids: Message id factory shared with the session's transport
            welcome_content: Markdown of the welcome message
            channel: Channel receiving a snapshot of the log after each change
        """
        if not session_id:
            raise ValueError("session_id must not be empty")
        self.session_id = session_id
        self.storage = storage
        self.ids = ids or MessageIdFactory()
        self.welcome_content = welcome_content
        self.channel = channel if channel is not None else EventChannel("messages")
        self._messages: List[ChatMessage] = []
        self._welcome_added = False
        self._writes: Set[asyncio.Task] = set()
        self._write_lock: Optional[asyncio.Lock] = None

    @property
    def storage_key(self) -> str:
        return chat_log_key(self.session_id)

    @property
    def messages(self) -> List[ChatMessage]:
        """Snapshot of the log."""
        return list(self._messages)

    @property
    def has_welcome_message(self) -> bool:
        return any(m.is_welcome for m in self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    # ── Persistence ───────────────────────────────────────────

    def load_from_storage(self) -> bool:
        """Adopt a previously persisted log of this session.

        Returns:
            True if a non-empty log was restored
        """
        try:
            raw = self.storage.get_item(self.storage_key)
        except StorageError as e:
            logger.warning(f"[STORE] Could not read stored messages of session {self.session_id}: {e}")
            return False
        return self._adopt(raw)

    async def load_from_storage_async(self) -> bool:
        """Adopt a previously persisted log of this session (async version)."""
        await self.flush()
        try:
            raw = await self.storage.get_item_async(self.storage_key)
        except StorageError as e:
            logger.warning(f"[STORE] Could not read stored messages of session {self.session_id}: {e}")
            return False
        return self._adopt(raw)

    def _adopt(self, raw: Optional[str]) -> bool:
        if not raw:
            return False

        try:
            stored = _log_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[STORE] Ignoring malformed stored messages of session {self.session_id}: "
                           f"{e.error_count()} errors")
            return False
        if not stored:
            return False

        if any(m.is_welcome for m in stored):
            self._welcome_added = True
        logger.info(f"[STORE] Restored {len(stored)} messages for session {self.session_id}")
        self._replace(_pin_welcome(stored))
        return True

    def _submit(
        self,
        action: str,
        write: Callable[[], None],
        write_async: Callable[[], Awaitable[None]],
    ) -> None:
        """Run a storage write now, or queue it when called on the event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                write()
            except StorageError as e:
                logger.warning(f"[STORE] Failed to {action}: {e}")
            return

        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        task = loop.create_task(self._run_write(action, write_async))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _run_write(self, action: str, write_async: Callable[[], Awaitable[None]]) -> None:
        # Tasks reach the lock in creation order and it wakes waiters FIFO
        async with self._write_lock:
            try:
                await write_async()
            except StorageError as e:
                logger.warning(f"[STORE] Failed to {action}: {e}")

    async def flush(self) -> None:
        """Wait until all queued storage writes have finished."""
        while self._writes:
            await asyncio.gather(*list(self._writes))

    def _persist(self) -> None:
        if not self._messages:
            return
        key = self.storage_key
        data = _log_adapter.dump_json(self._messages).decode("utf-8")
        self._submit(
            f"persist {len(self._messages)} messages of session {self.session_id}",
            lambda: self.storage.set_item(key, data),
            lambda: self.storage.set_item_async(key, data),
        )

    def _replace(self, messages: List[ChatMessage]) -> None:
        self._messages = messages
        self._persist()
        self.channel.publish(self.messages)

    # ── Mutations ─────────────────────────────────────────────

    def ensure_welcome_message(self) -> None:
        """Pin a fresh welcome message to the top, once per session."""
        if self._welcome_added:
            return
        self._welcome_added = True
        if self._messages and self._messages[0].is_welcome:
            return
        welcome = ChatMessage.welcome(self.welcome_content)
        self._replace([welcome] + [m for m in self._messages if not m.is_welcome])

    def merge_received(self, payload: ReceivedPayload) -> None:
        """Merge a message or a full history delivered by the transport."""
        if isinstance(payload, ChatMessage):
            self._merge_single(payload)
        else:
            self._merge_history(list(payload))

    def _merge_single(self, message: ChatMessage) -> None:
        if not message.is_welcome:
            self._replace(self._messages + [message])
            return
        if self.has_welcome_message:
            logger.debug(f"[STORE] Dropping duplicate welcome message for session {self.session_id}")
            return
        self._replace([message] + self._messages)

    def _merge_history(self, history: List[ChatMessage]) -> None:
        current_welcome = next((m for m in self._messages if m.is_welcome), None)
        if current_welcome is not None:
            self._replace([current_welcome] + [m for m in history if not m.is_welcome])
        else:
            self._replace(_pin_welcome(history))
        logger.debug(f"[STORE] Replaced history of session {self.session_id} ({len(self._messages)} messages)")

    def add_user_message(self, content: str) -> ChatMessage:
        """Append a message authored by the local user."""
        message = ChatMessage(
            id=self.ids.next_id(),
            role=Role.USER,
            content=content,
            timestamp=format_timestamp(),
        )
        self._replace(self._messages + [message])
        return message

    def reset_log(self) -> None:
        """Forget the log, in memory and in storage."""
        self._messages = []
        self._welcome_added = False
        key = self.storage_key
        self._submit(
            f"remove stored messages of session {self.session_id}",
            lambda: self.storage.remove_item(key),
            lambda: self.storage.remove_item_async(key),
        )
        self.channel.publish([])
        logger.info(f"[STORE] Reset message log of session {self.session_id}")
