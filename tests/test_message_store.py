"""Tests for the message store: welcome pinning, merging and persistence."""
import asyncio
import json

import pytest

from kitchenintel_chat.chat_models import ChatMessage, Role, WELCOME_MESSAGE_ID
from kitchenintel_chat.events import EventChannel
from kitchenintel_chat.message_store import MessageStore
from kitchenintel_chat.storage import MemoryChatStorage, StorageError, chat_log_key
from .conftest import RecordingStorage, make_message


class FailingStorage(MemoryChatStorage):
    """Storage whose writes always fail."""
    def set_item(self, key: str, value: str) -> None:
        raise StorageError("disk full", key=key)


@pytest.fixture
def store(storage):
    return MessageStore(session_id="s1", storage=storage, welcome_content="Welcome!")


def welcome_positions(store: MessageStore) -> list:
    return [i for i, m in enumerate(store.messages) if m.id == WELCOME_MESSAGE_ID]


def test_ensure_welcome_message(store):
    store.ensure_welcome_message()
    assert len(store) == 1
    assert store.messages[0].is_welcome
    assert store.messages[0].content == "Welcome!"

    # Runs once per session
    store.ensure_welcome_message()
    assert len(store) == 1


def test_welcome_stays_pinned_across_merges(store):
    store.ensure_welcome_message()
    steps = [
        lambda: store.add_user_message("How were sales yesterday?"),
        lambda: store.merge_received(make_message("100", content="Up 12%.")),
        lambda: store.merge_received(ChatMessage.welcome("Another welcome")),
        lambda: store.merge_received([make_message("101"), ChatMessage.welcome("W'"), make_message("102")]),
        lambda: store.merge_received([make_message("103", Role.USER)]),
        lambda: store.merge_received([]),
        lambda: store.merge_received(make_message("104")),
    ]
    for step in steps:
        step()
        assert welcome_positions(store) == [0]
        assert store.messages[0].content == "Welcome!"


def test_duplicate_welcome_is_dropped(store):
    store.ensure_welcome_message()
    store.add_user_message("hello")
    before = store.messages

    store.merge_received(ChatMessage.welcome("Duplicate"))
    assert store.messages == before


def test_single_welcome_into_empty_log(store):
    welcome = ChatMessage.welcome("From the wire")
    store.merge_received(welcome)
    assert store.messages == [welcome]


def test_single_welcome_inserted_first_when_missing(store):
    user = store.add_user_message("hello")
    welcome = ChatMessage.welcome()
    store.merge_received(welcome)
    assert store.messages == [welcome, user]


def test_history_replace_keeps_pinned_welcome(store):
    store.ensure_welcome_message()
    original_welcome = store.messages[0]
    store.merge_received(make_message("A"))
    store.merge_received(make_message("B"))

    incoming = [
        ChatMessage(id=WELCOME_MESSAGE_ID, role=Role.SYSTEM, content="different", timestamp="11:00 AM"),
        make_message("C", Role.USER),
        make_message("D"),
    ]
    store.merge_received(incoming)

    assert [m.id for m in store.messages] == [WELCOME_MESSAGE_ID, "C", "D"]
    assert store.messages[0] == original_welcome


def test_history_without_welcome_is_adopted(store):
    store.add_user_message("hello")
    incoming = [make_message("C", Role.USER), make_message("D")]
    store.merge_received(incoming)
    assert store.messages == incoming


def test_plain_single_messages_append(store):
    store.ensure_welcome_message()
    for i in range(5):
        before = store.messages
        message = make_message(str(100 + i))
        store.merge_received(message)
        assert store.messages == before + [message]


def test_add_user_message(store):
    message = store.add_user_message("Which dish sells best?")
    assert message.role == Role.USER
    assert message.content == "Which dish sells best?"
    assert message.id != WELCOME_MESSAGE_ID
    assert store.messages[-1] == message


def test_round_trip_persistence(storage):
    first = MessageStore(session_id="s", storage=storage)
    first.ensure_welcome_message()
    first.add_user_message("one")
    first.merge_received(make_message("200", content="two"))

    again = MessageStore(session_id="s", storage=storage)
    assert again.load_from_storage()
    assert again.messages == first.messages

    other = MessageStore(session_id="s2", storage=storage)
    assert not other.load_from_storage()
    assert other.messages == []


def test_persisted_format(store, storage):
    store.ensure_welcome_message()
    data = json.loads(storage.get_item(chat_log_key("s1")))
    assert data == [{
        "id": WELCOME_MESSAGE_ID,
        "role": "system",
        "content": "Welcome!",
        "timestamp": store.messages[0].timestamp,
    }]


def test_empty_log_is_not_persisted(store, storage):
    store.merge_received([])
    assert storage.get_item(store.storage_key) is None


def test_loaded_welcome_is_kept(storage):
    stored = [make_message("A", Role.USER), ChatMessage.welcome("Stored welcome")]
    storage.set_item(chat_log_key("s"), json.dumps([m.model_dump(mode="json") for m in stored]))

    store = MessageStore(session_id="s", storage=storage)
    assert store.load_from_storage()
    assert [m.id for m in store.messages] == [WELCOME_MESSAGE_ID, "A"]

    store.ensure_welcome_message()
    assert len(store) == 2
    assert store.messages[0].content == "Stored welcome"


def test_loaded_log_without_welcome_gets_one(storage):
    storage.set_item(chat_log_key("s"), json.dumps([make_message("A", Role.USER).model_dump(mode="json")]))
    store = MessageStore(session_id="s", storage=storage)
    assert store.load_from_storage()
    store.ensure_welcome_message()
    assert [m.id for m in store.messages] == [WELCOME_MESSAGE_ID, "A"]


@pytest.mark.parametrize("raw", [
    "not json",
    '{"id": "1"}',
    "[]",
    '[{"id": "5", "role": "robot", "content": "x", "timestamp": "t"}]',
    '[{"id": "1", "role": "user", "content": "x", "timestamp": "t"}]',
])
def test_malformed_stored_log_is_ignored(storage, raw):
    storage.set_item(chat_log_key("s"), raw)
    store = MessageStore(session_id="s", storage=storage)
    assert not store.load_from_storage()
    assert store.messages == []

    store.ensure_welcome_message()
    assert [m.id for m in store.messages] == [WELCOME_MESSAGE_ID]


def test_reset_log(store, storage):
    store.ensure_welcome_message()
    store.add_user_message("hello")
    assert storage.get_item(store.storage_key) is not None

    store.reset_log()
    assert store.messages == []
    assert storage.get_item(store.storage_key) is None

    # The welcome message is added again afterwards
    store.ensure_welcome_message()
    assert welcome_positions(store) == [0]


def test_changes_are_published(storage):
    channel = EventChannel("messages")
    snapshots = []
    channel.subscribe(snapshots.append)
    store = MessageStore(session_id="s", storage=storage, channel=channel)

    store.ensure_welcome_message()
    store.add_user_message("hi")
    store.reset_log()

    assert [len(s) for s in snapshots] == [1, 2, 0]


def test_storage_failure_does_not_raise():
    store = MessageStore(session_id="s", storage=FailingStorage())
    store.ensure_welcome_message()
    store.add_user_message("still works")
    assert len(store) == 2


def test_empty_session_id_rejected(storage):
    with pytest.raises(ValueError):
        MessageStore(session_id="", storage=storage)


@pytest.mark.asyncio
async def test_writes_on_event_loop_do_not_block():
    storage = RecordingStorage()
    storage.writes_open.clear()
    store = MessageStore(session_id="s", storage=storage)

    store.ensure_welcome_message()
    store.add_user_message("hello")
    await asyncio.sleep(0.01)

    # The log is updated at once, the held back writes are still pending
    assert len(store) == 2
    assert storage.peek(store.storage_key) is None
    assert storage.sync_calls == []

    storage.writes_open.set()
    await store.flush()
    assert len(json.loads(storage.peek(store.storage_key))) == 2


@pytest.mark.asyncio
async def test_queued_writes_keep_their_order():
    storage = RecordingStorage()
    storage.writes_open.clear()
    store = MessageStore(session_id="s", storage=storage)

    store.ensure_welcome_message()
    store.add_user_message("hello")
    store.reset_log()
    storage.writes_open.set()
    await store.flush()
    assert storage.peek(store.storage_key) is None

    storage.writes_open.clear()
    store.reset_log()
    store.add_user_message("again")
    storage.writes_open.set()
    await store.flush()
    assert [m["content"] for m in json.loads(storage.peek(store.storage_key))] == ["again"]


@pytest.mark.asyncio
async def test_load_from_storage_async():
    storage = RecordingStorage()
    storage.set_item(chat_log_key("s"), json.dumps([make_message("A", Role.USER).model_dump(mode="json")]))
    storage.sync_calls.clear()

    store = MessageStore(session_id="s", storage=storage)
    assert await store.load_from_storage_async()
    assert [m.id for m in store.messages] == ["A"]
    assert storage.sync_calls == []


@pytest.mark.asyncio
async def test_failed_queued_write_is_logged():
    store = MessageStore(session_id="s", storage=FailingStorage())
    store.ensure_welcome_message()
    await store.flush()
    assert len(store) == 1
