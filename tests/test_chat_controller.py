import pytest
import pytest_asyncio

from kitchenintel_chat.chat_controller import ChatController, HeadlessChatController
from kitchenintel_chat.chat_models import ConnectionState, Role, WELCOME_MESSAGE_ID
from .conftest import wait_until


@pytest_asyncio.fixture
async def controller(client_config):
    c = HeadlessChatController(config=client_config)
    await c.mount()
    yield c
    await c.unmount()


def test_controller_is_abstract():
    with pytest.raises(TypeError):
        ChatController()


@pytest.mark.asyncio
async def test_mount_renders_welcome(controller):
    assert controller.is_connected
    assert controller.connection_states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert [m.id for m in controller.rendered_messages] == [WELCOME_MESSAGE_ID]


@pytest.mark.asyncio
async def test_enter_sends_draft(controller):
    assert await controller.handle_key("Enter", "Show me last week's waste")
    await wait_until(lambda: len(controller.rendered_messages) == 3)

    assert controller.rendered_messages[1].role == Role.USER
    assert controller.rendered_messages[2].content == "echo: Show me last week's waste"
    assert controller.loading_states == [True, False]


@pytest.mark.asyncio
async def test_shift_enter_and_other_keys_are_not_consumed(controller, backend):
    assert not await controller.handle_key("Enter", "draft", shift=True)
    assert not await controller.handle_key("a", "draft")
    assert len(controller.rendered_messages) == 1
    assert backend.received == []


@pytest.mark.asyncio
async def test_can_send(controller):
    assert controller.can_send()
    assert controller.can_send("hello")
    assert not controller.can_send("   ")


@pytest.mark.asyncio
async def test_reset_confirmed(controller):
    old_id = controller.session.session_id
    await controller.send_message("hello")
    await wait_until(lambda: len(controller.rendered_messages) == 3)

    assert await controller.request_reset()
    assert controller.session.session_id != old_id
    assert [m.id for m in controller.rendered_messages] == [WELCOME_MESSAGE_ID]


@pytest.mark.asyncio
async def test_reset_declined(client_config):
    controller = HeadlessChatController(config=client_config, confirm_reset=False)
    await controller.mount()
    try:
        old_id = controller.session.session_id
        assert not await controller.request_reset()
        assert controller.session.session_id == old_id
    finally:
        await controller.unmount()


@pytest.mark.asyncio
async def test_unmount_detaches(client_config):
    controller = HeadlessChatController(config=client_config)
    await controller.mount()
    await controller.unmount()

    assert not controller.is_connected
    assert not controller.can_send("hello")
    assert controller.session.message_events.subscriber_count == 0
    assert controller.connection_states[-1] == ConnectionState.DISCONNECTED
