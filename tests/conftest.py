"""Test configuration and fixtures."""
import asyncio
import json
from typing import Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from kitchenintel_chat.chat_config import ChatClientConfig, TransportConfig
from kitchenintel_chat.chat_models import ChatMessage, Role
from kitchenintel_chat.storage import MemoryChatStorage
from kitchenintel_chat.transport import ChatTransport


class RecordingStorage(MemoryChatStorage):
    """Memory storage that records sync access and can hold back async writes."""

    def __init__(self):
        super().__init__()
        self.sync_calls: List[str] = []
        self.writes_open = asyncio.Event()
        self.writes_open.set()

    def peek(self, key: str) -> Optional[str]:
        return super().get_item(key)

    def get_item(self, key: str) -> Optional[str]:
        self.sync_calls.append(f"get {key}")
        return super().get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self.sync_calls.append(f"set {key}")
        super().set_item(key, value)

    def remove_item(self, key: str) -> None:
        self.sync_calls.append(f"remove {key}")
        super().remove_item(key)

    async def get_item_async(self, key: str) -> Optional[str]:
        return super().get_item(key)

    async def set_item_async(self, key: str, value: str) -> None:
        await self.writes_open.wait()
        super().set_item(key, value)

    async def remove_item_async(self, key: str) -> None:
        await self.writes_open.wait()
        super().remove_item(key)


def make_message(id: str, role: Role = Role.SYSTEM, content: str = "hi") -> ChatMessage:
    return ChatMessage(id=id, role=role, content=content, timestamp="10:00 AM")


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll predicate on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met within timeout")
        await asyncio.sleep(0.01)


class FakeChatBackend:
    """In-process chat backend speaking the production wire contract.

    Commands understood in the message text:
        /history  reply with the session history as a history frame
        /garbage  reply with a frame that is not JSON
        /hangup   close the connection
    Anything else is answered with ``echo: <text>``.
    """

    def __init__(self):
        self.base_url = ""
        self.received: List[str] = []
        self.connected_sessions: List[str] = []
        self.auth_headers: List[Optional[str]] = []
        self.sockets: List[web.WebSocketResponse] = []
        self.history: Dict[str, List[dict]] = {}

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        session_id = request.match_info["session_id"]
        self.connected_sessions.append(session_id)
        self.auth_headers.append(request.headers.get("Authorization"))
        self.sockets.append(ws)

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                self.received.append(msg.data)
                text = json.loads(msg.data)["message"]
                if text == "/history":
                    await ws.send_json({"message": self.history.get(session_id, [])})
                elif text == "/garbage":
                    await ws.send_str("this is not json")
                elif text == "/hangup":
                    await ws.close()
                    break
                else:
                    await ws.send_json({"message": f"echo: {text}"})
        except ConnectionResetError:
            # Client went away before the reply was written
            pass
        return ws

    async def push(self, data) -> None:
        """Send a raw frame on the most recent connection."""
        ws = self.sockets[-1]
        if isinstance(data, bytes):
            await ws.send_bytes(data)
        else:
            await ws.send_str(data)


@pytest_asyncio.fixture
async def backend():
    fake = FakeChatBackend()
    app = web.Application()
    app.router.add_get("/ws/chat/{session_id}/", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    for ws in fake.sockets:
        if not ws.closed:
            await ws.close()
    await server.close()


@pytest.fixture
def storage():
    return MemoryChatStorage()


@pytest.fixture
def client_config(backend) -> ChatClientConfig:
    return ChatClientConfig(transport=TransportConfig(ws_base_url=backend.base_url))


@pytest_asyncio.fixture
async def transport(backend):
    t = ChatTransport(TransportConfig(ws_base_url=backend.base_url))
    yield t
    await t.dispose()
