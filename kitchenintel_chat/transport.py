"""WebSocket transport between a chat session and the chat backend.

One :class:`ChatTransport` keeps at most one live connection, keyed by the
current session id. Inbound frames are decoded into chat messages and handed
to the session's handler; outbound user messages are written as
``{"message": text}`` frames. Failures never propagate to the caller: they
flip :attr:`ChatTransport.state` to ``disconnected``, are logged and are
published on :attr:`ChatTransport.errors`.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

import aiohttp

from kitchenintel_chat.auth import auth_headers
from kitchenintel_chat.chat_config import TransportConfig
from kitchenintel_chat.chat_models import ChatMessage, ConnectionState
from kitchenintel_chat.events import EventChannel, ObservableValue
from kitchenintel_chat.frames import (
    HistoryFrame,
    MalformedFrame,
    OutboundFrame,
    SingleMessageFrame,
    parse_frame,
)
from kitchenintel_chat.identity import MessageIdFactory

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Union[ChatMessage, List[ChatMessage]]], None]


class ChatTransportError(Exception):
    """A connection problem, reported on the transport's error channel."""
    def __init__(self, message: str, session_id: Optional[str] = None):
        self.session_id = session_id
        super().__init__(message)


class MalformedFrameError(ChatTransportError):
    """An inbound frame that was dropped because it could not be interpreted."""
    def __init__(self, frame: MalformedFrame, session_id: Optional[str] = None):
        self.frame = frame
        super().__init__(f"Malformed frame: {frame.reason}", session_id=session_id)


class ChatTransport:
    """Single bidirectional chat connection per session id."""

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        *,
        ids: Optional[MessageIdFactory] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        welcome_content: Optional[str] = None,
    ):
        """Initialize a disconnected transport.

        Args:
            config: Endpoint, auth and retry settings
            ids: Message id factory shared with the session's message store
            http_session: Optional aiohttp session; one is created (and owned) on first connect otherwise
            welcome_content: Markdown of the welcome message announced on open
        """
        self.config = config or TransportConfig()
        self.ids = ids or MessageIdFactory()
        self.welcome_content = welcome_content
        self.state: ObservableValue[ConnectionState] = ObservableValue(ConnectionState.DISCONNECTED, "connection")
        self.errors: EventChannel[ChatTransportError] = EventChannel("transport-errors")

        self._http = http_session
        self._owns_http = http_session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._session_id: Optional[str] = None
        self._on_message: Optional[MessageHandler] = None
        # Bumped by connect() and close(); stale handshakes and readers compare against it
        self._generation = 0

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def is_connected(self) -> bool:
        return self.state.value == ConnectionState.CONNECTED

    def url_for(self, session_id: str) -> str:
        return self.config.url_for(session_id)

    def _headers(self) -> Dict[str, str]:
        return auth_headers(self.config.auth_token)

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    # ── Connection lifecycle ──────────────────────────────────

    async def connect(self, session_id: str, on_message: MessageHandler) -> bool:
        """Open the connection for session_id, closing any previous one first.

        Args:
            session_id: Session to connect; selects the backend endpoint
            on_message: Receives a ChatMessage (append) or a list of them (history replace)

        Returns:
            True if the connection is open
        """
        if not session_id:
            raise ValueError("session_id must not be empty")
        await self.close()
        self._session_id = session_id
        self._on_message = on_message
        return await self._open()

    async def _open(self) -> bool:
        generation = self._generation
        session_id = self._session_id
        url = self.url_for(session_id)
        self.state.set(ConnectionState.CONNECTING)
        logger.info(f"[WS] Connecting session {session_id} to {url}")

        try:
            ws = await asyncio.wait_for(self._handshake(url), timeout=self.config.connect_timeout)
        except asyncio.TimeoutError:
            return self._connect_failed(generation, f"Timed out after {self.config.connect_timeout}s connecting to {url}")
        except (aiohttp.ClientError, OSError) as e:
            return self._connect_failed(generation, f"Could not connect to {url}: {type(e).__name__}: {e}")

        if generation != self._generation:
            # close() or another connect() happened during the handshake
            logger.debug(f"[WS] Discarding superseded connection for session {session_id}")
            await ws.close()
            return False

        self._ws = ws
        self.state.set(ConnectionState.CONNECTED)
        logger.info(f"[WS] Connection established for session {session_id}")

        if self.config.announce_welcome_on_open:
            self._deliver(ChatMessage.welcome(self.welcome_content))

        self._reader_task = asyncio.create_task(self._read_loop(ws, generation))
        return True

    async def _handshake(self, url: str) -> aiohttp.ClientWebSocketResponse:
        return await self._get_http().ws_connect(url, headers=self._headers())

    def _connect_failed(self, generation: int, reason: str) -> bool:
        if generation == self._generation:
            logger.warning(f"[WS] {reason}")
            self.state.set(ConnectionState.DISCONNECTED)
            self.errors.publish(ChatTransportError(reason, session_id=self._session_id))
        return False

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, generation: int) -> None:
        session_id = self._session_id
        try:
            async for msg in ws:
                if generation != self._generation:
                    break
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self.handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"[WS] Error in session {session_id}: {ws.exception()}")
                    break
        except aiohttp.ClientError as e:
            logger.error(f"[WS] Error in session {session_id}: {type(e).__name__}: {e}")
        finally:
            if generation == self._generation:
                self._on_unexpected_close(session_id, ws.close_code)

    def _on_unexpected_close(self, session_id: Optional[str], close_code: Optional[int]) -> None:
        self._ws = None
        self._reader_task = None
        self.state.set(ConnectionState.DISCONNECTED)
        logger.info(f"[WS] Connection closed for session {session_id} (code {close_code})")
        self.errors.publish(ChatTransportError(f"Connection closed (code {close_code})", session_id=session_id))

        if self.config.reconnect.enabled:
            self._reconnect_task = asyncio.create_task(self._reconnect(self._generation))

    async def _reconnect(self, generation: int) -> None:
        policy = self.config.reconnect
        for attempt in range(policy.max_attempts):
            delay = policy.delay_for(attempt)
            logger.info(f"[WS] Reconnecting session {self._session_id} in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{policy.max_attempts})")
            await asyncio.sleep(delay)
            if generation != self._generation:
                return
            if await self._open():
                return
        logger.warning(f"[WS] Giving up on session {self._session_id} after {policy.max_attempts} attempts")

    async def close(self) -> None:
        """Close the connection. Safe to call when not connected."""
        self._generation += 1
        current = asyncio.current_task()

        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect and reconnect is not current and not reconnect.done():
            reconnect.cancel()
            try:
                await reconnect
            except asyncio.CancelledError:
                pass

        reader, self._reader_task = self._reader_task, None
        if reader and reader is not current and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
            logger.info(f"[WS] Closed connection for session {self._session_id}")

        self.state.set(ConnectionState.DISCONNECTED)

    async def dispose(self) -> None:
        """Close the connection and the aiohttp session if this transport created it."""
        await self.close()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    # ── Frames ────────────────────────────────────────────────

    def _deliver(self, payload: Union[ChatMessage, List[ChatMessage]]) -> None:
        if self._on_message is not None:
            self._on_message(payload)

    def handle_frame(self, raw: Union[str, bytes]) -> None:
        """Decode an inbound frame and hand the result to the message handler."""
        frame = parse_frame(raw)
        if isinstance(frame, HistoryFrame):
            self._deliver(frame.to_messages(self.ids))
        elif isinstance(frame, SingleMessageFrame):
            self._deliver(frame.to_message(self.ids))
        else:
            logger.debug(f"[WS] Dropping malformed frame for session {self._session_id}: {frame.reason}")
            self.errors.publish(MalformedFrameError(frame, session_id=self._session_id))

    def can_send(self, text: Optional[str]) -> bool:
        """Whether send(text) would write a frame."""
        return (
            bool(text and text.strip())
            and self.is_connected
            and self._ws is not None
            and not self._ws.closed
        )

    async def send(self, text: str) -> bool:
        """Write a user message frame.

        Returns:
            True if the frame was written. There is no delivery acknowledgement.
        """
        if not self.can_send(text):
            logger.debug(f"[WS] Not sending (connected={self.is_connected}, blank={not (text or '').strip()})")
            return False
        try:
            await self._ws.send_str(OutboundFrame(message=text).to_wire())
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            logger.warning(f"[WS] Send failed for session {self._session_id}: {type(e).__name__}: {e}")
            return False
        return True
