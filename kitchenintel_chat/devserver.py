"""Development chat backend — exercise the client without the production API.

Speaks the same wire contract as the production chat service::

    client -> server   {"message": "<text>"}
    server -> client   {"message": "<reply>"}
    server -> client   {"message": [{"role": "user"|"assistant", "content": "..."}]}   (history, on connect)

Usage::

    poetry run kitchenintel-chat-devserver
    PORT=9000 poetry run kitchenintel-chat-devserver

Replies echo the user's text. Per-session history lives in memory only.
"""

import json
import logging
import os
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

WS_PATH = "/ws/chat/{session_id}/"


def echo_reply(text: str) -> str:
    return f"You said: *{text}*"


class DevHistoryRegistry:
    """Maps session_id -> conversation history in the backend's vocabulary."""

    def __init__(self):
        self._lock = threading.Lock()
        self._histories: Dict[str, List[dict]] = {}

    def history(self, session_id: str) -> List[dict]:
        with self._lock:
            return list(self._histories.get(session_id, []))

    def append(self, session_id: str, role: str, content: str) -> None:
        with self._lock:
            self._histories.setdefault(session_id, []).append({"role": role, "content": content})

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._histories.pop(session_id, None)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._histories)


def create_app(
    registry: Optional[DevHistoryRegistry] = None,
    reply: Callable[[str], str] = echo_reply,
):
    """Create the FastAPI application.

    Args:
        registry: History registry; a fresh one when omitted
        reply: Produces the assistant reply for a user message
    """
    from fastapi import FastAPI, WebSocket, WebSocketDisconnect

    registry = registry or DevHistoryRegistry()
    app = FastAPI(title="KitchenIntel dev chat backend", docs_url=None, redoc_url=None)
    app.state.registry = registry

    @app.get("/health")
    async def health():
        return {"ok": True, "sessions": registry.session_count}

    @app.websocket(WS_PATH)
    async def websocket_chat(ws: WebSocket, session_id: str):
        await ws.accept()
        logger.info(f"[DEVSERVER] Client connected to session {session_id}")

        history = registry.history(session_id)
        if history:
            await ws.send_json({"message": history})

        try:
            while True:
                raw = await ws.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"[DEVSERVER] Ignoring invalid JSON in session {session_id}")
                    continue

                text = payload.get("message") if isinstance(payload, dict) else None
                if not isinstance(text, str) or not text.strip():
                    logger.warning(f"[DEVSERVER] Ignoring frame without message in session {session_id}")
                    continue

                answer = reply(text)
                registry.append(session_id, "user", text)
                registry.append(session_id, "assistant", answer)
                await ws.send_json({"message": answer})
        except WebSocketDisconnect:
            logger.info(f"[DEVSERVER] Client disconnected from session {session_id}")

    return app


def main():
    """Load .env and start the development backend."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    port = int(os.environ.get("PORT", "8000"))

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    print(f"\n  KitchenIntel dev chat backend → ws://localhost:{port}{WS_PATH}\n")
    uvicorn.run(
        "kitchenintel_chat.devserver:create_app",
        factory=True,
        host="127.0.0.1",
        port=port,
    )


if __name__ == "__main__":
    main()
