"""Terminal chat client — talk to the KitchenIntel assistant from a shell.

Usage::

    poetry run kitchenintel-chat

    # Against the development backend:
    poetry run kitchenintel-chat-devserver &
    CHAT_WS_URL=ws://localhost:8000 poetry run kitchenintel-chat

Environment variables:
    CHAT_WS_URL             — Base URL of the chat backend (default: ws://localhost:8000)
    CHAT_AUTH_TOKEN         — Auth token (default: the token stored by the dashboard login)
    CHAT_CONNECT_TIMEOUT    — Handshake timeout in seconds (default: none)
    CHAT_RECONNECT_ATTEMPTS — Reconnect attempts after a dropped connection (default: 0)
    CHAT_STORAGE            — memory, file or mongodb (default: file)
    CHAT_STORAGE_PATH       — Directory of the file storage (default: ~/.kitchenintel/chat)
    MONGODB_CONNECTION      — MongoDB URI for the mongodb storage
    LOG_LEVEL               — Logging level (default: WARNING)

Loads .env from the current working directory or any parent directory.
"""

import asyncio
import logging
import os

logger = logging.getLogger(__name__)


async def run_chat() -> None:
    from kitchenintel_chat.auth import get_current_token_async
    from kitchenintel_chat.chat_config import ChatClientConfig
    from kitchenintel_chat.session import ChatSession
    from kitchenintel_chat.terminal_chat import TerminalChatController

    config = ChatClientConfig.from_env()
    storage = config.storage.create_storage()
    if not config.transport.auth_token:
        config.transport.auth_token = await get_current_token_async(storage)

    session = ChatSession(config=config, storage=storage)
    controller = TerminalChatController(session=session)
    await controller.run()


def main():
    """Load .env, configure logging, and run the terminal chat."""
    # Load .env BEFORE reading any CHAT_* variables
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        asyncio.run(run_chat())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
