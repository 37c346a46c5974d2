#!/usr/bin/env python3
"""Terminal chat sample — talk to the KitchenIntel assistant.

    cd samples/chat
    poetry run python app.py

Connects to ws://localhost:8000 unless CHAT_WS_URL is set. Start
``kitchenintel-chat-devserver`` first to chat with the echo backend.

Environment variables:
    CHAT_WS_URL       — Base URL of the chat backend
    CHAT_AUTH_TOKEN   — Auth token sent as ``Authorization: Token <token>``
    CHAT_STORAGE      — memory, file or mongodb (default: file)
"""
from kitchenintel_chat.standalone import main

if __name__ == "__main__":
    main()
