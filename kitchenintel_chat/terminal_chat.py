"""Terminal front end for the KitchenIntel assistant."""

import asyncio
import logging
from typing import List, Optional

from kitchenintel_chat.chat_controller import ChatController
from kitchenintel_chat.chat_models import ChatMessage, ConnectionState, Role

logger = logging.getLogger(__name__)

QUIT_COMMAND = "/quit"
RESET_COMMAND = "/reset"


class TerminalChatController(ChatController):
    """Chat view rendering to stdout and reading from stdin."""

    def __init__(self, *, prompt: str = "> ", **kwargs):
        super().__init__(**kwargs)
        self.prompt = prompt
        self._rendered_ids: List[str] = []

    @staticmethod
    def _format(message: ChatMessage) -> str:
        author = "You" if message.role == Role.USER else "KitchenIntel AI"
        return f"[{message.timestamp}] {author}:\n{message.content}\n"

    async def _read_line(self, prompt: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, input, prompt)
        except EOFError:
            return None

    # ── Hooks ─────────────────────────────────────────────────

    def _on_messages_changed(self, messages: List[ChatMessage]) -> None:
        ids = [m.id for m in messages]
        rendered = len(self._rendered_ids)
        if rendered and ids[:rendered] == self._rendered_ids:
            fresh, redraw = messages[rendered:], False
        else:
            # History was replaced or reset
            if rendered:
                print("\n" + "─" * 40)
            fresh, redraw = messages, True
        for message in fresh:
            if message.role == Role.USER and not redraw:
                # Already visible at the prompt
                continue
            print(self._format(message))
        self._rendered_ids = ids

    def _on_connection_changed(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED:
            print("(connected)")
        elif state == ConnectionState.DISCONNECTED:
            print("(disconnected, type /reset to reconnect)")

    def _on_loading_changed(self, loading: bool) -> None:
        if loading:
            print("KitchenIntel AI is thinking…")

    async def _confirm_reset(self) -> bool:
        answer = await self._read_line("Start a new conversation? This clears the current one. [y/N] ")
        return (answer or "").strip().lower() in ("y", "yes")

    # ── Main loop ─────────────────────────────────────────────

    async def run(self) -> None:
        """Mount, read user input until /quit or EOF, then unmount."""
        await self.mount()
        print(f"Type your message and press Enter. {RESET_COMMAND} starts over, {QUIT_COMMAND} exits.\n")
        try:
            while True:
                line = await self._read_line(self.prompt)
                if line is None or line.strip() == QUIT_COMMAND:
                    break
                if line.strip() == RESET_COMMAND:
                    await self.request_reset()
                    continue
                if not line.strip():
                    continue
                if not self.can_send(line):
                    print("(not connected, message not sent)")
                    continue
                await self.handle_key("Enter", line)
        finally:
            await self.unmount()
