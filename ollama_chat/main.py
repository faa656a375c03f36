"""
Terminal front end for the chat client.

Type a message and press Enter; the reply streams in as it is generated.
Ctrl-C cancels a reply in progress. ``/clear`` empties the conversation,
``/quit`` (or Ctrl-D) exits.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import TextIO

from ollama_chat.chat_service import ChatSession, TurnState
from ollama_chat.config import Configuration
from ollama_chat.history.models import Message
from ollama_chat.llm.client import OllamaClient

PROMPT = "> "


class TerminalRenderer:
    """Writes assistant text to the terminal as deltas are applied."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self._shown: dict[str, int] = {}

    def __call__(self, message: Message) -> None:
        if message.role != "assistant":
            return

        shown = self._shown.get(message.id, 0)
        if message.interrupted:
            # Partial text stays on screen; the notice goes on its own line
            self.out.write(f"\n[{message.content}]")
        else:
            self.out.write(message.content[shown:])
        self._shown[message.id] = len(message.content)

        if not message.streaming:
            self.out.write("\n")
            self._shown.pop(message.id, None)
        self.out.flush()


async def run_repl(
    session: ChatSession,
    read_line: Callable[[], Awaitable[str | None]],
    out: TextIO = sys.stdout,
) -> None:
    """Read lines and run turns until ``/quit`` or end of input."""
    while True:
        line = await read_line()
        if line is None:
            break

        command = line.strip()
        if command == "/quit":
            break
        if command == "/clear":
            await session.clear()
            out.write("Conversation cleared.\n")
            continue

        await session.send_message(line)
        if session.state is TurnState.FAILED and session.error:
            out.write(f"{session.error}\n")


async def _read_stdin_line() -> str | None:
    try:
        return await asyncio.to_thread(input, PROMPT)
    except EOFError:
        return None


@contextlib.contextmanager
def cancel_on_interrupt(session: ChatSession, out: TextIO = sys.stdout):
    """Route Ctrl-C to ``session.cancel()`` for the duration of the block."""

    def signal_handler() -> None:
        """Cancel the reply in progress, if there is one."""
        if not session.cancel():
            out.write("\n(use /quit or Ctrl-D to exit)\n")
            out.flush()

    if sys.platform == "win32":
        yield
        return

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, signal_handler)
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def main() -> None:
    """Main entry point - interactive chat with Ctrl-C cancellation."""
    config = Configuration()

    level = config.get_logging_config().get("level", "INFO")
    logging.basicConfig(
        level=level, format="%(asctime)s - %(levelname)s - %(message)s"
    )

    renderer = TerminalRenderer()

    async with OllamaClient(config.get_provider_config()) as client:
        session = ChatSession.from_configuration(config, client, on_update=renderer)

        try:
            with cancel_on_interrupt(session):
                await run_repl(session, _read_stdin_line)
        finally:
            await session.clear()
            logging.info("Chat session closed")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
