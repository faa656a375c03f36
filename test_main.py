#!/usr/bin/env python3
"""
Tests for the terminal front end.
"""

import asyncio
import io
import os
import signal
import sys
from contextlib import asynccontextmanager

import pytest

from ollama_chat.chat_service import ChatSession
from ollama_chat.history.models import Message
from ollama_chat.llm.exceptions import BackendError
from ollama_chat.main import TerminalRenderer, cancel_on_interrupt, run_repl


class ScriptedTransport:
    def __init__(self, replies):
        self.replies = list(replies)

    @asynccontextmanager
    async def stream_chat(self, payload):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply

        async def chunks():
            for chunk in reply:
                yield chunk

        yield chunks()

    async def complete_chat(self, payload):
        raise NotImplementedError


def scripted_lines(*lines):
    pending = list(lines)

    async def read_line():
        return pending.pop(0) if pending else None

    return read_line


def test_renderer_prints_only_new_text():
    out = io.StringIO()
    renderer = TerminalRenderer(out)
    message = Message(role="assistant", streaming=True)

    renderer(message)
    message.append("Hel")
    renderer(message)
    message.append("lo")
    renderer(message)
    message.finish()
    renderer(message)

    assert out.getvalue() == "Hello\n"


def test_renderer_shows_notice_after_partial_text():
    out = io.StringIO()
    renderer = TerminalRenderer(out)
    message = Message(role="assistant", streaming=True)
    message.append("Hel")
    renderer(message)
    message.interrupt("Request cancelled.")
    renderer(message)

    assert out.getvalue() == "Hel\n[Request cancelled.]\n"


def test_renderer_ignores_user_messages():
    out = io.StringIO()
    TerminalRenderer(out)(Message(role="user", content="hi"))
    assert out.getvalue() == ""


@pytest.mark.asyncio
async def test_repl_runs_turns_until_quit():
    out = io.StringIO()
    transport = ScriptedTransport([
        [b'{"message":{"content":"Hi!"}}'],
        BackendError(500, "oops"),
    ])
    session = ChatSession(ChatSession.ChatSessionConfig(
        transport=transport, model="m", on_update=TerminalRenderer(out)
    ))

    await run_repl(session, scripted_lines("hello", "again", "/quit", "never"), out)

    text = out.getvalue()
    assert text.startswith("Hi!\n")
    assert "Ollama API Error: HTTP error! status: 500, message: oops" in text
    assert len(session.messages) == 4


@pytest.mark.asyncio
async def test_repl_clear_command():
    out = io.StringIO()
    transport = ScriptedTransport([[b'{"message":{"content":"Hi!"}}']])
    session = ChatSession(ChatSession.ChatSessionConfig(transport=transport, model="m"))

    await run_repl(session, scripted_lines("hello", "/clear"), out)

    assert session.messages == ()
    assert "Conversation cleared." in out.getvalue()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal handling")
@pytest.mark.asyncio
async def test_interrupt_handler_is_scoped_to_the_block():
    out = io.StringIO()
    session = ChatSession(ChatSession.ChatSessionConfig(
        transport=ScriptedTransport([]), model="m"
    ))

    with cancel_on_interrupt(session, out):
        os.kill(os.getpid(), signal.SIGINT)
        for _ in range(100):
            if out.getvalue():
                break
            await asyncio.sleep(0.01)

    assert "(use /quit or Ctrl-D to exit)" in out.getvalue()
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
