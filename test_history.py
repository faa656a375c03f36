#!/usr/bin/env python3
"""
Tests for the conversation model and request building.
"""

import pytest

from ollama_chat.history.conversation_utils import build_chat_request
from ollama_chat.history.models import Conversation, Message
from ollama_chat.llm.exceptions import MessageFrozenError


def test_assistant_message_is_append_only_while_streaming():
    message = Message(role="assistant", streaming=True)
    message.append("Hel")
    message.append("lo")
    message.finish()

    assert message.content == "Hello"
    with pytest.raises(MessageFrozenError):
        message.append("!")


def test_interrupt_replaces_partial_content():
    message = Message(role="assistant", streaming=True)
    message.append("Half an ans")
    message.interrupt("Request cancelled.")

    assert message.content == "Request cancelled."
    assert message.interrupted is True
    assert message.streaming is False
    with pytest.raises(MessageFrozenError):
        message.interrupt("again")


def test_history_excludes_unsettled_messages():
    conversation = Conversation()
    conversation.append(Message(role="user", content="first"))
    failed = conversation.append(Message(role="assistant", streaming=True))
    failed.interrupt("Sorry")
    conversation.append(Message(role="user", content="second"))
    conversation.append(Message(role="assistant", content="answer"))
    conversation.append(Message(role="assistant", streaming=True))

    history = conversation.to_llm_messages()

    assert [(m.role.value, m.content) for m in history] == [
        ("user", "first"),
        ("user", "second"),
        ("assistant", "answer"),
    ]
    assert len(conversation) == 5
    assert conversation.get(failed.id) is failed


def test_build_chat_request_orders_messages():
    history = Conversation([
        Message(role="user", content="hi"),
        Message(role="assistant", content="hello"),
    ]).to_llm_messages()

    request = build_chat_request(
        "gemma3:4b",
        Message(role="user", content="how are you?"),
        history=history,
        system_prompt="Be kind.",
    )
    payload = request.to_payload()

    assert payload["model"] == "gemma3:4b"
    assert payload["stream"] is True
    assert payload["messages"] == [
        {"role": "system", "content": "Be kind."},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "how are you?"},
    ]


def test_build_chat_request_without_history():
    payload = build_chat_request(
        "m", Message(role="user", content="hi"), stream=False
    ).to_payload()
    assert payload == {
        "model": "m",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": False,
    }
