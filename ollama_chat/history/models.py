# ollama_chat/history/models.py
from __future__ import annotations

import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from ollama_chat.llm.exceptions import MessageFrozenError
from ollama_chat.llm.models import LLMMessage, MessageRole

Role = Literal["user", "assistant"]


class Message(BaseModel):
    """
    One chat message. Assistant messages start out streaming and are
    append-only until finished; after that the content is frozen.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Role
    content: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    streaming: bool = False
    # Content was replaced by a cancellation or failure notice
    interrupted: bool = False

    def append(self, text: str) -> None:
        if not self.streaming:
            raise MessageFrozenError(f"Message {self.id} is no longer streaming")
        self.content += text

    def finish(self) -> None:
        if not self.streaming:
            raise MessageFrozenError(f"Message {self.id} already finished")
        self.streaming = False

    def interrupt(self, notice: str) -> None:
        """Replace any partial content with ``notice`` and stop streaming."""
        if not self.streaming:
            raise MessageFrozenError(f"Message {self.id} already finished")
        self.content = notice
        self.interrupted = True
        self.streaming = False

    def to_llm_message(self) -> LLMMessage:
        return LLMMessage(role=MessageRole(self.role), content=self.content)


class Conversation:
    """Ordered messages of one chat, oldest first."""

    def __init__(self, messages: list[Message] | None = None):
        self.messages: list[Message] = list(messages or [])

    def append(self, message: Message) -> Message:
        self.messages.append(message)
        return message

    def get(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def clear(self) -> None:
        self.messages.clear()

    def to_llm_messages(self) -> list[LLMMessage]:
        """History for the next request: settled messages only.

        Streaming placeholders and assistant messages that were replaced by a
        notice are left out.
        """
        return [
            m.to_llm_message()
            for m in self.messages
            if not m.streaming and not m.interrupted and m.content
        ]

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)
