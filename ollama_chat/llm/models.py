"""
Core LLM dataclasses for talking to an Ollama-style chat endpoint.

This module provides:
- Provider configuration
- Message structures
- The outbound chat request payload
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageRole(Enum):
    """Roles understood by the chat endpoint."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class LLMMessage:
    """One entry of the request's ``messages`` list."""
    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ChatRequest:
    """Complete chat request structure."""
    model: str
    messages: list[LLMMessage] = field(default_factory=list)
    stream: bool = True

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON body the endpoint expects."""
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "stream": self.stream,
        }


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for the inference endpoint."""
    base_url: str
    model: str
    chat_path: str = "/api/chat"
    api_key: str | None = None

    # Connection settings. read_timeout None means a stream may idle indefinitely
    connect_timeout: float = 10.0
    read_timeout: float | None = None
    write_timeout: float = 10.0
    pool_timeout: float = 10.0
