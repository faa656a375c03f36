"""
LLM backend integration for the chat client.

This package provides:
- Request and provider dataclasses
- The error taxonomy for backend communication
- Streaming response reassembly (``llm.streaming``)
- The httpx transport (``llm.client``)
"""

from __future__ import annotations

from .exceptions import (
    BackendError,
    ChatSessionError,
    LLMError,
    MessageFrozenError,
    StreamingError,
    TransportError,
    TurnInProgressError,
)
from .models import ChatRequest, LLMMessage, MessageRole, ProviderConfig

__all__ = [
    # Exceptions
    "BackendError",
    # Models
    "ChatRequest",
    "ChatSessionError",
    "LLMError",
    "LLMMessage",
    "MessageFrozenError",
    "MessageRole",
    "ProviderConfig",
    "StreamingError",
    "TransportError",
    "TurnInProgressError",
]
