"""
Error types for talking to the inference backend.

The session controller catches every error defined here at its boundary and
turns it into a terminal turn state plus user-facing text:
- TransportError: the backend could not be reached at all
- BackendError: the backend answered with a non-2xx status
- StreamingError: the response was structurally unusable (e.g. no body)
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "ollama",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(LLMError):
    """Network-level failure: connection refused, DNS failure, dropped read."""
    pass


class BackendError(LLMError):
    """The backend returned an error status."""

    def __init__(
        self,
        status_code: int,
        body: str,
        **kwargs,
    ):
        super().__init__(
            f"HTTP error! status: {status_code}, message: {body}",
            status_code=status_code,
            **kwargs,
        )
        self.body = body


class StreamingError(LLMError):
    """Streaming-specific errors."""
    pass


class ChatSessionError(Exception):
    """Misuse of a chat session."""
    pass


class TurnInProgressError(ChatSessionError):
    """A turn is already in flight; only one is allowed at a time."""
    pass


class MessageFrozenError(ChatSessionError):
    """Content was changed on a message that is no longer streaming."""
    pass
