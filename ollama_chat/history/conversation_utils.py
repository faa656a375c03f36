"""
Conversation utilities for building outbound chat requests.
"""

from __future__ import annotations

import logging

from ollama_chat.history.models import Message
from ollama_chat.llm.models import ChatRequest, LLMMessage, MessageRole

logger = logging.getLogger(__name__)


def build_chat_request(
    model: str,
    user_message: Message,
    history: list[LLMMessage] | None = None,
    system_prompt: str | None = None,
    stream: bool = True,
) -> ChatRequest:
    """
    Build the request for one turn.

    Order is system prompt (when given), then prior history oldest first,
    then the new user message.

    Args:
        model: Model name the endpoint should run
        user_message: The message just submitted
        history: Settled messages from earlier turns
        system_prompt: Optional instructions placed first
        stream: Whether to ask for a streamed response

    Returns:
        The assembled ChatRequest
    """
    messages: list[LLMMessage] = []
    if system_prompt:
        messages.append(LLMMessage(role=MessageRole.SYSTEM, content=system_prompt))

    if history:
        messages.extend(history)

    messages.append(user_message.to_llm_message())

    logger.debug(
        f"Built chat request with {len(messages)} messages "
        f"({len(history or [])} from history)"
    )
    return ChatRequest(model=model, messages=messages, stream=stream)
