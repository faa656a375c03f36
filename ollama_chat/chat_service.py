"""
Chat session controller.

This module owns one conversation and runs one turn at a time:
- Appends the user message and a streaming assistant placeholder
- Sends the request through a ChatTransport
- Feeds response chunks to a StreamReassembler and applies the text deltas
- Handles cancellation and converts failures into a terminal message state

Cancellation is an explicit signal. Every wait on the transport (response
headers, each chunk) is raced against it, so a backend that goes silent can
always be abandoned. Deltas are never applied after the signal is observed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ollama_chat.history.conversation_utils import build_chat_request
from ollama_chat.history.models import Conversation, Message
from ollama_chat.llm.exceptions import BackendError, TransportError, TurnInProgressError
from ollama_chat.llm.streaming.models import ContentDelta, MalformedFragment
from ollama_chat.llm.streaming.parser import (
    DEFAULT_MAX_BUFFER_CHARS,
    DeltaAccumulator,
    StreamReassembler,
)
from ollama_chat.logging_utils import (
    ContextualLogger,
    StreamErrorHandler,
    operation_context,
)

if TYPE_CHECKING:                                        # pragma: no cover
    from ollama_chat.config import Configuration
    from ollama_chat.llm.client import ChatTransport


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Sentinels returned instead of a value when a wait ends without one
_CANCELLED: Any = object()
_END_OF_STREAM: Any = object()


class TurnState(Enum):
    """Lifecycle of a single turn."""
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ErrorKind(Enum):
    """What went wrong in a failed turn, for display."""
    NETWORK = "network"
    BACKEND = "backend"


class SessionNotices(BaseModel):
    """User-facing texts for terminal states."""
    cancelled: str = "Request cancelled."
    failed: str = "Sorry, I encountered an error while generating a response."
    network_error: str = (
        "Network error: Unable to connect to Ollama server. "
        "Please check if the server is running and accessible."
    )
    backend_error: str = "Ollama API Error: {message}"

    def backend_detail(self, message: str) -> str:
        return self.backend_error.replace("{message}", message)


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes:
    return await anext(chunks, _END_OF_STREAM)


class ChatSession:
    """
    Conversation controller: one conversation, at most one turn in flight.
    """

    class ChatSessionConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        transport: Any  # ChatTransport
        model: str
        system_prompt: str | None = None
        stream: bool = True
        include_history: bool = True
        notices: SessionNotices = Field(default_factory=SessionNotices)
        string_aware: bool = True
        max_buffer_chars: Annotated[int, Field(ge=1)] | None = DEFAULT_MAX_BUFFER_CHARS
        on_update: Callable[[Message], None] | None = None

    def __init__(self, session_config: ChatSession.ChatSessionConfig):
        self.transport: ChatTransport = session_config.transport
        self.config = session_config
        self.notices = session_config.notices
        self.conversation = Conversation()

        self._state = TurnState.IDLE
        self._active: Message | None = None
        self._cancel_event = asyncio.Event()
        self._turn_done = asyncio.Event()
        self._turn_done.set()
        self.error: str | None = None
        self.error_kind: ErrorKind | None = None
        self._logger = ContextualLogger({"model": session_config.model})

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        transport: ChatTransport,
        on_update: Callable[[Message], None] | None = None,
    ) -> ChatSession:
        """Create a session from the YAML/env configuration."""
        llm_config = configuration.get_llm_config()
        streaming_config = configuration.get_streaming_config()
        return cls(
            cls.ChatSessionConfig(
                transport=transport,
                model=llm_config["model"],
                system_prompt=llm_config.get("system_prompt"),
                stream=llm_config["stream"],
                include_history=configuration.get_include_history(),
                notices=SessionNotices(**configuration.get_notices_config()),
                string_aware=streaming_config["string_aware"],
                max_buffer_chars=streaming_config["max_buffer_chars"],
                on_update=on_update,
            )
        )

    # ------------------------------------------------------------------ #
    # State                                                              #
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while a turn is in flight."""
        return self._state in (TurnState.SENDING, TurnState.STREAMING)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self.conversation)

    @property
    def active_message(self) -> Message | None:
        """The assistant message of the in-flight turn, if any."""
        return self._active

    def _set_state(self, state: TurnState) -> None:
        logger.debug("Turn state %s -> %s", self._state.value, state.value)
        self._state = state

    def _notify(self, message: Message) -> None:
        if self.config.on_update is not None:
            self.config.on_update(message)

    # ------------------------------------------------------------------ #
    # Public operations                                                  #
    # ------------------------------------------------------------------ #

    async def send_message(self, text: str) -> Message | None:
        """
        Run one turn for ``text`` and return the assistant message.

        Blank input is ignored and returns None. Failures while talking to the
        backend never escape: they end the turn in FAILED state. An
        ``on_update`` callback that raises also fails the turn; if it raises
        again on the failure update, that error propagates once the session
        is idle again.

        Raises:
            TurnInProgressError: Another turn is still in flight.
        """
        text = text.strip()
        if not text:
            return None
        if self.is_busy:
            raise TurnInProgressError("A response is still being generated")

        # Everything that can raise on bad config happens before any state changes
        history = (
            self.conversation.to_llm_messages() if self.config.include_history else []
        )
        user_message = Message(role="user", content=text)
        assistant = Message(role="assistant", content="", streaming=True)
        request = build_chat_request(
            model=self.config.model,
            user_message=user_message,
            history=history,
            system_prompt=self.config.system_prompt,
            stream=self.config.stream,
        )
        turn_logger = self._logger.bind(turn_id=assistant.id)
        accumulator = DeltaAccumulator(
            StreamReassembler(
                string_aware=self.config.string_aware,
                max_buffer_chars=self.config.max_buffer_chars,
                on_malformed=lambda fragment: self._on_malformed(turn_logger, fragment),
            )
        )

        self.conversation.append(user_message)
        self.conversation.append(assistant)
        self._active = assistant
        self._cancel_event = asyncio.Event()
        self._turn_done = asyncio.Event()
        self.error = None
        self.error_kind = None
        self._set_state(TurnState.SENDING)

        try:
            async with operation_context(
                "chat_turn", context={"turn_id": assistant.id, "stream": request.stream}
            ):
                try:
                    self._notify(user_message)
                    self._notify(assistant)
                    if request.stream:
                        await self._run_streaming(
                            request.to_payload(), assistant, accumulator
                        )
                    else:
                        await self._run_complete(
                            request.to_payload(), assistant, accumulator
                        )
                except Exception as e:
                    self._fail(assistant, e, turn_logger)
        except asyncio.CancelledError:
            # The task running this turn was cancelled from outside
            if assistant.streaming:
                self._cancel(assistant, accumulator, turn_logger)
            raise
        finally:
            if assistant.streaming:
                # Settles a turn whose failure handling raised
                assistant.interrupt(self.notices.failed)
            if self.is_busy:
                self._set_state(TurnState.FAILED)
            self._active = None
            self._turn_done.set()

        turn_logger.info(
            "Turn finished",
            state=self._state.value,
            content_chars=len(assistant.content),
            **accumulator.reassembler.get_stats(),
        )
        return assistant

    def cancel(self) -> bool:
        """Ask the in-flight turn to stop. Returns False if nothing is running."""
        if not self.is_busy:
            return False
        self._cancel_event.set()
        return True

    async def clear(self) -> None:
        """Empty the conversation and error state.

        A turn still in flight is cancelled and awaited first, so no stream is
        left writing into a message that is no longer listed.
        """
        while self.is_busy:
            self.cancel()
            await self._turn_done.wait()

        self.conversation.clear()
        self.error = None
        self.error_kind = None
        self._set_state(TurnState.IDLE)

    # ------------------------------------------------------------------ #
    # Turn internals                                                     #
    # ------------------------------------------------------------------ #

    async def _run_streaming(
        self,
        payload: dict[str, Any],
        assistant: Message,
        accumulator: DeltaAccumulator,
    ) -> None:
        turn_logger = self._logger.bind(turn_id=assistant.id)

        async with contextlib.AsyncExitStack() as stack:
            chunks = await self._until_cancelled(
                stack.enter_async_context(self.transport.stream_chat(payload))
            )
            if chunks is _CANCELLED:
                self._cancel(assistant, accumulator, turn_logger)
                return

            if hasattr(chunks, "aclose"):
                stack.push_async_callback(chunks.aclose)

            self._set_state(TurnState.STREAMING)
            while True:
                chunk = await self._until_cancelled(_next_chunk(chunks))
                if chunk is _CANCELLED:
                    self._cancel(assistant, accumulator, turn_logger)
                    return
                if chunk is _END_OF_STREAM:
                    break
                self._apply(assistant, accumulator.feed(chunk))

            self._apply(assistant, accumulator.finish())

        self._complete(assistant, turn_logger)

    async def _run_complete(
        self,
        payload: dict[str, Any],
        assistant: Message,
        accumulator: DeltaAccumulator,
    ) -> None:
        turn_logger = self._logger.bind(turn_id=assistant.id)

        body = await self._until_cancelled(self.transport.complete_chat(payload))
        if body is _CANCELLED:
            self._cancel(assistant, accumulator, turn_logger)
            return

        self._apply(assistant, accumulator.feed(body))
        self._apply(assistant, accumulator.finish())
        self._complete(assistant, turn_logger)

    async def _until_cancelled(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the cancel signal fires first.

        Returns ``_CANCELLED`` in that case, after the pending work has been
        cancelled and settled. Errors from ``aw`` propagate as usual.
        """
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            # Let the pending read unwind before the stream is closed under it
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if not self._cancel_event.is_set():
            return task.result()

        # Cancellation wins even over a result that is already available
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return _CANCELLED

    def _apply(self, assistant: Message, deltas: list[ContentDelta]) -> None:
        for delta in deltas:
            assistant.append(delta.text)
            self._notify(assistant)

    def _complete(self, assistant: Message, turn_logger: ContextualLogger) -> None:
        assistant.finish()
        self._set_state(TurnState.COMPLETED)
        turn_logger.debug("Turn completed")
        self._notify(assistant)

    def _cancel(
        self,
        assistant: Message,
        accumulator: DeltaAccumulator,
        turn_logger: ContextualLogger,
    ) -> None:
        accumulator.reset()
        assistant.interrupt(self.notices.cancelled)
        self._set_state(TurnState.CANCELLED)
        turn_logger.info("Turn cancelled", partial_chars_dropped=True)
        self._notify(assistant)

    def _fail(
        self,
        assistant: Message,
        error: Exception,
        turn_logger: ContextualLogger,
    ) -> None:
        category = StreamErrorHandler.log_failure(
            error, "chat_turn", context={"turn_id": assistant.id}
        )

        if isinstance(error, TransportError) or category == "network_error":
            self.error_kind = ErrorKind.NETWORK
            self.error = self.notices.network_error
        elif isinstance(error, BackendError):
            self.error_kind = ErrorKind.BACKEND
            self.error = self.notices.backend_detail(str(error))
        else:
            self.error_kind = ErrorKind.BACKEND
            self.error = self.notices.backend_detail(str(error) or "Unknown error")

        if assistant.streaming:
            assistant.interrupt(self.notices.failed)
        self._set_state(TurnState.FAILED)
        turn_logger.debug("Turn failed", error_kind=self.error_kind.value)
        self._notify(assistant)

    @staticmethod
    def _on_malformed(
        turn_logger: ContextualLogger, fragment: MalformedFragment
    ) -> None:
        turn_logger.warning(
            "Skipped malformed stream fragment",
            reason=fragment.reason.value,
            fragment=fragment.raw,
            error=fragment.error,
        )
