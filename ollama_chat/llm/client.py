"""
HTTP transport for an Ollama-style ``/api/chat`` endpoint.

The session controller only depends on the ``ChatTransport`` protocol; the
httpx-backed ``OllamaClient`` is the production implementation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import httpx

from ..logging_utils import log_operation
from .exceptions import BackendError, StreamingError, TransportError
from .models import ProviderConfig

logger = logging.getLogger(__name__)

HTTP_NO_CONTENT = 204


class ChatTransport(Protocol):
    """What the session needs from a backend connection."""

    def stream_chat(
        self, payload: dict[str, Any]
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Open a streaming response; the context yields raw body chunks."""
        ...

    async def complete_chat(self, payload: dict[str, Any]) -> str:
        """Send a non-streaming request and return the whole body."""
        ...


class OllamaClient:
    """HTTP client for the chat endpoint with streamed and complete responses."""

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/plain",
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        self.config: ProviderConfig = config
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.write_timeout,
                pool=config.pool_timeout,
            ),
            transport=transport,
        )

    @asynccontextmanager
    async def stream_chat(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[AsyncIterator[bytes]]:
        """Open a streaming chat response.

        The connection is released when the context exits, whichever way it
        exits.

        Raises:
            BackendError: The endpoint answered with a non-2xx status.
            StreamingError: The response carried no body.
            TransportError: The endpoint could not be reached.
        """
        try:
            async with self.client.stream(
                "POST", self.config.chat_path, json=payload
            ) as response:
                if not response.is_success:
                    await response.aread()
                    logger.error(
                        "Chat endpoint returned %d: %s",
                        response.status_code,
                        response.text,
                    )
                    raise BackendError(
                        response.status_code,
                        response.text,
                        model=self.config.model,
                    )

                if response.status_code == HTTP_NO_CONTENT:
                    raise StreamingError(
                        "Response body is null",
                        model=self.config.model,
                        status_code=response.status_code,
                    )

                yield self._iter_chunks(response)

        except httpx.TransportError as e:
            logger.error(f"HTTP error during streaming: {e}")
            raise TransportError(
                f"HTTP error: {e!s}", model=self.config.model
            ) from e

    async def _iter_chunks(self, response: httpx.Response) -> AsyncGenerator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.TransportError as e:
            logger.error(f"Stream interrupted: {e}")
            raise TransportError(
                f"Stream interrupted: {e!s}", model=self.config.model
            ) from e
        except httpx.StreamError as e:
            raise StreamingError(
                f"Stream error: {e!s}", model=self.config.model
            ) from e

    @log_operation("complete_chat")
    async def complete_chat(self, payload: dict[str, Any]) -> str:
        """Send a non-streaming chat request and return the raw body text."""
        try:
            response = await self.client.post(self.config.chat_path, json=payload)
        except httpx.TransportError as e:
            logger.error(f"HTTP error: {e}")
            raise TransportError(
                f"HTTP error: {e!s}", model=self.config.model
            ) from e

        if not response.is_success:
            raise BackendError(
                response.status_code, response.text, model=self.config.model
            )
        return response.text

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> OllamaClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
