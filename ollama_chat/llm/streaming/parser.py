"""
Reassembler for concatenated JSON object streams.

The backend writes one JSON object per generated token, back to back with no
delimiter, and the network splits that byte stream wherever it likes. A chunk
may end in the middle of an object or carry several objects at once. The
reassembler buffers text between chunks and cuts complete top-level objects
out of it by tracking brace depth.
"""

from __future__ import annotations

import codecs
import io
import json
import logging
from collections.abc import Callable
from typing import Any

from .models import (
    ContentDelta,
    FragmentReason,
    MalformedFragment,
    ReassemblerStats,
)

logger = logging.getLogger(__name__)

# Constants
DEFAULT_MAX_BUFFER_CHARS = 1024 * 1024


class StreamReassembler:
    """Turns arbitrarily chunked text into a sequence of parsed JSON objects.

    Malformed fragments never raise: the reassembler skips forward to the
    next ``{`` and keeps going. Each skipped fragment is logged and handed to
    ``on_malformed`` when one is given.
    """

    def __init__(
        self,
        string_aware: bool = True,
        max_buffer_chars: int | None = DEFAULT_MAX_BUFFER_CHARS,
        on_malformed: Callable[[MalformedFragment], None] | None = None,
    ):
        if max_buffer_chars is not None and max_buffer_chars < 1:
            raise ValueError("max_buffer_chars must be at least 1 or None")

        self.string_aware = string_aware
        self.max_buffer_chars = max_buffer_chars
        self.on_malformed = on_malformed
        self.stats = ReassemblerStats()
        self.reset()

    @property
    def buffered(self) -> str:
        """Text received but not yet consumed as a complete object."""
        return self._buffer

    def reset(self) -> None:
        """Drop buffered text and scan state; statistics are kept."""
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._reset_scan()

    def _reset_scan(self) -> None:
        # Scan state survives between feed() calls so a long object is not
        # rescanned from the start every time a chunk arrives.
        self._scan_pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def feed(self, chunk: str | bytes) -> list[dict[str, Any]]:
        """Add a chunk and return every object it completes, in stream order."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []

        self.stats.chunks_fed += 1
        self._buffer += text
        return self._drain()

    def finish(self) -> list[dict[str, Any]]:
        """Signal end of stream.

        Flushes the decoder, then discards whatever is still buffered and
        resets for the next stream.
        """
        objects: list[dict[str, Any]] = []
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._buffer += tail
            objects = self._drain()

        if self._buffer:
            logger.debug(
                "Discarding %d unparsed characters at end of stream",
                len(self._buffer),
            )
            self.stats.chars_discarded += len(self._buffer)

        self.reset()
        return objects

    def _drain(self) -> list[dict[str, Any]]:
        objects: list[dict[str, Any]] = []

        while self._buffer:
            end = self._find_object_end()

            if end == -1:
                if (
                    self.max_buffer_chars is not None
                    and len(self._buffer) > self.max_buffer_chars
                ):
                    self._record_malformed(
                        self._buffer,
                        f"no complete object within {self.max_buffer_chars} characters",
                        FragmentReason.BUFFER_OVERFLOW,
                    )
                    self._resync()
                    continue
                # Incomplete object, wait for more data
                break

            candidate = self._buffer[:end]
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError as e:
                self._record_malformed(candidate, str(e), FragmentReason.PARSE_ERROR)
                self._resync()
                continue

            self._buffer = self._buffer[end:]
            self.stats.objects_emitted += 1
            objects.append(parsed)

        return objects

    def _find_object_end(self) -> int:
        """Return the index just past the first complete object, or -1."""
        buf = self._buffer
        depth = self._depth
        in_string = self._in_string
        escaped = self._escaped

        for i in range(self._scan_pos, len(buf)):
            ch = buf[i]

            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                # Quotes outside any object are noise, not string openers
                if self.string_aware and depth > 0:
                    in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}" and depth > 0:
                depth -= 1
                if depth == 0:
                    self._reset_scan()
                    return i + 1

        self._scan_pos = len(buf)
        self._depth = depth
        self._in_string = in_string
        self._escaped = escaped
        return -1

    def _resync(self) -> None:
        """Skip to the next plausible object start after the buffer head."""
        next_start = self._buffer.find("{", 1)
        if next_start == -1:
            self.stats.chars_discarded += len(self._buffer)
            self._buffer = ""
        else:
            self.stats.chars_discarded += next_start
            self._buffer = self._buffer[next_start:]
        self._reset_scan()

    def _record_malformed(
        self, raw: str, error: str, reason: FragmentReason
    ) -> None:
        fragment = MalformedFragment.from_slice(raw, error, reason)
        self.stats.malformed_fragments += 1
        logger.warning(
            "Failed to parse JSON object (%s): %r %s",
            reason.value,
            fragment.raw,
            error,
        )
        if self.on_malformed is not None:
            self.on_malformed(fragment)

    def get_stats(self) -> dict[str, int]:
        """Get reassembler statistics for monitoring."""
        return self.stats.as_dict()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = ReassemblerStats()


def extract_delta(obj: dict[str, Any]) -> ContentDelta | None:
    """Pull ``message.content`` out of one stream object, if it carries text."""
    message = obj.get("message")
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if isinstance(content, str) and content:
        return ContentDelta(text=content)
    return None


class EfficientStringBuilder:
    """Accumulates text in a StringIO instead of repeated concatenation."""

    def __init__(self):
        self._buffer = io.StringIO()

    def append(self, text: str) -> None:
        self._buffer.write(text)

    def get_value(self) -> str:
        return self._buffer.getvalue()

    def clear(self) -> None:
        self._buffer.seek(0)
        self._buffer.truncate(0)


class DeltaAccumulator:
    """
    Feeds chunks through a reassembler and keeps the running assistant text.
    """

    def __init__(self, reassembler: StreamReassembler | None = None):
        self.reassembler = reassembler or StreamReassembler()
        self._content = EfficientStringBuilder()

    @property
    def content(self) -> str:
        return self._content.get_value()

    def feed(self, chunk: str | bytes) -> list[ContentDelta]:
        return self._collect(self.reassembler.feed(chunk))

    def finish(self) -> list[ContentDelta]:
        return self._collect(self.reassembler.finish())

    def _collect(self, objects: list[dict[str, Any]]) -> list[ContentDelta]:
        deltas = []
        for obj in objects:
            delta = extract_delta(obj)
            if delta is not None:
                self._content.append(delta.text)
                deltas.append(delta)
        return deltas

    def reset(self) -> None:
        """Reset for a new stream."""
        self.reassembler.reset()
        self._content.clear()
