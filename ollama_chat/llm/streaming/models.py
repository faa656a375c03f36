"""
Streaming dataclasses for the chat response reassembler.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Matches how much of a bad fragment ends up in a log line
MAX_FRAGMENT_PREVIEW = 100


class FragmentReason(Enum):
    """Why a slice of the stream was dropped."""
    PARSE_ERROR = "parse_error"
    BUFFER_OVERFLOW = "buffer_overflow"


@dataclass(frozen=True)
class ContentDelta:
    """Incremental assistant text to append to the in-progress message."""
    text: str


@dataclass(frozen=True)
class MalformedFragment:
    """Diagnostic for a slice that could not be parsed and was skipped."""
    raw: str
    error: str
    reason: FragmentReason = FragmentReason.PARSE_ERROR

    @classmethod
    def from_slice(
        cls,
        raw: str,
        error: str,
        reason: FragmentReason = FragmentReason.PARSE_ERROR,
    ) -> MalformedFragment:
        return cls(raw=raw[:MAX_FRAGMENT_PREVIEW], error=error, reason=reason)


@dataclass
class ReassemblerStats:
    """Counters for one reassembler, kept across streams until reset."""
    chunks_fed: int = 0
    objects_emitted: int = 0
    malformed_fragments: int = 0
    chars_discarded: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "chunks_fed": self.chunks_fed,
            "objects_emitted": self.objects_emitted,
            "malformed_fragments": self.malformed_fragments,
            "chars_discarded": self.chars_discarded,
        }
