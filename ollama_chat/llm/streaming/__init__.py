"""
Streaming support for the chat client.

This package contains:
- Reassembly of concatenated JSON objects from a chunked byte stream
- Extraction of assistant text deltas from reassembled objects
"""

from .models import ContentDelta, FragmentReason, MalformedFragment, ReassemblerStats
from .parser import DeltaAccumulator, StreamReassembler, extract_delta

__all__ = [
    "ContentDelta",
    "DeltaAccumulator",
    "FragmentReason",
    "MalformedFragment",
    "ReassemblerStats",
    "StreamReassembler",
    "extract_delta",
]
