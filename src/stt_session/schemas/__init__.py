"""Protocol message schemas."""

from .messages import (
    TranscriptionAlternative,
    TranscriptionResult,
    TranscriptionResultWrapper,
    TranscriptionSettings,
    TranscriptionState,
    TranscriptionStop,
    WordConfidence,
    WordTiming,
)

__all__ = [
    "TranscriptionAlternative",
    "TranscriptionResult",
    "TranscriptionResultWrapper",
    "TranscriptionSettings",
    "TranscriptionState",
    "TranscriptionStop",
    "WordConfidence",
    "WordTiming",
]
