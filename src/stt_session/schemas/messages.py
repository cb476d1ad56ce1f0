"""Wire models for the streaming recognize protocol.

Outbound control messages (start/stop) and the three inbound shapes the
server sends: recognizer state, indexed result batches and bare errors.
"""

from __future__ import annotations

from typing import Any, Literal, NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr


class WordTiming(NamedTuple):
    """Start/end offsets of a single word, in seconds from stream start."""

    word: str
    start: float
    end: float


class WordConfidence(NamedTuple):
    word: str
    confidence: float


class TranscriptionSettings(BaseModel):
    """Recognizer configuration sent once as the start control message."""

    model_config = ConfigDict(extra="allow", frozen=True)

    action: Literal["start"] = "start"
    content_type: str = Field(
        validation_alias=AliasChoices("content_type", "content-type"), serialization_alias="content-type"
    )
    continuous: bool | None = None
    inactivity_timeout: int | None = None
    keywords: list[str] | None = None
    keywords_threshold: float | None = None
    max_alternatives: int | None = None
    interim_results: bool | None = None
    word_alternatives_threshold: float | None = None
    word_confidence: bool | None = None
    timestamps: bool | None = None
    profanity_filter: bool | None = None
    smart_formatting: bool | None = None
    speaker_labels: bool | None = None

    @classmethod
    def for_pcm(cls, sample_rate: int, channels: int = 1, **options: Any) -> TranscriptionSettings:
        """Settings for raw little-endian 16-bit PCM at the given rate."""
        content_type = f"audio/l16;rate={sample_rate}"
        if channels != 1:
            content_type += f";channels={channels}"
        return cls(content_type=content_type, **options)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class TranscriptionStop(BaseModel):
    """Fixed sentinel that ends the current recognition request."""

    model_config = ConfigDict(frozen=True)

    action: Literal["stop"] = "stop"

    def to_wire(self) -> str:
        return self.model_dump_json()


class TranscriptionAlternative(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    transcript: str
    confidence: float | None = None
    timestamps: list[tuple[str, float, float]] | None = None
    word_confidence: list[tuple[str, float]] | None = None

    @property
    def word_timings(self) -> list[WordTiming]:
        return [WordTiming(*entry) for entry in self.timestamps or []]

    @property
    def word_confidences(self) -> list[WordConfidence]:
        return [WordConfidence(*entry) for entry in self.word_confidence or []]


class TranscriptionResult(BaseModel):
    """One utterance segment, partial until ``final`` is set.

    The first alternative is the recognizer's best hypothesis; ``text`` and
    ``confidence`` read from it.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    final: bool = False
    alternatives: list[TranscriptionAlternative] = Field(default_factory=list)
    keywords_result: dict[str, Any] | None = None
    word_alternatives: list[dict[str, Any]] | None = None

    @property
    def is_final(self) -> bool:
        return self.final

    @property
    def best(self) -> TranscriptionAlternative | None:
        return self.alternatives[0] if self.alternatives else None

    @property
    def text(self) -> str:
        best = self.best
        return best.transcript if best else ""

    @property
    def confidence(self) -> float | None:
        best = self.best
        return best.confidence if best else None


class TranscriptionResultWrapper(BaseModel):
    """A contiguous run of results starting at ``result_index``."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    result_index: int = Field(ge=0, validation_alias=AliasChoices("result_index", "resultIndex"))
    results: list[TranscriptionResult]


class TranscriptionState(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    state: StrictStr

    @property
    def is_listening(self) -> bool:
        return self.state == "listening"
