"""Dataclasses describing persistent objects for micnotes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Union


class ConversationKind(str, Enum):
    PERSONAL = "personal"
    COUPLE = "couple"
    VETERINARY = "veterinary"

    @property
    def display_name(self) -> str:
        return {
            ConversationKind.PERSONAL: "Personal Speech",
            ConversationKind.COUPLE: "Couple Conversation",
            ConversationKind.VETERINARY: "Veterinary Consultation",
        }[self]


class Language(str, Enum):
    """Transcript language; the value is the ISO 639-1 code sent upstream."""

    ENGLISH = "en"
    JAPANESE = "ja"

    @property
    def display_name(self) -> str:
        return "English" if self is Language.ENGLISH else "日本語"


class RecordStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"


@dataclass(frozen=True, slots=True)
class VeterinaryContext:
    """Dogs seeing the doctor plus an optional reason for the visit."""

    selected_dogs: FrozenSet[str] = frozenset()
    visit_purpose: str = ""

    @property
    def has_visit_purpose(self) -> bool:
        return bool(self.visit_purpose.strip())

    @property
    def description(self) -> str:
        if not self.selected_dogs:
            text = "No dogs selected"
        else:
            text = f"Selected dogs: {len(self.selected_dogs)} dog(s)"
        if self.has_visit_purpose:
            text += f"\nPurpose: {self.visit_purpose.strip()}"
        return text


@dataclass(frozen=True, slots=True)
class PendingRecord:
    """A recording saved for later; nothing has been sent upstream yet."""

    id: str
    asset_ref: str
    filename: str
    created_at: datetime
    kind: ConversationKind
    language: Language
    veterinary_context: Optional[VeterinaryContext] = None

    status = RecordStatus.PENDING
    duration_seconds = 0.0
    transcript = ""
    summary = ""
    transcription_cost = 0.0
    summarization_cost = 0.0
    token_count = 0

    @property
    def total_cost(self) -> float:
        return 0.0

    def complete(
        self,
        *,
        duration_seconds: float,
        transcript: str,
        summary: str,
        transcription_cost: float,
        summarization_cost: float,
        token_count: int,
    ) -> "ProcessedRecord":
        """Return the processed replacement for this record, keeping its id."""

        return ProcessedRecord(
            id=self.id,
            asset_ref=self.asset_ref,
            filename=self.filename,
            created_at=self.created_at,
            kind=self.kind,
            language=self.language,
            veterinary_context=self.veterinary_context,
            duration_seconds=duration_seconds,
            transcript=transcript,
            summary=summary,
            transcription_cost=transcription_cost,
            summarization_cost=summarization_cost,
            token_count=token_count,
        )


@dataclass(frozen=True, slots=True)
class ProcessedRecord:
    """A recording that went through transcription and summarisation."""

    id: str
    asset_ref: str
    filename: str
    created_at: datetime
    kind: ConversationKind
    language: Language
    duration_seconds: float
    transcript: str
    summary: str
    transcription_cost: float
    summarization_cost: float
    token_count: int
    veterinary_context: Optional[VeterinaryContext] = None

    status = RecordStatus.PROCESSED

    @property
    def total_cost(self) -> float:
        return self.transcription_cost + self.summarization_cost


AudioFileRecord = Union[PendingRecord, ProcessedRecord]


def formatted_duration(record: AudioFileRecord) -> str:
    seconds = int(record.duration_seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def formatted_cost(amount: float) -> str:
    return f"${amount:.4f}"


@dataclass(slots=True)
class TranscriptionResult:
    text: str
    cost: float
    duration_seconds: float


@dataclass(slots=True)
class SummarizationResult:
    text: str
    cost: float
    token_count: int


@dataclass(slots=True)
class CollectionStats:
    """Aggregates over the stored recordings."""

    total_cost: float
    total_duration: float
    pending_count: int
    processed_count: int
    by_language: dict = field(default_factory=dict)
    by_kind: dict = field(default_factory=dict)


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    openai_api_key: Optional[str] = None
    api_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    summary_model: str = "gpt-3.5-turbo"
    default_language: str = Language.ENGLISH.value
    default_kind: str = ConversationKind.PERSONAL.value
    api_timeout: float = 60.0
    data_dir: Optional[str] = None
