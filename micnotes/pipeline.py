"""Drive a recording through transcription, summarisation and storage."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional

from .assets import LocalAssetStore, RecordedAsset
from .client import APIError
from .config import data_dir, load_config, resolve_api_key
from .kvstore import SQLiteKeyValueStore
from .models import (
    AudioFileRecord,
    Config,
    ConversationKind,
    Language,
    PendingRecord,
    ProcessedRecord,
    RecordStatus,
    VeterinaryContext,
)
from .profiles import ProfileStore, format_profile_context
from .storage import RecordStore, StorageError
from .summarizer import Summarizer
from .transcriber import TranscriptionBackend, WhisperAPITranscriber

logger = logging.getLogger(__name__)


class ProcessingState(str, Enum):
    RECORDED = "recorded"
    PENDING_SAVED = "pending_saved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class ProcessingOutcome:
    state: ProcessingState
    record: Optional[AudioFileRecord] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.state in (ProcessingState.COMPLETED, ProcessingState.PENDING_SAVED)


class ProcessingOrchestrator:
    """Turn finished recordings into stored records.

    A recording is either saved as pending (no network calls) or processed
    right away. Processing transcribes, then summarises, then commits one
    processed record; any failure leaves the store exactly as it was.
    Callers must not process the same record twice concurrently.
    """

    def __init__(
        self,
        store: RecordStore,
        transcriber: TranscriptionBackend,
        summarizer: Summarizer,
        profiles: Optional[ProfileStore] = None,
    ) -> None:
        self.store = store
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.profiles = profiles
        self.states: Dict[str, ProcessingState] = {}

    def _new_pending(
        self,
        asset: RecordedAsset,
        kind: ConversationKind,
        language: Language,
        context: Optional[VeterinaryContext],
    ) -> PendingRecord:
        if kind is ConversationKind.VETERINARY and context is None:
            raise ValueError("Veterinary recordings need a VeterinaryContext before processing.")
        return PendingRecord(
            id=str(uuid.uuid4()),
            asset_ref=asset.ref,
            filename=asset.filename,
            created_at=datetime.now(timezone.utc),
            kind=kind,
            language=language,
            veterinary_context=context if kind is ConversationKind.VETERINARY else None,
        )

    def save_for_later(
        self,
        asset: RecordedAsset,
        kind: ConversationKind,
        language: Language,
        context: Optional[VeterinaryContext] = None,
    ) -> ProcessingOutcome:
        record = self._new_pending(asset, kind, language, context)
        self.store.add(record)
        self.states[record.id] = ProcessingState.PENDING_SAVED
        logger.info("Saved %s as pending", record.id)
        return ProcessingOutcome(ProcessingState.PENDING_SAVED, record=record)

    async def process_recording(
        self,
        asset: RecordedAsset,
        kind: ConversationKind,
        language: Language,
        context: Optional[VeterinaryContext] = None,
    ) -> ProcessingOutcome:
        draft = self._new_pending(asset, kind, language, context)
        self.states[draft.id] = ProcessingState.RECORDED
        outcome = await self._run(draft)
        if outcome.state is ProcessingState.COMPLETED:
            await asyncio.to_thread(self.store.add, outcome.record)
        else:
            # No stored record carries this id.
            self.states.pop(draft.id, None)
        return outcome

    async def process_pending(self, record_id: str) -> ProcessingOutcome:
        record = self.store.get(record_id)
        if record.status is not RecordStatus.PENDING:
            raise StorageError(f"Recording {record_id} has already been processed")
        outcome = await self._run(record)
        if outcome.state is ProcessingState.COMPLETED:
            await asyncio.to_thread(self.store.replace_pending, record_id, outcome.record)
        return outcome

    def delete(self, record_ids: Iterable[str]) -> None:
        record_ids = list(record_ids)
        self.store.delete(record_ids)
        for record_id in record_ids:
            self.states.pop(record_id, None)

    def clear(self) -> None:
        self.store.clear()
        self.states.clear()

    def profile_context(self, record: PendingRecord) -> str:
        if record.kind is not ConversationKind.VETERINARY or self.profiles is None:
            return ""
        return format_profile_context(self.profiles.profiles, record.veterinary_context)

    async def _run(self, draft: PendingRecord) -> ProcessingOutcome:
        logger.info("Processing %s (%s, %s)", draft.id, draft.kind.value, draft.language.value)
        self.states[draft.id] = ProcessingState.PROCESSING
        try:
            transcription = await self.transcriber.transcribe(draft.asset_ref, draft.language)
            summary = await self.summarizer.summarise(
                transcription.text,
                draft.kind,
                draft.language,
                self.profile_context(draft),
            )
        except (APIError, OSError) as exc:
            logger.warning("Processing %s failed: %s", draft.id, exc)
            self.states[draft.id] = ProcessingState.FAILED
            return ProcessingOutcome(ProcessingState.FAILED, error=str(exc), exception=exc)

        processed: ProcessedRecord = draft.complete(
            duration_seconds=transcription.duration_seconds,
            transcript=transcription.text,
            summary=summary.text,
            transcription_cost=transcription.cost,
            summarization_cost=summary.cost,
            token_count=summary.token_count,
        )
        logger.info("Processed %s for $%.4f", processed.id, processed.total_cost)
        self.states[draft.id] = ProcessingState.COMPLETED
        return ProcessingOutcome(ProcessingState.COMPLETED, record=processed)


def build_orchestrator(config: Optional[Config] = None) -> ProcessingOrchestrator:
    """Wire the default on-disk stores and hosted clients from configuration."""

    config = config or load_config()
    root = data_dir(config)
    kv = SQLiteKeyValueStore(root / "micnotes.db")
    assets = LocalAssetStore(root / "media")
    api_key = resolve_api_key(config)
    return ProcessingOrchestrator(
        store=RecordStore(kv, assets),
        transcriber=WhisperAPITranscriber(
            api_key,
            model=config.transcription_model,
            base_url=config.api_base_url,
            timeout=config.api_timeout,
            assets=assets,
        ),
        summarizer=Summarizer(
            api_key,
            model=config.summary_model,
            base_url=config.api_base_url,
            timeout=config.api_timeout,
        ),
        profiles=ProfileStore(kv),
    )
