"""FastAPI application exposing the recording pipeline."""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import (
    FastAPI,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from ..client import MissingCredentialError
from ..models import AudioFileRecord, ConversationKind, Language, RecordStatus, VeterinaryContext
from ..pipeline import ProcessingOrchestrator, ProcessingOutcome, ProcessingState, build_orchestrator
from ..storage import StorageError

app = FastAPI(
    title="micnotes API",
    description="Record, transcribe and summarise conversations.",
    version="0.1.0",
)

_orchestrator_lock = threading.Lock()
_orchestrator: Optional[ProcessingOrchestrator] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    recordings: int
    credential_configured: bool


class VeterinaryContextPayload(BaseModel):
    selected_dogs: List[str] = Field(default_factory=list)
    visit_purpose: str = ""


class RecordingPayload(BaseModel):
    id: str
    status: str
    filename: str
    created_at: datetime
    kind: ConversationKind
    language: Language
    duration_seconds: float
    transcript: str
    summary: str
    transcription_cost: float
    summarization_cost: float
    total_cost: float
    token_count: int
    veterinary_context: Optional[VeterinaryContextPayload] = None


class StatsPayload(BaseModel):
    total_cost: float
    total_duration: float
    pending_count: int
    processed_count: int
    by_language: Dict[str, int] = Field(default_factory=dict)
    by_kind: Dict[str, int] = Field(default_factory=dict)


def get_orchestrator() -> ProcessingOrchestrator:
    global _orchestrator
    if _orchestrator is not None:
        return _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
    return _orchestrator


def set_orchestrator(orchestrator: Optional[ProcessingOrchestrator]) -> None:
    """Swap the process-wide orchestrator (used by tests and embedding apps)."""

    global _orchestrator
    with _orchestrator_lock:
        _orchestrator = orchestrator


def _record_to_payload(record: AudioFileRecord) -> RecordingPayload:
    context = record.veterinary_context
    return RecordingPayload(
        id=record.id,
        status=record.status.value,
        filename=record.filename,
        created_at=record.created_at,
        kind=record.kind,
        language=record.language,
        duration_seconds=record.duration_seconds,
        transcript=record.transcript,
        summary=record.summary,
        transcription_cost=record.transcription_cost,
        summarization_cost=record.summarization_cost,
        total_cost=record.total_cost,
        token_count=record.token_count,
        veterinary_context=(
            VeterinaryContextPayload(
                selected_dogs=sorted(context.selected_dogs),
                visit_purpose=context.visit_purpose,
            )
            if context is not None
            else None
        ),
    )


def _outcome_to_payload(outcome: ProcessingOutcome) -> RecordingPayload:
    if outcome.state is ProcessingState.FAILED:
        code = (
            status.HTTP_401_UNAUTHORIZED
            if isinstance(outcome.exception, MissingCredentialError)
            else status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(status_code=code, detail=outcome.error)
    return _record_to_payload(outcome.record)


@app.get("/health", response_model=HealthResponse)
async def healthcheck() -> HealthResponse:
    orchestrator = await run_in_threadpool(get_orchestrator)
    return HealthResponse(
        recordings=len(orchestrator.store),
        credential_configured=bool(orchestrator.summarizer.api_key),
    )


@app.get("/recordings", response_model=list[RecordingPayload])
async def list_recordings() -> list[RecordingPayload]:
    orchestrator = get_orchestrator()
    return [_record_to_payload(record) for record in orchestrator.store.list_records()]


@app.get("/recordings/stats", response_model=StatsPayload)
async def recording_stats() -> StatsPayload:
    stats = get_orchestrator().store.stats()
    return StatsPayload(
        total_cost=stats.total_cost,
        total_duration=stats.total_duration,
        pending_count=stats.pending_count,
        processed_count=stats.processed_count,
        by_language=stats.by_language,
        by_kind=stats.by_kind,
    )


@app.get("/recordings/{record_id}", response_model=RecordingPayload)
async def get_recording(record_id: str) -> RecordingPayload:
    try:
        record = get_orchestrator().store.get(record_id)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _record_to_payload(record)


@app.delete("/recordings/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recording(record_id: str) -> None:
    orchestrator = get_orchestrator()
    if record_id not in orchestrator.store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Recording {record_id} not found")
    await run_in_threadpool(orchestrator.delete, [record_id])


@app.delete("/recordings", status_code=status.HTTP_204_NO_CONTENT)
async def clear_recordings() -> None:
    await run_in_threadpool(get_orchestrator().clear)


@app.post("/recordings", response_model=RecordingPayload, status_code=status.HTTP_201_CREATED)
async def create_recording(
    file: UploadFile = File(...),
    kind: ConversationKind = Form(ConversationKind.PERSONAL),
    language: Language = Form(Language.ENGLISH),
    process: bool = Form(True),
    dog_ids: Optional[List[str]] = Form(None),
    purpose: str = Form(""),
) -> RecordingPayload:
    orchestrator = get_orchestrator()
    context = None
    if kind is ConversationKind.VETERINARY:
        context = VeterinaryContext(selected_dogs=frozenset(dog_ids or []), visit_purpose=purpose)

    suffix = Path(file.filename or "audio.m4a").suffix or ".m4a"
    asset = await run_in_threadpool(orchestrator.store.assets.import_file, file.file, suffix)

    if not process:
        outcome = await run_in_threadpool(orchestrator.save_for_later, asset, kind, language, context)
        return _record_to_payload(outcome.record)

    outcome = await orchestrator.process_recording(asset, kind, language, context)
    if outcome.state is ProcessingState.FAILED:
        # Nothing references the upload when processing fails.
        await run_in_threadpool(Path(asset.ref).unlink, missing_ok=True)
    return _outcome_to_payload(outcome)


@app.post("/recordings/{record_id}/process", response_model=RecordingPayload)
async def process_recording(record_id: str) -> RecordingPayload:
    orchestrator = get_orchestrator()
    try:
        record = orchestrator.store.get(record_id)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if record.status is not RecordStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Recording is already processed")
    outcome = await orchestrator.process_pending(record_id)
    return _outcome_to_payload(outcome)
