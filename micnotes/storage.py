"""Persistence of recorded conversations as a single JSON snapshot."""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .assets import LocalAssetStore
from .kvstore import KeyValueStore
from .models import (
    AudioFileRecord,
    CollectionStats,
    ConversationKind,
    Language,
    PendingRecord,
    ProcessedRecord,
    RecordStatus,
    VeterinaryContext,
)

RECORDS_KEY = "audioFiles"
SCHEMA_VERSION = 2

# Reference date used by the legacy snapshots' numeric timestamps.
_LEGACY_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when something goes wrong while accessing the storage."""


class RecordStore:
    """Own the canonical collection of recordings.

    Every mutation rewrites the whole snapshot under :data:`RECORDS_KEY`.
    Records whose audio has disappeared are dropped when the store loads.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        assets: Optional[LocalAssetStore] = None,
        key: str = RECORDS_KEY,
    ) -> None:
        self.kv = kv
        self.assets = assets or LocalAssetStore()
        self.key = key
        self._lock = threading.RLock()
        self._records: Dict[str, AudioFileRecord] = {}
        self._load_with_migration()

    # -- loading -----------------------------------------------------------

    def _load_with_migration(self) -> None:
        raw = self.kv.get(self.key)
        if raw is None:
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable recordings snapshot: %s", exc)
            return

        dirty = False
        if isinstance(payload, list):
            logger.info("Migrating %d legacy recordings to schema v%d", len(payload), SCHEMA_VERSION)
            entries, parse = payload, _record_from_legacy
            dirty = True
        elif isinstance(payload, dict) and isinstance(payload.get("records"), list):
            entries, parse = payload["records"], record_from_dict
        else:
            logger.warning("Discarding recordings snapshot with unknown shape")
            return

        for entry in entries:
            try:
                record = parse(entry)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable recording entry: %s", exc)
                dirty = True
                continue
            if not self.assets.exists(record.asset_ref):
                logger.debug("Pruning %s; audio %s is gone", record.id, record.asset_ref)
                dirty = True
                continue
            self._records[record.id] = record

        if dirty:
            self._persist()

    def _persist(self) -> None:
        snapshot = {
            "version": SCHEMA_VERSION,
            "records": [record_to_dict(record) for record in self._records.values()],
        }
        self.kv.set(self.key, json.dumps(snapshot, ensure_ascii=False))

    # -- queries -----------------------------------------------------------

    def list_records(self) -> List[AudioFileRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda record: record.created_at, reverse=True)

    def find(self, record_id: str) -> Optional[AudioFileRecord]:
        with self._lock:
            return self._records.get(record_id)

    def get(self, record_id: str) -> AudioFileRecord:
        record = self.find(record_id)
        if record is None:
            raise StorageError(f"Recording with id {record_id} not found")
        return record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # -- mutations ---------------------------------------------------------

    def add(self, record: AudioFileRecord) -> AudioFileRecord:
        with self._lock:
            if record.id in self._records:
                raise StorageError(f"Recording with id {record.id} already exists")
            self._records[record.id] = record
            self._persist()
        return record

    def replace_pending(self, record_id: str, processed: ProcessedRecord) -> None:
        if processed.id != record_id:
            raise StorageError(f"Replacement id {processed.id} does not match {record_id}")
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                logger.debug("Recording %s vanished before it was processed", record_id)
                return
            if current.status is not RecordStatus.PENDING:
                raise StorageError(f"Recording {record_id} has already been processed")
            self._records[record_id] = processed
            self._persist()

    def delete(self, record_ids: Iterable[str]) -> None:
        with self._lock:
            removed = 0
            for record_id in record_ids:
                record = self._records.pop(record_id, None)
                if record is None:
                    continue
                self._delete_asset(record)
                removed += 1
            if removed:
                self._persist()

    def clear(self) -> None:
        with self._lock:
            for record in self._records.values():
                self._delete_asset(record)
            self._records.clear()
            self._persist()

    def _delete_asset(self, record: AudioFileRecord) -> None:
        try:
            self.assets.delete(record.asset_ref)
        except OSError as exc:
            logger.warning("Could not delete audio %s: %s", record.asset_ref, exc)

    # -- aggregates --------------------------------------------------------

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.list_records() if r.status is RecordStatus.PROCESSED)

    @property
    def total_duration(self) -> float:
        return sum(r.duration_seconds for r in self.list_records())

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.list_records() if r.status is RecordStatus.PENDING)

    @property
    def processed_count(self) -> int:
        return sum(1 for r in self.list_records() if r.status is RecordStatus.PROCESSED)

    def count_by_language(self) -> Dict[Language, int]:
        return dict(Counter(r.language for r in self.list_records()))

    def count_by_kind(self) -> Dict[ConversationKind, int]:
        return dict(Counter(r.kind for r in self.list_records()))

    def stats(self) -> CollectionStats:
        return CollectionStats(
            total_cost=self.total_cost,
            total_duration=self.total_duration,
            pending_count=self.pending_count,
            processed_count=self.processed_count,
            by_language={lang.value: n for lang, n in self.count_by_language().items()},
            by_kind={kind.value: n for kind, n in self.count_by_kind().items()},
        )


def record_to_dict(record: AudioFileRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": record.id,
        "status": record.status.value,
        "asset_ref": record.asset_ref,
        "filename": record.filename,
        "created_at": record.created_at.isoformat(),
        "kind": record.kind.value,
        "language": record.language.value,
        "veterinary_context": _context_to_dict(record.veterinary_context),
    }
    if isinstance(record, ProcessedRecord):
        data.update(
            {
                "duration_seconds": record.duration_seconds,
                "transcript": record.transcript,
                "summary": record.summary,
                "transcription_cost": record.transcription_cost,
                "summarization_cost": record.summarization_cost,
                "token_count": record.token_count,
            }
        )
    return data


def record_from_dict(data: Dict[str, Any]) -> AudioFileRecord:
    status = RecordStatus(data["status"])
    common = dict(
        id=str(data["id"]),
        asset_ref=data["asset_ref"],
        filename=data["filename"],
        created_at=_as_utc(datetime.fromisoformat(data["created_at"])),
        kind=ConversationKind(data["kind"]),
        language=Language(data["language"]),
        veterinary_context=_context_from_dict(data.get("veterinary_context")),
    )
    if status is RecordStatus.PENDING:
        return PendingRecord(**common)
    return ProcessedRecord(
        **common,
        duration_seconds=float(data["duration_seconds"]),
        transcript=data["transcript"],
        summary=data["summary"],
        transcription_cost=float(data["transcription_cost"]),
        summarization_cost=float(data["summarization_cost"]),
        token_count=int(data["token_count"]),
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _context_to_dict(context: Optional[VeterinaryContext]) -> Optional[Dict[str, Any]]:
    if context is None:
        return None
    return {"selected_dogs": sorted(context.selected_dogs), "visit_purpose": context.visit_purpose}


def _context_from_dict(data: Optional[Dict[str, Any]]) -> Optional[VeterinaryContext]:
    if not data:
        return None
    return VeterinaryContext(
        selected_dogs=frozenset(str(dog) for dog in data.get("selected_dogs", [])),
        visit_purpose=data.get("visit_purpose", ""),
    )


def _record_from_legacy(data: Dict[str, Any]) -> AudioFileRecord:
    """Convert an entry of the old flat array, which had no status field."""

    url = str(data["url"])
    asset_ref = url[len("file://"):] if url.startswith("file://") else url
    raw_date = data.get("date")
    if isinstance(raw_date, (int, float)):
        created_at = _LEGACY_EPOCH + timedelta(seconds=raw_date)
    elif raw_date:
        created_at = _as_utc(datetime.fromisoformat(raw_date))
    else:
        created_at = datetime.now(timezone.utc)

    pending = PendingRecord(
        id=str(data.get("id") or asset_ref),
        asset_ref=asset_ref,
        filename=data.get("filename") or asset_ref.rsplit("/", 1)[-1],
        created_at=created_at,
        kind=ConversationKind(data.get("conversationType", "personal")),
        language=Language(data.get("language", "en")),
    )
    transcript = data.get("transcript") or ""
    if not transcript:
        return pending
    return pending.complete(
        duration_seconds=float(data.get("duration", 0.0)),
        transcript=transcript,
        summary=data.get("summary") or "",
        transcription_cost=float(data.get("transcriptionCost", 0.0)),
        summarization_cost=float(data.get("summarizationCost", 0.0)),
        token_count=int(data.get("tokenCount", 0)),
    )
