import json
from datetime import datetime, timedelta, timezone

import pytest

from micnotes.kvstore import MemoryKeyValueStore, SQLiteKeyValueStore
from micnotes.models import ConversationKind, Language, PendingRecord, RecordStatus, VeterinaryContext
from micnotes.storage import RECORDS_KEY, RecordStore, StorageError

NOW = datetime(2025, 7, 1, 9, 30, tzinfo=timezone.utc)


def _pending(asset, record_id="rec-1", kind=ConversationKind.PERSONAL, language=Language.ENGLISH, **kwargs):
    return PendingRecord(
        id=record_id,
        asset_ref=asset.ref,
        filename=asset.filename,
        created_at=kwargs.pop("created_at", NOW),
        kind=kind,
        language=language,
        **kwargs,
    )


def _processed(pending, transcript="hello world", summary="greeting"):
    return pending.complete(
        duration_seconds=90.0,
        transcript=transcript,
        summary=summary,
        transcription_cost=0.009,
        summarization_cost=0.0004,
        token_count=200,
    )


def test_add_and_reload_round_trip(kv, make_audio):
    store = RecordStore(kv)
    vet = _pending(
        make_audio("vet.m4a"),
        "rec-vet",
        kind=ConversationKind.VETERINARY,
        veterinary_context=VeterinaryContext(frozenset({"dog-a", "dog-b"}), "Annual checkup"),
    )
    done = _processed(_pending(make_audio("done.m4a"), "rec-done", language=Language.JAPANESE))
    store.add(vet)
    store.add(done)

    reloaded = RecordStore(kv)
    assert {r.id: r for r in reloaded.list_records()} == {"rec-vet": vet, "rec-done": done}


def test_add_rejects_duplicate_ids(kv, make_audio):
    store = RecordStore(kv)
    record = _pending(make_audio())
    store.add(record)
    with pytest.raises(StorageError):
        store.add(record)


def test_replace_pending_transitions_once(kv, make_audio):
    store = RecordStore(kv)
    pending = _pending(make_audio())
    store.add(pending)
    assert store.pending_count == 1

    processed = _processed(pending)
    store.replace_pending(pending.id, processed)

    record = store.get(pending.id)
    assert record.status is RecordStatus.PROCESSED
    assert record.transcript and record.summary
    assert store.pending_count == 0
    assert store.processed_count == 1

    with pytest.raises(StorageError):
        store.replace_pending(pending.id, processed)


def test_replace_pending_ignores_unknown_id(kv, make_audio):
    store = RecordStore(kv)
    ghost = _processed(_pending(make_audio(), "ghost"))
    store.replace_pending("ghost", ghost)
    assert len(store) == 0
    assert kv.get(RECORDS_KEY) is None


def test_delete_removes_audio_and_is_idempotent(kv, make_audio):
    store = RecordStore(kv)
    asset = make_audio()
    store.add(_pending(asset))

    store.delete(["rec-1"])
    assert len(store) == 0
    assert not store.assets.exists(asset.ref)
    snapshot = kv.get(RECORDS_KEY)

    store.delete(["rec-1"])
    assert len(store) == 0
    assert kv.get(RECORDS_KEY) == snapshot


def test_delete_still_removes_record_when_audio_already_gone(kv, make_audio, tmp_path):
    store = RecordStore(kv)
    asset = make_audio()
    store.add(_pending(asset))
    (tmp_path / "clip.m4a").unlink()

    store.delete(["rec-1"])
    assert "rec-1" not in store
    assert json.loads(kv.get(RECORDS_KEY))["records"] == []


def test_clear_empties_collection_and_audio(kv, make_audio):
    store = RecordStore(kv)
    first, second = make_audio("a.m4a"), make_audio("b.m4a")
    store.add(_pending(first, "a"))
    store.add(_processed(_pending(second, "b")))

    store.clear()
    assert store.list_records() == []
    assert not store.assets.exists(first.ref)
    assert not store.assets.exists(second.ref)
    assert RecordStore(kv).list_records() == []


def test_aggregates(kv, make_audio):
    store = RecordStore(kv)
    store.add(_pending(make_audio("p.m4a"), "p", kind=ConversationKind.COUPLE))
    store.add(_processed(_pending(make_audio("x.m4a"), "x")))
    store.add(_processed(_pending(make_audio("y.m4a"), "y", language=Language.JAPANESE)))

    assert store.total_cost == pytest.approx(2 * 0.0094)
    assert store.total_duration == pytest.approx(180.0)
    assert store.pending_count == 1
    assert store.processed_count == 2
    assert store.count_by_language() == {Language.ENGLISH: 2, Language.JAPANESE: 1}
    assert store.count_by_kind() == {ConversationKind.COUPLE: 1, ConversationKind.PERSONAL: 2}
    assert store.stats().by_language == {"en": 2, "ja": 1}


def test_list_is_newest_first(kv, make_audio):
    store = RecordStore(kv)
    store.add(_pending(make_audio("old.m4a"), "old", created_at=NOW - timedelta(days=1)))
    store.add(_pending(make_audio("new.m4a"), "new"))
    assert [r.id for r in store.list_records()] == ["new", "old"]


def test_stale_records_are_pruned_on_load(kv, make_audio, tmp_path):
    store = RecordStore(kv)
    store.add(_pending(make_audio("keep.m4a"), "keep"))
    store.add(_pending(make_audio("gone.m4a"), "gone"))
    (tmp_path / "gone.m4a").unlink()

    reloaded = RecordStore(kv)
    assert [r.id for r in reloaded.list_records()] == ["keep"]
    persisted = json.loads(kv.get(RECORDS_KEY))
    assert [entry["id"] for entry in persisted["records"]] == ["keep"]


def test_corrupt_snapshot_starts_empty(make_audio):
    kv = MemoryKeyValueStore({RECORDS_KEY: "{not json"})
    store = RecordStore(kv)
    assert store.list_records() == []
    store.add(_pending(make_audio()))
    assert len(RecordStore(kv)) == 1


def test_legacy_array_is_migrated(make_audio):
    done, todo = make_audio("done.m4a"), make_audio("todo.m4a")
    legacy = [
        {
            "url": "file://" + done.ref,
            "filename": "done.m4a",
            "date": 772000000.0,
            "duration": 90.0,
            "transcript": "hello world",
            "summary": "greeting",
            "conversationType": "veterinary",
            "language": "ja",
            "transcriptionCost": 0.009,
            "summarizationCost": 0.0004,
            "tokenCount": 200,
        },
        {"url": todo.ref, "filename": "todo.m4a", "date": 772000100.0, "transcript": ""},
    ]
    kv = MemoryKeyValueStore({RECORDS_KEY: json.dumps(legacy)})

    store = RecordStore(kv)
    by_file = {r.filename: r for r in store.list_records()}
    assert by_file["done.m4a"].status is RecordStatus.PROCESSED
    assert by_file["done.m4a"].kind is ConversationKind.VETERINARY
    assert by_file["done.m4a"].total_cost == pytest.approx(0.0094)
    assert by_file["todo.m4a"].status is RecordStatus.PENDING
    assert json.loads(kv.get(RECORDS_KEY))["version"] == 2


def test_sqlite_backend_persists_between_instances(tmp_path, make_audio):
    db_path = tmp_path / "store.db"
    store = RecordStore(SQLiteKeyValueStore(db_path))
    record = _pending(make_audio())
    store.add(record)

    assert RecordStore(SQLiteKeyValueStore(db_path)).get("rec-1") == record


def test_sqlite_key_value_operations(tmp_path):
    kv = SQLiteKeyValueStore(tmp_path / "kv.db")
    assert kv.get("missing") is None
    kv.set("k", "one")
    kv.set("k", "two")
    assert kv.get("k") == "two"
    kv.delete("k")
    assert kv.get("k") is None


def test_legacy_iso_dates_sort_alongside_new_records(make_audio):
    old = make_audio("old.m4a")
    legacy = [{"url": old.ref, "filename": "old.m4a", "date": "2024-01-01T10:00:00"}]
    kv = MemoryKeyValueStore({RECORDS_KEY: json.dumps(legacy)})

    store = RecordStore(kv)
    store.add(_pending(make_audio("new.m4a"), record_id="rec-new"))

    records = store.list_records()
    assert [r.id for r in records] == ["rec-new", old.ref]
    assert records[1].created_at == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert store.pending_count == 2


def test_naive_timestamps_in_snapshot_are_read_as_utc(make_audio):
    asset = make_audio()
    entry = {
        "id": "rec-1",
        "status": "pending",
        "asset_ref": asset.ref,
        "filename": asset.filename,
        "created_at": "2025-07-01T09:30:00",
        "kind": "personal",
        "language": "en",
    }
    kv = MemoryKeyValueStore({RECORDS_KEY: json.dumps({"version": 2, "records": [entry]})})

    assert RecordStore(kv).get("rec-1").created_at == NOW


def test_wrongly_shaped_entry_is_skipped(make_audio):
    good, bad = make_audio("good.m4a"), make_audio("bad.m4a")
    entries = [
        {
            "id": "good",
            "status": "pending",
            "asset_ref": good.ref,
            "filename": "good.m4a",
            "created_at": NOW.isoformat(),
            "kind": "personal",
            "language": "en",
        },
        {
            "id": "bad",
            "status": "pending",
            "asset_ref": bad.ref,
            "filename": "bad.m4a",
            "created_at": NOW.isoformat(),
            "kind": "veterinary",
            "language": "en",
            "veterinary_context": "oops",
        },
    ]
    kv = MemoryKeyValueStore({RECORDS_KEY: json.dumps({"version": 2, "records": entries})})

    store = RecordStore(kv)
    assert [r.id for r in store.list_records()] == ["good"]
    assert [r["id"] for r in json.loads(kv.get(RECORDS_KEY))["records"]] == ["good"]
