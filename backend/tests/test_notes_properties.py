import threading
from datetime import datetime

import pytest

from app.core.errors import NoteNotFoundError, VersionConflictError
from app.modules.notes.models import Note, NoteVersion
from app.modules.notes.services.cache_service import NoteCacheKeys
from app.modules.notes.services.version_service import FindLedgerGaps


def _LedgerNumbers(session_factory, note_id):
    db = session_factory()
    try:
        return [
            row.VersionNumber
            for row in db.query(NoteVersion.VersionNumber)
            .filter(NoteVersion.NoteId == note_id)
            .order_by(NoteVersion.CreatedAt, NoteVersion.Id)
            .all()
        ]
    finally:
        db.close()


def _CurrentNote(session_factory, note_id):
    db = session_factory()
    try:
        return db.query(Note).filter(Note.Id == note_id).one()
    finally:
        db.close()


def test_ledger_is_gapless_across_mixed_mutations(service, session_factory, users):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    version = 1
    for step in range(2, 6):
        version = service.UpdateNote(owner, note.Id, version, content=f"v{step}").Note.Version
    service.UpdateNote(owner, note.Id, version, content=f"v{version}")
    version = service.RevertNote(owner, note.Id, 2).Version
    with pytest.raises(VersionConflictError):
        service.UpdateNote(owner, note.Id, 1, content="stale")

    assert _LedgerNumbers(session_factory, note.Id) == list(range(1, version + 1))
    db = session_factory()
    try:
        assert FindLedgerGaps(db) == []
    finally:
        db.close()


@pytest.mark.parametrize("offset", [-1, 1, 5])
def test_wrong_expected_version_leaves_note_untouched(service, session_factory, users, offset):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    service.UpdateNote(owner, note.Id, 1, content="v2")

    with pytest.raises(VersionConflictError):
        service.UpdateNote(owner, note.Id, 2 + offset, content="v3")

    stored = _CurrentNote(session_factory, note.Id)
    assert (stored.Version, stored.Content) == (2, "v2")
    assert _LedgerNumbers(session_factory, note.Id) == [1, 2]


def test_revert_leaves_earlier_rows_untouched(service, session_factory, users):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    service.UpdateNote(owner, note.Id, 1, content="v2")
    before, _ = service.ListVersions(owner, note.Id)

    service.RevertNote(owner, note.Id, 1)

    after, _ = service.ListVersions(owner, note.Id)
    assert after.Versions[1:] == before.Versions
    assert after.Versions[0].VersionNumber == 3
    assert after.Versions[0].Content == "v1"


def test_cache_consistency_scenario(service, users):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "original")

    miss, miss_cached = service.GetNote(owner, note.Id)
    hit, hit_cached = service.GetNote(owner, note.Id)
    assert (miss_cached, hit_cached) == (False, True)
    assert hit.model_dump(mode="json") == miss.model_dump(mode="json")

    service.UpdateNote(owner, note.Id, 1, content="changed")

    fresh, fresh_cached = service.GetNote(owner, note.Id)
    assert fresh_cached is False
    assert fresh.Content == "changed"
    assert fresh.Version == 2

    again, again_cached = service.GetNote(owner, note.Id)
    assert again_cached is True
    assert again.Content == "changed"


def _UpdateBeforeFill(monkeypatch, cache, key, update):
    """Delay the cache fill for key until update has committed and evicted."""
    original_set = cache.Set
    fired = []

    def _set(set_key, value, ttl=None):
        if set_key == key and not fired:
            fired.append(set_key)
            update()
        return original_set(set_key, value, ttl)

    monkeypatch.setattr(cache, "Set", _set)
    return fired


def test_fill_racing_an_update_is_not_served(service, cache, users, monkeypatch):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "original")
    fired = _UpdateBeforeFill(
        monkeypatch,
        cache,
        NoteCacheKeys.Note(note.Id),
        lambda: service.UpdateNote(owner, note.Id, 1, content="changed"),
    )

    racing, _ = service.GetNote(owner, note.Id)
    assert fired
    assert racing.Content == "original"

    after, after_cached = service.GetNote(owner, note.Id)
    assert after_cached is False
    assert (after.Version, after.Content) == (2, "changed")

    again, again_cached = service.GetNote(owner, note.Id)
    assert again_cached is True
    assert again.Content == "changed"


def test_version_listing_fill_racing_an_update_is_not_served(service, cache, users, monkeypatch):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    fired = _UpdateBeforeFill(
        monkeypatch,
        cache,
        NoteCacheKeys.NoteVersions(note.Id),
        lambda: service.UpdateNote(owner, note.Id, 1, content="v2"),
    )

    racing, _ = service.ListVersions(owner, note.Id)
    assert fired
    assert racing.Count == 1

    after, after_cached = service.ListVersions(owner, note.Id)
    assert after_cached is False
    assert [v.VersionNumber for v in after.Versions] == [2, 1]


def test_concurrent_updates_exactly_one_wins(service, session_factory, users, monkeypatch):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")

    # Both writers must have read version 1 before either writes.
    barrier = threading.Barrier(2, timeout=10)
    original_lock = service._LockNote

    def _lock_then_wait(db, note_id):
        row = original_lock(db, note_id)
        barrier.wait()
        return row

    monkeypatch.setattr(service, "_LockNote", _lock_then_wait)

    outcomes = []
    outcomes_lock = threading.Lock()

    def _writer(content):
        try:
            result = service.UpdateNote(owner, note.Id, 1, content=content)
            outcome = ("ok", result.Note.Version)
        except VersionConflictError as exc:
            outcome = ("conflict", exc.current_version)
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_writer, args=(f"from {name}",)) for name in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == [("conflict", 2), ("ok", 2)]
    stored = _CurrentNote(session_factory, note.Id)
    assert stored.Version == 2
    assert stored.Content in {"from a", "from b"}
    assert _LedgerNumbers(session_factory, note.Id) == [1, 2]


def test_concurrent_revert_and_update_serialize(service, session_factory, users, monkeypatch):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    service.UpdateNote(owner, note.Id, 1, content="v2")

    barrier = threading.Barrier(2, timeout=10)
    original_lock = service._LockNote

    def _lock_then_wait(db, note_id):
        row = original_lock(db, note_id)
        barrier.wait()
        return row

    monkeypatch.setattr(service, "_LockNote", _lock_then_wait)

    outcomes = []
    outcomes_lock = threading.Lock()

    def _run(name, action):
        try:
            version = action()
            outcome = (name, "ok", version)
        except VersionConflictError as exc:
            outcome = (name, "conflict", exc.current_version)
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [
        threading.Thread(target=_run, args=("revert", lambda: service.RevertNote(owner, note.Id, 1).Version)),
        threading.Thread(
            target=_run,
            args=("update", lambda: service.UpdateNote(owner, note.Id, 2, content="v3").Note.Version),
        ),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(outcomes) == 2
    assert sorted((kind, version) for _name, kind, version in outcomes) == [("conflict", 3), ("ok", 3)]
    winner = next(name for name, kind, _version in outcomes if kind == "ok")
    stored = _CurrentNote(session_factory, note.Id)
    assert stored.Version == 3
    assert stored.Content == ("v1" if winner == "revert" else "v3")
    assert _LedgerNumbers(session_factory, note.Id) == [1, 2, 3]


def test_soft_delete_between_lock_and_write_is_not_found(service, session_factory, users, monkeypatch):
    owner = users["owner"]
    note = service.CreateNote(owner, "t", "v1")
    original_lock = service._LockNote

    def _lock_then_delete(db, note_id):
        row = original_lock(db, note_id)
        other = session_factory()
        try:
            other.query(Note).filter(Note.Id == note_id).update({Note.DeletedAt: datetime.utcnow()})
            other.commit()
        finally:
            other.close()
        return row

    monkeypatch.setattr(service, "_LockNote", _lock_then_delete)

    with pytest.raises(NoteNotFoundError):
        service.UpdateNote(owner, note.Id, 1, content="v2")

    assert _LedgerNumbers(session_factory, note.Id) == [1]
