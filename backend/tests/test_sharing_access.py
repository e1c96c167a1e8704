from datetime import datetime

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import OperationalError

from app.core.errors import NoteNotFoundError
from app.modules.auth.models import User
from app.modules.notes.models import Note, NoteShare
from app.modules.notes.services.access_service import AccessResolver
from app.modules.notes.services.share_service import SharingRegistry
from app.modules.notes.utils import rbac


def _AddNote(session_factory, owner_id, deleted=False):
    db = session_factory()
    try:
        now = datetime.utcnow()
        note = Note(
            UserId=owner_id,
            Title="t",
            Content="c",
            Version=1,
            DeletedAt=now if deleted else None,
            CreatedAt=now,
            UpdatedAt=now,
        )
        db.add(note)
        db.commit()
        return note.Id
    finally:
        db.close()


def test_grant_upserts_permission(session_factory, users):
    registry = SharingRegistry()
    note_id = _AddNote(session_factory, users["owner"].Id)
    db = session_factory()
    try:
        first = registry.Grant(db, note_id, users["reader"].Id, rbac.READ)
        db.commit()
        second = registry.Grant(db, note_id, users["reader"].Id, rbac.EDIT)
        db.commit()

        assert first.Id == second.Id
        assert registry.Lookup(db, note_id, users["reader"].Id) == rbac.EDIT
        assert db.query(NoteShare).count() == 1
        assert [share.UserId for share in registry.ListForNote(db, note_id)] == [users["reader"].Id]
    finally:
        db.close()


def test_resolve_owner_share_and_stranger(session_factory, users):
    registry = SharingRegistry()
    resolver = AccessResolver(registry)
    note_id = _AddNote(session_factory, users["owner"].Id)
    db = session_factory()
    try:
        registry.Grant(db, note_id, users["reader"].Id, rbac.READ)
        registry.Grant(db, note_id, users["editor"].Id, rbac.EDIT)
        db.commit()

        assert resolver.Resolve(db, note_id, users["owner"].Id).Permission == rbac.OWNER
        assert resolver.Resolve(db, note_id, users["reader"].Id).Permission == rbac.READ
        assert resolver.Resolve(db, note_id, users["editor"].Id).Permission == rbac.EDIT
        assert resolver.Resolve(db, note_id, users["stranger"].Id) is None
        assert resolver.Resolve(db, 9999, users["owner"].Id) is None
    finally:
        db.close()


def test_resolve_hides_soft_deleted_notes_even_from_owner(session_factory, users):
    resolver = AccessResolver(SharingRegistry())
    note_id = _AddNote(session_factory, users["owner"].Id, deleted=True)
    db = session_factory()
    try:
        assert resolver.Resolve(db, note_id, users["owner"].Id) is None
    finally:
        db.close()


def test_resolve_ignores_unknown_stored_permission(session_factory, users):
    resolver = AccessResolver(SharingRegistry())
    note_id = _AddNote(session_factory, users["owner"].Id)
    db = session_factory()
    try:
        now = datetime.utcnow()
        db.add(NoteShare(NoteId=note_id, UserId=users["reader"].Id, Permission="ADMIN", CreatedAt=now, UpdatedAt=now))
        db.commit()

        assert resolver.Resolve(db, note_id, users["reader"].Id) is None
    finally:
        db.close()


def _BrokenLookup(db, note_id, user_id):
    raise OperationalError("SELECT Permission FROM note_shares", {}, Exception("connection reset"))


def test_resolve_fails_closed_when_share_lookup_errors(session_factory, users, monkeypatch):
    registry = SharingRegistry()
    resolver = AccessResolver(registry)
    note_id = _AddNote(session_factory, users["owner"].Id)
    db = session_factory()
    try:
        registry.Grant(db, note_id, users["editor"].Id, rbac.EDIT)
        db.commit()
        monkeypatch.setattr(registry, "Lookup", _BrokenLookup)

        assert resolver.Resolve(db, note_id, users["editor"].Id) is None
        # Owners never reach the share table.
        assert resolver.Resolve(db, note_id, users["owner"].Id).Permission == rbac.OWNER
    finally:
        db.close()


def test_update_by_sharer_is_not_found_when_share_lookup_errors(service, users, monkeypatch):
    note = service.CreateNote(users["owner"], "t", "v1")
    service.ShareNote(users["owner"], note.Id, users["editor"].Id, rbac.EDIT)
    monkeypatch.setattr(service._sharing, "Lookup", _BrokenLookup)

    with pytest.raises(NoteNotFoundError):
        service.UpdateNote(users["editor"], note.Id, 1, content="v2")


def test_deleting_target_user_removes_their_shares(session_factory, users):
    registry = SharingRegistry()
    note_id = _AddNote(session_factory, users["owner"].Id)
    db = session_factory()
    try:
        registry.Grant(db, note_id, users["reader"].Id, rbac.READ)
        registry.Grant(db, note_id, users["editor"].Id, rbac.EDIT)
        db.commit()

        db.execute(delete(User).where(User.Id == users["reader"].Id))
        db.commit()

        remaining = [share.UserId for share in registry.ListForNote(db, note_id)]
        assert remaining == [users["editor"].Id]
        assert db.query(NoteShare).filter(NoteShare.UserId == users["reader"].Id).count() == 0
        assert db.query(Note).filter(Note.Id == note_id).count() == 1
    finally:
        db.close()
