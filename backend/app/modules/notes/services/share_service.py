from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from app.modules.notes.models import NoteShare
from app.modules.notes.records import ShareRecord


class SharingRegistry:
    """(note, user) -> permission grants. Writes run inside the caller's transaction."""

    def Grant(self, db: Session, note_id: int, user_id: int, permission: str) -> ShareRecord:
        """Upsert: a second grant for the same pair overwrites the permission."""
        share = (
            db.query(NoteShare)
            .filter(NoteShare.NoteId == note_id, NoteShare.UserId == user_id)
            .first()
        )
        now = datetime.utcnow()
        if share:
            share.Permission = permission
            share.UpdatedAt = now
        else:
            share = NoteShare(
                NoteId=note_id,
                UserId=user_id,
                Permission=permission,
                CreatedAt=now,
                UpdatedAt=now,
            )
            db.add(share)
        db.flush()
        return ShareRecord.FromRow(share)

    def Lookup(self, db: Session, note_id: int, user_id: int) -> str | None:
        row = (
            db.query(NoteShare.Permission)
            .filter(NoteShare.NoteId == note_id, NoteShare.UserId == user_id)
            .first()
        )
        return row.Permission if row else None

    def ListForNote(self, db: Session, note_id: int) -> List[ShareRecord]:
        shares = (
            db.query(NoteShare)
            .filter(NoteShare.NoteId == note_id)
            .order_by(NoteShare.CreatedAt.asc(), NoteShare.Id.asc())
            .all()
        )
        return [ShareRecord.FromRow(share) for share in shares]
