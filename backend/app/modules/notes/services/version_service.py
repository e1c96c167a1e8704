from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List

from sqlalchemy.orm import Session

from app.modules.notes.models import Note, NoteVersion
from app.modules.notes.records import VersionRecord


class VersionStore:
    """Append-only ledger of note snapshots.

    Never opens or commits a transaction: `Append` adds to the caller's session
    and flushes, so the snapshot commits or rolls back with the note row. One
    append per committed mutation, numbered with the note's new version, is
    the caller's job; the store does not check for gaps or duplicates.
    """

    def Append(
        self,
        db: Session,
        note_id: int,
        title: str,
        content: str,
        version_number: int,
        author_id: int,
    ) -> VersionRecord:
        version = NoteVersion(
            NoteId=note_id,
            Title=title,
            Content=content,
            VersionNumber=version_number,
            CreatedBy=author_id,
            CreatedAt=datetime.utcnow(),
        )
        db.add(version)
        db.flush()
        return VersionRecord.FromRow(version)

    def List(self, db: Session, note_id: int) -> List[VersionRecord]:
        """All snapshots for a note, newest first."""
        versions = (
            db.query(NoteVersion)
            .filter(NoteVersion.NoteId == note_id)
            .order_by(NoteVersion.VersionNumber.desc(), NoteVersion.Id.desc())
            .all()
        )
        return [VersionRecord.FromRow(version) for version in versions]

    def Get(self, db: Session, note_id: int, version_number: int) -> VersionRecord | None:
        version = (
            db.query(NoteVersion)
            .filter(NoteVersion.NoteId == note_id, NoteVersion.VersionNumber == version_number)
            .order_by(NoteVersion.Id.asc())
            .first()
        )
        return VersionRecord.FromRow(version) if version else None


@dataclass(frozen=True)
class LedgerGap:
    NoteId: int
    CurrentVersion: int
    LedgerVersions: List[int]

    @property
    def Missing(self) -> List[int]:
        present = set(self.LedgerVersions)
        return [number for number in range(1, self.CurrentVersion + 1) if number not in present]

    @property
    def Duplicates(self) -> List[int]:
        seen: set[int] = set()
        duplicates: set[int] = set()
        for number in self.LedgerVersions:
            if number in seen:
                duplicates.add(number)
            seen.add(number)
        return sorted(duplicates)


def FindLedgerGaps(db: Session, note_id: int | None = None) -> List[LedgerGap]:
    """Notes whose ledger is not exactly 1..Note.Version, soft-deleted notes included."""
    notes_query = db.query(Note.Id, Note.Version)
    versions_query = db.query(NoteVersion.NoteId, NoteVersion.VersionNumber)
    if note_id is not None:
        notes_query = notes_query.filter(Note.Id == note_id)
        versions_query = versions_query.filter(NoteVersion.NoteId == note_id)

    ledger: Dict[int, List[int]] = {}
    for row in versions_query.order_by(NoteVersion.NoteId, NoteVersion.Id).all():
        ledger.setdefault(row.NoteId, []).append(row.VersionNumber)

    gaps: List[LedgerGap] = []
    for row in notes_query.order_by(Note.Id).all():
        numbers = ledger.get(row.Id, [])
        if numbers != list(range(1, row.Version + 1)):
            gaps.append(LedgerGap(NoteId=row.Id, CurrentVersion=row.Version, LedgerVersions=numbers))
    return gaps
