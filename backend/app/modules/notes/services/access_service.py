import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NoteNotFoundError
from app.modules.notes.models import Note
from app.modules.notes.records import AccessDecision, NoteRecord
from app.modules.notes.services.share_service import SharingRegistry
from app.modules.notes.utils import rbac

logger = logging.getLogger("app.notes.access")


def VisibleNoteQuery(db: Session):
    """Notes that reads may see: soft-deleted rows are always excluded."""
    return db.query(Note).filter(Note.DeletedAt.is_(None))


class AccessResolver:
    def __init__(self, sharing_registry: SharingRegistry):
        self._sharing = sharing_registry

    def Resolve(self, db: Session, note_id: int, user_id: int) -> AccessDecision | None:
        """Return the caller's access level, or None for missing and unshared notes alike.

        Lookup faults resolve to None so an unreadable grant never opens access.
        """
        try:
            note = VisibleNoteQuery(db).filter(Note.Id == note_id).first()
            if note is None:
                return None
            if note.UserId == user_id:
                return AccessDecision(Permission=rbac.OWNER, Note=NoteRecord.FromRow(note))

            permission = self._sharing.Lookup(db, note_id, user_id)
        except SQLAlchemyError:
            logger.exception("access lookup failed for note %s user %s", note_id, user_id)
            return None

        if not rbac.IsValidSharePermission(permission):
            return None
        return AccessDecision(Permission=permission, Note=NoteRecord.FromRow(note))

    def ResolveOrRaise(self, db: Session, note_id: int, user_id: int) -> AccessDecision:
        access = self.Resolve(db, note_id, user_id)
        if access is None:
            raise NoteNotFoundError()
        return access
