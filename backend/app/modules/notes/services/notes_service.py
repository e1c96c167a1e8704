import logging
import math
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, List, Tuple

from sqlalchemy import Integer, column, func, literal_column, or_, text, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.cache import CacheStore
from app.core.errors import (
    AccessDeniedError,
    NoteNotFoundError,
    NotesError,
    StorageFailureError,
    ValidationError,
    VersionConflictError,
    VersionNotFoundError,
)
from app.core.settings import Settings
from app.modules.auth.deps import UserContext
from app.modules.auth.models import User
from app.modules.notes.models import Note, NoteMedia
from app.modules.notes.records import (
    MediaRecord,
    MediaUpload,
    NoteRecord,
    ShareRecord,
    UpdateResult,
    VersionRecord,
)
from app.modules.notes.schemas import (
    NoteDetailOut,
    NoteListOut,
    NoteMediaOut,
    NoteOut,
    NoteSearchOut,
    NoteVersionListOut,
    NoteVersionOut,
    PaginationOut,
)
from app.modules.notes.services.access_service import AccessResolver, VisibleNoteQuery
from app.modules.notes.services.cache_service import NoteCacheInvalidator, NoteCacheKeys
from app.modules.notes.services.share_service import SharingRegistry
from app.modules.notes.services.version_service import VersionStore
from app.modules.notes.utils import rbac

logger = logging.getLogger("app.notes")

TITLE_MAX_LENGTH = 255
SEARCH_MIN_LENGTH = 2
LIST_MAX_LIMIT = 100


def _CleanTitle(title: str | None) -> str:
    value = (title or "").strip()
    if not value:
        raise ValidationError("Title and content cannot be empty.")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters.")
    return value


def _CleanContent(content: str | None) -> str:
    value = (content or "").strip()
    if not value:
        raise ValidationError("Title and content cannot be empty.")
    return value


def _EscapeLike(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _HeadVersion(version_list: dict) -> int | None:
    # Ledger listings are newest first.
    versions = version_list.get("Versions") or []
    return versions[0].get("VersionNumber") if versions else None


class NotesService:
    """Note mutations and reads.

    Every mutation is one transaction: the note row change and its ledger
    append commit together or not at all. Cache eviction runs only after the
    commit and can never fail the mutation.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: CacheStore,
        settings: Settings,
        access_resolver: AccessResolver | None = None,
        version_store: VersionStore | None = None,
        sharing_registry: SharingRegistry | None = None,
        invalidator: NoteCacheInvalidator | None = None,
    ):
        self._session_factory = session_factory
        self._cache = cache
        self._settings = settings
        self._sharing = sharing_registry or SharingRegistry()
        self._access = access_resolver or AccessResolver(self._sharing)
        self._versions = version_store or VersionStore()
        self._invalidator = invalidator or NoteCacheInvalidator(cache)

    # -- plumbing -----------------------------------------------------------

    @contextmanager
    def _Transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except NotesError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("note transaction failed")
            raise StorageFailureError() from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def _Read(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            logger.exception("note read failed")
            raise StorageFailureError() from exc
        finally:
            db.close()

    def _AfterCommit(
        self,
        note_id: int | None = None,
        owner_id: int | None = None,
        searches: bool = False,
    ) -> None:
        try:
            if note_id is not None:
                self._invalidator.InvalidateNote(note_id)
            if owner_id is not None:
                self._invalidator.InvalidateUserListings(owner_id)
                if searches:
                    self._invalidator.InvalidateUserSearches(owner_id)
        except Exception:  # noqa: BLE001
            logger.exception("cache invalidation failed after commit (note=%s owner=%s)", note_id, owner_id)

    def _CheckMedia(self, media: MediaUpload | None) -> None:
        if media is None:
            return
        max_bytes = self._settings.MediaMaxBytes
        if media.Size > max_bytes:
            raise ValidationError(f"Media file must be {max_bytes // (1024 * 1024)}MB or smaller")

    def _AttachMedia(self, db: Session, note_id: int, media: MediaUpload) -> MediaRecord:
        row = NoteMedia(
            NoteId=note_id,
            FileName=media.FileName,
            MimeType=media.MimeType,
            Size=media.Size,
            Data=media.Data,
            CreatedAt=datetime.utcnow(),
        )
        db.add(row)
        db.flush()
        return MediaRecord.FromRow(row)

    def _LockNote(self, db: Session, note_id: int) -> Note:
        note = (
            VisibleNoteQuery(db)
            .filter(Note.Id == note_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if note is None:
            raise NoteNotFoundError()
        return note

    def _BumpVersion(
        self,
        db: Session,
        note: Note,
        title: str,
        content: str,
        read_version: int,
    ) -> NoteRecord:
        """Write title/content at read_version + 1, only if nobody moved the row since it was read."""
        now = datetime.utcnow()
        new_version = read_version + 1
        result = db.execute(
            update(Note)
            .where(Note.Id == note.Id, Note.Version == read_version, Note.DeletedAt.is_(None))
            .values(Title=title, Content=content, Version=new_version, UpdatedAt=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = db.query(Note.Version, Note.DeletedAt).filter(Note.Id == note.Id).first()
            if current is None or current.DeletedAt is not None:
                # Soft-deleted after the lock was taken.
                raise NoteNotFoundError()
            raise VersionConflictError(current_version=current.Version, provided_version=read_version)
        return replace(
            NoteRecord.FromRow(note),
            Title=title,
            Content=content,
            Version=new_version,
            UpdatedAt=now,
        )

    # -- mutations ----------------------------------------------------------

    def CreateNote(
        self,
        user: UserContext,
        title: str | None,
        content: str | None,
        media: MediaUpload | None = None,
    ) -> NoteRecord:
        title = _CleanTitle(title)
        content = _CleanContent(content)
        self._CheckMedia(media)

        with self._Transaction() as db:
            now = datetime.utcnow()
            note = Note(
                UserId=user.Id,
                Title=title,
                Content=content,
                Version=1,
                CreatedAt=now,
                UpdatedAt=now,
            )
            db.add(note)
            db.flush()
            self._versions.Append(db, note.Id, note.Title, note.Content, 1, user.Id)
            if media is not None:
                self._AttachMedia(db, note.Id, media)
            record = NoteRecord.FromRow(note)

        logger.info("note %s created by user %s", record.Id, user.Id)
        self._AfterCommit(owner_id=user.Id, searches=True)
        return record

    def UpdateNote(
        self,
        user: UserContext,
        note_id: int,
        expected_version: int | None,
        title: str | None = None,
        content: str | None = None,
        media: MediaUpload | None = None,
    ) -> UpdateResult:
        new_title = (title or "").strip()
        new_content = (content or "").strip()
        if not new_title and not new_content:
            raise ValidationError("Title or content must be provided.")
        if expected_version is None:
            raise ValidationError("Version number is required.")
        if expected_version < 1:
            raise ValidationError("Version number must be a positive integer.")
        if len(new_title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters.")
        self._CheckMedia(media)

        with self._Transaction() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)
            if not rbac.CanEditNote(access.Permission):
                raise AccessDeniedError("You have read-only access to this note.")

            note = self._LockNote(db, note_id)
            title_changed = bool(new_title) and new_title != note.Title
            content_changed = bool(new_content) and new_content != note.Content

            if not title_changed and not content_changed:
                unchanged = NoteRecord.FromRow(note)
                db.rollback()
                logger.info("note %s update by user %s had no changes", note_id, user.Id)
                return UpdateResult(Note=unchanged, Changed=False)

            if note.Version != expected_version:
                logger.info(
                    "note %s update by user %s conflicted (current=%s provided=%s)",
                    note_id,
                    user.Id,
                    note.Version,
                    expected_version,
                )
                raise VersionConflictError(current_version=note.Version, provided_version=expected_version)

            record = self._BumpVersion(
                db,
                note,
                new_title if title_changed else note.Title,
                new_content if content_changed else note.Content,
                expected_version,
            )
            self._versions.Append(db, record.Id, record.Title, record.Content, record.Version, user.Id)
            if media is not None:
                self._AttachMedia(db, record.Id, media)

        logger.info("note %s updated to version %s by user %s", record.Id, record.Version, user.Id)
        self._AfterCommit(note_id=record.Id, owner_id=record.UserId, searches=True)
        return UpdateResult(Note=record, Changed=True)

    def DeleteNote(self, user: UserContext, note_id: int) -> None:
        with self._Transaction() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)
            if not rbac.CanDeleteNote(access.Permission):
                raise AccessDeniedError("Only the owner can delete this note.")

            note = VisibleNoteQuery(db).filter(Note.Id == note_id).first()
            if note is None:
                raise NoteNotFoundError()
            now = datetime.utcnow()
            note.DeletedAt = now
            note.UpdatedAt = now
            owner_id = note.UserId

        logger.info("note %s deleted by user %s", note_id, user.Id)
        self._AfterCommit(note_id=note_id, owner_id=owner_id, searches=True)

    def RevertNote(self, user: UserContext, note_id: int, target_version: int) -> NoteRecord:
        if target_version is None or target_version < 1:
            raise ValidationError("Version number must be a positive integer.")

        with self._Transaction() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)
            if not rbac.CanRevertNote(access.Permission):
                raise AccessDeniedError("Only the owner can revert this note.")

            note = self._LockNote(db, note_id)
            target = self._versions.Get(db, note_id, target_version)
            if target is None:
                raise VersionNotFoundError()

            record = self._BumpVersion(db, note, target.Title, target.Content, note.Version)
            self._versions.Append(db, record.Id, record.Title, record.Content, record.Version, user.Id)

        logger.info(
            "note %s reverted to version %s as version %s by user %s",
            note_id,
            target_version,
            record.Version,
            user.Id,
        )
        self._AfterCommit(note_id=note_id, owner_id=record.UserId, searches=True)
        return record

    def ShareNote(self, user: UserContext, note_id: int, target_user_id: int, permission: str) -> ShareRecord:
        if not rbac.IsValidSharePermission(permission):
            raise ValidationError("Invalid permission.")
        if target_user_id == user.Id:
            raise ValidationError("You cannot share a note with yourself.")

        with self._Transaction() as db:
            access = self._access.Resolve(db, note_id, user.Id)
            if access is None or not rbac.CanShareNote(access.Permission):
                raise AccessDeniedError("Only the owner can share this note.")

            target = db.query(User.Id).filter(User.Id == target_user_id).first()
            if target is None:
                raise ValidationError("User not found.")

            record = self._sharing.Grant(db, note_id, target_user_id, permission)

        logger.info("note %s shared with user %s as %s", note_id, target_user_id, permission)
        return record

    # -- reads --------------------------------------------------------------

    def ListShares(self, user: UserContext, note_id: int) -> List[ShareRecord]:
        with self._Read() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)
            if not rbac.CanShareNote(access.Permission):
                raise AccessDeniedError("Only the owner can view shares of this note.")
            return self._sharing.ListForNote(db, note_id)

    def GetNote(self, user: UserContext, note_id: int) -> Tuple[NoteDetailOut, bool]:
        """Note with the caller's permission; the bool reports a cache hit.

        Access is resolved on every call, before the cache is consulted. A
        cached payload behind the row's version is a miss: a fill that raced
        an update's eviction can land after it.
        """
        with self._Read() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)

            key = NoteCacheKeys.Note(note_id)
            cached = self._cache.Get(key)
            if cached is not None and cached.get("Version") == access.Note.Version:
                return NoteDetailOut(**cached, Permission=access.Permission), True
            if cached is not None:
                logger.info("note %s cache entry at version %s is stale", note_id, cached.get("Version"))

            media = (
                db.query(
                    NoteMedia.Id,
                    NoteMedia.FileName,
                    NoteMedia.MimeType,
                    NoteMedia.Size,
                    NoteMedia.CreatedAt,
                )
                .filter(NoteMedia.NoteId == note_id)
                .order_by(NoteMedia.CreatedAt.asc(), NoteMedia.Id.asc())
                .all()
            )

        payload = NoteOut.model_validate(access.Note).model_dump(mode="json")
        payload["Media"] = [NoteMediaOut.model_validate(row).model_dump(mode="json") for row in media]
        self._cache.Set(key, payload, self._settings.CacheTtlNote)
        return NoteDetailOut(**payload, Permission=access.Permission), False

    def ListNotes(self, user: UserContext, page: int = 1, limit: int = 10) -> Tuple[NoteListOut, bool]:
        if page < 1:
            raise ValidationError("Page must be at least 1.")
        if limit < 1 or limit > LIST_MAX_LIMIT:
            raise ValidationError(f"Limit must be between 1 and {LIST_MAX_LIMIT}.")

        key = NoteCacheKeys.UserNotes(user.Id, page, limit)
        cached = self._cache.Get(key)
        if cached is not None:
            return NoteListOut(**cached), True

        with self._Read() as db:
            query = VisibleNoteQuery(db).filter(Note.UserId == user.Id)
            total = query.count()
            notes = (
                query.order_by(Note.CreatedAt.desc(), Note.Id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            result = NoteListOut(
                Notes=[NoteOut.model_validate(note) for note in notes],
                Pagination=PaginationOut(
                    Total=total,
                    Page=page,
                    Limit=limit,
                    TotalPages=math.ceil(total / limit),
                ),
            )

        self._cache.Set(key, result.model_dump(mode="json"), self._settings.CacheTtlList)
        return result, False

    def _FullTextQuery(self, db: Session, user_id: int, keyword: str, dialect: str):
        """Full-text matches ordered by relevance, or None where the store has no full-text index."""
        query = VisibleNoteQuery(db).filter(Note.UserId == user_id)
        if dialect == "mssql":
            ranked = (
                func.FREETEXTTABLE(literal_column("notes"), literal_column("(Title, Content)"), keyword)
                .table_valued(column("KEY", Integer), column("RANK", Integer))
                .alias("ft")
            )
            return query.join(ranked, ranked.c.KEY == Note.Id).order_by(ranked.c.RANK.desc(), Note.Id.desc())
        if dialect in {"mysql", "mariadb"}:
            match = "MATCH(Title, Content) AGAINST(:{} IN NATURAL LANGUAGE MODE)"
            return query.filter(text(match.format("term")).bindparams(term=keyword)).order_by(
                text(match.format("rank_term") + " DESC").bindparams(rank_term=keyword),
                Note.Id.desc(),
            )
        return None

    def _FullTextSearch(self, db: Session, user_id: int, keyword: str) -> List[Note] | None:
        query = self._FullTextQuery(db, user_id, keyword, db.get_bind().dialect.name)
        if query is None:
            return None
        try:
            return query.all()
        except DBAPIError:
            logger.warning("full-text search unavailable, falling back to substring match", exc_info=True)
            db.rollback()
            return None

    def SearchNotes(self, user: UserContext, keyword: str | None) -> Tuple[NoteSearchOut, bool]:
        keyword = (keyword or "").strip()
        if len(keyword) < SEARCH_MIN_LENGTH:
            raise ValidationError(f"Keyword must be at least {SEARCH_MIN_LENGTH} characters.")

        key = NoteCacheKeys.SearchResults(user.Id, keyword)
        cached = self._cache.Get(key)
        if cached is not None:
            return NoteSearchOut(**cached), True

        with self._Read() as db:
            notes = self._FullTextSearch(db, user.Id, keyword)
            if notes is None:
                pattern = f"%{_EscapeLike(keyword)}%"
                notes = (
                    VisibleNoteQuery(db)
                    .filter(Note.UserId == user.Id)
                    .filter(
                        or_(
                            Note.Title.ilike(pattern, escape="\\"),
                            Note.Content.ilike(pattern, escape="\\"),
                        )
                    )
                    .order_by(Note.CreatedAt.desc(), Note.Id.desc())
                    .all()
                )
            result = NoteSearchOut(
                Keyword=keyword,
                Count=len(notes),
                Notes=[NoteOut.model_validate(note) for note in notes],
            )

        self._cache.Set(key, result.model_dump(mode="json"), self._settings.CacheTtlSearch)
        return result, False

    def ListVersions(self, user: UserContext, note_id: int) -> Tuple[NoteVersionListOut, bool]:
        with self._Read() as db:
            access = self._access.ResolveOrRaise(db, note_id, user.Id)

            key = NoteCacheKeys.NoteVersions(note_id)
            cached = self._cache.Get(key)
            if cached is not None and _HeadVersion(cached) == access.Note.Version:
                return NoteVersionListOut(**cached), True

            versions = self._versions.List(db, note_id)

        result = NoteVersionListOut(
            NoteId=note_id,
            Count=len(versions),
            Versions=[NoteVersionOut.model_validate(version) for version in versions],
        )
        self._cache.Set(key, result.model_dump(mode="json"), self._settings.CacheTtlVersions)
        return result, False

    def GetVersion(self, user: UserContext, note_id: int, version_number: int) -> VersionRecord:
        with self._Read() as db:
            self._access.ResolveOrRaise(db, note_id, user.Id)
            version = self._versions.Get(db, note_id, version_number)
        if version is None:
            raise VersionNotFoundError()
        return version
