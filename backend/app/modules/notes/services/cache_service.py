import logging

from app.core.cache import CacheStore

logger = logging.getLogger("app.notes.cache")


class NoteCacheKeys:
    @staticmethod
    def Note(note_id: int) -> str:
        return f"note:{note_id}"

    @staticmethod
    def UserNotes(user_id: int, page: int, limit: int) -> str:
        return f"user_notes:{user_id}:{page}:{limit}"

    @staticmethod
    def NoteVersions(note_id: int) -> str:
        return f"note_versions:{note_id}"

    @staticmethod
    def SearchResults(user_id: int, keyword: str) -> str:
        return f"search:{user_id}:{keyword}"

    @staticmethod
    def UserNotesPattern(user_id: int) -> str:
        return f"user_notes:{user_id}:*"

    @staticmethod
    def SearchPattern(user_id: int) -> str:
        return f"search:{user_id}:*"


class NoteCacheInvalidator:
    """Post-commit eviction of note caches.

    Only call after the mutating transaction has committed. Every method is
    best-effort and returns False instead of raising when the cache store is
    unavailable.
    """

    def __init__(self, cache: CacheStore):
        self._cache = cache

    def InvalidateNote(self, note_id: int) -> bool:
        note_ok = self._cache.Delete(NoteCacheKeys.Note(note_id))
        versions_ok = self._cache.Delete(NoteCacheKeys.NoteVersions(note_id))
        return self._Report(note_ok and versions_ok, "note %s", note_id)

    def InvalidateUserListings(self, user_id: int) -> bool:
        ok = self._cache.DeletePattern(NoteCacheKeys.UserNotesPattern(user_id))
        return self._Report(ok, "listings of user %s", user_id)

    def InvalidateUserSearches(self, user_id: int) -> bool:
        ok = self._cache.DeletePattern(NoteCacheKeys.SearchPattern(user_id))
        return self._Report(ok, "searches of user %s", user_id)

    def _Report(self, ok: bool, what: str, ident: int) -> bool:
        if not ok:
            logger.warning("cache invalidation incomplete for " + what, ident)
        return ok
