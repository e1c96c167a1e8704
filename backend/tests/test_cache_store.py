import json

from app.core.cache import CacheStore
from app.modules.notes.services.cache_service import NoteCacheInvalidator, NoteCacheKeys


def test_set_then_get_returns_json_value(cache, fake_redis):
    assert cache.Set("note:1", {"Id": 1, "Title": "hello"}, 600) is True

    assert cache.Get("note:1") == {"Id": 1, "Title": "hello"}
    assert fake_redis.ttls["note:1"] == 600


def test_set_uses_default_ttl(fake_redis):
    store = CacheStore(fake_redis, default_ttl=42)
    store.Set("k", [1, 2])
    assert fake_redis.ttls["k"] == 42


def test_get_ignores_corrupt_entry(cache, fake_redis):
    fake_redis.store["note:1"] = "{not json"
    assert cache.Get("note:1") is None


def test_delete_pattern_only_touches_matching_keys(cache, fake_redis):
    for key in ("user_notes:1:1:10", "user_notes:1:2:10", "user_notes:11:1:10", "note:1"):
        fake_redis.store[key] = json.dumps({})

    assert cache.DeletePattern("user_notes:1:*") is True

    assert sorted(fake_redis.store) == ["note:1", "user_notes:11:1:10"]


def test_outage_is_swallowed(cache, fake_redis):
    fake_redis.fail = True

    assert cache.Get("note:1") is None
    assert cache.Set("note:1", {"a": 1}) is False
    assert cache.Delete("note:1") is False
    assert cache.DeletePattern("search:1:*") is False
    assert cache.Ping() is False


def test_invalidate_note_drops_note_and_versions(cache, fake_redis):
    fake_redis.store[NoteCacheKeys.Note(5)] = "{}"
    fake_redis.store[NoteCacheKeys.NoteVersions(5)] = "[]"
    fake_redis.store[NoteCacheKeys.Note(6)] = "{}"

    assert NoteCacheInvalidator(cache).InvalidateNote(5) is True

    assert list(fake_redis.store) == [NoteCacheKeys.Note(6)]


def test_invalidate_user_listings_and_searches(cache, fake_redis):
    fake_redis.store[NoteCacheKeys.UserNotes(3, 1, 10)] = "{}"
    fake_redis.store[NoteCacheKeys.SearchResults(3, "milk")] = "{}"
    fake_redis.store[NoteCacheKeys.SearchResults(4, "milk")] = "{}"
    invalidator = NoteCacheInvalidator(cache)

    invalidator.InvalidateUserListings(3)
    invalidator.InvalidateUserSearches(3)

    assert list(fake_redis.store) == [NoteCacheKeys.SearchResults(4, "milk")]


def test_invalidator_reports_failure_without_raising(cache, fake_redis):
    fake_redis.fail = True
    invalidator = NoteCacheInvalidator(cache)

    assert invalidator.InvalidateNote(1) is False
    assert invalidator.InvalidateUserListings(1) is False
