from src.archive.cache import TTLCache


def test_set_get_roundtrip(tmp_path):
    with TTLCache(str(tmp_path), default_ttl=60) as cache:
        cache.set("page:alice:1", {"videos": [{"id": "a1"}], "hasMore": False})
        assert cache.get("page:alice:1") == {"videos": [{"id": "a1"}], "hasMore": False}
        assert cache.get("missing") is None


def test_expired_entries_are_invisible_and_purged(tmp_path):
    with TTLCache(str(tmp_path)) as cache:
        cache.set("old", "x", ttl_seconds=-1)
        cache.set("fresh", "y", ttl_seconds=60)
        assert cache.get("old") is None
        assert cache.delete_expired() == 1
        assert cache.delete_expired() == 0
        assert cache.get("fresh") == "y"


def test_delete(tmp_path):
    with TTLCache(str(tmp_path)) as cache:
        cache.set("k", [1, 2])
        assert cache.delete("k") is True
        assert cache.delete("k") is False
