import pytest

from funnel_bot.services.message_cache import MessageCache


class TestMessageCache:
    def test_add_then_has(self):
        cache = MessageCache()
        assert cache.has("wamid.1") is False

        cache.add("wamid.1")

        assert cache.has("wamid.1") is True
        assert "wamid.1" in cache
        assert len(cache) == 1

    def test_has_does_not_insert(self):
        cache = MessageCache()
        cache.has("wamid.1")
        assert cache.size == 0

    def test_overflow_keeps_most_recent_cleanup_size(self):
        cache = MessageCache(max_size=10, cleanup_size=4)
        for i in range(11):
            cache.add(f"id-{i}")

        assert cache.size == 4
        assert [cache.has(f"id-{i}") for i in range(7, 11)] == [True] * 4
        assert not any(cache.has(f"id-{i}") for i in range(7))

    def test_no_cleanup_at_exact_capacity(self):
        cache = MessageCache(max_size=5, cleanup_size=2)
        for i in range(5):
            cache.add(f"id-{i}")

        assert cache.size == 5
        assert cache.cleanup() is False

    def test_defaults(self):
        cache = MessageCache()
        assert cache.max_size == 1000
        assert cache.cleanup_size == 500

        for i in range(1001):
            cache.add(f"id-{i}")

        assert cache.size == 500
        assert cache.has("id-1000")
        assert not cache.has("id-500")
        assert cache.has("id-501")

    def test_readding_known_id_keeps_original_position(self):
        cache = MessageCache(max_size=3, cleanup_size=2)
        cache.add("a")
        cache.add("b")
        cache.add("a")
        cache.add("c")
        cache.add("d")

        assert cache.has("a") is False
        assert cache.has("c") and cache.has("d")

    def test_cleanup_size_larger_than_max_rejected(self):
        with pytest.raises(ValueError):
            MessageCache(max_size=5, cleanup_size=6)
