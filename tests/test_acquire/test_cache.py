"""Tests for the content cache."""

import json

from campwatch.acquire.cache import ContentCache, content_hash


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestContentCache:
    def test_put_then_get_within_ttl(self):
        clock = FakeClock()
        cache = ContentCache(ttl_hours=24, clock=clock)
        cache.put("zoo-camp", "abc", {"quality": 75})
        clock.now += 23 * 3600
        assert cache.get("zoo-camp") == {"quality": 75}

    def test_expired_entry(self):
        clock = FakeClock()
        cache = ContentCache(ttl_hours=1, clock=clock)
        cache.put("zoo-camp", "abc", {"quality": 75})
        clock.now += 3601
        assert cache.get("zoo-camp") is None

    def test_put_replaces_entry_and_hash(self, tmp_path):
        path = tmp_path / "scrape-cache.json"
        cache = ContentCache(path, clock=FakeClock())
        cache.put("zoo-camp", "abc", {"quality": 40})
        cache.put("zoo-camp", "def", {"quality": 75})
        cache.save()
        saved = json.loads(path.read_text())
        assert saved["zoo-camp"]["hash"] == "def"
        assert saved["zoo-camp"]["payload"] == {"quality": 75}

    def test_invalidate(self):
        cache = ContentCache(clock=FakeClock())
        cache.put("zoo-camp", "abc", {})
        cache.invalidate("zoo-camp")
        assert cache.get("zoo-camp") is None
        assert len(cache) == 0

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "scrape-cache.json"
        clock = FakeClock()
        cache = ContentCache(path, clock=clock)
        cache.put("zoo-camp", "abc", {"quality": 75})
        cache.save()

        reloaded = ContentCache(path, clock=clock)
        assert reloaded.load() == 1
        assert reloaded.get("zoo-camp") == {"quality": 75}

    def test_corrupt_file_yields_empty_cache(self, tmp_path):
        path = tmp_path / "scrape-cache.json"
        path.write_text(json.dumps(["not", "a", "map"]))
        assert ContentCache(path).load() == 0

    def test_malformed_entries_are_dropped(self, tmp_path):
        path = tmp_path / "scrape-cache.json"
        path.write_text(
            json.dumps(
                {
                    "zoo-camp": {"hash": "abc", "timestamp_ms": 1},
                    "art-camp": {"payload": {}},
                }
            )
        )
        assert ContentCache(path).load() == 1


def test_content_hash_is_stable():
    assert content_hash("Zoo Camp") == content_hash("Zoo Camp")
    assert content_hash("Zoo Camp") != content_hash("Zoo Camp!")
    assert len(content_hash("")) == 16
