import unittest
from datetime import timedelta

from kalendarus.errors import NotFoundError
from kalendarus.event_cache import EventCache
from kalendarus.models import CachedEvent
from tests.helpers import NOW


class EventCacheTests(unittest.TestCase):
    def test_put_marks_dirty(self) -> None:
        cache = EventCache()
        self.assertFalse(cache.dirty)
        self.assertFalse(cache.has("E1"))
        cache.put("E1", CachedEvent(summary="One"))
        self.assertTrue(cache.dirty)
        self.assertTrue(cache.has("E1"))
        self.assertEqual(cache.get("E1").summary, "One")
        self.assertIsNone(cache.get("E2"))

    def test_put_replaces_whole_record(self) -> None:
        cache = EventCache()
        cache.put("E1", CachedEvent(summary="One", notificators={"5m": True}))
        cache.put("E1", CachedEvent(summary="Two"))
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("E1").notificators, {})

    def test_is_changed(self) -> None:
        cache = EventCache()
        cache.put("E1", CachedEvent(summary="One", modified_time=NOW))
        self.assertFalse(cache.is_changed("E1", NOW))
        self.assertTrue(cache.is_changed("E1", NOW + timedelta(seconds=1)))
        with self.assertRaises(NotFoundError):
            cache.is_changed("missing", NOW)

    def test_prune_drops_finished_events(self) -> None:
        cache = EventCache()
        cache.put("old", CachedEvent(summary="Old", start_time=NOW - timedelta(days=9), end_time=NOW - timedelta(days=8)))
        cache.put("no-end", CachedEvent(summary="No end", start_time=NOW - timedelta(days=9)))
        cache.put("recent", CachedEvent(summary="Recent", start_time=NOW - timedelta(hours=2), end_time=NOW - timedelta(hours=1)))
        cache.mark_clean()

        removed = cache.prune(NOW - timedelta(days=7))

        self.assertEqual(sorted(removed), ["no-end", "old"])
        self.assertTrue(cache.has("recent"))
        self.assertTrue(cache.dirty)

    def test_prune_without_removals_keeps_clean(self) -> None:
        cache = EventCache()
        cache.put("recent", CachedEvent(summary="Recent", start_time=NOW))
        cache.mark_clean()
        self.assertEqual(cache.prune(NOW - timedelta(days=7)), [])
        self.assertFalse(cache.dirty)

    def test_replace_all_skips_malformed_entries(self) -> None:
        cache = EventCache()
        cache.put("stale", CachedEvent(summary="Stale"))
        cache.replace_all({"E1": {"summary": "One", "notificators": {"5m": True}}, "E2": "garbage"})
        self.assertEqual(list(cache.events), ["E1"])
        self.assertEqual(cache.get("E1").notificators, {"5m": True})
        self.assertFalse(cache.dirty)


if __name__ == "__main__":
    unittest.main()
