import threading
from unittest.mock import patch

from django.core.cache import caches
from django.test import SimpleTestCase, TestCase

from prices.cache import TaggedCache, get_consolidation_cache, station_tag
from prices.tests.fixtures import make_report, make_station


class TaggedCacheTestCase(SimpleTestCase):
    def setUp(self):
        self.backend = caches["default"]
        self.backend.clear()
        self.cache = TaggedCache(self.backend, prefix="test", timeout=60)

    def test_make_key_is_deterministic(self):
        self.assertEqual(
            self.cache.make_key("day", None, (1, 2)),
            self.cache.make_key("day", None, (1, 2)),
        )
        self.assertNotEqual(
            self.cache.make_key("day", None, (1, 2)),
            self.cache.make_key("night", None, (1, 2)),
        )
        self.assertTrue(self.cache.make_key("x").startswith("test:"))

    def test_get_returns_what_was_set(self):
        self.cache.set("k", {"a": 1}, tags=["t"])
        self.assertEqual(self.cache.get("k"), {"a": 1})
        self.assertIsNone(self.cache.get("missing"))

    def test_invalidating_a_tag_drops_only_its_entries(self):
        self.cache.set("both", 1, tags=[station_tag(1), station_tag(2)])
        self.cache.set("one", 2, tags=[station_tag(1)])
        self.cache.set("two", 3, tags=[station_tag(2)])

        dropped = self.cache.invalidate_tags([station_tag(2)])

        self.assertEqual(dropped, 1)
        self.assertIsNone(self.cache.get("both"))
        self.assertIsNone(self.cache.get("two"))
        self.assertEqual(self.cache.get("one"), 2)

    def test_unknown_tag_is_a_no_op(self):
        self.assertEqual(self.cache.invalidate_tags(["nope"]), 0)

    def test_concurrent_sets_under_one_tag_are_all_invalidated(self):
        original = self.backend.get_many
        barrier = threading.Barrier(2)

        def interleaved_get_many(keys, *args, **kwargs):
            result = original(keys, *args, **kwargs)
            try:
                barrier.wait(timeout=2)
            except threading.BrokenBarrierError:
                pass
            return result

        with patch.object(self.backend, "get_many", side_effect=interleaved_get_many):
            threads = [
                threading.Thread(
                    target=self.cache.set, args=(f"k{i}", i), kwargs={"tags": [station_tag(1)]}
                )
                for i in range(2)
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertEqual(self.cache.get("k0"), 0)
        self.assertEqual(self.cache.get("k1"), 1)

        self.cache.invalidate_tags([station_tag(1)])

        self.assertIsNone(self.cache.get("k0"))
        self.assertIsNone(self.cache.get("k1"))

    def test_invalidation_is_seen_by_another_instance_on_the_same_backend(self):
        writer = TaggedCache(self.backend, prefix="test", timeout=60)
        writer.set("k", "v", tags=[station_tag(7)])

        self.cache.invalidate_tags([station_tag(7)])

        self.assertIsNone(writer.get("k"))

    def test_entry_saved_before_an_invalidation_is_never_served(self):
        self.cache.set("k", "old", tags=[station_tag(3)])
        self.cache.invalidate_tags([station_tag(3)])
        self.cache.invalidate_tags([station_tag(3)])
        self.assertIsNone(self.cache.get("k"))

        self.cache.set("k", "new", tags=[station_tag(3)])
        self.assertEqual(self.cache.get("k"), "new")


class CrowdReportSignalTestCase(TestCase):
    def setUp(self):
        get_consolidation_cache().backend.clear()

    def test_new_report_invalidates_its_station(self):
        station = make_station("30-1-1")
        other = make_station("30-2-2")
        cache = get_consolidation_cache()
        cache.set("mine", "x", tags=[station_tag(station.id)])
        cache.set("theirs", "y", tags=[station_tag(other.id)])

        make_report(station)

        self.assertIsNone(cache.get("mine"))
        self.assertEqual(cache.get("theirs"), "y")
