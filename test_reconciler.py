#!/usr/bin/env python3
"""
Tests for reference-listing reconciliation and id assignment.
"""

import json
import unittest
from pathlib import Path

from fakes import make_settings, temp_dir
from models.game_record import CrawlCache, GameRecord, PendingEntry, ReferenceEntry
from services import catalog_store, reconciler


def ref(i, slug, scheme="https", slash="/"):
    return ReferenceEntry(id=i, name=slug.title(), link=f"{scheme}://site.test/{slug}{slash}")


class TestReconcile(unittest.TestCase):

    def test_only_unseen_links_enqueued_in_listing_order(self):
        catalog = [GameRecord(id=3, name="A", link="https://site.test/a/")]
        reference = [ref(1, "c"), ref(2, "a"), ref(3, "b")]
        added = reconciler.reconcile(catalog, reference, [], CrawlCache())

        self.assertEqual([e.name for e in added], ["C", "B"])
        self.assertEqual([e.id for e in added], [4, 5])
        for entry in added:
            self.assertIsNotNone(entry.last_checked)

    def test_ids_seeded_from_max_not_count(self):
        catalog = [GameRecord(id=3, name="A", link="l3"), GameRecord(id=7, name="B", link="l7")]
        added = reconciler.reconcile(catalog, [ref(1, "x"), ref(2, "y")], [], CrawlCache())
        self.assertEqual([e.id for e in added], [8, 9])

    def test_ids_never_collide_with_pending_or_cache(self):
        catalog = [GameRecord(id=2, name="A", link="l2")]
        pending = [PendingEntry(id=10, name="P", link="https://site.test/p/")]
        cache = CrawlCache(last_id=15)
        added = reconciler.reconcile(catalog, [ref(1, "x")], pending, cache)
        self.assertEqual(added[0].id, 16)
        self.assertEqual(cache.last_id, 16)

    def test_scheme_and_trailing_slash_variants_enqueued_once(self):
        reference = [ref(1, "game", "https", "/"), ref(2, "game", "http", ""), ref(3, "GAME", "https", "")]
        added = reconciler.reconcile([], reference, [], CrawlCache())
        self.assertEqual(len(added), 1)

    def test_catalog_match_ignores_scheme(self):
        catalog = [GameRecord(id=1, name="G", link="http://site.test/game")]
        self.assertEqual(reconciler.reconcile(catalog, [ref(1, "game")], [], CrawlCache()), [])

    def test_idempotent(self):
        catalog = [GameRecord(id=1, name="A", link="https://site.test/a/")]
        reference = [ref(1, "a"), ref(2, "b"), ref(3, "c")]
        cache = CrawlCache()

        first = reconciler.reconcile(catalog, reference, [], cache)
        second = reconciler.reconcile(catalog, reference, first, cache)

        self.assertEqual(len(first), 2)
        self.assertEqual(second, [])

    def test_catalog_not_mutated(self):
        catalog = [GameRecord(id=1, name="A", link="https://site.test/a/")]
        reconciler.reconcile(catalog, [ref(1, "b")], [], CrawlCache())
        self.assertEqual(len(catalog), 1)


class TestEnqueueMissing(unittest.TestCase):

    def setUp(self):
        self._tmp = temp_dir()
        self.settings = make_settings(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_appends_to_existing_queue_and_saves(self):
        catalog_store.save_reference(self.settings.reference_file, [ref(1, "a"), ref(2, "b"), ref(3, "c")])
        catalog_store.save_pending(self.settings.pending_file, [PendingEntry(id=4, name="B", link="https://site.test/b/")])
        cache = CrawlCache()

        pending = reconciler.enqueue_missing(self.settings, [], cache)

        self.assertEqual([e.id for e in pending], [4, 5, 6])
        on_disk = json.loads(Path(self.settings.pending_file).read_text())
        self.assertEqual([row["id"] for row in on_disk], [4, 5, 6])
        self.assertEqual(catalog_store.load_cache(self.settings.cache_file).last_id, 6)

    def test_nothing_new_writes_nothing(self):
        catalog_store.save_reference(self.settings.reference_file, [ref(1, "a")])
        catalog = [GameRecord(id=1, name="A", link="https://site.test/a/")]
        self.assertEqual(reconciler.enqueue_missing(self.settings, catalog, CrawlCache()), [])
        self.assertFalse(self.settings.pending_file.exists())


class TestCountItems(unittest.TestCase):

    def test_counts(self):
        with temp_dir() as tmp:
            settings = make_settings(tmp)
            catalog_store.save_catalog(settings.catalog_file, [GameRecord(id=1, name="A", link="https://site.test/a/", size=1)])
            catalog_store.save_reference(settings.reference_file, [ref(1, "a"), ref(2, "b"), ref(3, "c", "http", "")])
            catalog_store.save_pending(settings.pending_file, [PendingEntry(id=2, name="B", link="https://site.test/b/")])

            counts = reconciler.count_items(settings)

        self.assertEqual(counts, {"games": 1, "complete": 3, "pending": 1, "missing": 2})


if __name__ == "__main__":
    unittest.main()
