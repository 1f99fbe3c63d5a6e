#!/usr/bin/env python3
"""
Tests for the catalogue data model: link identity, timestamps, JSON shape.
"""

import datetime
import unittest

from models.game_record import (
    CrawlCache,
    GameRecord,
    PendingEntry,
    ReferenceEntry,
    format_timestamp,
    is_today,
    normalize_link,
    parse_timestamp,
    same_second,
    utc_now,
)

UTC = datetime.timezone.utc


class TestNormalizeLink(unittest.TestCase):

    def test_scheme_and_trailing_slash_ignored(self):
        self.assertEqual(
            normalize_link("https://site.test/game-a/"),
            normalize_link("http://site.test/game-a"),
        )

    def test_case_insensitive(self):
        self.assertEqual(normalize_link("https://Site.Test/Game-A"), "site.test/game-a")

    def test_distinct_paths_stay_distinct(self):
        self.assertNotEqual(normalize_link("https://site.test/a"), normalize_link("https://site.test/b"))

    def test_empty(self):
        self.assertEqual(normalize_link(""), "")


class TestTimestamps(unittest.TestCase):

    def test_parse_zulu(self):
        parsed = parse_timestamp("2024-03-01T10:20:30.000Z")
        self.assertEqual(parsed, datetime.datetime(2024, 3, 1, 10, 20, 30, tzinfo=UTC))

    def test_parse_offset_converted_to_utc(self):
        parsed = parse_timestamp("2024-03-01T12:20:30+02:00")
        self.assertEqual(parsed, datetime.datetime(2024, 3, 1, 10, 20, 30, tzinfo=UTC))

    def test_naive_assumed_utc(self):
        parsed = parse_timestamp("2024-03-01T10:20:30")
        self.assertEqual(parsed.tzinfo, UTC)

    def test_garbage_is_none(self):
        self.assertIsNone(parse_timestamp("not a date"))
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(12))

    def test_format_matches_catalogue_style(self):
        stamp = datetime.datetime(2024, 3, 1, 10, 20, 30, 123000, tzinfo=UTC)
        self.assertEqual(format_timestamp(stamp), "2024-03-01T10:20:30.123Z")
        self.assertIsNone(format_timestamp(None))

    def test_same_second_ignores_fraction(self):
        a = parse_timestamp("2024-03-01T10:20:30.999Z")
        b = parse_timestamp("2024-03-01T10:20:30+00:00")
        self.assertTrue(same_second(a, b))
        self.assertFalse(same_second(a, parse_timestamp("2024-03-01T10:20:31Z")))
        self.assertFalse(same_second(None, b))

    def test_is_today(self):
        self.assertTrue(is_today(utc_now()))
        self.assertFalse(is_today("2020-01-01T00:00:00Z"))
        self.assertFalse(is_today(None))


class TestGameRecord(unittest.TestCase):

    def test_dict_shape_uses_camel_case(self):
        record = GameRecord(id=1, name="Game", link="https://site.test/game/", size=1.5)
        data = record.to_dict()
        self.assertIn("lastChecked", data)
        self.assertEqual(data["direct"], {})
        self.assertEqual(data["tags"], [])
        self.assertIsNone(data["magnet"])

    def test_from_dict_defaults_nulls(self):
        record = GameRecord.from_dict({"id": 3, "name": "G", "link": "x", "direct": None, "size": None, "tags": None})
        self.assertEqual(record.direct, {})
        self.assertEqual(record.size, 0.0)
        self.assertEqual(record.tags, [])

    def test_negative_size_clamped(self):
        self.assertEqual(GameRecord.from_dict({"id": 1, "link": "x", "size": -4}).size, 0.0)

    def test_verified_requires_magnet_and_size(self):
        record = GameRecord(id=1, name="G", link="x", size=1.2, magnet="magnet:?xt=1")
        self.assertTrue(record.is_verified())
        record.size = 0
        self.assertFalse(record.is_verified())
        record.size = 1.2
        record.magnet = None
        self.assertFalse(record.is_verified())

    def test_has_real_data(self):
        self.assertFalse(GameRecord(id=1, name="G", link="x").has_real_data())
        self.assertTrue(GameRecord(id=1, name="G", link="x", size=0.5).has_real_data())
        self.assertTrue(GameRecord(id=1, name="G", link="x", magnet="magnet:?").has_real_data())
        self.assertTrue(GameRecord(id=1, name="G", link="x", direct={"datanodes": []}).has_real_data())

    def test_pending_to_record_keeps_identity(self):
        entry = PendingEntry(id=9, name="G", link="https://site.test/g/")
        record = entry.to_record()
        self.assertEqual((record.id, record.name, record.link), (9, "G", "https://site.test/g/"))
        self.assertEqual(record.direct, {})


class TestStateDocuments(unittest.TestCase):

    def test_reference_page_optional(self):
        self.assertNotIn("page", ReferenceEntry(id=1, name="G", link="x").to_dict())
        self.assertEqual(ReferenceEntry(id=1, name="G", link="x", page=4).to_dict()["page"], 4)

    def test_cache_round_trip_fields(self):
        cache = CrawlCache.from_dict({"pages": 12, "lastChecked": "2024-01-01T00:00:00.000Z", "lastId": 40})
        self.assertEqual(cache.pages, 12)
        self.assertEqual(cache.last_id, 40)
        self.assertEqual(cache.to_dict()["lastChecked"], "2024-01-01T00:00:00.000Z")


if __name__ == "__main__":
    unittest.main()
