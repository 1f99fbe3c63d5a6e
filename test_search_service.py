#!/usr/bin/env python3
"""
Tests for catalogue search.
"""

import unittest

from models.game_record import GameRecord, parse_timestamp
from services import search_service


def game(i, name, date, tags=(), size=1.0):
    return GameRecord(id=i, name=name, link=f"l{i}", date=parse_timestamp(date), tags=list(tags), size=size)


CATALOG = [
    game(1, "Space Shooter", "2023-01-01T00:00:00Z", ["Action"], size=4.0),
    game(2, "Farm Life", "2024-05-01T00:00:00Z", ["Simulation"], size=12.5),
    game(3, "Space Farm", "2024-01-01T00:00:00Z", ["Strategy", "Sci-Fi"], size=0.7),
    game(4, "Undated", None, ["Action"]),
]


class TestSearch(unittest.TestCase):

    def test_name_match_newest_first(self):
        self.assertEqual([g.id for g in search_service.search(CATALOG, "space")], [3, 1])

    def test_tag_match_case_insensitive(self):
        self.assertEqual([g.id for g in search_service.search(CATALOG, "ACTION")], [1, 4])

    def test_blank_query_returns_newest(self):
        self.assertEqual([g.id for g in search_service.search(CATALOG, "   ", limit=2)], [2, 3])

    def test_no_match(self):
        self.assertEqual(search_service.search(CATALOG, "racing"), [])

    def test_largest(self):
        self.assertEqual([g.id for g in search_service.largest(CATALOG, limit=2)], [2, 1])


if __name__ == "__main__":
    unittest.main()
