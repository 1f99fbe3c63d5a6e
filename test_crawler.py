#!/usr/bin/env python3
"""
Tests for the A-Z index crawl and the newest-first homepage crawl.
"""

import datetime
import unittest

from fakes import BASE_URL, StaticFetcher, make_settings, temp_dir
from models.game_record import CrawlCache, CrawlState, ReferenceEntry, parse_timestamp
from services import catalog_store
from services.crawler import Crawler, next_page_url, parse_listing

INDEX = BASE_URL + "all-my-repacks-a-z"


def page_url(n):
    return f"{INDEX}/?lcp_page0={n}#lcp_instance_0"


def index_page(total):
    links = "".join(f'<a href="{page_url(n)}">{n}</a>' for n in range(1, total + 1))
    return f'<html><body><div class="lcp_paginator">{links}</div></body></html>'


def listing(*slugs):
    items = "".join(f'<li><a href="{BASE_URL}{slug}/">{slug.title()}</a></li>' for slug in slugs)
    return f'<html><body><ul class="lcp_catlist">{items}</ul></body></html>'


def feed(articles, next_url=None):
    body = "".join(
        f'<article><h2 class="entry-title"><a href="{BASE_URL}{slug}/">{slug.title()}</a></h2>'
        f'<time class="entry-date" datetime="{date}">d</time></article>'
        for slug, date in articles
    )
    nav = f'<a class="next" href="{next_url}">Next</a>' if next_url else ""
    return f"<html><body>{body}{nav}</body></html>"


class CrawlerTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = temp_dir()
        self.settings = make_settings(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def reference_links(self):
        return [e.link for e in catalog_store.load_reference(self.settings.reference_file)]


class TestFullIndex(CrawlerTestCase):

    def test_crawls_every_page_and_skips_duplicates(self):
        fetcher = StaticFetcher({
            INDEX: index_page(3),
            page_url(1): listing("a", "b"),
            page_url(2): listing("b", "c"),
            page_url(3): listing("d"),
        })
        crawler = Crawler(self.settings, fetcher)
        reference = crawler.crawl_full_index()

        self.assertEqual([e.name for e in reference], ["A", "B", "C", "D"])
        self.assertEqual([e.id for e in reference], [1, 2, 3, 4])
        self.assertEqual([e.page for e in reference], [1, 1, 2, 3])
        self.assertEqual(len(self.reference_links()), 4)
        self.assertEqual(catalog_store.load_cache(self.settings.cache_file).pages, 3)
        self.assertEqual(catalog_store.load_state(self.settings.state_file).current_page, 1)

    def test_resumes_from_saved_page(self):
        catalog_store.save_reference(self.settings.reference_file, [ReferenceEntry(id=1, name="A", link=BASE_URL + "a/", page=1)])
        catalog_store.save_state(self.settings.state_file, CrawlState(current_page=2))
        fetcher = StaticFetcher({INDEX: index_page(2), page_url(1): listing("x"), page_url(2): listing("a", "b")})

        reference = Crawler(self.settings, fetcher).crawl_full_index()

        self.assertNotIn(page_url(1), fetcher.requested)
        self.assertEqual([(e.id, e.name) for e in reference], [(1, "A"), (2, "B")])

    def test_start_page_below_one_starts_at_first_page(self):
        fetcher = StaticFetcher({INDEX: index_page(1), page_url(1): listing("a")})
        reference = Crawler(self.settings, fetcher).crawl_full_index(start_page=0)
        self.assertEqual([e.page for e in reference], [1])
        self.assertNotIn(page_url(0), fetcher.requested)

    def test_failed_page_skipped(self):
        fetcher = StaticFetcher({INDEX: index_page(2), page_url(2): listing("z")})
        with self.assertLogs("services.crawler", level="ERROR"):
            reference = Crawler(self.settings, fetcher).crawl_full_index()
        self.assertEqual([e.name for e in reference], ["Z"])

    def test_page_count_falls_back_to_cache(self):
        crawler = Crawler(self.settings, StaticFetcher({}), cache=CrawlCache(pages=5))
        with self.assertLogs("services.crawler", level="WARNING"):
            self.assertEqual(crawler.discover_page_count(), 5)


class TestNewest(CrawlerTestCase):

    def test_stops_at_boundary_and_advances_cache(self):
        boundary = parse_timestamp("2024-03-01T00:00:00Z")
        page2 = BASE_URL + "page/2/"
        page3 = BASE_URL + "page/3/"
        fetcher = StaticFetcher({
            BASE_URL: feed([("new-b", "2024-03-05T00:00:00Z"), ("new-a", "2024-03-04T00:00:00Z")], page2),
            page2: feed([("new-c", "2024-03-02T00:00:00Z"), ("old-a", "2024-02-20T00:00:00Z")], page3),
            page3: feed([("old-b", "2024-02-10T00:00:00Z")]),
        })
        crawler = Crawler(self.settings, fetcher, cache=CrawlCache(last_checked=boundary))
        before = datetime.datetime.now(datetime.timezone.utc)

        added = crawler.crawl_newest()

        self.assertEqual([e.name for e in added], ["New-B", "New-A", "New-C"])
        self.assertEqual(fetcher.requested, [BASE_URL, page2, page3])
        self.assertGreaterEqual(crawler.cache.last_checked, before.replace(microsecond=0))
        saved = catalog_store.load_cache(self.settings.cache_file)
        self.assertGreater(saved.last_checked, boundary)

    def test_known_links_not_added_twice(self):
        catalog_store.save_reference(self.settings.reference_file, [ReferenceEntry(id=4, name="A", link="http://site.test/a")])
        fetcher = StaticFetcher({BASE_URL: feed([("a", "2024-03-05T00:00:00Z"), ("b", "2024-03-04T00:00:00Z")])})

        added = Crawler(self.settings, fetcher, cache=CrawlCache(last_checked=None)).crawl_newest()

        self.assertEqual([(e.id, e.name) for e in added], [(5, "B")])

    def test_failed_fetch_keeps_boundary(self):
        boundary = parse_timestamp("2024-03-01T00:00:00Z")
        catalog_store.save_cache(self.settings.cache_file, CrawlCache(last_checked=boundary))
        crawler = Crawler(self.settings, StaticFetcher({}))

        with self.assertLogs("services.crawler", level="WARNING"):
            self.assertEqual(crawler.crawl_newest(), [])
        self.assertEqual(catalog_store.load_cache(self.settings.cache_file).last_checked, boundary)

    def test_page_without_articles_keeps_boundary(self):
        boundary = parse_timestamp("2024-01-01T00:00:00Z")
        catalog_store.save_cache(self.settings.cache_file, CrawlCache(last_checked=boundary))
        crawler = Crawler(self.settings, StaticFetcher({BASE_URL: "<html><body><h1>Just a moment...</h1></body></html>"}))

        with self.assertLogs("services.crawler", level="WARNING"):
            self.assertEqual(crawler.crawl_newest(), [])
        self.assertEqual(crawler.cache.last_checked, boundary)
        self.assertEqual(catalog_store.load_cache(self.settings.cache_file).last_checked, boundary)


class TestParsing(unittest.TestCase):

    def test_listing_resolves_relative_links(self):
        html = '<ul class="lcp_catlist"><li><a href="/game/">Game</a></li><li><a href="">Empty</a></li></ul>'
        self.assertEqual(parse_listing(html, INDEX), [("Game", BASE_URL + "game/")])

    def test_listing_without_known_template(self):
        self.assertEqual(parse_listing("<html><p>nothing</p></html>", INDEX), [])

    def test_next_page_absent(self):
        from bs4 import BeautifulSoup

        self.assertIsNone(next_page_url(BeautifulSoup("<html></html>", "html.parser"), BASE_URL))


if __name__ == "__main__":
    unittest.main()
