"""
services/crawler.py – Build the reference listing (complete.json).

Two modes:

  crawl_full_index – walks every page of the A-Z index, resumable through
                     state.json; the page count is discovered from the
                     paginator and cached in cache.json.
  crawl_newest     – walks the homepage feed newest-first and stops at the
                     first page whose leading article is not newer than the
                     cached boundary.

Both modes append only unseen links and save after every page, so an
interrupted crawl loses at most the page in flight.
"""

import datetime
import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from models.game_record import CrawlCache, CrawlState, ReferenceEntry, normalize_link, parse_timestamp, utc_now
from services import catalog_store
from services.config import Settings
from services.detail_extractor import make_absolute
from services.fetcher import PageFetcher

logger = logging.getLogger(__name__)

# ── Selectors ────────────────────────────────────────────────────────────────

PAGE_PARAM_RE = re.compile(r"lcp_page0=(\d+)")
LISTING_SELECTORS = (
    "ul.lcp_catlist li a",
    "#lcp_instance_0 li a",
    ".game-list li a",
    ".post-list li a",
)
ARTICLE_SELECTOR = "article"
ARTICLE_TITLE_SELECTOR = ".entry-title a[href]"
ARTICLE_DATE_SELECTOR = "time.entry-date[datetime]"
NEXT_PAGE_SELECTORS = ("a.next[href]", "a[rel~=next][href]", "link[rel~=next][href]")


class Crawler:
    """
    Scrapes listing pages into the reference listing.

    Parameters
    ----------
    settings : Runtime settings (paths and BASE_URL).
    fetcher  : Fetcher whose fetch() returns "" on failure (RetryingFetch).
    cache    : Loaded cache; loaded from disk when omitted.
    """

    def __init__(self, settings: Settings, fetcher: PageFetcher, cache: Optional[CrawlCache] = None) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self.cache = cache if cache is not None else catalog_store.load_cache(settings.cache_file)

    # ── Full index ────────────────────────────────────────────────────────────

    def page_url(self, page: int) -> str:
        return f"{self._settings.index_url}/?lcp_page0={page}#lcp_instance_0"

    def discover_page_count(self) -> int:
        """Read the last paginator link of the A-Z index and cache it."""
        html = self._fetcher.fetch(self._settings.index_url)
        numbers = [int(n) for n in PAGE_PARAM_RE.findall(html or "")]
        if not numbers:
            fallback = self.cache.pages or 1
            logger.warning("No paginator found on %s, using %d pages", self._settings.index_url, fallback)
            return fallback

        pages = max(numbers)
        if pages != self.cache.pages:
            self.cache.pages = pages
            catalog_store.save_cache(self._settings.cache_file, self.cache)
        logger.info("A-Z index has %d pages", pages)
        return pages

    def crawl_full_index(self, start_page: Optional[int] = None) -> List[ReferenceEntry]:
        """
        Crawl the A-Z index from *start_page* (else the saved cursor, else 1).

        Returns the complete reference listing after the crawl.
        """
        reference = catalog_store.load_reference(self._settings.reference_file)
        known = {entry.key for entry in reference}
        next_id = max([entry.id for entry in reference] + [0]) + 1

        if start_page is None:
            state = catalog_store.load_state(self._settings.state_file)
            start_page = state.current_page if state else 1
        start_page = max(start_page, 1)
        total = self.discover_page_count()
        logger.info("Crawling A-Z index pages %d..%d", start_page, total)

        for page in range(start_page, total + 1):
            html = self._fetcher.fetch(self.page_url(page))
            if not html:
                logger.error("No content fetched for page %d", page)
                continue

            found = parse_listing(html, self._settings.index_url)
            added = 0
            for name, link in found:
                key = normalize_link(link)
                if key in known:
                    continue
                known.add(key)
                reference.append(ReferenceEntry(id=next_id, name=name, link=link, page=page))
                logger.debug("Found game %d %s", next_id, name)
                next_id += 1
                added += 1

            if added:
                catalog_store.save_reference(self._settings.reference_file, reference)
            catalog_store.save_state(self._settings.state_file, CrawlState(current_page=page + 1))
            logger.info("Scraped page %d/%d: %d games, %d new", page, total, len(found), added)

        catalog_store.save_state(self._settings.state_file, CrawlState(current_page=1))
        logger.info("Scraping completed: %d pages, %d games in reference listing", total, len(reference))
        return reference

    # ── Newest first ──────────────────────────────────────────────────────────

    def crawl_newest(self, since: Optional[datetime.datetime] = None) -> List[ReferenceEntry]:
        """
        Walk the homepage feed until articles are no newer than *since*
        (default: the cached boundary). Returns the entries that were added.
        """
        started = utc_now()
        since = since or self.cache.last_checked
        reference = catalog_store.load_reference(self._settings.reference_file)
        known = {entry.key for entry in reference}
        next_id = max([entry.id for entry in reference] + [0]) + 1
        added: List[ReferenceEntry] = []

        url: Optional[str] = self._settings.base_url
        seen_urls = set()
        page = 0
        complete = True
        while url and url not in seen_urls:
            seen_urls.add(url)
            page += 1
            html = self._fetcher.fetch(url)
            if not html:
                logger.error("No content fetched for feed page %s", url)
                complete = False
                break

            soup = BeautifulSoup(html, "html.parser")
            articles = parse_articles(soup, url)
            if not articles:
                logger.warning("No articles found on feed page %s", url)
                complete = False
                break
            first_date = articles[0][2]
            if since is not None and first_date is not None and first_date <= since:
                logger.info("Reached already seen content on feed page %d", page)
                break

            page_added = 0
            for name, link, date in articles:
                if since is not None and date is not None and date <= since:
                    continue
                key = normalize_link(link)
                if key in known:
                    continue
                known.add(key)
                entry = ReferenceEntry(id=next_id, name=name, link=link)
                reference.append(entry)
                added.append(entry)
                next_id += 1
                page_added += 1
                logger.info("New game on homepage: %s", name)

            if page_added:
                catalog_store.save_reference(self._settings.reference_file, reference)
            url = next_page_url(soup, url)

        if complete:
            self.cache.last_checked = started
            catalog_store.save_cache(self._settings.cache_file, self.cache)
        else:
            logger.warning("Newest crawl incomplete, keeping boundary %s", since)
        logger.info("Newest crawl finished after %d pages: %d new games", page, len(added))
        return added


# ── Parsing ──────────────────────────────────────────────────────────────────


def parse_listing(html: str, base_url: str) -> List[Tuple[str, str]]:
    """(name, link) pairs of an A-Z index page, first matching template wins."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in LISTING_SELECTORS:
        anchors = soup.select(selector)
        if anchors:
            break
    else:
        return []

    pairs: List[Tuple[str, str]] = []
    for anchor in anchors:
        name = anchor.get_text(strip=True)
        href = (anchor.get("href") or "").strip()
        if name and href:
            pairs.append((name, make_absolute(href, base_url)))
    return pairs


def parse_articles(soup: BeautifulSoup, base_url: str) -> List[Tuple[str, str, Optional[datetime.datetime]]]:
    """(name, link, date) for every article on a feed page, in page order."""
    articles = []
    for article in soup.select(ARTICLE_SELECTOR):
        anchor = article.select_one(ARTICLE_TITLE_SELECTOR)
        if anchor is None:
            continue
        name = anchor.get_text(strip=True)
        if not name:
            continue
        time_el = article.select_one(ARTICLE_DATE_SELECTOR)
        date = parse_timestamp(time_el.get("datetime")) if time_el is not None else None
        articles.append((name, make_absolute(anchor["href"].strip(), base_url), date))
    return articles


def next_page_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for selector in NEXT_PAGE_SELECTORS:
        element: Optional[Tag] = soup.select_one(selector)
        if element is not None:
            return make_absolute(element["href"].strip(), base_url)
    return None
