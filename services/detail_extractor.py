"""
services/detail_extractor.py – Turn a repack detail page into catalogue data.

The page is parsed with BeautifulSoup. The info block is scanned line by line
(order does not matter) for tags, companies and sizes; the direct-download
mirror list and magnet link are read from the surrounding markup.
"""

import copy
import datetime
import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from models.game_record import DIRECT_HOSTS, GameRecord, parse_timestamp, utc_now
from services.exceptions import ExtractionError
from services.fetcher import PageFetcher

logger = logging.getLogger(__name__)

# ── Selectors ────────────────────────────────────────────────────────────────

DATE_SELECTORS = ("time.entry-date[datetime]", "[datetime]")

# Template variants, most specific first.
CONTENT_SELECTORS = (".entry-content", ".post-content", "article", ".content")

DIRECT_HEADING = "Download Mirrors (Direct Links)"
SPOILER_LINK_SELECTOR = ".su-spoiler-content a[href]"
MAGNET_SELECTOR = 'a[href*="magnet"]'

# ── Line patterns ────────────────────────────────────────────────────────────

_TAGS_RE = re.compile(r"genres|tags", re.IGNORECASE)
_TAGS_PREFIX_RE = re.compile(r".*:")
_COMPANY_RE = re.compile(r"compan(y|ies)", re.IGNORECASE)
_COMPANY_PREFIX_RE = re.compile(r".*compan(?:y|ies).*?:", re.IGNORECASE)
_ORIGINAL_RE = re.compile(r"original size", re.IGNORECASE)
_ORIGINAL_PREFIX_RE = re.compile(r".*original size.*?:", re.IGNORECASE)
_PACKED_RE = re.compile(r"repack size", re.IGNORECASE)
_PACKED_PREFIX_RE = re.compile(r".*repack size.*?:", re.IGNORECASE)
_BRACKETS_RE = re.compile(r"\[.*?\]")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_MEGABYTES_RE = re.compile(r"MB\b", re.IGNORECASE)


# ── Public API ───────────────────────────────────────────────────────────────


def extract(game: GameRecord, fetcher: PageFetcher) -> Tuple[GameRecord, bool]:
    """
    Fetch *game*'s detail page and fill in its metadata.

    Parameters
    ----------
    game    : Record (or pending shell) with at least ``link`` set.
    fetcher : Usually a RetryingFetch; "" from fetch() means the page is gone.

    Returns
    -------
    (record, verified)
        A new record on success. The unchanged input and False when the page
        could not be fetched or parsed.
    """
    html = fetcher.fetch(game.link)
    if not html:
        logger.warning("No content fetched for %s (id %s)", game.name, game.id)
        return game, False

    try:
        record = parse_detail(copy.deepcopy(game), html)
    except ExtractionError as exc:
        logger.warning("Skipping %s (id %s): %s", game.name, game.id, exc)
        return game, False
    except Exception as exc:  # noqa: BLE001
        logger.warning("Details error for %s (id %s): %s", game.name, game.id, exc)
        return game, False

    logger.info(
        "%s scraped: size=%s magnet=%s direct=%s verified=%s",
        record.name,
        record.size,
        "present" if record.magnet else "absent",
        ",".join(record.direct) or "none",
        record.verified,
    )
    return record, record.verified


def parse_detail(record: GameRecord, html: str, now: Optional[datetime.datetime] = None) -> GameRecord:
    """
    Populate *record* from detail-page *html* and return it.

    Raises ExtractionError when the page carries neither a post date nor a
    content block (challenge pages, error pages).
    """
    now = now or utc_now()
    soup = BeautifulSoup(html, "html.parser")

    date = extract_date(soup)
    if date is None:
        logger.warning("No date found on page for %s", record.name)
    record.date = date or now

    lines = content_lines(soup)
    if not lines:
        if date is None:
            raise ExtractionError(f"{record.link} is not a detail page")
        logger.warning("No content block found on page for %s", record.name)
    apply_info_lines(record, lines)

    record.size = compute_size(record.packed, record.original)
    record.direct = extract_direct_links(soup, record.link)
    magnet = extract_magnet(soup)
    if magnet:
        record.magnet = magnet
    record.verified = record.is_verified()
    record.last_checked = now
    return record


# ── Page pieces ──────────────────────────────────────────────────────────────


def extract_date(soup: BeautifulSoup) -> Optional[datetime.datetime]:
    for selector in DATE_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return parse_timestamp(element.get("datetime"))
    return None


def content_lines(soup: BeautifulSoup) -> List[str]:
    """Text of the first matching content block, one entry per non-empty line."""
    block: Optional[Tag] = None
    for selector in CONTENT_SELECTORS:
        block = soup.select_one(selector)
        if block is not None:
            break
    if block is None:
        return []

    block = copy.copy(block)
    for br in block.find_all("br"):
        br.replace_with("\n")
    return [line.strip() for line in block.get_text().split("\n") if line.strip()]


def apply_info_lines(record: GameRecord, lines: List[str]) -> None:
    """Scan every line against every pattern; later matches win."""
    for line in lines:
        if _TAGS_RE.search(line):
            record.tags = _split_list(_TAGS_PREFIX_RE.sub("", line))
        if _COMPANY_RE.search(line):
            record.creator = _split_list(_COMPANY_PREFIX_RE.sub("", line))
        if _ORIGINAL_RE.search(line):
            record.original = _ORIGINAL_PREFIX_RE.sub("", line).strip()
        if _PACKED_RE.search(line):
            record.packed = _BRACKETS_RE.sub("", _PACKED_PREFIX_RE.sub("", line)).strip()


def extract_direct_links(soup: BeautifulSoup, base_url: str) -> Dict[str, List[str]]:
    """
    Read the "Download Mirrors (Direct Links)" list.

    Each list item is assigned to the first known host whose name it mentions;
    the links inside its spoiler block go into that host's bucket.
    """
    direct: Dict[str, List[str]] = {}
    heading = next(
        (h3 for h3 in soup.find_all("h3") if DIRECT_HEADING in h3.get_text()),
        None,
    )
    if heading is None:
        return direct

    mirror_list = heading.find_next_sibling("ul")
    if mirror_list is None:
        return direct

    for item in mirror_list.find_all("li"):
        text = item.get_text().lower()
        host = next((name for name in DIRECT_HOSTS if name in text), None)
        if host is None:
            continue
        bucket = direct.setdefault(host, [])
        for anchor in item.select(SPOILER_LINK_SELECTOR):
            bucket.append(make_absolute(anchor["href"].strip(), base_url))
    return direct


def extract_magnet(soup: BeautifulSoup) -> Optional[str]:
    anchor = soup.select_one(MAGNET_SELECTOR)
    if anchor is None:
        return None
    return anchor.get("href") or None


# ── Sizes ────────────────────────────────────────────────────────────────────


def parse_size_value(text: str) -> float:
    """First number in *text*, a comma counting as the decimal separator."""
    if not text:
        return 0.0
    match = _NUMBER_RE.search(text.replace(",", ".", 1))
    return float(match.group(0)) if match else 0.0


def compute_size(packed: str, original: str) -> float:
    """
    Size in GB: the larger of the packed and original figures, divided by 1024
    when the winning string is in megabytes. A tie is decided by *original*.
    """
    packed_value = parse_size_value(packed)
    original_value = parse_size_value(original)
    if packed_value > original_value:
        size, source = packed_value, packed
    else:
        size, source = original_value, original
    if size > 0 and _MEGABYTES_RE.search(source or ""):
        size /= 1024
    return size


# ── Private helpers ──────────────────────────────────────────────────────────


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in value.strip().split(", ") if part.strip()]


def make_absolute(href: str, base_url: str) -> str:
    """Resolve a potentially-relative URL against the page base URL."""
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url, href)
