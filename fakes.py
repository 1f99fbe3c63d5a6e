"""
fakes.py – In-memory stand-ins shared by the test modules.
"""

import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from services.config import Settings
from services.fetcher import PageFetcher

BASE_URL = "https://site.test/"

Page = Union[str, Exception, Callable[[], str]]


class StaticFetcher(PageFetcher):
    """
    Serves canned pages by URL. A value may be HTML, an exception to raise, or
    a list consumed one item per call. Unknown URLs return "".
    """

    def __init__(self, pages: Optional[Dict[str, Union[Page, List[Page]]]] = None) -> None:
        super().__init__(timeout=1.0)
        self.pages = dict(pages or {})
        self.requested: List[str] = []
        self.closed = False

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        self.requested.append(url)
        page = self.pages.get(url, "")
        if isinstance(page, list):
            page = page.pop(0) if page else ""
        if isinstance(page, Exception):
            raise page
        if callable(page):
            return page()
        return page

    def close(self) -> None:
        self.closed = True


def make_settings(directory: Union[str, Path], **overrides) -> Settings:
    values = dict(
        catalog_file=Path(directory) / "games.json",
        base_url=BASE_URL,
        max_retries=3,
        retry_delay=0.0,
        timeout=1.0,
        workers=2,
        fetcher="http",
    )
    values.update(overrides)
    return Settings(**values)


def temp_dir() -> tempfile.TemporaryDirectory:
    return tempfile.TemporaryDirectory(prefix="repack_catalog_")


def detail_page(
    date: Optional[str] = "2024-03-01T10:20:30+00:00",
    original: str = "25.3 GB",
    packed: str = "from 12.1 GB [Selective Download]",
    magnet: Optional[str] = "magnet:?xt=urn:btih:abc123",
    direct: bool = True,
) -> str:
    """A detail page shaped like the real site template."""
    time_el = f'<time class="entry-date published" datetime="{date}">date</time>' if date else ""
    info = []
    info.append("Genres/Tags: <strong>Action</strong>, <strong>Shooter</strong><br>")
    info.append("Companies: <strong>Studio A</strong>, <strong>Publisher B</strong><br>")
    info.append("Languages: <strong>ENG/MULTI5</strong><br>")
    if original:
        info.append(f"Original Size: <strong>{original}</strong><br>")
    if packed:
        info.append(f"Repack Size: <strong>{packed}</strong>")
    mirrors = ""
    if direct:
        mirrors = (
            "<h3>Download Mirrors (Direct Links)</h3>\n"
            "<ul>\n"
            '<li>Filehoster: <strong>DataNodes</strong>'
            '<div class="su-spoiler"><div class="su-spoiler-content">'
            '<a href="https://datanodes.to/part1">part 1</a>'
            '<a href="https://datanodes.to/part2">part 2</a>'
            "</div></div></li>\n"
            '<li>Filehoster: <strong>FuckingFast</strong>'
            '<div class="su-spoiler-content"><a href="/ff/part1">part 1</a></div></li>\n'
            "<li>Filehoster: <strong>MultiUpload</strong></li>\n"
            "</ul>\n"
        )
    torrent = f'<ul><li><a href="{magnet}">magnet</a></li></ul>' if magnet else ""
    return (
        "<html><body><article>"
        f'<header><h1 class="entry-title">Game</h1>{time_el}</header>'
        '<div class="entry-content">\n'
        "<h3>#1234 Game</h3>\n"
        f"<p>{chr(10).join(info)}</p>\n"
        f"{mirrors}"
        f"{torrent}"
        "</div></article></body></html>"
    )


def empty_page() -> str:
    return '<html><body><div class="entry-content"><p>Nothing here.</p></div></body></html>'
