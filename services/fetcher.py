"""
services/fetcher.py – Page fetching for the scraper.

Two interchangeable fetchers are provided:

  BrowserFetcher – headless Chromium through Playwright; returns the rendered
                   DOM, which is what the site serves to real visitors.
  HttpFetcher    – plain httpx client; cheaper, used when the site does not
                   require JavaScript.

Both present themselves as an ordinary desktop browser and raise FetchError /
ConnectionRefusedFetchError on failure. RetryingFetch wraps either one with a
bounded retry loop and turns exhaustion into an empty string, so the rest of
the pipeline treats "no page" as data rather than as an exception.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx
from bs4 import BeautifulSoup

from services.config import Settings
from services.exceptions import ConnectionRefusedFetchError, FetchError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

EXTRA_HEADERS: Dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--ignore-certificate-errors",
]

DEFAULT_TIMEOUT: float = 60.0

T = TypeVar("T")
Query = Callable[[BeautifulSoup], T]


class PageFetcher:
    """
    Base fetcher. Subclasses implement fetch(); evaluate() and the
    context-manager protocol come for free.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        raise NotImplementedError

    def evaluate(self, url: str, query: "Query[T]") -> Optional[T]:
        """Fetch *url* and run *query* against the parsed document."""
        html = self.fetch(url)
        if not html:
            return None
        return query(BeautifulSoup(html, "html.parser"))

    def close(self) -> None:
        pass

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class HttpFetcher(PageFetcher):
    """httpx-backed fetcher with browser-like headers."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        super().__init__(timeout)
        self._client = httpx.Client(
            headers={"User-Agent": USER_AGENT, **EXTRA_HEADERS},
            timeout=timeout,
            follow_redirects=True,
        )

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        try:
            response = self._client.get(url, timeout=timeout or self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(url, f"Server returned HTTP {exc.response.status_code}") from exc
        except httpx.ConnectError as exc:
            if "refused" in str(exc).lower():
                raise ConnectionRefusedFetchError(url, "Connection refused by server") from exc
            raise FetchError(url, f"Network error: {exc}") from exc
        except httpx.RequestError as exc:
            raise FetchError(url, f"Network error: {exc}") from exc
        return response.text

    def close(self) -> None:
        self._client.close()


class BrowserFetcher(PageFetcher):
    """
    Playwright (sync API) fetcher.

    Each instance owns its own Playwright driver, browser and context, so one
    instance must stay on the thread that created it. Every fetch opens a fresh
    page and always closes it.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, headless: bool = True) -> None:
        super().__init__(timeout)
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=headless, args=BROWSER_ARGS)
            self._context = self._browser.new_context(
                user_agent=USER_AGENT,
                extra_http_headers=EXTRA_HEADERS,
                ignore_https_errors=True,
            )
        except Exception:
            self._playwright.stop()
            raise

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        timeout_ms = (timeout or self.timeout) * 1000
        page = self._context.new_page()
        try:
            page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            return page.content()
        except PlaywrightTimeoutError as exc:
            raise FetchError(url, f"Navigation timed out after {timeout_ms:.0f} ms") from exc
        except PlaywrightError as exc:
            if "ERR_CONNECTION_REFUSED" in str(exc):
                raise ConnectionRefusedFetchError(url, "Connection refused by server") from exc
            raise FetchError(url, f"Navigation failed: {exc}") from exc
        finally:
            page.close()

    def close(self) -> None:
        try:
            self._context.close()
            self._browser.close()
        finally:
            self._playwright.stop()


class RetryingFetch(PageFetcher):
    """
    Retry wrapper around another fetcher.

    fetch() never raises FetchError: after *max_retries* failed attempts it
    logs the failure and returns "". Non-fetch exceptions propagate.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        max_retries: int,
        retry_delay: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(fetcher.timeout)
        self._fetcher = fetcher
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        last_error: Optional[FetchError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return self._fetcher.fetch(url, timeout)
            except ConnectionRefusedFetchError as exc:
                logger.error("Connection refused by server: %s (attempt %d/%d)", url, attempt, self.max_retries)
                last_error = exc
            except FetchError as exc:
                logger.warning("Fetch error: %s (attempt %d/%d)", exc, attempt, self.max_retries)
                last_error = exc
            if attempt < self.max_retries:
                logger.info("Retrying %s (attempt %d/%d)", url, attempt + 1, self.max_retries)
                self._sleep(self.retry_delay)
        logger.error("Fetch failed after %d attempts: %s (%s)", self.max_retries, url, last_error)
        return ""

    def close(self) -> None:
        self._fetcher.close()


def create_fetcher(settings: Settings) -> PageFetcher:
    """Build the raw fetcher selected by ``settings.fetcher``."""
    if settings.fetcher == "http":
        return HttpFetcher(timeout=settings.timeout)
    return BrowserFetcher(timeout=settings.timeout)


def create_retrying_fetcher(
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryingFetch:
    return RetryingFetch(create_fetcher(settings), settings.max_retries, settings.retry_delay, sleep)
