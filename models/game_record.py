"""
models/game_record.py – Data model for catalogue records and the small state
documents that sit beside the catalogue on disk.

Every type converts to / from the camelCase JSON shape used by the catalogue
files, so the on-disk format stays compatible with catalogues produced by
earlier tooling.
"""

import datetime
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Hosts recognised in the "Download Mirrors (Direct Links)" section.
DIRECT_HOSTS = ("datanodes", "fuckingfast")

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


# ── Timestamps ───────────────────────────────────────────────────────────────


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """
    Coerce *value* to an aware UTC datetime.

    Accepts datetimes and ISO-8601 strings (including the trailing ``Z`` form).
    Naive values are taken to be UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def format_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    """Render *value* as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC)."""
    if value is None:
        return None
    value = parse_timestamp(value)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def same_second(a: Optional[datetime.datetime], b: Optional[datetime.datetime]) -> bool:
    """Compare two timestamps ignoring fractional seconds."""
    if a is None or b is None:
        return a is b
    fmt = "%Y-%m-%dT%H:%M:%S"
    return parse_timestamp(a).strftime(fmt) == parse_timestamp(b).strftime(fmt)


def is_today(value: Any, now: Optional[datetime.datetime] = None) -> bool:
    stamp = parse_timestamp(value)
    if stamp is None:
        return False
    return stamp.date() == (now or utc_now()).date()


# ── Identity ─────────────────────────────────────────────────────────────────


def normalize_link(link: str) -> str:
    """
    Identity key for a detail-page URL.

    ``https://Site.example/game/`` and ``http://site.example/game`` map to the
    same key: lower-cased, scheme removed, trailing slashes removed.
    """
    key = _SCHEME_RE.sub("", (link or "").strip())
    return key.rstrip("/").lower()


# ── Records ──────────────────────────────────────────────────────────────────


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item]


def _direct_map(value: Any) -> Dict[str, List[str]]:
    if not isinstance(value, dict):
        return {}
    return {str(host): _str_list(urls) for host, urls in value.items()}


def _size(value: Any) -> float:
    try:
        size = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return size if size > 0 else 0.0


@dataclass
class GameRecord:
    """
    One repack in the master catalogue.

    Attributes
    ----------
    id           : Stable, never-reused numeric id.
    name         : Display title.
    link         : Detail-page URL; identity via normalize_link().
    date         : Publication timestamp read from the detail page.
    tags         : Genre / tag list.
    creator      : Developer / publisher list.
    original     : Raw "Original Size" string.
    packed       : Raw "Repack Size" string.
    size         : Size in GB derived from original / packed.
    magnet       : Magnet URI, if any.
    direct       : Host name → list of direct-download URLs.
    verified     : True when the record has a magnet and a size.
    last_checked : Last successful detail fetch / verification.
    """

    id: int
    name: str
    link: str
    date: Optional[datetime.datetime] = None
    tags: List[str] = field(default_factory=list)
    creator: List[str] = field(default_factory=list)
    original: str = ""
    packed: str = ""
    size: float = 0.0
    magnet: Optional[str] = None
    direct: Dict[str, List[str]] = field(default_factory=dict)
    verified: bool = False
    last_checked: Optional[datetime.datetime] = None

    @property
    def key(self) -> str:
        return normalize_link(self.link)

    @property
    def has_direct(self) -> bool:
        return bool(self.direct)

    def is_verified(self) -> bool:
        """Canonical verified rule: magnet present and a positive size."""
        return bool(self.magnet) and self.size > 0

    def has_real_data(self) -> bool:
        """Whether the record carries anything worth keeping in the catalogue."""
        return bool(self.verified or self.size > 0 or self.magnet or self.direct)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameRecord":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or ""),
            link=str(data.get("link") or ""),
            date=parse_timestamp(data.get("date")),
            tags=_str_list(data.get("tags")),
            creator=_str_list(data.get("creator")),
            original=str(data.get("original") or ""),
            packed=str(data.get("packed") or ""),
            size=_size(data.get("size")),
            magnet=data.get("magnet") or None,
            direct=_direct_map(data.get("direct")),
            verified=data.get("verified") is True,
            last_checked=parse_timestamp(data.get("lastChecked")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "link": self.link,
            "date": format_timestamp(self.date),
            "tags": list(self.tags),
            "creator": list(self.creator),
            "original": self.original,
            "packed": self.packed,
            "size": self.size,
            "verified": self.verified,
            "magnet": self.magnet,
            "direct": {host: list(urls) for host, urls in self.direct.items()},
            "lastChecked": format_timestamp(self.last_checked),
        }


@dataclass
class PendingEntry:
    """A discovered game waiting for its detail page to be scraped."""

    id: int
    name: str
    link: str
    last_checked: Optional[datetime.datetime] = None

    @property
    def key(self) -> str:
        return normalize_link(self.link)

    def to_record(self) -> GameRecord:
        return GameRecord(
            id=self.id,
            name=self.name,
            link=self.link,
            last_checked=self.last_checked,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingEntry":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or ""),
            link=str(data.get("link") or ""),
            last_checked=parse_timestamp(data.get("lastChecked")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "link": self.link,
            "lastChecked": format_timestamp(self.last_checked),
        }


@dataclass
class ReferenceEntry:
    """One row of the complete A-Z listing."""

    id: int
    name: str
    link: str
    page: Optional[int] = None

    @property
    def key(self) -> str:
        return normalize_link(self.link)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceEntry":
        page = data.get("page")
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or ""),
            link=str(data.get("link") or ""),
            page=int(page) if page is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name, "link": self.link}
        if self.page is not None:
            data["page"] = self.page
        return data


# ── State documents ──────────────────────────────────────────────────────────


@dataclass
class CrawlCache:
    """
    Pagination / crawl bookkeeping shared by the crawler and reconciler.

    Attributes
    ----------
    pages        : Last known page count of the A-Z index.
    last_checked : Boundary for the newest-first homepage crawl.
    last_id      : Last id handed out to a pending entry.
    """

    pages: int = 0
    last_checked: Optional[datetime.datetime] = None
    last_id: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlCache":
        return cls(
            pages=int(data.get("pages") or 0),
            last_checked=parse_timestamp(data.get("lastChecked")),
            last_id=int(data.get("lastId") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": self.pages,
            "lastChecked": format_timestamp(self.last_checked),
            "lastId": self.last_id,
        }


@dataclass
class VerifierProgress:
    last_checked_index: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifierProgress":
        return cls(last_checked_index=max(int(data.get("lastCheckedIndex") or 0), 0))

    def to_dict(self) -> Dict[str, Any]:
        return {"lastCheckedIndex": self.last_checked_index}


@dataclass
class CrawlState:
    current_page: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlState":
        return cls(current_page=max(int(data.get("currentPage") or 1), 1))

    def to_dict(self) -> Dict[str, Any]:
        return {"currentPage": self.current_page}
