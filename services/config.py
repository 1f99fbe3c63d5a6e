"""
services/config.py – Runtime settings read from the environment.

A ``.env`` file in the working directory is honoured via python-dotenv. Delays
and timeouts are given in milliseconds in the environment and exposed in
seconds on Settings.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from services.exceptions import ConfigError

# ── Defaults ─────────────────────────────────────────────────────────────────
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY_MS: int = 2000
DEFAULT_TIMEOUT_MS: int = 60000
DEFAULT_WORKERS: int = 4
FETCHER_KINDS = ("browser", "http")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

REFERENCE_FILE = "complete.json"
PENDING_FILE = "temp.json"
CACHE_FILE = "cache.json"
PROGRESS_FILE = "progress.json"
STATE_FILE = "state.json"


@dataclass(frozen=True)
class Settings:
    """
    Everything the pipeline needs from its environment.

    Attributes
    ----------
    catalog_file : Path of the master catalogue (games.json).
    base_url     : Site root, always ending with "/".
    max_retries  : Attempts per fetch and per verifier record.
    retry_delay  : Seconds to wait between attempts.
    timeout      : Per-navigation timeout in seconds.
    workers      : Worker-pool size.
    fetcher      : "browser" (Playwright) or "http" (httpx).
    log_level    : Name of the logging level.
    """

    catalog_file: Path
    base_url: str
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY_MS / 1000
    timeout: float = DEFAULT_TIMEOUT_MS / 1000
    workers: int = DEFAULT_WORKERS
    fetcher: str = "browser"
    log_level: str = "INFO"

    @property
    def data_dir(self) -> Path:
        return self.catalog_file.parent

    @property
    def reference_file(self) -> Path:
        return self.data_dir / REFERENCE_FILE

    @property
    def pending_file(self) -> Path:
        return self.data_dir / PENDING_FILE

    @property
    def cache_file(self) -> Path:
        return self.data_dir / CACHE_FILE

    @property
    def progress_file(self) -> Path:
        return self.data_dir / PROGRESS_FILE

    @property
    def state_file(self) -> Path:
        return self.data_dir / STATE_FILE

    @property
    def index_url(self) -> str:
        return f"{self.base_url}all-my-repacks-a-z"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from *env* (defaults to os.environ after loading ``.env``).

    Raises
    ------
    ConfigError
        When FILE or BASE_URL is missing or a numeric value is malformed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    catalog_file = (env.get("FILE") or "").strip()
    base_url = (env.get("BASE_URL") or "").strip()
    missing = [name for name, value in (("FILE", catalog_file), ("BASE_URL", base_url)) if not value]
    if missing:
        raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")
    if not base_url.endswith("/"):
        base_url += "/"

    fetcher = (env.get("FETCHER") or "browser").strip().lower()
    if fetcher not in FETCHER_KINDS:
        raise ConfigError(
            f"FETCHER must be one of {', '.join(FETCHER_KINDS)}, got '{fetcher}'"
        )

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got '{log_level}'")

    max_retries = _positive_int(env, "MAX_RETRIES", DEFAULT_MAX_RETRIES)
    retry_delay = _positive_int(env, "RETRY_DELAY", DEFAULT_RETRY_DELAY_MS, allow_zero=True)
    timeout = _positive_int(env, "TIMEOUT", DEFAULT_TIMEOUT_MS)
    workers = _positive_int(env, "WORKERS", DEFAULT_WORKERS)

    return Settings(
        catalog_file=Path(catalog_file),
        base_url=base_url,
        max_retries=max_retries,
        retry_delay=retry_delay / 1000,
        timeout=timeout / 1000,
        workers=workers,
        fetcher=fetcher,
        log_level=log_level,
    )


def _positive_int(env: Mapping[str, str], name: str, default: int, allow_zero: bool = False) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{name} must be positive, got {value}")
    return value
