"""
services/exceptions.py – Structured custom exception hierarchy for the repack
catalogue.

All service-level errors derive from CatalogError so callers can catch broadly
or specifically depending on context.
"""


class CatalogError(Exception):
    """Base class for all catalogue exceptions."""


class ConfigError(CatalogError):
    """Raised when a required setting is missing or malformed."""


class FetchError(CatalogError):
    """
    Raised when a page cannot be fetched (timeout, HTTP error, navigation error).

    Attributes
    ----------
    url : The URL that failed.
    """

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"{message} ({url})")


class ConnectionRefusedFetchError(FetchError):
    """Raised when the server actively refuses the connection."""


class ExtractionError(CatalogError):
    """Raised when a fetched page cannot be turned into catalogue data."""


class StorageError(CatalogError):
    """Raised on filesystem errors while writing a catalogue document."""
