# utils/errors.py
from __future__ import annotations


class ScrapeError(Exception):
    """Root of the scraper's own exceptions."""


class ConfigError(ScrapeError, ValueError):
    """
    Pre-flight input problem (no seeds, missing auth, schema violation).

    Raised before any fetch is attempted and aborts the whole run.
    """


class FetchError(ScrapeError):
    """
    A page could not be fetched or its content is unusable.

    Retryable: the pagination controller hands these to its RetryPolicy.
    """

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class ChallengeDetected(FetchError):
    """Response body looks like a bot-challenge / access-denied page."""


class MarkupNotRecognized(FetchError):
    """None of the known container selectors matched the page."""


class JobUnavailable(ScrapeError):
    """Detail page says the job was closed or removed."""
