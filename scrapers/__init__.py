"""
Scraper package: pipeline pieces plus the registry of site scrapers.

Every module in the package is imported on load so each `JobScraper`
subclass is defined, then the registry maps a short CLI name ("upwork")
to its class.
"""

from __future__ import annotations

import importlib
import pkgutil
from typing import Dict, Type

from utils.errors import ConfigError

from .base import JobScraper

for _, _name, _ in pkgutil.walk_packages(__path__):
    importlib.import_module(f"{__name__}.{_name}")

#: Lowercase site key -> scraper class.
SCRAPER_REGISTRY: Dict[str, Type[JobScraper]] = {
    cls.__name__.replace("Scraper", "").lower(): cls
    for cls in JobScraper.__subclasses__()
}


def get_scraper(name: str) -> Type[JobScraper]:
    """
    Look up a scraper class by its registry key.

    Raises:
        ConfigError: No scraper registered under `name`.
    """
    try:
        return SCRAPER_REGISTRY[name.lower()]
    except KeyError:
        known = ", ".join(sorted(SCRAPER_REGISTRY)) or "none"
        raise ConfigError(f"unknown scraper {name!r}; known: {known}") from None


__all__ = ["SCRAPER_REGISTRY", "JobScraper", "get_scraper"]
