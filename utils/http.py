from __future__ import annotations

import requests

from typing import Dict, List, Optional
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Connection": "keep-alive",
}


def parse_cookie_string(raw: Optional[str]) -> Dict[str, str]:
    """
    Split a browser-style cookie header ("a=b; c=d") into a name->value map.

    Values may themselves contain '='; pairs without a name or value are
    dropped.

    Args:
        raw: Raw cookie string as copied from a logged-in browser session.

    Returns:
        Ordered mapping of cookie names to values.
    """
    out: Dict[str, str] = {}
    if not raw:
        return out
    for part in raw.split(";"):
        name, sep, value = part.strip().partition("=")
        name = name.strip()
        value = value.strip()
        if name and sep and value:
            out[name] = value
    return out


def cookie_dicts(raw: Optional[str], domain: str, path: str = "/") -> List[dict]:
    """Cookie string -> list of dicts shaped for WebDriver.add_cookie()."""
    return [
        {"name": k, "value": v, "domain": domain, "path": path}
        for k, v in parse_cookie_string(raw).items()
    ]


def build_session(
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
    *,
    cookie_domain: str = "",
    total: int = 2,
    backoff_factor: float = 0.5,
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504),
) -> requests.Session:
    """
    Create a `requests.Session` with transport-level retry/backoff.

    Only connection resets and 429/5xx are retried here, and only a couple
    of times; page-level retries (challenge pages, unrecognized markup)
    belong to `utils.retry.RetryPolicy`.

    Args:
        headers: Default headers; merged over DEFAULT_HEADERS.
        cookies: Auth cookies to seed the jar with.
        cookie_domain: Domain to scope the cookies to ("" = any host).
        total: Max retries per error category.
        backoff_factor: urllib3 backoff multiplier.
        status_forcelist: HTTP statuses that trigger a transport retry.

    Returns:
        A session with retry-enabled adapters mounted for http and https.
    """
    s = requests.Session()
    s.headers.update({**DEFAULT_HEADERS, **(headers or {})})
    for name, value in (cookies or {}).items():
        s.cookies.set(name, value, domain=cookie_domain, path="/")
    retry = Retry(
        total=total,
        connect=total,
        read=total,
        status=total,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s
