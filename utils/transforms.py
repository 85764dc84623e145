from __future__ import annotations

import math
import re

from bs4 import BeautifulSoup as BS
from typing import Dict, Optional, Pattern, Sequence, Union
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

Number = Union[int, float]

_AMOUNT = r"\$\s*(\d[\d,]*(?:\.\d+)?)"

# Order matters: first pattern that matches wins.
BUDGET_PATTERNS: Sequence[tuple[str, Pattern[str]]] = (
    ("range", re.compile(_AMOUNT + r"\s*(?:-|–|to)\s*" + _AMOUNT, re.I)),
    ("fixed", re.compile(r"fixed(?:[\s-]*price)?[^$\d]*" + _AMOUNT, re.I)),
    ("single", re.compile(_AMOUNT)),
)

HOURLY_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(_AMOUNT + r"\s*/\s*hr\b", re.I),
    re.compile(_AMOUNT + r"\s*/\s*hour\b", re.I),
)

# Range forms first, otherwise "5-10 proposals" would read as 10.
PROPOSAL_RANGE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"(\d+)\s*(?:-|–|to)\s*(\d+)\s*proposals?", re.I),
    re.compile(r"proposals?\s*:?\s*(\d+)\s*(?:-|–|to)\s*(\d+)", re.I),
)
PROPOSAL_SINGLE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"(\d+)\s*\+?\s*proposals?", re.I),
    re.compile(r"proposals?\s*:?\s*(?:less than\s*)?(\d+)", re.I),
)

JOB_ID_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"/jobs/([^/?#]+)"),
    re.compile(r"/nx/jobs/([^/?#]+)"),
    re.compile(r"job/([^/?#]+)"),
    re.compile(r"~([^/?#]+)"),
)

_NOT_VERIFIED = re.compile(r"\b(?:unverified|not\s+verified)\b", re.I)


def round_half_up(x: float) -> int:
    """7.5 -> 8 and 2.5 -> 3 (Python's round() would give 2)."""
    return int(math.floor(x + 0.5))


def _to_number(raw: str) -> Number:
    v = float(raw.replace(",", ""))
    return int(v) if v.is_integer() else v


def parse_budget(text: Optional[str]) -> Optional[Number]:
    """
    Resolve a budget label to a single amount.

    "$500 - $1,000" -> 750 (mean, rounded), "Fixed: $2,000" -> 2000,
    "$5,000" -> 5000. Anything without a dollar amount -> None.
    """
    if not text:
        return None
    for kind, pat in BUDGET_PATTERNS:
        m = pat.search(text)
        if not m:
            continue
        if kind == "range":
            lo = float(m.group(1).replace(",", ""))
            hi = float(m.group(2).replace(",", ""))
            return round_half_up((lo + hi) / 2)
        return _to_number(m.group(1))
    return None


def parse_hourly_rate(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    for pat in HOURLY_PATTERNS:
        m = pat.search(text)
        if m:
            return float(m.group(1).replace(",", ""))
    return None


def parse_proposals(text: Optional[str], default: Optional[int] = 0) -> Optional[int]:
    """
    "15 proposals" -> 15, "5-10 proposals" / "Proposals: 5 to 10" -> 8.

    Unmatched text returns `default` (0), so 0 also means "unknown".
    """
    if not text:
        return default
    for pat in PROPOSAL_RANGE_PATTERNS:
        m = pat.search(text)
        if m:
            return round_half_up((int(m.group(1)) + int(m.group(2))) / 2)
    for pat in PROPOSAL_SINGLE_PATTERNS:
        m = pat.search(text)
        if m:
            return int(m.group(1))
    return default


def is_payment_verified(text: Optional[str]) -> bool:
    if not text:
        return False
    if _NOT_VERIFIED.search(text):
        return False
    return "verified" in text.lower()


def extract_job_id(url: Optional[str]) -> Optional[str]:
    """
    Derive the job identifier from a job URL.

    Patterns are tried in order (/jobs/<id>, /nx/jobs/<id>, job/<id>, ~<id>);
    the id ends at the next '/', '?' or '#'. Returns None when nothing matches.
    """
    if not url:
        return None
    for pat in JOB_ID_PATTERNS:
        m = pat.search(url)
        if m:
            return m.group(1)
    return None


def absolutize(href: Optional[str], base: str = "", origin: str = "") -> str:
    """Resolve `href` against `base`, then against `origin` if still relative."""
    href = (href or "").strip()
    if not href:
        return ""
    out = urljoin(base, href) if base else href
    if not urlparse(out).scheme and origin:
        out = urljoin(origin, out)
    return out


def page_number(url: Optional[str], param: str = "page", default: int = 1) -> int:
    if not url:
        return default
    values = parse_qs(urlparse(url).query).get(param)
    if not values:
        return default
    try:
        return int(values[-1])
    except ValueError:
        return default


def with_query(url: str, params: Dict[str, str]) -> str:
    u = urlparse(url)
    q = parse_qs(u.query)
    for k, v in params.items():
        q[k] = [v]
    new_q = urlencode({k: v[-1] for k, v in q.items() if v}, doseq=False)
    return u._replace(query=new_q).geturl()


def clean_text(s: Optional[str]) -> str:
    if not s:
        return ""
    s = s.replace("\xa0", " ")
    s = re.sub(r"[ \t]+", " ", s)
    s = re.sub(r"\n{3,}", "\n\n", s)
    return s.strip()


def sanitize_description(raw: Optional[str]) -> str:
    if not raw:
        return ""
    s = str(raw)
    if "<" not in s:
        return clean_text(s)
    s = s.replace("</br>", "<br>").replace("<br/>", "<br>").replace("<BR>", "<br>")
    soup = BS(s, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for li in soup.find_all("li"):
        text = li.get_text(" ", strip=True)
        li.clear()
        li.append(text + "\n")
    return clean_text(soup.get_text("\n", strip=True))
