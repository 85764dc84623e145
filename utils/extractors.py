from __future__ import annotations

import json
import re

from bs4 import BeautifulSoup as BS
from bs4.element import Tag
from typing import Any, Dict, List, Optional, Sequence, Tuple

Selectors = Sequence[str]


def _select(node: Tag, selector: str) -> List[Tag]:
    """
    `node.select(selector)` that treats any failure as "no match".

    Bad or unsupported CSS (soupsieve raises) must not take down the other
    candidates for the field.
    """
    try:
        return list(node.select(selector))
    except Exception:
        return []


def node_text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    try:
        return (el.get_text(" ", strip=True) or "").strip()
    except Exception:
        return ""


def first_text(node: Optional[Tag], selectors: Selectors) -> str:
    """
    Return the text of the first selector that yields non-empty trimmed text.

    Selectors are tried in priority order; within one selector the first
    matching element with text wins. Returns "" when nothing matches.
    """
    if node is None:
        return ""
    for sel in selectors:
        for el in _select(node, sel):
            txt = node_text(el)
            if txt:
                return txt
    return ""


def first_attr(node: Optional[Tag], selectors: Selectors, attr: str) -> str:
    if node is None:
        return ""
    for sel in selectors:
        for el in _select(node, sel):
            try:
                val = el.get(attr)
            except Exception:
                val = None
            if isinstance(val, list):
                val = " ".join(val)
            if val and str(val).strip():
                return str(val).strip()
    return ""


def all_texts(node: Optional[Tag], selectors: Selectors) -> List[str]:
    """
    Texts of every element matched by the first selector that yields any.

    Order is document order; duplicates are kept.
    """
    if node is None:
        return []
    for sel in selectors:
        out = [t for t in (node_text(el) for el in _select(node, sel)) if t]
        if out:
            return out
    return []


def first_matching(
    node: Optional[Tag], selectors: Selectors
) -> Tuple[Optional[str], List[Tag]]:
    """
    First selector with at least one match, plus its matches.

    Used for job containers: the winning selector applies to the whole page.
    """
    if node is None:
        return None, []
    for sel in selectors:
        found = _select(node, sel)
        if found:
            return sel, found
    return None, []


def flatten(
    obj: Any, prefix: str = "", out: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Flatten nested dicts/lists into dotted keys.

    Lists of scalars collapse to a single "; "-joined string, which is the
    shape the CSV export wants for skills.

    Args:
        obj: Object to flatten (dict, list, or scalar).
        prefix: Key path prefix to apply to nested values.
        out: Destination mapping (created if None).

    Returns:
        The `out` mapping with flattened keys and scalar values.
    """
    if out is None:
        out = {}
    if isinstance(obj, dict):
        for k, v in obj.items():
            flatten(v, f"{prefix}{k}." if prefix else f"{k}.", out)
    elif isinstance(obj, list):
        if all(isinstance(x, (str, int, float, bool)) or x is None for x in obj):
            out[prefix[:-1]] = "; ".join("" if x is None else str(x) for x in obj)
        else:
            for i, v in enumerate(obj):
                flatten(v, f"{prefix}{i}.", out)
    else:
        out[prefix[:-1]] = "" if obj is None else obj
    return out


def extract_jsonld(soup: BS) -> Dict[str, Any]:
    """
    Find the first JSON-LD JobPosting block and return it flattened.

    Args:
        soup: Parsed BeautifulSoup document.

    Returns:
        Flattened JobPosting mapping (e.g. "title", "hiringOrganization.name"),
        or {} when the page has none. Malformed blocks are skipped.
    """
    for b in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(b.string or b.get_text() or "", strict=False)
        except Exception:
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            candidates = graph if isinstance(graph, list) else [item]
            for c in candidates:
                if isinstance(c, dict) and c.get("@type") == "JobPosting":
                    return flatten(c)
    return {}


CHALLENGE_RE = re.compile(r"access denied|forbidden|verify you|captcha", re.I)


def looks_like_challenge(html_text: Optional[str]) -> bool:
    """Bot-challenge / access-denied page signature."""
    return bool(CHALLENGE_RE.search(html_text or ""))
