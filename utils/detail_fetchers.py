# utils/detail_fetchers.py

from __future__ import annotations

import re

from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from bs4 import BeautifulSoup as BS

from utils.errors import ChallengeDetected, JobUnavailable, MarkupNotRecognized
from utils.extractors import (
    all_texts,
    extract_jsonld,
    first_matching,
    first_text,
    looks_like_challenge,
)
from utils.transforms import (
    is_payment_verified,
    parse_budget,
    parse_hourly_rate,
    parse_proposals,
    sanitize_description,
)

Getter = Callable[..., str]  # e.g., fetcher.fetch(url) -> html
Logger = Callable[..., None]  # e.g., self.log(event, **kwargs)

UNAVAILABLE_RE = re.compile(
    r"this job is no longer available|job is no longer accepting|this job has been removed",
    re.I,
)


@dataclass(frozen=True)
class DetailSelectors:
    """Ordered CSS candidates for fields on a job detail page."""

    root: Tuple[str, ...]
    title: Tuple[str, ...] = ()
    description: Tuple[str, ...] = ()
    posted: Tuple[str, ...] = ()
    budget: Tuple[str, ...] = ()
    hourly: Tuple[str, ...] = ()
    job_type: Tuple[str, ...] = ()
    experience_level: Tuple[str, ...] = ()
    proposals: Tuple[str, ...] = ()
    skills: Tuple[str, ...] = ()
    country: Tuple[str, ...] = ()
    verified: Tuple[str, ...] = ()
    client_name: Tuple[str, ...] = ()
    client_rating: Tuple[str, ...] = ()
    client_spent: Tuple[str, ...] = ()


def _put(out: Dict[str, Any], key: str, value: Any) -> None:
    # Only non-empty detail values may overwrite listing values.
    if value is None or value == "" or value == []:
        return
    out[key] = value


def extract_detail_fields(html_text: str, selectors: DetailSelectors) -> Dict[str, Any]:
    """
    Parse a job detail page into the fields it can vouch for.

    JSON-LD (JobPosting) is preferred for title/description/date; everything
    else comes from the ordered selector lists. Empty values are omitted so
    the result can be overlaid on a listing record without blanking it.

    Raises:
        ChallengeDetected: Page is a bot challenge.
        JobUnavailable: Page says the job is closed/removed.
        MarkupNotRecognized: Neither JSON-LD nor a detail root was found.
    """
    soup = BS(html_text or "", "lxml")
    jsonld = extract_jsonld(soup)
    _, roots = first_matching(soup, selectors.root)
    root = roots[0] if roots else None

    if UNAVAILABLE_RE.search(html_text or ""):
        raise JobUnavailable("job is no longer available")
    if root is None and not jsonld:
        if looks_like_challenge(html_text):
            raise ChallengeDetected("bot challenge detected on detail page")
        raise MarkupNotRecognized("job detail markup not recognized")

    out: Dict[str, Any] = {}
    _put(out, "title", jsonld.get("title") or first_text(root, selectors.title))
    _put(
        out,
        "description",
        sanitize_description(jsonld.get("description"))
        or first_text(root, selectors.description),
    )
    _put(out, "posted", jsonld.get("datePosted") or first_text(root, selectors.posted))
    _put(out, "job_type", first_text(root, selectors.job_type))
    _put(out, "experience_level", first_text(root, selectors.experience_level))
    _put(out, "country", first_text(root, selectors.country))
    _put(out, "budget", parse_budget(first_text(root, selectors.budget)))
    _put(out, "hourly_rate", parse_hourly_rate(first_text(root, selectors.hourly)))
    _put(
        out,
        "proposals",
        parse_proposals(first_text(root, selectors.proposals), default=None),
    )
    _put(out, "skills", all_texts(root, selectors.skills))

    verified_text = first_text(root, selectors.verified)
    if verified_text:
        out["payment_verified"] = is_payment_verified(verified_text)

    client = {
        "name": first_text(root, selectors.client_name)
        or str(jsonld.get("hiringOrganization.name") or ""),
        "rating": first_text(root, selectors.client_rating),
        "total_spent": first_text(root, selectors.client_spent),
    }
    if any(client.values()):
        out["client_info"] = client
    return out


def fetch_job_detail(
    get: Getter,
    log: Logger,
    job_url: str,
    *,
    selectors: DetailSelectors,
) -> Dict[str, Any]:
    """
    Fetch one job detail page and return its detail fields.

    Performs exactly one fetch through the caller's fetcher; retries are the
    caller's business.

    Args:
        get: Callable returning page HTML for a URL (e.g. fetcher.fetch).
        log: Callable for logging (e.g. scraper.log). Accepts (event, **kwargs).
        job_url: Absolute job URL.
        selectors: Detail page selector table.

    Returns:
        Dict of non-empty detail fields, suitable for JobStore.upsert_detail.
    """
    html_text = get(job_url)
    fields = extract_detail_fields(html_text, selectors)
    log("detail:extract:ok", level="debug", url=job_url, fields=len(fields))
    return fields
