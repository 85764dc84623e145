# scrapers/listing.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from bs4 import BeautifulSoup as BS
from bs4.element import Tag

from utils.errors import ChallengeDetected, MarkupNotRecognized
from utils.extractors import (
    all_texts,
    first_attr,
    first_matching,
    first_text,
    looks_like_challenge,
)
from utils.schema import ClientInfo, JobRecord
from utils.transforms import (
    absolutize,
    extract_job_id,
    is_payment_verified,
    page_number,
    parse_budget,
    parse_hourly_rate,
    parse_proposals,
)

T = TypeVar("T")


@dataclass(frozen=True)
class ListingSelectors:
    """
    Ordered CSS candidates per field for one site's search-result markup.

    Earlier entries are the current markup; later ones are looser fallbacks
    kept for older or A/B-tested layouts.
    """

    containers: Tuple[str, ...]
    next_page: Tuple[str, ...]
    title: Tuple[str, ...] = ()
    url: Tuple[str, ...] = ()
    description: Tuple[str, ...] = ()
    budget: Tuple[str, ...] = ()
    hourly: Tuple[str, ...] = ()
    job_type: Tuple[str, ...] = ()
    experience_level: Tuple[str, ...] = ()
    posted: Tuple[str, ...] = ()
    country: Tuple[str, ...] = ()
    verified: Tuple[str, ...] = ()
    proposals: Tuple[str, ...] = ()
    skills: Tuple[str, ...] = ()
    client_name: Tuple[str, ...] = ()
    client_rating: Tuple[str, ...] = ()
    client_spent: Tuple[str, ...] = ()


@dataclass
class ListingPage:
    url: str
    records: List[JobRecord] = field(default_factory=list)
    next_url: str = ""
    should_continue: bool = False
    container_selector: Optional[str] = None
    current_page: int = 1


def _guard(fn: Callable[[], T], default: T) -> T:
    # One field failing must not cost the rest of the job.
    try:
        return fn()
    except Exception:
        return default


def extract_job(fragment: Tag, selectors: ListingSelectors, origin: str) -> JobRecord:
    """
    Build a JobRecord from one job tile.

    Every field is extracted independently; a missing or broken field yields
    its empty value ("" / None / 0 / False / []). `source` and `scraped_at`
    are left for the pipeline to fill in.
    """
    s = selectors

    href = _guard(lambda: first_attr(fragment, s.url, "href"), "")
    job_url = _guard(lambda: absolutize(href, origin, origin), "")

    budget_text = _guard(lambda: first_text(fragment, s.budget), "")
    hourly_text = _guard(lambda: first_text(fragment, s.hourly), "")
    proposals_text = _guard(lambda: first_text(fragment, s.proposals), "")
    verified_text = _guard(lambda: first_text(fragment, s.verified), "")

    return JobRecord(
        job_id=_guard(lambda: extract_job_id(job_url), None),
        title=_guard(lambda: first_text(fragment, s.title), ""),
        description=_guard(lambda: first_text(fragment, s.description), ""),
        posted=_guard(lambda: first_text(fragment, s.posted), ""),
        country=_guard(lambda: first_text(fragment, s.country), ""),
        job_type=_guard(lambda: first_text(fragment, s.job_type), ""),
        experience_level=_guard(lambda: first_text(fragment, s.experience_level), ""),
        job_url=job_url,
        budget=_guard(lambda: parse_budget(budget_text), None),
        hourly_rate=_guard(lambda: parse_hourly_rate(hourly_text), None),
        proposals=_guard(lambda: parse_proposals(proposals_text), 0),
        payment_verified=_guard(lambda: is_payment_verified(verified_text), False),
        skills=_guard(lambda: all_texts(fragment, s.skills), []),
        client_info=ClientInfo(
            name=_guard(lambda: first_text(fragment, s.client_name), ""),
            rating=_guard(lambda: first_text(fragment, s.client_rating), ""),
            total_spent=_guard(lambda: first_text(fragment, s.client_spent), ""),
        ),
    )


def process_listing_page(
    html: str,
    url: str,
    *,
    selectors: ListingSelectors,
    max_pages: int,
    origin: str,
    page_param: str = "page",
    soup: Any = None,
) -> ListingPage:
    """
    Turn one fetched search page into job records and a continuation decision.

    The first container selector that matches anything is used for the whole
    page. The next-page control is resolved to an absolute URL. Paginating
    continues only while the page number in `url` (default 1) is below
    `max_pages`.

    Args:
        html: Page HTML as returned by the fetcher.
        url: URL the page was fetched from.
        selectors: Site selector table.
        max_pages: Per-search page ceiling.
        origin: Canonical site origin used for relative links.
        page_param: Query parameter that carries the page number.
        soup: Optional pre-parsed document (skips parsing `html`).

    Returns:
        ListingPage with records (job_id may be None), next_url and
        should_continue.

    Raises:
        ChallengeDetected: The page is a bot challenge instead of results.
        MarkupNotRecognized: No container selector matched.
    """
    if soup is None:
        soup = BS(html or "", "lxml")

    container_sel, fragments = first_matching(soup, selectors.containers)
    if not fragments:
        if looks_like_challenge(html):
            raise ChallengeDetected("bot challenge detected", url=url)
        raise MarkupNotRecognized("no job containers matched", url=url)

    records = [extract_job(frag, selectors, origin) for frag in fragments]

    href = first_attr(soup, selectors.next_page, "href")
    next_url = absolutize(href, url, origin) if href else ""

    current = page_number(url, page_param)
    return ListingPage(
        url=url,
        records=records,
        next_url=next_url,
        should_continue=current < max_pages,
        container_selector=container_sel,
        current_page=current,
    )
