"""
Pagination controller: fetch -> process -> store -> continue, per seed search.

Each seed search walks Queued -> Fetching -> Processed and then either queues
its next page or is Done. Up to `max_concurrency` page fetches run at once on
a thread pool. Workers only fetch and parse; the coordinating thread is the
single writer to the JobStore, so a page's records land all at once or not
at all.
"""

from __future__ import annotations

import random
import time

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from scrapers.fetchers import PageFetcher
from scrapers.listing import ListingPage, ListingSelectors, process_listing_page
from utils.errors import ChallengeDetected
from utils.job_store import JobStore
from utils.metrics import Metrics
from utils.retry import RetryExhausted, RetryPolicy

Logger = Callable[..., None]


def _noop_log(event: str, level: str = "info", **kv: Any) -> None:
    return None


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class PageRequest:
    """
    One page to fetch. `user_data` is threaded through pagination untouched
    except for `page`, which is incremented on every hop.
    """

    url: str
    user_data: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def page(self) -> int:
        try:
            return int(self.user_data.get("page", 1))
        except (TypeError, ValueError):
            return 1

    def next(self, url: str) -> "PageRequest":
        user_data = dict(self.user_data)
        user_data["page"] = self.page + 1
        return PageRequest(url=url, user_data=user_data, headers=dict(self.headers))


@dataclass
class FailureReport:
    url: str
    error: str
    attempts: int = 0
    kind: str = "listing"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaginationResult:
    pages_fetched: int = 0
    jobs_added: int = 0
    failures: List[FailureReport] = field(default_factory=list)
    # search_index -> why that search stopped
    finished: Dict[int, str] = field(default_factory=dict)


class PaginationController:
    """
    Drive paginated listing fetches for a list of seed search URLs.

    Args:
        fetcher: Page fetcher (HTTP or browser).
        store: JobStore receiving listing records.
        selectors: Listing selector table for the site.
        origin: Canonical site origin for relative links.
        max_pages: Per-search page ceiling.
        max_concurrency: Max page fetches in flight.
        retry_policy: Retry/backoff policy for a single page.
        politeness_delay: Fixed pause (seconds) after each fetch.
        politeness_jitter: Extra uniform(0, jitter) pause after each fetch.
        page_param: Query parameter carrying the page number.
        log: Callable(event, level="info", **kv).
        metrics: Optional Metrics sink.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        store: JobStore,
        *,
        selectors: ListingSelectors,
        origin: str,
        max_pages: int,
        max_concurrency: int = 2,
        retry_policy: Optional[RetryPolicy] = None,
        politeness_delay: float = 0.0,
        politeness_jitter: float = 0.0,
        page_param: str = "page",
        log: Logger = _noop_log,
        metrics: Optional[Metrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.selectors = selectors
        self.origin = origin
        self.max_pages = max(1, int(max_pages))
        self.max_concurrency = max(1, int(max_concurrency))
        self.retry_policy = retry_policy or RetryPolicy()
        self.politeness_delay = politeness_delay
        self.politeness_jitter = politeness_jitter
        self.page_param = page_param
        self.log = log
        self.metrics = metrics or Metrics("pagination")
        self.sleep = sleep

    # -----------------------------
    # Worker side (runs in the pool)
    # -----------------------------
    def _attempt(self, req: PageRequest) -> ListingPage:
        html = self.fetcher.fetch(req.url, headers=req.headers or None)
        return process_listing_page(
            html,
            req.url,
            selectors=self.selectors,
            max_pages=self.max_pages,
            origin=self.origin,
            page_param=self.page_param,
        )

    def _on_retry(self, req: PageRequest, attempt: int, err: BaseException, delay: float) -> None:
        self.metrics.inc("fetch.retries")
        if isinstance(err, ChallengeDetected):
            self.metrics.inc("fetch.challenges")
            self.fetcher.retire_session()
        self.log(
            "fetch:retry",
            level="warning",
            url=req.url,
            attempt=attempt,
            delay=round(delay, 2),
            error=f"{type(err).__name__}: {err}",
        )

    def _polite_pause(self) -> None:
        pause = self.politeness_delay
        if self.politeness_jitter > 0:
            pause += random.uniform(0, self.politeness_jitter)
        if pause > 0:
            self.sleep(pause)

    def fetch_page(self, req: PageRequest) -> Tuple[ListingPage, int]:
        """Fetch and process one page under the retry policy."""
        try:
            page, attempts = self.retry_policy.call(
                lambda: self._attempt(req),
                on_retry=lambda n, e, d: self._on_retry(req, n, e, d),
            )
        except RetryExhausted as e:
            if isinstance(e.last_error, ChallengeDetected):
                self.metrics.inc("fetch.challenges")
                self.fetcher.retire_session()
            raise
        self._polite_pause()
        return page, attempts

    # -----------------------------
    # Coordinator side
    # -----------------------------
    def seed_requests(self, searches: Sequence[str]) -> List[PageRequest]:
        return [
            PageRequest(url=u, user_data={"search_index": i, "page": 1})
            for i, u in enumerate(searches)
        ]

    def _store_page(self, req: PageRequest, page: ListingPage) -> int:
        stamp = utc_now()
        added = 0
        for rec in page.records:
            rec.source = req.url
            rec.scraped_at = stamp
            if self.store.upsert_listing(rec):
                added += 1
            elif rec.job_id:
                self.metrics.inc("jobs.duplicates")
            else:
                self.metrics.inc("jobs.dropped_no_id")
        self.metrics.inc("jobs.listing", added)
        return added

    def _next_request(self, req: PageRequest, page: ListingPage) -> Tuple[Optional[PageRequest], str]:
        if not page.next_url:
            return None, "no_next_page"
        if not page.should_continue or req.page >= self.max_pages:
            return None, "page_ceiling"
        return req.next(page.next_url), ""

    def run(self, searches: Sequence[str]) -> PaginationResult:
        """
        Paginate every seed search to completion.

        Failures are recorded per request and never stop other searches.

        Returns:
            PaginationResult with page counts, failures and stop reasons.
        """
        result = PaginationResult()
        seeds = self.seed_requests(searches)
        self.log(
            "list:start",
            seeds=len(seeds),
            max_pages=self.max_pages,
            workers=self.max_concurrency,
        )

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as ex:
            pending: Dict[Future, PageRequest] = {
                ex.submit(self.fetch_page, req): req for req in seeds
            }
            while pending:
                done, _ = wait(list(pending), return_when=FIRST_COMPLETED)
                for fut in done:
                    req = pending.pop(fut)
                    idx = int(req.user_data.get("search_index", -1))
                    try:
                        page, attempts = fut.result()
                    except RetryExhausted as e:
                        self._record_failure(result, req, e.last_error, e.attempts)
                        result.finished[idx] = "failed"
                        continue
                    except Exception as e:
                        self._record_failure(result, req, e, 1)
                        result.finished[idx] = "failed"
                        continue

                    result.pages_fetched += 1
                    self.metrics.inc("pages.fetched")
                    added = self._store_page(req, page)
                    result.jobs_added += added
                    self.log(
                        "list:page",
                        search=idx,
                        page=req.page,
                        found=len(page.records),
                        added=added,
                        attempts=attempts,
                        selector=page.container_selector,
                        url=req.url,
                    )

                    nxt, reason = self._next_request(req, page)
                    if nxt is None:
                        result.finished[idx] = reason
                        self.log("list:done", search=idx, page=req.page, reason=reason)
                        continue
                    pending[ex.submit(self.fetch_page, nxt)] = nxt

        self.log(
            "list:fetched",
            pages=result.pages_fetched,
            jobs=result.jobs_added,
            failures=len(result.failures),
        )
        return result

    def _record_failure(
        self, result: PaginationResult, req: PageRequest, err: BaseException, attempts: int
    ) -> None:
        self.metrics.inc("pages.failed")
        report = FailureReport(
            url=req.url,
            error=f"{type(err).__name__}: {err}",
            attempts=attempts,
            kind="listing",
        )
        result.failures.append(report)
        self.log(
            "list:failed",
            level="error",
            url=req.url,
            page=req.page,
            attempts=attempts,
            error=report.error,
        )
