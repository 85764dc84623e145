"""
Base scraper class and common utilities.

`JobScraper` defines the standard lifecycle (preflight → fetch listings →
enrich details → filter → export) and shared helpers for logging, retries,
metrics and export. Subclasses should override `fetch_data` and `parse_job`.

Typical usage (via the CLI):
    scraper = UpworkScraper(config)
    scraper.run()
    scraper.export("scraped_data")
"""

from __future__ import annotations

import json
import logging
import time as _time

import pandas as pd

from pathlib import Path
from time import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Sequence

from scrapers.fetchers import PageFetcher, build_fetcher
from scrapers.pagination import FailureReport, PaginationResult
from utils.config import ScrapeConfig
from utils.errors import ChallengeDetected, JobUnavailable
from utils.extractors import flatten
from utils.filters import JobFilters, apply_filters
from utils.job_store import JobStore
from utils.metrics import Metrics
from utils.retry import RetryExhausted, RetryPolicy
from utils.schema import EXPORT_COLUMNS, JobRecord, validate_records


class JobScraper:
    """
    Abstract base class for marketplace job scrapers.

    Subclasses must implement `fetch_data` and `parse_job`. The `run()`
    method orchestrates the full pipeline and stores finalized records on
    `self.jobs`. Results can be exported with `export()`.

    Attributes:
        config: Effective run configuration.
        store: Deduplicating JobStore shared by the listing and detail phases.
        jobs: Finalized job records ready for export.
        failures: Listing and detail failures accumulated during the run.
        logger: LoggerAdapter that injects a `scraper` field for uniform logs.
        log_every: How often to emit detail progress (every N items).
    """

    ORIGIN = ""
    COOKIE_DOMAIN = ""
    WAIT_CSS: Sequence[str] = ()

    def __init__(
        self,
        config: Optional[ScrapeConfig] = None,
        *,
        fetcher: Optional[PageFetcher] = None,
        sleep: Callable[[float], None] = _time.sleep,
    ) -> None:
        """
        Initialize a scraper with its config, an empty store and logging.

        Args:
            config: Run configuration; defaults to `ScrapeConfig()`.
            fetcher: Page fetcher to use instead of building one from config.
            sleep: Sleep function used for backoff and politeness pauses.
        """
        self.config = config or ScrapeConfig()
        self.name = self.__class__.__name__.replace("Scraper", "").lower()

        self.store = JobStore()
        self.jobs: List[JobRecord] = []
        self.failures: List[FailureReport] = []
        self.listing_result: Optional[PaginationResult] = None

        # Standardized logger with a 'scraper' token for consistent formatting.
        self.logger = logging.LoggerAdapter(
            logging.getLogger(self.__class__.__name__),
            {"scraper": self.name},
        )
        self.log_every = 25
        self.sleep = sleep
        self.fetcher = fetcher
        self.max_workers: int = max(1, int(self.config.max_concurrency))
        self.metrics = Metrics(self.name)

    def fmt_pairs(self, **kv: Any) -> str:
        """
        Render key/value pairs as a single space-prefixed string.

        Args:
            **kv: Arbitrary key/value pairs to serialize.

        Returns:
            Concatenated `key=value` pairs with a leading space, or an empty
            string if no pairs are provided.
        """
        if not kv:
            return ""
        parts = [f"{k}={v}" for k, v in kv.items()]
        return " " + " ".join(parts)

    def log(self, event: str, level: str = "info", **kv: Any) -> None:
        """
        Emit a standardized log line as: `event key=value ...`.

        Args:
            event: Short event token (e.g., 'list:page', 'detail:error').
            level: Logging level name (e.g., 'info', 'warning', 'error').
            **kv: Structured context fields to include alongside the event.
        """
        msg = f"{event}{self.fmt_pairs(**kv)}"
        getattr(self.logger, level)(msg)

    # -----------------------------
    # Collaborators
    # -----------------------------
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_delay,
            jitter=self.config.retry_jitter,
            sleep=self.sleep,
        )

    def get_fetcher(self) -> PageFetcher:
        if self.fetcher is None:
            self.fetcher = build_fetcher(
                self.config,
                origin=self.ORIGIN,
                cookie_domain=self.COOKIE_DOMAIN,
                wait_css=self.WAIT_CSS,
                log=self.log,
            )
            self.log("fetcher:ready", kind=self.config.fetcher)
        return self.fetcher

    def close(self) -> None:
        if self.fetcher is not None:
            self.fetcher.close()

    # -----------------------------
    # Methods to override in subclasses
    # -----------------------------
    def fetch_data(self) -> PaginationResult:
        """
        Run the listing phase, filling `self.store` with listing records.

        Returns:
            The PaginationResult for the seed searches.

        Raises:
            NotImplementedError: Subclasses must implement this method.
        """
        raise NotImplementedError

    def parse_job(self, record: JobRecord) -> Dict[str, Any]:
        """
        Fetch one job's detail page and return the fields it adds.

        Args:
            record: Listing record from the store.

        Returns:
            Dict of non-empty detail fields for `JobStore.upsert_detail`.

        Raises:
            NotImplementedError: Subclasses must implement this method.
            FetchError: Retryable fetch/markup failure; `run()` retries it.
            JobUnavailable: Job closed; recorded as a detail failure.
        """
        raise NotImplementedError

    # -----------------------------
    # Detail phase
    # -----------------------------
    def enrich_details(self) -> int:
        """
        Fetch detail pages for every stored job on a bounded thread pool.

        Workers only fetch and parse; upserts happen here, on the calling
        thread, as futures complete. A failed detail page keeps the listing
        record and adds a FailureReport(kind="detail").

        Returns:
            Number of jobs enriched.
        """
        records = [r for r in self.store.values() if r.job_url]
        policy = self.retry_policy()
        enriched = 0

        self.log("detail:pool:start", workers=self.max_workers, total=len(records))
        self.metrics.set_gauge("detail.pool_workers", self.max_workers)

        def _on_retry(rec: JobRecord, n: int, e: BaseException, d: float) -> None:
            self.metrics.inc("fetch.retries")
            if isinstance(e, ChallengeDetected):
                self.metrics.inc("fetch.challenges")
                self.get_fetcher().retire_session()
            self.log(
                "detail:retry",
                level="warning",
                url=rec.job_url,
                attempt=n,
                delay=round(d, 2),
                error=f"{type(e).__name__}: {e}",
            )

        def _do_parse(rec: JobRecord):
            # runs on the worker thread that owns the session being retired
            try:
                return policy.call(
                    lambda: self.parse_job(rec),
                    on_retry=lambda n, e, d: _on_retry(rec, n, e, d),
                )
            except RetryExhausted as e:
                if isinstance(e.last_error, ChallengeDetected):
                    self.metrics.inc("fetch.challenges")
                    self.get_fetcher().retire_session()
                raise

        idx = 0
        with (
            self.metrics.time("detail.seconds"),
            ThreadPoolExecutor(max_workers=self.max_workers) as ex,
        ):
            futures = {ex.submit(_do_parse, r): r for r in records}
            for fut in as_completed(futures):
                rec = futures[fut]
                idx += 1
                try:
                    fields, _ = fut.result()
                except RetryExhausted as e:
                    self._detail_failure(rec, e.last_error, e.attempts)
                    continue
                except JobUnavailable as e:
                    self._detail_failure(rec, e, 1, level="warning")
                    continue
                except Exception as e:
                    self.logger.exception("detail:error url=%s", rec.job_url)
                    self._detail_failure(rec, e, 1)
                    continue
                if not fields:
                    self.metrics.inc("detail.empty")
                    self.log("detail:empty", level="warning", job_id=rec.job_id, url=rec.job_url)
                elif self.store.upsert_detail(rec.job_id, fields):
                    enriched += 1
                    self.metrics.inc("detail.enriched")
                if idx == 1 or idx % self.log_every == 0:
                    self.log("detail:progress", idx=idx, total=len(records))

        self.log("detail:pool:done", enriched=enriched, total=len(records))
        return enriched

    def _detail_failure(
        self, rec: JobRecord, err: BaseException, attempts: int, level: str = "error"
    ) -> None:
        self.metrics.inc("detail.failed")
        report = FailureReport(
            url=rec.job_url,
            error=f"{type(err).__name__}: {err}",
            attempts=attempts,
            kind="detail",
        )
        self.failures.append(report)
        self.log(
            "detail:failed",
            level=level,
            job_id=rec.job_id,
            attempts=attempts,
            error=report.error,
        )

    # -----------------------------
    # Finalize
    # -----------------------------
    def finalize(self) -> List[JobRecord]:
        """Apply filters and the result cap to the store and set `self.jobs`."""
        records = self.store.values()
        filters = JobFilters.from_dict(self.config.filters)
        kept = apply_filters(records, filters)
        if len(kept) != len(records):
            self.log("filter:drop", before=len(records), kept=len(kept))
            self.metrics.inc("jobs.filtered", len(records) - len(kept))

        cap = self.config.max_results
        if cap is not None and len(kept) > cap:
            self.log("limit:max_results", limit=cap, before=len(kept))
            kept = kept[:cap]

        errs, problems = validate_records([j.to_dict() for j in kept])
        if errs:
            self.log("validate:problems", level="warning", rows=errs, sample=problems[:5])

        self.jobs = kept
        return kept

    # -----------------------------
    # Orchestrator
    # -----------------------------
    def run(self) -> None:
        """
        Execute the full scraper lifecycle and store results on `self.jobs`.

        Lifecycle:
            1) config.validate()  (ConfigError before any fetch)
            2) fetch_data()       listing phase
            3) enrich_details()   when config.fetch_details
            4) finalize()         filters + max_results

        Raises:
            ConfigError: Pre-flight failure.
            Exception: Fetcher construction failures propagate; per-page and
                per-job failures are recorded on `self.failures` instead.
        """
        start = time()
        self.config.validate()

        try:
            self.log("fetch:start")
            with self.metrics.time("listing.seconds"):
                result = self.fetch_data()
            self.listing_result = result
            self.failures.extend(result.failures)
            self.log(
                "fetch:done",
                n=len(self.store),
                pages=result.pages_fetched,
                failures=len(result.failures),
            )

            if self.config.fetch_details and len(self.store):
                self.enrich_details()
            else:
                self.log("detail:skip", enabled=self.config.fetch_details, n=len(self.store))
        finally:
            self.close()

        self.finalize()
        self.metrics.set_gauge("output.jobs", len(self.jobs))
        self.metrics.set_gauge("output.failures", len(self.failures))
        self.log("done", count=len(self.jobs), failures=len(self.failures))
        total_sec = round(time() - start, 3)
        self.metrics.observe("run.seconds", total_sec)
        self.log("run:duration", seconds=total_sec)

    # -----------------------------
    # Export
    # -----------------------------
    def export(self, output_dir: str | Path) -> Dict[str, Path]:
        """
        Export jobs (CSV + JSON), failures (CSV, only when any) and metrics.

        Args:
            output_dir: Destination directory; created if missing.

        Returns:
            Mapping of artifact kind ("jobs_csv", "jobs_json", "failures_csv",
            "metrics") to the path written.

        Raises:
            OSError: If the destination is not writable.
        """
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        written: Dict[str, Path] = {}

        rows = [flatten(j.to_dict()) for j in self.jobs]
        jobs_csv = out / f"{self.name}_jobs.csv"
        pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(jobs_csv, index=False)
        written["jobs_csv"] = jobs_csv

        jobs_json = out / f"{self.name}_jobs.json"
        jobs_json.write_text(
            json.dumps([j.to_dict() for j in self.jobs], ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        written["jobs_json"] = jobs_json
        self.log("export:jobs", path=str(jobs_csv), n=len(self.jobs))

        if self.failures:
            failures_csv = out / f"{self.name}_failures.csv"
            pd.DataFrame(
                [f.to_dict() for f in self.failures],
                columns=["url", "error", "attempts", "kind"],
            ).to_csv(failures_csv, index=False)
            written["failures_csv"] = failures_csv
            self.log("export:failures", path=str(failures_csv), n=len(self.failures))

        metrics_path = out / f"{self.name}_metrics.json"
        self.metrics.write(metrics_path)
        written["metrics"] = metrics_path
        return written
