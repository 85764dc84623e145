import json

import pandas as pd
import pytest

from scrapers import SCRAPER_REGISTRY, get_scraper
from scrapers.upwork_scraper import UpworkScraper
from utils.errors import ConfigError
from utils.schema import EXPORT_COLUMNS

SEARCH = "https://www.upwork.com/nx/search/jobs/?q=python"
PAGE2 = "https://www.upwork.com/nx/search/jobs/?q=python&page=2"
JOB1 = "https://www.upwork.com/jobs/~01abc123"
JOB2 = "https://www.upwork.com/jobs/~02def456?source=rss"


def _pages(fx, **extra):
    pages = {
        SEARCH: fx.text("upwork_search_page1.html"),
        PAGE2: fx.text("upwork_search_page2.html"),
    }
    pages.update(extra)
    return pages


def _scraper(config, fetcher):
    return UpworkScraper(config, fetcher=fetcher, sleep=lambda s: None)


def test_registry_exposes_upwork():
    assert SCRAPER_REGISTRY["upwork"] is UpworkScraper
    assert get_scraper("Upwork") is UpworkScraper
    with pytest.raises(ConfigError):
        get_scraper("fiverr")


def test_build_search_url():
    assert (
        UpworkScraper.build_search_url("react developer")
        == "https://www.upwork.com/nx/search/jobs/?q=react+developer&sort=recency"
    )
    url = UpworkScraper.build_search_url("python", job_type="hourly", experience_level="expert")
    assert "job_type=hourly" in url and "experience_level=expert" in url


def test_seed_urls_combine_searches_and_queries(make_config):
    s = UpworkScraper(make_config(searches=[SEARCH], queries=[{"q": "scrapy", "job_type": "fixed"}]))
    seeds = s.seed_urls()
    assert seeds[0] == SEARCH
    assert seeds[1].startswith("https://www.upwork.com/nx/search/jobs/?q=scrapy")
    assert "job_type=fixed" in seeds[1]


def test_listing_run_dedupes_across_pages(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(_pages(fx))
    s = _scraper(make_config(max_pages_per_search=3), fetcher)
    s.run()

    assert fetcher.calls == [SEARCH, PAGE2]
    assert [j.job_id for j in s.jobs] == ["~01abc123", "~02def456", "03ghi789", "~04jkl012"]
    # the repost on page 2 does not replace the first observation
    assert s.jobs[0].title == "Senior Python Developer"
    assert all(j.stage == "listing" for j in s.jobs)
    assert s.failures == []
    assert fetcher.closed is True
    assert s.metrics.count("jobs.duplicates") == 1
    assert s.metrics.count("pages.fetched") == 2


def test_detail_phase_enriches_and_reports_failures(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(
        _pages(
            fx,
            **{
                JOB1: fx.text("upwork_job_detail.html"),
                JOB2: fx.text("upwork_job_closed.html"),
            },
        )
    )
    s = _scraper(make_config(fetch_details=True, max_retries=1), fetcher)
    s.run()

    by_id = {j.job_id: j for j in s.jobs}
    assert list(by_id) == ["~01abc123", "~02def456", "03ghi789", "~04jkl012"]

    enriched = by_id["~01abc123"]
    assert enriched.stage == "enriched"
    assert enriched.title == "Senior Python Developer (Django)"
    assert enriched.budget == 1200
    assert enriched.proposals == 35
    assert enriched.skills == ["Python", "Django", "Celery"]
    assert enriched.client_info.name == "Acme Logistics"
    assert enriched.client_info.rating == "4.8"
    # listing-only fields survive the overlay
    assert enriched.job_type == "Fixed price"
    assert enriched.job_url == JOB1
    assert by_id["~02def456"].stage == "listing"

    assert all(f.kind == "detail" for f in s.failures)
    errors = {f.url: f for f in s.failures}
    assert set(errors) == {
        JOB2,
        "https://www.upwork.com/freelance-jobs/apply/Data-Scraper_~03ghi789/",
        "https://www.upwork.com/jobs/~04jkl012",
    }
    assert "JobUnavailable" in errors[JOB2].error
    assert errors["https://www.upwork.com/jobs/~04jkl012"].attempts == 2
    assert s.metrics.count("detail.enriched") == 1
    assert s.metrics.count("detail.failed") == 3


def test_filters_and_result_cap(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(_pages(fx))
    s = _scraper(make_config(filters={"job_type": "hourly"}), fetcher)
    s.run()
    # fixed-price jobs dropped; a job of unknown type is kept
    assert [j.job_id for j in s.jobs] == ["~02def456", "03ghi789"]

    fetcher = scripted_fetcher(_pages(fx))
    s = _scraper(make_config(max_results=2), fetcher)
    s.run()
    assert [j.job_id for j in s.jobs] == ["~01abc123", "~02def456"]


def test_preflight_fails_before_any_fetch(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(_pages(fx))
    s = _scraper(make_config(require_auth=True, cookie=""), fetcher)
    with pytest.raises(ConfigError):
        s.run()
    assert fetcher.calls == []


def test_listing_failure_is_partial_success(make_config, scripted_fetcher, fx):
    broken = "https://www.upwork.com/nx/search/jobs/?q=broken"
    fetcher = scripted_fetcher(_pages(fx, **{broken: fx.text("upwork_challenge.html")}))
    s = _scraper(make_config(searches=[broken, SEARCH], max_retries=1), fetcher)
    s.run()

    assert len(s.jobs) == 4
    assert len(s.failures) == 1
    assert s.failures[0].url == broken
    assert "ChallengeDetected" in s.failures[0].error
    assert fetcher.retired == 2


def test_export_writes_all_artifacts(make_config, scripted_fetcher, fx, tmp_path):
    fetcher = scripted_fetcher(_pages(fx, **{JOB1: fx.text("upwork_job_detail.html")}))
    s = _scraper(make_config(fetch_details=True, max_retries=0), fetcher)
    s.run()
    written = s.export(tmp_path / "out")

    assert set(written) == {"jobs_csv", "jobs_json", "failures_csv", "metrics"}
    assert written["jobs_csv"].name == "upwork_jobs.csv"

    df = pd.read_csv(written["jobs_csv"])
    assert list(df.columns) == EXPORT_COLUMNS
    assert len(df) == 4
    assert df.loc[0, "skills"] == "Python; Django; Celery"
    assert df.loc[0, "client_info.name"] == "Acme Logistics"

    rows = json.loads(written["jobs_json"].read_text(encoding="utf-8"))
    assert rows[0]["client_info"]["total_spent"] == "$25K total spent"
    assert rows[0]["skills"] == ["Python", "Django", "Celery"]

    failures = pd.read_csv(written["failures_csv"])
    assert list(failures.columns) == ["url", "error", "attempts", "kind"]
    assert set(failures["kind"]) == {"detail"}

    metrics = json.loads(written["metrics"].read_text(encoding="utf-8"))
    assert metrics["namespace"] == "upwork"
    assert metrics["counters"]["pages.fetched"] == 2
    assert "run.seconds" in metrics["timers"]
    assert "listing.seconds" in metrics["timers"]


def test_export_without_failures_skips_failures_file(make_config, scripted_fetcher, fx, tmp_path):
    s = _scraper(make_config(), scripted_fetcher(_pages(fx)))
    s.run()
    written = s.export(tmp_path)
    assert "failures_csv" not in written
    assert not (tmp_path / "upwork_failures.csv").exists()


def test_detail_challenge_retires_session_before_retry(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(
        _pages(
            fx,
            **{JOB1: [fx.text("upwork_challenge.html"), fx.text("upwork_job_detail.html")]},
        )
    )
    s = _scraper(make_config(fetch_details=True, max_retries=1), fetcher)
    s.run()

    assert fetcher.retired == 1
    assert fetcher.calls.count(JOB1) == 2
    assert s.store.get("~01abc123").stage == "enriched"
    assert s.metrics.count("fetch.challenges") == 1
    assert JOB1 not in {f.url for f in s.failures}


def test_detail_challenge_exhaustion_retires_and_reports(make_config, scripted_fetcher, fx):
    fetcher = scripted_fetcher(_pages(fx, **{JOB1: fx.text("upwork_challenge.html")}))
    s = _scraper(make_config(fetch_details=True, max_retries=1), fetcher)
    s.run()

    # once before the retry, once when attempts run out
    assert fetcher.retired == 2
    report = next(f for f in s.failures if f.url == JOB1)
    assert report.kind == "detail"
    assert report.attempts == 2
    assert "ChallengeDetected" in report.error
    assert s.store.get("~01abc123").stage == "listing"


def test_empty_detail_page_leaves_listing_record(make_config, scripted_fetcher, fx):
    empty = "<html><body><main><p>Sign in to see more.</p></main></body></html>"
    fetcher = scripted_fetcher(_pages(fx, **{JOB1: empty}))
    s = _scraper(make_config(fetch_details=True, max_retries=0), fetcher)
    s.run()

    rec = s.store.get("~01abc123")
    assert rec.stage == "listing"
    assert rec.title == "Senior Python Developer"
    assert s.metrics.count("detail.enriched") == 0
    assert s.metrics.count("detail.empty") == 1
