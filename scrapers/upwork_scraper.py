from __future__ import annotations

from typing import Any, Dict, List, Optional

from scrapers.base import JobScraper
from scrapers.listing import ListingSelectors
from scrapers.pagination import PaginationController, PaginationResult
from utils.detail_fetchers import DetailSelectors, fetch_job_detail
from utils.schema import JobRecord
from utils.transforms import with_query

UPWORK_LISTING_SELECTORS = ListingSelectors(
    containers=(
        '[data-test="job-tile-list"] [data-test="job-tile"]',
        '[data-test="JobTile"]',
        'article[data-ev-label="search_results_impression"]',
        "section.job-tile",
        ".job-tile",
    ),
    next_page=(
        '[data-test="next-page"]',
        'a[rel="next"]',
        '[data-test="pagination-next"] a',
        ".pagination-next a",
        "a.next",
    ),
    title=(
        'a[data-test="job-title-link"]',
        '[data-test="JobTileTitle"]',
        "h2 a",
        "h3 a",
    ),
    url=(
        'a[data-test="job-title-link"]',
        '[data-test="JobTileTitle"] a',
        "h2 a",
        "h3 a",
    ),
    description=(
        '[data-test="job-description-text"]',
        '[data-test="JobTileDescription"]',
        '[data-test="UpCLineClamp JobDescription"]',
        ".job-description",
    ),
    budget=(
        '[data-test="budget"]',
        '[data-test="JobTileBudget"]',
        '[data-test="is-fixed-price"]',
        ".budget",
    ),
    hourly=(
        '[data-test="hourly-rate"]',
        '[data-test="JobTileHourlyRate"]',
        ".hourly-rate",
    ),
    job_type=(
        '[data-test="job-type"]',
        '[data-test="job-type-label"]',
        '[data-test="JobTileType"]',
        ".job-type",
    ),
    experience_level=(
        '[data-test="experience-level"]',
        '[data-test="contractor-tier"]',
        '[data-test="JobTileExperienceLevel"]',
        ".experience-level",
    ),
    posted=(
        '[data-test="posted-on"]',
        '[data-test="job-pubilshed-date"]',
        '[data-test="JobTilePostedTime"]',
        ".posted-time",
    ),
    country=(
        '[data-test="client-country"]',
        '[data-test="location"]',
        ".client-location",
    ),
    verified=(
        '[data-test="payment-verified"]',
        '[data-test="payment-verification-status"]',
        ".payment-verified",
    ),
    proposals=(
        '[data-test="proposals"]',
        '[data-test="proposals-tier"]',
        '[data-test="JobTileProposals"]',
        ".proposals",
    ),
    skills=(
        '[data-test="token"] span',
        '[data-test="attr-item"]',
        '[data-test="JobTileSkills"] .skill-tag',
        ".skills .tag",
    ),
    client_name=(
        '[data-test="client-name"]',
        '[data-test="JobTileClientName"]',
        ".client-name",
    ),
    client_rating=(
        '[data-test="client-rating"] .air3-rating-value-text',
        '[data-test="JobTileClientRating"]',
        ".client-rating",
    ),
    client_spent=(
        '[data-test="client-spendings"] strong',
        '[data-test="total-spent"]',
        '[data-test="JobTileClientSpent"]',
        ".client-spent",
    ),
)

UPWORK_DETAIL_SELECTORS = DetailSelectors(
    root=(
        '[data-test="JobDetails"]',
        '[data-test="job-details"]',
        "section.job-details-content",
        "main",
    ),
    title=("h1", '[data-test="job-title"]', "h4"),
    description=(
        '[data-test="Description"]',
        '[data-test="job-description-text"]',
        ".job-description",
    ),
    posted=('[data-test="PostedOn"]', '[data-test="posted-on"]'),
    budget=(
        '[data-test="BudgetAmount"]',
        '[data-test="budget"]',
        '[data-cy="fixed-price"] + strong',
    ),
    hourly=('[data-test="HourlyRate"]', '[data-test="hourly-rate"]'),
    job_type=('[data-test="JobType"]', '[data-test="job-type"]'),
    experience_level=(
        '[data-test="ExperienceLevel"]',
        '[data-test="experience-level"]',
    ),
    proposals=(
        '[data-test="ClientActivity"] li:-soup-contains("Proposals")',
        '[data-test="proposals"]',
    ),
    skills=(
        '[data-test="Skill"]',
        '[data-test="token"] span',
        ".skills .tag",
    ),
    country=(
        '[data-test="about-client-container"] [data-qa="client-location"] strong',
        '[data-test="client-country"]',
    ),
    verified=(
        '[data-test="about-client-container"] .payment-verified',
        '[data-test="payment-verified"]',
    ),
    client_name=(
        '[data-test="about-client-container"] [data-test="client-name"]',
        '[data-test="client-name"]',
    ),
    client_rating=(
        '[data-test="about-client-container"] .air3-rating-value-text',
        '[data-test="client-rating"]',
    ),
    client_spent=(
        '[data-test="about-client-container"] [data-qa="client-spend"] span',
        '[data-test="client-spendings"]',
    ),
)


class UpworkScraper(JobScraper):
    """
    Upwork job search scraper.

    Listing phase: paginate every seed search (configured URLs plus URLs
    built from `queries`) through the PaginationController. Detail phase
    (optional): fetch each job page and overlay its fields.
    """

    ORIGIN = "https://www.upwork.com"
    COOKIE_DOMAIN = ".upwork.com"
    SEARCH_BASE = "https://www.upwork.com/nx/search/jobs/"
    # The listing containers, or a detail root for detail pages.
    WAIT_CSS = UPWORK_LISTING_SELECTORS.containers + UPWORK_DETAIL_SELECTORS.root[:2]

    listing_selectors = UPWORK_LISTING_SELECTORS
    detail_selectors = UPWORK_DETAIL_SELECTORS

    @classmethod
    def build_search_url(
        cls,
        query: str,
        job_type: Optional[str] = "all",
        experience_level: Optional[str] = "all",
    ) -> str:
        """
        Search URL for a keyword query, newest first.

        `job_type` / `experience_level` are added only when not "all".
        """
        params: Dict[str, Any] = {"q": query, "sort": "recency"}
        if job_type and job_type != "all":
            params["job_type"] = job_type
        if experience_level and experience_level != "all":
            params["experience_level"] = experience_level
        return with_query(cls.SEARCH_BASE, params)

    def seed_urls(self) -> List[str]:
        urls = list(self.config.searches)
        for q in self.config.queries:
            urls.append(
                self.build_search_url(
                    q["q"],
                    job_type=q.get("job_type", "all"),
                    experience_level=q.get("experience_level", "all"),
                )
            )
        return urls

    def fetch_data(self) -> PaginationResult:
        seeds = self.seed_urls()
        controller = PaginationController(
            self.get_fetcher(),
            self.store,
            selectors=self.listing_selectors,
            origin=self.ORIGIN,
            max_pages=self.config.max_pages_per_search,
            max_concurrency=self.config.max_concurrency,
            retry_policy=self.retry_policy(),
            politeness_delay=self.config.politeness_delay,
            politeness_jitter=self.config.politeness_jitter,
            log=self.log,
            metrics=self.metrics,
            sleep=self.sleep,
        )
        return controller.run(seeds)

    def parse_job(self, record: JobRecord) -> Dict[str, Any]:
        fetcher = self.get_fetcher()
        return fetch_job_detail(
            fetcher.fetch,
            self.log,
            record.job_url,
            selectors=self.detail_selectors,
        )
