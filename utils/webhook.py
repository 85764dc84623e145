from __future__ import annotations

import requests

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from utils.schema import JobRecord

WEBHOOK_SOURCE = "upwork-scraper"
WEBHOOK_USER_AGENT = "Upwork-Auto-Scraper/1.0"


def build_payload(
    jobs: Iterable[JobRecord],
    *,
    search_queries: Sequence[str] = (),
    filters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = [j.to_dict() for j in jobs]
    return {
        "source": WEBHOOK_SOURCE,
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "searchQueries": list(search_queries),
        "filters": filters or {},
        "count": len(rows),
        "jobs": rows,
    }


def post_jobs(
    session: requests.Session,
    url: str,
    jobs: Iterable[JobRecord],
    *,
    search_queries: Sequence[str] = (),
    filters: Optional[Dict[str, Any]] = None,
    timeout: float = 30.0,
) -> requests.Response:
    """
    POST the scraped batch to a workflow webhook as JSON.

    Args:
        session: Session to send with (e.g. utils.http.build_session()).
        url: Webhook endpoint.
        jobs: Finalized job records.
        search_queries: Seed searches that produced the batch.
        filters: Filters applied to the batch, echoed for the receiver.
        timeout: Request timeout in seconds.

    Returns:
        The webhook's response.

    Raises:
        requests.HTTPError: Non-2xx response.
        requests.RequestException: Network failure.
    """
    payload = build_payload(jobs, search_queries=search_queries, filters=filters)
    resp = session.post(
        url,
        json=payload,
        headers={"Content-Type": "application/json", "User-Agent": WEBHOOK_USER_AGENT},
        timeout=timeout,
    )
    resp.raise_for_status()
    return resp
