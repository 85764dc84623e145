import pytest
import requests

from utils.schema import ClientInfo, JobRecord
from utils.webhook import WEBHOOK_USER_AGENT, build_payload, post_jobs

JOBS = [
    JobRecord(
        job_id="~01",
        title="Python Dev",
        job_url="https://www.upwork.com/jobs/~01",
        skills=["Python"],
        client_info=ClientInfo(name="Acme"),
    )
]


class _Resp:
    def __init__(self, status):
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


class _Session:
    def __init__(self, status=200):
        self.status = status
        self.sent = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.sent.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return _Resp(self.status)


def test_build_payload_shape():
    payload = build_payload(JOBS, search_queries=["q=python"], filters={"job_type": "all"})
    assert payload["source"] == "upwork-scraper"
    assert payload["searchQueries"] == ["q=python"]
    assert payload["filters"] == {"job_type": "all"}
    assert payload["count"] == 1
    assert payload["jobs"][0]["client_info"]["name"] == "Acme"
    assert payload["timestamp"].endswith("+00:00")


def test_post_jobs_sends_json():
    session = _Session()
    post_jobs(session, "https://hooks.example/wf", JOBS, search_queries=["q"])
    sent = session.sent[0]
    assert sent["url"] == "https://hooks.example/wf"
    assert sent["headers"]["User-Agent"] == WEBHOOK_USER_AGENT
    assert sent["timeout"] == 30.0
    assert sent["json"]["jobs"][0]["job_id"] == "~01"


def test_post_jobs_raises_on_error_status():
    with pytest.raises(requests.HTTPError):
        post_jobs(_Session(status=500), "https://hooks.example/wf", JOBS)
