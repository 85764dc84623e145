import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

# ---------- Resolve project root ----------
HERE = Path(__file__).resolve()
PROJECT_ROOT = HERE.parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from utils.config import ScrapeConfig  # noqa: E402
from utils.errors import FetchError  # noqa: E402


# ---------- Test fixtures ----------
@pytest.fixture
def fx():
    base = PROJECT_ROOT / "tests" / "data"

    class _Fx:
        def text(self, name):
            return (base / name).read_text(encoding="utf-8")

        def json(self, name):
            return json.loads((base / name).read_text(encoding="utf-8"))

    return _Fx()


Step = Union[str, BaseException]


class ScriptedFetcher:
    """
    PageFetcher stand-in: each URL serves its scripted steps in order.

    A step is either HTML (returned) or an exception (raised). The last step
    repeats once the script runs out. Unknown URLs raise FetchError.
    """

    def __init__(self, pages: Optional[Dict[str, Union[Step, List[Step]]]] = None):
        self.pages: Dict[str, List[Step]] = {}
        for url, steps in (pages or {}).items():
            self.pages[url] = list(steps) if isinstance(steps, list) else [steps]
        self.calls: List[str] = []
        self.retired = 0
        self.closed = False

    def fetch(self, url, *, headers=None):
        self.calls.append(url)
        steps = self.pages.get(url)
        if not steps:
            raise FetchError("no scripted page", url=url)
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, BaseException):
            raise step
        return step

    def retire_session(self):
        self.retired += 1

    def close(self):
        self.closed = True


@pytest.fixture
def scripted_fetcher():
    return ScriptedFetcher


@pytest.fixture
def make_config():
    def _make(**kw):
        base = dict(
            searches=["https://www.upwork.com/nx/search/jobs/?q=python"],
            max_pages_per_search=3,
            max_concurrency=2,
            max_retries=2,
            retry_delay=0.0,
            retry_jitter=0.0,
            politeness_delay=0.0,
            politeness_jitter=0.0,
            fetcher="http",
            require_auth=False,
        )
        base.update(kw)
        return ScrapeConfig(**base)

    return _make
