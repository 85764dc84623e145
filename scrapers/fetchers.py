"""
Page fetchers: the only code that touches the network for page content.

The pagination controller and detail enrichment only see the `PageFetcher`
protocol. Two implementations:

- HttpPageFetcher: plain `requests` with a thread-local session per worker.
- BrowserPageFetcher: undetected-chromedriver, one driver per worker thread,
  for when the site refuses non-browser clients.

Both translate their native failures into `FetchError` so the controller's
RetryPolicy can handle them uniformly.
"""

from __future__ import annotations

import tempfile
import threading

import requests

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from utils.errors import ConfigError, FetchError
from utils.http import DEFAULT_HEADERS, build_session, cookie_dicts, parse_cookie_string

Logger = Callable[..., None]  # e.g., scraper.log(event, **kwargs)


def _noop_log(event: str, level: str = "info", **kv: Any) -> None:
    return None


class PageFetcher(Protocol):
    def fetch(self, url: str, *, headers: Optional[Dict[str, str]] = None) -> str: ...

    def retire_session(self) -> None: ...

    def close(self) -> None: ...


class HttpPageFetcher:
    """
    GET pages with a per-thread `requests.Session` carrying the auth cookies.

    Sessions are thread-local so cookies and sockets are never shared between
    concurrently running workers; `retire_session` throws away the calling
    thread's session so the next fetch starts clean.
    """

    def __init__(
        self,
        *,
        cookie: str = "",
        cookie_domain: str = "",
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        log: Logger = _noop_log,
    ) -> None:
        self.cookies = parse_cookie_string(cookie)
        self.cookie_domain = cookie_domain
        self.headers = headers or {}
        self.timeout = timeout
        self.log = log
        self._tl = threading.local()

    def _session(self) -> requests.Session:
        s = getattr(self._tl, "session", None)
        if s is None:
            s = build_session(
                self.headers, self.cookies, cookie_domain=self.cookie_domain
            )
            self._tl.session = s
        return s

    def fetch(self, url: str, *, headers: Optional[Dict[str, str]] = None) -> str:
        try:
            resp = self._session().get(url, headers=headers or None, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"GET failed: {e}", url=url) from e
        return resp.text or ""

    def retire_session(self) -> None:
        s = getattr(self._tl, "session", None)
        if s is not None:
            s.close()
            self._tl.session = None
            self.log("session:retired", level="warning", fetcher="http")

    def close(self) -> None:
        self.retire_session()


class BrowserPageFetcher:
    """
    Render pages in real Chrome via undetected-chromedriver.

    One driver per worker thread (created lazily). Auth cookies are injected
    after a first navigation to the site origin, since WebDriver only accepts
    cookies for the current domain.
    """

    def __init__(
        self,
        *,
        origin: str,
        cookie: str = "",
        cookie_domain: str = "",
        wait_css: Sequence[str] = (),
        timeout: float = 60.0,
        wait_timeout: float = 30.0,
        headless: bool = True,
        log: Logger = _noop_log,
    ) -> None:
        self.origin = origin
        self.cookie = cookie
        self.cookie_domain = cookie_domain
        self.wait_css = ", ".join(wait_css)
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.headless = headless
        self.log = log
        self._tl = threading.local()
        self._drivers: List[Any] = []
        self._drivers_lock = threading.Lock()

    def _new_driver(self):
        import undetected_chromedriver as uc

        options = uc.ChromeOptions()
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-gpu")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1366,768")
        options.add_argument(f"--user-agent={DEFAULT_HEADERS['User-Agent']}")
        # Fresh profile per driver; a retired session must not leak state.
        profile_dir = tempfile.mkdtemp(prefix="upwork_scraper_uc_")
        options.add_argument(f"--user-data-dir={profile_dir}")

        driver = uc.Chrome(options=options, headless=self.headless, use_subprocess=True)
        driver.set_page_load_timeout(self.timeout)
        driver.set_script_timeout(self.timeout)

        if self.cookie:
            driver.get(self.origin)
            for c in cookie_dicts(self.cookie, self.cookie_domain):
                driver.add_cookie(c)
            self.log("browser:cookies", n=len(parse_cookie_string(self.cookie)))

        with self._drivers_lock:
            self._drivers.append(driver)
        return driver

    def _driver(self):
        d = getattr(self._tl, "driver", None)
        if d is None:
            d = self._new_driver()
            self._tl.driver = d
        return d

    def fetch(self, url: str, *, headers: Optional[Dict[str, str]] = None) -> str:
        from selenium.common.exceptions import TimeoutException, WebDriverException
        from selenium.webdriver.common.by import By
        from selenium.webdriver.support import expected_conditions as EC
        from selenium.webdriver.support.ui import WebDriverWait

        try:
            driver = self._driver()
            driver.get(url)
        except WebDriverException as e:
            raise FetchError(f"browser navigation failed: {e.msg or e}", url=url) from e

        if self.wait_css:
            try:
                WebDriverWait(driver, self.wait_timeout).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, self.wait_css))
                )
            except TimeoutException:
                # Still hand back the HTML: the caller decides whether it is a
                # challenge page or unrecognized markup.
                self.log(
                    "browser:wait:timeout",
                    level="warning",
                    requested=url,
                    current=getattr(driver, "current_url", ""),
                )
            except WebDriverException as e:
                raise FetchError(f"browser wait failed: {e.msg or e}", url=url) from e

        try:
            return driver.page_source or ""
        except WebDriverException as e:
            raise FetchError(f"page_source failed: {e.msg or e}", url=url) from e

    def _quit(self, driver) -> None:
        with self._drivers_lock:
            if driver in self._drivers:
                self._drivers.remove(driver)
        try:
            driver.quit()
        except Exception as e:
            self.log("browser:quit:error", level="debug", error=str(e))

    def retire_session(self) -> None:
        d = getattr(self._tl, "driver", None)
        if d is not None:
            self._tl.driver = None
            self._quit(d)
            self.log("session:retired", level="warning", fetcher="browser")

    def close(self) -> None:
        with self._drivers_lock:
            drivers = list(self._drivers)
        for d in drivers:
            self._quit(d)


FETCHERS = ("http", "browser")


def build_fetcher(config, *, origin: str, cookie_domain: str, wait_css=(), log=_noop_log):
    """
    Construct the fetcher named by `config.fetcher`.

    Raises:
        ConfigError: Unknown fetcher name.
    """
    kind = (config.fetcher or "http").lower()
    if kind == "http":
        return HttpPageFetcher(
            cookie=config.cookie,
            cookie_domain=cookie_domain,
            headers=config.headers,
            timeout=config.request_timeout,
            log=log,
        )
    if kind == "browser":
        return BrowserPageFetcher(
            origin=origin,
            cookie=config.cookie,
            cookie_domain=cookie_domain,
            wait_css=wait_css,
            timeout=config.request_timeout,
            headless=config.headless,
            log=log,
        )
    raise ConfigError(f"unknown fetcher {kind!r}; expected one of {FETCHERS}")
