"""
Command-line entrypoint to scrape Upwork job searches and export results.

This module wires up:
- Argument parsing (config file, seed searches, run knobs, output, logging).
- Structured logging configuration with a 'scraper' attribute on each record.
- The scraper lifecycle: load config → run() → export() → optional webhook.

Exit codes: 0 on success (including partial success with failures recorded),
2 on configuration errors, 1 on any other fatal error.
"""

from __future__ import annotations

import argparse
import logging
import requests

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from scrapers import SCRAPER_REGISTRY, get_scraper
from scrapers.fetchers import FETCHERS
from utils.config import DEFAULT_CONFIG, ScrapeConfig, load_config
from utils.errors import ConfigError
from utils.http import build_session
from utils.webhook import post_jobs

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2


class ScraperField(logging.Filter):
    """
    Logging filter that guarantees a 'scraper' attribute on log records.

    This lets the formatter include '%(scraper)s' safely even for log
    messages emitted outside scraper adapters (e.g., third-party libs).
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "scraper"):
            record.scraper = ""
        return True


def configure_logging(logfile: Optional[str], suppress_console: bool) -> None:
    """
    Configure root logging with optional file/console handlers and a uniform format.

    Args:
        logfile: Path to a log file. If provided, logs are written here.
        suppress_console: If True, do not attach a console (stdout) handler.

    Raises:
        OSError: If the logfile cannot be opened/created by the FileHandler.
    """
    handlers: list[logging.Handler] = []
    if logfile:
        handlers.append(logging.FileHandler(logfile))
    if not suppress_console and not logfile:
        # If a log file is provided, we default to file-only to keep the console quiet.
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.NullHandler())

    fmt = "%(asctime)s [%(levelname)s] %(scraper)s %(message)s"
    formatter = logging.Formatter(fmt)

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(logging.INFO)

    filt = ScraperField()
    for h in handlers:
        h.setFormatter(formatter)
        h.addFilter(filt)
        root.addHandler(h)

    # Quiet down verbose third-party libraries unless debugging.
    logging.getLogger("undetected_chromedriver").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("selenium").setLevel(logging.WARNING)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Args:
        argv: Optional sequence of raw CLI tokens. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace. Options left unset are None so they do
        not override the config file.
    """
    parser = argparse.ArgumentParser(description="Scrape Upwork job searches.")
    parser.add_argument(
        "--scraper",
        choices=sorted(SCRAPER_REGISTRY),
        default="upwork",
        help="Which site scraper to run (default: upwork).",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG),
        help="Path to the JSON scrape config (default: configs/upwork.json).",
    )
    parser.add_argument(
        "--search",
        action="append",
        default=None,
        metavar="URL",
        help="Seed search URL; repeatable. Replaces the config's seeds.",
    )
    parser.add_argument(
        "--query",
        action="append",
        default=None,
        metavar="TEXT",
        help="Keyword query turned into a search URL; repeatable. Replaces the config's seeds.",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Per-search page ceiling (max_pages_per_search).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Max page fetches in flight (max_concurrency).",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Retries per page after the first attempt (max_retries).",
    )
    parser.add_argument(
        "--fetcher",
        choices=FETCHERS,
        default=None,
        help="Page fetcher: plain HTTP or a real browser.",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        default=None,
        help="Also fetch each job's detail page (fetch_details).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Cap the number of exported jobs after filtering (max_results).",
    )
    parser.add_argument(
        "--cookie-file",
        type=str,
        default=None,
        help="File holding the raw Cookie header value for an authenticated session.",
    )
    parser.add_argument(
        "--webhook-url",
        type=str,
        default=None,
        help="POST the exported jobs to this webhook.",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="scraped_data",
        help="Directory to write exports (default: scraped_data).",
    )
    parser.add_argument(
        "--logfile",
        type=str,
        default="run.log",
        help="Path to log file (default: run.log).",
    )
    parser.add_argument(
        "--suppress",
        action="store_true",
        help="Suppress console logging.",
    )
    return parser.parse_args(argv)


def read_cookie_file(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigError(f"cannot read cookie file {path}: {e}") from e


def build_config(args: argparse.Namespace) -> ScrapeConfig:
    """
    Load the config file and layer env then CLI overrides on top.

    Raises:
        ConfigError: Invalid config file or unreadable cookie file.
    """
    config = load_config(args.config)

    overrides: Dict[str, Any] = {
        "max_pages_per_search": args.max_pages,
        "max_concurrency": args.concurrency,
        "max_retries": args.retries,
        "fetcher": args.fetcher,
        "fetch_details": args.details,
        "max_results": args.limit,
        "webhook_url": args.webhook_url,
    }
    if args.search or args.query:
        overrides["searches"] = list(args.search or [])
        overrides["queries"] = [{"q": q} for q in (args.query or [])]
    if args.cookie_file:
        overrides["cookie"] = read_cookie_file(args.cookie_file)
    return config.with_overrides(**overrides)


def send_webhook(config: ScrapeConfig, scraper: Any) -> None:
    searches: List[str] = scraper.seed_urls()
    session = build_session()
    try:
        resp = post_jobs(
            session,
            config.webhook_url,
            scraper.jobs,
            search_queries=searches,
            filters=config.filters,
        )
    finally:
        session.close()
    scraper.log("webhook:sent", status=resp.status_code, n=len(scraper.jobs))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Program entrypoint: configure logging, parse args, run and export.

    Args:
        argv: Optional sequence of raw CLI tokens. If None, uses sys.argv.

    Returns:
        Process exit code.
    """
    args = parse_args(argv)
    configure_logging(args.logfile, args.suppress)
    logger = logging.getLogger(__name__)

    scraper_name = args.scraper
    logger.info("run:start", extra={"scraper": scraper_name})

    try:
        config = build_config(args)
        scraper = get_scraper(scraper_name)(config)
        print(f"Running {scraper_name} scraper... (fetcher={config.fetcher})")
        scraper.run()
    except ConfigError as e:
        logger.error("config:error %s", e, extra={"scraper": scraper_name})
        print(f"Configuration error: {e}")
        return EXIT_CONFIG
    except Exception:
        logger.exception("run:error", extra={"scraper": scraper_name})
        return EXIT_ERROR

    written = scraper.export(args.output_dir)
    for kind, path in written.items():
        logger.info("export:%s path=%s", kind, path, extra={"scraper": scraper_name})

    if config.webhook_url and scraper.jobs:
        try:
            send_webhook(config, scraper)
        except requests.RequestException:
            logger.exception("webhook:error", extra={"scraper": scraper_name})
            return EXIT_ERROR

    print(
        f"Finished {scraper_name}: {len(scraper.jobs)} jobs, "
        f"{len(scraper.failures)} failures.\n"
    )
    logger.info("run:finish", extra={"scraper": scraper_name})
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
