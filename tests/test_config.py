import json

import pytest

from utils.config import DEFAULT_CONFIG, ScrapeConfig, apply_env, load_config
from utils.errors import ConfigError


def _write(tmp_path, doc):
    p = tmp_path / "scrape.json"
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def test_shipped_config_is_valid():
    cfg = load_config(DEFAULT_CONFIG, env={})
    assert cfg.searches and cfg.queries
    assert cfg.fetcher in ("http", "browser")
    assert cfg.filters["budget_max"] == 10000


def test_load_config_maps_fields(tmp_path):
    path = _write(
        tmp_path,
        {
            "searches": ["https://www.upwork.com/nx/search/jobs/?q=go"],
            "max_pages_per_search": 5,
            "fetcher": "http",
            "headers": {"Referer": "https://www.upwork.com/"},
            "max_results": 10,
        },
    )
    cfg = load_config(path, env={})
    assert cfg.max_pages_per_search == 5
    assert cfg.fetcher == "http"
    assert cfg.headers == {"Referer": "https://www.upwork.com/"}
    assert cfg.max_results == 10
    # untouched knobs keep their defaults
    assert cfg.max_retries == ScrapeConfig().max_retries


def test_schema_errors_are_aggregated(tmp_path):
    path = _write(
        tmp_path,
        {"searches": "not-a-list", "max_concurrency": 0, "fetcher": "curl", "bogus": 1},
    )
    with pytest.raises(ConfigError) as ei:
        load_config(path, env={})
    msg = str(ei.value)
    assert "schema validation failed" in msg
    assert "searches" in msg
    assert "max_concurrency" in msg
    assert "fetcher" in msg
    assert "bogus" in msg


def test_missing_or_broken_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.json", env={})
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(bad, env={})


def test_env_overrides():
    cfg = apply_env(ScrapeConfig(), {"UPWORK_COOKIE": " a=1; b=2 ", "UPWORK_MAX_CONCURRENCY": "4"})
    assert cfg.cookie == "a=1; b=2"
    assert cfg.max_concurrency == 4
    with pytest.raises(ConfigError):
        apply_env(ScrapeConfig(), {"UPWORK_MAX_CONCURRENCY": "many"})


def test_with_overrides_skips_unset_values():
    cfg = ScrapeConfig(max_retries=3).with_overrides(max_retries=None, max_pages_per_search=7)
    assert cfg.max_retries == 3
    assert cfg.max_pages_per_search == 7


def test_preflight_validation():
    with pytest.raises(ConfigError, match="no searches"):
        ScrapeConfig(require_auth=False).validate()
    with pytest.raises(ConfigError, match="authentication required"):
        ScrapeConfig(searches=["https://www.upwork.com/nx/search/jobs/?q=a"]).validate()
    with pytest.raises(ConfigError):
        ScrapeConfig(queries=[{"q": "a"}], require_auth=False, max_pages_per_search=0).validate()

    ScrapeConfig(queries=[{"q": "a"}], cookie="sid=1").validate()
