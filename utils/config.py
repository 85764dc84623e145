from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft202012Validator

from utils.errors import ConfigError

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"
DEFAULT_CONFIG = CONFIG_DIR / "upwork.json"
DEFAULT_SCHEMA = CONFIG_DIR / "scrape.schema.json"

ENV_COOKIE = "UPWORK_COOKIE"
ENV_MAX_CONCURRENCY = "UPWORK_MAX_CONCURRENCY"


@dataclass
class ScrapeConfig:
    searches: List[str] = field(default_factory=list)
    queries: List[Dict[str, str]] = field(default_factory=list)

    max_pages_per_search: int = 3
    max_concurrency: int = 2
    max_retries: int = 3
    retry_delay: float = 2.0
    retry_jitter: float = 1.0
    request_timeout: float = 60.0
    politeness_delay: float = 1.0
    politeness_jitter: float = 1.0

    fetcher: str = "browser"
    headless: bool = True
    fetch_details: bool = False
    require_auth: bool = True
    cookie: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    filters: Dict[str, Any] = field(default_factory=dict)
    max_results: Optional[int] = None
    webhook_url: Optional[str] = None

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "ScrapeConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in doc.items() if k in known}
        cfg = cls(**kwargs)
        cfg.searches = list(cfg.searches or [])
        cfg.queries = [dict(q) for q in (cfg.queries or [])]
        cfg.headers = dict(cfg.headers or {})
        cfg.filters = dict(cfg.filters or {})
        return cfg

    def with_overrides(self, **overrides: Any) -> "ScrapeConfig":
        """Copy with every non-None override applied (CLI flags left unset stay put)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def validate(self) -> None:
        """
        Pre-flight checks that must pass before any page is fetched.

        Raises:
            ConfigError: No seed searches/queries, auth required but no cookie,
                or a numeric knob out of range.
        """
        if not self.searches and not self.queries:
            raise ConfigError("no searches or queries configured")
        if self.require_auth and not (self.cookie or "").strip():
            raise ConfigError(
                f"authentication required: provide a cookie via --cookie-file or {ENV_COOKIE}"
            )
        if self.max_pages_per_search < 1:
            raise ConfigError("max_pages_per_search must be >= 1")
        if self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be >= 1")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.max_results is not None and self.max_results < 1:
            raise ConfigError("max_results must be >= 1")


def _load_json(path: str | Path) -> Dict[str, Any]:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"config file is not valid JSON: {path}: {e}") from e


def _load_schema(path: str | Path) -> Draft202012Validator:
    schema = _load_json(path)
    return Draft202012Validator(schema)


def validate_doc(doc: Dict[str, Any], schema_path: str | Path = DEFAULT_SCHEMA) -> None:
    validator = _load_schema(schema_path)
    errors = sorted(validator.iter_errors(doc), key=lambda e: [str(p) for p in e.path])

    if errors:
        msg = ["Scrape config schema validation failed:"]
        for e in errors[:50]:
            loc = ".".join(str(p) for p in e.path) or "<root>"
            msg.append(f" - {loc}: {e.message}")
        raise ConfigError("\n".join(msg))


def apply_env(cfg: ScrapeConfig, env: Optional[Mapping[str, str]] = None) -> ScrapeConfig:
    env = os.environ if env is None else env

    cookie = (env.get(ENV_COOKIE) or "").strip()
    if cookie:
        cfg = replace(cfg, cookie=cookie)

    raw = (env.get(ENV_MAX_CONCURRENCY) or "").strip()
    if raw:
        try:
            n = int(raw)
        except ValueError as e:
            raise ConfigError(f"{ENV_MAX_CONCURRENCY} must be an integer, got {raw!r}") from e
        cfg = replace(cfg, max_concurrency=n)
    return cfg


def load_config(
    path: str | Path | None = DEFAULT_CONFIG,
    schema_path: str | Path = DEFAULT_SCHEMA,
    env: Optional[Mapping[str, str]] = None,
) -> ScrapeConfig:
    """
    Load, schema-validate and environment-override a scrape config.

    Args:
        path: JSON config file; None starts from the dataclass defaults.
        schema_path: JSON Schema (draft 2020-12) the document must satisfy.
        env: Environment mapping (defaults to os.environ).

    Returns:
        The resulting ScrapeConfig. Pre-flight checks are NOT run here;
        call `cfg.validate()` once CLI overrides are applied.

    Raises:
        ConfigError: Missing/unparseable file or schema violations.
    """
    doc: Dict[str, Any] = _load_json(path) if path else {}
    validate_doc(doc, schema_path)
    return apply_env(ScrapeConfig.from_dict(doc), env)
