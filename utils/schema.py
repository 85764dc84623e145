from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordStage(str, Enum):
    Listing = "listing"
    Enriched = "enriched"
    Detail = "detail"


class JobType(str, Enum):
    Hourly = "hourly"
    Fixed = "fixed"
    Unknown = "unknown"


class ExperienceLevel(str, Enum):
    Entry = "entry"
    Intermediate = "intermediate"
    Expert = "expert"
    Unknown = "unknown"


@dataclass
class ClientInfo:
    name: str = ""
    rating: str = ""
    total_spent: str = ""

    def merged(self, other: "ClientInfo | Dict[str, Any]") -> "ClientInfo":
        """Overlay the non-empty values of `other` onto a copy of self."""
        if isinstance(other, ClientInfo):
            other = asdict(other)
        updates = {k: v for k, v in (other or {}).items() if v and hasattr(self, k)}
        return replace(self, **updates)


@dataclass
class JobRecord:
    """
    One job posting as seen on the marketplace.

    Text fields are never None (empty string when unextractable). `job_id`
    is None when the URL did not yield an identifier; such records cannot
    enter the JobStore.
    """

    job_id: Optional[str] = None
    title: str = ""
    description: str = ""
    posted: str = ""
    country: str = ""
    job_type: str = ""
    experience_level: str = ""
    job_url: str = ""
    budget: Optional[float] = None
    hourly_rate: Optional[float] = None
    proposals: int = 0
    payment_verified: bool = False
    skills: List[str] = field(default_factory=list)
    client_info: ClientInfo = field(default_factory=ClientInfo)
    source: str = ""
    scraped_at: str = ""
    stage: str = RecordStage.Listing.value

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        known = set(cls.field_names())
        kwargs = {k: v for k, v in data.items() if k in known}
        ci = kwargs.get("client_info")
        if isinstance(ci, dict):
            kwargs["client_info"] = ClientInfo().merged(ci)
        elif ci is None:
            kwargs.pop("client_info", None)
        if kwargs.get("skills") is not None:
            kwargs["skills"] = list(kwargs["skills"])
        return cls(**kwargs)

    def merged(self, updates: Dict[str, Any]) -> "JobRecord":
        """
        Shallow merge: every known key in `updates` overwrites this record's
        value. `client_info` is overlaid one level down so a partial detail
        blob does not blank out listing-side client fields.
        """
        known = set(self.field_names())
        changes: Dict[str, Any] = {}
        for k, v in updates.items():
            if k not in known:
                continue
            if k == "client_info":
                changes[k] = self.client_info.merged(v)
            elif k == "skills":
                changes[k] = list(v or [])
            else:
                changes[k] = v
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


EXPORT_COLUMNS = [
    "job_id",
    "title",
    "job_url",
    "description",
    "posted",
    "country",
    "job_type",
    "experience_level",
    "budget",
    "hourly_rate",
    "proposals",
    "payment_verified",
    "skills",
    "client_info.name",
    "client_info.rating",
    "client_info.total_spent",
    "stage",
    "source",
    "scraped_at",
]

REQUIRED_FIELDS = ["job_id", "job_url"]


def validate_row(row: Dict[str, Any]) -> List[str]:
    errors = []
    for k in REQUIRED_FIELDS:
        if not row.get(k):
            errors.append(f"missing_required:{k}")
    v = row.get("job_url")
    if v and not str(v).startswith(("http://", "https://")):
        errors.append("bad_job_url")
    budget = row.get("budget")
    if budget is not None:
        try:
            if float(budget) < 0:
                errors.append("negative_budget")
        except (TypeError, ValueError):
            errors.append("budget_non_numeric")
    return errors


def validate_records(rows):
    errs = 0
    problems = []
    for i, r in enumerate(rows):
        e = validate_row(r)
        if e:
            errs += 1
            problems.append((i, e))
    return errs, problems
