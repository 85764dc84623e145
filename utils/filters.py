from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from utils.schema import ExperienceLevel, JobRecord, JobType

# Hourly jobs are compared against budget bounds as a 40-hour week.
HOURS_PER_WEEK = 40


def classify_job_type(text: Optional[str]) -> str:
    t = (text or "").lower()
    if "hourly" in t:
        return JobType.Hourly.value
    if "fixed" in t:
        return JobType.Fixed.value
    return JobType.Unknown.value


def classify_experience_level(text: Optional[str]) -> str:
    t = (text or "").lower()
    if "entry" in t:
        return ExperienceLevel.Entry.value
    if "intermediate" in t:
        return ExperienceLevel.Intermediate.value
    if "expert" in t:
        return ExperienceLevel.Expert.value
    return ExperienceLevel.Unknown.value


@dataclass
class JobFilters:
    job_type: str = "all"
    experience_level: str = "all"
    budget_min: float = 0
    budget_max: Optional[float] = None

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "JobFilters":
        d = d or {}
        bmax = d.get("budget_max")
        return cls(
            job_type=str(d.get("job_type") or "all").lower(),
            experience_level=str(d.get("experience_level") or "all").lower(),
            budget_min=float(d.get("budget_min") or 0),
            budget_max=float(bmax) if bmax is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_type": self.job_type,
            "experience_level": self.experience_level,
            "budget_min": self.budget_min,
            "budget_max": self.budget_max,
        }

    def in_budget(self, amount: float) -> bool:
        if amount < self.budget_min:
            return False
        if self.budget_max is not None and amount > self.budget_max:
            return False
        return True


def should_include_job(job: JobRecord, filters: JobFilters) -> bool:
    """
    Decide whether a job passes the configured filters.

    Unknown values pass: a job whose type or level could not be read is not
    dropped for it, and budget bounds only apply when an amount was parsed.
    """
    jtype = classify_job_type(job.job_type)
    if filters.job_type != "all" and jtype not in (filters.job_type, JobType.Unknown.value):
        return False

    level = classify_experience_level(job.experience_level)
    if filters.experience_level != "all" and level not in (
        filters.experience_level,
        ExperienceLevel.Unknown.value,
    ):
        return False

    if jtype == JobType.Fixed.value and job.budget:
        if not filters.in_budget(float(job.budget)):
            return False

    if jtype == JobType.Hourly.value and job.hourly_rate:
        if not filters.in_budget(float(job.hourly_rate) * HOURS_PER_WEEK):
            return False

    return True


def apply_filters(jobs: Iterable[JobRecord], filters: JobFilters) -> List[JobRecord]:
    return [j for j in jobs if should_include_job(j, filters)]
