from __future__ import annotations

import threading

from typing import Any, Dict, Iterator, List, Optional

from utils.schema import JobRecord, RecordStage


class JobStore:
    """
    In-memory, insertion-ordered map of job_id -> JobRecord for one run.

    The same job seen twice is one entity at two lifecycle stages: a listing
    observation (from a search page) and a detail observation (from the job
    page). Listings never overwrite anything; details overlay field by field.

    Mutations are serialized with a lock. The pagination controller also
    funnels every upsert through its coordinating thread, so the lock is
    never contended in practice.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, JobRecord] = {}
        self.duplicates = 0
        self.dropped_no_id = 0

    def upsert_listing(self, record: JobRecord) -> bool:
        """
        Insert a listing-stage record unless its job_id is already known.

        Returns:
            True when the record was inserted; False when it was a duplicate
            (first observation wins) or had no job_id.
        """
        if not record.job_id:
            with self._lock:
                self.dropped_no_id += 1
            return False
        with self._lock:
            if record.job_id in self._records:
                self.duplicates += 1
                return False
            if record.stage != RecordStage.Listing.value:
                record = record.merged({"stage": RecordStage.Listing.value})
            self._records[record.job_id] = record
            return True

    def upsert_detail(self, job_id: Optional[str], fields: Dict[str, Any]) -> bool:
        """
        Overlay detail fields onto a known job, or insert a detail-only record.

        Returns:
            True when the store changed; False only when job_id is empty.
        """
        if not job_id:
            with self._lock:
                self.dropped_no_id += 1
            return False
        fields = {k: v for k, v in fields.items() if k not in ("job_id", "stage")}
        with self._lock:
            existing = self._records.get(job_id)
            if existing is None:
                rec = JobRecord(job_id=job_id, stage=RecordStage.Detail.value)
                self._records[job_id] = rec.merged(fields)
            else:
                stage = (
                    RecordStage.Enriched.value
                    if existing.stage == RecordStage.Listing.value
                    else existing.stage
                )
                self._records[job_id] = existing.merged({**fields, "stage": stage})
            return True

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._records.get(job_id)

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def values(self) -> List[JobRecord]:
        """Records in order of first observation."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._records

    def __iter__(self) -> Iterator[JobRecord]:
        return iter(self.values())
