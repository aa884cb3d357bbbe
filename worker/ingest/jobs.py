from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ingest.cache import CacheClient
from ingest.models import TERMINAL_JOB_STATUSES, BatchJob, utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

SYSTEM_IDENTIFIER = "SYSTEM"
JOB_CACHE_PREFIX = "jobs:status:"


@dataclass
class JobError:
    identifier: str
    kind: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"identifier": self.identifier, "kind": self.kind, "message": self.message}


@dataclass
class JobStatus:
    id: str
    status: str
    total: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    inserted: int = 0
    updated: int = 0
    tokens_reserved: int = 0
    tokens_used: int = 0
    tokens_saved: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @classmethod
    def from_job(cls, job: BatchJob) -> JobStatus:
        return cls(
            id=job.id,
            status=job.status,
            total=job.total,
            processed=job.processed,
            succeeded=job.succeeded,
            failed=job.failed,
            skipped=job.skipped,
            inserted=job.inserted,
            updated=job.updated,
            tokens_reserved=job.tokens_reserved,
            tokens_used=job.tokens_used,
            tokens_saved=job.tokens_saved,
            errors=[dict(error) for error in job.errors or []],
            created_at=_iso(job.created_at),
            updated_at=_iso(job.updated_at),
            completed_at=_iso(job.completed_at),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "status": self.status,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "inserted": self.inserted,
            "updated": self.updated,
            "tokens_reserved": self.tokens_reserved,
            "tokens_used": self.tokens_used,
            "tokens_saved": self.tokens_saved,
            "errors": [dict(error) for error in self.errors],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class JobStore:
    """Durable job rows in ``batch_jobs`` with a status snapshot mirrored into the cache.

    Writers go through ``save`` so the cached read model never lags the row it
    was taken from. Readers hit the cache first and fall back to the table.
    """

    def __init__(self, session_factory: SessionFactory, cache: CacheClient | None = None) -> None:
        self.session_factory = session_factory
        self.cache = cache or CacheClient()

    def create(
        self,
        db: Session,
        identifiers: list[str],
        options: dict[str, object],
        tokens_reserved: int = 0,
    ) -> BatchJob:
        now = utc_now()
        job = BatchJob(
            identifiers=list(identifiers),
            options=dict(options),
            status="pending",
            total=len(identifiers),
            processed=0,
            succeeded=0,
            failed=0,
            skipped=0,
            inserted=0,
            updated=0,
            errors=[],
            tokens_reserved=tokens_reserved,
            tokens_used=0,
            tokens_saved=0,
            created_at=now,
            updated_at=now,
        )
        db.add(job)
        self.save(db, job)
        logger.info("Created import job %s with %s identifiers", job.id, job.total)
        return job

    def load(self, db: Session, job_id: str) -> BatchJob | None:
        return db.get(BatchJob, job_id)

    def save(self, db: Session, job: BatchJob) -> None:
        job.updated_at = utc_now()
        db.commit()
        self.cache.set_json(self._cache_key(job.id), JobStatus.from_job(job).to_dict())

    def append_error(self, job: BatchJob, error: JobError) -> None:
        # Plain JSON columns do not track in-place mutation.
        job.errors = [*(job.errors or []), error.to_dict()]

    def get_status(self, job_id: str) -> JobStatus | None:
        cached = self.cache.get_json(self._cache_key(job_id))
        if cached.hit and isinstance(cached.value, dict):
            return JobStatus(**cached.value)

        with self.session_factory() as db:
            job = self.load(db, job_id)
            if job is None:
                return None
            status = JobStatus.from_job(job)
        self.cache.set_json(self._cache_key(job_id), status.to_dict())
        return status

    def list_recent(self, limit: int = 20) -> list[JobStatus]:
        with self.session_factory() as db:
            jobs = db.execute(select(BatchJob).order_by(BatchJob.created_at.desc()).limit(limit)).scalars()
            return [JobStatus.from_job(job) for job in jobs]

    @staticmethod
    def _cache_key(job_id: str) -> str:
        return f"{JOB_CACHE_PREFIX}{job_id}"
