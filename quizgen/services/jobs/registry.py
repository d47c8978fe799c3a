"""In-process registry of asynchronous question-generation jobs.

Jobs live only in the memory of the serving process. Request handlers run in
FastAPI's worker threads, so every operation takes the registry lock for its
whole lookup-then-mutate step, and callers only ever receive snapshot copies.

Expiry is two-tier: every job is guaranteed ``ttl`` of life; after that,
terminal jobs are evicted while ``processing`` jobs get an extra ``grace``
window. A job that is still unfinished once its window closes is failed with a
timeout error and kept for ``failed_retention`` so a polling client sees the
failure before the entry disappears. The same retention applies to jobs that
finish late through ``update``.
"""

import dataclasses
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from quizgen.core.config import get_settings
from quizgen.models.common import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Preparing biblical knowledge assessment..."
TIMEOUT_ERROR = "Job timed out after extended processing time"

UPDATABLE_FIELDS = {"status", "progress", "message", "result", "error"}


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, Enum):
    QUIZ = "quiz"
    REPLACEMENT = "replacement"


@dataclass(slots=True)
class GenerationJob:
    job_id: str
    quiz_id: str
    request_payload: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    message: str = DEFAULT_MESSAGE
    result: list[dict[str, Any]] | None = None
    error: str | None = None
    owner_id: str | None = None
    kind: JobKind = JobKind.QUIZ
    evict_after: datetime | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def questions_count(self) -> int:
        return len(self.result or [])

    def snapshot(self) -> "GenerationJob":
        return dataclasses.replace(
            self,
            request_payload=dict(self.request_payload),
            result=list(self.result) if self.result is not None else None,
        )


class JobRegistry:
    def __init__(
        self,
        ttl: timedelta,
        grace: timedelta,
        failed_retention: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ttl = ttl
        self.grace = grace
        self.failed_retention = failed_retention
        self._clock = clock
        self._jobs: dict[str, GenerationJob] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(
        self,
        job_id: str,
        quiz_id: str,
        request_payload: dict[str, Any],
        owner_id: str | None = None,
        kind: JobKind = JobKind.QUIZ,
    ) -> GenerationJob:
        now = self._clock()
        job = GenerationJob(
            job_id=job_id,
            quiz_id=quiz_id,
            request_payload=dict(request_payload),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            kind=kind,
        )
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")
            self._jobs[job_id] = job
            snapshot = job.snapshot()
        logger.info("job_created", extra={"job_id": job_id, "quiz_id": quiz_id, "kind": kind.value})
        return snapshot

    def get(self, job_id: str) -> GenerationJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    def update(self, job_id: str, **fields: Any) -> GenerationJob | None:
        """Merge ``fields`` into the job and return the new snapshot.

        Returns ``None`` for unknown or evicted jobs. A job that turns terminal
        here is kept until the later of its TTL and ``failed_retention`` from
        now. Terminal jobs only get their ``updated_at`` refreshed; everything
        else is left as it was.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update job fields: {sorted(unknown)}")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            now = self._clock()
            if job.is_terminal:
                job.updated_at = now
                if fields:
                    logger.warning(
                        "job_update_ignored_terminal",
                        extra={"job_id": job_id, "status": job.status.value, "fields": sorted(fields)},
                    )
                return job.snapshot()
            self._apply(job, fields)
            job.updated_at = now
            if job.is_terminal:
                job.evict_after = max(job.created_at + self.ttl, now + self.failed_retention)
            return job.snapshot()

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def sweep(self) -> list[str]:
        """Fail overdue jobs and evict expired ones; returns evicted ids."""
        now = self._clock()
        evicted: list[str] = []
        timed_out: list[str] = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                age = now - job.created_at
                if age < self.ttl:
                    continue
                if not job.is_terminal:
                    if job.status is JobStatus.PROCESSING and age < self.ttl + self.grace:
                        continue
                    self._apply(
                        job,
                        {"status": JobStatus.FAILED, "error": TIMEOUT_ERROR, "message": "Quiz generation timed out"},
                    )
                    job.updated_at = now
                    job.evict_after = now + self.failed_retention
                    timed_out.append(job_id)
                    continue
                if job.evict_after is not None and now < job.evict_after:
                    continue
                del self._jobs[job_id]
                evicted.append(job_id)
        for job_id in timed_out:
            logger.warning("job_timed_out", extra={"job_id": job_id})
        if evicted:
            logger.info("jobs_evicted", extra={"count": len(evicted)})
        return evicted

    @staticmethod
    def _apply(job: GenerationJob, fields: dict[str, Any]) -> None:
        if "status" in fields:
            job.status = JobStatus(fields["status"])
        if "progress" in fields:
            job.progress = max(0, min(100, int(fields["progress"])))
        if "message" in fields and fields["message"] is not None:
            job.message = str(fields["message"])
        if "result" in fields:
            job.result = list(fields["result"]) if fields["result"] is not None else None
        if "error" in fields:
            job.error = fields["error"]

        # result only on completed jobs, error only on failed ones
        if job.status is JobStatus.COMPLETED:
            job.result = job.result if job.result is not None else []
            job.error = None
        elif job.status is JobStatus.FAILED:
            job.error = job.error or job.message or "Unknown error occurred"
            job.result = None
        else:
            job.result = None
            job.error = None


class JobSweeper:
    """Daemon thread that calls ``registry.sweep()`` on a fixed interval."""

    def __init__(self, registry: JobRegistry, interval_seconds: float) -> None:
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="job-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.registry.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("job_sweep_failed")


_registry: JobRegistry | None = None
_registry_lock = threading.Lock()


def get_job_registry() -> JobRegistry:
    global _registry
    with _registry_lock:
        if _registry is None:
            settings = get_settings()
            _registry = JobRegistry(
                ttl=timedelta(seconds=settings.job_ttl_seconds),
                grace=timedelta(seconds=settings.job_processing_grace_seconds),
                failed_retention=timedelta(seconds=settings.job_failed_retention_seconds),
            )
        return _registry
