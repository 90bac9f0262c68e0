"""
Background job coordination for ctxvault.

Index runs are started as background jobs so adapters can return a job id
immediately and let callers poll. ``JobManager`` owns the job lifecycle
(pending -> running -> completed | failed), a bounded log per job, progress
updates fed by the orchestrator and age-based eviction of finished jobs.
Jobs live in a ``JobStore``; the default keeps them in memory only.
"""

import asyncio
import contextlib
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import Field

from .config import Config
from .exceptions import InvalidJobTransition, JobNotFoundError
from .indexer import Indexer
from .models import CamelModel, DeltaStats, IndexResult
from .progress import ProgressSink

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    INDEX = "index"
    UPDATE = "update"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Allowed status transitions; terminal states have none
TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

# Fields only the manager may set
PROTECTED_FIELDS = frozenset({"id", "type", "project_id", "start_time", "end_time", "duration", "logs"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobLogEntry(CamelModel):
    """One line of a job's log."""
    timestamp: datetime = Field(default_factory=_now)
    level: str = "info"
    message: str


class JobStats(CamelModel):
    files_total: int = 0
    files_processed: int = 0
    chunks_indexed: int = 0
    delta_stats: Optional[DeltaStats] = None


class Job(CamelModel):
    """
    A background index run.

    ``progress`` is a percentage in [0, 100]. ``end_time`` and ``duration``
    (seconds) are set when the job reaches a terminal status.
    """
    id: str
    type: JobType
    project_id: str
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    start_time: datetime = Field(default_factory=_now)
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    params: dict[str, Any] = Field(default_factory=dict)
    result: Optional[IndexResult] = None
    error: Optional[str] = None
    logs: list[JobLogEntry] = Field(default_factory=list)
    stats: JobStats = Field(default_factory=JobStats)
    sequence: int = Field(default=0, exclude=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobStore(ABC):
    """Storage for job records."""

    @abstractmethod
    def add(self, job: Job) -> None:
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    def values(self) -> list[Job]:
        pass

    @abstractmethod
    def remove(self, job_id: str) -> bool:
        pass


class InMemoryJobStore(JobStore):
    """Process-local job store. Contents are lost on restart."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def add(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def values(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class JobProgressSink(ProgressSink):
    """Routes orchestrator progress and log lines into a job."""

    def __init__(self, manager: "JobManager", job_id: str):
        self.manager = manager
        self.job_id = job_id

    def progress(self, percent: float, message: Optional[str] = None) -> None:
        self.manager.update_progress(self.job_id, percent, message)

    def log(self, message: str, level: str = "info") -> None:
        self.manager.add_job_log(self.job_id, message, level)


class JobManager:
    """
    Creates, tracks and runs index jobs.

    Features:
    - Unique ids of the form ``job_<n>_<ms>``
    - Enforced status state machine with end time and duration on completion
    - Bounded per-job log (oldest entries dropped)
    - Optional serialization of jobs that target the same project
    - Eviction of terminal jobs older than a retention window
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        max_logs: int = 50,
        retention_seconds: float = 24 * 60 * 60,
        serialize_per_project: bool = True,
    ):
        """
        Initialize the job manager.

        Args:
            store: Job storage (defaults to an InMemoryJobStore)
            max_logs: Log entries kept per job
            retention_seconds: Default age after which finished jobs are evicted
            serialize_per_project: Run at most one job per project at a time
        """
        self.store = store if store is not None else InMemoryJobStore()
        self.max_logs = max_logs
        self.retention_seconds = retention_seconds
        self.serialize_per_project = serialize_per_project
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()
        self._project_locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: Config, store: Optional[JobStore] = None) -> "JobManager":
        return cls(
            store=store,
            max_logs=config.get("jobs", "max_logs", default=50),
            retention_seconds=config.get("jobs", "retention_seconds", default=24 * 60 * 60),
            serialize_per_project=config.get("jobs", "serialize_per_project", default=True),
        )

    # Lifecycle

    def create_job(self, job_type: JobType | str, project_id: str, params: Optional[dict] = None) -> Job:
        """
        Register a new pending job.

        Args:
            job_type: "index" or "update"
            project_id: Project the job operates on
            params: Request parameters recorded with the job

        Returns:
            The new Job
        """
        with self._counter_lock:
            sequence = next(self._counter)
        job = Job(
            id=f"job_{sequence}_{int(time.time() * 1000)}",
            type=JobType(job_type),
            project_id=project_id,
            params=dict(params or {}),
            sequence=sequence,
        )
        self.store.add(job)
        logger.info(f"Created {job.type.value} job {job.id}", extra={"job_id": job.id, "project_id": project_id})
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def require_job(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update_job(self, job_id: str, status: Optional[JobStatus | str] = None, **updates: Any) -> Optional[Job]:
        """
        Apply field updates and an optional status transition to a job.

        Reaching a terminal status sets ``end_time`` and ``duration``.

        Returns:
            The updated Job, or None if the id is unknown

        Raises:
            InvalidJobTransition: If the status change is not allowed
            ValueError: If a manager-owned field is updated
        """
        job = self.store.get(job_id)
        if job is None:
            return None

        protected = PROTECTED_FIELDS.intersection(updates)
        if protected:
            raise ValueError(f"Cannot update job fields: {', '.join(sorted(protected))}")

        if status is not None:
            status = JobStatus(status)
            if status not in TRANSITIONS[job.status]:
                raise InvalidJobTransition(job_id, job.status.value, status.value)

        for key, value in updates.items():
            setattr(job, key, value)

        if status is not None:
            job.status = status
            if status in TERMINAL_STATUSES:
                job.end_time = _now()
                job.duration = (job.end_time - job.start_time).total_seconds()

        return job

    def add_job_log(self, job_id: str, message: str, level: str = "info") -> None:
        """
        Append a log line to a job, dropping the oldest beyond ``max_logs``.

        The line is also written to this module's logger.
        """
        job = self.store.get(job_id)
        if job is None:
            return

        job.logs.append(JobLogEntry(level=level, message=message))
        if len(job.logs) > self.max_logs:
            del job.logs[: len(job.logs) - self.max_logs]

        log_level = logging.INFO if level == "success" else getattr(logging, level.upper(), logging.INFO)
        logger.log(log_level, f"[{job_id}] {message}", extra={"job_id": job_id, "project_id": job.project_id})

    def update_progress(self, job_id: str, progress: float, message: Optional[str] = None) -> None:
        """Set a job's progress (clamped to [0, 100]) and optionally log a message."""
        job = self.store.get(job_id)
        if job is None:
            return
        job.progress = min(100.0, max(0.0, float(progress)))
        if message:
            self.add_job_log(job_id, message)

    # Queries

    def get_all_jobs(self) -> list[Job]:
        """All jobs, newest first."""
        return sorted(self.store.values(), key=lambda job: (job.start_time, job.sequence), reverse=True)

    def get_active_jobs(self) -> list[Job]:
        """Pending and running jobs, newest first."""
        return [job for job in self.get_all_jobs() if not job.is_terminal]

    def cleanup_old_jobs(self, max_age_seconds: Optional[float] = None) -> int:
        """
        Evict terminal jobs that ended more than ``max_age_seconds`` ago.

        Returns:
            Number of jobs removed
        """
        max_age = self.retention_seconds if max_age_seconds is None else max_age_seconds
        cutoff = _now() - timedelta(seconds=max_age)
        removed = 0
        for job in self.store.values():
            if job.is_terminal and job.end_time is not None and job.end_time < cutoff:
                if self.store.remove(job.id):
                    removed += 1
        if removed:
            logger.info(f"Cleaned up {removed} old jobs")
        return removed

    # Execution

    def _project_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._project_locks.get(project_id)
        if lock is None:
            lock = self._project_locks[project_id] = asyncio.Lock()
        return lock

    async def run_index_job(
        self,
        job_id: str,
        indexer: Indexer,
        directory_path: str | Path,
        project_id: str,
        exclude_patterns: Optional[list[str]] = None,
        delta_only: bool = False,
    ) -> IndexResult:
        """
        Run the orchestrator for a pending job and record the outcome.

        On failure the job is marked failed with its progress reset to 0 and
        the exception is re-raised.

        Raises:
            JobNotFoundError: If the job id is unknown
            InvalidJobTransition: If the job is not pending
        """
        job = self.require_job(job_id)
        if job.status is not JobStatus.PENDING:
            raise InvalidJobTransition(job_id, job.status.value, JobStatus.RUNNING.value)

        if self.serialize_per_project:
            guard = self._project_lock(project_id)
            if guard.locked():
                self.add_job_log(job_id, f"Waiting for another job on project {project_id}")
        else:
            guard = contextlib.nullcontext()

        async with guard:
            self.update_job(job_id, status=JobStatus.RUNNING)
            self.add_job_log(job_id, f"Started {job.type.value} job for project {project_id}")
            try:
                result = await indexer.run(
                    directory_path,
                    project_id,
                    exclude_patterns=exclude_patterns,
                    delta_only=delta_only,
                    sink=JobProgressSink(self, job_id),
                )
            except Exception as e:
                self.update_job(job_id, status=JobStatus.FAILED, error=str(e), progress=0.0)
                self.add_job_log(job_id, f"Job failed: {e}", "error")
                raise

            self.update_job(
                job_id,
                status=JobStatus.COMPLETED,
                result=result,
                progress=100.0,
                stats=JobStats(
                    files_total=result.files_total,
                    files_processed=result.files_processed,
                    chunks_indexed=result.chunks_indexed,
                    delta_stats=result.delta_stats,
                ),
            )
            self.add_job_log(job_id, "Job completed successfully", "success")
            return result

    def start_index_job(
        self,
        indexer: Indexer,
        job_type: JobType | str,
        directory_path: str | Path,
        project_id: str,
        exclude_patterns: Optional[list[str]] = None,
        delta_only: bool = False,
    ) -> Job:
        """
        Create a job and run it in the background on the current event loop.

        Returns:
            The pending Job; poll it with ``get_job``
        """
        job = self.create_job(
            job_type,
            project_id,
            {
                "directory_path": str(directory_path),
                "exclude_patterns": list(exclude_patterns or []),
                "delta_only": delta_only,
            },
        )
        task = asyncio.create_task(
            self.run_index_job(job.id, indexer, directory_path, project_id, exclude_patterns, delta_only),
            name=f"ctxvault-{job.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(lambda t, job_id=job.id: self._on_task_done(job_id, t))
        return job

    def _on_task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Job {job_id} was cancelled", extra={"job_id": job_id})
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background job {job_id} failed: {error}", extra={"job_id": job_id})

    async def wait_for_all(self) -> None:
        """Wait for every background job started by this manager."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_cleanup_loop(self, interval_seconds: float = 3600, max_age_seconds: Optional[float] = None) -> None:
        """Evict old jobs every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup_old_jobs(max_age_seconds)
