"""In-memory export job store with TTL cleanup.

WHY: Fetching a share page can take up to the ready timeout and a long
conversation takes a while to lay out, so the HTTP API returns a job ID
straight away and does the work in the background. Nothing here needs
to survive a restart, so an in-memory store is enough.

HOW: Three pieces:
  JobStatus: the states an export moves through
  Job: metadata, status, output file names and a working directory
  JobStore: lock-protected dict with create/get/update/delete and expiry

RULES:
- Every access to the job dict holds threading.Lock
- Each job owns a temp directory holding its input page and outputs
- Only finished jobs (completed or failed) expire, measured from the
  moment they finished
- create_job() raises ValueError once max_jobs jobs are held
- Job IDs are uuid4 hex strings
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_JOBS = 100

# Name of the uploaded page inside a job directory.
INPUT_FILENAME = "source.html"


class JobStatus(str, enum.Enum):
    """States of an export job.

    RULES:
    - pending: created, background task not started
    - fetching: downloading the share page (URL jobs only)
    - extracting: reading turns out of the page
    - rendering: formatters running
    - completed / failed: terminal
    """

    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    """State of one export request.

    ``source`` is the uploaded file name or the share URL; ``config``
    holds the requested formats and title override.
    """

    id: str
    status: JobStatus
    source: str
    output_dir: Path
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    title: Optional[str] = None
    message_count: Optional[int] = None
    config: Dict[str, Any] = field(default_factory=dict)
    output_files: List[str] = field(default_factory=list)

    @property
    def input_path(self) -> Path:
        return self.output_dir / INPUT_FILENAME


class JobStore:
    """Thread-safe in-memory store for export jobs.

    WHY: Request handlers and background tasks touch the same jobs from
    different threads.

    RULES:
    - get_job() returns None for unknown IDs, never raises
    - update_job() only applies arguments that are not None
    - delete_job() and expiry remove the job directory outside the lock
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = DEFAULT_MAX_JOBS,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(self, source: str, config: Optional[Dict[str, Any]] = None) -> Job:
        """Create a PENDING job with its own temp directory.

        Raises:
            ValueError: If the store already holds max_jobs jobs.
        """
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(self.max_jobs)
                )

            now = time.time()
            job = Job(
                id=uuid.uuid4().hex,
                status=JobStatus.PENDING,
                source=source,
                output_dir=Path(tempfile.mkdtemp(prefix="gemini_export_job_")),
                created_at=now,
                updated_at=now,
                config=dict(config or {}),
            )
            self._jobs[job.id] = job

        logger.info("Created job %s for %s", job.id, source)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """Snapshot of all jobs, oldest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        title: Optional[str] = None,
        message_count: Optional[int] = None,
        output_files: Optional[List[str]] = None,
    ) -> Optional[Job]:
        """Apply the given changes; returns None if the job is gone.

        Sets completed_at when the job reaches a terminal state.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()
            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if title is not None:
                job.title = title
            if message_count is not None:
                job.message_count = message_count
            if output_files is not None:
                job.output_files = list(output_files)
            job.updated_at = now
            if job.status.is_terminal and job.completed_at is None:
                job.completed_at = now
            return job

    def delete_job(self, job_id: str) -> bool:
        """Remove a job and its directory. False if it did not exist."""
        with self._lock:
            job = self._jobs.pop(job_id, None)

        if job is None:
            return False

        self._cleanup_output_dir(job.output_dir)
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove finished jobs older than the TTL; returns how many."""
        now = time.time()
        expired: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.status.is_terminal or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired.append(self._jobs.pop(job_id))

        for job in expired:
            self._cleanup_output_dir(job.output_dir)
            logger.info("Expired job %s (finished %.0fs ago)", job.id, now - job.completed_at)

        return len(expired)

    @staticmethod
    def _cleanup_output_dir(output_dir: Path) -> None:
        if output_dir.exists():
            try:
                shutil.rmtree(output_dir)
            except OSError:
                logger.warning("Failed to clean up temp dir: %s", output_dir)
