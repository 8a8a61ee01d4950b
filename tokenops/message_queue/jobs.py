"""
Job Status Tracker

Process-local view of job progress for the status endpoint.
Lost on restart; the transaction ledger is the durable record.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from tokenops.message_queue.base import MessageStatus


class JobStatus(BaseModel):
    job_id: str
    status: MessageStatus = MessageStatus.QUEUED
    type: Optional[str] = None
    retries: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class JobTracker:
    """
    In-memory map of job id -> JobStatus.

    Finished jobs are dropped by cleanup() once older than the retention window.
    """

    def __init__(self, retention_seconds: int = 3600):
        self.retention = timedelta(seconds=retention_seconds)
        self._jobs: dict[str, JobStatus] = {}

    def queued(self, job_id: str) -> JobStatus:
        job = self._jobs.setdefault(job_id, JobStatus(job_id=job_id))
        job.status = MessageStatus.QUEUED
        return job

    def processing(self, job_id: str, job_type: Optional[str] = None, retries: int = 0) -> JobStatus:
        job = self._jobs.setdefault(job_id, JobStatus(job_id=job_id))
        job.status = MessageStatus.PROCESSING
        job.type = job_type or job.type
        job.retries = retries
        job.start_time = datetime.now(timezone.utc)
        return job

    def completed(self, job_id: str, result: Any = None) -> JobStatus:
        job = self._jobs.setdefault(job_id, JobStatus(job_id=job_id))
        job.status = MessageStatus.COMPLETED
        job.result = result
        job.error = None
        job.end_time = datetime.now(timezone.utc)
        return job

    def failed(self, job_id: str, error: str, final: bool = True) -> JobStatus:
        """Record a failure; non-final failures go back to queued for the retry."""
        job = self._jobs.setdefault(job_id, JobStatus(job_id=job_id))
        job.error = error
        if final:
            job.status = MessageStatus.FAILED
            job.end_time = datetime.now(timezone.utc)
        else:
            job.status = MessageStatus.QUEUED
            job.retries += 1
        return job

    def get(self, job_id: str) -> Optional[JobStatus]:
        return self._jobs.get(job_id)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs older than the retention window. Returns count removed."""
        now = now or datetime.now(timezone.utc)
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.end_time is not None and now - job.end_time > self.retention
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._jobs)
