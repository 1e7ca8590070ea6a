"""Job wire models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel

from src.models.db.job import Job
from src.models.enums import JobStatus, Platform, Provider

__all__ = ["JobDetails", "UTCDateTime"]


def _as_utc(dt: datetime) -> datetime:
    # SQLite drops the offset; stored values are always UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class JobDetails(BaseModel):
    """Snapshot of a job as listed by ``/api/job/list``."""

    platform: Platform
    year: int
    provider: Provider
    model: str
    status: JobStatus
    num_animes_to_match: int = 0
    num_processed: int = 0
    num_matched: int = 0
    num_failed: int = 0
    current_index: int = 0
    job_start_time: UTCDateTime | None = None
    error: str | None = None

    @property
    def key(self) -> tuple[Platform, int]:
        """The (platform, year) registry key."""
        return self.platform, self.year

    @classmethod
    def from_model(cls, job: Job) -> JobDetails:
        """Build the snapshot from its database row."""
        return cls(
            platform=job.platform,
            year=job.year,
            provider=job.provider,
            model=job.model,
            status=job.status,
            num_animes_to_match=job.num_animes_to_match,
            num_processed=job.num_processed,
            num_matched=job.num_matched,
            num_failed=job.num_failed,
            current_index=job.current_index,
            job_start_time=job.job_start_time,
            error=job.error,
        )
