"""Matching job model."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.db.base import Base, TimestampMixin, str_enum
from src.models.enums import JobStatus, Platform, Provider

__all__ = ["Job"]


class Job(TimestampMixin, Base):
    """Persistent state of the matching job for one platform and year.

    ``anilist_ids`` is the ordered candidate list frozen when the job is
    created; ``current_index`` points at the next unprocessed entry.
    """

    __tablename__ = "jobs"

    platform: Mapped[Platform] = mapped_column(str_enum(Platform), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    provider: Mapped[Provider] = mapped_column(str_enum(Provider))
    model: Mapped[str] = mapped_column(String)
    status: Mapped[JobStatus] = mapped_column(
        str_enum(JobStatus), default=JobStatus.CREATED
    )

    anilist_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    num_animes_to_match: Mapped[int] = mapped_column(Integer, default=0)
    num_processed: Mapped[int] = mapped_column(Integer, default=0)
    num_matched: Mapped[int] = mapped_column(Integer, default=0)
    num_failed: Mapped[int] = mapped_column(Integer, default=0)
    current_index: Mapped[int] = mapped_column(Integer, default=0)

    error: Mapped[str | None] = mapped_column(String, nullable=True)
    job_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Job(platform={self.platform}, year={self.year}, "
            f"status={self.status}, index={self.current_index})>"
        )
