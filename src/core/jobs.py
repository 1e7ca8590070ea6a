"""Job lifecycle state machine and the persistent job registry.

Transitions per (platform, year) job::

    Created --run--> Running --pause--> Paused --resume/run--> Running
    Running --complete--> Completed
    Running --fail--> Failed --run--> Running   (continues at current_index)
    Running --recover--> Paused                 (process restart)

Repeating ``run``/``resume`` on a Running job or ``pause`` on a Paused job is
a no-op. Every other pair raises :class:`InvalidJobStateError`. Removal is
allowed from any state and handled by the scheduler.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from typing import NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src import log
from src.config.database import db
from src.exceptions import InvalidJobStateError, JobConflictError, JobNotFoundError
from src.models.db.job import Job
from src.models.enums import BaseStrEnum, JobStatus, Platform, Provider
from src.models.schemas.job import JobDetails

__all__ = [
    "JobAction",
    "JobRegistry",
    "JobWork",
    "TRANSITIONS",
    "get_job_registry",
    "is_noop",
    "next_status",
]


class JobAction(BaseStrEnum):
    """Events that move a job between statuses."""

    RUN = "run"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    FAIL = "fail"
    RECOVER = "recover"


TRANSITIONS: dict[JobAction, dict[JobStatus, JobStatus]] = {
    JobAction.RUN: {
        JobStatus.CREATED: JobStatus.RUNNING,
        JobStatus.PAUSED: JobStatus.RUNNING,
        JobStatus.FAILED: JobStatus.RUNNING,
        JobStatus.RUNNING: JobStatus.RUNNING,
    },
    JobAction.PAUSE: {
        JobStatus.RUNNING: JobStatus.PAUSED,
        JobStatus.PAUSED: JobStatus.PAUSED,
    },
    JobAction.RESUME: {
        JobStatus.PAUSED: JobStatus.RUNNING,
        JobStatus.RUNNING: JobStatus.RUNNING,
    },
    JobAction.COMPLETE: {JobStatus.RUNNING: JobStatus.COMPLETED},
    JobAction.FAIL: {JobStatus.RUNNING: JobStatus.FAILED},
    JobAction.RECOVER: {JobStatus.RUNNING: JobStatus.PAUSED},
}


def next_status(current: JobStatus, action: JobAction) -> JobStatus:
    """Return the status reached by applying ``action`` in ``current``.

    Raises:
        InvalidJobStateError: If the action is not allowed in this status.
    """
    target = TRANSITIONS[action].get(current)
    if target is None:
        raise InvalidJobStateError(f"Cannot {action} a job that is {current}")
    return target


def is_noop(current: JobStatus, action: JobAction) -> bool:
    """Whether ``action`` leaves a job in ``current`` untouched."""
    return next_status(current, action) == current


class JobWork(NamedTuple):
    """What a job runner needs to continue a job."""

    provider: Provider
    model: str
    anilist_ids: list[int]
    current_index: int


@dataclass
class JobRegistry:
    """Persists jobs and applies state transitions atomically."""

    def _load(self, session: Session, platform: Platform, year: int) -> Job:
        job = session.get(Job, (platform, year))
        if job is None:
            raise JobNotFoundError(f"No {platform} job for year {year}")
        return job

    def create(
        self,
        platform: Platform,
        year: int,
        provider: Provider,
        model: str,
        anilist_ids: list[int],
    ) -> JobDetails:
        """Register a new job over a frozen candidate list.

        Raises:
            JobConflictError: If a job already exists for (platform, year).
        """
        with db() as ctx:
            if ctx.session.get(Job, (platform, year)) is not None:
                raise JobConflictError(f"A {platform} job for year {year} exists")

            job = Job(
                platform=platform,
                year=year,
                provider=provider,
                model=model,
                status=JobStatus.CREATED,
                anilist_ids=list(anilist_ids),
                num_animes_to_match=len(anilist_ids),
                num_processed=0,
                num_matched=0,
                num_failed=0,
                current_index=0,
            )
            ctx.session.add(job)
            try:
                ctx.session.commit()
            except IntegrityError as e:
                ctx.session.rollback()
                raise JobConflictError(
                    f"A {platform} job for year {year} exists"
                ) from e
            return JobDetails.from_model(job)

    def get(self, platform: Platform, year: int) -> JobDetails:
        """Return one job.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        with db() as ctx:
            return JobDetails.from_model(self._load(ctx.session, platform, year))

    def list_jobs(self) -> list[JobDetails]:
        """Return every job ordered by platform then year."""
        with db() as ctx:
            jobs = ctx.session.query(Job).order_by(Job.platform, Job.year).all()
            return [JobDetails.from_model(job) for job in jobs]

    def work(self, platform: Platform, year: int) -> JobWork:
        """Return the provider settings, candidate list and resume cursor."""
        with db() as ctx:
            job = self._load(ctx.session, platform, year)
            return JobWork(
                provider=job.provider,
                model=job.model,
                anilist_ids=list(job.anilist_ids or []),
                current_index=job.current_index,
            )

    def apply(
        self,
        platform: Platform,
        year: int,
        action: JobAction,
        *,
        error: str | None = None,
    ) -> tuple[JobStatus, JobDetails]:
        """Apply a state transition in one transaction.

        Starting to run resets ``job_start_time`` and clears the last error.

        Returns:
            tuple[JobStatus, JobDetails]: The previous status and the new snapshot.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the transition is not allowed.
        """
        with db() as ctx:
            job = self._load(ctx.session, platform, year)
            previous = job.status
            target = next_status(previous, action)
            if target != previous:
                job.status = target
                if target == JobStatus.RUNNING:
                    job.job_start_time = datetime.now(UTC)
                    job.error = None
                if action == JobAction.FAIL:
                    job.error = error
                ctx.session.commit()
                log.debug(
                    f"Job $$'{platform}/{year}'$$ {previous} -> {target} "
                    f"$${{action: {action}}}$$"
                )
            return previous, JobDetails.from_model(job)

    def record_item(
        self,
        platform: Platform,
        year: int,
        *,
        matched: bool,
        stage: Callable[[Session], object] | None = None,
    ) -> JobDetails:
        """Commit one processed candidate.

        ``stage`` adds the item's mapping write to the same session so that
        the mapping, the counters and the advanced cursor commit together.
        """
        with db() as ctx:
            job = self._load(ctx.session, platform, year)
            if stage is not None:
                stage(ctx.session)
            job.num_processed += 1
            if matched:
                job.num_matched += 1
            else:
                job.num_failed += 1
            job.current_index += 1
            ctx.session.commit()
            return JobDetails.from_model(job)

    def delete(self, platform: Platform, year: int) -> None:
        """Delete a job record.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        with db() as ctx:
            ctx.session.delete(self._load(ctx.session, platform, year))
            ctx.session.commit()

    def recover(self) -> list[JobDetails]:
        """Move jobs left Running by a previous process to Paused."""
        recovered: list[JobDetails] = []
        with db() as ctx:
            jobs = ctx.session.query(Job).filter(Job.status == JobStatus.RUNNING).all()
            for job in jobs:
                job.status = next_status(job.status, JobAction.RECOVER)
                recovered.append(JobDetails.from_model(job))
            ctx.session.commit()
        return recovered


@lru_cache(maxsize=1)
def get_job_registry() -> JobRegistry:
    """Return the shared job registry."""
    return JobRegistry()
