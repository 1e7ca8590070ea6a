"""Scheduler Module."""

import asyncio
import contextlib
from collections import defaultdict
from collections.abc import Callable

from src import log
from src.config.settings import MatchingConfig, get_config
from src.core.jobs import JobAction, JobRegistry, get_job_registry
from src.core.providers import (
    MatchCandidate,
    MatchProvider,
    MatchQuery,
    create_match_provider,
)
from src.core.store import AnimeStore, get_anime_store
from src.exceptions import (
    AnimeNotFoundError,
    InvalidJobStateError,
    InvalidMappingError,
    JobNotFoundError,
    ProviderError,
    ProviderSystemicError,
)
from src.models.enums import JobStatus, Platform, Provider, ReviewStatus
from src.models.schemas.job import JobDetails

__all__ = ["JobScheduler"]

JobKey = tuple[Platform, int]
ProviderFactory = Callable[[Platform, Provider, str], MatchProvider]


class _Interrupted(Exception):
    """The job was stopped before the item in flight got a result."""


class JobScheduler:
    """Runs matching jobs as background tasks, one task per (platform, year).

    Lifecycle operations on the same key are serialized with an asyncio lock.
    The running task itself never takes that lock; it is stopped through a
    per-key event that is checked between items, so the item in flight is
    always committed before the task exits. A stop that arrives while an item
    waits to be retried leaves that item at the cursor instead.
    """

    def __init__(
        self,
        registry: JobRegistry | None = None,
        store: AnimeStore | None = None,
        provider_factory: ProviderFactory | None = None,
        matching: MatchingConfig | None = None,
    ):
        """Initialize the scheduler.

        Args:
            registry (JobRegistry | None): Job persistence; the shared one by default.
            store (AnimeStore | None): Anime store; the shared one by default.
            provider_factory (ProviderFactory | None): Builds the provider of a job.
            matching (MatchingConfig | None): Retry and timeout settings.
        """
        self.registry = registry or get_job_registry()
        self.store = store or get_anime_store()
        self.provider_factory = provider_factory or create_match_provider
        self.matching = matching or get_config().matching

        self.stop_event = asyncio.Event()
        self._running = False
        self._locks: defaultdict[JobKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: dict[JobKey, asyncio.Task] = {}
        self._stop_events: dict[JobKey, asyncio.Event] = {}

    @property
    def is_running(self) -> bool:
        """Return whether the scheduler has been started and not stopped."""
        return self._running

    async def initialize(self) -> None:
        """Recover jobs interrupted by a previous shutdown."""
        log.info("Initializing job scheduler")
        for job in self.registry.recover():
            log.warning(
                f"[{job.platform}/{job.year}] Job was running at shutdown, "
                f"paused at index {job.current_index}"
            )

    async def start(self) -> None:
        """Start accepting job operations."""
        if self._running:
            return
        self._running = True
        self.stop_event.clear()
        log.info("Job scheduler started")

    def request_shutdown(self) -> None:
        """Request application shutdown from external callers."""
        if not self.stop_event.is_set():
            self.stop_event.set()

    async def wait_for_completion(self) -> None:
        """Wait until a shutdown is requested."""
        if not self._running:
            return

        try:
            await self.stop_event.wait()
        except asyncio.CancelledError:
            log.info("Job scheduler wait interrupted")
            raise

    async def stop(self) -> None:
        """Pause every running job and wait for its task to exit."""
        if not self._running:
            return

        self._running = False
        self.stop_event.set()
        log.info("Stopping job scheduler")

        for platform, year in list(self._tasks):
            with contextlib.suppress(InvalidJobStateError, JobNotFoundError):
                self.registry.apply(platform, year, JobAction.PAUSE)
            self._signal_stop((platform, year))

        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        self._stop_events.clear()

        log.info("Job scheduler stopped")

    def list_jobs(self) -> list[JobDetails]:
        """Return a snapshot of every job."""
        return self.registry.list_jobs()

    async def create(
        self, platform: Platform, year: int, provider: Provider, model: str
    ) -> JobDetails:
        """Create a job over the current candidates of (platform, year).

        Raises:
            JobConflictError: If a job already exists for the key.
        """
        async with self._locks[(platform, year)]:
            anilist_ids = self.store.candidate_ids(platform, year)
            job = self.registry.create(platform, year, provider, model, anilist_ids)
            log.info(
                f"[{platform}/{year}] Created job with {len(anilist_ids)} anime "
                f"$${{provider: {provider}, model: {model}}}$$"
            )
            return job

    async def run(self, platform: Platform, year: int) -> JobDetails:
        """Start or restart a job from its cursor.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is Completed.
        """
        return await self._start(platform, year, JobAction.RUN)

    async def resume(self, platform: Platform, year: int) -> JobDetails:
        """Resume a paused job.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not Paused or Running.
        """
        return await self._start(platform, year, JobAction.RESUME)

    async def pause(self, platform: Platform, year: int) -> JobDetails:
        """Pause a running job; its task exits after the item in flight.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not Running or Paused.
        """
        key = (platform, year)
        async with self._locks[key]:
            previous, job = self.registry.apply(platform, year, JobAction.PAUSE)
            self._signal_stop(key)
            if previous != job.status:
                log.info(f"[{platform}/{year}] Job paused at {job.current_index}")
            return job

    async def remove(self, platform: Platform, year: int) -> None:
        """Stop a job's task if any, then delete the job.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        key = (platform, year)
        async with self._locks[key]:
            self.registry.get(platform, year)
            self._signal_stop(key)
            await self._join(key)
            self.registry.delete(platform, year)
            log.info(f"[{platform}/{year}] Job removed")

    async def wait(self, platform: Platform, year: int) -> None:
        """Wait for the background task of a job to exit, if one exists."""
        task = self._tasks.get((platform, year))
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _start(
        self, platform: Platform, year: int, action: JobAction
    ) -> JobDetails:
        key = (platform, year)
        async with self._locks[key]:
            current = self.registry.get(platform, year)
            if current.status == JobStatus.RUNNING and self._is_alive(key):
                return current

            # A task still draining after a pause must exit before a new one
            await self._join(key)
            _, job = self.registry.apply(platform, year, action)

            stop = self._stop_events[key] = asyncio.Event()
            self._tasks[key] = asyncio.create_task(
                self._execute(platform, year, stop),
                name=f"job-{platform}-{year}",
            )
            log.info(
                f"[{platform}/{year}] Job running from index "
                f"{job.current_index}/{job.num_animes_to_match}"
            )
            return job

    def _is_alive(self, key: JobKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def _signal_stop(self, key: JobKey) -> None:
        stop = self._stop_events.get(key)
        if stop is not None:
            stop.set()

    async def _join(self, key: JobKey) -> None:
        task = self._tasks.pop(key, None)
        self._stop_events.pop(key, None)
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _propose(
        self, provider: MatchProvider, query: MatchQuery, stop: asyncio.Event
    ) -> MatchCandidate | None:
        """Ask the provider for one anime within the retry budget.

        Any other exception raised by the provider counts as a failed attempt.

        Raises:
            ProviderSystemicError: If the provider cannot be used at all, or
                stayed unavailable for every attempt.
            ProviderError: If every attempt failed for this anime.
            _Interrupted: If the job was stopped while waiting to retry.
        """
        attempts = max(1, self.matching.retry_count)
        last_error: ProviderError | None = None

        for attempt in range(1, attempts + 1):
            try:
                async with asyncio.timeout(self.matching.request_timeout):
                    return await provider.propose_match(query)
            except ProviderSystemicError as e:
                if not e.retryable or attempt == attempts:
                    raise
                last_error = e
            except TimeoutError:
                last_error = ProviderError(
                    f"Match timed out after {self.matching.request_timeout}s"
                )
            except ProviderError as e:
                last_error = e
            except Exception as e:
                log.debug(
                    f"Provider raised {e.__class__.__name__} for anime "
                    f"$${{anilist_id: {query.anilist_id}}}$$",
                    exc_info=True,
                )
                last_error = ProviderError(
                    f"Unexpected provider error: {e.__class__.__name__}: {e}"
                )

            if attempt < attempts:
                log.warning(
                    f"Attempt {attempt}/{attempts} for anime "
                    f"$${{anilist_id: {query.anilist_id}}}$$ failed: {last_error}"
                )
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), self.matching.retry_delay)
                if stop.is_set():
                    raise _Interrupted

        raise last_error or ProviderError("No attempt was made")

    def _record(
        self,
        platform: Platform,
        year: int,
        anilist_id: int,
        candidate: MatchCandidate | None,
    ) -> None:
        """Commit a proposal and the job progress in one transaction."""
        if candidate is None:
            platform_id, status, score, season = None, ReviewStatus.UNMATCHED, 0, None
        else:
            platform_id = candidate.id
            status = ReviewStatus.READY
            score = min(max(candidate.score, 0.0), 100.0)
            season = candidate.season_number if platform.has_seasons else None

        with self.store.lock(anilist_id):
            self.registry.record_item(
                platform,
                year,
                matched=True,
                stage=lambda session: self.store.stage_mapping(
                    session,
                    anilist_id,
                    platform,
                    platform_id,
                    status,
                    score,
                    season_number=season,
                ),
            )

    def _fail(self, platform: Platform, year: int, error: str) -> None:
        try:
            self.registry.apply(platform, year, JobAction.FAIL, error=error)
        except (InvalidJobStateError, JobNotFoundError):
            log.debug(f"[{platform}/{year}] Job no longer running, failure dropped")
        else:
            log.error(f"[{platform}/{year}] Job failed: {error}")

    async def _execute(
        self, platform: Platform, year: int, stop: asyncio.Event
    ) -> None:
        """Process the candidates of a job from its cursor until done or stopped."""
        provider: MatchProvider | None = None
        try:
            work = self.registry.work(platform, year)
            provider = self.provider_factory(platform, work.provider, work.model)

            for anilist_id in work.anilist_ids[work.current_index :]:
                if stop.is_set():
                    return

                try:
                    entry = self.store.get(anilist_id)
                    query = MatchQuery.from_entry(entry, platform)
                    candidate = await self._propose(provider, query, stop)
                    self._record(platform, year, anilist_id, candidate)
                except _Interrupted:
                    log.info(
                        f"[{platform}/{year}] Stopped while retrying anime "
                        f"$${{anilist_id: {anilist_id}}}$$, it will be retried "
                        "on resume"
                    )
                    return
                except ProviderSystemicError:
                    raise
                except (AnimeNotFoundError, InvalidMappingError, ProviderError) as e:
                    log.warning(
                        f"[{platform}/{year}] Failed to match anime "
                        f"$${{anilist_id: {anilist_id}}}$$: {e}"
                    )
                    self.registry.record_item(platform, year, matched=False)

            if not stop.is_set():
                _, job = self.registry.apply(platform, year, JobAction.COMPLETE)
                log.success(
                    f"[{platform}/{year}] Job completed "
                    f"$${{matched: {job.num_matched}, failed: {job.num_failed}}}$$"
                )
        except ProviderSystemicError as e:
            self._fail(platform, year, str(e))
        except (InvalidJobStateError, JobNotFoundError):
            log.debug(f"[{platform}/{year}] Job changed state while running")
        except Exception as e:
            log.error(f"[{platform}/{year}] Job error", exc_info=True)
            self._fail(platform, year, f"Unexpected error: {e}")
        finally:
            if provider is not None:
                await provider.close()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
