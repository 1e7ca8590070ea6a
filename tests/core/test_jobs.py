"""Tests for the job state machine, the job registry and the scheduler."""

import asyncio

import pytest

from src.config.settings import MatchingConfig
from src.core.jobs import (
    TRANSITIONS,
    JobAction,
    get_job_registry,
    is_noop,
    next_status,
)
from src.core.providers.base import MatchCandidate, MatchQuery
from src.core.sched import JobScheduler
from src.exceptions import (
    InvalidJobStateError,
    JobConflictError,
    JobNotFoundError,
    ProviderError,
    ProviderSystemicError,
    ProviderUnavailableError,
)
from src.models.enums import JobStatus, Platform, Provider, ReviewStatus

YEAR = 2024


class FakeProvider:
    """Match provider returning canned results per AniList id."""

    def __init__(self, results: dict | None = None) -> None:
        self.results = results or {}
        self.calls: list[int] = []
        self.closed = 0

    async def propose_match(self, query: MatchQuery) -> MatchCandidate | None:
        self.calls.append(query.anilist_id)
        result = self.results.get(query.anilist_id)
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed += 1


class GatedProvider(FakeProvider):
    """Fake provider whose calls block until ``release`` is set."""

    def __init__(self, results: dict | None = None) -> None:
        super().__init__(results)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def propose_match(self, query: MatchQuery) -> MatchCandidate | None:
        self.started.set()
        await self.release.wait()
        return await super().propose_match(query)


class FlakyProvider(FakeProvider):
    """Fake provider failing the first call for each id listed in ``flaky``."""

    def __init__(self, results: dict | None = None, flaky: tuple = ()) -> None:
        super().__init__(results)
        self.flaky = set(flaky)
        self.failed = asyncio.Event()

    async def propose_match(self, query: MatchQuery) -> MatchCandidate | None:
        if query.anilist_id in self.flaky:
            self.flaky.discard(query.anilist_id)
            self.calls.append(query.anilist_id)
            self.failed.set()
            raise ProviderError("rate limited by upstream")
        return await super().propose_match(query)


def _scheduler(provider: FakeProvider, **matching) -> JobScheduler:
    matching.setdefault("retry_count", 2)
    matching.setdefault("retry_delay", 0)
    matching.setdefault("request_timeout", 5)
    return JobScheduler(
        provider_factory=lambda platform, provider_name, model: provider,
        matching=MatchingConfig(**matching),
    )


@pytest.fixture
def three_animes(make_anime) -> list[int]:
    """Three anime of the test year, all candidates for any platform."""
    for anilist_id in (1, 2, 3):
        make_anime(anilist_id, year=YEAR)
    return [1, 2, 3]


# State machine


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        (JobStatus.CREATED, JobAction.RUN, JobStatus.RUNNING),
        (JobStatus.PAUSED, JobAction.RUN, JobStatus.RUNNING),
        (JobStatus.FAILED, JobAction.RUN, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobAction.PAUSE, JobStatus.PAUSED),
        (JobStatus.PAUSED, JobAction.RESUME, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobAction.COMPLETE, JobStatus.COMPLETED),
        (JobStatus.RUNNING, JobAction.FAIL, JobStatus.FAILED),
        (JobStatus.RUNNING, JobAction.RECOVER, JobStatus.PAUSED),
    ],
)
def test_next_status_allowed(current, action, expected) -> None:
    """Allowed transitions reach the documented status."""
    assert next_status(current, action) == expected


@pytest.mark.parametrize(
    ("current", "action"),
    [
        (JobStatus.COMPLETED, JobAction.RUN),
        (JobStatus.CREATED, JobAction.PAUSE),
        (JobStatus.COMPLETED, JobAction.PAUSE),
        (JobStatus.CREATED, JobAction.RESUME),
        (JobStatus.FAILED, JobAction.RESUME),
        (JobStatus.PAUSED, JobAction.COMPLETE),
        (JobStatus.CREATED, JobAction.FAIL),
    ],
)
def test_next_status_rejected(current, action) -> None:
    """Transitions missing from the table raise InvalidJobStateError."""
    with pytest.raises(InvalidJobStateError):
        next_status(current, action)


def test_repeated_actions_are_noops() -> None:
    """Run/resume on Running and pause on Paused leave the status unchanged."""
    assert is_noop(JobStatus.RUNNING, JobAction.RUN)
    assert is_noop(JobStatus.RUNNING, JobAction.RESUME)
    assert is_noop(JobStatus.PAUSED, JobAction.PAUSE)
    assert not is_noop(JobStatus.CREATED, JobAction.RUN)


def test_completed_is_terminal() -> None:
    """No action leaves the Completed status."""
    assert all(JobStatus.COMPLETED not in table for table in TRANSITIONS.values())


# Registry


def test_registry_create_rejects_duplicates() -> None:
    """A second job for the same key conflicts whatever the first one's status."""
    registry = get_job_registry()
    registry.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "deepseek-chat", [1])
    registry.apply(Platform.TMDB, YEAR, JobAction.RUN)
    registry.apply(Platform.TMDB, YEAR, JobAction.COMPLETE)

    with pytest.raises(JobConflictError):
        registry.create(Platform.TMDB, YEAR, Provider.XAI, "grok", [])


def test_registry_apply_run_sets_start_time_and_clears_error() -> None:
    """Entering Running stamps the start time and forgets the last error."""
    registry = get_job_registry()
    registry.create(Platform.BGMTV, YEAR, Provider.OPENAI, "gpt", [1, 2])
    registry.apply(Platform.BGMTV, YEAR, JobAction.RUN)
    registry.apply(Platform.BGMTV, YEAR, JobAction.FAIL, error="bad key")
    assert registry.get(Platform.BGMTV, YEAR).error == "bad key"

    previous, job = registry.apply(Platform.BGMTV, YEAR, JobAction.RUN)

    assert previous == JobStatus.FAILED
    assert job.status == JobStatus.RUNNING
    assert job.error is None
    assert job.job_start_time is not None
    assert job.job_start_time.tzinfo is not None


def test_registry_record_item_keeps_counters_consistent() -> None:
    """Every recorded item advances the cursor and one of the two counters."""
    registry = get_job_registry()
    registry.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m", [1, 2, 3])

    registry.record_item(Platform.TMDB, YEAR, matched=True)
    job = registry.record_item(Platform.TMDB, YEAR, matched=False)

    assert job.num_processed == 2 == job.num_matched + job.num_failed
    assert job.current_index == 2


def test_registry_unknown_job() -> None:
    """Operations on a missing key raise JobNotFoundError."""
    registry = get_job_registry()
    with pytest.raises(JobNotFoundError):
        registry.get(Platform.TMDB, 1999)
    with pytest.raises(JobNotFoundError):
        registry.apply(Platform.TMDB, 1999, JobAction.RUN)


# Scheduler


@pytest.mark.asyncio
async def test_create_snapshots_candidates(three_animes, store) -> None:
    """A new job freezes the sorted candidate list with zeroed counters."""
    store.upsert_mapping(2, Platform.TMDB, "2", ReviewStatus.ACCEPTED, 100)
    scheduler = _scheduler(FakeProvider())

    job = await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    assert job.status == JobStatus.CREATED
    assert job.num_animes_to_match == 2
    assert job.num_processed == job.num_matched == job.num_failed == 0
    assert get_job_registry().work(Platform.TMDB, YEAR).anilist_ids == [1, 3]

    with pytest.raises(JobConflictError):
        await scheduler.create(Platform.TMDB, YEAR, Provider.XAI, "other")


@pytest.mark.asyncio
async def test_run_processes_every_candidate(three_animes, store) -> None:
    """Two successes and one provider error complete the job as 2/1."""
    provider = FakeProvider(
        {
            1: MatchCandidate(id="101", score=88, season_number=2),
            2: ProviderError("model answered nonsense"),
            3: None,
        }
    )
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "deepseek-chat")

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.num_processed == 3
    assert job.num_matched == 2
    assert job.num_failed == 1
    assert job.current_index == 3

    # The failing anime is retried once before it counts as failed
    assert provider.calls == [1, 2, 2, 3]
    assert provider.closed == 1

    matched = store.get(1).mapping_for(Platform.TMDB)
    assert matched.id == "101"
    assert matched.review_status == ReviewStatus.READY
    assert matched.score == 88
    assert matched.season_number == 2
    assert store.get(2).mapping_for(Platform.TMDB) is None
    no_match = store.get(3).mapping_for(Platform.TMDB)
    assert no_match.id is None
    assert no_match.review_status == ReviewStatus.UNMATCHED


@pytest.mark.asyncio
async def test_bgmtv_matches_drop_season(three_animes, store) -> None:
    """Season numbers are only stored for platforms that have seasons."""
    provider = FakeProvider({1: MatchCandidate(id="7", score=150, season_number=3)})
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.BGMTV, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.BGMTV, YEAR)
    await scheduler.wait(Platform.BGMTV, YEAR)

    mapping = store.get(1).mapping_for(Platform.BGMTV)
    assert mapping.season_number is None
    assert mapping.score == 100


@pytest.mark.asyncio
async def test_run_twice_is_noop(three_animes) -> None:
    """Running a running job does not start a second task."""
    provider = GatedProvider()
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.TMDB, YEAR)
    await provider.started.wait()
    job = await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.resume(Platform.TMDB, YEAR)
    assert job.status == JobStatus.RUNNING

    provider.release.set()
    await scheduler.wait(Platform.TMDB, YEAR)
    assert provider.calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_pause_finishes_in_flight_item_then_resume(three_animes) -> None:
    """Pause keeps the item in flight; resume continues from the cursor."""
    provider = GatedProvider({1: MatchCandidate(id="1", score=90)})
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")
    await scheduler.run(Platform.TMDB, YEAR)
    await provider.started.wait()

    paused = await scheduler.pause(Platform.TMDB, YEAR)
    assert paused.status == JobStatus.PAUSED
    provider.release.set()
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.PAUSED
    assert job.current_index == 1
    assert job.num_processed == 1

    again = await scheduler.pause(Platform.TMDB, YEAR)
    assert again.status == JobStatus.PAUSED

    await scheduler.resume(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.num_processed == 3
    assert provider.calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_lifecycle_rejections(three_animes) -> None:
    """Invalid lifecycle requests raise without changing the job."""
    scheduler = _scheduler(FakeProvider())
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    with pytest.raises(InvalidJobStateError):
        await scheduler.pause(Platform.TMDB, YEAR)
    with pytest.raises(InvalidJobStateError):
        await scheduler.resume(Platform.TMDB, YEAR)

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    with pytest.raises(InvalidJobStateError):
        await scheduler.run(Platform.TMDB, YEAR)
    with pytest.raises(JobNotFoundError):
        await scheduler.run(Platform.BGMTV, YEAR)


@pytest.mark.asyncio
async def test_systemic_error_fails_job_and_run_resumes(three_animes) -> None:
    """A systemic error stops the job as Failed; run continues at the cursor."""
    provider = FakeProvider(
        {
            1: MatchCandidate(id="1", score=90),
            2: ProviderSystemicError("invalid api key"),
        }
    )
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.FAILED
    assert job.error == "invalid api key"
    assert job.current_index == 1
    assert provider.calls == [1, 2]

    provider.results[2] = None
    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.error is None
    assert job.num_processed == 3 == job.num_matched


@pytest.mark.asyncio
async def test_unavailable_provider_fails_after_retries(three_animes) -> None:
    """An unreachable provider is retried, then treated as systemic."""
    provider = FakeProvider({1: ProviderUnavailableError("connection refused")})
    scheduler = _scheduler(provider, retry_count=3)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.FAILED
    assert provider.calls == [1, 1, 1]
    assert job.num_processed == 0


@pytest.mark.asyncio
async def test_provider_timeout_counts_as_failed_item(make_anime) -> None:
    """A call exceeding the request timeout is a per-item failure."""
    make_anime(1, year=YEAR)

    class SlowProvider(FakeProvider):
        async def propose_match(self, query):
            self.calls.append(query.anilist_id)
            await asyncio.sleep(5)

    provider = SlowProvider()
    scheduler = _scheduler(provider, retry_count=1, request_timeout=0.05)
    await scheduler.create(Platform.BGMTV, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.BGMTV, YEAR)
    await scheduler.wait(Platform.BGMTV, YEAR)

    job = get_job_registry().get(Platform.BGMTV, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.num_failed == 1


@pytest.mark.asyncio
async def test_pause_during_retry_wait_keeps_item_at_cursor(three_animes) -> None:
    """An item waiting to be retried when paused is not counted as failed."""
    provider = FlakyProvider(
        {i: MatchCandidate(id=str(i), score=80) for i in three_animes},
        flaky=(1,),
    )
    scheduler = _scheduler(provider, retry_delay=5)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")
    await scheduler.run(Platform.TMDB, YEAR)
    await provider.failed.wait()

    await scheduler.pause(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.PAUSED
    assert job.current_index == 0
    assert job.num_processed == job.num_failed == 0

    await scheduler.resume(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.num_matched == 3
    assert job.num_failed == 0
    assert provider.calls == [1, 1, 2, 3]


@pytest.mark.asyncio
async def test_unexpected_provider_exception_fails_only_the_item(
    three_animes, store
) -> None:
    """A stray exception from a provider is a per-item failure, not a job failure."""
    provider = FakeProvider(
        {
            1: KeyError("id"),
            2: MatchCandidate(id="202", score=75),
            3: None,
        }
    )
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.wait(Platform.TMDB, YEAR)

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.COMPLETED
    assert job.error is None
    assert job.num_processed == 3
    assert job.num_failed == 1
    assert job.num_matched == 2
    assert provider.calls == [1, 1, 2, 3]
    assert store.get(2).mapping_for(Platform.TMDB).id == "202"


@pytest.mark.asyncio
async def test_jobs_for_two_platforms_run_in_parallel(three_animes, store) -> None:
    """Concurrent jobs on the same year each keep their own mappings."""

    class YieldingProvider(FakeProvider):
        async def propose_match(self, query):
            await asyncio.sleep(0)
            return await super().propose_match(query)

    provider = YieldingProvider(
        {i: MatchCandidate(id=f"{i}0", score=70) for i in three_animes}
    )
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")
    await scheduler.create(Platform.BGMTV, YEAR, Provider.DEEPSEEK, "m")

    await scheduler.run(Platform.TMDB, YEAR)
    await scheduler.run(Platform.BGMTV, YEAR)
    await asyncio.gather(
        scheduler.wait(Platform.TMDB, YEAR), scheduler.wait(Platform.BGMTV, YEAR)
    )

    registry = get_job_registry()
    for platform in (Platform.TMDB, Platform.BGMTV):
        job = registry.get(platform, YEAR)
        assert job.status == JobStatus.COMPLETED
        assert job.num_matched == 3
    for anilist_id in three_animes:
        entry = store.get(anilist_id)
        assert entry.mapping_for(Platform.TMDB).id == f"{anilist_id}0"
        assert entry.mapping_for(Platform.BGMTV).id == f"{anilist_id}0"
    assert provider.closed == 2


@pytest.mark.asyncio
async def test_remove_running_job_waits_for_task(three_animes, store) -> None:
    """Removing a running job stops it first and keeps written mappings."""
    provider = GatedProvider({1: MatchCandidate(id="5", score=60)})
    scheduler = _scheduler(provider)
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")
    await scheduler.run(Platform.TMDB, YEAR)
    await provider.started.wait()

    removal = asyncio.create_task(scheduler.remove(Platform.TMDB, YEAR))
    await asyncio.sleep(0)
    provider.release.set()
    await removal

    with pytest.raises(JobNotFoundError):
        get_job_registry().get(Platform.TMDB, YEAR)
    assert store.get(1).mapping_for(Platform.TMDB).id == "5"
    assert provider.calls == [1]
    assert scheduler.list_jobs() == []


@pytest.mark.asyncio
async def test_remove_unknown_job() -> None:
    """Removing a missing job raises JobNotFoundError."""
    with pytest.raises(JobNotFoundError):
        await _scheduler(FakeProvider()).remove(Platform.TMDB, YEAR)


@pytest.mark.asyncio
async def test_initialize_recovers_running_jobs() -> None:
    """Jobs left Running by a previous process are paused at startup."""
    registry = get_job_registry()
    registry.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m", [1])
    registry.apply(Platform.TMDB, YEAR, JobAction.RUN)

    await _scheduler(FakeProvider()).initialize()

    assert registry.get(Platform.TMDB, YEAR).status == JobStatus.PAUSED


@pytest.mark.asyncio
async def test_stop_pauses_running_jobs(three_animes) -> None:
    """Stopping the scheduler pauses running jobs after their current item."""
    provider = GatedProvider()
    scheduler = _scheduler(provider)
    await scheduler.start()
    await scheduler.create(Platform.TMDB, YEAR, Provider.DEEPSEEK, "m")
    await scheduler.run(Platform.TMDB, YEAR)
    await provider.started.wait()

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0)
    provider.release.set()
    await stopping

    job = get_job_registry().get(Platform.TMDB, YEAR)
    assert job.status == JobStatus.PAUSED
    assert job.num_processed == 1
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_list_jobs_orders_by_platform_and_year() -> None:
    """Jobs are listed by platform then year."""
    scheduler = _scheduler(FakeProvider())
    await scheduler.create(Platform.TMDB, 2024, Provider.DEEPSEEK, "m")
    await scheduler.create(Platform.TMDB, 2023, Provider.DEEPSEEK, "m")
    await scheduler.create(Platform.BGMTV, 2024, Provider.DEEPSEEK, "m")

    keys = [job.key for job in scheduler.list_jobs()]

    assert keys == [
        (Platform.BGMTV, 2024),
        (Platform.TMDB, 2023),
        (Platform.TMDB, 2024),
    ]
