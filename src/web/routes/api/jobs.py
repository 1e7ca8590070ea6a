"""Matching job endpoints."""

from fastapi.routing import APIRouter

from src.models.enums import Platform, Provider
from src.models.schemas.job import JobDetails
from src.models.schemas.response import Resp
from src.web.state import get_app_state

__all__ = ["router"]

router = APIRouter()


@router.get("/list", response_model=Resp[list[JobDetails]])
async def list_jobs() -> Resp[list[JobDetails]]:
    """Snapshot of every job with its counters."""
    return Resp.ok(get_app_state().require_scheduler().list_jobs())


@router.get(
    "/{platform}/create/{year}/{provider}/{model:path}", response_model=Resp[None]
)
async def create_job(
    platform: Platform, year: int, provider: Provider, model: str
) -> Resp[None]:
    """Create a job matching the unmatched anime of a year.

    Args:
        platform (Platform): Platform to find ids on.
        year (int): Year of the anime to match.
        provider (Provider): LLM provider the job uses.
        model (str): Model name, which may contain slashes.

    Returns:
        Resp[None]: An empty success envelope.
    """
    scheduler = get_app_state().require_scheduler()
    await scheduler.create(platform, year, provider, model)
    return Resp.ok()


@router.get("/{platform}/run/{year}", response_model=Resp[None])
async def run_job(platform: Platform, year: int) -> Resp[None]:
    """Start a job, or restart a paused or failed one from its cursor."""
    await get_app_state().require_scheduler().run(platform, year)
    return Resp.ok()


@router.get("/{platform}/pause/{year}", response_model=Resp[None])
async def pause_job(platform: Platform, year: int) -> Resp[None]:
    """Pause a running job after its current item."""
    await get_app_state().require_scheduler().pause(platform, year)
    return Resp.ok()


@router.get("/{platform}/resume/{year}", response_model=Resp[None])
async def resume_job(platform: Platform, year: int) -> Resp[None]:
    """Resume a paused job."""
    await get_app_state().require_scheduler().resume(platform, year)
    return Resp.ok()


@router.get("/{platform}/remove/{year}", response_model=Resp[None])
async def remove_job(platform: Platform, year: int) -> Resp[None]:
    """Stop and delete a job; the mappings it wrote are kept."""
    await get_app_state().require_scheduler().remove(platform, year)
    return Resp.ok()
