"""Review endpoints for the mappings of one anime."""

from fastapi.routing import APIRouter

from src.core.review import get_review_service
from src.models.enums import Platform
from src.models.schemas.response import ManualMappingRequest, Resp

__all__ = ["router"]

router = APIRouter()


@router.get("/{anilist_id}/review/{platform}/{status}", response_model=Resp[None])
def review(anilist_id: int, platform: Platform, status: str) -> Resp[None]:
    """Accept, reject or drop the mapping of an anime on one platform.

    Args:
        anilist_id (int): AniList id of the anime.
        platform (Platform): Platform of the reviewed mapping.
        status (str): One of Accepted, Rejected or Dropped.

    Returns:
        Resp[None]: An empty success envelope.
    """
    get_review_service().review(anilist_id, platform, status)
    return Resp.ok()


@router.post("/mapping/manual", response_model=Resp[None])
def manual_mapping(body: ManualMappingRequest) -> Resp[None]:
    """Set a mapping by hand; it is stored as Accepted with full score."""
    get_review_service().manual_mapping(
        body.anilist_id,
        body.platform,
        body.platform_id,
        season_number=body.season_number,
    )
    return Resp.ok()
