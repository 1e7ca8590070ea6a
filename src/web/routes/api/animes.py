"""Anime listing and statistics endpoints."""

from fastapi.routing import APIRouter

from src.core.statistics import get_statistics_service
from src.core.store import get_anime_store
from src.models.schemas.anime import AnimeEntry
from src.models.schemas.response import PageQuery, Pagination, Resp
from src.models.schemas.statistics import Summary, YearStatistics

__all__ = ["router"]

router = APIRouter()


@router.post("/page", response_model=Resp[Pagination[AnimeEntry]])
def page(query: PageQuery) -> Resp[Pagination[AnimeEntry]]:
    """Query anime with their mappings, one page at a time.

    Args:
        query (PageQuery): Filters and pagination.

    Returns:
        Resp[Pagination[AnimeEntry]]: The page and the total match count.
    """
    items, total = get_anime_store().get_page(
        status=query.status,
        year=query.year,
        anilist_id=query.anilist_id,
        page=query.page,
        page_size=query.page_size,
    )
    return Resp.ok(
        Pagination[AnimeEntry](
            data=items, total=total, page=query.page, page_size=query.page_size
        )
    )


@router.get("/summary", response_model=Resp[Summary])
def summary() -> Resp[Summary]:
    """Totals of matched, unmatched and dropped mappings per platform."""
    return Resp.ok(get_statistics_service().summary())


@router.get("/year-statistics", response_model=Resp[YearStatistics])
def year_statistics() -> Resp[YearStatistics]:
    """The summary breakdown for every year, newest first."""
    statistics = get_statistics_service().year_statistics()
    return Resp.ok(YearStatistics(statistics=statistics))
