"""Export, import and compaction endpoints."""

from fastapi.routing import APIRouter

from src.core.anilist import get_catalog_import_service
from src.core.bulk import get_bulk_data_service
from src.models.schemas.response import (
    BulkResult,
    CompactResult,
    Resp,
    SeedImportResult,
)

__all__ = ["router"]

router = APIRouter()


@router.get("/export/animes/{year}", response_model=Resp[BulkResult])
def export_animes(year: int) -> Resp[BulkResult]:
    """Write the anime of a year to ``<year>.json`` in the export directory."""
    return Resp.ok(get_bulk_data_service().export_year(year))


@router.get("/import/animes/{year}", response_model=Resp[BulkResult])
def import_animes(year: int) -> Resp[BulkResult]:
    """Load ``<year>.json`` from the export directory into the store."""
    return Resp.ok(get_bulk_data_service().import_year(year))


@router.get("/import/anilist/{year}", response_model=Resp[BulkResult])
async def import_anilist(year: int, fetch: bool = True) -> Resp[BulkResult]:
    """Dump a year of the AniList catalog and upsert its anime.

    With ``fetch=false`` the existing dump is imported without querying AniList.
    """
    return Resp.ok(await get_catalog_import_service().sync_year(year, fetch=fetch))


@router.get("/import/seed/dir", response_model=Resp[SeedImportResult])
def import_seed() -> Resp[SeedImportResult]:
    """Load every seed list of the seed directory into the store."""
    return Resp.ok(get_catalog_import_service().import_seed())


@router.get("/compact/animes/dir", response_model=Resp[CompactResult])
def compact_animes() -> Resp[CompactResult]:
    """Clean the store and merge all year exports into ``dist.json``."""
    return Resp.ok(get_bulk_data_service().compact())
