"""AniList Client and catalog import.

Anime records enter the store from two sources: per-year dumps of the AniList
catalog, and community seed lists that may already carry BgmTV and TMDB ids.
"""

import contextlib
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from limiter import Limiter
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src import log
from src.config.database import db
from src.config.settings import AniListConfig, get_config
from src.core.bulk import read_json_file, write_json_atomic
from src.core.providers.catalog import CatalogClient
from src.core.store import AnimeStore, get_anime_store
from src.exceptions import (
    BulkDataParseError,
    ExportFileNotFoundError,
    InvalidMappingError,
    ProviderError,
)
from src.models.db.anime import Mapping
from src.models.enums import ReviewStatus
from src.models.schemas.anilist import Media, MediaFormat, PageInfo, SeedAnime
from src.models.schemas.response import BulkResult, SeedImportResult

__all__ = [
    "AniListClient",
    "CatalogImportService",
    "get_catalog_import_service",
]

# AniList advertises 90 requests per minute but throttles at about 30
anilist_limiter = Limiter(rate=30 / 60, capacity=3, jitter=False)

IMPORTED_FORMATS = (
    MediaFormat.TV,
    MediaFormat.TV_SHORT,
    MediaFormat.MOVIE,
    MediaFormat.SPECIAL,
    MediaFormat.OVA,
)

YEAR_QUERY = """
query ($page: Int, $perPage: Int, $year: String, $formats: [MediaFormat]) {
    Page(page: $page, perPage: $perPage) {
        pageInfo { total currentPage hasNextPage }
        media(type: ANIME, format_in: $formats, startDate_like: $year, sort: ID) {
            id
            format
            season
            seasonYear
            episodes
            synonyms
            title { romaji english native }
            startDate { year month day }
        }
    }
}
"""

_media_adapter = TypeAdapter(list[Media])
_seed_adapter = TypeAdapter(list[SeedAnime])


class AniListClient(CatalogClient):
    """Client for the AniList GraphQL API, limited to anonymous catalog reads."""

    NAME = "AniList"

    def __init__(self, config: AniListConfig) -> None:
        """Initialize the client from the ``anilist`` config section."""
        super().__init__(
            config.base_url, headers={"Content-Type": "application/json"}
        )
        self.per_page = config.per_page

    @anilist_limiter()
    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises:
            ProviderError: If the API reports errors without data.
        """
        response = await self._request(
            "POST", "", json={"query": query, "variables": variables}
        )
        if not isinstance(response, dict):
            raise ProviderError(f"{self.NAME} returned an unexpected payload")
        data = response.get("data", {}) or {}
        if not isinstance(data, dict):
            raise ProviderError(f"{self.NAME} returned a malformed data object")
        if not data and response.get("errors"):
            messages = "; ".join(
                str(error.get("message"))
                for error in self._items(response, "errors")
            )
            raise ProviderError(f"{self.NAME} query failed: {messages}")
        return data

    async def fetch_year(self, year: int) -> list[Media]:
        """Fetch every anime that started in ``year``, following pagination.

        Raises:
            ProviderError: If a page cannot be fetched or parsed.
        """
        media: list[Media] = []
        page = 1
        while True:
            data = await self._query(
                YEAR_QUERY,
                {
                    "page": page,
                    "perPage": self.per_page,
                    "year": f"{year}%",
                    "formats": [str(f) for f in IMPORTED_FORMATS],
                },
            )
            page_data = data.get("Page") or {}
            items = self._items(page_data, "media")
            try:
                media.extend(_media_adapter.validate_python(items))
                page_info = PageInfo.model_validate(page_data.get("pageInfo") or {})
            except PydanticValidationError as e:
                raise ProviderError(
                    f"{self.NAME} returned malformed media on page {page}: {e}"
                ) from e

            log.debug(
                f"Fetched AniList page {page} for {year} "
                f"$${{media: {len(media)}, total: {page_info.total}}}$$"
            )
            if not page_info.has_next_page:
                return media
            page += 1


@dataclass
class CatalogImportService:
    """Seeds the store from AniList dumps and community seed lists."""

    anilist_path: Path = field(default_factory=lambda: get_config().anilist_path)
    seed_path: Path = field(default_factory=lambda: get_config().seed_path)
    store: AnimeStore = field(default_factory=get_anime_store)
    client: AniListClient = field(
        default_factory=lambda: AniListClient(get_config().anilist)
    )

    def dump_file(self, year: int) -> Path:
        """Path of the AniList dump of one year."""
        return self.anilist_path / f"{year}.json"

    async def dump_year(self, year: int) -> BulkResult:
        """Fetch the AniList catalog of ``year`` into ``anilist/<year>.json``.

        Raises:
            ProviderError: If AniList cannot be queried.
            StorageError: If the dump cannot be written.
        """
        media = sorted(await self.client.fetch_year(year), key=lambda m: m.id)
        path = self.dump_file(year)
        write_json_atomic(
            path, [m.model_dump(mode="json", by_alias=True) for m in media]
        )
        log.info(f"Dumped {len(media)} AniList anime of {year} to $$'{path}'$$")
        return BulkResult(year=year, count=len(media))

    def import_year(self, year: int) -> BulkResult:
        """Upsert the anime of ``anilist/<year>.json``, keeping their mappings.

        Raises:
            ExportFileNotFoundError: If the year was never dumped.
            BulkDataParseError: If the dump is not valid.
        """
        media = read_json_file(self.dump_file(year), _media_adapter, "AniList dump")
        entries = [m.to_entry(year) for m in media]

        with contextlib.ExitStack() as stack:
            for anime_lock in self.store.locks(e.anilist_id for e in entries):
                stack.enter_context(anime_lock)
            with db() as ctx:
                for entry in entries:
                    self.store.stage_anime(ctx.session, entry)
                ctx.session.commit()

        log.info(f"Imported {len(entries)} AniList anime of {year}")
        return BulkResult(year=year, count=len(entries))

    async def sync_year(self, year: int, fetch: bool = True) -> BulkResult:
        """Import a year from AniList, refreshing its dump first when ``fetch``."""
        if fetch:
            await self.dump_year(year)
        return self.import_year(year)

    def import_seed(self) -> SeedImportResult:
        """Import every ``seed/*.json`` list in one transaction.

        Anime metadata is overwritten. A seeded platform id only fills a
        mapping that is missing or still UnMatched, so reviewed mappings are
        never replaced.

        Raises:
            ExportFileNotFoundError: If the seed directory does not exist.
            BulkDataParseError: If a seed file is not valid.
        """
        if not self.seed_path.is_dir():
            raise ExportFileNotFoundError(
                f"Seed directory '{self.seed_path.name}' not found"
            )
        files = sorted(self.seed_path.glob("*.json"))
        seeds = [
            seed
            for path in files
            for seed in read_json_file(path, _seed_adapter, "Seed file")
        ]

        written = 0
        with contextlib.ExitStack() as stack:
            for anime_lock in self.store.locks(s.anilist_id for s in seeds):
                stack.enter_context(anime_lock)
            with db() as ctx:
                try:
                    for seed in seeds:
                        self.store.stage_anime(ctx.session, seed.to_entry())
                        ctx.session.flush()
                        for proposed in seed.proposed_mappings():
                            current = ctx.session.get(
                                Mapping, (seed.anilist_id, proposed.platform)
                            )
                            if current is not None and (
                                current.review_status != ReviewStatus.UNMATCHED
                                or proposed.id is None
                            ):
                                continue
                            self.store.stage_mapping(
                                ctx.session,
                                seed.anilist_id,
                                proposed.platform,
                                proposed.id,
                                proposed.review_status,
                                proposed.score,
                                season_number=proposed.season_number,
                            )
                            if proposed.id is not None:
                                written += 1
                except InvalidMappingError as e:
                    ctx.session.rollback()
                    raise BulkDataParseError(f"Invalid seed mapping: {e}") from e
                ctx.session.commit()

        log.info(
            f"Imported {len(seeds)} seed anime from {len(files)} file(s) "
            f"$${{mappings: {written}}}$$"
        )
        return SeedImportResult(files=len(files), animes=len(seeds), mappings=written)

    async def close(self) -> None:
        """Close the AniList client session."""
        await self.client.close()


@lru_cache(maxsize=1)
def get_catalog_import_service() -> CatalogImportService:
    """Return the shared catalog import service."""
    return CatalogImportService()
