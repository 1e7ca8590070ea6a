"""Summary and per-year mapping statistics, recomputed on every call."""

from collections import defaultdict
from dataclasses import dataclass
from functools import lru_cache
from typing import NamedTuple

from src.config.database import db
from src.models.db.anime import Anime, Mapping
from src.models.enums import Platform, ReviewStatus
from src.models.schemas.statistics import Summary, YearStatistic

__all__ = ["StatisticsService", "get_statistics_service", "mapping_bucket"]

_PLATFORM_PREFIX = {Platform.TMDB: "tmdb", Platform.BGMTV: "bgmtv"}


class _Row(NamedTuple):
    anilist_id: int
    year: int
    platform: Platform | None
    platform_id: str | None
    review_status: ReviewStatus | None


def mapping_bucket(platform_id: str | None, review_status: ReviewStatus) -> str:
    """Classify a mapping as ``matched``, ``unmatched`` or ``dropped``.

    Dropped wins over the id check so the three buckets never overlap.
    """
    if review_status == ReviewStatus.DROPPED:
        return "dropped"
    if platform_id is None:
        return "unmatched"
    return "matched"


@dataclass
class StatisticsService:
    """Aggregates mapping counts straight from the store."""

    def _snapshot(self) -> list[_Row]:
        with db() as ctx:
            rows = (
                ctx.session.query(
                    Anime.anilist_id,
                    Anime.year,
                    Mapping.platform,
                    Mapping.platform_id,
                    Mapping.review_status,
                )
                .outerjoin(Mapping, Mapping.anilist_id == Anime.anilist_id)
                .all()
            )
        return [_Row(*row) for row in rows]

    def summary(self) -> Summary:
        """Total anime count plus matched/unmatched/dropped counts per platform."""
        rows = self._snapshot()
        counts: dict[str, int] = defaultdict(int)
        anime_ids: set[int] = set()
        for row in rows:
            anime_ids.add(row.anilist_id)
            if row.platform is None:
                continue
            bucket = mapping_bucket(row.platform_id, row.review_status)
            counts[f"total_{_PLATFORM_PREFIX[row.platform]}_{bucket}"] += 1
        return Summary(total_animes=len(anime_ids), **counts)

    def year_statistics(self) -> list[YearStatistic]:
        """Same breakdown as :meth:`summary` per year, newest year first."""
        rows = self._snapshot()
        anime_ids: dict[int, set[int]] = defaultdict(set)
        counts: dict[int, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for row in rows:
            anime_ids[row.year].add(row.anilist_id)
            if row.platform is None:
                continue
            bucket = mapping_bucket(row.platform_id, row.review_status)
            counts[row.year][f"{_PLATFORM_PREFIX[row.platform]}_{bucket}"] += 1

        return [
            YearStatistic(
                year=year, total_animes=len(anime_ids[year]), **counts.get(year, {})
            )
            for year in sorted(anime_ids, reverse=True)
        ]


@lru_cache(maxsize=1)
def get_statistics_service() -> StatisticsService:
    """Return the shared statistics service."""
    return StatisticsService()
