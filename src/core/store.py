"""Anime/Mapping store backed by the SQLite database."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from src import log
from src.config.database import db
from src.exceptions import AnimeNotFoundError, InvalidMappingError, ValidationError
from src.models.db.anime import Anime, Mapping
from src.models.enums import MediaType, Platform, ReviewStatus
from src.models.schemas.anime import AnimeEntry, MappingEntry

__all__ = ["AnimeStore", "get_anime_store", "validate_mapping"]

# Number of locks the per-anime write locks are striped over
LOCK_STRIPES = 64

# Review statuses a mapping without an external id may carry
NULL_ID_STATUSES = frozenset({ReviewStatus.UNMATCHED, ReviewStatus.DROPPED})


def normalize_platform_id(platform_id: str | int | None) -> str | None:
    """Coerce an external id to its stored string form; blank ids become None."""
    if platform_id is None:
        return None
    value = str(platform_id).strip()
    return value or None


def validate_mapping(
    platform: Platform,
    platform_id: str | None,
    review_status: ReviewStatus,
    score: float,
    season_number: int | None = None,
) -> None:
    """Check a mapping write against the store invariants.

    Raises:
        InvalidMappingError: If the combination of values is not allowed.
    """
    if review_status == ReviewStatus.UNMATCHED and platform_id is not None:
        raise InvalidMappingError(
            f"An {ReviewStatus.UNMATCHED} mapping cannot carry an id "
            f"(got '{platform_id}')"
        )
    if platform_id is None and review_status not in NULL_ID_STATUSES:
        raise InvalidMappingError(
            f"A mapping with status {review_status} requires an id"
        )
    if season_number is not None and not platform.has_seasons:
        raise InvalidMappingError(f"{platform} mappings do not have seasons")
    if not 0 <= score <= 100:
        raise InvalidMappingError(f"Score must be between 0 and 100, got {score}")


@dataclass
class AnimeStore:
    """Reads and writes anime records and their per-platform mappings.

    Every write for an anime happens inside one transaction while holding
    that anime's lock, and only touches the addressed platform's row. Locks
    are striped by AniList id, so unrelated anime may share one.
    """

    _stripes: tuple[threading.RLock, ...] = field(
        default_factory=lambda: tuple(threading.RLock() for _ in range(LOCK_STRIPES)),
        repr=False,
    )

    def lock(self, anilist_id: int) -> threading.RLock:
        """Return the lock serializing writes to one anime."""
        return self._stripes[anilist_id % len(self._stripes)]

    def locks(self, anilist_ids: Iterable[int]) -> list[threading.RLock]:
        """Return the distinct locks of several anime in acquisition order."""
        stripes = len(self._stripes)
        indexes = sorted({anilist_id % stripes for anilist_id in anilist_ids})
        return [self._stripes[index] for index in indexes]

    def get(self, anilist_id: int) -> AnimeEntry:
        """Return an anime with all of its mappings.

        Raises:
            AnimeNotFoundError: If no anime has this id.
        """
        with db() as ctx:
            anime = ctx.session.get(Anime, anilist_id)
            if anime is None:
                raise AnimeNotFoundError(f"Anime {anilist_id} not found")
            return AnimeEntry.from_model(anime)

    def get_page(
        self,
        *,
        status: ReviewStatus | None = None,
        year: int | None = None,
        anilist_id: int | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[AnimeEntry], int]:
        """Query anime ordered by AniList id, one page at a time.

        An anime matches ``status`` when any of its mappings has that status.

        Args:
            status (ReviewStatus | None): Review status filter.
            year (int | None): Exact year filter.
            anilist_id (int | None): Exact id filter.
            page (int): 1-indexed page number.
            page_size (int): Maximum number of items per page.

        Returns:
            tuple[list[AnimeEntry], int]: The page items and the total match count.

        Raises:
            ValidationError: If page or page_size is smaller than 1.
        """
        if page < 1 or page_size < 1:
            raise ValidationError(
                f"Invalid pagination (page={page}, page_size={page_size})"
            )

        with db() as ctx:
            query = ctx.session.query(Anime)
            if year is not None:
                query = query.filter(Anime.year == year)
            if anilist_id is not None:
                query = query.filter(Anime.anilist_id == anilist_id)
            if status is not None:
                query = query.filter(
                    Anime.mappings.any(Mapping.review_status == status)
                )

            total = query.count()
            rows = (
                query.order_by(Anime.anilist_id)
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return [AnimeEntry.from_model(row) for row in rows], total

    def candidate_ids(self, platform: Platform, year: int) -> list[int]:
        """AniList ids of the anime a matching job for (platform, year) covers.

        An anime is a candidate when it has no mapping for the platform yet or
        its mapping is still unmatched.
        """
        with db() as ctx:
            rows = (
                ctx.session.query(Anime.anilist_id)
                .outerjoin(
                    Mapping,
                    and_(
                        Mapping.anilist_id == Anime.anilist_id,
                        Mapping.platform == platform,
                    ),
                )
                .filter(
                    Anime.year == year,
                    or_(
                        Mapping.anilist_id.is_(None),
                        Mapping.review_status == ReviewStatus.UNMATCHED,
                    ),
                )
                .order_by(Anime.anilist_id)
                .all()
            )
        return [row.anilist_id for row in rows]

    def upsert_anime(
        self,
        anilist_id: int,
        *,
        year: int = 0,
        titles: Iterable[str] = (),
        media_type: MediaType | None = None,
        season: str | None = None,
        start_date: str | None = None,
        episode_count: int | None = None,
        episode_number: int | None = None,
    ) -> AnimeEntry:
        """Create or replace the metadata of an anime, keeping its mappings."""
        entry = AnimeEntry(
            anilist_id=anilist_id,
            year=year,
            titles=list(titles),
            media_type=media_type,
            season=season,
            start_date=start_date,
            episode_count=episode_count,
            episode_number=episode_number,
        )
        with self.lock(anilist_id), db() as ctx:
            anime = self.stage_anime(ctx.session, entry)
            ctx.session.commit()
            ctx.session.refresh(anime)
            return AnimeEntry.from_model(anime)

    def upsert_mapping(
        self,
        anilist_id: int,
        platform: Platform,
        platform_id: str | int | None,
        review_status: ReviewStatus,
        score: float = 0.0,
        *,
        season_number: int | None = None,
        year: int | None = None,
        titles: Iterable[str] = (),
    ) -> MappingEntry:
        """Create or overwrite the mapping of one platform for an anime.

        The anime is created when absent, from ``year`` and ``titles`` (year 0
        when unknown). Mappings of other platforms are left untouched.

        Raises:
            InvalidMappingError: If the values break a mapping invariant.
        """
        with self.lock(anilist_id), db() as ctx:
            mapping = self.stage_mapping(
                ctx.session,
                anilist_id,
                platform,
                platform_id,
                review_status,
                score,
                season_number=season_number,
                year=year,
                titles=titles,
            )
            ctx.session.commit()
            return MappingEntry.from_model(mapping)

    def stage_anime(self, session: Session, entry: AnimeEntry) -> Anime:
        """Add or update an anime in ``session`` without committing."""
        anime = session.get(Anime, entry.anilist_id)
        if anime is None:
            anime = Anime(anilist_id=entry.anilist_id)
            session.add(anime)
        anime.year = entry.year
        anime.titles = list(entry.titles)
        anime.media_type = entry.media_type
        anime.season = entry.season
        anime.start_date = entry.start_date
        anime.episode_count = entry.episode_count
        anime.episode_number = entry.episode_number
        return anime

    def stage_mapping(
        self,
        session: Session,
        anilist_id: int,
        platform: Platform,
        platform_id: str | int | None,
        review_status: ReviewStatus,
        score: float = 0.0,
        *,
        season_number: int | None = None,
        year: int | None = None,
        titles: Iterable[str] = (),
    ) -> Mapping:
        """Validate and add a mapping write to ``session`` without committing.

        Callers combine it with other writes (job counters, imports) that must
        commit in the same transaction.
        """
        platform = Platform(platform)
        review_status = ReviewStatus(review_status)
        platform_id = normalize_platform_id(platform_id)
        validate_mapping(platform, platform_id, review_status, score, season_number)

        anime = session.get(Anime, anilist_id)
        if anime is None:
            log.debug(
                f"Creating anime $${{anilist_id: {anilist_id}}}$$ for a "
                f"{platform} mapping"
            )
            anime = Anime(anilist_id=anilist_id, year=year or 0, titles=list(titles))
            session.add(anime)
            session.flush()

        mapping = session.get(Mapping, (anilist_id, platform))
        if mapping is None:
            mapping = Mapping(anilist_id=anilist_id, platform=platform)
            session.add(mapping)
        mapping.platform_id = platform_id
        mapping.review_status = review_status
        mapping.score = float(score)
        mapping.season_number = season_number
        return mapping


@lru_cache(maxsize=1)
def get_anime_store() -> AnimeStore:
    """Return the shared store instance."""
    return AnimeStore()
