"""AniList Models Module.

Covers the subset of the AniList GraphQL ``Media`` object needed to seed the
store, and the community seed list format imported alongside it.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.enums import MediaType, Platform, ReviewStatus
from src.models.schemas.anime import AnimeEntry, MappingEntry

__all__ = [
    "FuzzyDate",
    "Media",
    "MediaFormat",
    "MediaTitle",
    "PageInfo",
    "SeedAnime",
    "SeedMappings",
]


class MediaFormat(StrEnum):
    """Enum representing media formats (TV, MOVIE, etc)."""

    TV = "TV"
    TV_SHORT = "TV_SHORT"
    MOVIE = "MOVIE"
    SPECIAL = "SPECIAL"
    OVA = "OVA"
    ONA = "ONA"
    MUSIC = "MUSIC"

    @property
    def media_type(self) -> MediaType:
        """The store's media type for this format."""
        return _FORMAT_MEDIA_TYPES.get(self, MediaType.UNKNOWN)


_FORMAT_MEDIA_TYPES = {
    MediaFormat.TV: MediaType.TV,
    MediaFormat.TV_SHORT: MediaType.TV,
    MediaFormat.MOVIE: MediaType.MOVIE,
    MediaFormat.SPECIAL: MediaType.SPECIAL,
    MediaFormat.OVA: MediaType.OVA,
    MediaFormat.ONA: MediaType.ONA,
}


class AniListBaseModel(BaseModel):
    """Base model for AniList payloads, read from camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageInfo(AniListBaseModel):
    """Model representing pagination info for AniList queries."""

    total: int | None = None
    current_page: int | None = None
    has_next_page: bool | None = None


class MediaTitle(AniListBaseModel):
    """Model representing media titles in various languages."""

    romaji: str | None = None
    english: str | None = None
    native: str | None = None

    def titles(self) -> list[str]:
        """Return the available titles, romaji first."""
        return [t for t in (self.romaji, self.english, self.native) if t]


class FuzzyDate(AniListBaseModel):
    """Model representing a fuzzy date (year, month, day may be missing)."""

    year: int | None = None
    month: int | None = None
    day: int | None = None

    def to_partial_date(self) -> str | None:
        """Return ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``, whatever is known."""
        if self.year is None:
            return None
        parts = [f"{self.year:04d}"]
        if self.month:
            parts.append(f"{self.month:02d}")
            if self.day:
                parts.append(f"{self.day:02d}")
        return "-".join(parts)


class Media(AniListBaseModel):
    """Model representing a media entry."""

    id: int
    format: MediaFormat | None = None
    season: str | None = None
    season_year: int | None = None
    episodes: int | None = None
    synonyms: list[str] = Field(default_factory=list)
    title: MediaTitle = Field(default_factory=MediaTitle)
    start_date: FuzzyDate = Field(default_factory=FuzzyDate)

    def to_entry(self, year: int) -> AnimeEntry:
        """Convert to a store record without mappings.

        Args:
            year (int): Fallback year when AniList knows no start date.
        """
        titles: list[str] = []
        for title in [*self.title.titles(), *self.synonyms]:
            if title and title not in titles:
                titles.append(title)
        return AnimeEntry(
            anilist_id=self.id,
            year=self.start_date.year or self.season_year or year,
            titles=titles,
            media_type=self.format.media_type if self.format else MediaType.UNKNOWN,
            season=self.season,
            start_date=self.start_date.to_partial_date(),
            episode_count=self.episodes,
        )


class SeedMappings(BaseModel):
    """Cross-site ids of a seed entry; only TMDB is used."""

    themoviedb_id: str | None = None

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class SeedAnime(BaseModel):
    """An entry of a community seed list (``seed/*.json``)."""

    anilist_id: int
    bgm_id: int | None = None
    titles: list[str] = Field(default_factory=list)
    year: int = 0
    season: str | None = None
    start_date: str | None = None
    episode_count: int | None = None
    season_number: int | None = Field(default=None, alias="seasonNumber")
    episode_number: int | None = Field(default=None, alias="episodeNumber")
    type: str | None = None
    mappings: SeedMappings = Field(default_factory=SeedMappings)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @property
    def media_type(self) -> MediaType:
        """The store's media type; anything unrecognized is Unknown."""
        if not self.type:
            return MediaType.UNKNOWN
        try:
            return MediaType(self.type)
        except ValueError:
            return MediaType.UNKNOWN

    def proposed_mappings(self) -> list[MappingEntry]:
        """Ready mappings for the ids the seed knows, UnMatched otherwise."""
        tmdb_id = (self.mappings.themoviedb_id or "").strip() or None
        return [
            MappingEntry(
                platform=Platform.BGMTV,
                id=str(self.bgm_id) if self.bgm_id is not None else None,
                review_status=ReviewStatus.READY
                if self.bgm_id is not None
                else ReviewStatus.UNMATCHED,
            ),
            MappingEntry(
                platform=Platform.TMDB,
                id=tmdb_id,
                season_number=self.season_number if tmdb_id else None,
                review_status=ReviewStatus.READY
                if tmdb_id
                else ReviewStatus.UNMATCHED,
            ),
        ]

    def to_entry(self) -> AnimeEntry:
        """Convert to a store record; mappings are handled separately."""
        return AnimeEntry(
            anilist_id=self.anilist_id,
            year=self.year,
            titles=self.titles,
            media_type=self.media_type,
            season=self.season,
            start_date=self.start_date,
            episode_count=self.episode_count,
            episode_number=self.episode_number,
        )
