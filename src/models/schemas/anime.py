"""Wire models for anime records, their mappings and the export formats."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.models.db.anime import Anime, Mapping
from src.models.enums import MediaType, Platform, ReviewStatus

__all__ = ["AnimeEntry", "CompactAnime", "CompactMapping", "MappingEntry"]


class MappingEntry(BaseModel):
    """One platform mapping of an anime as exposed by the API and exports."""

    id: str | None = None
    platform: Platform
    season_number: int | None = None
    review_status: ReviewStatus = ReviewStatus.UNMATCHED
    score: float = Field(default=0.0, ge=0, le=100)

    @classmethod
    def from_model(cls, mapping: Mapping) -> MappingEntry:
        """Build the entry from its database row."""
        return cls(
            id=mapping.platform_id,
            platform=mapping.platform,
            season_number=mapping.season_number,
            review_status=mapping.review_status,
            score=mapping.score,
        )


class AnimeEntry(BaseModel):
    """An anime with all of its mappings."""

    anilist_id: int
    year: int = 0
    titles: list[str] = Field(default_factory=list)
    media_type: MediaType | None = None
    season: str | None = None
    start_date: str | None = None
    episode_count: int | None = None
    episode_number: int | None = None
    mappings: list[MappingEntry] = Field(default_factory=list)

    @property
    def title(self) -> str:
        """Preferred display title."""
        return self.titles[0] if self.titles else str(self.anilist_id)

    def mapping_for(self, platform: Platform) -> MappingEntry | None:
        """Return the mapping of a platform, if the anime has one."""
        for mapping in self.mappings:
            if mapping.platform == platform:
                return mapping
        return None

    @classmethod
    def from_model(cls, anime: Anime) -> AnimeEntry:
        """Build the entry, including mappings, from its database row."""
        return cls(
            anilist_id=anime.anilist_id,
            year=anime.year,
            titles=list(anime.titles or []),
            media_type=anime.media_type,
            season=anime.season,
            start_date=anime.start_date,
            episode_count=anime.episode_count,
            episode_number=anime.episode_number,
            mappings=[MappingEntry.from_model(m) for m in anime.mappings],
        )


class CompactMapping(BaseModel):
    """Mapping reduced to the fields published in ``dist.json``."""

    id: str | None = None
    platform: Platform
    season_number: int | None = None


class CompactAnime(BaseModel):
    """Anime reduced to the fields published in ``dist.json``."""

    anilist_id: int
    titles: list[str] = Field(default_factory=list)
    year: int = 0
    start_date: str | None = None
    mappings: list[CompactMapping] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: AnimeEntry) -> CompactAnime:
        """Compact an exported anime, keeping only mappings with an id."""
        return cls(
            anilist_id=entry.anilist_id,
            titles=entry.titles,
            year=entry.year,
            start_date=entry.start_date,
            mappings=[
                CompactMapping(
                    id=m.id, platform=m.platform, season_number=m.season_number
                )
                for m in entry.mappings
                if m.id is not None and m.review_status != ReviewStatus.DROPPED
            ],
        )
