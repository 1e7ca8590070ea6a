"""Match provider contract."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from src.models.enums import MediaType, Platform
from src.models.schemas.anime import AnimeEntry

__all__ = ["MatchCandidate", "MatchProvider", "MatchQuery"]


@dataclass(frozen=True)
class MatchQuery:
    """What a provider knows about the anime it has to locate."""

    anilist_id: int
    platform: Platform
    titles: tuple[str, ...] = field(default_factory=tuple)
    year: int | None = None
    media_type: MediaType | None = None
    season: str | None = None
    start_date: str | None = None
    episode_count: int | None = None
    episode_number: int | None = None

    @classmethod
    def from_entry(cls, entry: AnimeEntry, platform: Platform) -> MatchQuery:
        """Build the query for an anime record."""
        return cls(
            anilist_id=entry.anilist_id,
            platform=platform,
            titles=tuple(entry.titles),
            year=entry.year or None,
            media_type=entry.media_type,
            season=entry.season,
            start_date=entry.start_date,
            episode_count=entry.episode_count,
            episode_number=entry.episode_number,
        )

    def to_prompt(self) -> str:
        """Render the query as the JSON user message sent to the model."""
        payload = {
            "titles": list(self.titles),
            "year": self.year,
            "media_type": self.media_type,
            "season": self.season,
            "start_date": self.start_date,
            "episode_count": self.episode_count,
            "episode_number": self.episode_number,
        }
        return json.dumps(
            {k: v for k, v in payload.items() if v is not None}, ensure_ascii=False
        )


@dataclass(frozen=True)
class MatchCandidate:
    """A proposed external id with the provider's confidence (0-100)."""

    id: str
    score: float
    name: str | None = None
    season_number: int | None = None


@runtime_checkable
class MatchProvider(Protocol):
    """Capability of proposing a platform id for an anime.

    ``propose_match`` returns None when the provider found no confident match.
    It raises ``ProviderError`` for a failed attempt and
    ``ProviderSystemicError`` when no further attempt can succeed.
    """

    async def propose_match(self, query: MatchQuery) -> MatchCandidate | None: ...

    async def close(self) -> None: ...
