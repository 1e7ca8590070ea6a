"""Human review of proposed mappings and manual mapping entry."""

from dataclasses import dataclass, field
from functools import lru_cache

from src import log
from src.config.database import db
from src.core.store import AnimeStore, get_anime_store
from src.exceptions import (
    AnimeNotFoundError,
    InvalidMappingError,
    InvalidReviewStatusError,
    MappingNotFoundError,
)
from src.models.db.anime import Anime, Mapping
from src.models.enums import Platform, ReviewStatus
from src.models.schemas.anime import MappingEntry

__all__ = ["REVIEW_DECISIONS", "ReviewService", "get_review_service"]

# Statuses a reviewer may set; Ready and UnMatched are written by jobs only
REVIEW_DECISIONS = frozenset(
    {ReviewStatus.ACCEPTED, ReviewStatus.REJECTED, ReviewStatus.DROPPED}
)

MANUAL_SCORE = 100.0


@dataclass
class ReviewService:
    """Applies review decisions to existing mappings."""

    store: AnimeStore = field(default_factory=get_anime_store)

    def review(
        self,
        anilist_id: int,
        platform: Platform,
        status: ReviewStatus | str,
    ) -> MappingEntry:
        """Set the review status of one mapping.

        The id, score and season of the mapping are kept. Any earlier decision
        is overwritten.

        Raises:
            InvalidReviewStatusError: If ``status`` is not a review decision.
            AnimeNotFoundError: If the anime does not exist.
            MappingNotFoundError: If the anime has no mapping for ``platform``.
            InvalidMappingError: If the mapping has no id for Accepted/Rejected.
        """
        try:
            status = ReviewStatus(status)
        except ValueError as e:
            raise InvalidReviewStatusError(f"Unknown review status '{status}'") from e
        if status not in REVIEW_DECISIONS:
            raise InvalidReviewStatusError(
                f"Review status must be one of "
                f"{', '.join(sorted(REVIEW_DECISIONS))}, got {status}"
            )

        with self.store.lock(anilist_id), db() as ctx:
            if ctx.session.get(Anime, anilist_id) is None:
                raise AnimeNotFoundError(f"Anime {anilist_id} not found")
            mapping = ctx.session.get(Mapping, (anilist_id, platform))
            if mapping is None:
                raise MappingNotFoundError(
                    f"Anime {anilist_id} has no {platform} mapping"
                )

            self.store.stage_mapping(
                ctx.session,
                anilist_id,
                platform,
                mapping.platform_id,
                status,
                mapping.score,
                season_number=mapping.season_number,
            )
            ctx.session.commit()
            log.info(
                f"Reviewed {platform} mapping of anime "
                f"$${{anilist_id: {anilist_id}}}$$ as {status}"
            )
            return MappingEntry.from_model(mapping)

    def manual_mapping(
        self,
        anilist_id: int,
        platform: Platform,
        platform_id: str,
        season_number: int | None = None,
    ) -> MappingEntry:
        """Record a mapping entered by a reviewer as Accepted with full score.

        Raises:
            AnimeNotFoundError: If the anime does not exist.
            InvalidMappingError: If a season is given for a platform without seasons.
        """
        if season_number is not None and not Platform(platform).has_seasons:
            raise InvalidMappingError(f"{platform} mappings do not have seasons")

        with self.store.lock(anilist_id), db() as ctx:
            if ctx.session.get(Anime, anilist_id) is None:
                raise AnimeNotFoundError(f"Anime {anilist_id} not found")

            mapping = self.store.stage_mapping(
                ctx.session,
                anilist_id,
                platform,
                platform_id,
                ReviewStatus.ACCEPTED,
                MANUAL_SCORE,
                season_number=season_number,
            )
            ctx.session.commit()
            log.info(
                f"Manually mapped anime $${{anilist_id: {anilist_id}}}$$ to "
                f"{platform} $${{id: {platform_id}}}$$"
            )
            return MappingEntry.from_model(mapping)


@lru_cache(maxsize=1)
def get_review_service() -> ReviewService:
    """Return the shared review service."""
    return ReviewService()
