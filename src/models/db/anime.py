"""Anime and Mapping models."""

from __future__ import annotations

from sqlalchemy import JSON, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.db.base import Base, TimestampMixin, str_enum
from src.models.enums import MediaType, Platform, ReviewStatus

__all__ = ["Anime", "Mapping"]


class Anime(TimestampMixin, Base):
    """An AniList entry and the metadata used to build match queries."""

    __tablename__ = "animes"

    anilist_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=False
    )
    year: Mapped[int] = mapped_column(Integer, index=True, default=0)
    titles: Mapped[list[str]] = mapped_column(JSON, default=list)

    media_type: Mapped[MediaType | None] = mapped_column(
        str_enum(MediaType), nullable=True
    )
    season: Mapped[str | None] = mapped_column(String(16), nullable=True)
    start_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    episode_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    episode_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    mappings: Mapped[list[Mapping]] = relationship(
        back_populates="anime",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Mapping.platform",
    )

    def __repr__(self) -> str:
        return f"<Anime(anilist_id={self.anilist_id}, year={self.year})>"


class Mapping(TimestampMixin, Base):
    """Association between an anime and one external catalog entry."""

    __tablename__ = "mappings"

    anilist_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("animes.anilist_id", ondelete="CASCADE"),
        primary_key=True,
    )
    platform: Mapped[Platform] = mapped_column(str_enum(Platform), primary_key=True)

    platform_id: Mapped[str | None] = mapped_column(String, nullable=True)
    season_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_status: Mapped[ReviewStatus] = mapped_column(
        str_enum(ReviewStatus), index=True, default=ReviewStatus.UNMATCHED
    )
    score: Mapped[float] = mapped_column(Float, default=0.0)

    anime: Mapped[Anime] = relationship(back_populates="mappings")

    def __repr__(self) -> str:
        return (
            f"<Mapping(anilist_id={self.anilist_id}, platform={self.platform}, "
            f"id={self.platform_id}, status={self.review_status})>"
        )
