"""Statistics wire models."""

from pydantic import BaseModel

__all__ = ["Summary", "YearStatistic", "YearStatistics"]


class Summary(BaseModel):
    """Store-wide mapping counts per platform."""

    total_animes: int = 0
    total_tmdb_matched: int = 0
    total_tmdb_unmatched: int = 0
    total_tmdb_dropped: int = 0
    total_bgmtv_matched: int = 0
    total_bgmtv_unmatched: int = 0
    total_bgmtv_dropped: int = 0


class YearStatistic(BaseModel):
    """Mapping counts per platform for the anime of one year."""

    year: int
    total_animes: int = 0
    tmdb_matched: int = 0
    tmdb_unmatched: int = 0
    tmdb_dropped: int = 0
    bgmtv_matched: int = 0
    bgmtv_unmatched: int = 0
    bgmtv_dropped: int = 0


class YearStatistics(BaseModel):
    """Response body of the year statistics endpoint."""

    statistics: list[YearStatistic]
