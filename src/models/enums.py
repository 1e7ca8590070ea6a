"""Enumerations shared by the database models, API schemas and configuration."""

from __future__ import annotations

from enum import StrEnum

__all__ = [
    "BaseStrEnum",
    "JobStatus",
    "MediaType",
    "Platform",
    "Provider",
    "ReviewStatus",
]


class BaseStrEnum(StrEnum):
    """Base class for string-based enumerations with a custom __repr__ method.

    Provides case-insensitive lookup functionality and consistent string
    representation for enumeration values.
    """

    @classmethod
    def _missing_(cls, value: object) -> BaseStrEnum | None:
        """Handle case-insensitive lookup for enum values.

        Args:
            value: The value to look up in the enumeration

        Returns:
            BaseStrEnum | None: The matching enum member if found, None otherwise
        """
        value = value.lower() if isinstance(value, str) else value
        for member in cls:
            if member.lower() == value:
                return member
        return None

    def __repr__(self) -> str:
        """Return the string value of the enum member."""
        return self.value

    def __str__(self) -> str:
        """Return the string representation of the enum member."""
        return repr(self)


class Platform(BaseStrEnum):
    """External catalogs an anime can be mapped to."""

    BGMTV = "BgmTv"
    TMDB = "Tmdb"

    @property
    def has_seasons(self) -> bool:
        """Whether mappings on this platform carry a season number."""
        return self is Platform.TMDB


class ReviewStatus(BaseStrEnum):
    """Human or automated judgment on a mapping.

    UnMatched: no candidate id is known
    Ready: an automated match was proposed and awaits review
    Accepted / Rejected: a reviewer confirmed or refused the proposed id
    Dropped: the anime is intentionally left without a mapping on the platform
    """

    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    DROPPED = "Dropped"
    READY = "Ready"
    UNMATCHED = "UnMatched"


class JobStatus(BaseStrEnum):
    """Lifecycle states of a matching job."""

    CREATED = "Created"
    RUNNING = "Running"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    FAILED = "Failed"


class Provider(BaseStrEnum):
    """LLM backends that can drive a matching job."""

    XAI = "xai"
    DEEPSEEK = "deepseek"
    GEMINI = "gemini"
    OPENAI = "openai"

    @classmethod
    def _missing_(cls, value: object) -> Provider | None:
        """Resolve legacy spellings before the case-insensitive lookup."""
        if isinstance(value, str):
            value = _PROVIDER_ALIASES.get(value.lower(), value)
        return super()._missing_(value)


_PROVIDER_ALIASES = {"openai_api": "openai"}


class MediaType(BaseStrEnum):
    """AniList media formats, reduced to the ones the matcher distinguishes."""

    MOVIE = "Movie"
    OVA = "OVA"
    ONA = "ONA"
    SPECIAL = "Special"
    TV = "TV"
    UNKNOWN = "Unknown"
