"""Response envelope and request bodies shared by the API routes."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from src.models.enums import Platform, ReviewStatus

__all__ = [
    "BulkResult",
    "CompactResult",
    "ManualMappingRequest",
    "PageQuery",
    "Pagination",
    "Resp",
    "SeedImportResult",
]

T = TypeVar("T")


class Resp(BaseModel, Generic[T]):
    """``{code, msg, data}`` envelope wrapping every API response.

    ``code`` is 0 on success; errors carry the code of the raised exception.
    """

    code: int = 0
    msg: str = "ok"
    data: T | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "Resp[T]":
        """Wrap a successful result."""
        return cls(code=0, msg="ok", data=data)

    @classmethod
    def error(cls, code: int, msg: str) -> "Resp[None]":
        """Build an error envelope."""
        return Resp[None](code=code, msg=msg, data=None)


class PageQuery(BaseModel):
    """Body of ``POST /api/animes/page``."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=500)
    status: ReviewStatus | None = None
    year: int | None = None
    anilist_id: int | None = None


class Pagination(BaseModel, Generic[T]):
    """One page of results plus the total number of matches."""

    data: list[T]
    total: int
    page: int
    page_size: int


class ManualMappingRequest(BaseModel):
    """Body of ``POST /api/anime/mapping/manual``."""

    anilist_id: int
    platform: Platform
    platform_id: str = Field(min_length=1)
    season_number: int | None = Field(default=None, ge=0)


class BulkResult(BaseModel):
    """Result of a single-year export or import."""

    year: int
    count: int


class CompactResult(BaseModel):
    """Result of compacting the export directory and the store."""

    files: int
    animes: int
    removed_mappings: int


class SeedImportResult(BaseModel):
    """Result of importing the seed anime lists."""

    files: int
    animes: int
    mappings: int
