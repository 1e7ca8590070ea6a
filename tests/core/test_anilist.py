"""Tests for the AniList client and the catalog import service."""

import contextlib
import json
from pathlib import Path
from typing import Any

import pytest

from src.config.settings import AniListConfig
from src.core.anilist import AniListClient, CatalogImportService
from src.exceptions import BulkDataParseError, ExportFileNotFoundError, ProviderError
from src.models.enums import MediaType, Platform, ReviewStatus
from src.models.schemas.anilist import Media

YEAR = 2024


class _Response:
    def __init__(self, payload: Any) -> None:
        self.status = 200
        self.headers: dict[str, str] = {}
        self.payload = payload

    async def json(self, content_type: str | None = None) -> Any:
        return self.payload


class _Session:
    """Session replaying GraphQL payloads and recording request bodies."""

    closed = False

    def __init__(self, *payloads: Any) -> None:
        self.payloads = list(payloads)
        self.bodies: list[dict[str, Any]] = []

    @contextlib.asynccontextmanager
    async def request(self, method: str, url: str, **kwargs: Any):
        self.bodies.append(kwargs["json"])
        yield _Response(self.payloads.pop(0))


def _page(media: list[dict], has_next_page: bool) -> dict:
    return {
        "data": {
            "Page": {
                "pageInfo": {"total": 2, "hasNextPage": has_next_page},
                "media": media,
            }
        }
    }


def _client(monkeypatch: pytest.MonkeyPatch, session: _Session) -> AniListClient:
    client = AniListClient(AniListConfig(per_page=1))

    async def _get_session():
        return session

    monkeypatch.setattr(client, "_get_session", _get_session)
    return client


class FakeAniListClient:
    """Stand-in returning a fixed catalog for any year."""

    def __init__(self, media: list[Media]) -> None:
        self.media = media
        self.years: list[int] = []
        self.closed = False

    async def fetch_year(self, year: int) -> list[Media]:
        self.years.append(year)
        return list(self.media)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def service(tmp_path: Path, store) -> CatalogImportService:
    return CatalogImportService(
        anilist_path=tmp_path / "anilist",
        seed_path=tmp_path / "seed",
        store=store,
        client=FakeAniListClient(
            [
                Media.model_validate(
                    {
                        "id": 2,
                        "format": "MOVIE",
                        "title": {"romaji": "Gekijouban", "native": "劇場版"},
                        "startDate": {"year": YEAR, "month": 7},
                    }
                ),
                Media.model_validate(
                    {
                        "id": 1,
                        "format": "TV",
                        "season": "SPRING",
                        "episodes": 12,
                        "title": {"romaji": "Renamed"},
                        "startDate": {"year": YEAR, "month": 4, "day": 5},
                    }
                ),
            ]
        ),
    )


def _write_seed(service: CatalogImportService, name: str, content: Any) -> None:
    service.seed_path.mkdir(parents=True, exist_ok=True)
    text = content if isinstance(content, str) else json.dumps(content)
    (service.seed_path / name).write_text(text, encoding="utf-8")


# Client


@pytest.mark.asyncio
async def test_fetch_year_follows_pagination(monkeypatch) -> None:
    """Pages are requested until AniList reports no next page."""
    session = _Session(
        _page([{"id": 1, "title": {"romaji": "A"}}], has_next_page=True),
        _page([{"id": 2, "title": {"romaji": "B"}}], has_next_page=False),
    )
    client = _client(monkeypatch, session)

    media = await client.fetch_year(YEAR)

    assert [m.id for m in media] == [1, 2]
    assert [body["variables"]["page"] for body in session.bodies] == [1, 2]
    variables = session.bodies[0]["variables"]
    assert variables["year"] == "2024%"
    assert variables["perPage"] == 1
    assert "ONA" not in variables["formats"]


@pytest.mark.asyncio
async def test_query_errors_fail_the_fetch(monkeypatch) -> None:
    """GraphQL errors without data become a ProviderError."""
    session = _Session({"data": None, "errors": [{"message": "Invalid year"}]})
    client = _client(monkeypatch, session)

    with pytest.raises(ProviderError, match="Invalid year"):
        await client.fetch_year(YEAR)


def test_media_to_entry() -> None:
    """Titles are deduplicated and missing dates fall back to the season year."""
    media = Media.model_validate(
        {
            "id": 9,
            "format": "TV_SHORT",
            "seasonYear": 2023,
            "synonyms": ["Short", "Romaji"],
            "title": {
                "romaji": "Romaji",
                "english": "Romaji",
                "native": "ネイティブ",
            },
            "startDate": {"month": 1},
        }
    )

    entry = media.to_entry(YEAR)

    assert entry.titles == ["Romaji", "ネイティブ", "Short"]
    assert entry.media_type == MediaType.TV
    assert entry.year == 2023
    assert entry.start_date is None


# AniList import


@pytest.mark.asyncio
async def test_sync_year_dumps_then_imports(service, store, make_anime) -> None:
    """The dump is written sorted and the import keeps existing mappings."""
    make_anime(1, year=YEAR, titles=["Old"])
    store.upsert_mapping(1, Platform.TMDB, "55", ReviewStatus.ACCEPTED, 100)

    result = await service.sync_year(YEAR)

    assert result.count == 2
    dump = json.loads(service.dump_file(YEAR).read_text(encoding="utf-8"))
    assert [item["id"] for item in dump] == [1, 2]
    assert dump[0]["startDate"] == {"year": YEAR, "month": 4, "day": 5}

    first = store.get(1)
    assert first.titles == ["Renamed"]
    assert first.start_date == "2024-04-05"
    assert first.season == "SPRING"
    assert first.mapping_for(Platform.TMDB).review_status == ReviewStatus.ACCEPTED
    movie = store.get(2)
    assert movie.media_type == MediaType.MOVIE
    assert movie.start_date == "2024-07"
    assert movie.mappings == []


@pytest.mark.asyncio
async def test_sync_year_without_fetch_uses_dump(service, store) -> None:
    """An offline import reads the existing dump and never calls AniList."""
    await service.dump_year(YEAR)
    service.client.years.clear()

    result = await service.sync_year(YEAR, fetch=False)

    assert result.count == 2
    assert service.client.years == []
    assert store.get(2).titles == ["Gekijouban", "劇場版"]


def test_import_year_without_dump(service) -> None:
    """A year that was never dumped is reported as not found."""
    with pytest.raises(ExportFileNotFoundError, match="AniList dump"):
        service.import_year(1990)


@pytest.mark.asyncio
async def test_close_closes_the_client(service) -> None:
    await service.close()

    assert service.client.closed


# Seed import


def test_import_seed_only_fills_unmatched_mappings(service, store, make_anime) -> None:
    """Seeded ids never replace reviewed mappings."""
    make_anime(1, year=YEAR)
    store.upsert_mapping(1, Platform.TMDB, "999", ReviewStatus.ACCEPTED, 100)
    store.upsert_mapping(1, Platform.BGMTV, None, ReviewStatus.UNMATCHED)
    _write_seed(
        service,
        "anime.json",
        [
            {
                "anilist_id": 1,
                "bgm_id": 55,
                "titles": ["Seed One"],
                "year": YEAR,
                "type": "tv",
                "seasonNumber": 2,
                "mappings": {"themoviedb_id": "123", "mal_id": 7},
            },
            {
                "anilist_id": 2,
                "titles": ["Seed Two"],
                "year": 2023,
                "type": "music",
                "mappings": {"themoviedb_id": 777},
            },
        ],
    )
    _write_seed(service, "notes.txt", "not a seed list")

    result = service.import_seed()

    assert (result.files, result.animes, result.mappings) == (1, 2, 2)
    first = store.get(1)
    assert first.titles == ["Seed One"]
    assert first.mapping_for(Platform.TMDB).id == "999"
    assert first.mapping_for(Platform.TMDB).review_status == ReviewStatus.ACCEPTED
    assert first.mapping_for(Platform.BGMTV).id == "55"
    assert first.mapping_for(Platform.BGMTV).review_status == ReviewStatus.READY

    second = store.get(2)
    assert second.media_type == MediaType.UNKNOWN
    assert second.mapping_for(Platform.TMDB).id == "777"
    assert second.mapping_for(Platform.TMDB).review_status == ReviewStatus.READY
    assert second.mapping_for(Platform.BGMTV).id is None
    assert second.mapping_for(Platform.BGMTV).review_status == ReviewStatus.UNMATCHED


def test_import_seed_with_invalid_file_writes_nothing(service, store) -> None:
    """One malformed seed file aborts the whole import."""
    _write_seed(service, "a.json", [{"anilist_id": 1, "titles": ["A"]}])
    _write_seed(service, "b.json", {"anilist_id": "two"})

    with pytest.raises(BulkDataParseError, match="b.json"):
        service.import_seed()

    assert store.get_page()[1] == 0


def test_import_seed_without_directory(service) -> None:
    with pytest.raises(ExportFileNotFoundError):
        service.import_seed()
