"""Tests for per-year export/import and export compaction."""

import json
from pathlib import Path

import pytest

from src.config.database import db
from src.core.bulk import BulkDataService, write_json_atomic
from src.exceptions import BulkDataParseError, ExportFileNotFoundError
from src.models.db import Anime
from src.models.enums import Platform, ReviewStatus


@pytest.fixture
def service(tmp_path: Path) -> BulkDataService:
    """Bulk service writing into a temporary export directory."""
    return BulkDataService(export_path=tmp_path / "export")


def _delete_all_anime() -> None:
    with db() as ctx:
        for anime in ctx.session.query(Anime).all():
            ctx.session.delete(anime)
        ctx.session.commit()


def test_export_year_writes_anime_with_mappings(service, store, make_anime) -> None:
    """Only the anime of the requested year are exported, with their mappings."""
    make_anime(2, year=2024)
    make_anime(1, year=2024)
    make_anime(3, year=2023)
    store.upsert_mapping(
        1, Platform.TMDB, "10", ReviewStatus.READY, 80, season_number=1
    )

    result = service.export_year(2024)

    assert result.year == 2024
    assert result.count == 2
    data = json.loads(service.year_file(2024).read_text(encoding="utf-8"))
    assert [item["anilist_id"] for item in data] == [1, 2]
    assert data[0]["mappings"] == [
        {
            "id": "10",
            "platform": "Tmdb",
            "season_number": 1,
            "review_status": "Ready",
            "score": 80.0,
        }
    ]


def test_export_then_import_restores_store(service, store, make_anime) -> None:
    """Importing an export brings deleted anime and mappings back."""
    make_anime(1, year=2024, titles=["Frieren", "葬送のフリーレン"])
    store.upsert_mapping(1, Platform.BGMTV, "400602", ReviewStatus.ACCEPTED, 100)
    service.export_year(2024)
    _delete_all_anime()

    result = service.import_year(2024)

    assert result.count == 1
    anime = store.get(1)
    assert anime.titles == ["Frieren", "葬送のフリーレン"]
    assert anime.mapping_for(Platform.BGMTV).review_status == ReviewStatus.ACCEPTED


def test_import_overwrites_existing_rows(service, store, make_anime) -> None:
    """Rows present in the file win over the stored ones."""
    service.export_path.mkdir(parents=True)
    service.year_file(2024).write_text(
        json.dumps(
            [
                {
                    "anilist_id": 1,
                    "year": 2024,
                    "titles": ["Imported"],
                    "mappings": [
                        {"id": "9", "platform": "Tmdb", "review_status": "Rejected"}
                    ],
                }
            ]
        ),
        encoding="utf-8",
    )
    make_anime(1, year=2024)
    store.upsert_mapping(1, Platform.TMDB, "1", ReviewStatus.READY, 50)
    store.upsert_mapping(1, Platform.BGMTV, "2", ReviewStatus.READY, 50)

    service.import_year(2024)

    anime = store.get(1)
    assert anime.titles == ["Imported"]
    assert anime.mapping_for(Platform.TMDB).id == "9"
    assert anime.mapping_for(Platform.TMDB).review_status == ReviewStatus.REJECTED
    assert anime.mapping_for(Platform.BGMTV).id == "2"


def test_import_missing_file(service) -> None:
    """A year without an export file is reported as not found."""
    with pytest.raises(ExportFileNotFoundError):
        service.import_year(1990)


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"anilist_id": 1}),
        json.dumps([{"anilist_id": 1, "mappings": [{"platform": "Anidb"}]}]),
        json.dumps(
            [{"anilist_id": 1, "mappings": [{"platform": "Tmdb", "id": "5"}]}]
        ),
    ],
)
def test_import_malformed_file(service, store, content) -> None:
    """Unparseable or invalid content fails without writing anything."""
    service.export_path.mkdir(parents=True)
    service.year_file(2024).write_text(content, encoding="utf-8")

    with pytest.raises(BulkDataParseError):
        service.import_year(2024)

    items, total = store.get_page()
    assert total == 0


def test_import_undecodable_file(service, store) -> None:
    """A file that is not UTF-8 is a parse error, not a storage failure."""
    service.export_path.mkdir(parents=True)
    service.year_file(2024).write_bytes(b"\xff\xfe[\x00]")

    with pytest.raises(BulkDataParseError, match="UTF-8"):
        service.import_year(2024)

    assert store.get_page()[1] == 0


def test_compact_merges_year_files(service, store, make_anime) -> None:
    """Every year file is merged into a compact, id-ordered dist.json."""
    make_anime(3, year=2023)
    make_anime(1, year=2024)
    make_anime(2, year=2024)
    store.upsert_mapping(
        1, Platform.TMDB, "10", ReviewStatus.ACCEPTED, 100, season_number=2
    )
    store.upsert_mapping(1, Platform.BGMTV, None, ReviewStatus.DROPPED)
    store.upsert_mapping(2, Platform.BGMTV, None, ReviewStatus.UNMATCHED)
    service.export_year(2023)
    service.export_year(2024)
    (service.export_path / "notes.json").write_text("[]", encoding="utf-8")

    result = service.compact()

    assert result.files == 2
    assert result.animes == 3
    assert result.removed_mappings == 0
    dist = json.loads((service.export_path / "dist.json").read_text(encoding="utf-8"))
    assert [item["anilist_id"] for item in dist] == [1, 2, 3]
    assert dist[0] == {
        "anilist_id": 1,
        "titles": ["Anime 1"],
        "year": 2024,
        "start_date": "2024-01-01",
        "mappings": [{"id": "10", "platform": "Tmdb", "season_number": 2}],
    }
    assert dist[1]["mappings"] == []


def test_compact_without_exports(service) -> None:
    """Compacting an empty export directory writes an empty dist.json."""
    result = service.compact()

    assert result.files == 0
    assert result.animes == 0
    assert json.loads((service.export_path / "dist.json").read_text()) == []


def test_write_json_atomic_leaves_no_temp_files(tmp_path: Path) -> None:
    """The target is replaced in one step and no temporary file remains."""
    target = tmp_path / "out" / "2024.json"
    write_json_atomic(target, [1])
    write_json_atomic(target, [{"title": "é"}])

    assert json.loads(target.read_text(encoding="utf-8")) == [{"title": "é"}]
    assert [p.name for p in target.parent.iterdir()] == ["2024.json"]
