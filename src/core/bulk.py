"""Per-year export and import of anime records, and export compaction."""

import contextlib
import json
import os
import tempfile
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

from src import log
from src.config.database import db
from src.config.settings import get_config
from src.core.store import AnimeStore, get_anime_store
from src.exceptions import (
    BulkDataParseError,
    ExportFileNotFoundError,
    InvalidMappingError,
    StorageError,
)
from src.models.db.anime import Anime, Mapping
from src.models.schemas.anime import AnimeEntry, CompactAnime
from src.models.schemas.response import BulkResult, CompactResult

__all__ = [
    "BulkDataService",
    "get_bulk_data_service",
    "read_json_file",
    "write_json_atomic",
]

DIST_FILENAME = "dist.json"

T = TypeVar("T")

_entries_adapter = TypeAdapter(list[AnimeEntry])


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as JSON so that readers see the old or the new file only.

    The content goes to a temporary file in the same directory, which is
    fsynced and then renamed over ``path``.

    Raises:
        StorageError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise StorageError(f"Failed to write '{path}': {e}") from e


def read_json_file(
    path: Path, adapter: TypeAdapter[T], kind: str = "Export file"
) -> T:
    """Read and validate a JSON file written by this service or a peer.

    Raises:
        ExportFileNotFoundError: If the file does not exist.
        BulkDataParseError: If the file is not UTF-8 or fails validation.
        StorageError: If the file cannot be read.
    """
    if not path.is_file():
        raise ExportFileNotFoundError(f"{kind} '{path.name}' not found")
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise BulkDataParseError(
            f"{kind} '{path.name}' is not valid UTF-8: {e.reason}"
        ) from e
    except OSError as e:
        raise StorageError(f"Failed to read '{path}': {e}") from e
    try:
        return adapter.validate_json(raw)
    except PydanticValidationError as e:
        raise BulkDataParseError(
            f"Malformed {kind.lower()} '{path.name}': "
            f"{e.error_count()} validation error(s)"
        ) from e


@dataclass
class BulkDataService:
    """Moves anime records between the store and JSON files in the export dir.

    Export, import and compact never run concurrently.
    """

    export_path: Path = field(default_factory=lambda: get_config().export_path)
    store: AnimeStore = field(default_factory=get_anime_store)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def year_file(self, year: int) -> Path:
        """Path of the export file of one year."""
        return self.export_path / f"{year}.json"

    def export_year(self, year: int) -> BulkResult:
        """Write every anime of ``year`` with its mappings to ``<year>.json``.

        Raises:
            StorageError: If the file cannot be written.
        """
        with self._lock:
            with db() as ctx:
                animes = (
                    ctx.session.query(Anime)
                    .filter(Anime.year == year)
                    .order_by(Anime.anilist_id)
                    .all()
                )
                entries = [
                    AnimeEntry.from_model(anime).model_dump(mode="json")
                    for anime in animes
                ]

            path = self.year_file(year)
            write_json_atomic(path, entries)
            log.info(f"Exported {len(entries)} anime of {year} to $$'{path}'$$")
            return BulkResult(year=year, count=len(entries))

    def import_year(self, year: int) -> BulkResult:
        """Upsert every anime and mapping of ``<year>.json`` in one transaction.

        Rows in the file overwrite the stored ones; rows absent from the file
        are left untouched.

        Raises:
            ExportFileNotFoundError: If the file does not exist.
            BulkDataParseError: If the file content is not valid.
        """
        with self._lock:
            entries = read_json_file(self.year_file(year), _entries_adapter)

            with contextlib.ExitStack() as stack:
                anilist_ids = [entry.anilist_id for entry in entries]
                for anime_lock in self.store.locks(anilist_ids):
                    stack.enter_context(anime_lock)

                with db() as ctx:
                    try:
                        for entry in entries:
                            self.store.stage_anime(ctx.session, entry)
                            ctx.session.flush()
                            for mapping in entry.mappings:
                                self.store.stage_mapping(
                                    ctx.session,
                                    entry.anilist_id,
                                    mapping.platform,
                                    mapping.id,
                                    mapping.review_status,
                                    mapping.score,
                                    season_number=mapping.season_number,
                                )
                    except InvalidMappingError as e:
                        ctx.session.rollback()
                        raise BulkDataParseError(
                            f"Invalid mapping in {year}.json: {e}"
                        ) from e
                    ctx.session.commit()

            log.info(f"Imported {len(entries)} anime from $$'{year}.json'$$")
            return BulkResult(year=year, count=len(entries))

    def _remove_orphans(self) -> int:
        with db() as ctx:
            removed = (
                ctx.session.query(Mapping)
                .filter(Mapping.anilist_id.not_in(select(Anime.anilist_id)))
                .delete(synchronize_session=False)
            )
            ctx.session.commit()
        return removed

    def _vacuum(self) -> None:
        with db.engine.connect().execution_options(
            isolation_level="AUTOCOMMIT"
        ) as conn:
            conn.exec_driver_sql("VACUUM")

    def compact(self) -> CompactResult:
        """Clean up the store and merge all year exports into ``dist.json``.

        Mapping rows whose anime no longer exists are deleted and the SQLite
        file is vacuumed. Every ``<year>.json`` is then reduced to the public
        fields and merged, ordered by AniList id, later years winning on
        duplicate ids.

        Raises:
            BulkDataParseError: If an export file is not valid.
            StorageError: If ``dist.json`` cannot be written.
        """
        with self._lock:
            removed = self._remove_orphans()
            self._vacuum()
            if removed:
                log.info(f"Removed {removed} orphaned mapping(s)")

            year_files = sorted(
                (
                    path
                    for path in self.export_path.glob("*.json")
                    if path.stem.isdigit()
                ),
                key=lambda path: int(path.stem),
            )
            merged: dict[int, CompactAnime] = {}
            for path in year_files:
                for entry in read_json_file(path, _entries_adapter):
                    merged[entry.anilist_id] = CompactAnime.from_entry(entry)

            dist = [
                merged[anilist_id].model_dump(mode="json")
                for anilist_id in sorted(merged)
            ]
            write_json_atomic(self.export_path / DIST_FILENAME, dist)
            log.success(
                f"Compacted {len(year_files)} export file(s) into "
                f"$$'{DIST_FILENAME}'$$ $${{animes: {len(dist)}}}$$"
            )
            return CompactResult(
                files=len(year_files), animes=len(dist), removed_mappings=removed
            )


@lru_cache(maxsize=1)
def get_bulk_data_service() -> BulkDataService:
    """Return the shared bulk data service."""
    return BulkDataService()
