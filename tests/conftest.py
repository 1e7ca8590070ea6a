"""Shared pytest configuration and fixtures for the test suite."""

import atexit
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="am-tests-"))
os.environ["AM_DATA_PATH"] = str(_TEST_DATA_DIR)
_TEST_CONFIG_FILE = _TEST_DATA_DIR / "config.yaml"

_TEST_CONFIG_FILE.write_text(
    yaml.safe_dump(
        {
            "log_level": "INFO",
            "providers": {
                "deepseek": {"api_key": "deepseek-key"},
                "openai": {
                    "api_key": "openai-key",
                    "base_url": "http://llm.local/v1",
                },
            },
            "tmdb": {"api_key": "tmdb-key"},
            "matching": {"retry_count": 2, "retry_delay": 0, "request_timeout": 5},
        },
        sort_keys=False,
    ),
    encoding="utf-8",
)

from src.config import settings as settings_module  # noqa: E402

settings_module.get_config.cache_clear()

from src.config.database import db  # noqa: E402
from src.core.store import AnimeStore, get_anime_store  # noqa: E402
from src.models.db import Anime, Job, Mapping  # noqa: E402
from src.models.enums import MediaType  # noqa: E402
from src.models.schemas.anime import AnimeEntry  # noqa: E402
from src.web.state import get_app_state  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_app_state():
    """Ensure each test interacts with a fresh AppState instance."""
    get_app_state.cache_clear()
    state = get_app_state()
    yield state
    get_app_state.cache_clear()


@pytest.fixture(autouse=True)
def _clean_database():
    """Delete every row written by a test once it finishes."""
    yield
    with db() as ctx:
        ctx.session.query(Job).delete()
        ctx.session.query(Mapping).delete()
        ctx.session.query(Anime).delete()
        ctx.session.commit()


@pytest.fixture
def store() -> AnimeStore:
    """The shared anime store."""
    return get_anime_store()


@pytest.fixture
def make_anime(store: AnimeStore) -> Callable[..., AnimeEntry]:
    """Factory inserting an anime with sensible defaults."""

    def _make(anilist_id: int, year: int = 2024, **kwargs) -> AnimeEntry:
        kwargs.setdefault("titles", [f"Anime {anilist_id}"])
        kwargs.setdefault("media_type", MediaType.TV)
        kwargs.setdefault("start_date", f"{year}-01-01")
        kwargs.setdefault("episode_count", 12)
        return store.upsert_anime(anilist_id, year=year, **kwargs)

    return _make


@atexit.register
def _cleanup_test_data_dir() -> None:
    """Remove the temporary test data directory after the test session."""
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)
