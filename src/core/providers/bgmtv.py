"""Bangumi (bgm.tv) subject search."""

from typing import Any

from limiter import Limiter

from src import log
from src.config.settings import BgmTvConfig
from src.core.providers.catalog import CatalogClient

__all__ = ["BgmTvClient"]

bgmtv_limiter = Limiter(rate=2, capacity=4, jitter=False)

# Infobox entries worth showing to the model; the rest is staff and trivia
INFOBOX_KEYS = frozenset({"中文名", "别名", "英文名"})


def _infobox_value(value: Any) -> str | list[str]:
    if isinstance(value, list):
        return [
            item.get("v", "") if isinstance(item, dict) else str(item)
            for item in value
        ]
    return "" if value is None else str(value)


class BgmTvClient(CatalogClient):
    """Client for the Bangumi v0 search API."""

    NAME = "BgmTV"

    def __init__(self, config: BgmTvConfig) -> None:
        """Initialize the client from the ``bgmtv`` config section."""
        super().__init__(config.base_url, headers={"User-Agent": config.user_agent})

    @bgmtv_limiter()
    async def search(
        self, query: str, start_air_year: int | str | None = None, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Search anime subjects ranked by Bangumi's own ranking.

        Args:
            query (str): Keywords, usually one title.
            start_air_year (int | str | None): Only subjects aired from this year on.
            limit (int): Maximum number of subjects returned.

        Returns:
            list[dict[str, Any]]: Trimmed subjects with id, names, date and infobox.
        """
        air_date = []
        if start_air_year:
            air_date.append(f">={str(start_air_year).strip()[:4]}-01-01")

        body = {
            "keyword": "+".join(query.split()),
            "filter": {"sort": "rank", "nsfw": True, "air_date": air_date},
        }
        log.debug(f"Searching BgmTV for $$'{query}'$$")
        response = await self._request(
            "POST",
            "/v0/search/subjects",
            params={"limit": limit, "offset": 0},
            json=body,
        )

        subjects = []
        for subject in self._items(response, "data"):
            subjects.append(
                {
                    "id": subject.get("id"),
                    "name": subject.get("name"),
                    "name_cn": subject.get("name_cn"),
                    "date": subject.get("date"),
                    "eps": subject.get("eps") or subject.get("total_episodes"),
                    "infobox": [
                        {
                            "key": item.get("key"),
                            "value": _infobox_value(item.get("value")),
                        }
                        for item in self._items(subject, "infobox")
                        if item.get("key") in INFOBOX_KEYS
                    ],
                }
            )
        return subjects
