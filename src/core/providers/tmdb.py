"""TMDB search and season lookup."""

from typing import Any

from limiter import Limiter

from src import log
from src.config.settings import TmdbConfig
from src.core.providers.catalog import CatalogClient
from src.exceptions import ProviderSystemicError

__all__ = ["TmdbClient"]

tmdb_limiter = Limiter(rate=20, capacity=40, jitter=False)

# Episode group type TMDB uses for production-order "seasons"
PRODUCTION_GROUP_TYPE = 6


class TmdbClient(CatalogClient):
    """Client for the TMDB v3 API."""

    NAME = "TMDB"

    def __init__(self, config: TmdbConfig) -> None:
        """Initialize the client from the ``tmdb`` config section."""
        super().__init__(config.base_url)
        self.api_key = config.api_key
        self.language = config.language

    @tmdb_limiter()
    async def _get(self, path: str, **params: Any) -> Any:
        if self.api_key is None:
            raise ProviderSystemicError("TMDB api_key is not configured")
        query = {"api_key": self.api_key.get_secret_value(), "language": self.language}
        query.update({k: v for k, v in params.items() if v is not None})
        return await self._request("GET", path, params=query)

    async def search_tv(self, query: str) -> list[dict[str, Any]]:
        """Search TV shows by title."""
        log.debug(f"Searching TMDB TV shows for $$'{query}'$$")
        response = await self._get("/search/tv", query=query)
        return [
            {
                "id": show.get("id"),
                "name": show.get("name"),
                "original_name": show.get("original_name"),
                "first_air_date": show.get("first_air_date"),
                "overview": (show.get("overview") or "")[:300],
            }
            for show in self._items(response, "results")
        ]

    async def search_movie(self, query: str) -> list[dict[str, Any]]:
        """Search movies by title."""
        log.debug(f"Searching TMDB movies for $$'{query}'$$")
        response = await self._get("/search/movie", query=query)
        return [
            {
                "id": movie.get("id"),
                "title": movie.get("title"),
                "original_title": movie.get("original_title"),
                "release_date": movie.get("release_date"),
                "overview": (movie.get("overview") or "")[:300],
            }
            for movie in self._items(response, "results")
        ]

    async def seasons(self, tv_id: int) -> list[dict[str, Any]]:
        """List the seasons of a TV show.

        Production-order episode groups come first when the show has them,
        followed by the regular seasons.
        """
        seasons: list[dict[str, Any]] = []

        response = await self._get(f"/tv/{tv_id}/episode_groups")
        groups = self._items(response, "results")
        group = next(
            (g for g in groups if g.get("type") == PRODUCTION_GROUP_TYPE),
            groups[0] if groups else None,
        )
        if group is not None and group.get("id") is not None:
            details = await self._get(f"/tv/episode_group/{group['id']}")
            for item in self._items(details, "groups"):
                episodes = self._items(item, "episodes")
                seasons.append(
                    {
                        "id": item.get("id"),
                        "name": item.get("name"),
                        "number": item.get("order"),
                        "first_air_date": episodes[0].get("air_date")
                        if episodes
                        else None,
                    }
                )

        show = await self._get(f"/tv/{tv_id}")
        for season in self._items(show, "seasons"):
            seasons.append(
                {
                    "id": season.get("id"),
                    "name": season.get("name"),
                    "number": season.get("season_number"),
                    "first_air_date": season.get("air_date"),
                }
            )
        return seasons
