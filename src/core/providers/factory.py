"""Builds the match provider of a job."""

from src.config.settings import AnimeMatcherConfig, get_config
from src.core.providers.base import MatchProvider
from src.core.providers.bgmtv import BgmTvClient
from src.core.providers.llm import LLMMatchProvider, Tool
from src.core.providers.prompts import MATCH_BGM_PROMPT, MATCH_TMDB_PROMPT
from src.core.providers.tmdb import TmdbClient
from src.exceptions import UnsupportedProviderError
from src.models.enums import Platform, Provider

__all__ = ["create_match_provider"]


def _query_schema(description: str, **extra: dict) -> dict:
    properties = {"query": {"type": "string", "description": description}}
    properties.update(extra)
    return {"type": "object", "properties": properties, "required": ["query"]}


def _bgmtv_tools(client: BgmTvClient) -> list[Tool]:
    return [
        Tool(
            name="bgm_tv_search",
            description="Search for anime subjects on BgmTV",
            parameters=_query_schema(
                "The search query for bgm tv",
                start_air_year={
                    "type": "string",
                    "description": "The start year for the search, example: 2024",
                },
            ),
            handler=client.search,
        )
    ]


def _tmdb_tools(client: TmdbClient) -> list[Tool]:
    return [
        Tool(
            name="tmdb_search_tv_show",
            description="Search for TV shows on TMDB",
            parameters=_query_schema("The search query for TV shows"),
            handler=client.search_tv,
        ),
        Tool(
            name="tmdb_search_movie",
            description="Search for movies on TMDB",
            parameters=_query_schema("The search query for movies"),
            handler=client.search_movie,
        ),
        Tool(
            name="tmdb_season",
            description="Get the seasons of a TV show",
            parameters={
                "type": "object",
                "properties": {
                    "tv_id": {
                        "type": "number",
                        "description": "The TMDB ID of the TV show",
                    }
                },
                "required": ["tv_id"],
            },
            handler=client.seasons,
        ),
    ]


def create_match_provider(
    platform: Platform,
    provider: Provider | str,
    model: str,
    config: AnimeMatcherConfig | None = None,
) -> MatchProvider:
    """Create the LLM agent matching anime on ``platform``.

    Args:
        platform (Platform): Catalog the agent searches.
        provider (Provider | str): LLM backend selected for the job.
        model (str): Model served by the backend.
        config (AnimeMatcherConfig | None): Configuration; the global one by default.

    Returns:
        MatchProvider: A ready-to-use agent.

    Raises:
        UnsupportedProviderError: If no adapter exists for ``provider``.
    """
    config = config or get_config()
    try:
        provider = Provider(provider)
    except ValueError as e:
        raise UnsupportedProviderError(f"Unsupported provider '{provider}'") from e

    provider_config = config.get_provider(provider)
    api_key = provider_config.api_key

    if platform == Platform.BGMTV:
        catalog = BgmTvClient(config.bgmtv)
        tools = _bgmtv_tools(catalog)
        prompt = MATCH_BGM_PROMPT
    else:
        catalog = TmdbClient(config.tmdb)
        tools = _tmdb_tools(catalog)
        prompt = MATCH_TMDB_PROMPT

    return LLMMatchProvider(
        provider=provider,
        model=model,
        platform=platform,
        base_url=provider_config.base_url or "",
        api_key=api_key.get_secret_value() if api_key else None,
        system_prompt=prompt,
        tools=tools,
        matching=config.matching,
        catalogs=[catalog],
    )
