"""AnimeMatcher Configuration Settings."""

from __future__ import annotations

import os
from functools import cached_property, lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from src.models.enums import BaseStrEnum, Provider
from src.utils.logging import _get_logger

__all__ = [
    "AniListConfig",
    "AnimeMatcherConfig",
    "BgmTvConfig",
    "LogLevel",
    "MatchingConfig",
    "ProviderConfig",
    "TmdbConfig",
    "WebConfig",
    "get_config",
]

_log = _get_logger(__name__)

DEFAULT_PROVIDER_URLS: dict[Provider, str] = {
    Provider.XAI: "https://api.x.ai/v1",
    Provider.DEEPSEEK: "https://api.deepseek.com/v1",
    Provider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai",
    Provider.OPENAI: "https://api.openai.com/v1",
}


def get_data_path() -> Path:
    """Resolve the data directory from the environment.

    Returns:
        Path: ``$AM_DATA_PATH`` or ``./data``, resolved.
    """
    return Path(os.getenv("AM_DATA_PATH", "./data")).resolve()


def find_yaml_config_file() -> Path:
    """Find the YAML configuration file in the data path.

    Returns:
        Path: The path to an existing YAML configuration file or the default location.
    """
    data_path = get_data_path()

    for ext in ("yaml", "yml"):
        yaml_file = data_path / f"config.{ext}"
        if yaml_file.exists():
            _log.debug(f"Using YAML config file: {yaml_file.resolve()}")
            return yaml_file.resolve()
    return data_path / "config.yaml"


class LogLevel(BaseStrEnum):
    """Enumeration of available logging levels.

    Note: SUCCESS is a custom level used by this application.
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class WebConfig(BaseModel):
    """Configuration for the embedded web server."""

    host: str = Field(default="127.0.0.1", description="Host for the web server")
    port: int = Field(default=8080, description="Port for the web server")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser",
    )


class ProviderConfig(BaseModel):
    """Credentials and endpoint of one LLM provider."""

    api_key: SecretStr | None = Field(default=None, description="Provider API key")
    base_url: str | None = Field(
        default=None,
        description="OpenAI-compatible base URL; the provider default when unset",
    )


class TmdbConfig(BaseModel):
    """Configuration of the TMDB search tools."""

    api_key: SecretStr | None = Field(default=None, description="TMDB API key")
    base_url: str = Field(
        default="https://api.themoviedb.org/3", description="TMDB API base URL"
    )
    language: str = Field(default="zh-CN", description="Language of search results")


class BgmTvConfig(BaseModel):
    """Configuration of the Bangumi search tool."""

    base_url: str = Field(default="https://api.bgm.tv", description="BgmTV API URL")
    user_agent: str = Field(
        default="AnimeMatcher/anime-matcher-agent",
        description="User agent required by the BgmTV API",
    )


class AniListConfig(BaseModel):
    """Configuration of the AniList catalog import."""

    base_url: str = Field(
        default="https://graphql.anilist.co", description="AniList GraphQL endpoint"
    )
    per_page: int = Field(
        default=50, ge=1, le=50, description="Media requested per page"
    )


class MatchingConfig(BaseModel):
    """Retry and budget settings applied to every provider call."""

    retry_count: int = Field(
        default=2, ge=1, description="Attempts per anime before it counts as failed"
    )
    retry_delay: float = Field(
        default=10.0, ge=0, description="Seconds to wait between attempts"
    )
    request_timeout: float = Field(
        default=300.0, gt=0, description="Seconds allowed for one match attempt"
    )
    max_turns: int = Field(
        default=10, ge=1, description="Maximum chat completions per match attempt"
    )
    temperature: float = Field(default=0.1, ge=0, le=2)
    max_tokens: int = Field(default=8192, ge=1)


class AnimeMatcherConfig(BaseSettings):
    """Application configuration sourced from ``<data path>/config.yaml``."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Logging level for the application"
    )
    web: WebConfig = Field(
        default_factory=WebConfig, description="Embedded web server configuration"
    )
    providers: dict[Provider, ProviderConfig] = Field(
        default_factory=dict, description="LLM provider credentials by provider name"
    )
    tmdb: TmdbConfig = Field(default_factory=TmdbConfig)
    bgmtv: BgmTvConfig = Field(default_factory=BgmTvConfig)
    anilist: AniListConfig = Field(default_factory=AniListConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)

    @cached_property
    def data_path(self) -> Path:
        """Get the data path for AnimeMatcher.

        Returns:
            Path: The data path resolved from the environment or default location.
        """
        return get_data_path()

    @cached_property
    def export_path(self) -> Path:
        """Directory holding per-year export files and ``dist.json``."""
        return self.data_path / "export"

    @cached_property
    def anilist_path(self) -> Path:
        """Directory holding the per-year AniList dumps."""
        return self.data_path / "anilist"

    @cached_property
    def seed_path(self) -> Path:
        """Directory scanned for seed anime lists."""
        return self.data_path / "seed"

    @model_validator(mode="after")
    def validate_providers(self) -> AnimeMatcherConfig:
        """Warn about providers that cannot be used for lack of an API key.

        Returns:
            AnimeMatcherConfig: Self, unchanged.
        """
        for provider, provider_config in self.providers.items():
            if provider_config.api_key is None:
                _log.warning(
                    f"Provider $$'{provider}'$$ has no api_key configured; jobs "
                    "using it will fail"
                )
        return self

    def get_provider(self, provider: Provider) -> ProviderConfig:
        """Return the configuration of a provider, with the default base URL.

        Args:
            provider (Provider): Provider to look up.

        Returns:
            ProviderConfig: The configured entry, or an empty one.
        """
        provider_config = self.providers.get(provider, ProviderConfig())
        if provider_config.base_url is None:
            provider_config = provider_config.model_copy(
                update={"base_url": DEFAULT_PROVIDER_URLS[provider]}
            )
        return provider_config

    def __str__(self) -> str:
        """Creates a human-readable representation of the configuration."""
        providers = ", ".join(str(p) for p in self.providers) or "none"
        return (
            f"AnimeMatcher Config: providers [{providers}], "
            f"DATA_PATH: {self.data_path}, LOG_LEVEL: {self.log_level}"
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of configuration sources."""
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_yaml_config_file()),
        )

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> AnimeMatcherConfig:
    """Get the singleton instance of AnimeMatcherConfig.

    Returns:
        AnimeMatcherConfig: The singleton configuration instance.
    """
    return AnimeMatcherConfig()
