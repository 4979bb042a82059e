"""
Configuration management for the Gemini Discord bot.
Uses Pydantic Settings for type-safe configuration with environment variable
and optional YAML file support.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .exceptions import ConfigurationError, UnknownModelError

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "GEMISCORD_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config/bot-config.yaml"


class DiscordSettings(BaseModel):
    """Discord-specific configuration settings."""

    token: SecretStr = Field(
        default=SecretStr(""),
        description="Discord bot token from Discord Developer Portal",
    )
    tools_enabled: bool = Field(
        default=True,
        description="Offer function tools (web search, character count) for chat replies",
    )


class ModelLimits(BaseModel):
    """Published quota of a single Gemini model."""

    rpm: int = Field(gt=0, description="Requests per minute")
    tpm: int = Field(gt=0, description="Tokens per minute")
    rpd: int = Field(gt=0, description="Requests per day")
    priority: int = Field(
        default=0, ge=0, description="Selection order, lower values are tried first"
    )


def _default_models() -> Dict[str, ModelLimits]:
    return {
        "gemini-2.5-flash": ModelLimits(rpm=10, tpm=250000, rpd=500, priority=0),
        "gemini-2.0-flash": ModelLimits(rpm=15, tpm=1000000, rpd=1500, priority=1),
        "gemini-2.5-flash-lite-preview-06-17": ModelLimits(
            rpm=15, tpm=250000, rpd=500, priority=2
        ),
    }


class GeminiSettings(BaseModel):
    """Gemini API configuration (OpenAI-compatible endpoint)."""

    api_key: SecretStr = Field(
        default=SecretStr(""), description="Gemini API key from Google AI Studio"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible base URL for Gemini",
    )
    models: Dict[str, ModelLimits] = Field(
        default_factory=_default_models,
        description="Per-model quota limits and selection priority",
    )
    temperature: float = Field(
        default=0.9, ge=0.0, le=2.0, description="Sampling temperature"
    )
    max_output_tokens: int = Field(
        default=8192, ge=1, le=65536, description="Maximum tokens per generation"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, le=300, description="Timeout for a single model call"
    )

    @field_validator("models")
    def validate_models(cls, v):
        """Ensure at least one model is configured."""
        if not v:
            raise ValueError(
                "At least one Gemini model must be configured under gemini.models"
            )
        return v


class BraveSearchSettings(BaseModel):
    """Brave Search API configuration for web search."""

    api_key: SecretStr = Field(
        default=SecretStr(""), description="Brave Search subscription token"
    )
    endpoint: str = Field(
        default="https://api.search.brave.com/res/v1/web/search",
        description="Brave web search endpoint",
    )
    free_quota: int = Field(
        default=2000, ge=0, description="Free searches available per month"
    )
    default_count: int = Field(default=10, ge=1, le=20)
    max_count: int = Field(default=20, ge=1, le=20)
    default_region: Literal["JP", "US", "global"] = Field(default="JP")
    timeout_seconds: float = Field(default=10.0, gt=0, le=60)
    min_interval_seconds: float = Field(
        default=1.0, ge=0, description="Minimum spacing between Brave requests"
    )


class TimeWindowSettings(BaseModel):
    """Window lengths in milliseconds."""

    minute: int = Field(default=60_000, gt=0)
    day: int = Field(default=86_400_000, gt=0)
    month: int = Field(default=2_592_000_000, gt=0)


class RateLimitSettings(BaseModel):
    """Quota tracking configuration."""

    safety_buffer: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Fraction of each published limit the bot allows itself to use",
    )
    time_windows: TimeWindowSettings = Field(default_factory=TimeWindowSettings)
    store_timeout_seconds: float = Field(
        default=5.0, gt=0, le=60, description="Timeout for a single counter store call"
    )


class ResponseSettings(BaseModel):
    """Outbound message handling."""

    max_characters: int = Field(
        default=2000, ge=1, description="Hard length limit of a single Discord message"
    )
    strategy: Literal["split", "compress"] = Field(default="compress")
    split_max_length: int = Field(
        default=1900, ge=1, description="Chunk size used when estimating split count"
    )
    split_delay_seconds: float = Field(default=1.0, ge=0, le=10)
    compress_instruction: str = Field(
        default=(
            "Rewrite the following answer so that it fits within {max_characters} "
            "characters. Keep the important facts, drop filler, and reply with the "
            "rewritten answer only."
        )
    )


class OrchestrationSettings(BaseModel):
    """Tool-calling loop configuration."""

    max_tool_rounds: int = Field(
        default=3, ge=1, le=10, description="Maximum tool rounds per request"
    )
    tool_timeout_seconds: float = Field(default=15.0, gt=0, le=120)
    base_system_prompt: str = Field(
        default=(
            "You are a friendly and knowledgeable assistant in a Discord server. "
            "Answer in the language the user writes in."
        )
    )
    auto_response_suffix: str = Field(
        default=(
            "Discord messages are limited to {max_characters} characters. Use the "
            "count_characters tool when you are unsure whether your answer fits, "
            "and use search_web for recent or factual information."
        )
    )


class ToolSettings(BaseModel):
    """Descriptions of the function tools offered to the model."""

    search_description: str = Field(
        default=(
            "Search the web for up-to-date information. Use it for news, recent "
            "events, prices, or facts you are not sure about."
        )
    )
    count_description: str = Field(
        default=(
            "Count the characters of a draft message and report whether it fits "
            "into a single Discord message."
        )
    )


class DatabaseSettings(BaseModel):
    """Database configuration for the persistent counter store."""

    url: str = Field(
        default="sqlite+aiosqlite:///config/bot.sqlite",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(
        default=False, description="Enable SQL query logging (useful for debugging)"
    )

    @field_validator("url")
    def validate_database_url(cls, v):
        """Ensure an async driver supported by the counter store is used."""
        if not (v.startswith("sqlite+aiosqlite") or v.startswith("postgresql")):
            raise ValueError(
                "Database URL must use sqlite+aiosqlite or postgresql+asyncpg"
            )
        return v

    @property
    def url_for_sqlalchemy(self) -> str:
        """Get database URL in format expected by SQLAlchemy (with async driver)."""
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+asyncpg://")
        return self.url


class Settings(BaseSettings):
    """Main configuration class for the bot."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_nested_delimiter="__",
        env_prefix="GEMISCORD_",
    )

    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    brave_search: BraveSearchSettings = Field(default_factory=BraveSearchSettings)
    rate_limiting: RateLimitSettings = Field(default_factory=RateLimitSettings)
    response: ResponseSettings = Field(default_factory=ResponseSettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["colored", "simple", "json"] = Field(default="colored")
    log_file: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def validate_response_lengths(self):
        if self.response.split_max_length > self.response.max_characters:
            raise ValueError(
                "response.split_max_length must not exceed response.max_characters"
            )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the YAML file; missing files are skipped.
        yaml_file = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
            file_secret_settings,
        )


class ConfigManager:
    """
    Owns the live Settings instance.

    Components keep a reference to the manager and read ``settings`` on every
    call, so ``reload()`` takes effect without restarting the process.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        loader: Callable[[], Settings] = Settings,
    ):
        self._loader = loader
        self._settings = settings if settings is not None else self._load()

    @property
    def settings(self) -> Settings:
        return self._settings

    def _load(self) -> Settings:
        try:
            return self._loader()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed YAML configuration: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read configuration: {e}") from e

    def reload(self) -> Settings:
        """Re-read environment and YAML; keep the previous settings on failure."""
        new_settings = self._load()
        self._settings = new_settings
        logger.info(
            f"🔄 Configuration reloaded ({len(new_settings.gemini.models)} models)"
        )
        return new_settings

    def model_limits(self, model: str) -> ModelLimits:
        limits = self._settings.gemini.models.get(model)
        if limits is None:
            raise UnknownModelError(model)
        return limits

    def models_by_priority(self) -> List[str]:
        """Configured model names ordered by (priority, name)."""
        models = self._settings.gemini.models
        return sorted(models, key=lambda name: (models[name].priority, name))

    def summary(self) -> Dict[str, Any]:
        settings = self._settings
        return {
            "models": self.models_by_priority(),
            "safety_buffer": settings.rate_limiting.safety_buffer,
            "search_free_quota": settings.brave_search.free_quota,
            "response_strategy": settings.response.strategy,
            "max_characters": settings.response.max_characters,
            "database": settings.database.url,
        }
