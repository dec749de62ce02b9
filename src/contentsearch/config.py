from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contentsearch.exceptions import ConfigError


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "contentsearch"
    env: str = "development"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()


class SearchConfig(BaseModel):
    """Search service defaults."""

    languages: Optional[str] = None  # Comma-separated prioritized codes, e.g. "eng-GB, ger-DE"
    # Characters of a hit examined when building highlight fragments
    highlight_char_limit: int = 300
    # Comma-separated capability names the engine may advertise, e.g. "scoring, suggest"
    capabilities: Optional[str] = None

    @property
    def default_languages(self) -> List[str]:
        return _split_csv(self.languages)

    @property
    def capability_names(self) -> Optional[List[str]]:
        if self.capabilities is None:
            return None
        return [name.upper() for name in _split_csv(self.capabilities)]


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="CONTENTSEARCH_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    search: SearchConfig = SearchConfig()


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
