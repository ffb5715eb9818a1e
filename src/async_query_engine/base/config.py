from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Engine-wide defaults, overridable through QUERY_ENGINE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUERY_ENGINE_",
        env_file=".env",
        extra="ignore",
    )

    default_page: int = Field(default=1, ge=1)
    default_page_size: int = Field(default=10, ge=1)
    max_limit: int = Field(default=100, ge=1)
    # Fields whose nil/empty-string value is still bound instead of skipped.
    # Kept for compatibility with callers that look rows up by an empty id;
    # review before adding to it.
    empty_value_fields: List[str] = Field(default_factory=lambda: ["id"])
    default_timeout: Optional[float] = Field(default=None, gt=0)
    log_sql: bool = False


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings()
