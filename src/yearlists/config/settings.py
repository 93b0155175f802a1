"""Application settings loaded from environment variables.

Hey future me - every section is a plain pydantic model nested inside Settings, so
code reads `settings.database.url` or `settings.lists.max_year`. Environment
variables use the YEARLISTS_ prefix and a double underscore for nesting:

    YEARLISTS_DATABASE__URL=postgresql+asyncpg://user:pw@db/yearlists
    YEARLISTS_LISTS__SETUP_DISMISS_HOURS=48
    YEARLISTS_OBSERVABILITY__LOG_JSON_FORMAT=true
"""

from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection and pool settings."""

    url: str = "sqlite+aiosqlite:///./yearlists.db"
    echo: bool = False
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)
    pool_pre_ping: bool = True


class ListSettings(BaseModel):
    """Business rules for lists and the setup wizard."""

    min_year: int = 1000
    max_year: int = 9999
    # How long "dismiss" hides the setup wizard
    setup_dismiss_hours: int = Field(default=24, ge=1)
    uncategorized_group_name: str = "Uncategorized"

    @model_validator(mode="after")
    def _check_year_range(self) -> "ListSettings":
        if self.min_year > self.max_year:
            raise ValueError("min_year must not be greater than max_year")
        return self


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="YEARLISTS_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "yearlists"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    lists: ListSettings = Field(default_factory=ListSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


# Cached so the whole process shares one Settings instance. Tests build their own
# Settings(...) objects instead of going through this.
@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
