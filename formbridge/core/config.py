from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import AnyHttpUrl, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FORMBRIDGE_",
        extra="ignore",
    )

    app_name: str = Field(default="FormBridge Integrations")
    environment: str = Field(default="development")
    version: str = Field(default="1.0.0")
    database_url: str = Field(default="sqlite+aiosqlite:///./formbridge.db")
    allowed_origins: List[AnyHttpUrl] = Field(default_factory=list)

    # Process logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=30, gt=0, description="Default timeout for outbound API calls")
    http_user_agent: Optional[str] = Field(default=None, description="Overrides the derived User-Agent header")

    # Activity log defaults; the live values are stored under the general settings record
    enable_logging: bool = Field(default=True)
    log_retention_days: int = Field(default=30, ge=1)

    # Submission dispatch
    dispatch_timeout_seconds: float = Field(default=60, ge=0, description="Per-adapter bound, 0 disables it")
    dispatch_concurrently: bool = Field(default=False)

    @model_validator(mode="after")
    def derive_user_agent(self) -> "Settings":
        if not self.http_user_agent:
            self.http_user_agent = f"FormBridge-Integrations/{self.version}"
        return self


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    The same instance is returned for the lifetime of the process; call
    clear_settings_cache() to force the environment to be re-read.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next get_settings() call re-reads the environment."""
    get_settings.cache_clear()
