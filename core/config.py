"""
Application Settings.

All runtime configuration is read from environment variables (or a local
`.env` file) through pydantic-settings. A single cached `Settings` instance is
shared by the application; tests build their own instances and inject them.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Vanity & user lookup proxy settings"""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )

    # Application
    APP_NAME: str = "Vanity & User Lookup API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Upstream (Discord REST API)
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_API_BASE_URL: str = "https://discord.com/api"
    DISCORD_API_VERSION: str = "v10"
    DISCORD_CDN_URL: str = "https://cdn.discordapp.com"
    DISCORD_USER_AGENT: str = "DiscordBot (https://discordtest.com, 1.0.0)"
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    UPSTREAM_MIN_INTERVAL_SECONDS: float = 2.0  # 0 disables pacing
    UPSTREAM_RETRY_ATTEMPTS: int = 1
    UPSTREAM_RETRY_BASE_DELAY: float = 0.5
    UPSTREAM_RETRY_BACKOFF: float = 2.0
    DEFAULT_RETRY_AFTER_SECONDS: int = 5

    # Refuse to start without a bot token instead of failing per request
    STRICT_STARTUP: bool = False

    # Cache
    CACHE_ENABLED: bool = True
    CACHE_MAX_SIZE: int = 1000
    VANITY_CACHE_TTL: int = 60
    USER_CACHE_TTL: int = 1800

    # Per-client rate limiting
    RATE_LIMIT_ENABLED: bool = True
    VANITY_RATE_LIMIT_REQUESTS: int = 5
    VANITY_RATE_LIMIT_WINDOW: int = 5
    USER_RATE_LIMIT_REQUESTS: int = 30
    USER_RATE_LIMIT_WINDOW: int = 60

    # Share one upstream call between concurrent identical lookups
    DEDUPE_ENABLED: bool = True

    # Ephemeral state backend: "memory" or "redis"
    STATE_BACKEND: str = "memory"
    REDIS_URL: Optional[str] = None

    # Browser
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    STATIC_DIR: Optional[str] = None

    @property
    def discord_api_url(self) -> str:
        return f"{self.DISCORD_API_BASE_URL.rstrip('/')}/{self.DISCORD_API_VERSION}"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance"""
    return Settings()
