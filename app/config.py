from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Key/value store backing the message collection
    DATABASE_URL: str = "sqlite:///./forbias.db"

    LOG_LEVEL: str = "INFO"

    # Spotify Web API (client credentials flow)
    SPOTIFY_CLIENT_ID: str = ""
    SPOTIFY_CLIENT_SECRET: str = ""
    SPOTIFY_SEARCH_LIMIT: int = 10
    SPOTIFY_TIMEOUT_SECONDS: float = 7.0

    # Cookie identifying a browser, selects its liked-set
    CLIENT_COOKIE_NAME: str = "client_id"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
