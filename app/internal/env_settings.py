from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseModel):
    search_ttl: int = 300
    """TTL for search results (default: 5 minutes)"""
    details_ttl: int = 1800
    """TTL for work details and chapter lists (default: 30 minutes)"""
    pages_ttl: int = 3600
    """TTL for chapter page lists (default: 1 hour)"""
    advanced_search_ttl: int = 300
    """TTL for filtered catalogue searches (default: 5 minutes)"""
    recent_ttl: int = 180
    """TTL for recent chapter updates, which change often (default: 3 minutes)"""
    new_ttl: int = 600
    """TTL for newly added works (default: 10 minutes)"""
    home_ttl: int = 300
    """TTL for the featured and trending front page (default: 5 minutes)"""

    image_ttl: int = 3600
    """How long a proxied image stays servable from memory (default: 1 hour)"""
    image_capacity: int = 100
    """Maximum number of images kept in memory. The oldest inserted image is evicted first."""


class ApplicationSettings(BaseModel):
    debug: bool = False
    port: int = 8000
    version: str = "local"
    config_dir: str = "/config"
    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)"""
    log_format: str = "text"
    """Log format: 'text' for human-readable, 'json' for machine-readable"""
    log_file: str | None = None
    """Optional log file path (relative to config_dir/logs/). If not set, logs to stdout only"""

    allowed_origins: str = "*"
    """Comma separated list of origins allowed by CORS"""

    default_provider: str = "mangapill"
    """Provider used when a request does not name one"""

    request_timeout: float = 20.0
    """Upper bound (seconds) for a single upstream request. Timed out requests are not retried."""

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    def get_allowed_origins(self) -> list[str]:
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(  # pyright: ignore[reportUnannotatedClassAttribute]
        env_prefix="MMA_",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        env_file=(".env.local", ".env"),
        extra="ignore",
    )

    app: ApplicationSettings = ApplicationSettings()
    cache: CacheSettings = CacheSettings()
