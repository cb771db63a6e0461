"""
Configuration management for crossfeed.

Uses Pydantic for validation and pydantic-settings for environment variable support.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FetcherConfig(BaseSettings):
    """Upstream HTTP fetcher configuration."""

    model_config = SettingsConfigDict(env_prefix="FETCHER_")

    # HTTP settings
    timeout_seconds: float = Field(default=30.0, gt=0, le=300, description="Request timeout")
    user_agent: str = Field(
        default="crossfeed/0.1.0 (+https://github.com/crossfeed)",
        description="User-Agent header"
    )
    follow_redirects: bool = Field(default=True)

    # Endpoints
    bluesky_base_url: str = Field(
        default="https://public.api.bsky.app",
        description="Bluesky AppView base URL"
    )

    # Page sizes (upstream maximums)
    bluesky_page_size: int = Field(default=50, ge=1, le=100, description="Bluesky feed page size")
    bluesky_likes_page_size: int = Field(default=100, ge=1, le=100)
    mastodon_page_size: int = Field(default=40, ge=1, le=40, description="Mastodon page size")

    @field_validator("bluesky_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base URL: {v!r}")
        return v


class DedupConfig(BaseSettings):
    """Cross-post deduplication configuration."""

    model_config = SettingsConfigDict(env_prefix="DEDUP_")

    enabled: bool = Field(default=True, description="Group cross-posted content")

    # Similarity threshold (0.0 - 1.0)
    similarity_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Jaro-Winkler similarity threshold"
    )
    time_window_hours: float = Field(
        default=24.0,
        gt=0,
        description="Max distance between the two posts of a pair"
    )


class RankingConfig(BaseSettings):
    """Best match ranking weights."""

    model_config = SettingsConfigDict(env_prefix="RANKING_")

    affinity_bonus: int = Field(default=1000, ge=0, description="Bonus for liked authors")
    like_weight: int = Field(default=1, ge=0)
    repost_weight: int = Field(default=2, ge=0)


class AffinityConfig(BaseSettings):
    """Affinity index configuration."""

    model_config = SettingsConfigDict(env_prefix="AFFINITY_")

    max_pages: int = Field(default=15, ge=1, le=200, description="Max history pages per build")
    cache_ttl_seconds: int = Field(default=3600, ge=0, description="Cached index lifetime")
    source: str = Field(default="likes", description="History source: likes or bookmarks")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        """Validate history source."""
        v = v.lower().strip()
        if v not in ("likes", "bookmarks"):
            raise ValueError(f"Invalid affinity source: {v!r}. Must be 'likes' or 'bookmarks'")
        return v


class SearchConfig(BaseSettings):
    """Network search configuration."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    page_limit: int = Field(default=5, ge=1, le=50, description="Pages fetched per platform")
    bluesky_page_size: int = Field(default=100, ge=1, le=100)
    default_sort: str = Field(default="best_match", description="best_match, likes or newest")

    @field_validator("default_sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        """Validate sort mode."""
        valid = ["best_match", "likes", "newest"]
        if v not in valid:
            raise ValueError(f"Sort mode must be one of {valid}")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <magenta>{extra[platform]: <8}</magenta> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Log format"
    )

    # File logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_path: str = Field(default="logs/crossfeed.log", description="Log file path")
    rotation: str = Field(default="50 MB", description="Log rotation size")
    retention: str = Field(default="14 days", description="Log retention period")

    # Console logging
    console_enabled: bool = Field(default=True, description="Enable console logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CROSSFEED_",
        case_sensitive=False,
    )

    # Application
    version: str = Field(default="0.1.0", description="Application version")
    app_name: str = Field(default="crossfeed", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    # Sub-configurations
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    deduplicator: DedupConfig = Field(default_factory=DedupConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    affinity: AffinityConfig = Field(default_factory=AffinityConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


_SECTIONS = {
    "fetcher": FetcherConfig,
    "deduplicator": DedupConfig,
    "ranking": RankingConfig,
    "affinity": AffinityConfig,
    "search": SearchConfig,
    "logging": LoggingConfig,
}

# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config_from_yaml(yaml_path: str) -> Config:
    """Load configuration from a YAML file.

    Note: Values loaded from YAML take precedence over environment variables.

    Args:
        yaml_path: Path to the YAML configuration file.

    Returns:
        Config instance loaded from the file.
    """
    import yaml

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with yaml_file.open("r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    main_config = {}
    for key, value in config_dict.items():
        if key not in _SECTIONS:
            main_config[key] = value

    # Nested sections are built separately so env vars still fill unset fields
    for key, config_class in _SECTIONS.items():
        main_config[key] = config_class(**(config_dict.get(key) or {}))

    return Config(**main_config)


def reload_config(yaml_path: str = "config/config.yaml") -> Config:
    """Reload configuration from environment and YAML files."""
    global _config
    _config = None

    if Path(yaml_path).exists():
        _config = load_config_from_yaml(yaml_path)
    else:
        _config = Config()

    return _config


def set_config(config: Optional[Config]) -> None:
    """Replace the global configuration (None resets to defaults on next access)."""
    global _config
    _config = config
