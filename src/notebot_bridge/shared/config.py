"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults. Connection strings
(DATABASE_URL, REDIS_URL, LEGACY_API_URL) are normally supplied by the
environment only.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notebot_bridge.shared.schemas import LeafShape

load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"
DEFAULT_FIXUPS_FILE = CONFIG_DIR / "compat_fixups.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class LevelConfig(BaseModel):
    """One academic tier created at the start of every migration."""

    name: str
    display_name: str
    slug: str
    sort_order: int = Field(ge=1)


def _default_levels() -> list[LevelConfig]:
    return [
        LevelConfig(name=f"level_{n}", display_name=f"Level {n}", slug=str(n), sort_order=n)
        for n in range(1, 5)
    ]


class CorpusConfig(BaseModel):
    """
    Layout of a legacy corpus snapshot directory.

    Templates are formatted with ``level`` (the level slug) and ``subject``
    (the route tail slug of a legacy subject).
    """

    root: str = "data/legacy"
    subjects_file: str = "notes/level{level}/subjects.json"
    topics_dirs: list[str] = Field(
        default_factory=lambda: [
            "notes/level{level}/subs/{subject}/topics",
            "notes/level{level}/{subject}/topics",
        ]
    )
    labs_dir: str = "labs/level{level}"
    lab_topics_subdir: str = "lab_topics"
    routines_dir: str = "routines"
    results_dir: str = "results"


class DatabaseConfig(BaseModel):
    """Relational store settings."""

    url: str = ""
    echo: bool = False


class CacheConfig(BaseModel):
    """Key-value cache settings."""

    enabled: bool = True
    backend: str = "redis"  # redis | memory
    redis_url: str = "redis://localhost:6379/0"
    ttl: int = 3600
    key_prefix: str = "notebot:"
    socket_timeout: float = 2.0


class LegacyApiConfig(BaseModel):
    """Running legacy instance used as ground truth by the reconciler."""

    base_url: str = "http://localhost:6969"
    timeout: int = 10
    max_retries: int = 3
    retry_min_wait: int = 1
    retry_max_wait: int = 5


class ReconcileConfig(BaseModel):
    """Snapshot matching settings."""

    overlap_threshold: float = 0.5


class CompatConfig(BaseModel):
    """Compat response settings."""

    base_url: str = "http://localhost:8969"
    leaf_shape: LeafShape = LeafShape.PAIR


class ResultsConfig(BaseModel):
    """Published-results page scraping settings."""

    url: str = "https://www.butex.edu.bd/results-published/"
    limit: int = 10
    cache_ttl: int = 1800
    timeout: int = 15
    user_agent: str = "NoteBot-Bridge/0.1.0"


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Top-level environment overrides
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    legacy_api_url: Optional[str] = Field(default=None, validation_alias="LEGACY_API_URL")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    levels: list[LevelConfig] = Field(default_factory=_default_levels)
    corpus: CorpusConfig = Field(default_factory=CorpusConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    legacy_api: LegacyApiConfig = Field(default_factory=LegacyApiConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    compat: CompatConfig = Field(default_factory=CompatConfig)
    results: ResultsConfig = Field(default_factory=ResultsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT

    @field_validator("levels")
    @classmethod
    def validate_levels(cls, v: list[LevelConfig]) -> list[LevelConfig]:
        """Level slugs are the root of every legacy route and must be unique."""
        slugs = [level.slug for level in v]
        if len(slugs) != len(set(slugs)):
            raise ValueError(f"Duplicate level slugs in configuration: {slugs}")
        return v

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    def get_level(self, slug: str) -> Optional[LevelConfig]:
        """Get level configuration by slug."""
        for level in self.levels:
            if level.slug == slug:
                return level
        return None

    def get_effective_database_url(self) -> str:
        """Database URL (env override or config); empty when unset."""
        return self.database_url or self.database.url

    def get_effective_redis_url(self) -> str:
        """Redis URL (env override or config)."""
        return self.redis_url or self.cache.redis_url

    def get_effective_legacy_url(self) -> str:
        """Legacy API base URL (env override or config), without trailing slash."""
        return (self.legacy_api_url or self.legacy_api.base_url).rstrip("/")

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()

    def resolve_path(self, value: str) -> Path:
        """Resolve a configured path relative to the project root."""
        path = Path(value)
        return path if path.is_absolute() else self._project_root / path


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping; a missing or empty file yields an empty dict."""
    if not path.exists():
        return {}

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    return Settings(**load_yaml_file(config_path))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Example:
        >>> settings = get_settings()
        >>> settings.reconcile.overlap_threshold
        0.5
    """
    return _create_settings()


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
