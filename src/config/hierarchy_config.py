"""
Hierarchy Sync Configuration

Typed settings for the stores, the sync pass and the hierarchy views.
Values come from environment variables; default hierarchy views come from
config/hierarchy_views.yaml.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from domain.errors import ValidationError
from domain.hierarchy_models import HierarchyView

logger = logging.getLogger(__name__)

DEFAULT_VIEWS_PATH = "config/hierarchy_views.yaml"
PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


class StoreBackend(str, Enum):
    """Which store adapters the composition root wires up."""
    MEMORY = "memory"    # In-process stores (tests, local runs)
    DATABASE = "database"  # Neo4j graph + PostgreSQL assets


@dataclass
class Neo4jConfig:
    """Neo4j connection configuration."""
    uri: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: str = "password"
    database: str = "neo4j"

    @classmethod
    def from_env(cls) -> "Neo4jConfig":
        return cls(
            uri=os.getenv("NEO4J_URI", "bolt://localhost:7687"),
            username=os.getenv("NEO4J_USERNAME", "neo4j"),
            password=os.getenv("NEO4J_PASSWORD", "password"),
            database=os.getenv("NEO4J_DATABASE", "neo4j"),
        )


@dataclass
class DatabaseConfig:
    """PostgreSQL asset register connection and pool settings."""
    host: str = "localhost"
    port: int = 5432
    database: str = "assets"
    username: str = "assets"
    password: str = "assets_dev"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout_seconds: int = 30
    pool_recycle_seconds: int = 1800
    echo: bool = False
    create_tables: bool = False  # Create the assets table on startup

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "assets"),
            username=os.getenv("POSTGRES_USER", "assets"),
            password=os.getenv("POSTGRES_PASSWORD", "assets_dev"),
            pool_size=int(os.getenv("POSTGRES_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("POSTGRES_MAX_OVERFLOW", "10")),
            echo=_env_flag("POSTGRES_ECHO"),
            create_tables=_env_flag("POSTGRES_CREATE_TABLES"),
        )

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the asyncpg driver."""
        return f"postgresql+asyncpg://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class SyncConfig:
    """Sync pass defaults."""
    batch_size: int = 100
    max_concurrency: int = 8
    record_timeout_seconds: float = 30.0
    store_call_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            batch_size=int(os.getenv("SYNC_BATCH_SIZE", "100")),
            max_concurrency=int(os.getenv("SYNC_MAX_CONCURRENCY", "8")),
            record_timeout_seconds=float(os.getenv("SYNC_RECORD_TIMEOUT_SECONDS", "30")),
            store_call_timeout_seconds=float(os.getenv("STORE_CALL_TIMEOUT_SECONDS", "10")),
        )


@dataclass
class HierarchyConfig:
    """Hierarchy engine and view registry settings."""
    views_path: str = DEFAULT_VIEWS_PATH
    store_backend: StoreBackend = StoreBackend.MEMORY
    organisation_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "HierarchyConfig":
        return cls(
            views_path=os.getenv("HIERARCHY_VIEWS_PATH", DEFAULT_VIEWS_PATH),
            store_backend=StoreBackend(os.getenv("HIERARCHY_STORE_BACKEND", "memory").lower()),
            organisation_id=os.getenv("HIERARCHY_ORGANISATION_ID") or None,
        )


@dataclass
class AppConfig:
    """Complete application configuration."""
    neo4j: Neo4jConfig = field(default_factory=Neo4jConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    hierarchy: HierarchyConfig = field(default_factory=HierarchyConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        return cls(
            neo4j=Neo4jConfig.from_env(),
            database=DatabaseConfig.from_env(),
            sync=SyncConfig.from_env(),
            hierarchy=HierarchyConfig.from_env(),
        )


def _resolve_views_path(path: str) -> Optional[Path]:
    config_path = Path(path)
    if config_path.is_absolute():
        return config_path if config_path.exists() else None
    for base in (Path.cwd(), PROJECT_ROOT):
        candidate = base / config_path
        if candidate.exists():
            return candidate
    return None


def load_view_definitions(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """Load raw view definitions from YAML.

    A missing file yields no definitions; a malformed one raises.
    """
    path = path or os.getenv("HIERARCHY_VIEWS_PATH", DEFAULT_VIEWS_PATH)
    config_path = _resolve_views_path(path)
    if config_path is None:
        logger.warning(f"Hierarchy views file {path} not found; no default views loaded")
        return []

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    views = data.get("views", [])
    if not isinstance(views, list):
        raise ValidationError(f"{config_path}: 'views' must be a list")
    return views


def load_default_views(path: Optional[str] = None) -> List[HierarchyView]:
    """Load and validate the default hierarchy views."""
    return [HierarchyView.from_dict(definition) for definition in load_view_definitions(path)]


# Global config instance (lazy loaded)
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration (lazy loaded)."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reload_config() -> AppConfig:
    """Re-read configuration from the environment."""
    global _config
    _config = AppConfig.from_env()
    return _config
