"""Database Infrastructure Module.

PostgreSQL connectivity for the asset record store using SQLAlchemy with
async support.
"""

from .session import create_engine, create_session_factory, create_tables
from .models import Base, AssetRecord
from .repositories import AssetRepository, SqlAlchemyAssetStore

__all__ = [
    "create_engine",
    "create_session_factory",
    "create_tables",
    "Base",
    "AssetRecord",
    "AssetRepository",
    "SqlAlchemyAssetStore",
]
