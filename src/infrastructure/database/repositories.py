"""PostgreSQL Repositories.

Repository pattern over SQLAlchemy for asset records, plus the AssetStore
adapter the sync service consumes.
"""

import logging
from typing import List, Optional, TypeVar, Generic

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.asset_models import Asset
from domain.errors import NotFoundError, TransientStoreError
from domain.stores import AssetFilter, AssetStore

from .models import Base, AssetRecord

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession, model: type[T]):
        self.session = session
        self.model = model

    async def get_by_id(self, id: str) -> Optional[T]:
        """Get entity by ID."""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()


class AssetRepository(BaseRepository[AssetRecord]):
    """Repository for asset records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AssetRecord)

    async def find_page(self, filter: AssetFilter, offset: int = 0, limit: int = 100) -> List[AssetRecord]:
        """Get one page of assets ordered by id.

        Tag matching runs in process because tags are stored as a JSON
        list; when a tag filter is present the page is cut after matching.
        """
        query = select(AssetRecord)

        if filter.organisation_id is not None:
            query = query.where(AssetRecord.organisation_id == filter.organisation_id)
        if filter.asset_types:
            query = query.where(AssetRecord.asset_type.in_(filter.asset_types))
        if filter.is_active is not None:
            query = query.where(AssetRecord.is_active == filter.is_active)

        query = query.order_by(AssetRecord.id.asc())

        if not filter.tags_any:
            result = await self.session.execute(query.limit(limit).offset(offset))
            return list(result.scalars().all())

        result = await self.session.execute(query)
        wanted = set(filter.tags_any)
        matching = [record for record in result.scalars().all() if wanted & set(record.tags or [])]
        return matching[offset:offset + limit]

    async def update_tags(self, asset_id: str, tags: List[str]) -> bool:
        """Replace an asset's tags. Returns False if the row does not exist."""
        result = await self.session.execute(
            update(AssetRecord)
            .where(AssetRecord.id == asset_id)
            .values(tags=list(tags))
        )
        return result.rowcount > 0


class SqlAlchemyAssetStore(AssetStore):
    """AssetStore backed by PostgreSQL through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine=None):
        self.session_factory = session_factory
        self.engine = engine

    async def find_assets(self, filter: Optional[AssetFilter] = None, offset: int = 0, limit: int = 100) -> List[Asset]:
        try:
            async with self.session_factory() as session:
                records = await AssetRepository(session).find_page(filter or AssetFilter(), offset, limit)
                return [record.to_domain() for record in records]
        except (OperationalError, InterfaceError) as e:
            raise TransientStoreError(f"Asset store unavailable: {e}", operation="find_assets") from e

    async def get_asset(self, asset_id: str) -> Asset:
        try:
            async with self.session_factory() as session:
                record = await AssetRepository(session).get_by_id(asset_id)
        except (OperationalError, InterfaceError) as e:
            raise TransientStoreError(f"Asset store unavailable: {e}", operation="get_asset") from e
        if record is None:
            raise NotFoundError("Asset", asset_id)
        return record.to_domain()

    async def update_asset_tags(self, asset_id: str, tags: List[str]) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    updated = await AssetRepository(session).update_tags(asset_id, tags)
        except (OperationalError, InterfaceError) as e:
            raise TransientStoreError(f"Asset store unavailable: {e}", operation="update_asset_tags") from e
        if not updated:
            raise NotFoundError("Asset", asset_id)
        logger.debug(f"Updated tags for asset {asset_id}")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database connection closed")
