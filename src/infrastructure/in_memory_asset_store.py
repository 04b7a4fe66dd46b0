"""In-memory asset store for tests and local runs."""

import asyncio
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from domain.asset_models import Asset
from domain.errors import NotFoundError
from domain.stores import AssetFilter, AssetStore

logger = logging.getLogger(__name__)


class InMemoryAssetStore(AssetStore):
    """Asset records kept in a dict, paged in id order."""

    def __init__(self, assets: Optional[Iterable[Asset]] = None):
        self._assets: Dict[str, Asset] = {}
        for asset in assets or []:
            self.put(asset)

    def put(self, asset: Asset) -> None:
        """Insert or replace a record."""
        self._assets[asset.id] = replace(asset, tags=list(asset.tags))

    def remove(self, asset_id: str) -> None:
        """Delete a record (leaves any graph vertex behind as an orphan)."""
        self._assets.pop(asset_id, None)

    async def find_assets(self, filter: Optional[AssetFilter] = None, offset: int = 0, limit: int = 100) -> List[Asset]:
        await asyncio.sleep(0)
        filter = filter or AssetFilter()
        matching = [self._assets[key] for key in sorted(self._assets) if filter.matches(self._assets[key])]
        return [replace(asset, tags=list(asset.tags)) for asset in matching[offset:offset + limit]]

    async def get_asset(self, asset_id: str) -> Asset:
        await asyncio.sleep(0)
        asset = self._assets.get(asset_id)
        if asset is None:
            raise NotFoundError("Asset", asset_id)
        return replace(asset, tags=list(asset.tags))

    async def update_asset_tags(self, asset_id: str, tags: List[str]) -> None:
        await asyncio.sleep(0)
        if asset_id not in self._assets:
            raise NotFoundError("Asset", asset_id)
        self._assets[asset_id] = replace(self._assets[asset_id], tags=list(tags))
