"""Shared fixtures: in-memory stores and the services wired over them."""

import pytest

from application.services.data_sync_service import DataSyncService
from application.services.hierarchy_engine import HierarchyEngine
from infrastructure.in_memory_asset_store import InMemoryAssetStore
from infrastructure.in_memory_graph_store import InMemoryGraphStore


@pytest.fixture
def asset_store():
    return InMemoryAssetStore()


@pytest.fixture
def graph_store():
    return InMemoryGraphStore()


@pytest.fixture
def sync_service(asset_store, graph_store):
    return DataSyncService(asset_store, graph_store)


@pytest.fixture
def engine(graph_store):
    return HierarchyEngine(graph_store)
