
# src/composition_root.py

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from application.jobs.sync_job import HierarchySyncJob
from application.services.asset_graph_operations import AssetGraphOperations
from application.services.cross_hierarchy_resolver import CrossHierarchyResolver
from application.services.data_sync_service import DataSyncService
from application.services.hierarchy_engine import HierarchyEngine
from application.services.hierarchy_view_registry import HierarchyViewRegistry
from config.hierarchy_config import AppConfig, StoreBackend, get_config, load_default_views
from domain.stores import AssetStore, GraphStore
from domain.sync_models import SyncOptions
from infrastructure.in_memory_asset_store import InMemoryAssetStore
from infrastructure.in_memory_graph_store import InMemoryGraphStore
from infrastructure.store_calls import TimeoutAssetStore, TimeoutGraphStore

logger = logging.getLogger(__name__)


@dataclass
class HierarchyServices:
    """Every service of the subsystem, wired over one pair of stores."""
    asset_store: AssetStore
    graph_store: GraphStore
    operations: AssetGraphOperations
    sync_service: DataSyncService
    engine: HierarchyEngine
    registry: HierarchyViewRegistry
    resolver: CrossHierarchyResolver
    sync_job: HierarchySyncJob
    _closers: List[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def close(self) -> None:
        """Release store connections."""
        for closer in self._closers:
            await closer()


# --- Store Factories ---

async def bootstrap_database_stores(config: AppConfig) -> Tuple[AssetStore, GraphStore]:
    """Create the Neo4j graph store and the PostgreSQL asset store."""
    from infrastructure.database import (
        SqlAlchemyAssetStore,
        create_engine,
        create_session_factory,
        create_tables,
    )
    from infrastructure.neo4j_graph_store import Neo4jGraphStore

    graph_store = Neo4jGraphStore(
        uri=config.neo4j.uri,
        username=config.neo4j.username,
        password=config.neo4j.password,
        database=config.neo4j.database,
    )
    await graph_store.ensure_constraints()
    logger.info(f"Using Neo4j graph store at {config.neo4j.uri}")

    db_config = config.database
    engine = create_engine(db_config)
    if db_config.create_tables:
        await create_tables(engine)
    asset_store = SqlAlchemyAssetStore(create_session_factory(engine), engine=engine)
    logger.info(f"Using PostgreSQL asset store at {db_config.host}:{db_config.port}/{db_config.database}")
    return asset_store, graph_store


def bootstrap_memory_stores() -> Tuple[AssetStore, GraphStore]:
    """Create empty in-process stores."""
    logger.info("Using in-memory asset and graph stores")
    return InMemoryAssetStore(), InMemoryGraphStore()


# --- Service Wiring ---

def build_hierarchy_services(
    asset_store: AssetStore,
    graph_store: GraphStore,
    config: Optional[AppConfig] = None,
) -> HierarchyServices:
    """Wire every service over the given stores.

    Store calls are bounded by STORE_CALL_TIMEOUT_SECONDS; default views
    come from the configured YAML file.
    """
    config = config or get_config()
    timeout = config.sync.store_call_timeout_seconds
    bounded_assets = TimeoutAssetStore(asset_store, timeout)
    bounded_graph = TimeoutGraphStore(graph_store, timeout)

    operations = AssetGraphOperations(bounded_graph, bounded_assets)
    sync_service = DataSyncService(bounded_assets, bounded_graph, operations)
    engine = HierarchyEngine(bounded_graph, organisation_id=config.hierarchy.organisation_id)
    registry = HierarchyViewRegistry(engine, load_default_views(config.hierarchy.views_path))
    resolver = CrossHierarchyResolver(engine)
    sync_job = HierarchySyncJob(
        sync_service,
        engine,
        default_options=SyncOptions(
            batch_size=config.sync.batch_size,
            max_concurrency=config.sync.max_concurrency,
            record_timeout_seconds=config.sync.record_timeout_seconds,
        ),
    )

    return HierarchyServices(
        asset_store=bounded_assets,
        graph_store=bounded_graph,
        operations=operations,
        sync_service=sync_service,
        engine=engine,
        registry=registry,
        resolver=resolver,
        sync_job=sync_job,
        _closers=[bounded_graph.close, bounded_assets.close],
    )


async def bootstrap_hierarchy_services(config: Optional[AppConfig] = None) -> HierarchyServices:
    """Initialize stores per HIERARCHY_STORE_BACKEND and wire the services."""
    config = config or get_config()
    backend = config.hierarchy.store_backend
    logger.info(f"Initializing hierarchy services (backend: {backend.value})")

    if backend == StoreBackend.DATABASE:
        asset_store, graph_store = await bootstrap_database_stores(config)
    else:
        asset_store, graph_store = bootstrap_memory_stores()

    return build_hierarchy_services(asset_store, graph_store, config)
