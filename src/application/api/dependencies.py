"""Dependency injection for FastAPI application."""

import logging
from typing import Optional

from composition_root import HierarchyServices, bootstrap_hierarchy_services

from .hierarchy_router import set_hierarchy_services
from .sync_router import set_sync_job

logger = logging.getLogger(__name__)

# Global instance holding the wired services
_services: Optional[HierarchyServices] = None


async def initialize_services(services: Optional[HierarchyServices] = None) -> HierarchyServices:
    """Bootstrap services (once) and hand them to the routers."""
    global _services
    if _services is None:
        _services = services or await bootstrap_hierarchy_services()
        set_sync_job(_services.sync_job)
        set_hierarchy_services(_services.registry, _services.resolver)
        logger.info("Hierarchy services initialized")
    return _services


async def shutdown_services() -> None:
    """Release store connections and unwire the routers."""
    global _services
    if _services is not None:
        await _services.close()
        _services = None
        set_sync_job(None)
        set_hierarchy_services(None, None)
        logger.info("Hierarchy services shut down")


def get_services() -> Optional[HierarchyServices]:
    return _services
