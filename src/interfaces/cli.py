"""Command-line interface for asset sync and hierarchy queries."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import typer
from dotenv import load_dotenv

from composition_root import HierarchyServices, bootstrap_hierarchy_services
from config.hierarchy_config import AppConfig, StoreBackend, get_config
from domain.errors import HierarchySyncError
from domain.sync_models import SyncOptions

# --- Environment Loading ---
load_dotenv()

logger = logging.getLogger(__name__)

# --- Typer App ---
app = typer.Typer(
    help="Sync assets into the graph and query their hierarchies.",
    add_completion=False,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _print(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _warn_if_ephemeral(config: AppConfig) -> None:
    if config.hierarchy.store_backend == StoreBackend.MEMORY:
        logger.warning(
            "HIERARCHY_STORE_BACKEND is memory: this command runs against empty in-process stores "
            "and nothing it writes outlives it. Set HIERARCHY_STORE_BACKEND=database for real data."
        )


def _run(action: Callable[[HierarchyServices], Awaitable[Any]]) -> Any:
    """Bootstrap services, run one action, always close the stores."""
    config = get_config()
    _warn_if_ephemeral(config)

    async def runner():
        services = await bootstrap_hierarchy_services(config)
        try:
            return await action(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except HierarchySyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


async def _load_models(services: HierarchyServices, organisation_id: Optional[str]) -> None:
    await services.engine.load_asset_models(services.asset_store, organisation_id)


# --- CLI Commands ---


@app.command()
def sync(
    organisation: Optional[str] = typer.Option(None, "--organisation", "-o", help="Only sync this organisation"),
    batch_size: int = typer.Option(100, "--batch-size", min=1),
    dry_run: bool = typer.Option(False, "--dry-run", help="Read only; report what would change"),
    force_update: bool = typer.Option(False, "--force-update", help="Recreate existing vertices"),
    max_concurrency: int = typer.Option(8, "--max-concurrency", min=1),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds before the run is cancelled"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Sync relational assets into the graph."""
    _configure_logging(verbose)
    options = SyncOptions(
        batch_size=batch_size,
        dry_run=dry_run,
        force_update=force_update,
        organisation_id=organisation,
        max_concurrency=max_concurrency,
    )
    result = _run(lambda services: services.sync_job.run_sync(options, timeout=timeout))
    _print(result.to_dict())
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def cleanup(
    organisation: str = typer.Argument(..., help="Organisation to clean up"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report orphans without deleting"),
    timeout: Optional[float] = typer.Option(None, "--timeout"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Delete orphaned Asset vertices."""
    _configure_logging(verbose)
    result = _run(lambda services: services.sync_job.run_cleanup(organisation, timeout=timeout, dry_run=dry_run))
    _print(result.to_dict())
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def consistency(
    organisation: Optional[str] = typer.Argument(None, help="Organisation to check (all if omitted)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Report dangling edges, orphans and cycles."""
    _configure_logging(verbose)
    report = _run(lambda services: services.sync_service.check_consistency(organisation))
    _print(report.to_dict())
    if not report.is_consistent:
        raise typer.Exit(code=2)


@app.command("write-back")
def write_back(
    organisation: str = typer.Argument(..., help="Organisation whose assignments to copy"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Copy graph service-function assignments onto relational asset tags."""
    _configure_logging(verbose)
    result = _run(lambda services: services.sync_service.sync_service_functions_from_graph(organisation))
    _print(result.to_dict())
    if not result.success:
        raise typer.Exit(code=1)


@app.command("hierarchy-path")
def hierarchy_path(asset_id: str = typer.Argument(..., help="Synced asset to trace")):
    """Print an asset vertex's service functions and location path."""
    _print(_run(lambda services: services.operations.get_asset_hierarchy_path(asset_id)))


@app.command()
def rebuild(
    organisation: Optional[str] = typer.Option(None, "--organisation", "-o"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Load asset models and rebuild every hierarchy."""
    _configure_logging(verbose)

    async def action(services: HierarchyServices):
        forest = await services.engine.load_asset_models(services.asset_store, organisation)
        return {"generation": forest.generation, "node_count": len(forest.nodes)}

    _print(_run(action))


@app.command("show-view")
def show_view(
    view_id: str = typer.Argument(..., help="View to traverse"),
    organisation: Optional[str] = typer.Option(None, "--organisation", "-o"),
):
    """Print a view's nodes, indented by level."""
    async def action(services: HierarchyServices):
        await _load_models(services, organisation)
        return services.registry.get_hierarchy_for_view(view_id)

    for node in _run(action):
        typer.echo(
            f"{'  ' * node.level}{node.name} [{node.type}] "
            f"assets={node.asset_count} value={node.value_contribution:.2f}"
        )


@app.command()
def stats(
    view_id: str = typer.Argument(..., help="View to summarise"),
    organisation: Optional[str] = typer.Option(None, "--organisation", "-o"),
):
    """Print statistics for a view."""
    async def action(services: HierarchyServices):
        await _load_models(services, organisation)
        return services.registry.get_hierarchy_statistics(view_id)

    _print(_run(action).to_dict())


@app.command()
def context(
    asset_id: str = typer.Argument(..., help="Asset to locate"),
    organisation: Optional[str] = typer.Option(None, "--organisation", "-o"),
):
    """Print an asset's position in every hierarchy."""
    async def action(services: HierarchyServices):
        await _load_models(services, organisation)
        return services.resolver.get_asset_hierarchy_context(asset_id)

    _print(_run(action).to_dict())


if __name__ == "__main__":
    app()
