"""
MindScribe CLI - build and inspect the content graph
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..integration import MindScribeService
from ..models import ContentItem
from ..settings import settings
from ..stores.base import StoreError

console = Console()


def _configure_logging() -> None:
    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _service(db_path: str | None) -> MindScribeService:
    s = settings.model_copy(update={"db_path": db_path}) if db_path else settings
    return MindScribeService.from_settings(s)


def _load_items(path: Path) -> list[ContentItem]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("items") or []
    items = []
    for raw in data:
        item = ContentItem.from_dict(raw)
        if not item.id:
            console.print(f"[yellow]Skipping item without id: {raw.get('title', '')!r}[/yellow]")
            continue
        items.append(item)
    return items


async def _open_graph(service: MindScribeService) -> None:
    await service.manager.initialize()


@click.group()
@click.option("--db", "db_path", default=None, help="SQLite store path (defaults to MINDSCRIBE_DB_PATH)")
@click.pass_context
def cli(ctx, db_path):
    """MindScribe - relationships and knowledge graph for saved content"""
    _configure_logging()
    ctx.obj = {"db_path": db_path}


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--rebuild/--no-rebuild", default=True, help="Recompute relationships and graph afterwards")
@click.pass_context
def ingest(ctx, path, rebuild):
    """Load a JSON file of content items into the content store"""
    items = _load_items(path)
    service = _service(ctx.obj["db_path"])
    written = service.content_store.db.put_content(items)
    console.print(f"[green]Stored {written} content items[/green]")
    if rebuild:
        ctx.invoke(rebuild_cmd)


@cli.command("rebuild")
@click.pass_context
def rebuild_cmd(ctx):
    """Recompute every relationship and rebuild the graph"""

    async def _run():
        service = _service(ctx.obj["db_path"])
        try:
            counts = await service.rebuild()
            await service.manager.save_graph()
        finally:
            await service.manager.close()
        return counts

    try:
        counts = asyncio.run(_run())
    except StoreError as e:
        raise click.ClickException(str(e))

    table = Table(title="Rebuild")
    table.add_column("Item", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for key, value in counts.items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command()
@click.argument("content_id")
@click.option("--limit", default=10, help="Number of results")
@click.option("--depth", default=2, help="Maximum traversal depth")
@click.option("--min-weight", default=0.3, help="Ignore edges lighter than this")
@click.pass_context
def related(ctx, content_id, limit, depth, min_weight):
    """Show content related to CONTENT_ID"""

    async def _run():
        service = _service(ctx.obj["db_path"])
        try:
            await _open_graph(service)
            return service.related(content_id, limit, max_depth=depth, min_weight=min_weight)
        finally:
            await service.manager.close()

    hits = asyncio.run(_run())
    if not hits:
        console.print("[yellow]No related content found[/yellow]")
        return

    table = Table(title=f"Related to '{content_id}'")
    table.add_column("Content", style="cyan")
    table.add_column("Title", style="white", overflow="fold")
    table.add_column("Category", style="blue")
    table.add_column("Distance", style="magenta", justify="right")
    table.add_column("Weight", style="green", justify="right")
    for hit in hits:
        table.add_row(
            hit.node.content_id,
            hit.node.title,
            hit.node.category or "-",
            str(hit.distance),
            f"{hit.weight:.2f}",
        )
    console.print(table)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show graph and relationship statistics"""

    async def _run():
        service = _service(ctx.obj["db_path"])
        try:
            await _open_graph(service)
            return service.manager.get_graph_stats(), await service.coordinator.get_relationship_stats()
        finally:
            await service.manager.close()

    graph_stats, rel_stats = asyncio.run(_run())

    table = Table(title="Knowledge Graph")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Nodes", str(graph_stats.total_nodes))
    table.add_row("Edges", str(graph_stats.total_edges))
    table.add_row("Clusters", str(graph_stats.total_clusters))
    table.add_row("Average degree", f"{graph_stats.average_degree:.2f}")
    table.add_row("Relationships", str(rel_stats.total_relationships))
    table.add_row("Mean strength", f"{rel_stats.average_strength:.2f}")
    table.add_row("Mean confidence", f"{rel_stats.average_confidence:.2f}")
    for rel_type, count in sorted(rel_stats.relationships_by_type.items()):
        table.add_row(f"  {rel_type}", str(count))
    console.print(table)

    if graph_stats.category_distribution:
        cats = Table(title="Categories")
        cats.add_column("Category", style="blue")
        cats.add_column("Nodes", style="green", justify="right")
        for category, count in sorted(graph_stats.category_distribution.items(), key=lambda kv: -kv[1]):
            cats.add_row(category, str(count))
        console.print(cats)


@cli.command()
@click.pass_context
def clusters(ctx):
    """List concept clusters"""

    async def _run():
        service = _service(ctx.obj["db_path"])
        try:
            await _open_graph(service)
            return service.manager.get_all_clusters()
        finally:
            await service.manager.close()

    found = asyncio.run(_run())
    if not found:
        console.print("[yellow]No clusters[/yellow]")
        return

    table = Table(title="Clusters")
    table.add_column("Cluster", style="cyan")
    table.add_column("Category", style="blue")
    table.add_column("Members", style="green", justify="right")
    table.add_column("Radius", style="magenta", justify="right")
    for cluster in found:
        table.add_row(cluster.name, cluster.category or "-", str(len(cluster.node_ids)), f"{cluster.radius:.1f}")
    console.print(table)


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def export(ctx, output):
    """Export the graph snapshot as JSON"""

    async def _run():
        service = _service(ctx.obj["db_path"])
        try:
            await _open_graph(service)
            return service.manager.export_graph_data()
        finally:
            await service.manager.close()

    blob = asyncio.run(_run())
    text = json.dumps(blob, indent=2)
    if output is None:
        click.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Wrote {len(blob['nodes'])} nodes and {len(blob['edges'])} edges to {output}[/green]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
