"""CLI entry point for Lectern."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from lectern import __version__
from lectern.config import Settings
from lectern.db.store import ChapterStore
from lectern.logs import mask_credential, setup_logging
from lectern.resolver import ChapterResolver
from lectern.seed import SeedError, load_seed_file, seed_edition
from lectern.sources.catalog import (
    AcquisitionStrategy,
    CatalogValidationError,
    EditionCatalog,
)

console = Console()


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _load_catalog(settings: Settings) -> EditionCatalog:
    try:
        return EditionCatalog.load(settings.catalog_path)
    except (CatalogValidationError, FileNotFoundError) as e:
        console.print(f"[red]Catalog error: {e}[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """Lectern - chapter resolution across Bible editions."""
    settings = _load_settings()
    setup_logging(
        logging.DEBUG if verbose else logging.WARNING, secrets=settings.secrets
    )
    ctx.obj = settings


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def editions(settings: Settings, as_json: bool):
    """List supported editions."""
    catalog = _load_catalog(settings)

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in catalog], indent=2))
        return

    table = Table(title="Editions")
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    table.add_column("Tier", style="yellow")
    table.add_column("Strategy", style="dim")
    table.add_column("Attribution", justify="center")

    for edition in catalog:
        table.add_row(
            edition.code,
            edition.display_name,
            edition.access_tier.value,
            edition.acquisition_strategy.value,
            "✓" if edition.attribution_required else "",
        )

    console.print(table)


@cli.command()
@click.argument("work")
@click.argument("section", type=int)
@click.option("--edition", "-e", default="KJV", help="Edition code")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def read(settings: Settings, work: str, section: int, edition: str, as_json: bool):
    """Resolve and print a chapter.

    Example: lectern read GEN 1 --edition ESV
    """
    resolver = ChapterResolver.from_settings(settings, catalog=_load_catalog(settings))
    resolution = asyncio.run(resolver.resolve_detailed(work, section, edition))

    if resolution.chapter is None:
        reason = resolver.unavailable_reason(edition, work, section)
        if as_json:
            click.echo(
                json.dumps(
                    {"error": resolution.failure.value, "message": reason}, indent=2
                )
            )
        else:
            console.print(f"[red]{reason}[/red]")
            console.print(f"[dim]({resolution.failure.value})[/dim]")
        sys.exit(1)

    chapter = resolution.chapter
    if as_json:
        click.echo(json.dumps(chapter.to_dict(), indent=2, ensure_ascii=False))
        return

    paragraphs: list[str] = []
    for verse in chapter.verses:
        line = f"[dim]{verse.number}[/dim] {escape(verse.text)}"
        if verse.paragraph_start or not paragraphs:
            paragraphs.append(line)
        else:
            paragraphs[-1] += f" {line}"

    subtitle = "cached" if resolution.from_cache else "fetched"
    console.print(
        Panel("\n\n".join(paragraphs), title=chapter.reference, subtitle=subtitle)
    )
    if chapter.attribution:
        console.print(f"[dim]{escape(chapter.attribution)}[/dim]")


@cli.command()
@click.argument("seed_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--edition", "-e", required=True, help="Local edition code")
@click.pass_obj
def seed(settings: Settings, seed_file: str, edition: str):
    """Load a local edition from a JSON seed file."""
    catalog = _load_catalog(settings)
    store = ChapterStore(settings.db_path)

    try:
        data = load_seed_file(seed_file)
        report = asyncio.run(seed_edition(store, catalog, edition, data))
    except SeedError as e:
        console.print(f"[red]✗ Seed failed: {e}[/red]")
        sys.exit(1)

    console.print(
        f"[green]✓ {report.edition_code}: {report.chapters_written:,} chapters, "
        f"{report.verses_written:,} verses[/green]"
    )
    for warning in report.warnings:
        console.print(f"  [yellow]⚠ {warning}[/yellow]")
    if not report.success:
        for ref in report.failed:
            console.print(f"  [red]✗ write failed: {ref}[/red]")
        sys.exit(1)


@cli.command("cache-stats")
@click.pass_obj
def cache_stats(settings: Settings):
    """Show cached chapter counts per edition."""
    store = ChapterStore(settings.db_path)
    stats = asyncio.run(store.stats())

    table = Table(title=f"Chapter cache ({settings.db_path})")
    table.add_column("Edition", style="cyan")
    table.add_column("Records", justify="right")
    table.add_column("Expired", justify="right", style="yellow")

    for code, counts in stats["by_edition"].items():
        table.add_row(code, f"{counts['records']:,}", f"{counts['expired']:,}")

    console.print(table)
    console.print(
        f"[dim]Total: {stats['total_records']:,} records, "
        f"{stats['expired_records']:,} expired[/dim]"
    )


@cli.command()
@click.pass_obj
def diagnose(settings: Settings):
    """Check configuration: catalog, credentials and cache."""
    catalog = _load_catalog(settings)
    source = settings.catalog_path or "packaged editions.yaml"
    console.print(f"[bold]Catalog:[/bold] {len(catalog)} editions ({source})")

    credentials = {
        AcquisitionStrategy.PLAIN_TEXT_API: ("ESV_API_KEY", settings.plain_text_api_key),
        AcquisitionStrategy.TREE_API: ("API_BIBLE_KEY", settings.tree_api_key),
    }

    table = Table(title="Sources")
    table.add_column("Strategy", style="cyan")
    table.add_column("Editions")
    table.add_column("Credential")

    for strategy in AcquisitionStrategy:
        codes = ", ".join(e.code for e in catalog.by_strategy(strategy)) or "-"
        if strategy in credentials:
            env_name, value = credentials[strategy]
            status = (
                f"[green]{env_name}={mask_credential(value)}[/green]"
                if value
                else f"[red]{env_name} not set[/red]"
            )
        else:
            status = "[dim]not needed[/dim]"
        table.add_row(strategy.value, codes, status)

    console.print(table)

    stats = asyncio.run(ChapterStore(settings.db_path).stats())
    console.print(
        f"[bold]Cache:[/bold] {settings.db_path} "
        f"({stats['total_records']:,} records, {stats['expired_records']:,} expired)"
    )

    unseeded = [
        e.code
        for e in catalog.by_strategy(AcquisitionStrategy.LOCAL)
        if e.code not in stats["by_edition"]
    ]
    if unseeded:
        console.print(
            f"[yellow]⚠ Local editions with no seeded text: {', '.join(unseeded)}[/yellow]"
        )
        console.print("[dim]Run 'lectern seed FILE --edition CODE' to load them.[/dim]")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
def serve(host: str, port: int):
    """Start the API server."""
    import uvicorn

    console.print(f"[bold blue]Starting Lectern API at http://{host}:{port}[/bold blue]")
    uvicorn.run("lectern.api.main:app", host=host, port=port)


if __name__ == "__main__":
    cli()
