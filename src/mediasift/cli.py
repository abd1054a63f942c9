"""Command-line interface for MediaSift."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import IO, Optional

import click
import structlog
import uvicorn
from rich.console import Console
from rich.table import Table

from mediasift import __version__
from mediasift.config import Config, MonitoringConfig, load_config
from mediasift.exceptions import ConfigurationError, ExtractionError, SourceRejectedError
from mediasift.observability import configure_logging
from mediasift.pipeline import ExtractionPipeline
from mediasift.security import SourceValidator

console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger(__name__)


def _load(ctx: click.Context) -> Config:
    path = ctx.obj.get("config_path")
    try:
        return load_config(Path(path) if path else None)
    except ValueError as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        raise SystemExit(2) from e


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True), help="Configuration file path")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: str) -> None:
    """MediaSift - pull playable video links out of saved page sources."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["log_level"] = log_level


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--cap", type=click.IntRange(min=1), help="Maximum number of links to return")
@click.option("--json", "as_json", is_flag=True, help="Print the API response payload as JSON")
@click.option("--no-validate", is_flag=True, help="Skip the minimum length and HTML marker checks")
@click.pass_context
def extract(ctx: click.Context, source: IO[str], cap: Optional[int], as_json: bool, no_validate: bool) -> None:
    """Extract media links from SOURCE (a file path, or - for stdin)."""
    # stdout stays clean for --json output
    configure_logging(MonitoringConfig(log_level=ctx.obj["log_level"]), stream=sys.stderr)
    config = _load(ctx)
    if cap is not None:
        config.ranking.result_cap = cap

    document = source.read()
    try:
        if not no_validate:
            SourceValidator(config.service).validate(document)
        result = ExtractionPipeline(config).extract(document)
    except SourceRejectedError as e:
        err_console.print(f"[red]Source rejected: {e}[/red]")
        raise SystemExit(1) from e
    except (ConfigurationError, ExtractionError) as e:
        err_console.print(f"[red]Extraction failed: {e}[/red]")
        raise SystemExit(1) from e

    videos = [asset.to_dict() for asset in result.assets]
    if as_json:
        payload = {
            "success": True,
            "videos": videos,
            "count": len(videos),
            "totalFound": result.total_found,
            "filteredCount": len(videos),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not videos:
        console.print("[yellow]No videos found in the source.[/yellow]")
        return

    table = Table(title=f"Extracted {len(videos)} of {result.total_found} video(s)")
    table.add_column("#", style="dim")
    table.add_column("Quality", style="cyan")
    table.add_column("Resolution", style="magenta")
    table.add_column("Content")
    table.add_column("Score", justify="right")
    table.add_column("URL", overflow="fold")
    for index, asset in enumerate(result.assets, start=1):
        table.add_row(
            str(index),
            asset.quality,
            asset.resolution,
            asset.content_type.description,
            str(asset.quality_score),
            asset.url,
        )
    console.print(table)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to service.host)")
@click.option("--port", default=None, type=int, help="Port (defaults to service.port)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Start the web service."""
    from mediasift.web.main import create_app

    config = _load(ctx)
    configure_logging(config.monitoring)
    bind_host = host or config.service.host
    bind_port = port or config.service.port

    console.print(f"[blue]Starting MediaSift on http://{bind_host}:{bind_port}[/blue]")
    logger.info("Starting web service", host=bind_host, port=bind_port)
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_level="info")


@cli.command("validate-config")
@click.pass_context
def validate_config(ctx: click.Context) -> None:
    """Load the configuration and compile every extraction rule."""
    config = _load(ctx)
    try:
        ExtractionPipeline(config)
    except ConfigurationError as e:
        err_console.print(f"[red]{e}[/red]")
        raise SystemExit(1) from e

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Extra rules", str(len(config.scanner.extra_rules)))
    table.add_row("Format profiles", ", ".join(sorted(config.classification.format_profiles)))
    table.add_row("Context filter", "on" if config.context.enabled else "off")
    table.add_row("Result cap", str(config.ranking.result_cap))
    table.add_row("Listen", f"{config.service.host}:{config.service.port}")
    console.print(table)
    console.print("[green]Configuration is valid.[/green]")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
