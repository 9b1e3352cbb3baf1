#!/usr/bin/env python3
"""
Chunk Relay CLI

Command-line interface for resumable chunked transfers.

Usage:
    chunkrelay send FILE --endpoint URL                 # Batch transfer
    chunkrelay send DIR --endpoint URL --staging-dir D  # Multi-file transfer
    chunkrelay step [STEP]                              # Run one step
    chunkrelay status                                   # Show progress
    chunkrelay serve                                    # Step API over HTTP
    chunkrelay config                                   # Example config file
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from .config import Config, EXAMPLE_CONFIG, load_config
from .errors import TransferError
from .relay import create_engine
from .transfer.progress import ProgressReport

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def _apply_overrides(config: Config, **overrides) -> Config:
    for key, value in overrides.items():
        if value is None or value == ():
            continue
        if key in ('state_dir', 'staging_dir'):
            value = Path(value)
        if key == 'sources':
            value = list(value)
        setattr(config, key, value)
    return config


def _fail(error: Exception):
    console.print(f"[red]✗ {error}[/red]")
    sys.exit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(), default=None,
              help='JSON config file')
@click.option('--state-dir', default=None, help='Directory holding manifests')
@click.option('--staging-dir', default=None, help='Directory for staged chunks')
@click.option('--transfer-id', default=None, help='Transfer identity (derived if omitted)')
@click.pass_context
def cli(ctx, verbose, config_path, state_dir, staging_dir, transfer_id):
    """Chunk Relay - resumable chunked transfers to an HTTP endpoint."""
    config = load_config(Path(config_path) if config_path else None)
    _apply_overrides(config, state_dir=state_dir, staging_dir=staging_dir,
                     transfer_id=transfer_id)
    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('sources', nargs=-1, type=click.Path(exists=True))
@click.option('--endpoint', '-e', default=None, help='Upload URL')
@click.option('--chunk-size', type=int, default=None, help='Chunk size in bytes')
@click.option('--max-retries', type=int, default=None, help='Attempts per chunk')
@click.pass_context
def send(ctx, sources, endpoint, chunk_size, max_retries):
    """Send files to the endpoint, resuming any earlier progress."""
    config = _apply_overrides(ctx.obj['config'], sources=sources, endpoint=endpoint,
                              chunk_size=chunk_size, max_retries=max_retries)

    try:
        engine = create_engine(config)
    except TransferError as e:
        _fail(e)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task = progress.add_task("Starting...", total=100)

        def update_progress(report: ProgressReport):
            progress.update(task, completed=report.percent_complete,
                            description=report.message)

        try:
            engine.run(update_progress)
        except TransferError as e:
            progress.stop()
            console.print("[yellow]Progress is saved; run the same command again to resume.[/yellow]")
            _fail(e)

    stats = engine.transmitter.get_stats()
    console.print(Panel.fit(
        f"[bold green]Transfer Complete[/bold green]\n\n"
        f"Transfer ID: [cyan]{engine.transfer_id}[/cyan]\n"
        f"Chunks sent: [yellow]{stats['chunks_sent']}[/yellow]\n"
        f"Bytes sent: [yellow]{format_size(stats['bytes_sent'])}[/yellow]\n"
        f"Failed attempts: [yellow]{stats['failed_attempts']}[/yellow]",
        title="Chunk Relay"
    ))


@cli.command()
@click.argument('step_name', required=False)
@click.pass_context
def step(ctx, step_name: Optional[str]):
    """Run exactly one step and print the response envelope."""
    config = ctx.obj['config']

    try:
        engine = create_engine(config)
        report = engine.step(step_name)
    except (TransferError, ValueError) as e:
        _fail(e)

    click.echo(json.dumps(report.to_envelope()))
    if report.failed:
        sys.exit(2)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the raw summary')
@click.pass_context
def status(ctx, as_json):
    """Show persisted transfer progress."""
    config = ctx.obj['config']

    try:
        engine = create_engine(config)
        summary = engine.status()
    except TransferError as e:
        _fail(e)

    if summary is None:
        console.print("[yellow]No transfer in progress[/yellow]")
        return

    if as_json:
        click.echo(json.dumps(summary, indent=2))
        return

    console.print(Panel.fit(
        f"[bold]Transfer Status[/bold]\n\n"
        f"Transfer ID: [cyan]{summary['transfer_id']}[/cyan]\n"
        f"State: [green]{summary['state']}[/green] ({summary['status']})\n"
        f"Sources: [yellow]{summary['sources']}[/yellow]\n"
        f"Chunks: [yellow]{summary['chunks_sent']}/{summary['chunk_count']}[/yellow] "
        f"({summary['pending_chunks']} staged)\n"
        f"Bytes: [yellow]{format_size(summary['acknowledged_bytes'])} / "
        f"{format_size(summary['total_size'])}[/yellow]\n"
        f"Progress: [yellow]{summary['percent_complete']:.1f}%[/yellow]",
        title="Chunk Relay"
    ))


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('--port', type=int, default=None, help='Port to listen on')
@click.pass_context
def serve(ctx, host, port):
    """Serve the step API for interactive clients."""
    config = _apply_overrides(ctx.obj['config'], api_host=host, api_port=port)

    from .api import create_app, run_api_server

    try:
        engine = create_engine(config)
        app = create_app(engine, config.auth_token)
    except (TransferError, ValueError) as e:
        _fail(e)

    console.print(f"[dim]Step API at http://{config.api_host}:{config.api_port}/step[/dim]")
    run_api_server(app, host=config.api_host, port=config.api_port)


@cli.command('config')
def show_config():
    """Print an example configuration file."""
    click.echo(EXAMPLE_CONFIG.strip())


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
