"""
volume-syncer sync - Run one sync in the foreground.

Reads a request body (same shape as ``POST /sync``) from a JSON or YAML file
and exits with 0 on success, 1 when the sync fails and 2 when the request
or configuration is invalid.
"""

import asyncio
from pathlib import Path

import typer
import yaml
from rich.console import Console

from volume_syncer.config import load_config
from volume_syncer.exceptions import ConfigurationError, SyncError, ValidationError
from volume_syncer.observability import add_correlation_id
from volume_syncer.sync.factory import StrategyFactory
from volume_syncer.sync.types import SyncJob
from volume_syncer.utils.logging import setup_logging

console = Console(stderr=True)

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_INVALID = 2


def sync(
    request_file: Path = typer.Argument(..., help="JSON or YAML file with source, target and optional timeout"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file [env: VOLUME_SYNCER_CONFIG]"
    ),
    timeout: str | None = typer.Option(None, "--timeout", "-t", help="Override the request timeout, e.g. 30s or 5m"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR [env: LOG_LEVEL]"),
) -> None:
    """
    Run a single sync request and wait for it to finish.
    """
    try:
        config = load_config(config_path, overrides={"logging.level": log_level})
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_INVALID) from None

    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)

    try:
        payload = yaml.safe_load(request_file.read_text())
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read request file {request_file}:[/red] {e}")
        raise typer.Exit(EXIT_INVALID) from None
    if isinstance(payload, dict) and timeout is not None:
        payload["timeout"] = timeout

    factory = StrategyFactory(config.default_timeout)
    try:
        job = SyncJob.from_payload(payload, config.default_timeout)
        strategy = factory.build(job.source, job.target.path, job.timeout)
    except ValidationError as e:
        console.print(f"[red]Invalid request:[/red] {e.message}")
        raise typer.Exit(EXIT_INVALID) from None

    try:
        with add_correlation_id(job.job_id):
            asyncio.run(strategy.sync())
    except SyncError as e:
        console.print(f"[red]Sync failed ({e.kind.value}):[/red] {e.message}")
        raise typer.Exit(EXIT_SYNC_FAILED) from None

    console.print(f"[green]Synced[/green] {job.source.kind.value} source into {job.target.path}")
