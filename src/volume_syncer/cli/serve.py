"""
volume-syncer serve - Long-running service.

Runs the HTTP front door:
- GET /health - Health check
- POST /sync - Start a background sync (503 while one is running)
"""

from pathlib import Path

import typer

from volume_syncer.config import load_config
from volume_syncer.exceptions import ConfigurationError
from volume_syncer.service.server import run_service
from volume_syncer.utils.logging import setup_logging


def serve(
    host: str | None = typer.Option(None, help="Host to bind to [env: HOST, default: 0.0.0.0]"),
    port: int | None = typer.Option(None, help="Port to bind to [env: PORT, default: 8080]"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file [env: VOLUME_SYNCER_CONFIG]"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR [env: LOG_LEVEL]"),
    log_format: str | None = typer.Option(None, "--log-format", help="text, json or rich [env: LOG_FORMAT]"),
) -> None:
    """
    Run volume-syncer as a long-running HTTP service.

    Stops on SIGINT/SIGTERM after giving a running sync the configured grace period.
    """
    try:
        config = load_config(
            config_path,
            overrides={
                "server.host": host,
                "server.port": port,
                "logging.level": log_level,
                "logging.format": log_format,
            },
        )
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(2) from None

    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)
    run_service(config)
