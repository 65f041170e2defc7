"""
volume-syncer long-running service.

Provides:
- GET /health liveness check
- POST /sync to start a background sync (one at a time)
- graceful shutdown that gives a running sync a grace period
"""

from __future__ import annotations

from aiohttp import web

from volume_syncer import __version__
from volume_syncer.config import Config
from volume_syncer.service.api import setup_routes
from volume_syncer.service.api.middleware import error_middleware
from volume_syncer.sync.factory import StrategyFactory
from volume_syncer.sync.orchestrator import SyncOrchestrator
from volume_syncer.utils.durations import format_duration
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.service")


class SyncService:
    """Holds what the handlers need: configuration and the orchestrator."""

    def __init__(self, config: Config, orchestrator: SyncOrchestrator | None = None):
        self.config = config
        self.orchestrator = orchestrator or SyncOrchestrator(StrategyFactory(config.default_timeout))

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown(self.config.shutdown_grace)


def create_app(service: SyncService) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        service: SyncService instance shared by all handlers

    Returns:
        Configured application (not yet running)
    """
    app = web.Application(middlewares=[error_middleware])
    setup_routes(app, service)

    async def on_shutdown(app: web.Application) -> None:
        await service.shutdown()

    app.on_shutdown.append(on_shutdown)
    return app


def run_service(config: Config) -> None:
    """
    Run the volume-syncer service (blocking).

    ``web.run_app`` traps SIGINT/SIGTERM; shutdown waits up to the configured
    grace period for a running sync before cancelling it.

    Args:
        config: Loaded configuration
    """
    service = SyncService(config)
    app = create_app(service)
    host, port = config.host, config.port

    async def on_startup(app: web.Application) -> None:
        logger.info(f"volume-syncer {__version__} listening on http://{host}:{port}")
        logger.info(
            f"Default sync timeout {format_duration(config.default_timeout)}, "
            f"shutdown grace {format_duration(config.shutdown_grace)}"
        )

    app.on_startup.append(on_startup)

    # aiohttp's access logger is disabled; requests are logged by error_middleware on failure
    web.run_app(app, host=host, port=port, access_log=None, print=None)
