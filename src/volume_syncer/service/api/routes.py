"""
API route registration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from aiohttp import web

from volume_syncer.service.api.handlers.health import HealthHandler
from volume_syncer.service.api.handlers.sync import SyncHandler

if TYPE_CHECKING:
    from volume_syncer.service.server import SyncService


def setup_routes(app: web.Application, service: SyncService) -> None:
    """
    Register all API routes.

    Args:
        app: aiohttp Application
        service: SyncService instance for handler access
    """
    health = HealthHandler(service)
    sync = SyncHandler(service)

    app.router.add_routes(
        [
            web.get("/health", health.health),
            web.post("/sync", sync.create),
            # Versioned path used by existing provisioning clients
            web.post("/api/1.0/sync", sync.create),
        ]
    )
