"""
API endpoint handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aiohttp import web

if TYPE_CHECKING:
    from volume_syncer.config import Config
    from volume_syncer.service.server import SyncService
    from volume_syncer.sync.orchestrator import SyncOrchestrator


class BaseHandler:
    """
    Base class for API handlers.

    Provides access to service components and common utilities.
    """

    def __init__(self, service: SyncService):
        self.service = service

    @property
    def config(self) -> Config:
        """Get service configuration."""
        return self.service.config

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self.service.orchestrator

    def get_request_id(self, request: web.Request) -> str | None:
        """Get request ID from request context."""
        return request.get("request_id")

    async def json_response(
        self,
        data: Any,
        status: int = 200,
        request: web.Request | None = None,
    ) -> web.Response:
        """Create JSON response with standard headers."""
        headers = {}
        if request:
            request_id = self.get_request_id(request)
            if request_id:
                headers["X-Request-ID"] = request_id
        return web.json_response(data, status=status, headers=headers)
