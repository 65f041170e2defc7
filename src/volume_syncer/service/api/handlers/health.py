"""
Health endpoint.
"""

from aiohttp import web

from volume_syncer.service.api.errors import utc_timestamp
from volume_syncer.service.api.handlers import BaseHandler


class HealthHandler(BaseHandler):
    """Handler for the liveness check."""

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health

        Returns service health and whether a sync is currently running.
        """
        data = {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "syncing": self.orchestrator.is_busy(),
        }
        return await self.json_response(data, request=request)
