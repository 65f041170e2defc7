"""
Sync trigger endpoint.
"""

import json

from aiohttp import web

from volume_syncer.exceptions import ValidationError
from volume_syncer.service.api.errors import BusyError, InvalidRequestError, InvalidRequestFormatError, utc_timestamp
from volume_syncer.service.api.handlers import BaseHandler
from volume_syncer.sync.types import AdmissionStatus, SyncJob


class SyncHandler(BaseHandler):
    """Handler that hands sync requests to the orchestrator."""

    async def create(self, request: web.Request) -> web.Response:
        """
        POST /sync

        Body: ``{"source": {"type", "details"}, "target": {"path"}, "timeout"?}``

        Returns 201 when the sync was started, 400 for a malformed or invalid
        request and 503 when a sync is already running. The outcome of the
        sync itself is only logged.
        """
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequestFormatError(f"request body is not valid JSON: {e}") from None
        if not isinstance(payload, dict):
            raise InvalidRequestFormatError("request body must be a JSON object")

        try:
            job = SyncJob.from_payload(payload, self.config.default_timeout)
        except ValidationError as e:
            raise InvalidRequestError(e) from None

        admission = self.orchestrator.request_sync(job)
        if admission.status is AdmissionStatus.BUSY:
            raise BusyError()
        if admission.status is AdmissionStatus.INVALID:
            raise InvalidRequestError(admission.error)

        data = {
            "status": "sync started",
            "message": "synchronization process has been initiated",
            "job_id": admission.job_id,
            "timestamp": utc_timestamp(),
        }
        return await self.json_response(data, status=201, request=request)
