"""API middleware."""

from volume_syncer.service.api.middleware.error import error_middleware

__all__ = ["error_middleware"]
