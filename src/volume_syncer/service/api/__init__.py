"""
REST API module for volume-syncer.
"""

from volume_syncer.service.api.routes import setup_routes

__all__ = ["setup_routes"]
