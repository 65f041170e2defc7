"""
Source strategies, one per source kind.
"""

from volume_syncer.sync.strategies.base import SyncStrategy
from volume_syncer.sync.strategies.http_download import HTTPDownloadStrategy
from volume_syncer.sync.strategies.object_store import ObjectStoreStrategy
from volume_syncer.sync.strategies.remote_fs import RemoteFilesystemStrategy
from volume_syncer.sync.strategies.repository import RepositoryStrategy

__all__ = [
    "HTTPDownloadStrategy",
    "ObjectStoreStrategy",
    "RemoteFilesystemStrategy",
    "RepositoryStrategy",
    "SyncStrategy",
]
