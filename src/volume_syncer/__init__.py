"""
volume-syncer - on-demand sync of remote sources into local volumes.

Sources: ssh (rsync), git, http and s3. At most one sync runs at a time; git
targets are replaced atomically when they cannot be updated in place.
"""

__version__ = "0.1.0"

from volume_syncer.exceptions import (
    AuthError,
    CommandError,
    ConfigurationError,
    ErrorKind,
    FilesystemError,
    NetworkError,
    ReplaceRollbackError,
    SyncError,
    SyncTimeoutError,
    UnknownSyncError,
    UnsupportedSourceError,
    ValidationError,
    VolumeSyncerError,
)
from volume_syncer.utils.logging import get_logger, setup_logging

__all__ = [
    "__version__",
    # Exceptions
    "AuthError",
    "CommandError",
    "ConfigurationError",
    "ErrorKind",
    "FilesystemError",
    "NetworkError",
    "ReplaceRollbackError",
    "SyncError",
    "SyncTimeoutError",
    "UnknownSyncError",
    "UnsupportedSourceError",
    "ValidationError",
    "VolumeSyncerError",
    # Logging
    "get_logger",
    "setup_logging",
]
