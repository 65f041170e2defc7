"""
Connections to remote systems whose client libraries block.

SSH (paramiko) for connectivity probes and S3 (boto3) for object stores.
"""

from volume_syncer.connections.s3 import ObjectStoreConnection
from volume_syncer.connections.ssh import SSHConfig, SSHConnection

__all__ = [
    "ObjectStoreConnection",
    "SSHConfig",
    "SSHConnection",
]
