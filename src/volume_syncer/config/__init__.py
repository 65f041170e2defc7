"""
Configuration management.

Defaults, optional YAML file and environment variable overrides.
"""

from volume_syncer.config.loader import Config, load_config

__all__ = [
    "Config",
    "load_config",
]
