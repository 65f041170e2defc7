"""Utility modules for volume-syncer."""
