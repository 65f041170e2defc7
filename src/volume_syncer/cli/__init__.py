"""
Command-line interface for volume-syncer.
"""
