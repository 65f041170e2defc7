"""
HTTP service for volume-syncer.
"""
