"""
Observability module for volume-syncer.

Structured logging, correlation IDs and secret masking for log output.
"""

from volume_syncer.observability.structured_logging import (
    CorrelationIdFilter,
    HumanReadableFormatter,
    SecretMaskingFilter,
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
)

__all__ = [
    "CorrelationIdFilter",
    "HumanReadableFormatter",
    "SecretMaskingFilter",
    "StructuredFormatter",
    "add_correlation_id",
    "get_correlation_id",
]
