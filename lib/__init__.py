# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - log.py: Structured logger, formatters and sink configuration
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.log import (
    ConsoleFormatter,
    JsonFormatter,
    StructuredLogger,
    configure_logging,
)

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "StructuredLogger",
    "configure_logging",
]
