# ==============================================================================
# utils/__init__.py - Utils package initialization
# ==============================================================================

"""
Utils package for CourseTrack.
Provides the document store, database utilities, logging configuration and
HTTP error helpers.
"""

from .document_store import DocumentStore, Put, Create, Update, Delete
from .logging import (
    auto_configure_logging,
    get_logging_config,
    log_database_operation,
    LoggingContext,
    JSONFormatter,
    ColoredFormatter,
)

__all__ = [
    # Document store
    "DocumentStore",
    "Put",
    "Create",
    "Update",
    "Delete",

    # Logging utilities
    "auto_configure_logging",
    "get_logging_config",
    "log_database_operation",
    "LoggingContext",
    "JSONFormatter",
    "ColoredFormatter",
]
