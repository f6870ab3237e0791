"""Core primitives: errors, settings, structured logging, engines, timestamps."""

from __future__ import annotations

from etfspine.core.errors import (
    ConfigError,
    ConstraintError,
    CycleError,
    DanglingReferenceError,
    DateOrderError,
    DocumentNotFoundError,
    DuplicateKeyError,
    ErrorCategory,
    EtfSpineError,
    MappingError,
    MigrationError,
    ReferentialIntegrityError,
    RestrictedDeleteError,
    SchemaValidationError,
    StorageError,
    UnknownCollectionError,
    ValidationError,
)
from etfspine.core.logging import LogContext, configure_logging, get_logger
from etfspine.core.settings import MEMORY_URL, EtfSpineSettings, get_settings
from etfspine.core.timestamps import generate_ulid, utc_now

__all__ = [
    "ConfigError",
    "ConstraintError",
    "CycleError",
    "DanglingReferenceError",
    "DateOrderError",
    "DocumentNotFoundError",
    "DuplicateKeyError",
    "ErrorCategory",
    "EtfSpineError",
    "EtfSpineSettings",
    "LogContext",
    "MEMORY_URL",
    "MappingError",
    "MigrationError",
    "ReferentialIntegrityError",
    "RestrictedDeleteError",
    "SchemaValidationError",
    "StorageError",
    "UnknownCollectionError",
    "ValidationError",
    "configure_logging",
    "generate_ulid",
    "get_logger",
    "get_settings",
    "utc_now",
]
