"""
Structured error types for etfspine.

A document store keeps unique indexes but drops foreign keys, cross-field
CHECK constraints and triggers. Everything the store no longer enforces is
enforced by the integrity service, and every violation surfaces at
insert/update/delete time as one of the typed errors below.

Each error carries:
- **Category:** What kind of failure (validation, constraint, reference, ...)
- **Code:** Machine-readable reason used for rejects and CLI output
- **Retryable:** Only storage connectivity failures are retryable
- **Context:** Collection, document id, field and constraint involved
- **Cause:** Chained underlying exception

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        EtfSpineError                             │
        │          (category, code, retryable, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError          ConstraintError     ReferentialInteg.  │
        │  (VALIDATION)             (CONSTRAINT)        (REFERENCE)        │
        │       │                        │                    │            │
        │  SchemaValidationError    DuplicateKeyError   DanglingReference  │
        │  DateOrderError           CycleError          RestrictedDelete   │
        │                                                                  │
        │  StorageError             MappingError        MigrationError     │
        │  (STORAGE)                (MAPPING)           (MIGRATION)        │
        │       │                                                          │
        │  DocumentNotFoundError    ConfigError                            │
        │  UnknownCollectionError   (CONFIG)                               │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = DuplicateKeyError("duplicate key", index="uq_etfs_isin")
    >>> err.code
    'DUPLICATE_KEY'
    >>> err.with_context(collection="etfs", document_id=7).context.collection
    'etfs'

Tags:
    error-handling, exception-hierarchy, integrity, etfspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and CLI/report routing."""

    VALIDATION = "VALIDATION"
    CONSTRAINT = "CONSTRAINT"
    REFERENCE = "REFERENCE"
    STORAGE = "STORAGE"
    MAPPING = "MAPPING"
    MIGRATION = "MIGRATION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured context attached to an error.

    Attributes:
        collection: Document collection involved
        document_id: ``_id`` of the document being written or deleted
        field: Dotted field path involved
        constraint: Index, ordering or rule name that was violated
        metadata: Additional key-value pairs
    """

    collection: str | None = None
    document_id: Any = None
    field: str | None = None
    constraint: str | None = None

    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["collection", "document_id", "field", "constraint"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class EtfSpineError(Exception):
    """
    Base exception for all etfspine errors.

    Subclasses set ``default_category``, ``default_retryable`` and ``code``
    so raising sites only pass a message and the context they know about.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> EtfSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DanglingReferenceError("missing bank").with_context(
                collection="etfs", field="issuer_bank_id"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(EtfSpineError):
    """A document does not satisfy its collection validator."""

    default_category = ErrorCategory.VALIDATION
    code = "VALIDATION_FAILED"


class SchemaValidationError(ValidationError):
    """
    Field-level validation failed (types, bounds, discriminator, extra fields).

    ``errors`` holds one ``{"loc", "msg", "type"}`` dict per failing field, in
    the shape pydantic reports them.
    """

    code = "SCHEMA_INVALID"

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = self.errors
        return result


class DateOrderError(ValidationError):
    """Two date fields of one document are in the wrong order."""

    code = "DATE_ORDER"


# =============================================================================
# CONSTRAINT ERRORS
# =============================================================================


class ConstraintError(EtfSpineError):
    """A cross-document or business constraint is violated."""

    default_category = ErrorCategory.CONSTRAINT
    code = "CONSTRAINT_VIOLATION"


class DuplicateKeyError(ConstraintError):
    """A unique (or partial unique) index already holds the same key."""

    code = "DUPLICATE_KEY"

    def __init__(self, message: str, *, index: str | None = None, key: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.index = index
        self.key = key
        if index is not None and self.context.constraint is None:
            self.context.constraint = index

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.index:
            result["index"] = self.index
        if self.key is not None:
            result["key"] = repr(self.key)
        return result


class CycleError(ConstraintError):
    """A self-referencing hierarchy would contain a cycle."""

    code = "CYCLE"

    def __init__(self, message: str, *, path: list[Any] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path or []


# =============================================================================
# REFERENTIAL INTEGRITY ERRORS
# =============================================================================


class ReferentialIntegrityError(EtfSpineError):
    """A reference between collections is broken or would be broken."""

    default_category = ErrorCategory.REFERENCE
    code = "REFERENCE_VIOLATION"


class DanglingReferenceError(ReferentialIntegrityError):
    """A document references a target document that does not exist."""

    code = "DANGLING_REFERENCE"


class RestrictedDeleteError(ReferentialIntegrityError):
    """A delete is blocked because other documents still reference the target."""

    code = "RESTRICTED_DELETE"


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(EtfSpineError):
    """Document store error."""

    default_category = ErrorCategory.STORAGE
    code = "STORAGE_ERROR"


class DocumentNotFoundError(StorageError):
    """No document with the requested ``_id``."""

    code = "NOT_FOUND"


class UnknownCollectionError(StorageError):
    """The collection was never created in the store."""

    code = "UNKNOWN_COLLECTION"


# =============================================================================
# MAPPING / MIGRATION / CONFIG ERRORS
# =============================================================================


class MappingError(EtfSpineError):
    """The relational-to-document mapping is incomplete or inconsistent."""

    default_category = ErrorCategory.MAPPING
    code = "MAPPING_ERROR"


class MigrationError(EtfSpineError):
    """A migration run was aborted."""

    default_category = ErrorCategory.MIGRATION
    code = "MIGRATION_FAILED"


class ConfigError(EtfSpineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    code = "CONFIG_ERROR"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, EtfSpineError):
        return error.category
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.STORAGE
    return ErrorCategory.INTERNAL


def error_code(error: Exception) -> str:
    """Machine-readable code for any exception."""
    if isinstance(error, EtfSpineError):
        return error.code
    return error.__class__.__name__.upper()


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "EtfSpineError",
    # Validation
    "ValidationError",
    "SchemaValidationError",
    "DateOrderError",
    # Constraint
    "ConstraintError",
    "DuplicateKeyError",
    "CycleError",
    # Reference
    "ReferentialIntegrityError",
    "DanglingReferenceError",
    "RestrictedDeleteError",
    # Storage
    "StorageError",
    "DocumentNotFoundError",
    "UnknownCollectionError",
    # Other
    "MappingError",
    "MigrationError",
    "ConfigError",
    # Utilities
    "categorize_error",
    "error_code",
]
