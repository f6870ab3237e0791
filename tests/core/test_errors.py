"""Tests for etfspine.core.errors module."""

import pytest

from etfspine.core.errors import (
    ConfigError,
    ConstraintError,
    CycleError,
    DanglingReferenceError,
    DateOrderError,
    DocumentNotFoundError,
    DuplicateKeyError,
    ErrorCategory,
    ErrorContext,
    EtfSpineError,
    ReferentialIntegrityError,
    RestrictedDeleteError,
    SchemaValidationError,
    StorageError,
    UnknownCollectionError,
    ValidationError,
    categorize_error,
    error_code,
)


class TestErrorContext:
    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.collection is None
        assert ctx.document_id is None
        assert ctx.metadata == {}

    def test_error_context_defaults(self):
        ctx = ErrorContext()
        assert ctx.field is None
        assert ctx.constraint is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_metadata_not_shared_between_instances(self):
        first, second = ErrorContext(), ErrorContext(field="ter")
        first.metadata["value"] = 1
        assert second.metadata == {}
        assert second.field == "ter"

    def test_to_dict_includes_set_fields(self):
        ctx = ErrorContext(collection="etfs", document_id=7, metadata={"value": 3})
        d = ctx.to_dict()
        assert d == {"collection": "etfs", "document_id": 7, "value": 3}
        assert "field" not in d


class TestEtfSpineError:
    def test_create_minimal_error(self):
        err = EtfSpineError("Something failed")
        assert err.message == "Something failed"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False
        assert err.code == "INTERNAL"

    def test_create_with_cause(self):
        cause = ValueError("bad")
        err = EtfSpineError("wrapped", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_with_context_fluent_api(self):
        err = DanglingReferenceError("missing bank").with_context(
            collection="etfs", field="issuer_bank_id", target="banks"
        )
        assert err.context.collection == "etfs"
        assert err.context.field == "issuer_bank_id"
        assert err.context.metadata == {"target": "banks"}

    def test_to_dict(self):
        err = StorageError("down", retryable=True, cause=OSError("disk")).with_context(collection="etfs")
        d = err.to_dict()
        assert d["error_type"] == "StorageError"
        assert d["code"] == "STORAGE_ERROR"
        assert d["category"] == "STORAGE"
        assert d["retryable"] is True
        assert d["context"] == {"collection": "etfs"}
        assert d["cause"] == "disk"

    def test_repr(self):
        assert repr(ConfigError("nope")) == "ConfigError('nope', category=CONFIG)"


class TestHierarchy:
    @pytest.mark.parametrize(
        ("cls", "parent", "category", "code"),
        [
            (SchemaValidationError, ValidationError, ErrorCategory.VALIDATION, "SCHEMA_INVALID"),
            (DateOrderError, ValidationError, ErrorCategory.VALIDATION, "DATE_ORDER"),
            (DuplicateKeyError, ConstraintError, ErrorCategory.CONSTRAINT, "DUPLICATE_KEY"),
            (CycleError, ConstraintError, ErrorCategory.CONSTRAINT, "CYCLE"),
            (DanglingReferenceError, ReferentialIntegrityError, ErrorCategory.REFERENCE, "DANGLING_REFERENCE"),
            (RestrictedDeleteError, ReferentialIntegrityError, ErrorCategory.REFERENCE, "RESTRICTED_DELETE"),
            (DocumentNotFoundError, StorageError, ErrorCategory.STORAGE, "NOT_FOUND"),
            (UnknownCollectionError, StorageError, ErrorCategory.STORAGE, "UNKNOWN_COLLECTION"),
        ],
    )
    def test_subclass_defaults(self, cls, parent, category, code):
        err = cls("x")
        assert isinstance(err, parent)
        assert isinstance(err, EtfSpineError)
        assert err.category is category
        assert err.code == code


class TestSpecificErrors:
    def test_duplicate_key_sets_constraint(self):
        err = DuplicateKeyError("dup", index="uq_etfs_isin", key="US4642872000")
        assert err.context.constraint == "uq_etfs_isin"
        d = err.to_dict()
        assert d["index"] == "uq_etfs_isin"
        assert d["key"] == "'US4642872000'"

    def test_schema_errors_listed(self):
        err = SchemaValidationError("bad", errors=[{"loc": "ter", "msg": "too big", "type": "less_than_equal"}])
        assert err.to_dict()["errors"][0]["loc"] == "ter"

    def test_cycle_path(self):
        assert CycleError("cycle", path=[1, 2, 1]).path == [1, 2, 1]


class TestUtilities:
    def test_categorize_error(self):
        assert categorize_error(DateOrderError("x")) is ErrorCategory.VALIDATION
        assert categorize_error(ValueError("x")) is ErrorCategory.VALIDATION
        assert categorize_error(OSError("x")) is ErrorCategory.STORAGE
        assert categorize_error(RuntimeError("x")) is ErrorCategory.INTERNAL

    def test_error_code(self):
        assert error_code(CycleError("x")) == "CYCLE"
        assert error_code(KeyError("x")) == "KEYERROR"
