"""Filter matching and index-key extraction shared by all store backends.

Filters are a small subset of the document-store query language:

* ``{"a.b": value}``: equality on a dotted path; arrays match if any element
  matches; ``None`` matches both null and missing fields.
* ``{"a": {"$in": [...]}}``, ``{"$nin": [...]}``, ``{"$ne": v}``,
  ``{"$exists": bool}``.

Unique index semantics:

* a document missing a key field is indexed with ``None`` for that field, so
  two documents both missing it collide, unless the index is partial;
* a partial index covers only documents matching its ``partial_filter``;
* a path through an array yields one key per element (multikey); duplicates
  inside one document are allowed.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Mapping
from typing import Any

from etfspine.core.errors import StorageError
from etfspine.documents.collections import IndexSpec

_OPERATORS = frozenset({"$in", "$nin", "$ne", "$exists"})


def resolve_path(document: Mapping[str, Any], path: str) -> list[Any]:
    """Values found at dotted *path*; lists along the way are traversed."""
    values: list[Any] = [document]
    for part in path.split("."):
        found: list[Any] = []
        for value in values:
            items = value if isinstance(value, list) else [value]
            for item in items:
                if isinstance(item, Mapping) and part in item:
                    found.append(item[part])
        values = found
    return values


def _candidates(values: list[Any]) -> list[Any]:
    out: list[Any] = []
    for value in values:
        out.append(value)
        if isinstance(value, list):
            out.extend(value)
    return out


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def _equals_any(values: list[Any], target: Any) -> bool:
    if target is None:
        return not values or any(v is None for v in _candidates(values))
    return any(_same(v, target) for v in _candidates(values))


def _is_operator_doc(cond: Any) -> bool:
    return isinstance(cond, Mapping) and bool(cond) and all(str(k).startswith("$") for k in cond)


def matches(document: Mapping[str, Any], flt: Mapping[str, Any] | None) -> bool:
    """True when *document* satisfies every clause of *flt*."""
    if not flt:
        return True
    for path, cond in flt.items():
        values = resolve_path(document, path)
        if _is_operator_doc(cond):
            for op, arg in cond.items():
                if op not in _OPERATORS:
                    raise StorageError(f"Unsupported filter operator: {op}").with_context(field=path)
                if op == "$exists":
                    ok = bool(values) == bool(arg)
                elif op == "$ne":
                    ok = not _equals_any(values, arg)
                elif op == "$in":
                    ok = any(_equals_any(values, t) for t in arg)
                else:
                    ok = not any(_equals_any(values, t) for t in arg)
                if not ok:
                    return False
        elif not _equals_any(values, cond):
            return False
    return True


def encode_key(parts: tuple[Any, ...]) -> str:
    """Canonical string form of an index key (keeps ``True`` and ``1`` apart)."""
    return json.dumps(list(parts), sort_keys=True, separators=(",", ":"), default=str)


def index_keys(index: IndexSpec, document: Mapping[str, Any]) -> list[str]:
    """Encoded keys *document* contributes to *index* (empty if not covered)."""
    if index.partial_filter is not None and not matches(document, index.partial_filter):
        return []
    per_field: list[list[Any]] = []
    for path in index.keys:
        values: list[Any] = []
        for value in resolve_path(document, path):
            if isinstance(value, list):
                values.extend(value)
            else:
                values.append(value)
        per_field.append(values or [None])
    return sorted({encode_key(combo) for combo in itertools.product(*per_field)})


def unique_indexes(indexes: tuple[IndexSpec, ...] | list[IndexSpec]) -> list[IndexSpec]:
    return [index for index in indexes if index.unique]


__all__ = ["encode_key", "index_keys", "matches", "resolve_path", "unique_indexes"]
