"""JSON-like metadata helpers shared by the upload pipeline and integrity checker.

Document metadata is a nested mapping of JSON values.  New information is
layered onto existing metadata with :func:`merge_metadata`:

    existing = {"integrity": {"status": "healthy", "checksum": "ab"}, "tags": ["a"]}
    addition = {"integrity": {"status": "stale"}, "tags": ["b"]}
    merged   = {"integrity": {"status": "stale", "checksum": "ab"}, "tags": ["b"]}

Nested mappings merge key-by-key; scalars and lists are replaced.  Keys whose
new value is ``None`` are skipped so a partial update cannot erase data.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, TypeAlias, Union

JsonScalar: TypeAlias = Union[str, int, float, bool, None]
JsonValue: TypeAlias = Union[JsonScalar, list["JsonValue"], dict[str, "JsonValue"]]
Metadata: TypeAlias = dict[str, JsonValue]


def merge_metadata(
    existing: Mapping[str, Any] | None,
    addition: Mapping[str, Any] | None = None,
) -> Metadata:
    """Deep-merge *addition* over *existing* and return a new dict.

    Neither argument is mutated.  A non-mapping *existing* value is treated as
    empty, which lets callers pass whatever a database column returned.
    """
    base: Metadata = _copy_mapping(existing) if isinstance(existing, Mapping) else {}
    if not addition:
        return base

    for key, value in addition.items():
        if value is None:
            continue
        current = base.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            base[key] = merge_metadata(current, value)
        elif isinstance(value, Mapping):
            base[key] = _copy_mapping(value)
        elif isinstance(value, list):
            base[key] = list(value)
        else:
            base[key] = value
    return base


def parse_metadata(raw: Any) -> Metadata:
    """Coerce a stored metadata value (JSON text, mapping, or ``None``) into a dict.

    Unparseable text is preserved under a ``raw`` key instead of being dropped.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return _copy_mapping(raw)
    if isinstance(raw, (bytes, str)):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return {"raw": raw.decode() if isinstance(raw, bytes) else raw}
        return _copy_mapping(decoded) if isinstance(decoded, Mapping) else {}
    return {}


def dump_metadata(metadata: Mapping[str, Any] | None) -> str:
    """Serialise metadata for a TEXT/JSON column."""
    return json.dumps(metadata or {}, sort_keys=True, default=str)


def _copy_mapping(value: Mapping[str, Any]) -> Metadata:
    copied: Metadata = {}
    for key, item in value.items():
        if isinstance(item, Mapping):
            copied[str(key)] = _copy_mapping(item)
        elif isinstance(item, list):
            copied[str(key)] = list(item)
        else:
            copied[str(key)] = item
    return copied
