# =============================================================================
# assessment_core/data/casing.py
# Key casing between Postgres rows (snake_case) and tree nodes (camelCase)
# =============================================================================

from __future__ import annotations
import re
from typing import Any, Dict, Iterable, List

from assessment_core.errors import SchemaError

_UPPER = re.compile(r"([A-Z])")
_UNDERSCORE_LOWER = re.compile(r"_([a-z0-9])")


def camel_to_snake(name: str) -> str:
    """supervisorNationalId -> supervisor_national_id"""
    return _UPPER.sub(lambda m: "_" + m.group(1).lower(), name)


def snake_to_camel(name: str) -> str:
    """supervisor_national_id -> supervisorNationalId"""
    return _UNDERSCORE_LOWER.sub(lambda m: m.group(1).upper(), name)


def _convert(value: Any, convert_key) -> Any:
    if isinstance(value, dict):
        return {
            convert_key(k) if isinstance(k, str) else k: _convert(v, convert_key)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_convert(v, convert_key) for v in value]
    return value


def to_remote_shape(node: Any) -> Any:
    """Return a copy of ``node`` with every dict key in snake_case."""
    return _convert(node, camel_to_snake)


def to_local_shape(record: Any) -> Any:
    """Return a copy of ``record`` with every dict key in camelCase."""
    return _convert(record, snake_to_camel)


def check_bijection(field_names: Iterable[str]) -> None:
    """
    Verify that a set of in-memory field names survives the round trip.

    Raises:
        SchemaError: if a name does not come back unchanged, or two names
            map to the same column
    """
    seen: Dict[str, str] = {}
    broken: List[str] = []
    collisions: List[str] = []

    for name in field_names:
        column = camel_to_snake(name)
        if snake_to_camel(column) != name:
            broken.append(name)
        other = seen.get(column)
        if other is not None and other != name:
            collisions.append(f"{other}/{name}")
        seen[column] = name

    if broken:
        raise SchemaError("Field names do not round-trip through snake_case", fields=broken)
    if collisions:
        raise SchemaError("Field names collide after casing conversion", fields=collisions)
