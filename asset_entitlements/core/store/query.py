"""
Document query evaluation.

Queries are Mongo-style filter dicts evaluated against JSON-shaped
documents. Field names may be dotted paths into nested objects
("user._ref", "usage.totalDownloads").

Supported:
- equality: {"status": "active"}
- comparison: $eq, $ne, $gt, $gte, $lt, $lte, $in, $nin
- definedness: {"expiresAt": {"$exists": False}}
- logical: $or, $and
- field comparison: {"$expr": {"$lt": ["$downloadCount", "$downloadLimit"]}}
"""

from __future__ import annotations

import operator
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

Query = dict[str, Any]


def get_path(document: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning None for missing keys."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path, creating intermediate objects as needed."""
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def is_defined(value: Any) -> bool:
    """A value is defined when it is present and not null."""
    return value is not None


def _aware(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _coerce(stored: Any, operand: Any) -> tuple[Any, Any]:
    """Align stored ISO strings with datetime operands; naive datetimes are UTC."""
    if isinstance(operand, datetime) and isinstance(stored, str):
        try:
            stored = datetime.fromisoformat(stored)
        except ValueError:
            return stored, operand
    elif isinstance(stored, datetime) and isinstance(operand, str):
        try:
            operand = datetime.fromisoformat(operand)
        except ValueError:
            return stored, operand
    return _aware(stored), _aware(operand)


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(stored: Any, operand: Any) -> bool:
        if not is_defined(stored) or operand is None:
            return False
        left, right = _coerce(stored, operand)
        try:
            return compare(left, right)
        except TypeError:
            return False

    return check


def _equals(stored: Any, operand: Any) -> bool:
    left, right = _coerce(stored, operand)
    return bool(left == right)


def _in(stored: Any, operand: Any) -> bool:
    return any(_equals(stored, candidate) for candidate in operand)


def _exists(stored: Any, operand: Any) -> bool:
    return is_defined(stored) == bool(operand)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda stored, operand: not _equals(stored, operand),
    "$gt": _ordered(operator.gt),
    "$gte": _ordered(operator.ge),
    "$lt": _ordered(operator.lt),
    "$lte": _ordered(operator.le),
    "$in": _in,
    "$nin": lambda stored, operand: not _in(stored, operand),
    "$exists": _exists,
}


def _resolve_operand(document: dict[str, Any], operand: Any) -> Any:
    """Resolve "$field" references inside $expr."""
    if isinstance(operand, str) and operand.startswith("$"):
        return get_path(document, operand[1:])
    return operand


def _match_expr(document: dict[str, Any], expr: dict[str, Any]) -> bool:
    if len(expr) != 1:
        raise ValueError(f"$expr takes exactly one comparison, got {sorted(expr)}")

    op_name, args = next(iter(expr.items()))
    check = OPERATORS.get(op_name)
    if check is None or op_name in ("$in", "$nin", "$exists"):
        raise ValueError(f"Unsupported $expr operator: {op_name}")
    if not isinstance(args, list) or len(args) != 2:
        raise ValueError(f"$expr {op_name} takes two arguments")

    left = _resolve_operand(document, args[0])
    right = _resolve_operand(document, args[1])
    return check(left, right)


def _match_field(stored: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op_name, operand in condition.items():
            check = OPERATORS.get(op_name)
            if check is None:
                raise ValueError(f"Unsupported query operator: {op_name}")
            if not check(stored, operand):
                return False
        return True

    return _equals(stored, condition)


def matches(document: dict[str, Any], query: Query) -> bool:
    """
    Check whether a document satisfies a query.

    Args:
        document: Document to test
        query: Filter dict

    Returns:
        True if every clause of the query holds

    Raises:
        ValueError: If the query uses an unsupported operator
    """
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$expr":
            if not _match_expr(document, condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level operator: {key}")
        elif not _match_field(get_path(document, key), condition):
            return False

    return True


def sort_key(path: str) -> Callable[[dict[str, Any]], tuple[int, Any]]:
    """Build a sort key that orders undefined values first."""

    def key(document: dict[str, Any]) -> tuple[int, Any]:
        value = get_path(document, path)
        if not is_defined(value):
            return (0, "")
        return (1, value)

    return key
