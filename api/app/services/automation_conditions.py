"""Pure condition evaluation for automation rules.

Invariants:
- Empty or missing conditions always match.
- All declared conditions must hold (logical AND).
- Unresolvable keys, uncoercible values, and unknown operators are a non-match, never an error.
- Numeric expectations are minimum thresholds compared numerically.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from app.services.automation_types import AutomationContext

_MISSING = object()

_COMPARATORS = {
    "eq": lambda actual, expected: _equals(actual, expected),
    "ne": lambda actual, expected: not _equals(actual, expected),
    "gt": lambda actual, expected: _compare_numbers(actual, expected, lambda a, b: a > b),
    "gte": lambda actual, expected: _compare_numbers(actual, expected, lambda a, b: a >= b),
    "lt": lambda actual, expected: _compare_numbers(actual, expected, lambda a, b: a < b),
    "lte": lambda actual, expected: _compare_numbers(actual, expected, lambda a, b: a <= b),
    "in": lambda actual, expected: _is_sequence(expected) and any(_equals(actual, item) for item in expected),
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _to_number(value: Any) -> float | None:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _compare_numbers(actual: Any, expected: Any, op) -> bool:
    left = _to_number(actual)
    right = _to_number(expected)
    if left is None or right is None:
        return False
    return op(left, right)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(expected, bool):
        return isinstance(actual, bool) and actual is expected
    if _is_number(expected):
        number = _to_number(actual)
        return number is not None and number == float(expected)
    if actual is None or expected is None:
        return actual is expected
    return str(actual) == str(expected)


def _lookup(source: Any, path: Sequence[str]) -> Any:
    current = source
    for part in path:
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def resolve_value(key: str, context: AutomationContext) -> Any:
    """Resolve a condition key from context metadata first, then the resource payload."""
    path = key.split(".")
    for source in (context.metadata, context.resource):
        if source is None:
            continue
        value = _lookup(source, path)
        if value is not _MISSING:
            return value
    return _MISSING


def _matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, Mapping):
        if not expected:
            return False
        for op, operand in expected.items():
            comparator = _COMPARATORS.get(op)
            if comparator is None or not comparator(actual, operand):
                return False
        return True
    if isinstance(expected, bool):
        return bool(actual) is expected
    if _is_number(expected):
        return _compare_numbers(actual, expected, lambda a, b: a >= b)
    if _is_sequence(expected):
        return any(_equals(actual, item) for item in expected)
    return _equals(actual, expected)


def evaluate(conditions: Mapping[str, Any] | None, context: AutomationContext) -> bool:
    """Return True when every declared condition holds for the context."""
    if not conditions:
        return True
    if not isinstance(conditions, Mapping):
        return False
    for key, expected in conditions.items():
        if not isinstance(key, str):
            return False
        actual = resolve_value(key, context)
        if actual is _MISSING:
            return False
        if not _matches(actual, expected):
            return False
    return True
