"""Comparison operators used by condition steps and trigger conditions.

Every operator is a total function of (actual, expected): comparisons Python
cannot order (``None > 3``, ``"a" < 1``) evaluate to False instead of raising.
"""

from __future__ import annotations

import operator as _op
from enum import Enum
from typing import Any, Callable, Dict, Mapping

Comparator = Callable[[Any, Any], bool]


class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class TriggerOperator(str, Enum):
    EQ = "$eq"
    NE = "$ne"
    GT = "$gt"
    GTE = "$gte"
    LT = "$lt"
    LTE = "$lte"
    IN = "$in"
    NIN = "$nin"


OPERATOR_ALIASES: Dict[str, Operator] = {
    "=": Operator.EQ,
    "==": Operator.EQ,
    "!=": Operator.NE,
    "<>": Operator.NE,
    ">": Operator.GT,
    ">=": Operator.GTE,
    "<": Operator.LT,
    "<=": Operator.LTE,
    "not_in": Operator.NIN,
}

_SEQUENCES = (list, tuple, set, frozenset)


def _ordered(compare: Comparator) -> Comparator:
    def wrapped(actual: Any, expected: Any) -> bool:
        try:
            return bool(compare(actual, expected))
        except TypeError:
            return False
    return wrapped


def _is_in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, _SEQUENCES):
        return False
    try:
        return actual in expected
    except TypeError:
        return False


def _is_not_in(actual: Any, expected: Any) -> bool:
    return not _is_in(actual, expected)


def _str_test(method: str) -> Comparator:
    def test(actual: Any, expected: Any) -> bool:
        if not isinstance(actual, str) or expected is None:
            return False
        if method == "contains":
            return str(expected) in actual
        return getattr(actual, method)(str(expected))
    return test


def _is_empty(actual: Any, _expected: Any = None) -> bool:
    if actual is None or actual == "":
        return True
    return isinstance(actual, (list, tuple)) and len(actual) == 0


OPERATORS: Mapping[Operator, Comparator] = {
    Operator.EQ: lambda a, e: a == e,
    Operator.NE: lambda a, e: a != e,
    Operator.GT: _ordered(_op.gt),
    Operator.GTE: _ordered(_op.ge),
    Operator.LT: _ordered(_op.lt),
    Operator.LTE: _ordered(_op.le),
    Operator.IN: _is_in,
    Operator.NIN: _is_not_in,
    Operator.CONTAINS: _str_test("contains"),
    Operator.STARTS_WITH: _str_test("startswith"),
    Operator.ENDS_WITH: _str_test("endswith"),
    Operator.IS_NULL: lambda a, _e: a is None,
    Operator.IS_NOT_NULL: lambda a, _e: a is not None,
    Operator.IS_EMPTY: _is_empty,
    Operator.IS_NOT_EMPTY: lambda a, e: not _is_empty(a, e),
}

TRIGGER_OPERATORS: Mapping[TriggerOperator, Comparator] = {
    TriggerOperator.EQ: OPERATORS[Operator.EQ],
    TriggerOperator.NE: OPERATORS[Operator.NE],
    TriggerOperator.GT: OPERATORS[Operator.GT],
    TriggerOperator.GTE: OPERATORS[Operator.GTE],
    TriggerOperator.LT: OPERATORS[Operator.LT],
    TriggerOperator.LTE: OPERATORS[Operator.LTE],
    TriggerOperator.IN: _is_in,
    TriggerOperator.NIN: _is_not_in,
}


def resolve_operator(name: Any) -> Operator:
    if isinstance(name, Operator):
        return name
    if name in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[name]
    try:
        return Operator(name)
    except ValueError:
        raise ValueError(f"Unknown operator: {name}") from None


def evaluate(actual: Any, operator: Any, expected: Any) -> bool:
    return OPERATORS[resolve_operator(operator)](actual, expected)
