"""Trigger condition evaluation.

Conditions map a context field either to a literal (equality) or to an
operator object such as ``{"$gte": 100, "$lt": 500}``. All fields must
pass and all operators inside one field must pass.
"""

import logging
from typing import Any, Mapping, Optional

from fieldflow.dsl.operators import TRIGGER_OPERATORS, TriggerOperator

logger = logging.getLogger(__name__)


def evaluate_conditions(conditions: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]) -> bool:
    if not conditions:
        return True
    context = context or {}

    for field, condition in conditions.items():
        value = context.get(field)

        if isinstance(condition, Mapping):
            for op, expected in condition.items():
                try:
                    compare = TRIGGER_OPERATORS[TriggerOperator(op)]
                except ValueError:
                    # rejected when the definition is saved; older rows may still carry one
                    logger.warning("[TriggerMatcher] ignoring unknown operator %r on %r", op, field)
                    continue
                if not compare(value, expected):
                    return False
        elif value != condition:
            return False

    return True
