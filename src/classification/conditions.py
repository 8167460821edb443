"""Evaluation of classification rule conditions.

Conditions are a closed set of tagged comparisons over signals looked up
from the processing context. A condition whose signal is absent is false,
and so is a comparison between incompatible types.
"""

import operator
from collections.abc import Callable
from typing import Any

from src.models.enums import ConditionOperator
from src.models.forms import ClassificationRule, Condition
from src.models.submission import MISSING, ProcessingContext

_ORDERING: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.GT: operator.gt,
    ConditionOperator.GTE: operator.ge,
    ConditionOperator.LT: operator.lt,
    ConditionOperator.LTE: operator.le,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(value: Any) -> Any:
    """Compare strings case-insensitively."""
    if isinstance(value, str):
        return value.lower()
    return value


def evaluate_condition(condition: Condition, context: ProcessingContext) -> bool:
    """Evaluate a single condition against the context."""
    actual = context.lookup(condition.signal)
    op = condition.operator

    if op == ConditionOperator.EXISTS:
        present = actual is not MISSING
        return present if condition.value in (None, True) else not present

    if actual is MISSING:
        return False

    if op == ConditionOperator.EQ:
        return _normalize(actual) == _normalize(condition.value)
    if op == ConditionOperator.NE:
        return _normalize(actual) != _normalize(condition.value)
    if op in _ORDERING:
        if not _is_number(actual):
            return False
        return _ORDERING[op](actual, condition.value)
    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        members = {_normalize(v) for v in condition.value}
        try:
            found = _normalize(actual) in members
        except TypeError:
            # Unhashable signal values (lists, dicts) are never members
            return False
        return found if op == ConditionOperator.IN else not found

    return False


def rule_matches(rule: ClassificationRule, context: ProcessingContext) -> bool:
    """A rule matches when every one of its conditions holds."""
    return all(evaluate_condition(c, context) for c in rule.conditions)
