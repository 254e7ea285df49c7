from __future__ import annotations

import math
import operator as op
from typing import Callable

from app.modules.alerts.models import ComparisonOperator
from app.modules.alerts.paths import to_number

DEFAULT_EPSILON = 0.0001

_ORDERED: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.LT: op.lt,
    ComparisonOperator.GT: op.gt,
    ComparisonOperator.LTE: op.le,
    ComparisonOperator.GTE: op.ge,
}


def parse_threshold(raw: str | float | int | None) -> float | None:
    """Threshold strings are parsed at evaluation time; anything unparseable is unknown."""
    return to_number(raw)


def compare_values(
    value: float | None,
    operator: ComparisonOperator | str,
    threshold: str | float | None,
    epsilon: float = DEFAULT_EPSILON,
) -> bool:
    """
    Decide whether a metric value crosses a threshold.

    Unknown inputs never alarm: a missing or non-finite value or threshold, or
    an unrecognised operator, always yields False.
    """
    if value is None or not math.isfinite(value):
        return False
    limit = parse_threshold(threshold)
    if limit is None:
        return False
    try:
        comparison = ComparisonOperator(operator)
    except ValueError:
        return False
    if comparison is ComparisonOperator.EQ:
        return abs(value - limit) < epsilon
    return _ORDERED[comparison](value, limit)
