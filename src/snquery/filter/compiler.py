"""Compile a condition list into an encoded query string."""

from typing import Iterable, Optional

from .condition import Condition, LogicalOperator
from .dates import date_range_expression
from .grammar import VALUELESS_OPERATORS, Operator


def condition_value(condition: Condition) -> str:
    """Return the literal emitted after the operator for ``condition``."""
    if condition.operator in VALUELESS_OPERATORS:
        return ""
    if (
        condition.operator == Operator.BETWEEN.value
        and not condition.value
        and condition.start is not None
        and condition.end is not None
    ):
        return date_range_expression(condition.start, condition.end)
    return condition.value


def compile_condition(condition: Condition) -> str:
    """``field<operator><value>`` with no separating whitespace."""
    return f"{condition.field.name}{condition.operator}{condition_value(condition)}"


def compile_conditions(conditions: Iterable[Condition]) -> str:
    """Join the compiled conditions left to right.

    Condition *i* is joined to condition *i+1* by the logical operator stored
    on condition *i*: ``^`` for AND (the default), ``^OR`` for OR. No
    parentheses are generated.

    Args:
        conditions: ordered conditions

    Returns:
        Encoded query, or an empty string for an empty list
    """
    parts = []
    previous: Optional[Condition] = None
    for condition in conditions:
        if previous is not None:
            join = previous.logical_op or LogicalOperator.AND
            parts.append(join.separator)
        parts.append(compile_condition(condition))
        previous = condition
    return "".join(parts)
