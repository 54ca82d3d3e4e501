"""snquery - interactive builder for ServiceNow-style encoded queries.

Assemble typed conditions field by field, validate them against the
field-type grammar and compile them into a single encoded query.
"""

__version__ = "0.1.0"
__author__ = "snquery contributors"

from .filter.condition import Condition, ConditionSet, LogicalOperator
from .filter.compiler import compile_conditions
from .filter.validator import ConditionValidator
from .tui.builder import ConditionBuilder

__all__ = [
    "Condition",
    "ConditionSet",
    "LogicalOperator",
    "compile_conditions",
    "ConditionValidator",
    "ConditionBuilder",
]
