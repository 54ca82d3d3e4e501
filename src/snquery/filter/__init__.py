"""Filter module for snquery - field grammar, conditions, compiler and validator."""

from .fields import (
    FieldType,
    FieldChoice,
    FieldDescriptor,
    TableFieldMetadata,
    sort_fields_by_priority,
)
from .grammar import (
    Operator,
    OperatorDescriptor,
    operators_for,
    find_operator,
    operator_info,
)
from .condition import LogicalOperator, Condition, ConditionSet
from .compiler import compile_condition, compile_conditions
from .lang import QueryTerm, parse_query
from .validator import (
    Severity,
    ValidationIssue,
    ValidationResult,
    ConditionValidator,
)

__all__ = [
    # 字段
    "FieldType",
    "FieldChoice",
    "FieldDescriptor",
    "TableFieldMetadata",
    "sort_fields_by_priority",
    # 操作符
    "Operator",
    "OperatorDescriptor",
    "operators_for",
    "find_operator",
    "operator_info",
    # 条件与编译
    "LogicalOperator",
    "Condition",
    "ConditionSet",
    "compile_condition",
    "compile_conditions",
    "QueryTerm",
    "parse_query",
    # 校验
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "ConditionValidator",
]
