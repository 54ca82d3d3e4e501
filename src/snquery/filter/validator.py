"""Validation of conditions, condition lists and hand-typed queries.

Validation never raises and never mutates its input: every finding is
reported as a ValidationIssue. Only ``error`` issues make a condition or
query invalid; warnings and info are advisory.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence

from loguru import logger

from ..errors import ParseError, QuerySyntaxError
from .compiler import compile_conditions
from .condition import Condition
from .dates import is_range_expression, is_valid_date, parse_range_expression
from .fields import FieldType, TableFieldMetadata
from .grammar import (
    DATE_KEYWORDS,
    EMPTINESS_OPERATORS,
    TEXT_OPERATORS,
    Operator,
    operator_info,
)
from .lang import parse_query


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationIssue:
    """One finding of the validator."""

    severity: Severity
    message: str
    subject: str = ""
    suggestion: str = ""
    operator: str = ""
    value: str = ""
    condition_index: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def format(self) -> str:
        """Message plus suggestion, as shown inline by the builder."""
        if self.suggestion:
            return f"{self.message} ({self.suggestion})"
        return self.message


@dataclass
class ValidationResult:
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    query: str = ""

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]


# Thresholds
MAX_VALUE_LENGTH = 4000
MAX_QUERY_LENGTH = 8000
MAX_CONDITIONS = 20
MAX_CONTAINS = 5
MAX_OR_JOINS = 3

BOOLEAN_TOKENS = ("true", "false", "1", "0")

REFERENCE_OPERATORS = frozenset({
    Operator.EQUALS.value,
    Operator.NOT_EQUALS.value,
    Operator.CONTAINS.value,
    Operator.STARTS_WITH.value,
})

DATE_OPERATORS = frozenset({
    Operator.EQUALS.value,
    Operator.NOT_EQUALS.value,
    Operator.GREATER_THAN.value,
    Operator.GREATER_OR_EQUAL.value,
    Operator.LESS_THAN.value,
    Operator.LESS_OR_EQUAL.value,
    Operator.BETWEEN.value,
}) | DATE_KEYWORDS | EMPTINESS_OPERATORS

BOOLEAN_OPERATORS = frozenset({Operator.EQUALS.value, Operator.NOT_EQUALS.value})

# Heuristic only: this does not make a query safe to send anywhere.
_INJECTION_PATTERNS = [
    "drop table", "delete from", "update set", "insert into",
    "exec(", "execute(", "sp_", "xp_", "<script",
]
_SCRIPT_URL = re.compile(r"javascript:(?!gs\.)", re.IGNORECASE)

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class ConditionValidator:
    """Validates conditions against field-type grammar rules.

    Args:
        metadata: Field metadata of the table, used to flag unknown fields.
            May be None when metadata could not be loaded.
    """

    def __init__(self, metadata: Optional[TableFieldMetadata] = None):
        self.metadata = metadata

    # ------------------------------------------------------------------
    # single condition

    def validate_condition(self, condition: Condition) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        field_desc = condition.field

        if not field_desc.name:
            issues.append(ValidationIssue(Severity.ERROR, "Field is required"))
            return issues

        if self.metadata is not None and self.metadata.find_field(field_desc.name) is None:
            issues.append(ValidationIssue(
                Severity.WARNING,
                f"Field '{field_desc.name}' does not exist in table",
                subject=field_desc.name,
                suggestion="Use field search to find valid fields",
            ))

        if not condition.operator:
            issues.append(ValidationIssue(
                Severity.ERROR, "Operator is required", subject=field_desc.name,
            ))
            return issues

        issues.extend(self._check_operator(condition))
        issues.extend(self._check_value(condition))
        return issues

    def _check_operator(self, condition: Condition) -> List[ValidationIssue]:
        op = condition.operator
        field_desc = condition.field
        ftype = field_desc.type

        def warn(message: str, suggestion: str) -> ValidationIssue:
            return ValidationIssue(
                Severity.WARNING, message, subject=field_desc.name,
                suggestion=suggestion, operator=op,
            )

        if ftype == FieldType.REFERENCE and op not in REFERENCE_OPERATORS | EMPTINESS_OPERATORS:
            return [warn(
                "Reference fields work best with =, !=, CONTAINS, or STARTSWITH operators",
                "Consider using = for sys_id or CONTAINS for display names",
            )]
        if ftype.is_date and op not in DATE_OPERATORS:
            return [warn(
                "Date fields should use comparison operators (=, !=, >, >=, <, <=) or date operators",
                "Use >= for 'on or after' or <= for 'on or before'",
            )]
        if ftype.is_numeric and op in TEXT_OPERATORS:
            return [warn(
                "Numeric fields should not use text operators (CONTAINS, STARTSWITH, ENDSWITH)",
                "Use comparison operators (=, !=, >, >=, <, <=) for numbers",
            )]
        if ftype == FieldType.BOOLEAN and op not in BOOLEAN_OPERATORS:
            return [warn(
                "Boolean fields should only use = or != operators",
                "Use = true/false or != true/false",
            )]
        return []

    def _check_value(self, condition: Condition) -> List[ValidationIssue]:
        if not operator_info(condition.operator).requires_value:
            return []

        field_desc = condition.field
        value = condition.value

        def issue(severity: Severity, message: str, suggestion: str = "", shown: str = None):
            return ValidationIssue(
                severity, message, subject=field_desc.name, suggestion=suggestion,
                operator=condition.operator, value=value if shown is None else shown,
            )

        if not value.strip() and condition.start is None:
            return [issue(Severity.ERROR, "Value is required for this operator")]

        ftype = field_desc.type

        # Date ranges are checked through their instants, whatever the field type.
        if condition.operator == Operator.BETWEEN.value and (
            is_range_expression(value) or (not value and condition.start is not None)
        ):
            return self._check_range(condition, issue)

        if ftype == FieldType.INTEGER:
            bad = [v for v in _split_values(condition) if not _INTEGER_RE.match(v)]
            if bad:
                return [issue(Severity.ERROR, "Value must be a valid integer",
                              "Enter a whole number (e.g., 123)")]

        elif ftype == FieldType.DECIMAL:
            bad = [v for v in _split_values(condition) if not _DECIMAL_RE.match(v)]
            if bad:
                return [issue(Severity.ERROR, "Value must be a valid decimal number",
                              "Enter a decimal number (e.g., 123.45)")]

        elif ftype == FieldType.BOOLEAN:
            if value.strip().lower() not in BOOLEAN_TOKENS:
                return [issue(Severity.ERROR, "Boolean value must be true, false, 1, or 0",
                              "Use 'true', 'false', '1', or '0'")]

        elif ftype.is_date:
            if not is_valid_date(value):
                return [issue(Severity.ERROR, "Invalid date format",
                              "Use format: YYYY-MM-DD or YYYY-MM-DD HH:MM:SS")]

        elif ftype == FieldType.CHOICE:
            if field_desc.choices:
                unknown = [v for v in _split_values(condition) if not field_desc.has_choice(v)]
                if unknown:
                    return [issue(Severity.WARNING, "Value may not be a valid choice for this field",
                                  "Use the choice dropdown to select valid values")]

        elif ftype.is_text:
            issues = []
            if "^" in value or "=" in value:
                issues.append(issue(
                    Severity.WARNING, "Value contains special characters that may cause issues",
                    "Special characters (^ =) in values may need to be escaped",
                ))
            if len(value) > MAX_VALUE_LENGTH:
                issues.append(issue(
                    Severity.WARNING, "Very long values may cause performance issues",
                    "Consider using shorter, more specific search terms",
                    shown=value[:50] + "...",
                ))
            return issues

        return []

    def _check_range(self, condition: Condition, issue) -> List[ValidationIssue]:
        start, end = condition.start, condition.end
        if condition.value:
            try:
                parsed = parse_range_expression(condition.value)
            except ParseError:
                parsed = None
            if parsed is None:
                return [issue(Severity.ERROR, "Invalid date range",
                              "Use javascript:gs.dateGenerate('start','end')")]
            start, end = parsed
        if start is None or end is None:
            return [issue(Severity.ERROR, "Both start and end dates are required")]
        if end < start:
            return [issue(Severity.ERROR, "End date must be after start date")]
        return []

    # ------------------------------------------------------------------
    # whole query

    def validate_query(self, conditions: Sequence[Condition]) -> ValidationResult:
        conditions = list(conditions)
        if not conditions:
            return ValidationResult(
                is_valid=False,
                issues=[ValidationIssue(Severity.ERROR, "Query must have at least one condition",
                                        suggestion="Add at least one condition")],
                query="",
            )

        issues: List[ValidationIssue] = []
        for index, condition in enumerate(conditions):
            for found in self.validate_condition(condition):
                issues.append(replace(
                    found,
                    condition_index=index,
                    subject=f"Condition {index + 1}: {found.subject}",
                ))

        query = compile_conditions(conditions)
        issues.extend(check_syntax(query))
        issues.extend(self._check_performance(conditions, query))

        result = ValidationResult(
            is_valid=not any(i.is_error for i in issues),
            issues=issues,
            query=query,
        )
        logger.debug(
            f"validated {len(conditions)} conditions: valid={result.is_valid}, "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings"
        )
        return result

    def _check_performance(self, conditions: Sequence[Condition], query: str) -> List[ValidationIssue]:
        issues = []
        if len(conditions) > MAX_CONDITIONS:
            issues.append(ValidationIssue(
                Severity.WARNING,
                f"Query has {len(conditions)} conditions which may be slow",
                suggestion="Consider simplifying the query for better performance",
            ))

        contains = sum(1 for c in conditions if c.operator == Operator.CONTAINS.value)
        if contains > MAX_CONTAINS:
            issues.append(ValidationIssue(
                Severity.WARNING,
                f"Query has {contains} CONTAINS operations which may be slow",
                suggestion="Consider using more specific operators like STARTSWITH or exact matches",
            ))

        or_count = query.count("^OR")
        if or_count > MAX_OR_JOINS:
            issues.append(ValidationIssue(
                Severity.WARNING,
                f"Query has {or_count} OR operations which may be slow",
                suggestion="OR operations can be slow on large tables",
            ))
        return issues

    # ------------------------------------------------------------------
    # hand-typed query

    def validate_raw_query(self, raw_query: str) -> ValidationResult:
        """Sanity-check a manually typed encoded query.

        The injection blocklist is a heuristic substring match. It catches
        obvious mistakes and is not a security boundary.
        """
        if not raw_query.strip():
            return ValidationResult(
                is_valid=False,
                issues=[ValidationIssue(Severity.ERROR, "Query cannot be empty")],
                query=raw_query,
            )

        issues = check_syntax(raw_query)

        lowered = raw_query.lower()
        if any(p in lowered for p in _INJECTION_PATTERNS) or _SCRIPT_URL.search(raw_query):
            issues.append(ValidationIssue(
                Severity.ERROR, "Query contains potentially dangerous patterns",
            ))

        if not any(i.is_error for i in issues):
            try:
                parse_query(raw_query)
            except QuerySyntaxError:
                issues.append(ValidationIssue(
                    Severity.WARNING,
                    "Query could not be split into field/operator/value terms",
                    suggestion="Each term should look like field=value or fieldCONTAINSvalue",
                ))

        return ValidationResult(
            is_valid=not any(i.is_error for i in issues),
            issues=issues,
            query=raw_query,
        )


def check_syntax(query: str) -> List[ValidationIssue]:
    """Structural checks shared by compiled and hand-typed queries."""
    issues: List[ValidationIssue] = []
    if not query:
        return issues

    if query.startswith("^") or query.endswith("^") or query.endswith("^OR"):
        issues.append(ValidationIssue(
            Severity.WARNING, "Query has unmatched logical operators (^)",
        ))

    if "^^" in query or "^OR^" in query:
        issues.append(ValidationIssue(
            Severity.ERROR, "Query contains consecutive logical operators",
            suggestion="Remove the doubled ^",
        ))

    if ("(" in query or ")" in query) and not has_balanced_parentheses(query):
        issues.append(ValidationIssue(
            Severity.ERROR, "Query has unbalanced parentheses",
        ))

    if len(query) > MAX_QUERY_LENGTH:
        issues.append(ValidationIssue(
            Severity.WARNING, "Query is very long and may cause performance issues",
            suggestion="Consider simplifying the query or breaking it into multiple searches",
        ))
    return issues


def has_balanced_parentheses(text: str) -> bool:
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _split_values(condition: Condition) -> List[str]:
    """IN / NOT IN take comma separated lists, numeric BETWEEN takes ``low@high``."""
    value = condition.value.strip()
    if condition.operator in (Operator.IN.value, Operator.NOT_IN.value):
        return [v.strip() for v in value.split(",") if v.strip()]
    if condition.operator == Operator.BETWEEN.value and "@" in value:
        return [v.strip() for v in value.split("@")]
    return [value]
