"""Operator grammar of the encoded query language.

Each field type maps to an ordered list of legal operators. The table is
pure data; nothing here performs I/O or mutates state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .fields import FieldType


class Operator(str, Enum):
    """Operator tokens, bit-exact as the backend expects them."""

    EQUALS = "="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    LESS_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_OR_EQUAL = ">="
    CONTAINS = "CONTAINS"
    DOES_NOT_CONTAIN = "DOESNOTCONTAIN"
    STARTS_WITH = "STARTSWITH"
    ENDS_WITH = "ENDSWITH"
    IS_EMPTY = "ISEMPTY"
    IS_NOT_EMPTY = "ISNOTEMPTY"
    LIKE = "LIKE"
    BETWEEN = "BETWEEN"
    IN = "IN"
    NOT_IN = "NOT IN"
    TODAY = "TODAY"
    YESTERDAY = "YESTERDAY"
    THIS_WEEK = "THISWEEK"
    LAST_WEEK = "LASTWEEK"
    THIS_MONTH = "THISMONTH"
    LAST_MONTH = "LASTMONTH"
    THIS_YEAR = "THISYEAR"
    LAST_YEAR = "LASTYEAR"


DATE_KEYWORDS = frozenset({
    Operator.TODAY.value,
    Operator.YESTERDAY.value,
    Operator.THIS_WEEK.value,
    Operator.LAST_WEEK.value,
    Operator.THIS_MONTH.value,
    Operator.LAST_MONTH.value,
    Operator.THIS_YEAR.value,
    Operator.LAST_YEAR.value,
})

EMPTINESS_OPERATORS = frozenset({Operator.IS_EMPTY.value, Operator.IS_NOT_EMPTY.value})

# Operators that compile with an empty value slot
VALUELESS_OPERATORS = DATE_KEYWORDS | EMPTINESS_OPERATORS

TEXT_OPERATORS = frozenset({
    Operator.CONTAINS.value,
    Operator.DOES_NOT_CONTAIN.value,
    Operator.STARTS_WITH.value,
    Operator.ENDS_WITH.value,
    Operator.LIKE.value,
})

# Longest first so that ">=" wins over ">" and "ISNOTEMPTY" over "IN".
ALL_TOKENS: List[str] = sorted((op.value for op in Operator), key=len, reverse=True)


@dataclass(frozen=True)
class OperatorDescriptor:
    """Display and behaviour information for one operator."""

    token: str
    label: str
    description: str
    requires_value: bool = True
    date_only: bool = False


def _op(op: Operator, label: str, description: str,
        requires_value: bool = True, date_only: bool = False) -> OperatorDescriptor:
    return OperatorDescriptor(op.value, label, description, requires_value, date_only)


_STRING_OPERATORS = [
    _op(Operator.EQUALS, "Equals", "Exact match"),
    _op(Operator.NOT_EQUALS, "Not Equals", "Does not match"),
    _op(Operator.CONTAINS, "Contains", "Contains text"),
    _op(Operator.DOES_NOT_CONTAIN, "Does Not Contain", "Does not contain text"),
    _op(Operator.STARTS_WITH, "Starts With", "Begins with text"),
    _op(Operator.ENDS_WITH, "Ends With", "Ends with text"),
    _op(Operator.IS_EMPTY, "Is Empty", "Field is empty", requires_value=False),
    _op(Operator.IS_NOT_EMPTY, "Is Not Empty", "Field is not empty", requires_value=False),
    _op(Operator.LIKE, "Like", "Pattern match (use % wildcards)"),
]

_NUMBER_OPERATORS = [
    _op(Operator.EQUALS, "Equals", "Equal to number"),
    _op(Operator.NOT_EQUALS, "Not Equals", "Not equal to number"),
    _op(Operator.GREATER_THAN, "Greater Than", "Greater than number"),
    _op(Operator.GREATER_OR_EQUAL, "Greater or Equal", "Greater than or equal to number"),
    _op(Operator.LESS_THAN, "Less Than", "Less than number"),
    _op(Operator.LESS_OR_EQUAL, "Less or Equal", "Less than or equal to number"),
    _op(Operator.BETWEEN, "Between", "Between two numbers"),
    _op(Operator.IS_EMPTY, "Is Empty", "Field is empty", requires_value=False),
    _op(Operator.IS_NOT_EMPTY, "Is Not Empty", "Field is not empty", requires_value=False),
]


def _date_operators(noun: str) -> List[OperatorDescriptor]:
    return [
        _op(Operator.EQUALS, "On Date", f"On specific {noun}"),
        _op(Operator.NOT_EQUALS, "Not On Date", f"Not on specific {noun}"),
        _op(Operator.GREATER_THAN, "After", f"After {noun}"),
        _op(Operator.LESS_THAN, "Before", f"Before {noun}"),
        _op(Operator.BETWEEN, "Date Range", "Between two dates", date_only=True),
        _op(Operator.TODAY, "Today", "Today", requires_value=False, date_only=True),
        _op(Operator.YESTERDAY, "Yesterday", "Yesterday", requires_value=False, date_only=True),
        _op(Operator.THIS_WEEK, "This Week", "This week", requires_value=False, date_only=True),
        _op(Operator.LAST_WEEK, "Last Week", "Last week", requires_value=False, date_only=True),
        _op(Operator.THIS_MONTH, "This Month", "This month", requires_value=False, date_only=True),
        _op(Operator.LAST_MONTH, "Last Month", "Last month", requires_value=False, date_only=True),
        _op(Operator.THIS_YEAR, "This Year", "This year", requires_value=False, date_only=True),
        _op(Operator.LAST_YEAR, "Last Year", "Last year", requires_value=False, date_only=True),
        _op(Operator.IS_EMPTY, "Is Empty", "Field is empty", requires_value=False),
        _op(Operator.IS_NOT_EMPTY, "Is Not Empty", "Field is not empty", requires_value=False),
    ]


# "Is True" / "Is False" carry their own literal; the builder fills in "true".
_BOOLEAN_OPERATORS = [
    _op(Operator.EQUALS, "Is True", "Value is true", requires_value=False),
    _op(Operator.NOT_EQUALS, "Is False", "Value is false", requires_value=False),
]

_CHOICE_OPERATORS = [
    _op(Operator.EQUALS, "Equals", "Equals choice value"),
    _op(Operator.NOT_EQUALS, "Not Equals", "Not equals choice value"),
    _op(Operator.IN, "In List", "In list of values"),
    _op(Operator.NOT_IN, "Not In List", "Not in list of values"),
    _op(Operator.IS_EMPTY, "Is Empty", "Field is empty", requires_value=False),
    _op(Operator.IS_NOT_EMPTY, "Is Not Empty", "Field is not empty", requires_value=False),
]

_REFERENCE_OPERATORS = [
    _op(Operator.EQUALS, "Equals", "References specific record"),
    _op(Operator.NOT_EQUALS, "Not Equals", "Does not reference record"),
    _op(Operator.IS_EMPTY, "Is Empty", "Field is empty", requires_value=False),
    _op(Operator.IS_NOT_EMPTY, "Is Not Empty", "Field is not empty", requires_value=False),
]

OPERATORS_BY_FIELD_TYPE: Dict[FieldType, List[OperatorDescriptor]] = {
    FieldType.STRING: _STRING_OPERATORS,
    FieldType.INTEGER: _NUMBER_OPERATORS,
    FieldType.DECIMAL: _NUMBER_OPERATORS,
    FieldType.DATE: _date_operators("date"),
    FieldType.DATE_TIME: _date_operators("date/time"),
    FieldType.BOOLEAN: _BOOLEAN_OPERATORS,
    FieldType.CHOICE: _CHOICE_OPERATORS,
    FieldType.REFERENCE: _REFERENCE_OPERATORS,
}


def operators_for(field_type: Optional[FieldType]) -> List[OperatorDescriptor]:
    """Return the ordered operators legal for ``field_type``.

    Unmapped types fall back to the string operator set.
    """
    return list(OPERATORS_BY_FIELD_TYPE.get(field_type, _STRING_OPERATORS))


def find_operator(field_type: Optional[FieldType], token: str) -> Optional[OperatorDescriptor]:
    """Find the descriptor for ``token`` within the operators of a field type."""
    for descriptor in operators_for(field_type):
        if descriptor.token == token:
            return descriptor
    return None


def operator_info(token: str) -> OperatorDescriptor:
    """Describe a token independently of any field type.

    This is what value validation uses: only the emptiness checks and the
    date keywords take no value, and only the date keywords plus BETWEEN
    are date-only.
    """
    try:
        label = Operator(token).name.replace("_", " ").title()
    except ValueError:
        label = token
    return OperatorDescriptor(
        token=token,
        label=label,
        description=label,
        requires_value=token not in VALUELESS_OPERATORS,
        date_only=token in DATE_KEYWORDS or token == Operator.BETWEEN.value,
    )
