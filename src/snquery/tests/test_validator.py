"""
条件校验测试
"""

from datetime import datetime

from hypothesis import given, settings, strategies as st

from snquery.filter.condition import Condition, LogicalOperator
from snquery.filter.fields import FieldDescriptor, FieldType
from snquery.filter.validator import (
    ConditionValidator,
    Severity,
    check_syntax,
    has_balanced_parentheses,
)


ACTIVE = FieldDescriptor("active", "Active", FieldType.BOOLEAN)
PRIORITY = FieldDescriptor("priority", "Priority", FieldType.INTEGER)
SCORE = FieldDescriptor("impact_score", "Impact score", FieldType.DECIMAL)
OPENED = FieldDescriptor("opened_at", "Opened", FieldType.DATE_TIME)
DESCRIPTION = FieldDescriptor("short_description", "Short description", FieldType.STRING)


def _severities(issues):
    return [i.severity for i in issues]


# ==================== 属性测试 ====================

@settings(max_examples=40, deadline=None)
@given(st.sampled_from(["CONTAINS", "STARTSWITH", ">", "<", "LIKE", "ENDSWITH", "IN"]))
def test_boolean_field_rejects_other_operators(operator):
    """布尔字段使用 = / != 以外的操作符会产生警告"""
    issues = ConditionValidator().validate_condition(Condition(ACTIVE, operator, "true"))
    assert any(
        i.severity == Severity.WARNING and "Boolean fields" in i.message for i in issues
    )


@settings(max_examples=100, deadline=None)
@given(st.integers(min_value=-10**9, max_value=10**9))
def test_integer_values_accepted(number):
    """任意整数值都能通过整数字段校验"""
    issues = ConditionValidator().validate_condition(Condition(PRIORITY, "=", str(number)))
    assert not any(i.is_error for i in issues)


@settings(max_examples=100, deadline=None)
@given(st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False))
def test_decimal_values_accepted(number):
    """任意有限小数都能通过小数字段校验"""
    issues = ConditionValidator().validate_condition(Condition(SCORE, ">", repr(number)))
    assert not any(i.is_error for i in issues)


@settings(max_examples=50, deadline=None)
@given(st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=10))
def test_alphabetic_values_rejected_for_numbers(text):
    """纯字母值对数值字段是错误"""
    issues = ConditionValidator().validate_condition(Condition(PRIORITY, "=", text))
    assert Severity.ERROR in _severities(issues)


# ==================== 单元测试 ====================

class TestValidateCondition:
    """测试单个条件校验"""

    def test_field_required(self):
        issues = ConditionValidator().validate_condition(Condition(FieldDescriptor(""), "=", "1"))
        assert [i.message for i in issues] == ["Field is required"]

    def test_operator_required(self):
        issues = ConditionValidator().validate_condition(Condition(PRIORITY, "", "1"))
        assert issues[-1].message == "Operator is required"
        assert issues[-1].is_error

    def test_unknown_field_is_warning(self, metadata):
        validator = ConditionValidator(metadata)
        issues = validator.validate_condition(Condition(FieldDescriptor("nope"), "=", "x"))
        assert _severities(issues) == [Severity.WARNING]
        assert "does not exist" in issues[0].message

    def test_value_required(self):
        issues = ConditionValidator().validate_condition(Condition(DESCRIPTION, "CONTAINS", "  "))
        assert issues[0].message == "Value is required for this operator"

    def test_valueless_operator_needs_no_value(self):
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(DESCRIPTION, "ISEMPTY")) == []
        assert validator.validate_condition(Condition(OPENED, "TODAY")) == []

    def test_integer_error_has_suggestion(self):
        issues = ConditionValidator().validate_condition(Condition(PRIORITY, "=", "abc"))
        assert issues[0].message == "Value must be a valid integer"
        assert issues[0].format() == "Value must be a valid integer (Enter a whole number (e.g., 123))"

    def test_numeric_between_and_in(self):
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(PRIORITY, "BETWEEN", "1@10")) == []
        issues = validator.validate_condition(Condition(PRIORITY, "BETWEEN", "1@x"))
        assert issues and issues[0].is_error

    def test_numeric_text_operator_warns(self):
        issues = ConditionValidator().validate_condition(Condition(PRIORITY, "CONTAINS", "1"))
        assert any("text operators" in i.message for i in issues)

    def test_boolean_value(self):
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(ACTIVE, "=", "TRUE")) == []
        issues = validator.validate_condition(Condition(ACTIVE, "=", "yes"))
        assert issues[0].is_error

    def test_date_value(self):
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(OPENED, ">", "2024-01-01")) == []
        assert validator.validate_condition(Condition(OPENED, ">", "2024-01-01 08:00:00")) == []
        assert validator.validate_condition(Condition(OPENED, ">", "01/31/2024")) == []
        issues = validator.validate_condition(Condition(OPENED, ">", "yesterday-ish"))
        assert issues[0].message == "Invalid date format"

    def test_date_operator_warning(self):
        issues = ConditionValidator().validate_condition(Condition(OPENED, "CONTAINS", "2024-01-01"))
        assert any(i.severity == Severity.WARNING and "Date fields" in i.message for i in issues)

    def test_reference_operator_warning(self):
        field = FieldDescriptor("assigned_to", type=FieldType.REFERENCE, reference="sys_user")
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(field, "STARTSWITH", "Ab")) == []
        issues = validator.validate_condition(Condition(field, "ENDSWITH", "x"))
        assert _severities(issues) == [Severity.WARNING]

    def test_choice_warning(self, metadata):
        state = metadata.find_field("state")
        validator = ConditionValidator()
        assert validator.validate_condition(Condition(state, "=", "2")) == []
        assert validator.validate_condition(Condition(state, "=", "In Progress")) == []
        assert validator.validate_condition(Condition(state, "IN", "1,7")) == []
        issues = validator.validate_condition(Condition(state, "=", "42"))
        assert _severities(issues) == [Severity.WARNING]

    def test_text_special_characters(self):
        issues = ConditionValidator().validate_condition(Condition(DESCRIPTION, "CONTAINS", "a^b"))
        assert _severities(issues) == [Severity.WARNING]
        assert "special characters" in issues[0].message

    def test_text_very_long(self):
        issues = ConditionValidator().validate_condition(Condition(DESCRIPTION, "=", "x" * 4001))
        assert _severities(issues) == [Severity.WARNING]
        assert issues[0].value.endswith("...")

    def test_range_order(self):
        validator = ConditionValidator()
        good = Condition(OPENED, "BETWEEN", start=datetime(2024, 1, 1), end=datetime(2024, 1, 2))
        assert validator.validate_condition(good) == []

        bad = Condition(OPENED, "BETWEEN", start=datetime(2024, 1, 2), end=datetime(2024, 1, 1))
        issues = validator.validate_condition(bad)
        assert issues[0].message == "End date must be after start date"

    def test_range_expression_value(self):
        validator = ConditionValidator()
        good = "javascript:gs.dateGenerate('2024-01-01 00:00:00','2024-01-31 23:59:59')"
        assert validator.validate_condition(Condition(OPENED, "BETWEEN", good)) == []

        broken = "javascript:gs.dateGenerate('2024-13-01 00:00:00','2024-01-31 23:59:59')"
        issues = validator.validate_condition(Condition(OPENED, "BETWEEN", broken))
        assert issues[0].message == "Invalid date range"

    def test_validation_does_not_mutate(self):
        condition = Condition(PRIORITY, "=", "abc")
        ConditionValidator().validate_condition(condition)
        assert condition.value == "abc"


class TestValidateQuery:
    """测试整个条件列表的校验"""

    def test_empty_list(self):
        result = ConditionValidator().validate_query([])
        assert not result.is_valid
        assert result.errors[0].message == "Query must have at least one condition"

    def test_issue_location(self):
        conditions = [Condition(DESCRIPTION, "=", "ok"), Condition(PRIORITY, "=", "abc")]
        result = ConditionValidator().validate_query(conditions)
        assert not result.is_valid
        error = result.errors[0]
        assert error.condition_index == 1
        assert error.subject == "Condition 2: priority"
        assert result.query == "short_description=ok^priority=abc"

    def test_many_conditions_warn_but_stay_valid(self):
        conditions = [Condition(PRIORITY, "=", str(i)) for i in range(25)]
        result = ConditionValidator().validate_query(conditions)
        assert result.is_valid
        assert any("25 conditions" in w.message for w in result.warnings)

    def test_many_contains(self):
        conditions = [Condition(DESCRIPTION, "CONTAINS", f"w{i}") for i in range(6)]
        result = ConditionValidator().validate_query(conditions)
        assert any("CONTAINS operations" in w.message for w in result.warnings)

    def test_many_or_joins(self):
        conditions = [
            Condition(PRIORITY, "=", str(i), logical_op=LogicalOperator.OR if i < 4 else None)
            for i in range(5)
        ]
        result = ConditionValidator().validate_query(conditions)
        assert result.query.count("^OR") == 4
        assert result.is_valid
        assert any("4 OR operations" in w.message for w in result.warnings)

    def test_three_or_joins_do_not_warn(self):
        conditions = [
            Condition(PRIORITY, "=", str(i), logical_op=LogicalOperator.OR if i < 3 else None)
            for i in range(4)
        ]
        result = ConditionValidator().validate_query(conditions)
        assert result.issues == []

    def test_very_long_query(self):
        conditions = [Condition(DESCRIPTION, "=", "x" * 3000) for _ in range(3)]
        result = ConditionValidator().validate_query(conditions)
        assert len(result.query) > 8000
        assert result.is_valid
        assert [w.message for w in result.warnings] == [
            "Query is very long and may cause performance issues"
        ]

    def test_date_range_query_is_valid(self):
        condition = Condition(OPENED, "BETWEEN", start=datetime(2024, 1, 1),
                              end=datetime(2024, 1, 31, 23, 59, 59))
        result = ConditionValidator().validate_query([condition])
        assert result.is_valid
        assert result.issues == []


class TestRawQuery:
    """测试手写查询的检查"""

    def test_empty(self):
        result = ConditionValidator().validate_raw_query("   ")
        assert not result.is_valid
        assert result.errors[0].message == "Query cannot be empty"

    def test_plain_query_is_valid(self):
        result = ConditionValidator().validate_raw_query("active=true^priority<=2^ORstate=1")
        assert result.is_valid
        assert result.issues == []

    def test_consecutive_operators(self):
        result = ConditionValidator().validate_raw_query("a=1^^b=2")
        assert not result.is_valid
        assert result.errors[0].message == "Query contains consecutive logical operators"

    def test_unbalanced_parentheses(self):
        result = ConditionValidator().validate_raw_query("a=(1^b=2")
        assert not result.is_valid
        assert result.errors[0].message == "Query has unbalanced parentheses"

    def test_dangerous_patterns(self):
        validator = ConditionValidator()
        assert not validator.validate_raw_query("name=x; DROP TABLE users").is_valid
        assert not validator.validate_raw_query("name=javascript:alert(1)").is_valid
        assert not validator.validate_raw_query("name=<script>").is_valid

    def test_range_function_allowed(self):
        query = "opened_atBETWEENjavascript:gs.dateGenerate('2024-01-01 00:00:00','2024-01-31 23:59:59')"
        assert ConditionValidator().validate_raw_query(query).is_valid

    def test_unsplittable_query_warns(self):
        result = ConditionValidator().validate_raw_query("just some words")
        assert result.is_valid
        assert result.warnings[0].message.startswith("Query could not be split")

    def test_dangling_separator(self):
        issues = check_syntax("a=1^OR")
        assert _severities(issues) == [Severity.WARNING]

    def test_parentheses_helper(self):
        assert has_balanced_parentheses("f(a(b))")
        assert not has_balanced_parentheses(")(")
        assert not has_balanced_parentheses("((")
