"""
条件构建器状态机测试
通过按键序列驱动，验证最终生成的查询
"""

from concurrent.futures import Executor, Future
from datetime import date, datetime

import pytest
from rich.console import Console

from snquery.config import BuilderConfig
from snquery.filter.condition import Condition, LogicalOperator
from snquery.services.records import JsonRecordSource
from snquery.tui.builder import BuilderState, ConditionBuilder
from snquery.tui.daterange import RangeMode
from snquery.tui.reference import ReferenceResolver


class InlineExecutor(Executor):
    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


@pytest.fixture
def builder(metadata, clock):
    b = ConditionBuilder(metadata, config=BuilderConfig(), clock=clock)
    yield b
    b.close()


def type_text(builder, text):
    for char in text:
        builder.update(char)


def pick_field(builder, text):
    """在字段列表中输入过滤文本并回车"""
    type_text(builder, text)
    builder.update("enter")
    assert builder.state == BuilderState.OPERATOR_SELECTION


def pick_operator(builder, downs=0):
    builder.feed(["down"] * downs + ["enter"])


def render(builder):
    console = Console(record=True, width=120)
    console.print(builder.view())
    return console.export_text()


# ==================== 单元测试 ====================

class TestBasicFlow:
    """测试字段 → 操作符 → 值 → 逻辑连接"""

    def test_first_condition_commits_without_join(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        assert builder.state == BuilderState.VALUE_INPUT
        type_text(builder, "1")
        builder.update("enter")
        assert builder.state == BuilderState.FIELD_SELECTION
        assert builder.build_query() == "priority=1"
        assert builder.message == "Added: Priority = 1"

    def test_second_condition_with_or(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        type_text(builder, "1")
        builder.update("enter")

        pick_field(builder, "state")
        pick_operator(builder)
        assert builder.state == BuilderState.CHOICE_SELECTION
        builder.feed(["down", "enter"])
        assert builder.state == BuilderState.LOGICAL_OPERATOR_SELECTION
        builder.feed(["down", "enter"])

        assert builder.build_query() == "priority=1^ORstate=2"
        conditions = builder.get_conditions()
        assert conditions[0].logical_op == LogicalOperator.OR
        assert conditions[1].logical_op is None

    def test_join_shortcuts(self, builder):
        for value in ("1", "2", "3"):
            pick_field(builder, "priority")
            pick_operator(builder)
            type_text(builder, value)
            builder.update("enter")
            if builder.state == BuilderState.LOGICAL_OPERATOR_SELECTION:
                builder.update("o" if value == "2" else "esc")
        assert builder.build_query() == "priority=1^ORpriority=2^priority=3"

    def test_integer_error_keeps_input(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        type_text(builder, "abc")
        builder.update("enter")
        assert builder.state == BuilderState.VALUE_INPUT
        assert builder.error == "Value must be a valid integer (Enter a whole number (e.g., 123))"
        assert builder.build_query() == ""

        builder.update("ctrl+u")
        type_text(builder, "4")
        builder.update("enter")
        assert builder.build_query() == "priority=4"
        assert builder.error == ""

    def test_warning_does_not_block(self, builder):
        pick_field(builder, "short")
        pick_operator(builder, downs=2)
        type_text(builder, "a=b")
        builder.update("enter")
        assert builder.build_query() == "short_descriptionCONTAINSa=b"
        assert builder.warnings
        assert "special characters" in builder.warnings[0].message

    def test_escape_returns_to_previous_step(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        builder.update("esc")
        assert builder.state == BuilderState.OPERATOR_SELECTION
        builder.update("esc")
        assert builder.state == BuilderState.FIELD_SELECTION
        assert builder.is_active()

    def test_no_matching_field(self, builder):
        type_text(builder, "zzzz")
        builder.update("enter")
        assert builder.state == BuilderState.FIELD_SELECTION
        assert builder.error == "No field matches the filter"


class TestValuelessOperators:
    """测试不需要值的操作符"""

    def test_boolean_is_true(self, builder):
        pick_field(builder, "active")
        pick_operator(builder)
        assert builder.build_query() == "active=true"

    def test_boolean_is_false(self, builder):
        pick_field(builder, "active")
        pick_operator(builder, downs=1)
        assert builder.build_query() == "active!=true"

    def test_date_keyword(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder, downs=5)
        assert builder.build_query() == "opened_atTODAY"

    def test_is_empty(self, builder):
        pick_field(builder, "assigned")
        pick_operator(builder, downs=2)
        assert builder.build_query() == "assigned_toISEMPTY"


class TestChoiceSelection:
    """测试选项字段"""

    def test_multi_select(self, builder):
        pick_field(builder, "state")
        pick_operator(builder, downs=2)
        assert builder.choice_list.multi
        builder.feed([" ", "down", "down", " ", "enter"])
        assert builder.build_query() == "stateIN1,7"

    def test_single_select_ignores_space(self, builder):
        pick_field(builder, "state")
        pick_operator(builder)
        builder.feed([" ", "down", "down", "enter"])
        assert builder.build_query() == "state=7"


class TestDates:
    """测试日期字段的日历与范围输入"""

    def test_calendar_date(self, builder):
        pick_field(builder, "due")
        pick_operator(builder)
        assert builder.state == BuilderState.CALENDAR
        assert not builder.calendar.show_time
        builder.feed(["right", "enter"])
        assert builder.build_query() == "due_date=2024-03-16"

    def test_calendar_date_time(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder)
        assert builder.calendar.show_time
        builder.feed(["enter", "1", "0", "tab", "3", "0", "enter"])
        assert builder.build_query() == "opened_at=2024-03-15 10:30:00"

    def test_calendar_cancel(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder)
        builder.update("esc")
        assert builder.state == BuilderState.OPERATOR_SELECTION

    def test_preset_range(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        assert builder.state == BuilderState.DATE_RANGE_PICKER
        builder.feed(["p", "down", "enter"])
        assert builder.build_query() == (
            "opened_atBETWEENjavascript:gs.dateGenerate("
            "'2024-03-14 00:00:00','2024-03-14 23:59:59')"
        )
        condition = builder.get_conditions()[0]
        assert condition.start is not None and condition.end is not None

    def test_second_range_starts_fresh(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        builder.feed(["p", "down", "enter"])

        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        picker = builder.range_picker
        assert picker.start is None and picker.end is None

        # 先选结束日期，不能沿用上一个条件的开始日期
        builder.feed(["tab", "enter", "enter"])
        assert builder.state == BuilderState.DATE_RANGE_PICKER
        assert picker.mode == RangeMode.START
        assert picker.start is None
        assert picker.end == datetime(2024, 3, 15, 0, 0, 0)

        builder.feed(["enter", "enter", "enter", "enter"])
        assert builder.state == BuilderState.LOGICAL_OPERATOR_SELECTION
        builder.update("enter")
        second = builder.get_conditions()[1]
        assert second.start == datetime(2024, 3, 15, 0, 0, 0)
        assert second.end == datetime(2024, 3, 15, 0, 0, 0)

    def test_second_calendar_starts_today(self, builder):
        pick_field(builder, "due")
        pick_operator(builder)
        builder.feed(["right", "enter"])

        pick_field(builder, "due")
        pick_operator(builder)
        assert builder.calendar.cursor == date(2024, 3, 15)
        assert builder.calendar.selected is None
        builder.feed(["enter", "enter"])
        assert builder.build_query() == "due_date=2024-03-16^due_date=2024-03-15"

    def test_text_range_via_toggle(self, builder):
        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        builder.update("ctrl+t")
        assert builder.state == BuilderState.DATE_RANGE_TEXT
        type_text(builder, "2024-01-01")
        builder.update("tab")
        type_text(builder, "2024-01-31")
        builder.update("enter")
        assert builder.build_query() == (
            "opened_atBETWEENjavascript:gs.dateGenerate("
            "'2024-01-01 00:00:00','2024-01-31 23:59:59')"
        )

    def test_text_range_order_error(self, builder):
        builder.update("ctrl+t")
        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        assert builder.state == BuilderState.DATE_RANGE_TEXT
        type_text(builder, "2024-02-01")
        builder.update("enter")
        type_text(builder, "2024-01-01")
        builder.update("enter")
        assert builder.state == BuilderState.DATE_RANGE_TEXT
        assert builder.error == "End date must be on or after start date"
        assert builder.build_query() == ""

    def test_text_range_bad_start(self, builder):
        builder.update("ctrl+t")
        pick_field(builder, "opened")
        pick_operator(builder, downs=4)
        type_text(builder, "soon")
        builder.feed(["tab"])
        type_text(builder, "2024-01-01")
        builder.update("enter")
        assert builder.error.startswith("Invalid start date")
        assert builder.range_focus == 0

    def test_text_date_entry(self, builder):
        builder.update("ctrl+t")
        assert not builder.use_advanced_date
        pick_field(builder, "due")
        pick_operator(builder)
        assert builder.state == BuilderState.VALUE_INPUT
        type_text(builder, "2024-05-01")
        builder.update("enter")
        assert builder.build_query() == "due_date=2024-05-01"


class TestReferenceSearch:
    """测试引用字段搜索"""

    def test_pick_candidate(self, metadata, clock):
        source = JsonRecordSource({"sys_user": [
            {"sys_id": "u1", "name": "Abel Tuter"},
            {"sys_id": "u2", "name": "Beth Anglin"},
        ]})
        resolver = ReferenceResolver(source, executor=InlineExecutor())
        builder = ConditionBuilder(metadata, source=source, clock=clock, resolver=resolver)
        pick_field(builder, "assigned")
        pick_operator(builder)
        assert builder.state == BuilderState.REFERENCE_SEARCH
        type_text(builder, "beth")
        assert builder.poll() == 1
        assert [c.identifier for c in builder.reference.candidates] == ["u2"]
        builder.update("enter")
        assert builder.build_query() == "assigned_to=u2"

    def test_without_source_uses_typed_text(self, builder):
        pick_field(builder, "assigned")
        pick_operator(builder)
        type_text(builder, "abc123")
        builder.update("enter")
        assert builder.build_query() == "assigned_to=abc123"

    def test_escape_returns_to_operators(self, builder):
        pick_field(builder, "assigned")
        pick_operator(builder)
        builder.update("esc")
        assert builder.state == BuilderState.OPERATOR_SELECTION


class TestGlobalKeys:
    """测试全局快捷键"""

    def _two_conditions(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        type_text(builder, "1")
        builder.update("enter")
        pick_field(builder, "active")
        pick_operator(builder)
        builder.update("o")

    def test_remove_last(self, builder):
        self._two_conditions(builder)
        assert builder.build_query() == "priority=1^ORactive=true"
        builder.update("ctrl+d")
        assert builder.build_query() == "priority=1"
        assert builder.get_conditions()[0].logical_op is None
        builder.update("ctrl+d")
        builder.update("ctrl+d")
        assert builder.message == "No conditions to remove"

    def test_reset(self, builder):
        self._two_conditions(builder)
        builder.update("ctrl+x")
        assert builder.build_query() == ""
        assert builder.state == BuilderState.FIELD_SELECTION
        assert builder.is_active()

    def test_preview(self, builder):
        self._two_conditions(builder)
        assert "Query preview" not in render(builder)
        builder.update("ctrl+p")
        assert builder.show_preview
        assert "priority=1^ORactive=true" in render(builder)

    def test_validation_panel(self, builder):
        self._two_conditions(builder)
        builder.update("ctrl+v")
        assert builder.validation is not None
        assert builder.validation.is_valid
        assert "No issues" in render(builder)
        builder.update("ctrl+d")
        assert builder.validation.query == "priority=1"

    def test_revalidate(self, builder):
        assert builder.revalidate().is_valid is False
        builder.update("ctrl+r")
        assert builder.validation.errors[0].message == "Query must have at least one condition"


class TestLifecycle:
    """测试取消、完成与加载"""

    def test_escape_cancels(self, builder):
        pick_field(builder, "priority")
        pick_operator(builder)
        type_text(builder, "1")
        builder.update("enter")
        builder.feed(["esc"])
        assert not builder.is_active()
        assert builder.cancelled
        assert builder.build_query() == ""

    def test_finish_requires_condition(self, builder):
        builder.update("ctrl+f")
        assert builder.is_active()
        assert builder.error == "Add at least one condition first"

    def test_finish(self, builder):
        pick_field(builder, "active")
        pick_operator(builder)
        builder.update("ctrl+f")
        assert builder.finished
        assert not builder.is_active()
        assert builder.state == BuilderState.FINISHED
        builder.update("ctrl+d")
        assert builder.build_query() == "active=true"

    def test_reactivate(self, builder):
        pick_field(builder, "active")
        pick_operator(builder)
        builder.update("ctrl+f")
        builder.set_active(True)
        assert builder.state == BuilderState.FIELD_SELECTION
        assert not builder.finished

    def test_set_conditions(self, builder, metadata):
        builder.set_conditions([
            Condition(metadata.find_field("priority"), "=", "1", logical_op=LogicalOperator.OR),
            Condition(metadata.find_field("state"), "=", "2", logical_op=LogicalOperator.OR),
        ])
        assert builder.build_query() == "priority=1^ORstate=2"

    def test_get_conditions_is_copy(self, builder):
        pick_field(builder, "active")
        pick_operator(builder)
        builder.get_conditions().clear()
        assert builder.build_query() == "active=true"

    def test_view_shows_step(self, builder):
        text = render(builder)
        assert "Filter incident" in text
        assert "No conditions yet" in text
        pick_field(builder, "priority")
        assert "Operator for Priority" in render(builder)
