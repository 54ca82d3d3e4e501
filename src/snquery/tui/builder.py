"""Interactive condition builder.

A key-driven state machine that walks the user through field, operator
and value selection, asks how each new condition joins the previous one,
and commits it once it validates. Sub-pickers (calendar, date range,
reference search) are owned by the builder and driven by delegation; the
builder notices that a picker has finished when it stops being active.

Typical loop::

    builder = ConditionBuilder(metadata, source=records)
    for key in keys:
        builder.update(key)
        builder.poll()          # deliver finished reference searches
    query = builder.build_query()
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional

from loguru import logger
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..config import BuilderConfig
from ..errors import ParseError
from ..filter.compiler import compile_conditions
from ..filter.condition import Condition, ConditionSet, LogicalOperator
from ..filter.dates import (
    DATE_FORMAT,
    RANGE_INPUT_FORMATS,
    date_range_expression,
    end_of_day,
    parse_instant,
)
from ..filter.fields import FieldDescriptor, FieldType, TableFieldMetadata, sort_fields_by_priority
from ..filter.grammar import Operator, OperatorDescriptor, operators_for
from ..filter.validator import ConditionValidator, Severity, ValidationIssue, ValidationResult
from . import keys
from .calendar import Calendar
from .daterange import DateRangePicker
from .reference import ReferencePicker, ReferenceResolver, ReferenceSearchResult
from .widgets import PickItem, PickList, TextInput


class BuilderState(str, Enum):
    FIELD_SELECTION = "field_selection"
    OPERATOR_SELECTION = "operator_selection"
    VALUE_INPUT = "value_input"
    CHOICE_SELECTION = "choice_selection"
    REFERENCE_SEARCH = "reference_search"
    CALENDAR = "calendar"
    DATE_RANGE_PICKER = "date_range_picker"
    DATE_RANGE_TEXT = "date_range_text"
    LOGICAL_OPERATOR_SELECTION = "logical_operator_selection"
    FINISHED = "finished"


FIELD_TYPE_ICONS = {
    FieldType.STRING: "📝",
    FieldType.INTEGER: "🔢",
    FieldType.DECIMAL: "🔢",
    FieldType.BOOLEAN: "☑️",
    FieldType.DATE: "📅",
    FieldType.DATE_TIME: "🕐",
    FieldType.REFERENCE: "🔗",
    FieldType.CHOICE: "📋",
    FieldType.JOURNAL: "📓",
    FieldType.HTML: "🌐",
    FieldType.URL: "🌐",
    FieldType.EMAIL: "📧",
    FieldType.PASSWORD: "🔒",
    FieldType.TRANSLATED_TEXT: "🈂️",
}

_PLACEHOLDERS = {
    FieldType.INTEGER: "Enter a whole number (e.g., 123)",
    FieldType.DECIMAL: "Enter a number (e.g., 123.45)",
    FieldType.BOOLEAN: "true or false",
    FieldType.DATE: "YYYY-MM-DD",
    FieldType.DATE_TIME: "YYYY-MM-DD HH:MM:SS",
    FieldType.REFERENCE: "sys_id of the referenced record",
    FieldType.CHOICE: "Choice value",
    FieldType.EMAIL: "name@example.com",
    FieldType.URL: "https://...",
}

# Widget states a failed commit re-opens
_VALUE_STATES = {
    BuilderState.VALUE_INPUT,
    BuilderState.CHOICE_SELECTION,
    BuilderState.REFERENCE_SEARCH,
    BuilderState.CALENDAR,
    BuilderState.DATE_RANGE_PICKER,
    BuilderState.DATE_RANGE_TEXT,
}


def placeholder_for(field: FieldDescriptor, operator: OperatorDescriptor) -> str:
    if operator.token in (Operator.IN.value, Operator.NOT_IN.value):
        return "Comma separated values"
    if operator.token == Operator.BETWEEN.value and field.type.is_numeric:
        return "low@high (e.g., 1@10)"
    if operator.token == Operator.LIKE.value:
        return "Pattern (use % wildcards)"
    return _PLACEHOLDERS.get(field.type, "Enter value")


class ConditionBuilder:
    """Wizard that assembles a ConditionSet one condition at a time.

    Args:
        metadata: fields of the table being filtered
        source: record source for reference searches (optional)
        config: builder settings; defaults are used when omitted
        clock: returns "now"; used by the calendars and presets
        resolver: a prepared ReferenceResolver, mainly for tests
    """

    def __init__(self, metadata: TableFieldMetadata, source=None,
                 config: Optional[BuilderConfig] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 resolver: Optional[ReferenceResolver] = None):
        self.metadata = metadata
        self.config = config or BuilderConfig()
        self.clock = clock
        self.validator = ConditionValidator(metadata)
        self.conditions = ConditionSet()

        self.state = BuilderState.FIELD_SELECTION
        self.use_advanced_date = self.config.use_advanced_date
        self.show_preview = self.config.show_preview
        self.show_validation = self.config.show_validation

        visible = self.config.max_visible_items
        self.field_list = PickList(title="Select a field", max_visible=visible, filterable=True)
        self.operator_list = PickList(title="Select an operator", max_visible=visible)
        self.choice_list = PickList(title="Select a value", max_visible=visible)
        self.logic_list = PickList([
            PickItem("AND", "both conditions must match", LogicalOperator.AND),
            PickItem("OR", "either condition may match", LogicalOperator.OR),
        ], title="Combine with the previous condition")
        self.value_input = TextInput()
        self.range_inputs = [
            TextInput(placeholder="Start: YYYY-MM-DD [HH:MM:SS]"),
            TextInput(placeholder="End: YYYY-MM-DD [HH:MM:SS]"),
        ]
        self.range_focus = 0

        self.calendar = Calendar(show_seconds=self.config.show_seconds, clock=clock)
        self.range_picker = DateRangePicker(
            show_time=True,
            show_seconds=self.config.show_seconds,
            allow_same_day=self.config.allow_same_day,
            clock=clock,
        )
        self.resolver = resolver or ReferenceResolver(
            source,
            min_length=self.config.min_search_length,
            limit=self.config.search_limit,
            timeout=self.config.search_timeout,
            debounce=self.config.search_debounce,
        )
        self.reference = ReferencePicker(self.resolver, max_visible=min(visible, 10))

        # scratch condition being assembled
        self._field: Optional[FieldDescriptor] = None
        self._operator: Optional[OperatorDescriptor] = None
        self._pending: Optional[Condition] = None

        self.error = ""
        self.message = ""
        self.warnings: List[ValidationIssue] = []
        self.validation: Optional[ValidationResult] = None
        self.finished = False
        self.cancelled = False
        self._active = True

        self._load_fields()

    # ------------------------------------------------------------------
    # consumer contract

    def build_query(self) -> str:
        """The encoded query of the committed conditions."""
        return compile_conditions(self.conditions)

    def get_conditions(self) -> ConditionSet:
        return self.conditions.copy()

    def set_conditions(self, conditions: Iterable[Condition]) -> None:
        """Load a previously saved filter, replacing the current one."""
        self.conditions = ConditionSet(conditions)
        self._reset_scratch()
        self.state = BuilderState.FIELD_SELECTION
        self.validation = None
        if self.show_validation:
            self.revalidate()

    def set_active(self, active: bool) -> None:
        self._active = active
        if active:
            self.finished = False
            self.cancelled = False
            if self.state == BuilderState.FINISHED:
                self.state = BuilderState.FIELD_SELECTION
        else:
            self.resolver.cancel()

    def is_active(self) -> bool:
        return self._active

    def close(self) -> None:
        self.resolver.shutdown()

    # ------------------------------------------------------------------
    # event handling

    def update(self, msg) -> None:
        """Handle one message: a key name or a ReferenceSearchResult."""
        if isinstance(msg, ReferenceSearchResult):
            self._handle_search_result(msg)
            return
        if not self._active or not isinstance(msg, str):
            return
        if self._handle_global_key(msg):
            return

        handler = {
            BuilderState.FIELD_SELECTION: self._update_field_selection,
            BuilderState.OPERATOR_SELECTION: self._update_operator_selection,
            BuilderState.VALUE_INPUT: self._update_value_input,
            BuilderState.CHOICE_SELECTION: self._update_choice_selection,
            BuilderState.REFERENCE_SEARCH: self._update_reference_search,
            BuilderState.CALENDAR: self._update_calendar,
            BuilderState.DATE_RANGE_PICKER: self._update_range_picker,
            BuilderState.DATE_RANGE_TEXT: self._update_range_text,
            BuilderState.LOGICAL_OPERATOR_SELECTION: self._update_logical_operator,
        }.get(self.state)
        if handler is not None:
            handler(msg)

    def feed(self, key_seq: Iterable[str]) -> None:
        for key in key_seq:
            self.update(key)

    def poll(self) -> int:
        """Deliver finished reference searches. Returns how many were delivered."""
        results = self.resolver.poll()
        for result in results:
            self.update(result)
        return len(results)

    def _handle_global_key(self, key: str) -> bool:
        if key == keys.TOGGLE_PREVIEW:
            self.show_preview = not self.show_preview
        elif key == keys.TOGGLE_VALIDATION:
            self.show_validation = not self.show_validation
            if self.show_validation:
                self.revalidate()
        elif key == keys.REVALIDATE:
            self.revalidate()
        elif key == keys.REMOVE_LAST:
            self.remove_last()
        elif key == keys.RESET:
            self.reset()
        elif key == keys.TOGGLE_DATE_MODE:
            self.toggle_date_mode()
        else:
            return False
        return True

    # ------------------------------------------------------------------
    # global commands

    def revalidate(self) -> ValidationResult:
        self.validation = self.validator.validate_query(list(self.conditions))
        return self.validation

    def remove_last(self) -> Optional[Condition]:
        removed = self.conditions.pop()
        if removed is None:
            self.message = "No conditions to remove"
        else:
            self.message = f"Removed: {removed.describe()}"
            logger.debug(f"removed condition {removed.describe()}")
        if self.show_validation:
            self.revalidate()
        return removed

    def reset(self) -> None:
        """Start over with no conditions."""
        self.conditions.clear()
        self._reset_scratch()
        self.state = BuilderState.FIELD_SELECTION
        self.validation = None
        self.message = "Query builder reset"

    def toggle_date_mode(self) -> None:
        self.use_advanced_date = not self.use_advanced_date
        self.message = "Calendar picker" if self.use_advanced_date else "Text date entry"
        date_states = (BuilderState.CALENDAR, BuilderState.DATE_RANGE_PICKER,
                       BuilderState.DATE_RANGE_TEXT)
        in_date_value = (
            self.state in date_states
            or (self.state == BuilderState.VALUE_INPUT and self._field is not None
                and self._field.type.is_date)
        )
        if in_date_value and self._operator is not None:
            self.calendar.deactivate()
            self.range_picker.deactivate()
            self._select_operator(self._operator)

    # ------------------------------------------------------------------
    # states

    def _load_fields(self) -> None:
        items = []
        for f in sort_fields_by_priority(self.metadata.fields):
            icon = FIELD_TYPE_ICONS.get(f.type, "📝")
            items.append(PickItem(f"{icon} {f.display_label}", f"{f.name} · {f.type.value}", f))
        self.field_list.set_items(items)

    def _update_field_selection(self, key: str) -> None:
        if key == keys.ENTER:
            item = self.field_list.selected()
            if item is None:
                self.error = "No field matches the filter"
                return
            self.select_field(item.value)
        elif key == keys.ESC:
            self.cancel()
        elif key == keys.FINISH:
            self.finish()
        else:
            self.field_list.handle_key(key)

    def select_field(self, field: FieldDescriptor) -> None:
        self._field = field
        self._operator = None
        self.error = ""
        self.message = ""
        self.operator_list.title = f"Operator for {field.display_label}"
        self.operator_list.set_items([
            PickItem(op.label, f"{op.token} · {op.description}", op)
            for op in operators_for(field.type)
        ])
        self.state = BuilderState.OPERATOR_SELECTION

    def cancel(self) -> None:
        """Leave the builder, dropping everything."""
        self.conditions.clear()
        self._reset_scratch()
        self.validation = None
        self.cancelled = True
        self.set_active(False)
        logger.debug("condition builder cancelled")

    def finish(self) -> None:
        if not self.conditions:
            self.error = "Add at least one condition first"
            return
        self.state = BuilderState.FINISHED
        self.finished = True
        self.set_active(False)
        logger.info(f"query built: {self.build_query()}")

    def _update_operator_selection(self, key: str) -> None:
        if key == keys.ENTER:
            item = self.operator_list.selected()
            if item is not None:
                self._select_operator(item.value)
        elif key == keys.ESC:
            self._field = None
            self.error = ""
            self.state = BuilderState.FIELD_SELECTION
        else:
            self.operator_list.handle_key(key)

    def _select_operator(self, op: OperatorDescriptor) -> None:
        field = self._field
        self._operator = op
        self.error = ""

        if not op.requires_value:
            value = "true" if field.type == FieldType.BOOLEAN else ""
            self._finish_value(Condition(field, op.token, value))
            return

        if op.date_only:
            if self.use_advanced_date:
                self.range_picker.activate()
                self.state = BuilderState.DATE_RANGE_PICKER
            else:
                for text_input in self.range_inputs:
                    text_input.reset()
                self.range_focus = 0
                self.state = BuilderState.DATE_RANGE_TEXT
            return

        if field.type == FieldType.CHOICE and field.choices:
            multi = op.token in (Operator.IN.value, Operator.NOT_IN.value)
            self.choice_list.multi = multi
            self.choice_list.title = f"{field.display_label}" + (" (space marks)" if multi else "")
            self.choice_list.set_items([PickItem(c.label, c.value, c) for c in field.choices])
            self.state = BuilderState.CHOICE_SELECTION
            return

        if field.type == FieldType.REFERENCE and field.reference:
            self.reference.activate(field.reference)
            self.state = BuilderState.REFERENCE_SEARCH
            return

        if field.type.is_date and self.use_advanced_date:
            self.calendar.title = f"📅 {field.display_label}"
            self.calendar.show_time = field.type == FieldType.DATE_TIME
            self.calendar.reset()
            self.calendar.activate()
            self.state = BuilderState.CALENDAR
            return

        self.value_input.placeholder = placeholder_for(field, op)
        self.value_input.reset()
        self.state = BuilderState.VALUE_INPUT

    def _back_to_operators(self) -> None:
        self.error = ""
        self._operator = None
        self.state = BuilderState.OPERATOR_SELECTION

    def _update_value_input(self, key: str) -> None:
        if key == keys.ENTER:
            self._finish_value(Condition(self._field, self._operator.token,
                                         self.value_input.value.strip()))
        elif key == keys.ESC:
            self._back_to_operators()
        else:
            self.value_input.handle_key(key)

    def _update_choice_selection(self, key: str) -> None:
        if key == keys.ENTER:
            chosen = self.choice_list.marked or [self.choice_list.selected()]
            values = [item.value.value for item in chosen if item is not None]
            self._finish_value(Condition(self._field, self._operator.token, ",".join(values)))
        elif key == keys.SPACE and self.choice_list.multi:
            self.choice_list.toggle_mark()
        elif key == keys.ESC:
            self._back_to_operators()
        else:
            self.choice_list.handle_key(key)

    def _update_reference_search(self, key: str) -> None:
        self.reference.update(key)
        if self.reference.is_active():
            return
        if self.reference.completed:
            self._finish_value(Condition(self._field, self._operator.token, self.reference.value))
        else:
            self._back_to_operators()

    def _handle_search_result(self, result: ReferenceSearchResult) -> None:
        if self.state != BuilderState.REFERENCE_SEARCH or not self.reference.is_active():
            return
        if result.table != self.reference.table:
            return
        self.reference.handle_result(result)

    def _update_calendar(self, key: str) -> None:
        self.calendar.update(key)
        if self.calendar.is_active():
            return
        if self.calendar.completed:
            if self._field.type == FieldType.DATE_TIME:
                value = self.calendar.format_for_backend()
            else:
                value = self.calendar.selected_instant().strftime(DATE_FORMAT)
            self._finish_value(Condition(self._field, self._operator.token, value))
        else:
            self._back_to_operators()

    def _update_range_picker(self, key: str) -> None:
        self.range_picker.update(key)
        if self.range_picker.is_active():
            return
        picker = self.range_picker
        if picker.completed and picker.start is not None and picker.end is not None:
            self._finish_value(Condition(
                self._field, self._operator.token,
                value=picker.range_expression(), start=picker.start, end=picker.end,
            ))
        else:
            self._back_to_operators()

    def _update_range_text(self, key: str) -> None:
        if key == keys.TAB:
            self.range_focus = 1 - self.range_focus
        elif key == keys.ENTER:
            if self.range_focus == 0:
                self.range_focus = 1
            else:
                self._confirm_range_text()
        elif key == keys.ESC:
            self._back_to_operators()
        else:
            self.range_inputs[self.range_focus].handle_key(key)

    def _confirm_range_text(self) -> None:
        start_text = self.range_inputs[0].value.strip()
        end_text = self.range_inputs[1].value.strip()
        try:
            start = parse_instant(start_text, RANGE_INPUT_FORMATS)
        except ParseError:
            self.error = "Invalid start date (use YYYY-MM-DD or YYYY-MM-DD HH:MM:SS)"
            self.range_focus = 0
            return
        try:
            end = parse_instant(end_text, RANGE_INPUT_FORMATS)
        except ParseError:
            self.error = "Invalid end date (use YYYY-MM-DD or YYYY-MM-DD HH:MM:SS)"
            self.range_focus = 1
            return
        if ":" not in end_text:
            # a bare end date covers the whole day
            end = end_of_day(end)
        problem = self.range_picker.check_order(start, end)
        if problem:
            self.error = problem
            self.range_focus = 1
            return
        self._finish_value(Condition(
            self._field, self._operator.token,
            value=date_range_expression(start, end), start=start, end=end,
        ))

    def _update_logical_operator(self, key: str) -> None:
        if key == keys.ENTER:
            item = self.logic_list.selected()
            self._commit(item.value if item is not None else LogicalOperator.AND)
        elif key in ("a", "A"):
            self._commit(LogicalOperator.AND)
        elif key in ("o", "O"):
            self._commit(LogicalOperator.OR)
        elif key == keys.ESC:
            self._commit(LogicalOperator.AND)
        else:
            self.logic_list.handle_key(key)

    # ------------------------------------------------------------------
    # commit

    def _finish_value(self, condition: Condition) -> None:
        """Validate the scratch condition, then commit it or ask for AND/OR."""
        issues = self.validator.validate_condition(condition)
        errors = [i for i in issues if i.severity is Severity.ERROR]
        if errors:
            self.error = errors[0].format()
            self._reopen_value_widget()
            logger.debug(f"condition rejected: {errors[0].message}")
            return

        self.error = ""
        self.warnings = [i for i in issues if i.severity is Severity.WARNING]
        self._pending = condition
        if not self.conditions:
            self._commit(None)
            return
        self.logic_list.set_items(self.logic_list.items)
        self.state = BuilderState.LOGICAL_OPERATOR_SELECTION

    def _reopen_value_widget(self) -> None:
        if self.state == BuilderState.CALENDAR:
            self.calendar.activate()
        elif self.state == BuilderState.DATE_RANGE_PICKER:
            self.range_picker.activate(keep=True)
        elif self.state == BuilderState.REFERENCE_SEARCH:
            self.reference.activate(self.reference.table)

    def _commit(self, join: Optional[LogicalOperator]) -> None:
        condition = self._pending
        if condition is None:
            return
        self.conditions.append(condition, join)
        logger.info(f"condition committed: {condition.describe()}"
                    + (f" (joined with {join.value})" if join else ""))
        warnings = self.warnings
        self._reset_scratch()
        self.warnings = warnings
        self.message = f"Added: {condition.describe()}"
        self.state = BuilderState.FIELD_SELECTION
        if self.show_validation:
            self.revalidate()

    def _reset_scratch(self) -> None:
        self._field = None
        self._operator = None
        self._pending = None
        self.error = ""
        self.warnings = []
        self.value_input.reset()
        self.calendar.deactivate()
        self.range_picker.deactivate()
        if self.reference.is_active():
            self.reference.deactivate()
        self.field_list.set_items(self.field_list.items)

    # ------------------------------------------------------------------
    # rendering

    def view(self) -> Panel:
        parts = [self._render_conditions()]

        if self.state == BuilderState.FINISHED:
            parts.append(Text("✅ Query complete", style="bold green"))
        elif not self._active:
            parts.append(Text("Builder closed", style="dim"))
        else:
            parts.append(self._render_step())

        if self.error:
            parts.append(Text(f"❌ {self.error}", style="bold red"))
        for warning in self.warnings:
            parts.append(Text(f"⚠️  {warning.format()}", style="yellow"))
        if self.message:
            parts.append(Text(self.message, style="green"))
        if self.show_preview:
            parts.append(Panel(Text(self.build_query() or "(empty)"), title="Query preview",
                               border_style="blue"))
        if self.show_validation and self.validation is not None:
            parts.append(self._render_validation())
        parts.append(Text(
            "ctrl+f finish • ctrl+p preview • ctrl+v validation • ctrl+r revalidate • "
            "ctrl+d remove last • ctrl+x reset • ctrl+t date mode • esc back",
            style="dim",
        ))
        return Panel(Group(*parts), title=f"🔍 Filter {self.metadata.table_name}",
                     border_style="cyan")

    def _render_conditions(self) -> Text:
        if not self.conditions:
            return Text("No conditions yet", style="dim")
        text = Text()
        for i, condition in enumerate(self.conditions, 1):
            text.append(f"{i}. ", style="bold")
            text.append(condition.describe())
            if condition.logical_op is not None:
                text.append(f"  {condition.logical_op.value}", style="bold magenta")
            text.append("\n")
        text.rstrip()
        return text

    def _render_step(self):
        state = self.state
        if state == BuilderState.FIELD_SELECTION:
            return Group(self.field_list.view(),
                         Text("type to filter • enter select • ctrl+f finish • esc quit", style="dim"))
        if state == BuilderState.OPERATOR_SELECTION:
            return self.operator_list.view()
        if state == BuilderState.VALUE_INPUT:
            return Group(Text(f"Value for {self._field.display_label} {self._operator.token}",
                              style="bold cyan"),
                         self.value_input.view())
        if state == BuilderState.CHOICE_SELECTION:
            return self.choice_list.view()
        if state == BuilderState.REFERENCE_SEARCH:
            return self.reference.view()
        if state == BuilderState.CALENDAR:
            return self.calendar.view()
        if state == BuilderState.DATE_RANGE_PICKER:
            return self.range_picker.view()
        if state == BuilderState.DATE_RANGE_TEXT:
            return Group(
                Text("Date range", style="bold cyan"),
                Text("From: ") + self.range_inputs[0].view(focused=self.range_focus == 0),
                Text("To:   ") + self.range_inputs[1].view(focused=self.range_focus == 1),
                Text("tab switch • enter confirm • ctrl+t calendar", style="dim"),
            )
        if state == BuilderState.LOGICAL_OPERATOR_SELECTION:
            pending = self._pending.describe() if self._pending else ""
            return Group(Text(f"New: {pending}", style="bold"), self.logic_list.view(),
                         Text("a AND • o OR • esc AND", style="dim"))
        return Text("")

    def _render_validation(self) -> Table:
        result = self.validation
        table = Table(title="Validation" + (" ✅" if result.is_valid else " ❌"),
                      show_lines=False, expand=True)
        table.add_column("Severity", style="bold")
        table.add_column("Where")
        table.add_column("Message")
        styles = {Severity.ERROR: "red", Severity.WARNING: "yellow", Severity.INFO: "blue"}
        for issue in result.issues:
            table.add_row(Text(issue.severity.value, style=styles[issue.severity]),
                          issue.subject, issue.format())
        if not result.issues:
            table.add_row(Text("ok", style="green"), "", "No issues")
        return table
