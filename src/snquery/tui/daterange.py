"""Date range picker: two calendars plus a preset list."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

from loguru import logger
from rich.console import Group
from rich.text import Text

from ..filter.dates import (
    date_range_expression,
    end_of_day,
    format_instant,
    same_day,
    start_of_day,
    start_of_week,
)
from . import keys
from .calendar import Calendar, CalendarMode, add_months
from .widgets import PickItem, PickList


class RangeMode(str, Enum):
    START = "start"
    END = "end"
    PRESETS = "presets"


@dataclass(frozen=True)
class DatePreset:
    name: str
    start: datetime
    end: datetime


def default_presets(now: datetime) -> List[DatePreset]:
    """Common ranges relative to ``now``; weeks start on Sunday."""
    today_start = start_of_day(now)
    today_end = end_of_day(now)
    yesterday = today_start - timedelta(days=1)
    first_of_month = today_start.replace(day=1)
    first_of_last_month = datetime.combine(add_months(first_of_month.date(), -1), first_of_month.time())
    last_of_last_month = end_of_day(first_of_month - timedelta(days=1))
    return [
        DatePreset("Today", today_start, today_end),
        DatePreset("Yesterday", yesterday, end_of_day(yesterday)),
        DatePreset("Last 7 days", today_start - timedelta(days=7), today_end),
        DatePreset("Last 30 days", today_start - timedelta(days=30), today_end),
        DatePreset("This week", start_of_week(now), today_end),
        DatePreset("This month", first_of_month, today_end),
        DatePreset("Last month", first_of_last_month, last_of_last_month),
        DatePreset("This year", today_start.replace(month=1, day=1), today_end),
    ]


class DateRangePicker:
    """Pick a start and an end instant.

    Confirming the start calendar moves on to the end calendar. Confirming
    the end calendar checks the ordering; a bad range re-opens the end
    calendar with an inline error. Presets complete immediately.
    """

    def __init__(self, show_time: bool = True, show_seconds: bool = True,
                 allow_same_day: bool = True,
                 clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.allow_same_day = allow_same_day
        self.start_calendar = Calendar("Start date", show_time, show_seconds, clock=clock)
        self.end_calendar = Calendar("End date", show_time, show_seconds, clock=clock)
        self.presets_list = PickList(title="Presets")
        self.mode = RangeMode.START
        self.start: Optional[datetime] = None
        self.end: Optional[datetime] = None
        self.error = ""
        self.completed = False
        self._active = False
        self._return_mode = RangeMode.START

    @property
    def show_time(self) -> bool:
        return self.start_calendar.show_time

    def activate(self, keep: bool = False) -> None:
        """Open the picker on the start calendar.

        A fresh activation drops the previous range; ``keep=True`` re-opens
        it with the last picked values (used after a rejected commit).
        """
        if not keep:
            self.start = None
            self.end = None
            self._return_mode = RangeMode.START
            self.start_calendar.reset()
            self.end_calendar.reset()
        self._active = True
        self.completed = False
        self.error = ""
        self.mode = RangeMode.START
        self.end_calendar.deactivate()
        self.start_calendar.activate()

    def deactivate(self) -> None:
        self._active = False
        self.start_calendar.deactivate()
        self.end_calendar.deactivate()

    def is_active(self) -> bool:
        return self._active

    def set_range(self, start: Optional[datetime], end: Optional[datetime]) -> None:
        self.start, self.end = start, end
        if start is not None:
            self.start_calendar.set_instant(start)
        if end is not None:
            self.end_calendar.set_instant(end)

    def presets(self) -> List[DatePreset]:
        return default_presets(self.clock())

    # ------------------------------------------------------------------
    # output

    def format_for_backend(self) -> Tuple[str, str]:
        if self.start is None or self.end is None:
            return "", ""
        return format_instant(self.start), format_instant(self.end)

    def range_expression(self) -> str:
        if self.start is None or self.end is None:
            return ""
        return date_range_expression(self.start, self.end)

    def format_range(self) -> str:
        if self.start is None or self.end is None:
            return ""
        fmt = "%Y-%m-%d %H:%M:%S" if self.show_time else "%Y-%m-%d"
        return f"{self.start.strftime(fmt)} - {self.end.strftime(fmt)}"

    # ------------------------------------------------------------------
    # input

    def _current_calendar(self) -> Calendar:
        return self.start_calendar if self.mode == RangeMode.START else self.end_calendar

    def update(self, key: str) -> None:
        if not self._active:
            return
        if self.mode == RangeMode.PRESETS:
            self._update_presets(key)
            return

        cal = self._current_calendar()
        # Picker-level keys only apply while the calendar shows its month grid.
        if cal.mode == CalendarMode.MONTH:
            if key == "p":
                self._open_presets()
                return
            if key == keys.TAB:
                self._switch_calendar()
                return

        was_active = cal.is_active()
        cal.update(key)
        if was_active and not cal.is_active():
            if cal.completed:
                self._calendar_confirmed()
            else:
                self._calendar_cancelled()

    def _open_presets(self) -> None:
        self._return_mode = self.mode
        self._current_calendar().deactivate()
        self.presets_list.set_items([
            PickItem(p.name, f"{p.start:%Y-%m-%d} → {p.end:%Y-%m-%d}", p)
            for p in self.presets()
        ])
        self.mode = RangeMode.PRESETS

    def _update_presets(self, key: str) -> None:
        if key == keys.ENTER:
            item = self.presets_list.selected()
            if item is not None:
                self.apply_preset(item.value)
            return
        if key == keys.ESC:
            self.mode = self._return_mode
            self._current_calendar().activate()
            return
        self.presets_list.handle_key(key)

    def apply_preset(self, preset: DatePreset) -> None:
        """Use a preset range and complete without further checks."""
        self.set_range(preset.start, preset.end)
        self.error = ""
        self.completed = True
        logger.debug(f"date preset applied: {preset.name}")
        self.deactivate()

    def _switch_calendar(self) -> None:
        self._current_calendar().deactivate()
        self.mode = RangeMode.END if self.mode == RangeMode.START else RangeMode.START
        self._current_calendar().activate()

    def _calendar_confirmed(self) -> None:
        if self.mode == RangeMode.START:
            self.start = self.start_calendar.selected_instant()
            self.mode = RangeMode.END
            if self.end_calendar.selected is None:
                self.end_calendar.cursor = self.start.date()
                if self.show_time:
                    self.end_calendar.set_time(23, 59, 59)
            self.end_calendar.activate()
            return

        end = self.end_calendar.selected_instant()
        if self.start is None:
            # End was picked first via Tab: ask for the start next.
            self.end = end
            self.mode = RangeMode.START
            self.start_calendar.activate()
            return

        problem = self.check_order(self.start, end)
        if problem:
            self.error = problem
            self.end_calendar.activate()
            return

        self.end = end
        self.error = ""
        self.completed = True
        self.deactivate()

    def check_order(self, start: datetime, end: datetime) -> str:
        """Return an error message for a badly ordered range, else ''."""
        if end < start:
            return "End date must be on or after start date"
        if not self.allow_same_day and same_day(start, end):
            return "End date must be after start date"
        return ""

    def _calendar_cancelled(self) -> None:
        if self.mode == RangeMode.END:
            # back to the start calendar
            self.mode = RangeMode.START
            self.error = ""
            self.start_calendar.activate()
            return
        self.completed = False
        self.deactivate()

    # ------------------------------------------------------------------
    # rendering

    def view(self) -> Group:
        parts = [Text("📅 Date range", style="bold magenta")]
        summary = Text()
        summary.append("From: ", style="dim")
        summary.append(
            format_instant(self.start) if self.start else "not set",
            style="bold green" if self.mode == RangeMode.START else "",
        )
        summary.append("   To: ", style="dim")
        summary.append(
            format_instant(self.end) if self.end else "not set",
            style="bold green" if self.mode == RangeMode.END else "",
        )
        parts.append(summary)
        if self.mode == RangeMode.PRESETS:
            parts.append(self.presets_list.view())
            parts.append(Text("↑/↓ choose • enter apply • esc back", style="dim"))
        else:
            parts.append(self._current_calendar().view())
            parts.append(Text("p presets • tab switch start/end", style="dim"))
        if self.error:
            parts.append(Text(self.error, style="bold red"))
        return Group(*parts)
