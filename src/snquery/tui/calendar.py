"""Single-date picker with month grid, year grid and digit-driven time entry."""

import calendar as _calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from rich.console import Group
from rich.table import Table
from rich.text import Text

from ..filter.dates import BACKEND_FORMAT, DATE_FORMAT
from . import keys


class CalendarMode(str, Enum):
    MONTH = "month"
    YEAR = "year"
    TIME = "time"


# hour, minute, second
TIME_LIMITS = (24, 60, 60)
TIME_LABELS = ("hour", "minute", "second")

YEAR_GRID_COLUMNS = 5
YEAR_GRID_SIZE = 20

_WEEK = _calendar.Calendar(firstweekday=6)  # weeks start on Sunday


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the last day of the target month."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = _calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last))


def add_years(day: date, years: int) -> date:
    return add_months(day, years * 12)


class Calendar:
    """Date (and optionally time) picker.

    The owner calls :meth:`activate`, feeds keys through :meth:`update` and
    watches :meth:`is_active`. When it turns False, ``completed`` tells
    whether a value was confirmed or the picker was cancelled.
    """

    def __init__(self, title: str = "Select date", show_time: bool = True,
                 show_seconds: bool = True, min_date: Optional[date] = None,
                 max_date: Optional[date] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.title = title
        self.show_time = show_time
        self.show_seconds = show_seconds
        self.min_date = min_date
        self.max_date = max_date
        self.clock = clock

        now = clock()
        self.cursor: date = now.date()
        self.selected: Optional[date] = None
        self.time = [0, 0, 0]
        self.time_focus = 0
        self.mode = CalendarMode.MONTH
        self.error = ""
        self.completed = False
        self._active = False
        # Time mode reached by confirming a day: Enter there completes.
        self._confirming = False

    # ------------------------------------------------------------------
    # lifecycle

    def activate(self) -> None:
        self._active = True
        self.completed = False
        self.mode = CalendarMode.MONTH
        self.error = ""
        self._confirming = False

    def deactivate(self) -> None:
        self._active = False

    def reset(self) -> None:
        """Forget the previous selection and go back to today."""
        self.cursor = self.clock().date()
        self.selected = None
        self.time = [0, 0, 0]
        self.time_focus = 0
        self.mode = CalendarMode.MONTH
        self.error = ""
        self.completed = False
        self._confirming = False

    def is_active(self) -> bool:
        return self._active

    def set_bounds(self, min_date: Optional[date] = None, max_date: Optional[date] = None) -> None:
        self.min_date = min_date
        self.max_date = max_date

    def set_instant(self, instant: datetime) -> None:
        """Preselect a day and time; the view jumps to it."""
        self.cursor = instant.date()
        self.selected = instant.date()
        self.time = [instant.hour, instant.minute, instant.second]

    def set_time(self, hour: int, minute: int, second: int = 0) -> None:
        self.time = [hour % 24, minute % 60, second % 60]

    # ------------------------------------------------------------------
    # output

    def selected_instant(self) -> datetime:
        """The chosen day combined with the time buffers.

        Falls back to the cursor day when nothing was confirmed yet.
        """
        day = self.selected or self.cursor
        hour, minute, second = self.time
        if not self.show_seconds:
            second = 0
        if not self.show_time:
            hour = minute = second = 0
        return datetime(day.year, day.month, day.day, hour, minute, second)

    def format_for_backend(self) -> str:
        return self.selected_instant().strftime(BACKEND_FORMAT)

    def format_selected(self) -> str:
        if not self.show_time:
            return self.selected_instant().strftime(DATE_FORMAT)
        if not self.show_seconds:
            return self.selected_instant().strftime("%Y-%m-%d %H:%M")
        return self.selected_instant().strftime(BACKEND_FORMAT)

    def in_range(self, day: date) -> bool:
        if self.min_date is not None and day < self.min_date:
            return False
        if self.max_date is not None and day > self.max_date:
            return False
        return True

    # ------------------------------------------------------------------
    # input

    def update(self, key: str) -> None:
        if not self._active:
            return
        if self.mode == CalendarMode.MONTH:
            self._update_month(key)
        elif self.mode == CalendarMode.YEAR:
            self._update_year(key)
        else:
            self._update_time(key)

    def _update_month(self, key: str) -> None:
        if key in (keys.LEFT, "h"):
            self._move(timedelta(days=-1))
        elif key in (keys.RIGHT, "l"):
            self._move(timedelta(days=1))
        elif key in (keys.UP, "k"):
            self._move(timedelta(days=-7))
        elif key in (keys.DOWN, "j"):
            self._move(timedelta(days=7))
        elif key in ("m", keys.PGUP):
            self.cursor = add_months(self.cursor, -1)
        elif key in ("M", keys.PGDOWN):
            self.cursor = add_months(self.cursor, 1)
        elif key == "y":
            self.mode = CalendarMode.YEAR
        elif key == "t" and self.show_time:
            self.mode = CalendarMode.TIME
            self._confirming = False
        elif key == "n":
            now = self.clock()
            self.cursor = now.date()
            self.selected = now.date()
            self.time = [now.hour, now.minute, now.second]
            self.error = ""
        elif key in (keys.ENTER, keys.SPACE):
            self._confirm_day()
        elif key == keys.ESC:
            self.completed = False
            self.deactivate()

    def _move(self, delta: timedelta) -> None:
        self.cursor = self.cursor + delta
        self.error = ""

    def _confirm_day(self) -> None:
        if not self.in_range(self.cursor):
            self.error = "Date is outside the allowed range"
            return
        self.selected = self.cursor
        self.error = ""
        if self.show_time:
            self.mode = CalendarMode.TIME
            self._confirming = True
            return
        self.completed = True
        self.deactivate()

    def _update_year(self, key: str) -> None:
        if key in (keys.LEFT, "h"):
            self.cursor = add_years(self.cursor, -1)
        elif key in (keys.RIGHT, "l"):
            self.cursor = add_years(self.cursor, 1)
        elif key in (keys.UP, "k"):
            self.cursor = add_years(self.cursor, -YEAR_GRID_COLUMNS)
        elif key in (keys.DOWN, "j"):
            self.cursor = add_years(self.cursor, YEAR_GRID_COLUMNS)
        elif key in (keys.ENTER, keys.SPACE, keys.ESC, "y"):
            self.mode = CalendarMode.MONTH

    def _time_slots(self) -> int:
        return 3 if self.show_seconds else 2

    def _update_time(self, key: str) -> None:
        slots = self._time_slots()
        if key in (keys.LEFT, "h"):
            self.time_focus = max(0, self.time_focus - 1)
        elif key in (keys.RIGHT, "l"):
            self.time_focus = min(slots - 1, self.time_focus + 1)
        elif key == keys.TAB:
            self.time_focus = (self.time_focus + 1) % slots
        elif key in (keys.UP, "k"):
            self._step_time(1)
        elif key in (keys.DOWN, "j"):
            self._step_time(-1)
        elif keys.is_digit(key):
            self._enter_digit(int(key))
        elif key == keys.ENTER:
            if self._confirming:
                self.completed = True
                self.deactivate()
            else:
                self.mode = CalendarMode.MONTH
        elif key == keys.ESC:
            self.mode = CalendarMode.MONTH
            self._confirming = False

    def _step_time(self, delta: int) -> None:
        limit = TIME_LIMITS[self.time_focus]
        self.time[self.time_focus] = (self.time[self.time_focus] + delta) % limit

    def _enter_digit(self, digit: int) -> None:
        limit = TIME_LIMITS[self.time_focus]
        shifted = (self.time[self.time_focus] % 10) * 10 + digit
        if shifted >= limit:
            self.error = f"{TIME_LABELS[self.time_focus].capitalize()} must be below {limit}"
            return
        self.time[self.time_focus] = shifted
        self.error = ""

    # ------------------------------------------------------------------
    # rendering

    def view(self) -> Group:
        parts: List = [Text(self.title, style="bold cyan")]
        if self.mode == CalendarMode.YEAR:
            parts.append(self._render_years())
        else:
            parts.append(self._render_month())
        if self.show_time:
            parts.append(self._render_time())
        if self.error:
            parts.append(Text(self.error, style="bold red"))
        parts.append(Text(self._help(), style="dim"))
        return Group(*parts)

    def _render_month(self) -> Table:
        table = Table(
            title=self.cursor.strftime("%B %Y"),
            show_edge=False, box=None, pad_edge=False,
        )
        for name in ("Su", "Mo", "Tu", "We", "Th", "Fr", "Sa"):
            table.add_column(name, justify="right")
        today = self.clock().date()
        for week in _WEEK.monthdatescalendar(self.cursor.year, self.cursor.month):
            cells = []
            for day in week:
                style = ""
                if day.month != self.cursor.month:
                    style = "dim"
                if not self.in_range(day):
                    style = "dim strike"
                if day == today:
                    style += " underline"
                if self.selected is not None and day == self.selected:
                    style += " bold green"
                if day == self.cursor:
                    style += " reverse"
                cells.append(Text(str(day.day), style=style.strip()))
            table.add_row(*cells)
        return table

    def _render_years(self) -> Table:
        start = self.cursor.year - (self.cursor.year % YEAR_GRID_SIZE)
        table = Table(show_header=False, show_edge=False, box=None)
        for _ in range(YEAR_GRID_COLUMNS):
            table.add_column(justify="right")
        years = list(range(start, start + YEAR_GRID_SIZE))
        for row in range(0, YEAR_GRID_SIZE, YEAR_GRID_COLUMNS):
            cells = []
            for year in years[row: row + YEAR_GRID_COLUMNS]:
                style = "reverse" if year == self.cursor.year else ""
                cells.append(Text(str(year), style=style))
            table.add_row(*cells)
        return table

    def _render_time(self) -> Text:
        text = Text("Time: ")
        for i in range(self._time_slots()):
            if i:
                text.append(":")
            style = "reverse" if self.mode == CalendarMode.TIME and i == self.time_focus else "bold"
            text.append(f"{self.time[i]:02d}", style=style)
        return text

    def _help(self) -> str:
        if self.mode == CalendarMode.YEAR:
            return "←/→ year • ↑/↓ 5 years • enter back"
        if self.mode == CalendarMode.TIME:
            return "←/→ field • tab next • ↑/↓ change • 0-9 type • enter confirm • esc back"
        hint = "arrows move • m/M month • y year • n today • enter select • esc cancel"
        if self.show_time:
            hint += " • t time"
        return hint
