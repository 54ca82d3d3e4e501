"""Interactive widgets: calendar, date range, reference search and the condition builder."""

from .calendar import Calendar, CalendarMode
from .daterange import DatePreset, DateRangePicker, default_presets
from .reference import ReferenceCandidate, ReferenceResolver, ReferenceSearchResult
from .builder import BuilderState, ConditionBuilder

__all__ = [
    "Calendar",
    "CalendarMode",
    "DatePreset",
    "DateRangePicker",
    "default_presets",
    "ReferenceCandidate",
    "ReferenceResolver",
    "ReferenceSearchResult",
    "BuilderState",
    "ConditionBuilder",
]
