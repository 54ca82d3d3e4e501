"""Date literal parsing and the backend's date/time text formats."""

import re
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from ..errors import ParseError


BACKEND_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

# Formats the validator accepts for date and date-time values
ACCEPTED_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%m-%d-%Y",
    "%m/%d/%Y",
    "%Y-%m-%dT%H:%M:%SZ",
)

# Formats accepted by the plain-text date range input
RANGE_INPUT_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
)

RANGE_FUNCTION = "javascript:gs.dateGenerate"

_RANGE_RE = re.compile(
    r"^javascript:gs\.dateGenerate\('(?P<start>[^']*)','(?P<end>[^']*)'\)$"
)


def parse_instant(text: str, formats: Iterable[str] = ACCEPTED_FORMATS) -> datetime:
    """Parse ``text`` against each format in turn.

    Raises:
        ParseError: if no format matches
    """
    value = text.strip()
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ParseError(text, "date")


def is_valid_date(text: str, formats: Iterable[str] = ACCEPTED_FORMATS) -> bool:
    try:
        parse_instant(text, formats)
    except ParseError:
        return False
    return True


def format_instant(instant: datetime) -> str:
    """Render an instant the way the backend expects it."""
    return instant.strftime(BACKEND_FORMAT)


def date_range_expression(start: datetime, end: datetime) -> str:
    """Build the function-call literal used as a BETWEEN value."""
    return f"{RANGE_FUNCTION}('{format_instant(start)}','{format_instant(end)}')"


def parse_range_expression(value: str) -> Optional[Tuple[datetime, datetime]]:
    """Split a range literal back into its two instants.

    Returns None when ``value`` is not a range literal at all.

    Raises:
        ParseError: if it is a range literal with malformed instants
    """
    match = _RANGE_RE.match(value.strip())
    if not match:
        return None
    start = parse_instant(match.group("start"), (BACKEND_FORMAT,))
    end = parse_instant(match.group("end"), (BACKEND_FORMAT,))
    return start, end


def is_range_expression(value: str) -> bool:
    return value.strip().startswith(RANGE_FUNCTION + "(")


def start_of_day(instant: datetime) -> datetime:
    return instant.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(instant: datetime) -> datetime:
    return instant.replace(hour=23, minute=59, second=59, microsecond=0)


def start_of_week(instant: datetime) -> datetime:
    """Sunday 00:00:00 of the week containing ``instant``."""
    # weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (instant.weekday() + 1) % 7
    return start_of_day(instant - timedelta(days=days_since_sunday))


def same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()
