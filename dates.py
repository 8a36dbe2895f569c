from __future__ import annotations
import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional


DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_NAMES_SHORT = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class FormatError(ValueError):
    """Raised for malformed time strings and unparseable dates."""


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def monday_of(value: date | datetime) -> date:
    """
    Monday of the ISO week containing `value`.
    Datetimes lose their time-of-day.
    """
    d = _as_date(value)
    return d - timedelta(days=d.weekday())


def week_days(value: date | datetime) -> List[date]:
    monday = monday_of(value)
    return [monday + timedelta(days=i) for i in range(5)]


def shift_week(value: date, weeks: int) -> date:
    return value + timedelta(days=weeks * 7)


def day_of_week(value: date | datetime) -> int:
    # 1=Mon ... 7=Sun
    return _as_date(value).isoweekday()


def is_holiday_week(value: date | datetime, holiday_weeks: Iterable[date] = ()) -> bool:
    return monday_of(value) in {monday_of(h) for h in holiday_weeks}


def rotation_week(
    value: date | datetime,
    anchor: date | datetime | None,
    holiday_weeks: Iterable[date] = (),
) -> Optional[int]:
    """
    Rotation week (1 or 2) of `value` relative to the anchor's week.

    Returns None when there is no anchor. Holiday weeks between the anchor
    and `value` are not counted, so the A/B cycle resumes where it left off
    after a break. Python's floor division keeps weeks before the anchor
    alternating.
    """
    if anchor is None:
        return None
    monday = monday_of(value)
    anchor_monday = monday_of(anchor)
    weeks = (monday - anchor_monday).days // 7
    holidays = {monday_of(h) for h in holiday_weeks}
    if monday >= anchor_monday:
        weeks -= sum(1 for h in holidays if anchor_monday <= h < monday)
    else:
        weeks += sum(1 for h in holidays if monday <= h < anchor_monday)
    return 1 if weeks % 2 == 0 else 2


def time_to_minutes(value: str) -> int:
    if not isinstance(value, str):
        raise FormatError(f"Expected time in H:MM format, got: {value!r}")
    m = _TIME_RE.match(value.strip())
    if not m:
        raise FormatError(f"Expected time in H:MM format, got: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes != 0):
        raise FormatError(f"Time out of range: {value!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    """Inverse of time_to_minutes, zero-padded ("09:05"). 1440 is "24:00", the end of the day."""
    if not isinstance(minutes, int) or minutes < 0 or minutes > 24 * 60:
        raise FormatError(f"Minutes of day out of range: {minutes!r}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60}:{minutes % 60:02d}"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"


def iso_calendar_day(value: date | datetime | str) -> date:
    """
    Calendar day of a date, datetime or ISO date/datetime string.
    For strings only the date portion counts; time-of-day and any offset
    after it are ignored.
    """
    if isinstance(value, (date, datetime)):
        return _as_date(value)
    if not isinstance(value, str):
        raise FormatError(f"Expected ISO date, got: {value!r}")
    day_part = value.strip().split("T", 1)[0].split(" ", 1)[0]
    if not _ISO_DAY_RE.match(day_part):
        raise FormatError(f"Expected ISO date, got: {value!r}")
    try:
        return date.fromisoformat(day_part)
    except ValueError as exc:
        raise FormatError(f"Expected ISO date, got: {value!r}") from exc


def format_week_range(monday: date) -> str:
    friday = monday + timedelta(days=4)
    if monday.month == friday.month:
        return f"{monday.day} - {friday.day} {friday.strftime('%b %Y')}"
    return f"{monday.day} {monday.strftime('%b')} - {friday.day} {friday.strftime('%b %Y')}"
