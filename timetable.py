from __future__ import annotations
import hashlib
import logging
import math
from datetime import date
from typing import Dict, Iterable, List, NamedTuple, Sequence, Tuple, Union

from dates import day_of_week, is_holiday_week, monday_of, rotation_week, shift_week, time_to_minutes, week_days
from models import (
    ROTATION_WEEKS,
    Duty,
    LessonBlock,
    Occurrence,
    RecurringLesson,
    Settings,
    Timetable,
)

log = logging.getLogger(__name__)

DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 16


def _is_active(tag: str, week: int | None) -> bool:
    # No anchor means no rotation: tagged lessons are shown every week.
    if tag == "every" or week is None:
        return True
    return ROTATION_WEEKS[tag] == week


def _log_overlaps(items: Sequence[Occurrence], d: date) -> None:
    latest_end = None
    latest_item = None
    for item in items:
        if latest_end is not None and item.start_minutes < latest_end:
            log.warning(
                "%s %s %s-%s overlaps %s %s-%s on %s; rendering both",
                item.kind, item.label or item.source_id, item.start_time, item.end_time,
                latest_item.label or latest_item.source_id, latest_item.start_time,
                latest_item.end_time, d.isoformat(),
            )
        if latest_end is None or item.end_minutes > latest_end:
            latest_end = item.end_minutes
            latest_item = item


def _lesson_occurrence(timetable: Timetable, rl: RecurringLesson, d: date) -> Occurrence:
    cls = timetable.class_by_id(rl.class_id)
    return Occurrence(
        kind="lesson",
        source_id=rl.id,
        class_id=rl.class_id,
        label=(cls.name if cls and cls.name else rl.class_id),
        date=d,
        weekday=rl.weekday,
        start_time=rl.start_time,
        end_time=rl.end_time,
        room=rl.room,
        period=rl.period,
    )


def _duty_occurrence(duty: Duty, d: date) -> Occurrence:
    return Occurrence(
        kind="duty",
        source_id=duty.id,
        label=duty.label,
        date=d,
        weekday=duty.weekday,
        start_time=duty.start_time,
        end_time=duty.end_time,
    )


def lessons_for_day(timetable: Timetable, d: date, holiday_weeks: Iterable[date] = ()) -> List[Occurrence]:
    holiday_weeks = list(holiday_weeks)
    if is_holiday_week(d, holiday_weeks):
        log.debug("%s falls in a holiday week; no lessons", d.isoformat())
        return []
    weekday = day_of_week(d)
    week = rotation_week(d, timetable.rotation_anchor_date, holiday_weeks)
    out = [
        _lesson_occurrence(timetable, rl, d)
        for rl in timetable.recurring_lessons
        if rl.weekday == weekday and _is_active(rl.rotation, week)
    ]
    # sort is stable, so declaration order breaks ties
    out.sort(key=lambda o: o.start_minutes)
    _log_overlaps(out, d)
    return out


def duties_for_day(timetable: Timetable, d: date, holiday_weeks: Iterable[date] = ()) -> List[Occurrence]:
    holiday_weeks = list(holiday_weeks)
    if is_holiday_week(d, holiday_weeks):
        return []
    weekday = day_of_week(d)
    week = rotation_week(d, timetable.rotation_anchor_date, holiday_weeks)
    out = [
        _duty_occurrence(duty, d)
        for duty in timetable.duties
        if duty.weekday == weekday and _is_active(duty.rotation, week)
    ]
    out.sort(key=lambda o: o.start_minutes)
    return out


def lessons_for_week(
    timetable: Timetable,
    days: Iterable[date],
    holiday_weeks: Iterable[date] = (),
) -> Dict[int, List[Occurrence]]:
    holiday_weeks = list(holiday_weeks)
    by_day = {day_of_week(d): lessons_for_day(timetable, d, holiday_weeks) for d in days}
    log.debug("resolved %d lessons", sum(len(v) for v in by_day.values()))
    return by_day


def duties_for_week(
    timetable: Timetable,
    days: Iterable[date],
    holiday_weeks: Iterable[date] = (),
) -> Dict[int, List[Occurrence]]:
    holiday_weeks = list(holiday_weeks)
    return {day_of_week(d): duties_for_day(timetable, d, holiday_weeks) for d in days}


class ResolvedWeek(NamedTuple):
    """Lessons and duties of a run of days, keyed by weekday (1=Mon)."""

    lessons: Dict[int, List[Occurrence]]
    duties: Dict[int, List[Occurrence]]

    def lessons_on(self, d: date) -> List[Occurrence]:
        return self.lessons.get(day_of_week(d), [])

    def duties_on(self, d: date) -> List[Occurrence]:
        return self.duties.get(day_of_week(d), [])


def resolve_week(
    timetable: Timetable,
    days: Iterable[date],
    holiday_weeks: Iterable[date] = (),
) -> ResolvedWeek:
    days = list(days)
    holiday_weeks = list(holiday_weeks)
    return ResolvedWeek(
        lessons=lessons_for_week(timetable, days, holiday_weeks),
        duties=duties_for_week(timetable, days, holiday_weeks),
    )


def _as_block(item: Union[Occurrence, LessonBlock]) -> LessonBlock:
    if isinstance(item, LessonBlock):
        return item
    return LessonBlock(
        class_id=item.class_id,
        label=item.label,
        date=item.date,
        weekday=item.weekday,
        start_time=item.start_time,
        end_time=item.end_time,
        occurrences=[item],
    )


def merge_consecutive(items: Sequence[Union[Occurrence, LessonBlock]]) -> List[LessonBlock]:
    """
    Collapse back-to-back occurrences of the same class into one block.

    Input must be one day's items sorted by start time. Blocks keep their
    constituent occurrences, so content lookups still work per occurrence.
    Already merged blocks pass through unchanged.
    """
    blocks: List[LessonBlock] = []
    for item in items:
        block = _as_block(item)
        prev = blocks[-1] if blocks else None
        if (
            prev is not None
            and prev.class_id is not None
            and prev.class_id == block.class_id
            and prev.date == block.date
            and prev.end_minutes == block.start_minutes
        ):
            blocks[-1] = prev.model_copy(update={
                "end_time": block.end_time,
                "occurrences": prev.occurrences + block.occurrences,
            })
        else:
            blocks.append(block)
    return blocks


def occupied_intervals(*groups: Iterable[Occurrence]) -> List[Tuple[int, int]]:
    """(start, end) minute pairs of unmerged lessons and duties."""
    out = []
    for group in groups:
        for item in group:
            out.append((item.start_minutes, item.end_minutes))
    return sorted(out)


def time_range(timetable: Timetable | None) -> Tuple[int, int]:
    """Earliest start hour and latest end hour over all recurring lessons."""
    if timetable is None or not timetable.recurring_lessons:
        return DEFAULT_START_HOUR, DEFAULT_END_HOUR

    earliest = 24 * 60
    latest = 0
    for rl in timetable.recurring_lessons:
        earliest = min(earliest, time_to_minutes(rl.start_time))
        latest = max(latest, time_to_minutes(rl.end_time))
    return earliest // 60, math.ceil(latest / 60)


def day_bounds(timetable: Timetable | None, settings: Settings | None = None) -> Tuple[int, int]:
    """
    Day bounds in minutes: settings override, then the timetable's own
    start/end hour, then the lesson time range.
    """
    start_hour, end_hour = time_range(timetable)
    start = start_hour * 60
    end = end_hour * 60
    if timetable is not None:
        if timetable.start_hour is not None:
            start = timetable.start_hour * 60
        if timetable.end_hour is not None:
            end = timetable.end_hour * 60
    if settings is not None:
        if settings.workday_start:
            start = time_to_minutes(settings.workday_start)
        if settings.workday_end:
            end = time_to_minutes(settings.workday_end)
    return start, end


_ROTATION_ORDER = {"every": 0, "A": 1, "B": 2}


def class_recurring_schedule(timetable: Timetable, class_id: str) -> List[RecurringLesson]:
    """A class's recurring lessons in fortnight order, double periods merged."""
    lessons = sorted(
        (rl for rl in timetable.recurring_lessons if rl.class_id == class_id),
        key=lambda rl: (_ROTATION_ORDER[rl.rotation], rl.weekday, time_to_minutes(rl.start_time)),
    )
    merged: List[RecurringLesson] = []
    for rl in lessons:
        prev = merged[-1] if merged else None
        if (
            prev is not None
            and prev.rotation == rl.rotation
            and prev.weekday == rl.weekday
            and prev.end_time == rl.start_time
        ):
            first_period = prev.period.split("-")[0]
            period = f"{first_period}-{rl.period}" if first_period or rl.period else ""
            merged[-1] = prev.model_copy(update={"end_time": rl.end_time, "period": period})
        else:
            merged.append(rl)
    return merged


def upcoming_lessons(
    timetable: Timetable,
    class_id: str,
    start: date,
    weeks: int = 6,
    holiday_weeks: Iterable[date] = (),
) -> List[LessonBlock]:
    """
    Dated lesson blocks of one class from `start` onward, covering `weeks`
    Mon-Fri weeks. Double periods come back as one block.
    """
    holiday_weeks = list(holiday_weeks)
    monday = monday_of(start)
    out: List[LessonBlock] = []
    for i in range(weeks):
        for d in week_days(shift_week(monday, i)):
            if d < start:
                continue
            lessons = [o for o in lessons_for_day(timetable, d, holiday_weeks) if o.class_id == class_id]
            out.extend(merge_consecutive(lessons))
    return out


class WeekCache:
    """Resolved Mon-Fri weeks keyed by timetable content, Monday and holidays."""

    def __init__(self, max_entries: int = 32) -> None:
        self.max_entries = max_entries
        self._entries: Dict[Tuple[str, date, Tuple[date, ...]], ResolvedWeek] = {}

    @staticmethod
    def fingerprint(timetable: Timetable) -> str:
        return hashlib.sha1(timetable.model_dump_json().encode("utf-8")).hexdigest()

    def week(self, timetable: Timetable, d: date, holiday_weeks: Iterable[date] = ()) -> ResolvedWeek:
        holidays = tuple(sorted({monday_of(h) for h in holiday_weeks}))
        key = (self.fingerprint(timetable), monday_of(d), holidays)
        hit = self._entries.get(key)
        if hit is not None:
            return hit
        value = resolve_week(timetable, week_days(d), holidays)
        if len(self._entries) >= self.max_entries:
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = value
        return value

    def __len__(self) -> int:
        return len(self._entries)
