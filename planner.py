from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple
from uuid import uuid4

from dates import day_of_week, is_holiday_week, iso_calendar_day
from models import FreePeriod, Priority, Settings, Slot, Task, Timetable
from timetable import (
    ResolvedWeek,
    day_bounds,
    duties_for_day,
    lessons_for_day,
    occupied_intervals,
    resolve_week,
)

log = logging.getLogger(__name__)

MIN_FREE_MINUTES = 30


# ---- Free periods ----

def _interval(item: Any) -> Tuple[int, int]:
    if isinstance(item, tuple):
        return item[0], item[1]
    return item.start_minutes, item.end_minutes


def free_periods(
    occupied: Iterable[Any],
    day_start: int,
    day_end: int,
    min_duration: int = MIN_FREE_MINUTES,
    day: date | None = None,
) -> List[FreePeriod]:
    """
    Gaps of at least `min_duration` minutes between occupied intervals.

    `occupied` holds (start, end) minute pairs or anything with
    start_minutes/end_minutes. One sweep; the cursor never moves backward,
    so overlapping or nested intervals are handled. Gaps below the threshold
    are skipped but still advance the cursor.
    """
    intervals = []
    for item in occupied:
        start, end = _interval(item)
        if end <= start:
            log.warning("ignoring empty interval %s-%s", start, end)
            continue
        intervals.append((start, end))
    intervals.sort()

    out: List[FreePeriod] = []
    cursor = day_start
    for start, end in intervals:
        start = min(start, day_end)
        if cursor < start and start - cursor >= min_duration:
            out.append(FreePeriod(date=day, start_minutes=cursor, end_minutes=start))
        cursor = max(cursor, end)

    if cursor < day_end and day_end - cursor >= min_duration:
        out.append(FreePeriod(date=day, start_minutes=cursor, end_minutes=day_end))
    return out


def free_periods_for_day(
    timetable: Timetable,
    d: date,
    settings: Settings | None = None,
    resolved: ResolvedWeek | None = None,
) -> List[FreePeriod]:
    """
    Free periods of one day. Holiday weeks have none. `resolved` reuses an
    already resolved week instead of resolving the day again.
    """
    settings = settings or Settings()
    if is_holiday_week(d, settings.holiday_weeks):
        return []
    if resolved is None:
        lessons = lessons_for_day(timetable, d, settings.holiday_weeks)
        duties = duties_for_day(timetable, d, settings.holiday_weeks)
    else:
        lessons, duties = resolved.lessons_on(d), resolved.duties_on(d)
    start, end = day_bounds(timetable, settings)
    return free_periods(
        occupied_intervals(lessons, duties),
        start,
        end,
        min_duration=settings.min_free_minutes,
        day=d,
    )


def free_periods_for_week(
    timetable: Timetable,
    days: Iterable[date],
    settings: Settings | None = None,
    resolved: ResolvedWeek | None = None,
) -> Dict[int, List[FreePeriod]]:
    settings = settings or Settings()
    days = list(days)
    if resolved is None:
        resolved = resolve_week(timetable, days, settings.holiday_weeks)
    return {day_of_week(d): free_periods_for_day(timetable, d, settings, resolved) for d in days}


# ---- Slot identity ----

class SlotKey(NamedTuple):
    year: int
    month: int
    day: int
    start_minutes: int

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    def __str__(self) -> str:
        return f"{self.date.isoformat()}::{self.start_minutes}"


def slot_key(slot: Any) -> SlotKey:
    """
    Identity of a slot: its calendar day plus start minute.
    Accepts a SlotKey, a Slot or FreePeriod, or the persisted dict form;
    dates may be date objects or ISO date/datetime strings.
    """
    if isinstance(slot, SlotKey):
        return slot
    if isinstance(slot, dict):
        raw_date, start = slot.get("date"), slot.get("start_minutes")
    else:
        raw_date, start = slot.date, slot.start_minutes
    d = iso_calendar_day(raw_date)
    return SlotKey(d.year, d.month, d.day, int(start))


def _to_slot(slot: Any) -> Slot:
    if isinstance(slot, Slot):
        return slot
    if isinstance(slot, SlotKey):
        return Slot(date=slot.date, start_minutes=slot.start_minutes)
    if isinstance(slot, dict):
        return Slot.model_validate(slot)
    return Slot(date=slot.date, start_minutes=slot.start_minutes, end_minutes=slot.end_minutes)


def _order(task: Task) -> int:
    return task.stack_order if task.stack_order is not None else 0


def _in_slot(task: Task, key: SlotKey) -> bool:
    return task.scheduled_slot is not None and slot_key(task.scheduled_slot) == key


# ---- Scheduling ----

def schedule_tasks(tasks: Sequence[Task], task_ids: Sequence[str], slot: Any) -> List[Task]:
    """
    Put tasks into a slot on top of whatever is already stacked there,
    keeping the order the ids were given in. Unknown ids are skipped.
    """
    present = {t.id for t in tasks}
    ids = [tid for tid in dict.fromkeys(task_ids) if tid in present]
    if not ids:
        log.warning("schedule: no such task(s) %s", list(task_ids))
        return list(tasks)

    key = slot_key(slot)
    moving = set(ids)
    existing = [_order(t) for t in tasks if t.id not in moving and _in_slot(t, key)]
    next_order = max(existing, default=-1) + 1

    target = _to_slot(slot)
    orders = {tid: next_order + i for i, tid in enumerate(ids)}
    log.debug("scheduling %s into %s", ids, key)
    return [
        t.model_copy(update={"scheduled_slot": target, "stack_order": orders[t.id]})
        if t.id in orders else t
        for t in tasks
    ]


def schedule_task(tasks: Sequence[Task], task_id: str, slot: Any) -> List[Task]:
    return schedule_tasks(tasks, [task_id], slot)


def unschedule_task(tasks: Sequence[Task], task_id: str) -> List[Task]:
    if not any(t.id == task_id for t in tasks):
        log.warning("unschedule: no such task %s", task_id)
        return list(tasks)
    return [
        t.model_copy(update={"scheduled_slot": None, "stack_order": None})
        if t.id == task_id else t
        for t in tasks
    ]


def reorder_stack(tasks: Sequence[Task], ordered_task_ids: Sequence[str]) -> List[Task]:
    """Renumber the given tasks 0..n-1 in the order supplied."""
    orders = {tid: i for i, tid in enumerate(dict.fromkeys(ordered_task_ids))}
    return [
        t.model_copy(update={"stack_order": orders[t.id]}) if t.id in orders else t
        for t in tasks
    ]


def tasks_in_slot(tasks: Iterable[Task], slot: Any) -> List[Task]:
    key = slot_key(slot)
    return sorted((t for t in tasks if _in_slot(t, key)), key=_order)


# ---- Task list ----

def create_task(
    tasks: Sequence[Task],
    text: str,
    priority: Priority = "medium",
    now: datetime | None = None,
) -> Tuple[List[Task], Task]:
    text = text.strip()
    if not text:
        raise ValueError("Task text cannot be empty.")
    task = Task(
        id=str(uuid4()),
        text=text,
        priority=priority,
        created_at=now or datetime.now(),
    )
    return list(tasks) + [task], task


def delete_task(tasks: Sequence[Task], task_id: str) -> List[Task]:
    # Remaining stack orders keep their gaps; only relative order matters.
    return [t for t in tasks if t.id != task_id]


def set_completed(tasks: Sequence[Task], task_id: str, completed: Optional[bool] = None) -> List[Task]:
    """Set or (with completed=None) toggle a task's completed flag."""
    return [
        t.model_copy(update={"completed": (not t.completed) if completed is None else completed})
        if t.id == task_id else t
        for t in tasks
    ]


def unscheduled_tasks(tasks: Iterable[Task]) -> List[Task]:
    return [t for t in tasks if t.scheduled_slot is None and not t.completed]


def slot_groups_for_day(tasks: Iterable[Task], d: date) -> Dict[SlotKey, List[Task]]:
    """Tasks scheduled on `d`, grouped per slot; completed tasks sink to the bottom."""
    groups: Dict[SlotKey, List[Task]] = {}
    for t in tasks:
        if t.scheduled_slot is None:
            continue
        key = slot_key(t.scheduled_slot)
        if key.date == d:
            groups.setdefault(key, []).append(t)

    return {
        key: sorted(groups[key], key=lambda t: (t.completed, _order(t)))
        for key in sorted(groups)
    }
