from __future__ import annotations
from datetime import date, datetime, time, timedelta, tzinfo
from typing import List
from icalendar import Calendar, Event as IcsEvent
from models import Settings, Task, Timetable
from dates import week_days
from planner import free_periods_for_day, slot_groups_for_day, tasks_in_slot
from timetable import WeekCache, merge_consecutive


def _get_timezone() -> tzinfo | None:
    return datetime.now().astimezone().tzinfo


def _at(d: date, minutes: int, tz: tzinfo | None) -> datetime:
    return datetime.combine(d, time.min, tzinfo=tz) + timedelta(minutes=minutes)


def week_to_ics(
    timetable: Timetable,
    week_of: date,
    tasks: List[Task],
    settings: Settings | None = None,
    tz: tzinfo | None = None,
    cache: WeekCache | None = None,
) -> bytes:
    """
    One VEVENT per lesson block, duty and task stack in the Mon-Fri week
    containing `week_of`. Holiday weeks export only their task stacks.
    """
    cal = Calendar()
    cal.add("PRODID", "-//Teacher Planner//Local//")
    cal.add("version", "2.0")
    cal.add("X-WR-CALNAME", "Teacher Timetable")

    tz = tz or _get_timezone()
    settings = settings or Settings()
    cache = cache if cache is not None else WeekCache()
    resolved = cache.week(timetable, week_of, settings.holiday_weeks)

    for d in week_days(week_of):
        for block in merge_consecutive(resolved.lessons_on(d)):
            event = IcsEvent()
            event.add("uid", f"lesson-{block.class_id}-{d.isoformat()}-{block.start_minutes}@teacher-planner")
            event.add("summary", block.label or block.class_id or "Lesson")
            event.add("dtstart", _at(d, block.start_minutes, tz))
            event.add("dtend", _at(d, block.end_minutes, tz))
            rooms = sorted({occ.room for occ in block.occurrences if occ.room})
            if rooms:
                event.add("location", ", ".join(rooms))
            cal.add_component(event)

        for duty in resolved.duties_on(d):
            event = IcsEvent()
            event.add("uid", f"duty-{duty.source_id}-{d.isoformat()}@teacher-planner")
            event.add("summary", duty.label)
            event.add("dtstart", _at(d, duty.start_minutes, tz))
            event.add("dtend", _at(d, duty.end_minutes, tz))
            cal.add_component(event)

        # Stacks that still line up with a free period get its end time
        period_ends = {p.start_minutes: p.end_minutes for p in free_periods_for_day(timetable, d, settings, resolved)}
        for key in slot_groups_for_day(tasks, d):
            stack = [t for t in tasks_in_slot(tasks, key) if not t.completed]
            if not stack:
                continue
            end_minutes = stack[0].scheduled_slot.end_minutes or period_ends.get(
                key.start_minutes, key.start_minutes + settings.min_free_minutes
            )
            event = IcsEvent()
            event.add("uid", f"tasks-{key}@teacher-planner")
            event.add("summary", f"Tasks ({len(stack)})")
            event.add("dtstart", _at(d, key.start_minutes, tz))
            event.add("dtend", _at(d, end_minutes, tz))
            event.add("description", "\n".join(f"[{t.priority}] {t.text}" for t in stack))
            cal.add_component(event)

    return cal.to_ical()
