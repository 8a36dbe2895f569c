from __future__ import annotations

import logging
from datetime import date

from models import ClassInfo, Duty, RecurringLesson, Settings, Timetable
from timetable import (
    WeekCache,
    class_recurring_schedule,
    day_bounds,
    duties_for_day,
    lessons_for_day,
    lessons_for_week,
    merge_consecutive,
    occupied_intervals,
    time_range,
    upcoming_lessons,
)

MONDAY = date(2024, 3, 4)
NEXT_MONDAY = date(2024, 3, 11)


def _lesson(lesson_id, class_id, weekday, start, end, rotation="every", period=""):
    return RecurringLesson(
        id=lesson_id,
        class_id=class_id,
        weekday=weekday,
        start_time=start,
        end_time=end,
        rotation=rotation,
        period=period,
    )


def _timetable(anchor=MONDAY, lessons=None, duties=None, **kwargs) -> Timetable:
    if lessons is None:
        lessons = [
            _lesson("m1", "math", 1, "09:00", "10:00", period="1"),
            _lesson("m2", "math", 1, "10:00", "11:00", period="2"),
            _lesson("p1", "phys", 1, "10:00", "11:00", rotation="B"),
            _lesson("t1", "math", 2, "13:00", "14:00"),
        ]
    return Timetable(
        teacher_name="Ms. Thompson",
        classes=[ClassInfo(id="math", name="Math"), ClassInfo(id="phys", name="Physics")],
        recurring_lessons=lessons,
        duties=duties or [],
        rotation_anchor_date=anchor,
        **kwargs,
    )


def test_lessons_for_week_keys_by_weekday_and_attaches_dates():
    by_day = lessons_for_week(_timetable(), [MONDAY, date(2024, 3, 5)])
    assert set(by_day) == {1, 2}
    assert [o.source_id for o in by_day[1]] == ["m1", "m2"]
    assert all(o.date == MONDAY for o in by_day[1])
    assert by_day[2][0].label == "Math"


def test_rotation_tag_only_active_in_its_week():
    assert "p1" not in [o.source_id for o in lessons_for_day(_timetable(), MONDAY)]
    assert "p1" in [o.source_id for o in lessons_for_day(_timetable(), NEXT_MONDAY)]


def test_rotation_tag_without_anchor_is_every_week():
    timetable = _timetable(anchor=None)
    assert "p1" in [o.source_id for o in lessons_for_day(timetable, MONDAY)]
    assert "p1" in [o.source_id for o in lessons_for_day(timetable, NEXT_MONDAY)]


def test_sunday_lessons_resolve_on_sunday():
    timetable = _timetable(lessons=[_lesson("s1", "math", 7, "10:00", "11:00")])
    assert [o.source_id for o in lessons_for_day(timetable, date(2024, 3, 10))] == ["s1"]
    assert lessons_for_day(timetable, MONDAY) == []


def test_ordering_is_by_start_with_declaration_order_for_ties():
    timetable = _timetable(lessons=[
        _lesson("late", "math", 1, "11:00", "12:00"),
        _lesson("tie-b", "phys", 1, "09:00", "10:00"),
        _lesson("tie-a", "math", 1, "09:00", "09:30"),
    ])
    assert [o.source_id for o in lessons_for_day(timetable, MONDAY)] == ["tie-b", "tie-a", "late"]


def test_overlapping_lessons_are_both_kept_and_logged(caplog):
    timetable = _timetable(lessons=[
        _lesson("a", "math", 1, "09:00", "10:00"),
        _lesson("b", "phys", 1, "09:30", "10:30"),
    ])
    with caplog.at_level(logging.WARNING, logger="timetable"):
        out = lessons_for_day(timetable, MONDAY)
    assert [o.source_id for o in out] == ["a", "b"]
    assert "overlaps" in caplog.text


def test_duties_resolve_without_class():
    timetable = _timetable(duties=[
        Duty(id="d1", label="Break Duty", weekday=1, start_time="11:00", end_time="11:20"),
        Duty(id="d2", label="Detention", weekday=1, start_time="15:00", end_time="15:30", rotation="B"),
    ])
    duties = duties_for_day(timetable, MONDAY)
    assert [d.source_id for d in duties] == ["d1"]
    assert duties[0].class_id is None
    assert duties[0].kind == "duty"


def test_merge_consecutive_same_class_into_one_block():
    blocks = merge_consecutive(lessons_for_day(_timetable(), MONDAY))
    assert len(blocks) == 1
    block = blocks[0]
    assert (block.start_time, block.end_time) == ("09:00", "11:00")
    assert [o.source_id for o in block.occurrences] == ["m1", "m2"]


def test_alternate_week_physics_does_not_merge():
    blocks = merge_consecutive(lessons_for_day(_timetable(), NEXT_MONDAY))
    assert [b.label for b in blocks] == ["Math", "Physics"]
    assert (blocks[0].start_time, blocks[0].end_time) == ("09:00", "11:00")
    assert [o.source_id for o in blocks[1].occurrences] == ["p1"]


def test_merge_requires_exact_adjacency_and_same_class():
    timetable = _timetable(lessons=[
        _lesson("a", "math", 1, "09:00", "10:00"),
        _lesson("b", "math", 1, "10:05", "11:00"),
        _lesson("c", "phys", 1, "11:00", "12:00"),
    ])
    blocks = merge_consecutive(lessons_for_day(timetable, MONDAY))
    assert [len(b.occurrences) for b in blocks] == [1, 1, 1]


def test_duties_never_merge():
    timetable = _timetable(duties=[
        Duty(id="d1", weekday=1, start_time="11:00", end_time="11:20"),
        Duty(id="d2", weekday=1, start_time="11:20", end_time="11:40"),
    ])
    assert len(merge_consecutive(duties_for_day(timetable, MONDAY))) == 2


def test_merge_is_idempotent():
    timetable = _timetable(lessons=[
        _lesson("a", "math", 1, "09:00", "10:00"),
        _lesson("b", "math", 1, "10:00", "11:00"),
        _lesson("c", "math", 1, "11:00", "12:00"),
        _lesson("d", "phys", 1, "12:00", "13:00"),
    ])
    once = merge_consecutive(lessons_for_day(timetable, MONDAY))
    assert merge_consecutive(once) == once
    assert [len(b.occurrences) for b in once] == [3, 1]


def test_occupied_intervals_use_unmerged_occurrences():
    timetable = _timetable(duties=[Duty(id="d", weekday=1, start_time="11:00", end_time="11:20")])
    intervals = occupied_intervals(lessons_for_day(timetable, MONDAY), duties_for_day(timetable, MONDAY))
    assert intervals == [(540, 600), (600, 660), (660, 680)]


def test_time_range_defaults_and_rounds_outward():
    assert time_range(None) == (8, 16)
    assert time_range(_timetable(lessons=[])) == (8, 16)
    timetable = _timetable(lessons=[
        _lesson("a", "math", 1, "08:45", "09:45"),
        _lesson("b", "math", 3, "14:45", "15:45"),
    ])
    assert time_range(timetable) == (8, 16)


def test_day_bounds_precedence():
    timetable = _timetable(start_hour=7)
    assert day_bounds(timetable) == (420, 14 * 60)
    settings = Settings(workday_end="17:30")
    assert day_bounds(timetable, settings) == (420, 1050)


def test_class_recurring_schedule_merges_double_periods():
    schedule = class_recurring_schedule(_timetable(), "math")
    assert [(rl.weekday, rl.start_time, rl.end_time, rl.period) for rl in schedule] == [
        (1, "09:00", "11:00", "1-2"),
        (2, "13:00", "14:00", ""),
    ]


def test_week_cache_keys_on_content_and_monday():
    cache = WeekCache()
    timetable = _timetable()
    lessons, _ = cache.week(timetable, MONDAY)
    again, _ = cache.week(timetable, date(2024, 3, 6))
    assert again is lessons
    assert len(cache) == 1

    cache.week(timetable, NEXT_MONDAY)
    edited = timetable.model_copy(update={"recurring_lessons": timetable.recurring_lessons[:1]})
    fresh, _ = cache.week(edited, MONDAY)
    assert len(cache) == 3
    assert [o.source_id for o in fresh[1]] == ["m1"]

    holiday, _ = cache.week(timetable, MONDAY, [date(2024, 3, 6)])
    assert holiday == {d: [] for d in range(1, 6)}
    assert len(cache) == 4


def test_holiday_week_has_no_lessons_or_duties():
    duties = [Duty(id="d1", label="Gate", weekday=1, start_time="08:30", end_time="08:50")]
    timetable = _timetable(duties=duties)
    holidays = [MONDAY]
    assert lessons_for_day(timetable, MONDAY, holidays) == []
    assert duties_for_day(timetable, MONDAY, holidays) == []
    assert [o.source_id for o in duties_for_day(timetable, NEXT_MONDAY, holidays)] == ["d1"]


def test_alternate_week_lesson_shifts_after_a_holiday():
    holidays = [NEXT_MONDAY]
    after_break = date(2024, 3, 18)
    # without the break 18 March would be week A again
    assert "p1" not in [o.source_id for o in lessons_for_day(_timetable(), after_break)]
    assert "p1" in [o.source_id for o in lessons_for_day(_timetable(), after_break, holidays)]


def test_upcoming_lessons_list_merged_blocks_and_skip_holidays():
    blocks = upcoming_lessons(_timetable(), "math", date(2024, 3, 5), weeks=2, holiday_weeks=[NEXT_MONDAY])
    assert [(b.date, b.start_time, b.end_time) for b in blocks] == [(date(2024, 3, 5), "13:00", "14:00")]

    blocks = upcoming_lessons(_timetable(), "math", MONDAY, weeks=2)
    assert [(b.date, b.start_time, b.end_time) for b in blocks] == [
        (MONDAY, "09:00", "11:00"),
        (date(2024, 3, 5), "13:00", "14:00"),
        (NEXT_MONDAY, "09:00", "11:00"),
        (date(2024, 3, 12), "13:00", "14:00"),
    ]
    assert len(blocks[0].occurrences) == 2


def test_settings_store_holiday_weeks_as_sorted_mondays():
    settings = Settings(holiday_weeks=["2024-03-13", date(2024, 2, 28), "2024-03-11"])
    assert settings.holiday_weeks == [date(2024, 2, 26), NEXT_MONDAY]
    assert Settings.model_validate(settings.model_dump(mode="json")) == settings
