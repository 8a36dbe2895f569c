from __future__ import annotations

import copy
import json
from datetime import date

import pytest

from timetable import lessons_for_day
from timetable_import import (
    DEMO_TIMETABLE,
    TimetableImportError,
    load_timetable,
    parse_timetable_bytes,
    validate_timetable_json,
)


def _two_week_plan() -> dict:
    raw = copy.deepcopy(DEMO_TIMETABLE)
    raw["twoWeekTimetable"] = True
    raw["recurringLessons"].append(
        {"id": "mon-5-11T4", "dayOfWeek": 1, "startTime": "14:45", "endTime": "15:45",
         "classId": "11T4", "period": "5", "weekNumber": 2}
    )
    return raw


def test_demo_timetable_loads():
    timetable = load_timetable(DEMO_TIMETABLE)
    assert timetable.teacher_name == "Ms. Thompson"
    assert len(timetable.classes) == 5
    assert len(timetable.recurring_lessons) == 14
    assert [d.label for d in timetable.duties] == ["Break Duty", "Detention"]
    assert timetable.rotation_anchor_date is None
    assert timetable.class_by_id("12G2").class_size == 24


def test_two_week_timetable_uses_export_date_as_anchor():
    timetable = load_timetable(_two_week_plan())
    assert timetable.rotation_anchor_date == date(2026, 1, 21)
    assert timetable.recurring_lessons[-1].rotation == "B"
    assert timetable.recurring_lessons[0].rotation == "every"

    anchor_monday = date(2026, 1, 19)
    assert "mon-5-11T4" not in [o.source_id for o in lessons_for_day(timetable, anchor_monday)]
    assert "mon-5-11T4" in [o.source_id for o in lessons_for_day(timetable, date(2026, 1, 26))]


def test_validate_reports_structural_problems():
    assert validate_timetable_json([]) == ["Invalid JSON: not an object"]
    errors = validate_timetable_json({})
    assert 'Missing "teacher" field' in errors
    assert 'Missing or invalid "classes" array' in errors
    assert 'Missing or invalid "recurringLessons" array' in errors


def test_validate_reports_bad_lessons():
    raw = copy.deepcopy(DEMO_TIMETABLE)
    raw["recurringLessons"][0]["dayOfWeek"] = 9
    raw["recurringLessons"][1]["startTime"] = "9am"
    errors = validate_timetable_json(raw)
    assert errors == ["Lesson 0: dayOfWeek must be 1-7", "Lesson 1: startTime must be HH:MM format"]
    with pytest.raises(TimetableImportError) as excinfo:
        load_timetable(raw)
    assert excinfo.value.errors == errors


def test_parse_timetable_bytes():
    timetable = parse_timetable_bytes(json.dumps(DEMO_TIMETABLE).encode("utf-8"))
    assert len(timetable.recurring_lessons) == 14
    with pytest.raises(TimetableImportError):
        parse_timetable_bytes(b"{not json")


def test_unreadable_export_date_is_an_import_error():
    raw = _two_week_plan()
    raw["teacher"]["exportDate"] = "21/01/2026"
    with pytest.raises(TimetableImportError, match="exportDate") as excinfo:
        load_timetable(raw)
    assert excinfo.value.errors[0].startswith("Invalid teacher.exportDate")
