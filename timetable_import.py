from __future__ import annotations
import json
import logging
import re
from typing import Any, List

from pydantic import ValidationError

from dates import FormatError, iso_calendar_day
from models import ClassInfo, Duty, RecurringLesson, Timetable

log = logging.getLogger(__name__)

_HHMM = re.compile(r"^\d{2}:\d{2}$")


class TimetableImportError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__("Invalid timetable format:\n" + "\n".join(errors))
        self.errors = errors


def validate_timetable_json(data: Any) -> List[str]:
    if not isinstance(data, dict):
        return ["Invalid JSON: not an object"]

    errors: List[str] = []
    if not data.get("teacher"):
        errors.append('Missing "teacher" field')
    if not isinstance(data.get("classes"), list):
        errors.append('Missing or invalid "classes" array')
    lessons = data.get("recurringLessons")
    if not isinstance(lessons, list):
        errors.append('Missing or invalid "recurringLessons" array')
        lessons = []

    for i, rl in enumerate(lessons):
        if not isinstance(rl, dict):
            errors.append(f"Lesson {i}: not an object")
            continue
        day = rl.get("dayOfWeek")
        if not isinstance(day, int) or not 1 <= day <= 7:
            errors.append(f"Lesson {i}: dayOfWeek must be 1-7")
        if not _HHMM.match(str(rl.get("startTime") or "")):
            errors.append(f"Lesson {i}: startTime must be HH:MM format")
        if not _HHMM.match(str(rl.get("endTime") or "")):
            errors.append(f"Lesson {i}: endTime must be HH:MM format")

    return errors


def load_timetable(data: Any) -> Timetable:
    """Build a Timetable from the exported JSON structure."""
    errors = validate_timetable_json(data)
    if errors:
        raise TimetableImportError(errors)

    teacher = data.get("teacher") or {}
    if not isinstance(teacher, dict):
        teacher = {"name": str(teacher)}

    anchor = None
    try:
        if data.get("twoWeekTimetable") and teacher.get("exportDate"):
            anchor = iso_calendar_day(teacher["exportDate"])
        elif data.get("twoWeekTimetable"):
            log.warning("two-week timetable without exportDate; rotation tags will be ignored")

        classes = [
            ClassInfo(
                id=str(c["id"]),
                name=c.get("name") or str(c["id"]),
                subject=c.get("subject") or "",
                class_size=c.get("classSize"),
                notes=c.get("notes") or "",
            )
            for c in data["classes"]
        ]
        lessons = [
            RecurringLesson(
                id=str(rl.get("id") or f"lesson-{i}"),
                class_id=str(rl.get("classId") or ""),
                weekday=rl["dayOfWeek"],
                start_time=rl["startTime"],
                end_time=rl["endTime"],
                rotation=rl.get("weekNumber"),
                subject=rl.get("subject") or "",
                room=rl.get("room") or "",
                period=str(rl.get("period") or ""),
            )
            for i, rl in enumerate(data["recurringLessons"])
        ]
        duties = [
            Duty(
                id=str(d.get("id") or f"duty-{i}"),
                label=d.get("label") or d.get("name") or "Duty",
                weekday=d["dayOfWeek"],
                start_time=d["startTime"],
                end_time=d["endTime"],
                rotation=d.get("weekNumber"),
            )
            for i, d in enumerate(data.get("duties") or [])
        ]
        timetable = Timetable(
            teacher_name=teacher.get("name") or "",
            classes=classes,
            recurring_lessons=lessons,
            duties=duties,
            start_hour=data.get("startHour"),
            end_hour=data.get("endHour"),
            rotation_anchor_date=anchor,
        )
    except FormatError as exc:
        raise TimetableImportError([f"Invalid teacher.exportDate: {exc}"]) from exc
    except (KeyError, TypeError) as exc:
        raise TimetableImportError([f"Missing or invalid field: {exc}"]) from exc
    except ValidationError as exc:
        raise TimetableImportError([str(err["msg"]) for err in exc.errors()]) from exc

    log.info(
        "imported timetable: %d classes, %d lessons, %d duties",
        len(classes), len(lessons), len(duties),
    )
    return timetable


def parse_timetable_bytes(data: bytes) -> Timetable:
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TimetableImportError(["Could not parse JSON file. Check the format and try again."]) from exc
    return load_timetable(raw)


DEMO_TIMETABLE = {
    "teacher": {"name": "Ms. Thompson", "exportDate": "2026-01-21"},
    "twoWeekTimetable": False,
    "classes": [
        {"id": "12G2", "name": "12G2", "subject": "Physics", "classSize": 24},
        {"id": "10X1", "name": "10X1", "subject": "Physics", "classSize": 30},
        {"id": "13A1", "name": "13A1", "subject": "Physics", "classSize": 18},
        {"id": "9B3", "name": "9B3", "subject": "Physics", "classSize": 32},
        {"id": "11T4", "name": "11T4", "subject": "Physics", "classSize": 28},
    ],
    "recurringLessons": [
        {"id": "mon-1-10X1", "dayOfWeek": 1, "startTime": "08:45", "endTime": "09:45", "classId": "10X1", "room": "C304 Lab", "period": "1"},
        {"id": "mon-3a-12G2", "dayOfWeek": 1, "startTime": "11:30", "endTime": "12:00", "classId": "12G2", "room": "C304 Classroom", "period": "3a"},
        {"id": "mon-4-9B3", "dayOfWeek": 1, "startTime": "13:30", "endTime": "14:30", "classId": "9B3", "room": "C201 Lab", "period": "4"},
        {"id": "tue-1-13A1", "dayOfWeek": 2, "startTime": "08:45", "endTime": "09:45", "classId": "13A1", "room": "C304 Classroom", "period": "1"},
        {"id": "tue-2-11T4", "dayOfWeek": 2, "startTime": "10:00", "endTime": "11:00", "classId": "11T4", "room": "C201 Lab", "period": "2"},
        {"id": "tue-4-12G2", "dayOfWeek": 2, "startTime": "13:30", "endTime": "14:30", "classId": "12G2", "room": "C304 Lab", "period": "4"},
        {"id": "wed-2-10X1", "dayOfWeek": 3, "startTime": "10:00", "endTime": "11:00", "classId": "10X1", "room": "C304 Lab", "period": "2"},
        {"id": "wed-3-9B3", "dayOfWeek": 3, "startTime": "11:30", "endTime": "12:30", "classId": "9B3", "room": "C201 Lab", "period": "3"},
        {"id": "wed-5-13A1", "dayOfWeek": 3, "startTime": "14:45", "endTime": "15:45", "classId": "13A1", "room": "C304 Classroom", "period": "5"},
        {"id": "thu-1-11T4", "dayOfWeek": 4, "startTime": "08:45", "endTime": "09:45", "classId": "11T4", "room": "C201 Lab", "period": "1"},
        {"id": "thu-3-12G2", "dayOfWeek": 4, "startTime": "11:30", "endTime": "12:30", "classId": "12G2", "room": "C304 Classroom", "period": "3"},
        {"id": "fri-2-10X1", "dayOfWeek": 5, "startTime": "10:00", "endTime": "11:00", "classId": "10X1", "room": "C304 Lab", "period": "2"},
        {"id": "fri-3-9B3", "dayOfWeek": 5, "startTime": "11:30", "endTime": "12:30", "classId": "9B3", "room": "C201 Lab", "period": "3"},
        {"id": "fri-4-13A1", "dayOfWeek": 5, "startTime": "13:30", "endTime": "14:30", "classId": "13A1", "room": "C304 Classroom", "period": "4"},
    ],
    "duties": [
        {"id": "tue-break", "name": "Break Duty", "dayOfWeek": 2, "startTime": "11:00", "endTime": "11:20"},
        {"id": "thu-detention", "name": "Detention", "dayOfWeek": 4, "startTime": "15:30", "endTime": "16:00"},
    ],
}
