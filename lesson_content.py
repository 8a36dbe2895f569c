from __future__ import annotations
from datetime import date, datetime
from typing import Dict, Iterable, Mapping, Optional, Tuple

from dates import FormatError, iso_calendar_day
from models import LessonBlock, LessonContent, Occurrence

SEPARATOR = "::"


def content_key(class_id: str, day: date | datetime | str) -> str:
    return f"{class_id}{SEPARATOR}{iso_calendar_day(day).isoformat()}"


def parse_content_key(key: str) -> Tuple[str, date]:
    class_id, sep, day = key.rpartition(SEPARATOR)
    if not sep or not class_id:
        raise FormatError(f"Expected 'classId::YYYY-MM-DD', got: {key!r}")
    return class_id, iso_calendar_day(day)


def content_for(
    contents: Mapping[str, LessonContent],
    class_id: str,
    day: date | datetime | str,
) -> Optional[LessonContent]:
    return contents.get(content_key(class_id, day))


def has_content(content: Optional[LessonContent]) -> bool:
    if content is None:
        return False
    return bool(content.title or content.notes or content.links)


def occurrence_has_content(contents: Mapping[str, LessonContent], occurrence: Occurrence) -> bool:
    if occurrence.class_id is None:
        return False
    return has_content(content_for(contents, occurrence.class_id, occurrence.date))


def block_has_content(contents: Mapping[str, LessonContent], block: LessonBlock) -> bool:
    return any(occurrence_has_content(contents, occ) for occ in block.occurrences)


def set_content(
    contents: Mapping[str, LessonContent],
    class_id: str,
    day: date | datetime | str,
    content: LessonContent,
) -> Dict[str, LessonContent]:
    updated = dict(contents)
    updated[content_key(class_id, day)] = content
    return updated


def readiness(contents: Mapping[str, LessonContent], blocks: Iterable[LessonBlock]) -> dict:
    """How many of a day's lesson blocks already have content."""
    lesson_blocks = [b for b in blocks if b.class_id is not None]
    planned = sum(1 for b in lesson_blocks if block_has_content(contents, b))
    return {
        "total": len(lesson_blocks),
        "planned": planned,
        "all_planned": planned == len(lesson_blocks),
    }
