from __future__ import annotations
from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, computed_field, field_validator
from datetime import date, datetime
from typing import Annotated, Dict, List, Literal, Optional

from dates import iso_calendar_day, minutes_to_time, monday_of, time_to_minutes


def _normalize_time(value: str) -> str:
    return minutes_to_time(time_to_minutes(value))


def _normalize_rotation(value):
    if value is None:
        return "every"
    if isinstance(value, int) and not isinstance(value, bool):
        return {1: "A", 2: "B"}.get(value, value)
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in ("", "every", "every week", "both", "all"):
            return "every"
        if text in ("1", "2"):
            return "A" if text == "1" else "B"
        return text.upper()
    return value


Priority = Literal["low", "medium", "high"]
TimeOfDay = Annotated[str, AfterValidator(_normalize_time)]
RotationTag = Annotated[Literal["A", "B", "every"], BeforeValidator(_normalize_rotation)]
CalendarDay = Annotated[date, BeforeValidator(iso_calendar_day)]
OptionalDay = Optional[date]

ROTATION_WEEKS = {"A": 1, "B": 2}


class ClassInfo(BaseModel):
    id: str
    name: str = ""
    subject: str = ""
    class_size: Optional[int] = None
    notes: str = ""


class RecurringLesson(BaseModel):
    id: str
    class_id: str
    weekday: int = Field(ge=1, le=7)  # 1=Mon ... 7=Sun
    start_time: TimeOfDay
    end_time: TimeOfDay
    rotation: RotationTag = "every"
    subject: str = ""
    room: str = ""
    period: str = ""


class Duty(BaseModel):
    id: str
    label: str = "Duty"
    weekday: int = Field(ge=1, le=7)
    start_time: TimeOfDay
    end_time: TimeOfDay
    rotation: RotationTag = "every"


class Timetable(BaseModel):
    teacher_name: str = ""
    classes: List[ClassInfo] = Field(default_factory=list)
    recurring_lessons: List[RecurringLesson] = Field(default_factory=list)
    duties: List[Duty] = Field(default_factory=list)
    start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    end_hour: Optional[int] = Field(default=None, ge=1, le=24)
    rotation_anchor_date: OptionalDay = None

    def class_by_id(self, class_id: str) -> Optional[ClassInfo]:
        for c in self.classes:
            if c.id == class_id:
                return c
        return None


class Occurrence(BaseModel):
    kind: Literal["lesson", "duty"] = "lesson"
    source_id: str
    class_id: Optional[str] = None
    label: str = ""
    date: date
    weekday: int
    start_time: TimeOfDay
    end_time: TimeOfDay
    room: str = ""
    period: str = ""

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)


class LessonBlock(BaseModel):
    class_id: Optional[str] = None
    label: str = ""
    date: date
    weekday: int
    start_time: TimeOfDay
    end_time: TimeOfDay
    occurrences: List[Occurrence] = Field(default_factory=list)

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)


class FreePeriod(BaseModel):
    date: OptionalDay = None
    start_minutes: int
    end_minutes: int

    @computed_field
    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes


class Slot(BaseModel):
    # Accepts date, datetime or ISO strings; dumps as YYYY-MM-DD
    date: CalendarDay
    start_minutes: int = Field(ge=0)
    end_minutes: Optional[int] = None

    @property
    def duration(self) -> Optional[int]:
        if self.end_minutes is None:
            return None
        return self.end_minutes - self.start_minutes


class Task(BaseModel):
    id: str
    text: str
    priority: Priority = "medium"
    completed: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    scheduled_slot: Optional[Slot] = None
    stack_order: Optional[int] = None


class Link(BaseModel):
    url: str
    label: str = ""


class LessonContent(BaseModel):
    title: str = ""
    notes: str = ""
    links: List[Link] = Field(default_factory=list)


class Settings(BaseModel):
    min_free_minutes: int = Field(default=30, ge=1, le=240)
    workday_start: Optional[str] = None
    workday_end: Optional[str] = None
    default_priority: Priority = "medium"
    holiday_weeks: List[CalendarDay] = Field(default_factory=list)

    @field_validator("workday_start", "workday_end")
    @classmethod
    def _workday_time(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return _normalize_time(value)

    @field_validator("holiday_weeks")
    @classmethod
    def _holiday_mondays(cls, value: List[date]) -> List[date]:
        # stored as the sorted, distinct Mondays of each marked week
        return sorted({monday_of(d) for d in value})


class AppState(BaseModel):
    timetable: Optional[Timetable] = None
    tasks: List[Task] = Field(default_factory=list)
    lesson_contents: Dict[str, LessonContent] = Field(default_factory=dict)
    settings: Settings = Field(default_factory=Settings)
    profile: str = "default"
