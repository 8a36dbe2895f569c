from __future__ import annotations
from datetime import date
from io import BytesIO
from typing import List, Mapping
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from dates import (
    format_duration,
    format_minutes,
    format_week_range,
    is_holiday_week,
    monday_of,
    rotation_week,
    week_days,
)
from lesson_content import content_for
from models import LessonContent, Settings, Task, Timetable
from planner import free_periods_for_day, tasks_in_slot
from timetable import WeekCache, merge_consecutive


def week_to_pdf(
    timetable: Timetable,
    week_of: date,
    tasks: List[Task],
    contents: Mapping[str, LessonContent],
    settings: Settings | None = None,
    cache: WeekCache | None = None,
) -> bytes:
    settings = settings or Settings()
    cache = cache if cache is not None else WeekCache()
    resolved = cache.week(timetable, week_of, settings.holiday_weeks)
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=40,
        rightMargin=40,
        topMargin=40,
        bottomMargin=40,
    )
    styles = getSampleStyleSheet()
    elems = []

    monday = monday_of(week_of)
    elems.append(Paragraph(f"Timetable: {format_week_range(monday)}", styles["Title"]))
    week = rotation_week(monday, timetable.rotation_anchor_date, settings.holiday_weeks)
    if is_holiday_week(monday, settings.holiday_weeks):
        elems.append(Paragraph("Holiday week", styles["Normal"]))
    elif week is not None:
        elems.append(Paragraph(f"Week {week}", styles["Normal"]))
    if timetable.teacher_name:
        elems.append(Paragraph(timetable.teacher_name, styles["Normal"]))
    elems.append(Spacer(1, 12))

    for d in week_days(monday):
        rows = []
        for block in merge_consecutive(resolved.lessons_on(d)):
            titles = []
            for occ in block.occurrences:
                content = content_for(contents, occ.class_id, occ.date) if occ.class_id else None
                if content and content.title and content.title not in titles:
                    titles.append(content.title)
            rows.append((block.start_minutes, [
                f"{format_minutes(block.start_minutes)}-{format_minutes(block.end_minutes)}",
                "Lesson",
                block.label,
                "; ".join(titles),
            ]))
        for duty in resolved.duties_on(d):
            rows.append((duty.start_minutes, [
                f"{format_minutes(duty.start_minutes)}-{format_minutes(duty.end_minutes)}",
                "Duty",
                duty.label,
                "",
            ]))
        for period in free_periods_for_day(timetable, d, settings, resolved):
            stack = [t.text for t in tasks_in_slot(tasks, period) if not t.completed]
            rows.append((period.start_minutes, [
                f"{format_minutes(period.start_minutes)}-{format_minutes(period.end_minutes)}",
                f"Free ({format_duration(period.duration)})",
                "",
                ", ".join(stack),
            ]))

        elems.append(Paragraph(d.strftime("%A, %Y-%m-%d"), styles["Heading3"]))
        if not rows:
            elems.append(Paragraph("No lessons or duties.", styles["Normal"]))
            elems.append(Spacer(1, 8))
            continue

        rows.sort(key=lambda r: r[0])
        table_data = [["Time", "Type", "Class / Duty", "Notes / Tasks"]] + [r[1] for r in rows]
        table = Table(table_data, hAlign="LEFT", colWidths=[80, 80, 110, 230])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        elems.append(table)
        elems.append(Spacer(1, 8))

    doc.build(elems)
    return buf.getvalue()
