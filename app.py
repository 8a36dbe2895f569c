from __future__ import annotations
import logging
import streamlit as st
import pandas as pd
from datetime import date

from calendar_export import week_to_ics
from dates import (
    DAY_NAMES_SHORT,
    format_duration,
    format_minutes,
    format_week_range,
    is_holiday_week,
    monday_of,
    rotation_week,
    shift_week,
    week_days,
)
from lesson_content import block_has_content, content_for, readiness, set_content
from models import AppState, LessonContent, Link
from pdf_export import week_to_pdf
from planner import (
    create_task,
    delete_task,
    free_periods_for_week,
    reorder_stack,
    schedule_tasks,
    set_completed,
    slot_key,
    tasks_in_slot,
    unschedule_task,
    unscheduled_tasks,
)
from profiles import create_profile, delete_profile, list_profiles, load_profile, save_profile
from timetable import WeekCache, class_recurring_schedule, merge_consecutive, upcoming_lessons
from timetable_import import DEMO_TIMETABLE, TimetableImportError, load_timetable, parse_timetable_bytes


logging.basicConfig(level=logging.INFO)

PRIORITY_BADGE = {"high": "🔴 high", "medium": "🟠 medium", "low": "🟢 low"}

st.set_page_config(page_title="Teacher Planner", page_icon="🗓️", layout="wide")


def _ensure_session_state() -> list[str]:
    profiles = list_profiles()
    if "profile_name" not in st.session_state or st.session_state.profile_name not in profiles:
        st.session_state.profile_name = profiles[0]
    if "state" not in st.session_state:
        st.session_state.state = load_profile(st.session_state.profile_name)
    if "week_of" not in st.session_state:
        st.session_state.week_of = date.today()
    if "week_cache" not in st.session_state:
        st.session_state.week_cache = WeekCache()
    return profiles


def _switch_profile(name: str) -> None:
    st.session_state.profile_name = name
    st.session_state.state = load_profile(name)


def _commit(state: AppState) -> None:
    st.session_state.state = state
    save_profile(st.session_state.profile_name, state)


def _queue_toast(message: str) -> None:
    st.session_state.toast_message = message


def _flush_toast() -> None:
    message = st.session_state.pop("toast_message", None)
    if message:
        st.toast(message)


def render_import(state: AppState) -> None:
    st.header("Import timetable")
    st.caption("Upload the exported timetable JSON. Re-importing replaces the current timetable.")

    uploaded = st.file_uploader("Timetable file", type=["json"], key="timetable_upload")
    if uploaded:
        try:
            timetable = parse_timetable_bytes(uploaded.read())
        except TimetableImportError as e:
            st.error(str(e))
        else:
            st.success(
                f"{len(timetable.classes)} classes, {len(timetable.recurring_lessons)} lessons, "
                f"{len(timetable.duties)} duties"
            )
            if st.button("Use this timetable", type="primary"):
                _commit(state.model_copy(update={"timetable": timetable}))
                _queue_toast("Timetable imported.")
                st.rerun()

    if st.button("Load demo timetable"):
        _commit(state.model_copy(update={"timetable": load_timetable(DEMO_TIMETABLE)}))
        _queue_toast("Demo timetable loaded.")
        st.rerun()

    if state.timetable is not None and st.button("Clear timetable"):

        @st.dialog("Clear timetable?")
        def _confirm_clear() -> None:
            st.write("Tasks and lesson notes are kept. You can re-import anytime.")
            if st.button("Clear", type="primary"):
                _commit(state.model_copy(update={"timetable": None}))
                _queue_toast("Timetable cleared.")
                st.rerun()

        _confirm_clear()


def _render_stack(state: AppState, period, key_prefix: str) -> None:
    stack = tasks_in_slot(state.tasks, period)
    for task in stack:
        cols = st.columns([6, 1, 1])
        label = f"~~{task.text}~~" if task.completed else task.text
        cols[0].markdown(f"{PRIORITY_BADGE[task.priority]} {label}")
        if cols[1].button("✓", key=f"{key_prefix}_done_{task.id}"):
            _commit(state.model_copy(update={"tasks": set_completed(state.tasks, task.id)}))
            st.rerun()
        if cols[2].button("✕", key=f"{key_prefix}_unsched_{task.id}"):
            _commit(state.model_copy(update={"tasks": unschedule_task(state.tasks, task.id)}))
            st.rerun()

    if len(stack) > 1:
        order = st.multiselect(
            "Stack order (top first)",
            options=[t.id for t in stack],
            default=[t.id for t in stack],
            format_func=lambda tid: next(t.text for t in stack if t.id == tid),
            key=f"{key_prefix}_order",
        )
        if len(order) == len(stack) and st.button("Save order", key=f"{key_prefix}_save_order"):
            _commit(state.model_copy(update={"tasks": reorder_stack(state.tasks, order)}))
            _queue_toast("Stack reordered.")
            st.rerun()

    pending = unscheduled_tasks(state.tasks)
    if pending:
        chosen = st.multiselect(
            "Add tasks",
            options=[t.id for t in pending],
            format_func=lambda tid: next(t.text for t in pending if t.id == tid),
            key=f"{key_prefix}_add",
        )
        if chosen and st.button("Schedule", key=f"{key_prefix}_schedule", type="primary"):
            _commit(state.model_copy(update={"tasks": schedule_tasks(state.tasks, chosen, period)}))
            _queue_toast(f"{len(chosen)} task(s) scheduled.")
            st.rerun()


def render_week(state: AppState) -> None:
    timetable = state.timetable
    monday = monday_of(st.session_state.week_of)

    nav_prev, nav_today, nav_next, _ = st.columns([1, 1, 1, 5])
    if nav_prev.button("◀ Prev"):
        st.session_state.week_of = shift_week(monday, -1)
        st.rerun()
    if nav_today.button("Today"):
        st.session_state.week_of = date.today()
        st.rerun()
    if nav_next.button("Next ▶"):
        st.session_state.week_of = shift_week(monday, 1)
        st.rerun()

    holidays = state.settings.holiday_weeks
    cache: WeekCache = st.session_state.week_cache
    resolved = cache.week(timetable, monday, holidays)
    free_by_day = free_periods_for_week(timetable, week_days(monday), state.settings, resolved)

    if is_holiday_week(monday, holidays):
        st.header(format_week_range(monday) + "  ·  Holiday")
        st.info("Marked as a holiday week in Settings. No lessons or duties.")
    else:
        week = rotation_week(monday, timetable.rotation_anchor_date, holidays)
        st.header(format_week_range(monday) + (f"  ·  Week {week}" if week else ""))

    for d in week_days(monday):
        duties = resolved.duties_on(d)
        blocks = merge_consecutive(resolved.lessons_on(d))
        periods = free_by_day[d.isoweekday()]
        ready = readiness(state.lesson_contents, blocks)

        title = f"{DAY_NAMES_SHORT[d.weekday()]} {d.day} {d.strftime('%b')}"
        if ready["total"]:
            title += f"  ·  {ready['planned']}/{ready['total']} planned"
        with st.expander(title, expanded=(d == date.today())):
            rows = []
            for block in blocks:
                rows.append({
                    "Start": format_minutes(block.start_minutes),
                    "End": format_minutes(block.end_minutes),
                    "Item": block.label,
                    "Room": ", ".join(sorted({o.room for o in block.occurrences if o.room})),
                    "Planned": "✅" if block_has_content(state.lesson_contents, block) else "",
                })
            for duty in duties:
                rows.append({
                    "Start": format_minutes(duty.start_minutes),
                    "End": format_minutes(duty.end_minutes),
                    "Item": duty.label,
                    "Room": "",
                    "Planned": "",
                })
            if rows:
                st.dataframe(
                    pd.DataFrame(rows).sort_values(by="Start"),
                    hide_index=True,
                    use_container_width=True,
                )
            else:
                st.info("No lessons or duties.")

            for period in periods:
                st.markdown(
                    f"**Free {format_minutes(period.start_minutes)} - {format_minutes(period.end_minutes)}** "
                    f"({format_duration(period.duration)})"
                )
                _render_stack(state, period, key_prefix=str(slot_key(period)))

    st.divider()
    st.subheader("Exports")
    ics_bytes = week_to_ics(timetable, monday, state.tasks, state.settings, cache=cache)
    st.download_button(
        "Download ICS",
        data=ics_bytes,
        file_name=f"timetable_{monday.isoformat()}.ics",
        mime="text/calendar",
    )
    pdf_bytes = week_to_pdf(timetable, monday, state.tasks, state.lesson_contents, state.settings, cache=cache)
    st.download_button(
        "Download PDF",
        data=pdf_bytes,
        file_name=f"timetable_{monday.isoformat()}.pdf",
        mime="application/pdf",
    )


def render_todo(state: AppState) -> None:
    st.header("To-Do")

    with st.form("add_task_form", clear_on_submit=True):
        col1, col2 = st.columns([4, 1])
        with col1:
            text = st.text_input("Task", placeholder="Mark 10X1 homework")
        with col2:
            options = ["high", "medium", "low"]
            priority = st.selectbox("Priority", options, index=options.index(state.settings.default_priority))
        if st.form_submit_button("Add task", type="primary"):
            try:
                tasks, _ = create_task(state.tasks, text, priority)
            except ValueError as e:
                st.warning(str(e))
            else:
                _commit(state.model_copy(update={"tasks": tasks}))
                st.toast("Task added.")

    state = st.session_state.state
    if not state.tasks:
        st.info("No tasks yet.")
        return

    rows = [
        {
            "id": t.id,
            "Done": t.completed,
            "Task": t.text,
            "Priority": t.priority,
            "Scheduled": (
                f"{t.scheduled_slot.date.strftime('%a %d %b')} {format_minutes(t.scheduled_slot.start_minutes)}"
                if t.scheduled_slot else ""
            ),
            "Delete": False,
        }
        for t in state.tasks
    ]
    edited = st.data_editor(
        pd.DataFrame(rows).set_index("id"),
        hide_index=True,
        use_container_width=True,
        column_config={
            "Done": st.column_config.CheckboxColumn("Done"),
            "Task": st.column_config.TextColumn("Task"),
            "Priority": st.column_config.TextColumn("Priority"),
            "Scheduled": st.column_config.TextColumn("Scheduled"),
            "Delete": st.column_config.CheckboxColumn("Delete"),
        },
        disabled=["Task", "Priority", "Scheduled"],
        key=f"todo_editor_{st.session_state.profile_name}",
    )

    if st.button("Save changes"):
        tasks = state.tasks
        for row in edited.reset_index().to_dict("records"):
            if row.get("Delete"):
                tasks = delete_task(tasks, row["id"])
            else:
                tasks = set_completed(tasks, row["id"], bool(row.get("Done")))
        _commit(state.model_copy(update={"tasks": tasks}))
        _queue_toast("Tasks updated.")
        st.rerun()


def render_lessons(state: AppState) -> None:
    st.header("Lessons")
    timetable = state.timetable
    if not timetable.classes:
        st.info("No classes in this timetable.")
        return

    class_ids = [c.id for c in timetable.classes]
    class_id = st.selectbox(
        "Class",
        class_ids,
        format_func=lambda cid: timetable.class_by_id(cid).name or cid,
    )
    schedule = class_recurring_schedule(timetable, class_id)
    if schedule:
        st.table([
            {
                "Week": rl.rotation,
                "Day": DAY_NAMES_SHORT[rl.weekday - 1],
                "Time": f"{rl.start_time}-{rl.end_time}",
                "Period": rl.period,
                "Room": rl.room,
            }
            for rl in schedule
        ])

    upcoming = upcoming_lessons(
        timetable, class_id, date.today(), weeks=6, holiday_weeks=state.settings.holiday_weeks
    )
    if upcoming:
        block = st.selectbox(
            "Upcoming lesson",
            upcoming,
            format_func=lambda b: (
                f"{b.date.strftime('%a %d %b')}  {format_minutes(b.start_minutes)}-{format_minutes(b.end_minutes)}"
                + ("  ✅" if block_has_content(state.lesson_contents, b) else "")
            ),
        )
        lesson_date = block.date
    else:
        st.info("No lessons for this class in the next six weeks.")
        lesson_date = st.date_input("Lesson date", value=date.today())
    existing = content_for(state.lesson_contents, class_id, lesson_date) or LessonContent()
    with st.form(f"lesson_form_{class_id}_{lesson_date.isoformat()}"):
        title = st.text_input("Title", value=existing.title)
        notes = st.text_area("Notes", value=existing.notes, height=120)
        links_text = st.text_area(
            "Links (one per line, optional 'label | url')",
            value="\n".join(f"{l.label} | {l.url}" if l.label else l.url for l in existing.links),
        )
        if st.form_submit_button("Save lesson", type="primary"):
            links = []
            for line in links_text.splitlines():
                if not line.strip():
                    continue
                label, sep, url = line.rpartition("|")
                links.append(Link(url=url.strip(), label=label.strip() if sep else url.strip()))
            content = LessonContent(title=title.strip(), notes=notes.strip(), links=links)
            contents = set_content(state.lesson_contents, class_id, lesson_date, content)
            _commit(state.model_copy(update={"lesson_contents": contents}))
            st.toast("Lesson saved.")


def render_settings(state: AppState) -> None:
    st.header("Settings")

    min_free = st.slider("Minimum free period (minutes)", 10, 120, state.settings.min_free_minutes, 5)
    start = st.text_input("Workday start (HH:MM, blank = from timetable)", value=state.settings.workday_start or "")
    end = st.text_input("Workday end (HH:MM, blank = from timetable)", value=state.settings.workday_end or "")
    options = ["high", "medium", "low"]
    default_priority = st.selectbox(
        "Default task priority", options, index=options.index(state.settings.default_priority)
    )
    this_monday = monday_of(date.today())
    week_options = sorted(set(state.settings.holiday_weeks) | {shift_week(this_monday, i) for i in range(52)})
    holiday_weeks = st.multiselect(
        "Holiday weeks (skipped by the A/B rotation)",
        options=week_options,
        default=state.settings.holiday_weeks,
        format_func=format_week_range,
    )

    if st.button("Save settings", type="primary"):
        try:
            settings = state.settings.model_validate({
                "min_free_minutes": min_free,
                "workday_start": start.strip() or None,
                "workday_end": end.strip() or None,
                "default_priority": default_priority,
                "holiday_weeks": holiday_weeks,
            })
        except ValueError as e:
            st.error(f"Invalid settings: {e}")
        else:
            _commit(state.model_copy(update={"settings": settings}))
            st.toast("Settings saved.")


profiles = _ensure_session_state()
state: AppState = st.session_state.state
current_profile = st.session_state.profile_name

st.title("Teacher Planner")
st.caption("Timetable, lesson notes and tasks in your free periods.")
_flush_toast()

with st.sidebar:
    st.header("Profile")
    profiles = list_profiles()
    selected_profile = st.selectbox(
        "Active profile",
        options=profiles,
        index=profiles.index(current_profile) if current_profile in profiles else 0,
    )
    if selected_profile != current_profile:
        _switch_profile(selected_profile)
        st.rerun()

    with st.form("create_profile_form"):
        new_profile_name = st.text_input("New profile name", placeholder="e.g. Spring term")
        if st.form_submit_button("Create profile"):
            try:
                new_state = create_profile(new_profile_name)
            except ValueError as e:
                st.error(str(e))
            else:
                _queue_toast(f"Profile '{new_profile_name.strip()}' created.")
                st.session_state.profile_name = new_profile_name.strip()
                st.session_state.state = new_state
                st.rerun()

    if st.button("Delete profile", disabled=len(profiles) <= 1):

        @st.dialog("Delete profile?")
        def _confirm_delete_profile() -> None:
            st.write(f"Delete profile '{current_profile}' and its data?")
            if st.button("Delete", type="primary"):
                delete_profile(current_profile)
                _switch_profile(list_profiles()[0])
                _queue_toast("Profile deleted.")
                st.rerun()

        _confirm_delete_profile()

    st.divider()
    st.header("Navigate")
    pages = ["Week", "To-Do", "Lessons", "Import", "Settings"]
    page = st.radio("Page", pages, key="nav_page")

if state.timetable is None and page in ("Week", "Lessons"):
    st.info("Import a timetable to get started.")
    render_import(state)
elif page == "Week":
    render_week(state)
elif page == "To-Do":
    render_todo(state)
elif page == "Lessons":
    render_lessons(state)
elif page == "Import":
    render_import(state)
elif page == "Settings":
    render_settings(state)
