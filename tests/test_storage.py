from __future__ import annotations

from datetime import date

import pytest

from lesson_content import set_content
from models import AppState, LessonContent, Slot
from planner import create_task, schedule_task, slot_key, tasks_in_slot
from profiles import create_profile, delete_profile, list_profiles, load_profile, save_profile
from storage import data_path, load_json, save_json
from timetable_import import DEMO_TIMETABLE, load_timetable


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TEACHER_PLANNER_DATA_DIR", str(tmp_path))
    return tmp_path


def test_save_and_load_json(data_dir):
    path = data_path("thing.json")
    assert path.parent == data_dir
    save_json(path, {"a": [1, 2]})
    assert load_json(path) == {"a": [1, 2]}
    assert not path.with_suffix(".json.tmp").exists()


def test_missing_file_returns_default(data_dir):
    assert load_json(data_dir / "missing.json", {"profiles": []}) == {"profiles": []}
    assert load_json(data_dir / "missing.json") == {}


def test_corrupt_file_is_backed_up_and_reset(data_dir):
    path = data_dir / "state.json"
    path.write_text("{oops", encoding="utf-8")
    assert load_json(path, {"x": 1}) == {"x": 1}
    assert path.with_suffix(".json.bak").read_text(encoding="utf-8") == "{oops"
    assert load_json(path) == {"x": 1}


def test_profile_round_trip_keeps_schedule_and_content():
    state = AppState(timetable=load_timetable(DEMO_TIMETABLE))
    tasks, task = create_task([], "Print worksheets")
    slot = Slot(date=date(2024, 3, 4), start_minutes=600, end_minutes=660)
    tasks = schedule_task(tasks, task.id, slot)
    contents = set_content({}, "10X1", date(2024, 3, 4), LessonContent(title="Forces"))
    state = state.model_copy(update={"tasks": tasks, "lesson_contents": contents})

    save_profile("default", state)
    loaded = load_profile("default")

    assert loaded.timetable == state.timetable
    assert [t.id for t in tasks_in_slot(loaded.tasks, slot)] == [task.id]
    assert slot_key(loaded.tasks[0].scheduled_slot) == slot_key(slot)
    assert loaded.lesson_contents["10X1::2024-03-04"].title == "Forces"


def test_invalid_profile_state_starts_fresh(data_dir):
    save_json(data_dir / "state__broken.json", {"tasks": [{"id": 1}]})
    state = load_profile("broken")
    assert state.tasks == []
    assert state.profile == "broken"


def test_create_and_delete_profiles():
    assert list_profiles() == ["default"]
    create_profile("Spring term")
    assert "Spring term" in list_profiles()
    with pytest.raises(ValueError):
        create_profile("spring term")
    with pytest.raises(ValueError):
        create_profile("   ")

    delete_profile("Spring term")
    assert "Spring term" not in list_profiles()


def test_underscored_profile_name_is_listed_once(data_dir):
    create_profile("a_b")
    assert list_profiles() == ["default", "a_b"]

    (data_dir / "profiles.json").unlink()
    assert list_profiles() == ["a_b"]
    assert load_profile("a_b").profile == "a_b"
