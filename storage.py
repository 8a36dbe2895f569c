from __future__ import annotations
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

APP_NAME = "TeacherPlanner"
DATA_DIR_ENV = "TEACHER_PLANNER_DATA_DIR"


def get_data_dir() -> Path:
    """
    Directory for local app data: $TEACHER_PLANNER_DATA_DIR when set,
    otherwise the platform's per-user data location.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        base = Path(override).expanduser()
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / APP_NAME
    elif sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming") / APP_NAME
    else:
        xdg = os.environ.get("XDG_DATA_HOME")
        base = (Path(xdg) if xdg else Path.home() / ".local" / "share") / "teacher-planner"

    base.mkdir(parents=True, exist_ok=True)
    return base


def data_path(filename: str | Path) -> Path:
    """
    Resolve a file path inside the app data directory.
    """
    return get_data_dir() / Path(filename)


def _backup_file(path: Path, content: str) -> None:
    backup = path.with_suffix(path.suffix + ".bak")
    try:
        backup.write_text(content, encoding="utf-8")
    except OSError:
        # If backup fails we still continue with a reset
        log.exception("could not write backup %s", backup)


def load_json(path: Path | str, default: Any = None) -> Any:
    """
    Load JSON from path with safety:
    - If missing: return default
    - If empty or invalid: write .bak and reset to default
    """
    path = Path(path)
    fallback = {} if default is None else default

    if not path.exists():
        return fallback

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError:
        log.exception("could not read %s", path)
        return fallback

    text = raw_text.strip()
    if not text:
        log.warning("%s is empty; resetting", path)
        _backup_file(path, raw_text)
        save_json(path, fallback)
        return fallback

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        log.warning("%s is not valid JSON; backed up and reset", path)
        _backup_file(path, raw_text)
        save_json(path, fallback)
        return fallback


def save_json(path: Path | str, payload: Any) -> None:
    """
    Atomic JSON write: write to temp file then replace target.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_suffix(path.suffix + ".tmp")
    temp.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    temp.replace(path)
