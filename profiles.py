from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import List

from pydantic import BaseModel, ValidationError

from models import AppState
from storage import data_path, load_json, save_json

log = logging.getLogger(__name__)

INDEX_FILE = "profiles.json"
STATE_PREFIX = "state__"
DEFAULT_PROFILE = "default"


class ProfileIndex(BaseModel):
    profiles: List[str] = []

    def add(self, name: str) -> bool:
        if name in self.profiles:
            return False
        self.profiles.append(name)
        return True


def _file_stem(name: str) -> str:
    stem = re.sub(r"[^A-Za-z0-9_-]+", "_", name.strip()).strip("_")
    return (stem or DEFAULT_PROFILE)[:80]


def _state_file(name: str) -> Path:
    return data_path(f"{STATE_PREFIX}{_file_stem(name)}.json")


def _read_index() -> ProfileIndex:
    raw = load_json(data_path(INDEX_FILE), {"profiles": []})
    names = raw.get("profiles", []) if isinstance(raw, dict) else []
    return ProfileIndex(profiles=[n for n in names if isinstance(n, str) and n])


def _write_index(index: ProfileIndex) -> None:
    save_json(data_path(INDEX_FILE), index.model_dump())


def _register(name: str) -> None:
    index = _read_index()
    if index.add(name):
        _write_index(index)


def _stored_name(path: Path) -> str:
    raw = load_json(path)
    name = raw.get("profile") if isinstance(raw, dict) else None
    if isinstance(name, str) and name.strip():
        return name
    return path.stem[len(STATE_PREFIX):].replace("_", " ").strip() or DEFAULT_PROFILE


def list_profiles() -> List[str]:
    """
    Profile names from the index plus any state files found on disk
    that the index lost track of. Never empty.
    """
    index = _read_index()
    known = {_file_stem(name) for name in index.profiles}
    for path in sorted(data_path("").glob(f"{STATE_PREFIX}*.json")):
        if path.stem[len(STATE_PREFIX):] in known:
            continue
        index.add(_stored_name(path))

    if not index.profiles:
        index.add(DEFAULT_PROFILE)
        _write_index(index)
    return index.profiles


def load_profile(name: str) -> AppState:
    fresh = AppState(profile=name)
    raw = load_json(_state_file(name), fresh.model_dump(mode="json"))
    try:
        state = AppState.model_validate(raw).model_copy(update={"profile": name})
    except ValidationError as exc:
        log.warning("profile %r failed validation (%d errors); starting fresh", name, exc.error_count())
        state = fresh
        save_profile(name, state)
    _register(name)
    return state


def save_profile(name: str, state: AppState) -> None:
    payload = state.model_copy(update={"profile": name}).model_dump(mode="json")
    save_json(_state_file(name), payload)
    _register(name)


def create_profile(name: str) -> AppState:
    name = name.strip()
    if not name:
        raise ValueError("Profile name cannot be empty.")
    if any(p.lower() == name.lower() for p in list_profiles()):
        raise ValueError("Profile already exists.")
    if _state_file(name).exists():
        raise ValueError("A profile with that name already exists on disk.")

    state = AppState(profile=name)
    save_profile(name, state)
    log.info("created profile %r", name)
    return state


def delete_profile(name: str) -> None:
    _state_file(name).unlink(missing_ok=True)
    remaining = [p for p in list_profiles() if p != name]
    if not remaining:
        remaining = [DEFAULT_PROFILE]
        save_profile(DEFAULT_PROFILE, AppState(profile=DEFAULT_PROFILE))
    _write_index(ProfileIndex(profiles=remaining))
    log.info("deleted profile %r", name)
