"""Pipeline state store.

State lives in ``<project>/.gumploop/.state.json`` and is mirrored to a global
fallback file so that operations invoked without a working directory (code,
test, debug) observe the latest project. Unreadable or structurally invalid
files are treated as absent, never raised to the caller. There is no
concurrency control: one pipeline run per project at a time.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from gumploop.constants import DEFAULT_PROJECT_DIR, GLOBAL_STATE_FILE
from gumploop.models.state import PipelineState
from gumploop.utils.workdir import PipelineFiles

logger = logging.getLogger(__name__)


def default_state(work_dir: Optional[Path] = None) -> PipelineState:
    return PipelineState(
        current_phase=None,
        task="",
        work_dir=str(work_dir or DEFAULT_PROJECT_DIR),
        iteration=0,
        discovery_complete=False,
        selected_feature=None,
        research_complete=False,
        planning_complete=False,
        coding_complete=False,
        testing_complete=False,
        debugging_complete=False,
        active_sessions=[],
        last_update=datetime.now(timezone.utc).isoformat(),
    )


def is_valid_state(data: Any) -> bool:
    """Return True if ``data`` has every required field with the right type."""
    if not isinstance(data, dict):
        return False
    try:
        PipelineState.model_validate(data)
    except ValidationError:
        return False
    return True


def get_state_file(work_dir: Optional[Path] = None) -> Path:
    if work_dir:
        return PipelineFiles.for_project(Path(work_dir)).state_file
    return GLOBAL_STATE_FILE


def _read_state_file(path: Path) -> Optional[PipelineState]:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return None
    if not is_valid_state(data):
        logger.warning(f"Ignoring invalid state file {path}")
        return None
    return PipelineState.model_validate(data)


def load_state(work_dir: Optional[Path] = None) -> PipelineState:
    """Load state: project file, then global fallback, then defaults."""
    if work_dir:
        state = _read_state_file(get_state_file(work_dir))
        if state is not None:
            if not state.work_dir:
                state.work_dir = str(work_dir)
            return state

    state = _read_state_file(GLOBAL_STATE_FILE)
    if state is not None:
        if not state.work_dir:
            state.work_dir = str(DEFAULT_PROJECT_DIR)
        return state

    return default_state(work_dir)


def _next_timestamp(previous: str) -> str:
    """Current UTC time, nudged past ``previous`` so updates strictly increase."""
    now = datetime.now(timezone.utc)
    try:
        prev = datetime.fromisoformat(previous)
    except ValueError:
        return now.isoformat()
    if prev.tzinfo is not None and now <= prev:
        now = prev + timedelta(microseconds=1)
    return now.isoformat()


def save_state(state: PipelineState) -> None:
    """Stamp ``last_update`` and write the project and global state files."""
    state.last_update = _next_timestamp(state.last_update)
    payload = state.to_json()

    project_dir = Path(state.work_dir or DEFAULT_PROJECT_DIR)
    state_file = get_state_file(project_dir)
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(payload, encoding="utf-8")

    GLOBAL_STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
    GLOBAL_STATE_FILE.write_text(payload, encoding="utf-8")


def delete_global_state() -> None:
    GLOBAL_STATE_FILE.unlink(missing_ok=True)
