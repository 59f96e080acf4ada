"""Progress event log.

External agents append one JSON object per line to ``progress.jsonl`` after
finishing a named sub-task. The orchestrator only reads the file. Lines may be
torn by concurrent partial writes, so anything that does not parse into a
:class:`ProgressEvent` is skipped without affecting its neighbours.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from gumploop.models.progress import ProgressEvent

logger = logging.getLogger(__name__)


def parse_progress_line(line: str) -> Optional[ProgressEvent]:
    """Parse one line; return None if it is not a valid progress event."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return ProgressEvent.model_validate(data)
    except ValidationError:
        return None


def read_progress_events(progress_file: Path) -> List[ProgressEvent]:
    """Read every well-formed event from the log; a missing log is empty."""
    try:
        content = Path(progress_file).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Could not read progress log {progress_file}: {e}")
        return []

    events = []
    for line in content.splitlines():
        if not line.strip():
            continue
        event = parse_progress_line(line)
        if event is None:
            logger.debug(f"Skipping malformed progress line: {line[:80]!r}")
            continue
        events.append(event)
    return events


def has_progress_event(progress_file: Path, agent: str, action: str, iteration: int) -> bool:
    return any(
        event.matches(agent, action, iteration) for event in read_progress_events(progress_file)
    )


def clear_progress_log(progress_file: Path) -> None:
    """Purge events of a previous run before a phase starts."""
    Path(progress_file).unlink(missing_ok=True)
