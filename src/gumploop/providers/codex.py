"""Codex CLI provider implementation."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from gumploop.constants import CODEX_SESSIONS_DIR
from gumploop.models.provider import ProviderType
from gumploop.providers.base import BaseProvider

logger = logging.getLogger(__name__)

# Codex rollout events that carry the assistant's reply text
EVENT_TYPE = "event_msg"
AGENT_MESSAGE_TYPE = "agent_message"


def _parse_timestamp(value: Any) -> Optional[float]:
    """Parse an ISO-8601 event timestamp into epoch seconds."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class CodexProvider(BaseProvider):
    """Provider for Codex CLI tool integration.

    Codex writes one rollout file per session under
    ``~/.codex/sessions/YYYY/MM/DD/``. Only an ``agent_message`` event written
    after the request and carrying the acknowledgment token counts as
    completion.
    """

    provider_type = ProviderType.CODEX
    agent_name = "codex"
    ready_indicators = ("context left", "›")

    def build_command(self) -> List[str]:
        return ["codex", "--dangerously-bypass-approvals-and-sandbox"]

    def session_day_dirs(self) -> List[Path]:
        """Day directories for the request-start day and today (local time)."""
        days = [datetime.fromtimestamp(self.message_start_time), datetime.now()]
        dirs = [
            CODEX_SESSIONS_DIR / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}"
            for day in days
        ]
        return list(dict.fromkeys(dirs))

    def find_latest_session(self) -> Optional[Path]:
        """Newest rollout file modified since the request was sent."""
        latest = None
        latest_mtime = 0.0
        for day_dir in self.session_day_dirs():
            if not day_dir.is_dir():
                continue
            for path in day_dir.glob("*.jsonl"):
                try:
                    mtime = path.stat().st_mtime
                except OSError:
                    continue
                if mtime >= self.message_start_time and mtime > latest_mtime:
                    latest, latest_mtime = path, mtime
        return latest

    def _is_acknowledgment(self, event: Any, marker: str) -> bool:
        if not isinstance(event, dict) or event.get("type") != EVENT_TYPE:
            return False
        payload = event.get("payload")
        if not isinstance(payload, dict) or payload.get("type") != AGENT_MESSAGE_TYPE:
            return False
        return marker in str(payload.get("message") or "")

    def check_completion(self) -> bool:
        session_file = self.find_latest_session()
        if session_file is None:
            return False

        marker = self.ack_marker
        try:
            lines = session_file.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.debug(f"Could not read Codex session {session_file}: {e}")
            return False

        for line in reversed(lines):
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            timestamp = _parse_timestamp(event.get("timestamp"))
            if timestamp is not None and timestamp < self.message_start_time:
                continue
            if self._is_acknowledgment(event, marker):
                return True
        return False
