"""Housekeeping for gumploop-managed tmux sessions."""

import logging
from typing import Iterable, List

from gumploop.clients.tmux import tmux_client
from gumploop.constants import SESSION_PREFIX

logger = logging.getLogger(__name__)


def list_pipeline_sessions() -> List[str]:
    """Names of all live tmux sessions created by gumploop."""
    return [name for name in tmux_client.list_sessions() if name.startswith(SESSION_PREFIX)]


def kill_sessions(session_names: Iterable[str]) -> List[str]:
    """Kill the given sessions, logging but not raising on failure.

    Returns the names that were attempted.
    """
    killed = []
    for name in session_names:
        try:
            tmux_client.kill_session(name)
            killed.append(name)
        except Exception as e:
            logger.warning(f"Failed to kill session {name}: {e}")
    return killed


def kill_all_pipeline_sessions(known_sessions: Iterable[str] = ()) -> List[str]:
    """Kill sessions recorded in state plus any lingering gumploop session."""
    names = list(dict.fromkeys([*known_sessions, *list_pipeline_sessions()]))
    killed = kill_sessions(names)
    if killed:
        logger.info(f"Stopped sessions: {', '.join(killed)}")
    return killed
