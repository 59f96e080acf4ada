"""Session naming, correlation tokens and readiness polling."""

import asyncio
import hashlib
import logging
import re
import secrets
import string
import threading
import time
from typing import Callable, Iterable

from gumploop.constants import (
    READY_POLL_ATTEMPTS,
    READY_POLL_INTERVAL,
    SESSION_NAME_MAX_LENGTH,
    SESSION_PREFIX,
)

logger = logging.getLogger(__name__)

REQUEST_PREFIX = "RQ-"
ACK_PREFIX = "ANS-"

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits
_token_lock = threading.Lock()
_last_token_ms = 0


def generate_request_id() -> str:
    """Generate a request token ``RQ-<ms>-<suffix>``.

    The millisecond part is strictly increasing within the process, so two
    tokens never share it even when generated in the same millisecond.
    """
    global _last_token_ms
    with _token_lock:
        now_ms = time.time_ns() // 1_000_000
        _last_token_ms = max(now_ms, _last_token_ms + 1)
        stamp = _last_token_ms
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(4))
    return f"{REQUEST_PREFIX}{stamp}-{suffix}"


def ack_token_for(request_id: str) -> str:
    """Derive the acknowledgment token the agent must echo."""
    if not request_id.startswith(REQUEST_PREFIX):
        raise ValueError(f"Not a request token: {request_id}")
    return ACK_PREFIX + request_id[len(REQUEST_PREFIX) :]


def sanitize_session_name(name: str) -> str:
    """Keep only characters that are safe in a tmux target."""
    return re.sub(r"[^A-Za-z0-9_-]", "_", name)[:SESSION_NAME_MAX_LENGTH]


def work_dir_hash(work_dir: str) -> str:
    """Short stable hash so sessions of different projects do not collide."""
    return hashlib.sha1(work_dir.encode("utf-8")).hexdigest()[:6]


def generate_session_name(work_dir: str, agent_name: str) -> str:
    return sanitize_session_name(f"{SESSION_PREFIX}{work_dir_hash(work_dir)}-{agent_name}")


async def wait_for_ready(
    capture: Callable[[], str],
    indicators: Iterable[str],
    attempts: int = READY_POLL_ATTEMPTS,
    interval: float = READY_POLL_INTERVAL,
) -> bool:
    """Poll ``capture`` until any indicator shows up.

    Capture failures are expected while the session is still being created
    and are retried. Returns False if no indicator appeared.
    """
    indicators = list(indicators)
    for _ in range(attempts):
        await asyncio.sleep(interval)
        try:
            output = capture()
        except Exception as e:
            logger.debug(f"Pane not ready yet: {e}")
            continue
        if any(indicator in output for indicator in indicators):
            return True
    return False
