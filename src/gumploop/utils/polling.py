"""Poll loop with an activity-aware deadline.

Every wait in gumploop (completion, progress events) is a sleep-then-check
cycle. :func:`poll_until` implements that cycle once; :class:`AdaptiveDeadline`
decides when to give up. The deadline starts at ``base`` seconds and is pushed
forward by ``extension`` seconds whenever it is close and the agent's pane
changed within ``activity_threshold`` seconds, so total waiting time is
unbounded while any single silent gap is bounded.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from gumploop.constants import (
    ACTIVITY_CHECK_INTERVAL,
    ACTIVITY_THRESHOLD,
    TIMEOUT_BASE,
    TIMEOUT_EXTENSION,
)

logger = logging.getLogger(__name__)


class CompletionTimeoutError(TimeoutError):
    """Raised when no completion signal arrives before the adaptive deadline."""


class AdaptiveDeadline:
    def __init__(
        self,
        base: float = TIMEOUT_BASE,
        extension: float = TIMEOUT_EXTENSION,
        activity_threshold: float = ACTIVITY_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.extension = extension
        self.activity_threshold = activity_threshold
        self._clock = clock
        now = clock()
        self.deadline = now + base
        self.last_activity = now
        self.extensions = 0
        self._last_snapshot: Optional[str] = None

    def expired(self) -> bool:
        return self._clock() >= self.deadline

    def observe(self, snapshot: str) -> bool:
        """Record a pane snapshot; return True if the deadline was extended."""
        now = self._clock()
        if snapshot != self._last_snapshot:
            self._last_snapshot = snapshot
            self.last_activity = now

        time_to_deadline = self.deadline - now
        since_activity = now - self.last_activity
        if time_to_deadline < self.extension and since_activity < self.activity_threshold:
            self.deadline = now + self.extension
            self.extensions += 1
            return True
        return False


async def poll_until(
    probe: Callable[[], Awaitable[bool]],
    deadline: AdaptiveDeadline,
    activity_probe: Optional[Callable[[], str]] = None,
    interval: float = ACTIVITY_CHECK_INTERVAL,
    label: str = "agent",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Sleep ``interval``, run ``probe``, feed liveness, repeat until done.

    Raises:
        CompletionTimeoutError: if the deadline expires before ``probe``
            returns True.
    """
    while not deadline.expired():
        await sleep(interval)

        if await probe():
            return

        if activity_probe is None:
            continue
        try:
            snapshot = activity_probe()
        except Exception as e:
            # The pane may be briefly unavailable; treat as no activity
            logger.debug(f"[{label}] liveness probe failed: {e}")
            continue
        if deadline.observe(snapshot):
            logger.info(
                f"[{label}] Still active, extending timeout by "
                f"{int(deadline.extension // 60)} minutes"
            )

    raise CompletionTimeoutError(f"Timeout waiting for {label}")
