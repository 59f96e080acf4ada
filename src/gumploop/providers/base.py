"""Base provider: one CLI agent running in its own tmux session.

A provider is the message-oriented endpoint for one interactive agent
process. Subclasses supply the launch command, the ready indicators and the
completion probe; everything else (launch, secure delivery, adaptive waits,
teardown) is shared.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from gumploop.clients.i3 import focus_workspace
from gumploop.clients.terminal import kill_process, launch_session
from gumploop.clients.tmux import tmux_client
from gumploop.constants import (
    ACTIVITY_CAPTURE_LINES,
    PASTE_SUBMIT_DELAY,
    READY_CAPTURE_LINES,
    SESSION_START_GRACE_SECONDS,
    TMUX_HISTORY_LINES,
)
from gumploop.models.provider import ProviderType
from gumploop.services.progress_service import has_progress_event
from gumploop.utils.polling import AdaptiveDeadline, poll_until
from gumploop.utils.terminal import (
    ack_token_for,
    generate_request_id,
    generate_session_name,
    wait_for_ready,
)

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Exception raised for provider-specific errors."""


class BaseProvider(ABC):
    """Common lifecycle for every CLI agent."""

    provider_type: ProviderType
    # Name the agent uses in progress events and artifact file names
    agent_name: str
    # Substrings that show the CLI is ready for input
    ready_indicators: Tuple[str, ...] = ()

    def __init__(
        self,
        working_directory: Path,
        session_name: Optional[str] = None,
        target_workspace: Optional[int] = None,
        terminal: Optional[str] = None,
    ):
        self.working_directory = Path(working_directory)
        self.session_name = session_name or generate_session_name(
            str(self.working_directory), self.agent_name
        )
        self.target_workspace = target_workspace
        self.terminal = terminal
        self.current_request_id: Optional[str] = None
        # Wall-clock time of the last send; compared against transcript mtimes
        self.message_start_time: float = 0.0
        self._terminal_process: Optional[subprocess.Popen] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(session={self.session_name!r})"

    @abstractmethod
    def build_command(self) -> List[str]:
        """Command line that starts the CLI in unattended mode."""

    @abstractmethod
    def check_completion(self) -> bool:
        """Return True if the agent's transcript acknowledges the current request."""

    @property
    def ack_marker(self) -> str:
        if not self.current_request_id:
            raise ProviderError(f"[{self.agent_name}] No request outstanding")
        return f"[{ack_token_for(self.current_request_id)}]"

    def capture_pane(self, lines: int = TMUX_HISTORY_LINES) -> str:
        return tmux_client.get_history(self.session_name, tail_lines=lines)

    def _activity_snapshot(self) -> str:
        return self.capture_pane(ACTIVITY_CAPTURE_LINES)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the CLI and wait (optimistically) until it looks ready."""
        tmux_client.kill_session(self.session_name)
        focus_workspace(self.target_workspace)

        self._terminal_process = launch_session(
            self.session_name,
            str(self.working_directory),
            self.build_command(),
            terminal=self.terminal,
        )

        # The emulator creates the tmux session asynchronously
        await asyncio.sleep(SESSION_START_GRACE_SECONDS)

        ready = await wait_for_ready(
            lambda: self.capture_pane(READY_CAPTURE_LINES), self.ready_indicators
        )
        if ready:
            await self.after_ready()
            logger.info(f"[{self.agent_name}] Session {self.session_name} ready")
        else:
            logger.warning(f"[{self.agent_name}] Prompt not detected, proceeding anyway")

    async def after_ready(self) -> None:
        """Hook for dismissing startup dialogs."""

    async def stop(self) -> None:
        """Kill the terminal and the tmux session. Safe to call repeatedly."""
        # kill_process waits for the emulator to exit; keep that off the event loop
        await asyncio.to_thread(kill_process, self._terminal_process)
        self._terminal_process = None
        try:
            tmux_client.kill_session(self.session_name)
        except Exception as e:
            logger.warning(f"[{self.agent_name}] Failed to kill session {self.session_name}: {e}")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    @staticmethod
    def wrap_message(message: str, request_id: str) -> str:
        ack = ack_token_for(request_id)
        return f"[{request_id}]\n{message}\n\n[IMPORTANT: End your response with [{ack}] marker]"

    def prepare_message(self, message: str) -> str:
        """Hook for neutralizing text the CLI would treat as a command."""
        return message

    async def before_paste(self) -> None:
        """Hook run right before the message is pasted."""

    def _paste(self, payload: str) -> None:
        # Private directory + O_EXCL: no predictable path, no shell quoting
        tmp_dir = tempfile.mkdtemp(prefix="gumploop-msg-")
        try:
            msg_path = os.path.join(tmp_dir, "msg.txt")
            fd = os.open(msg_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)

            buffer_name = f"msg-{self.session_name}"
            tmux_client.delete_buffer(buffer_name)
            tmux_client.load_buffer(buffer_name, msg_path)
            tmux_client.paste_buffer(self.session_name, buffer_name)
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    async def send_message(self, message: str) -> str:
        """Deliver ``message`` tagged with a fresh request token and return the token."""
        request_id = generate_request_id()
        self.current_request_id = request_id
        self.message_start_time = time.time()

        payload = self.prepare_message(self.wrap_message(message, request_id))
        await self.before_paste()
        self._paste(payload)

        await asyncio.sleep(PASTE_SUBMIT_DELAY)
        tmux_client.send_keys(self.session_name, "Enter")
        logger.info(f"[{self.agent_name}] Sent {request_id}")
        return request_id

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    async def completion_probe(self) -> bool:
        return self.check_completion()

    async def wait_for_completion(self, deadline: Optional[AdaptiveDeadline] = None) -> None:
        """Block until the current request is acknowledged.

        Raises:
            ProviderError: if no message was sent.
            CompletionTimeoutError: if the adaptive deadline expires.
        """
        if not self.current_request_id:
            raise ProviderError(f"[{self.agent_name}] Cannot wait for completion without request ID")

        await poll_until(
            self.completion_probe,
            deadline or AdaptiveDeadline(),
            activity_probe=self._activity_snapshot,
            label=f"{self.agent_name} completion",
        )
        logger.info(f"[{self.agent_name}] Completed {self.current_request_id}")

    async def wait_for_progress_event(
        self,
        agent: str,
        action: str,
        iteration: int,
        progress_file: Path,
        deadline: Optional[AdaptiveDeadline] = None,
    ) -> None:
        """Block until ``progress_file`` holds the (agent, action, iteration) event."""

        async def probe() -> bool:
            return has_progress_event(progress_file, agent, action, iteration)

        await poll_until(
            probe,
            deadline or AdaptiveDeadline(),
            activity_probe=self._activity_snapshot,
            label=f"{agent}/{action} in progress.jsonl",
        )
        logger.info(f"[{agent}] Progress event {action} (iteration {iteration})")
