"""Thin tmux client built on libtmux."""

import logging
from typing import List, Optional

import libtmux
from libtmux.exc import LibTmuxException

from gumploop.constants import TMUX_HISTORY_LINES

logger = logging.getLogger(__name__)


class TmuxError(RuntimeError):
    """Raised when a tmux command reports an error."""


class TmuxClient:
    """Wraps the tmux commands gumploop needs.

    Sessions are addressed by name only; each gumploop session has a single
    window and pane running the agent CLI.
    """

    def __init__(self) -> None:
        self._server: Optional[libtmux.Server] = None

    @property
    def server(self) -> libtmux.Server:
        if self._server is None:
            self._server = libtmux.Server()
        return self._server

    def _run(self, *args: str) -> List[str]:
        try:
            result = self.server.cmd(*args)
        except LibTmuxException as e:
            raise TmuxError(f"tmux {args[0]} failed: {e}") from e
        if result.stderr:
            raise TmuxError(f"tmux {args[0]} failed: {' '.join(result.stderr)}")
        return result.stdout

    def session_exists(self, session_name: str) -> bool:
        try:
            return self.server.has_session(session_name)
        except Exception as e:
            logger.debug(f"Could not query session {session_name}: {e}")
            return False

    def list_sessions(self) -> List[str]:
        try:
            return self._run("list-sessions", "-F", "#{session_name}")
        except TmuxError:
            # No server running means no sessions
            return []

    def create_detached_session(
        self, session_name: str, working_directory: str, command: List[str]
    ) -> None:
        """Create a detached session running ``command``."""
        self._run("new-session", "-d", "-s", session_name, "-c", working_directory, *command)

    def kill_session(self, session_name: str) -> None:
        """Kill a session; a session that is already gone is not an error."""
        try:
            self._run("kill-session", "-t", session_name)
        except TmuxError as e:
            logger.debug(f"kill-session {session_name}: {e}")

    def get_history(self, session_name: str, tail_lines: Optional[int] = None) -> str:
        """Capture the last ``tail_lines`` lines of the session's pane."""
        lines = tail_lines if tail_lines is not None else TMUX_HISTORY_LINES
        output = self._run("capture-pane", "-p", "-t", session_name, "-S", f"-{lines}")
        return "\n".join(output)

    def send_keys(self, session_name: str, *keys: str) -> None:
        """Send tmux key names (``Enter``, ``Escape``, ``C-u``...) to the pane."""
        self._run("send-keys", "-t", session_name, *keys)

    def load_buffer(self, buffer_name: str, path: str) -> None:
        self._run("load-buffer", "-b", buffer_name, path)

    def paste_buffer(self, session_name: str, buffer_name: str) -> None:
        # -p: bracketed paste so multi-line text is not submitted line by line
        self._run("paste-buffer", "-t", session_name, "-b", buffer_name, "-p")

    def delete_buffer(self, buffer_name: str) -> None:
        try:
            self._run("delete-buffer", "-b", buffer_name)
        except TmuxError:
            pass


tmux_client = TmuxClient()
