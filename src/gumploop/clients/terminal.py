"""Launch tmux sessions inside a terminal emulator window."""

import logging
import subprocess
from typing import List, Optional

from gumploop.clients.tmux import tmux_client
from gumploop.constants import TERMINAL

logger = logging.getLogger(__name__)

# PIPELINE_TERMINAL value that skips the emulator and runs tmux detached
HEADLESS_TERMINAL = "none"


def launch_session(
    session_name: str,
    working_directory: str,
    command: List[str],
    terminal: Optional[str] = None,
) -> Optional[subprocess.Popen]:
    """Start a tmux session running ``command`` and return the emulator process.

    The session is created asynchronously by the emulator, so callers must
    wait for it to appear. In headless mode the session is created directly
    and no process handle is returned.
    """
    terminal = terminal or TERMINAL

    if terminal == HEADLESS_TERMINAL:
        tmux_client.create_detached_session(session_name, working_directory, command)
        return None

    # tmux -c changes directory without going through a shell
    argv = [
        terminal,
        "-e",
        "tmux",
        "new-session",
        "-s",
        session_name,
        "-c",
        working_directory,
        *command,
    ]
    logger.info(f"Launching {terminal} for session {session_name}")
    return subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def kill_process(process: Optional[subprocess.Popen]) -> None:
    """Force-kill the emulator process; a process that already exited is fine."""
    if process is None:
        return
    try:
        process.kill()
        process.wait(timeout=5)
    except (ProcessLookupError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Terminal process {process.pid} already gone: {e}")
