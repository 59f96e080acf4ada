"""i3 window-manager placement for agent windows."""

import json
import logging
import shutil
import subprocess
from typing import Optional

from pydantic import ValidationError

from gumploop.constants import DEFAULT_WORKSPACE, PREFERRED_WORKSPACES
from gumploop.models.i3 import I3Node, occupied_workspaces

logger = logging.getLogger(__name__)

# Returned when the tree is readable but every preferred workspace is taken
ALL_OCCUPIED_WORKSPACE = 10


def i3_available() -> bool:
    return shutil.which("i3-msg") is not None


def _i3_msg(*args: str) -> str:
    result = subprocess.run(
        ["i3-msg", *args], capture_output=True, text=True, timeout=10, check=True
    )
    return result.stdout


def pick_empty_workspace(tree: I3Node) -> int:
    """Pick the first preferred workspace without windows."""
    occupied = occupied_workspaces(tree)
    for num in PREFERRED_WORKSPACES:
        if num not in occupied:
            return num
    return ALL_OCCUPIED_WORKSPACE


def find_empty_workspace() -> Optional[int]:
    """Find an empty workspace, or None when i3 is not running."""
    if not i3_available():
        return None
    try:
        tree = I3Node.model_validate(json.loads(_i3_msg("-t", "get_tree")))
    except (subprocess.SubprocessError, OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Could not read i3 tree, using workspace {DEFAULT_WORKSPACE}: {e}")
        return DEFAULT_WORKSPACE
    return pick_empty_workspace(tree)


def focus_workspace(workspace: Optional[int]) -> None:
    """Switch to ``workspace`` so the next window opens there."""
    if workspace is None or not i3_available():
        return
    try:
        _i3_msg("workspace", str(workspace))
    except (subprocess.SubprocessError, OSError) as e:
        logger.warning(f"Could not switch to workspace {workspace}: {e}")
