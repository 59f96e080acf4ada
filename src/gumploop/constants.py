"""Constants for the gumploop pipeline.

This module defines the configuration constants used throughout gumploop,
including directory paths, agent transcript locations, timeouts and security
settings.

gumploop drives several CLI agents (Claude Code, Gemini CLI, Codex) through
tmux sessions and sequences them through discovery, research, planning,
coding, testing and debugging phases.
"""

import os
from pathlib import Path


def _get_float_env(name: str, default: float) -> float:
    """Parse float env var with safe fallback."""
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _get_int_env(name: str, default: int) -> int:
    """Parse int env var with safe fallback."""
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


# =============================================================================
# Session Configuration
# =============================================================================
# All gumploop-managed tmux sessions are prefixed to distinguish them from user sessions
SESSION_PREFIX = "gumploop-"

# tmux session names are limited to this many characters after sanitization
SESSION_NAME_MAX_LENGTH = 50

# =============================================================================
# Application Directory Structure
# =============================================================================
# Sandbox used when no (valid) working directory is given
DEFAULT_BASE_DIR = Path(os.getenv("GUMPLOOP_BASE_DIR", "/tmp/collab-mcp"))
DEFAULT_PROJECT_DIR = DEFAULT_BASE_DIR / "project"

# Global fallback state for operations invoked without a working directory
GLOBAL_STATE_FILE = DEFAULT_BASE_DIR / ".state.json"

# Per-project pipeline directory holding artifacts, progress log and state
PIPELINE_DIR_NAME = ".gumploop"

# Log file directory
GUMPLOOP_HOME_DIR = Path.home() / ".gumploop"
LOG_DIR = GUMPLOOP_HOME_DIR / "logs"
LOG_LEVEL = os.getenv("GUMPLOOP_LOG_LEVEL", "INFO")

# =============================================================================
# Agent Transcript Locations
# =============================================================================
# Each CLI writes its own private transcripts; completion detection reads them
CLAUDE_PROJECTS_DIR = Path.home() / ".claude" / "projects"
CODEX_SESSIONS_DIR = Path.home() / ".codex" / "sessions"
GEMINI_SESSIONS_DIR = Path.home() / ".gemini" / "tmp"

# Model passed to Gemini CLI
GEMINI_MODEL = os.getenv("GUMPLOOP_GEMINI_MODEL", "gemini-3-flash-preview")

# =============================================================================
# Terminal Configuration
# =============================================================================
# Terminal emulator that hosts each tmux session ("none" runs tmux detached)
TERMINAL = os.getenv("PIPELINE_TERMINAL", "xterm")

# Maximum lines of terminal history to capture when analyzing output
TMUX_HISTORY_LINES = 200

# Lines captured for the liveness probe and for ready/idle checks
ACTIVITY_CAPTURE_LINES = 100
READY_CAPTURE_LINES = 50

# Tail of the pane inspected for the idle-prompt fallback
IDLE_CHECK_TAIL_LINES = 20

# =============================================================================
# Startup Configuration
# =============================================================================
# Wait for the tmux session container to exist before polling the pane
SESSION_START_GRACE_SECONDS = _get_float_env("GUMPLOOP_START_GRACE_SECONDS", 1.0)
READY_POLL_INTERVAL = _get_float_env("GUMPLOOP_READY_POLL_INTERVAL", 0.5)
READY_POLL_ATTEMPTS = _get_int_env("GUMPLOOP_READY_POLL_ATTEMPTS", 60)

# Delay between pasting a message and submitting it
PASTE_SUBMIT_DELAY = 0.3

# =============================================================================
# Adaptive Timeout Configuration
# =============================================================================
# Base deadline for any single wait (seconds)
TIMEOUT_BASE = _get_float_env("GUMPLOOP_TIMEOUT_BASE", 30 * 60)

# Deadline extension granted while the agent shows activity (seconds)
TIMEOUT_EXTENSION = _get_float_env("GUMPLOOP_TIMEOUT_EXTENSION", 15 * 60)

# Poll interval for completion, progress and liveness checks (seconds)
ACTIVITY_CHECK_INTERVAL = _get_float_env("GUMPLOOP_ACTIVITY_CHECK_INTERVAL", 2.0)

# Agent counts as active if its pane changed within this window (seconds)
ACTIVITY_THRESHOLD = _get_float_env("GUMPLOOP_ACTIVITY_THRESHOLD", 60.0)

# Re-check delay before accepting an idle-prompt completion (seconds)
STABILIZATION_DELAY = _get_float_env("GUMPLOOP_STABILIZATION_DELAY", 3.0)

# =============================================================================
# Phase Configuration
# =============================================================================
DEFAULT_PLAN_ITERATIONS = 5
DEFAULT_CODE_ITERATIONS = 5
DEFAULT_DEBUG_ITERATIONS = 3
DEFAULT_DISCOVERY_ITERATIONS = 3

# Plans shorter than this are treated as missing
MIN_ARTIFACT_LENGTH = 100

# Characters of test output echoed into the phase report
TEST_REPORT_EXCERPT_CHARS = 2000

# Pause after an agent finishes before its artifact is read back
ARTIFACT_SETTLE_SECONDS = _get_float_env("GUMPLOOP_ARTIFACT_SETTLE_SECONDS", 2.0)

# Approval markers written by reviewers
APPROVED_MARKER = "APPROVED"
CODE_APPROVED_MARKER = "CODE_APPROVED"
REVISION_MARKER = "NEEDS_REVISION"
TESTS_PASS_MARKER = "TESTS_PASS"
TESTS_FAIL_MARKER = "TESTS_FAIL"

# =============================================================================
# Security
# =============================================================================
# Directories that may never be used as a project working directory
FORBIDDEN_PATHS = [
    "/",
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/root",
    "/boot",
    "/sys",
    "/proc",
]

# =============================================================================
# Window Manager Placement
# =============================================================================
# Workspaces tried in order when looking for an empty i3 workspace
PREFERRED_WORKSPACES = list(range(6, 21)) + [5, 4, 3, 2, 1]
DEFAULT_WORKSPACE = 7

# =============================================================================
# Server Configuration
# =============================================================================
SERVER_NAME = "gumploop"
