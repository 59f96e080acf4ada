"""Claude Code provider implementation."""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, List, Optional

from gumploop.clients.tmux import TmuxError, tmux_client
from gumploop.constants import (
    CLAUDE_PROJECTS_DIR,
    IDLE_CHECK_TAIL_LINES,
    READY_CAPTURE_LINES,
    STABILIZATION_DELAY,
    TMUX_HISTORY_LINES,
)
from gumploop.models.provider import ProviderType
from gumploop.models.terminal import TerminalStatus
from gumploop.providers.base import BaseProvider

logger = logging.getLogger(__name__)


# Regex patterns for Claude Code output analysis
ANSI_CODE_PATTERN = r"\x1b\[[\d;?]*[a-zA-Z]"
RESPONSE_PATTERN = r"⏺(?:\x1b\[[0-9;]*m)*\s+"  # Handle any ANSI codes between marker and text
# Match Claude Code processing spinners:
# - Old format: "✽ Cooking… (esc to interrupt)" / "✶ Thinking… (esc to interrupt)"
# - New format: "✽ Cooking… (6s · ↓ 174 tokens · thinking)"
PROCESSING_PATTERN = r"[✶✢✽✻·✳].*….*\(.*\)"
# Other busy markers: pending tool call, running tool
BUSY_MARKERS = ("⏳", "esc to interrupt")
# Prompt at start of line; may include placeholder text (e.g. ❯ Try "how do I…")
IDLE_PROMPT_PATTERN = r"^[>❯]\s"
WAITING_USER_ANSWER_PATTERN = r"❯.*\d+\."  # Selection options with arrow cursor
TRUST_PROMPT_PATTERN = r"Yes, I trust this folder"  # Workspace trust dialog
# Footer printed after a finished turn
WORKED_FOR_PATTERN = r"Worked for \d"
# Long pastes are echoed collapsed, hiding the request token
PASTED_TEXT_PATTERN = r"\[Pasted text #\d+(?: \+\d+ lines)?\]"


class ClaudeCodeProvider(BaseProvider):
    """Provider for Claude Code CLI tool integration.

    Completion is detected from Claude's own project transcript
    (``~/.claude/projects/<mangled workdir>/*.jsonl``). When the transcript is
    not found, the pane itself is used: the screen must show an answer to the
    request (see ``pane_shows_completion``), the tail must show an idle prompt
    with no spinner, and it must still look idle after a short stabilization
    delay.
    """

    provider_type = ProviderType.CLAUDE_CODE
    agent_name = "claude"
    ready_indicators = ("❯",)

    # Screen tail captured right before the current request was pasted
    _screen_before_send: Optional[str] = None

    def build_command(self) -> List[str]:
        # --dangerously-skip-permissions: no trust dialog or tool prompts,
        # the agent runs unattended. env -u CLAUDECODE bypasses the
        # nested-session guard when gumploop itself runs inside Claude Code.
        return ["env", "-u", "CLAUDECODE", "claude", "--dangerously-skip-permissions"]

    async def after_ready(self) -> None:
        """Auto-accept the workspace trust prompt if it appears.

        The "❯" ready indicator also renders inside the trust dialog, so the
        dialog is checked once the CLI looks ready.
        """
        output = self.capture_pane(READY_CAPTURE_LINES)
        if re.search(TRUST_PROMPT_PATTERN, re.sub(ANSI_CODE_PATTERN, "", output)):
            logger.info("Workspace trust prompt detected, auto-accepting")
            tmux_client.send_keys(self.session_name, "Enter")

    # ------------------------------------------------------------------
    # Transcript detection
    # ------------------------------------------------------------------

    def transcript_dirs(self) -> List[Path]:
        """Candidate transcript directories for the working directory.

        Claude mangles the absolute path by replacing every non-alphanumeric
        character with "-"; older versions dropped the leading dash.
        """
        mangled = re.sub(r"[^A-Za-z0-9]", "-", str(self.working_directory))
        candidates = [mangled, mangled.lstrip("-")]
        return [CLAUDE_PROJECTS_DIR / name for name in dict.fromkeys(candidates)]

    def _recent_transcripts(self) -> List[Path]:
        """Transcripts modified since the request, newest first."""
        found = []
        for directory in self.transcript_dirs():
            if not directory.is_dir():
                continue
            for path in directory.glob("*.jsonl"):
                try:
                    mtime = path.stat().st_mtime
                except OSError:
                    continue
                if mtime >= self.message_start_time:
                    found.append((mtime, path))
        return [path for _, path in sorted(found, reverse=True)]

    @staticmethod
    def _assistant_text(event: Any) -> str:
        if not isinstance(event, dict) or event.get("type") != "assistant":
            return ""
        message = event.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        if isinstance(content, str):
            return content
        if not isinstance(content, list):
            return ""
        return "\n".join(
            block.get("text") or ""
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )

    def check_completion(self) -> bool:
        marker = self.ack_marker
        for path in self._recent_transcripts():
            try:
                lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
            except OSError as e:
                logger.debug(f"Could not read transcript {path}: {e}")
                continue
            # Newest entries are at the end
            for line in reversed(lines):
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if marker in self._assistant_text(event):
                    return True
        return False

    # ------------------------------------------------------------------
    # Pane fallback
    # ------------------------------------------------------------------

    @staticmethod
    def analyze_output(output: str) -> TerminalStatus:
        """Infer the status from captured output.

        Idle/completed detection looks at the last prompt line only, so old
        prompts in scrollback do not cause false idle while tools run.
        """
        if not output:
            return TerminalStatus.ERROR

        # Strip ANSI/CSI sequences so trailing cursor codes don't create ghost lines
        output = re.sub(ANSI_CODE_PATTERN, "", output)

        lines = output.split("\n")
        tail_output = "\n".join(lines[-15:]) if len(lines) > 15 else output

        if re.search(PROCESSING_PATTERN, tail_output) or any(
            marker in tail_output for marker in BUSY_MARKERS
        ):
            return TerminalStatus.PROCESSING

        if re.search(WAITING_USER_ANSWER_PATTERN, tail_output) and not re.search(
            TRUST_PROMPT_PATTERN, tail_output
        ):
            return TerminalStatus.WAITING_USER_ANSWER

        # ⏺ after the last ❯ means the prompt is stale and Claude is still answering
        last_prompt_match = None
        for m in re.finditer(IDLE_PROMPT_PATTERN, tail_output, re.MULTILINE):
            last_prompt_match = m

        has_idle_prompt = False
        if last_prompt_match:
            text_after_prompt = tail_output[last_prompt_match.end() :]
            if not re.search(RESPONSE_PATTERN, text_after_prompt):
                has_idle_prompt = True

        if has_idle_prompt and (
            re.search(RESPONSE_PATTERN, output) or re.search(WORKED_FOR_PATTERN, tail_output)
        ):
            return TerminalStatus.COMPLETED
        if has_idle_prompt:
            return TerminalStatus.IDLE
        return TerminalStatus.PROCESSING

    def get_status(self, tail_lines: Optional[int] = None) -> TerminalStatus:
        return self.analyze_output(self.capture_pane(tail_lines or IDLE_CHECK_TAIL_LINES))

    @staticmethod
    def screen_tail(pane: str) -> str:
        """Last screen lines without ANSI codes or trailing blank lines."""
        lines = re.sub(ANSI_CODE_PATTERN, "", pane).splitlines()
        while lines and not lines[-1].strip():
            lines.pop()
        return "\n".join(lines[-IDLE_CHECK_TAIL_LINES:])

    async def before_paste(self) -> None:
        try:
            self._screen_before_send = self.screen_tail(self.capture_pane(TMUX_HISTORY_LINES))
        except (TmuxError, OSError) as e:
            logger.debug(f"[{self.agent_name}] Could not snapshot pane before send: {e}")
            self._screen_before_send = None

    def pane_shows_completion(self, pane: str) -> bool:
        """True if the pane shows an answer to the current request and an idle prompt.

        When the echoed request token is on screen a response marker must
        follow it. A long paste is echoed collapsed and a long answer scrolls
        the token out of the capture; then the screen must have changed since
        the request was pasted and must still show an answer, after the last
        collapsed paste if one is visible.
        """
        if not self.current_request_id:
            return False
        tail = self.screen_tail(pane)
        anchor = pane.rfind(self.current_request_id)
        if anchor < 0:
            if tail == self._screen_before_send:
                return False
            pasted = list(re.finditer(PASTED_TEXT_PATTERN, pane))
            if pasted:
                anchor = pasted[-1].end()
        if anchor >= 0:
            answered = re.search(RESPONSE_PATTERN, pane[anchor:])
        else:
            answered = re.search(RESPONSE_PATTERN, pane) or re.search(WORKED_FOR_PATTERN, tail)
        if not answered:
            return False
        return self.analyze_output(tail) in (TerminalStatus.IDLE, TerminalStatus.COMPLETED)

    async def completion_probe(self) -> bool:
        if self.check_completion():
            return True

        try:
            if not self.pane_shows_completion(self.capture_pane(TMUX_HISTORY_LINES)):
                return False
            await asyncio.sleep(STABILIZATION_DELAY)
            status = self.get_status()
        except (TmuxError, OSError) as e:
            logger.debug(f"[{self.agent_name}] Pane check failed, retrying: {e}")
            return False

        if status not in (TerminalStatus.IDLE, TerminalStatus.COMPLETED):
            return False
        logger.info(f"[{self.agent_name}] Completion detected from idle pane")
        return True
