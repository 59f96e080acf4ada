"""Gemini CLI provider implementation."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterator, List

from gumploop.clients.tmux import tmux_client
from gumploop.constants import GEMINI_MODEL, GEMINI_SESSIONS_DIR
from gumploop.models.provider import ProviderType
from gumploop.providers.base import BaseProvider

logger = logging.getLogger(__name__)

# Gemini CLI treats "!" as a shell-mode toggle
SHELL_MODE_CHAR = "!"
MESSAGE_PREFIX = "Please read and follow these instructions:\n"
GEMINI_MESSAGE_TYPE = "gemini"
CLEAR_INPUT_DELAY = 0.1


class GeminiCliProvider(BaseProvider):
    """Provider for Gemini CLI tool integration.

    Gemini stores chats under ``~/.gemini/tmp/<project hash>/chats/*.json``.
    The hash is not derived here; every project directory is scanned and only
    files touched since the request are parsed.
    """

    provider_type = ProviderType.GEMINI_CLI
    agent_name = "gemini"
    ready_indicators = ("Type your message", "YOLO mode")

    def build_command(self) -> List[str]:
        # -y: YOLO mode, auto-approve all tool calls
        return ["gemini", "-m", GEMINI_MODEL, "-y"]

    def prepare_message(self, message: str) -> str:
        return MESSAGE_PREFIX + message.replace(SHELL_MODE_CHAR, ".")

    async def before_paste(self) -> None:
        # Leave any half-typed input or open menu before pasting
        tmux_client.send_keys(self.session_name, "Escape")
        await asyncio.sleep(CLEAR_INPUT_DELAY)
        tmux_client.send_keys(self.session_name, "C-u")
        await asyncio.sleep(CLEAR_INPUT_DELAY)

    def _recent_chat_files(self) -> Iterator[Path]:
        if not GEMINI_SESSIONS_DIR.is_dir():
            return
        for chats_dir in GEMINI_SESSIONS_DIR.glob("*/chats"):
            for path in chats_dir.glob("*.json"):
                try:
                    if path.stat().st_mtime >= self.message_start_time:
                        yield path
                except OSError:
                    continue

    @staticmethod
    def _message_text(content: Any) -> str:
        """Content is a string or a list of ``{"text": ...}`` parts."""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "\n".join(
                str(part.get("text") or "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return ""

    def check_completion(self) -> bool:
        marker = self.ack_marker
        for path in self._recent_chat_files():
            try:
                data = json.loads(path.read_text(encoding="utf-8", errors="replace"))
            except (OSError, ValueError) as e:
                # Chat files are rewritten in place; a torn read is retried next cycle
                logger.debug(f"Could not read Gemini chat {path}: {e}")
                continue
            if not isinstance(data, dict):
                continue
            messages = data.get("messages")
            if not isinstance(messages, list):
                continue
            for message in reversed(messages):
                if not isinstance(message, dict) or message.get("type") != GEMINI_MESSAGE_TYPE:
                    continue
                if marker in self._message_text(message.get("content")):
                    return True
        return False
