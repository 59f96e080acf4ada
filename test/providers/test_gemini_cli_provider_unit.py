"""Unit tests for Gemini CLI provider."""

import asyncio
import json
import os
from unittest.mock import call, patch

import pytest

from gumploop.providers import gemini_cli
from gumploop.providers.gemini_cli import MESSAGE_PREFIX, GeminiCliProvider

REQUEST_ID = "RQ-1700000000000-ef56"
ACK = "[ANS-1700000000000-ef56]"


@pytest.fixture
def sessions_dir(tmp_path, monkeypatch):
    root = tmp_path / "gemini-tmp"
    monkeypatch.setattr(gemini_cli, "GEMINI_SESSIONS_DIR", root)
    return root


@pytest.fixture
def provider(tmp_path, sessions_dir):
    provider = GeminiCliProvider(tmp_path, session_name="gumploop-test-gemini")
    provider.current_request_id = REQUEST_ID
    provider.message_start_time = 0.0
    return provider


def write_chat(sessions_dir, messages, project="5f0c9a", name="session-1.json"):
    chats = sessions_dir / project / "chats"
    chats.mkdir(parents=True, exist_ok=True)
    path = chats / name
    path.write_text(json.dumps({"sessionId": "abc", "messages": messages}))
    return path


class TestPrepareMessage:
    def test_prefix_and_shell_mode_neutralized(self, provider):
        prepared = provider.prepare_message("Run tests! Then report!")
        assert prepared == MESSAGE_PREFIX + "Run tests. Then report."
        assert "!" not in prepared

    @patch("gumploop.providers.gemini_cli.CLEAR_INPUT_DELAY", 0)
    @patch("gumploop.providers.gemini_cli.tmux_client")
    def test_input_cleared_before_paste(self, mock_tmux, provider):
        asyncio.run(provider.before_paste())
        assert mock_tmux.send_keys.call_args_list == [
            call("gumploop-test-gemini", "Escape"),
            call("gumploop-test-gemini", "C-u"),
        ]


class TestCheckCompletion:
    def test_gemini_message_with_marker(self, provider, sessions_dir):
        write_chat(
            sessions_dir,
            [
                {"type": "user", "content": f"[{REQUEST_ID}] review"},
                {"type": "gemini", "content": f"Review done. {ACK}"},
            ],
        )
        assert provider.check_completion() is True

    def test_content_as_list_of_parts(self, provider, sessions_dir):
        write_chat(
            sessions_dir,
            [{"type": "gemini", "content": [{"text": "Review done."}, {"text": ACK}]}],
        )
        assert provider.check_completion() is True

    def test_user_echo_does_not_complete(self, provider, sessions_dir):
        write_chat(sessions_dir, [{"type": "user", "content": f"End with {ACK} marker"}])
        assert provider.check_completion() is False

    def test_any_project_directory_is_scanned(self, provider, sessions_dir):
        write_chat(sessions_dir, [{"type": "gemini", "content": "other"}], project="aaa")
        write_chat(sessions_dir, [{"type": "gemini", "content": ACK}], project="bbb")
        assert provider.check_completion() is True

    def test_stale_chat_file_ignored(self, provider, sessions_dir):
        path = write_chat(sessions_dir, [{"type": "gemini", "content": ACK}])
        os.utime(path, (1000, 1000))
        provider.message_start_time = 2000.0
        assert provider.check_completion() is False

    def test_torn_write_is_retried_later(self, provider, sessions_dir):
        path = write_chat(sessions_dir, [])
        path.write_text('{"messages": [{"type": "gem')
        assert provider.check_completion() is False

    def test_missing_sessions_dir(self, provider):
        assert provider.check_completion() is False


def test_build_command_runs_yolo_mode(provider):
    command = provider.build_command()
    assert command[0] == "gemini"
    assert command[-1] == "-y"
