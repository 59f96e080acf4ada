"""Unit tests for provider creation."""

import pytest

from gumploop.models.provider import AgentRole, ProviderType
from gumploop.providers.base import ProviderError
from gumploop.providers.claude_code import ClaudeCodeProvider
from gumploop.providers.codex import CodexProvider
from gumploop.providers.gemini_cli import GeminiCliProvider
from gumploop.providers.manager import create_provider, create_provider_for_role


@pytest.mark.parametrize(
    "role,cls,agent_name",
    [
        (AgentRole.IMPLEMENTER, ClaudeCodeProvider, "claude"),
        (AgentRole.UX_REVIEWER, GeminiCliProvider, "gemini"),
        (AgentRole.TECH_REVIEWER, CodexProvider, "codex"),
    ],
)
def test_role_maps_to_binary(tmp_path, role, cls, agent_name):
    provider = create_provider_for_role(role, tmp_path, target_workspace=6)
    assert isinstance(provider, cls)
    assert provider.agent_name == agent_name
    assert provider.target_workspace == 6
    assert provider.working_directory == tmp_path


def test_provider_type_accepts_string_value(tmp_path):
    provider = create_provider("codex", tmp_path, session_name="s-codex")
    assert isinstance(provider, CodexProvider)
    assert provider.session_name == "s-codex"


def test_unknown_provider_type(tmp_path):
    with pytest.raises(ProviderError, match="Unknown provider type"):
        create_provider("kiro_cli", tmp_path)


def test_sessions_for_same_project_differ_by_agent(tmp_path):
    names = {
        create_provider(provider_type, tmp_path).session_name for provider_type in ProviderType
    }
    assert len(names) == 3
