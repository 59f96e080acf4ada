"""Provider factory."""

import logging
from pathlib import Path
from typing import Dict, Optional, Type

from gumploop.models.provider import ROLE_PROVIDERS, AgentRole, ProviderType
from gumploop.providers.base import BaseProvider, ProviderError
from gumploop.providers.claude_code import ClaudeCodeProvider
from gumploop.providers.codex import CodexProvider
from gumploop.providers.gemini_cli import GeminiCliProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[ProviderType, Type[BaseProvider]] = {
    ProviderType.CLAUDE_CODE: ClaudeCodeProvider,
    ProviderType.GEMINI_CLI: GeminiCliProvider,
    ProviderType.CODEX: CodexProvider,
}


def create_provider(
    provider_type: ProviderType,
    working_directory: Path,
    session_name: Optional[str] = None,
    target_workspace: Optional[int] = None,
    terminal: Optional[str] = None,
) -> BaseProvider:
    """Create a provider instance for ``provider_type``.

    Raises:
        ProviderError: if the provider type is unknown.
    """
    try:
        provider_cls = PROVIDERS[ProviderType(provider_type)]
    except (KeyError, ValueError):
        raise ProviderError(f"Unknown provider type: {provider_type}")

    provider = provider_cls(
        working_directory,
        session_name=session_name,
        target_workspace=target_workspace,
        terminal=terminal,
    )
    logger.debug(f"Created {provider!r} for {working_directory}")
    return provider


def create_provider_for_role(
    role: AgentRole,
    working_directory: Path,
    session_name: Optional[str] = None,
    target_workspace: Optional[int] = None,
    terminal: Optional[str] = None,
) -> BaseProvider:
    """Create the provider that plays ``role``."""
    return create_provider(
        ROLE_PROVIDERS[role],
        working_directory,
        session_name=session_name,
        target_workspace=target_workspace,
        terminal=terminal,
    )


def agent_name_for_role(role: AgentRole) -> str:
    """Name of the agent that plays ``role``; used in artifact file names."""
    return PROVIDERS[ROLE_PROVIDERS[role]].agent_name
