"""Provider and persona enums."""

from enum import Enum


class ProviderType(str, Enum):
    """CLI agent binaries gumploop can drive."""

    CLAUDE_CODE = "claude_code"
    GEMINI_CLI = "gemini_cli"
    CODEX = "codex"


class AgentRole(str, Enum):
    """Fixed personas played by the agents."""

    IMPLEMENTER = "implementer"
    UX_REVIEWER = "ux_reviewer"
    TECH_REVIEWER = "tech_reviewer"


# Binary playing each persona
ROLE_PROVIDERS = {
    AgentRole.IMPLEMENTER: ProviderType.CLAUDE_CODE,
    AgentRole.UX_REVIEWER: ProviderType.GEMINI_CLI,
    AgentRole.TECH_REVIEWER: ProviderType.CODEX,
}
