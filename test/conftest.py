"""Shared fixtures: isolated pipeline paths and scripted fake agents."""

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from gumploop.models.provider import AgentRole
from gumploop.services.progress_service import has_progress_event
from gumploop.utils.polling import CompletionTimeoutError

ROLE_AGENT_NAMES = {
    AgentRole.IMPLEMENTER: "claude",
    AgentRole.UX_REVIEWER: "gemini",
    AgentRole.TECH_REVIEWER: "codex",
}

PROGRESS_INSTRUCTION = "append this exact line to"


@pytest.fixture
def isolated_paths(tmp_path, monkeypatch):
    """Point the sandbox project and the global state file into tmp_path."""
    base = tmp_path / "base"
    project = base / "project"
    monkeypatch.setattr("gumploop.services.state_service.GLOBAL_STATE_FILE", base / ".state.json")
    monkeypatch.setattr("gumploop.services.state_service.DEFAULT_PROJECT_DIR", project)
    monkeypatch.setattr("gumploop.utils.workdir.DEFAULT_PROJECT_DIR", project)
    monkeypatch.setattr("gumploop.phases.base.find_empty_workspace", lambda: None)
    monkeypatch.setattr("gumploop.phases.coding.ARTIFACT_SETTLE_SECONDS", 0)
    monkeypatch.setattr("gumploop.phases.testing.ARTIFACT_SETTLE_SECONDS", 0)
    return base


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


class FakeAgent:
    """Stands in for a CLI agent session.

    ``respond(agent, message)`` plays the agent's part (writing artifacts).
    Like a well-behaved agent, the fake appends the progress line a prompt
    asks for.
    """

    def __init__(self, role: AgentRole, working_directory: Path, respond: Callable, log: "AgentLog"):
        self.role = role
        self.agent_name = ROLE_AGENT_NAMES[role]
        self.working_directory = Path(working_directory)
        self.session_name = f"gumploop-test-{self.agent_name}-{len(log.agents)}"
        self.respond = respond
        self.log = log
        self.messages: List[str] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def send_message(self, message: str) -> str:
        self.messages.append(message)
        self.log.messages.append((self.agent_name, message))
        self.respond(self, message)
        lines = message.splitlines()
        for index, line in enumerate(lines):
            if PROGRESS_INSTRUCTION in line:
                progress_file = Path(line.split(PROGRESS_INSTRUCTION, 1)[1].strip().rstrip(":"))
                with progress_file.open("a", encoding="utf-8") as f:
                    f.write(lines[index + 1] + "\n")
        return f"RQ-{len(self.messages)}"

    async def wait_for_completion(self, deadline=None) -> None:
        return None

    async def wait_for_progress_event(self, agent, action, iteration, progress_file, deadline=None):
        if not has_progress_event(progress_file, agent, action, iteration):
            raise CompletionTimeoutError(f"Timeout waiting for {agent}/{action}")


class AgentLog:
    def __init__(self) -> None:
        self.agents: List[FakeAgent] = []
        self.messages: List[tuple] = []

    def by_name(self, name: str) -> List[FakeAgent]:
        return [agent for agent in self.agents if agent.agent_name == name]


@pytest.fixture
def fake_agents():
    """Return (factory, log); pass ``responders`` keyed by agent name."""

    def make(responders: Optional[Dict[str, Callable]] = None):
        responders = responders or {}
        log = AgentLog()

        def factory(role, working_directory, target_workspace=None):
            name = ROLE_AGENT_NAMES[role]
            agent = FakeAgent(role, working_directory, responders.get(name, lambda a, m: None), log)
            log.agents.append(agent)
            return agent

        return factory, log

    return make
