"""Unit tests for the discovery and research phases."""

import asyncio

import pytest

from gumploop.phases.discovery import run_discovery
from gumploop.phases.prompts import generate_search_queries
from gumploop.phases.research import run_research
from gumploop.services.state_service import load_state
from gumploop.utils.polling import CompletionTimeoutError
from gumploop.utils.workdir import PipelineFiles


def consensus_review(*statuses):
    calls = iter(statuses)

    def respond(agent, message):
        files = PipelineFiles.for_project(agent.working_directory)
        if "Review Consensus Ranking" in message:
            files.consensus_review_file(agent.agent_name).write_text(f"### Status\n{next(calls)}\n")

    return respond


def lead_architect(agent, message):
    files = PipelineFiles.for_project(agent.working_directory)
    if "Build Consensus" in message or "Revise Consensus" in message:
        files.consensus_file.write_text("# Feature Discovery - Consensus Report\n1. Caching\n")


class TestDiscoveryPhase:
    def test_consensus_in_second_round(self, isolated_paths, project_dir, fake_agents):
        factory, log = fake_agents(
            {
                "claude": lead_architect,
                "gemini": consensus_review("NEEDS_REVISION", "APPROVED"),
                "codex": consensus_review("APPROVED", "APPROVED"),
            }
        )

        result = asyncio.run(run_discovery(str(project_dir), 3, factory))

        assert result.success is True
        assert "1. Caching" in result.report
        state = load_state(project_dir)
        assert state.discovery_complete is True
        assert state.current_phase is None
        # explore, propose, then consensus rounds 1 and 2
        assert state.iteration == 4
        claude = log.by_name("claude")[0]
        assert "Build Consensus" in claude.messages[2]
        assert "Revise Consensus" in claude.messages[3]

    def test_no_consensus_still_completes(self, isolated_paths, project_dir, fake_agents):
        factory, _ = fake_agents(
            {
                "claude": lead_architect,
                "gemini": consensus_review("NEEDS_REVISION"),
                "codex": consensus_review("APPROVED"),
            }
        )

        result = asyncio.run(run_discovery(str(project_dir), 1, factory))

        assert result.success is False
        assert "without full consensus" in result.report
        assert load_state(project_dir).discovery_complete is True

    def test_stalled_agent_cancels_sibling_waits(self, isolated_paths, project_dir, fake_agents):
        base_factory, log = fake_agents()
        cancelled = []

        async def stalled(*args, **kwargs):
            raise CompletionTimeoutError("Timeout waiting for claude/explore_done")

        async def slow(*args, **kwargs):
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.append(args[0])
                raise

        def factory(role, working_directory, target_workspace=None):
            agent = base_factory(role, working_directory, target_workspace)
            agent.wait_for_progress_event = stalled if agent.agent_name == "claude" else slow
            return agent

        async def run():
            with pytest.raises(CompletionTimeoutError):
                await run_discovery(str(project_dir), 3, factory)
            current = asyncio.current_task()
            return [task for task in asyncio.all_tasks() if task is not current and not task.done()]

        assert asyncio.run(run()) == []
        assert sorted(cancelled) == ["codex", "gemini"]
        assert all(agent.stopped for agent in log.agents)
        assert load_state(project_dir).current_phase is None


class TestResearchPhase:
    def test_report_is_synthesized(self, isolated_paths, project_dir, fake_agents):
        def synthesize(agent, message):
            files = PipelineFiles.for_project(agent.working_directory)
            if "Final Synthesis" in message:
                files.research_file.write_text("# Research Report: tmux\nUse libtmux.\n")

        factory, log = fake_agents({"claude": synthesize})

        result = asyncio.run(run_research("tmux automation", str(project_dir), "quick", factory))

        assert result.success is True
        assert "Use libtmux." in result.report
        state = load_state(project_dir)
        assert state.research_complete is True
        assert state.task == "tmux automation"
        gather = log.by_name("claude")[0].messages[0]
        assert '3. "tmux automation security considerations"' in gather
        assert "common mistakes" not in gather

    def test_invalid_depth_rejected(self, isolated_paths, project_dir, fake_agents):
        factory, log = fake_agents()

        with pytest.raises(ValueError):
            asyncio.run(run_research("q", str(project_dir), "shallow", factory))
        assert log.agents == []


def test_deep_research_suggests_more_queries():
    assert len(generate_search_queries("x", "quick")) == 3
    assert len(generate_search_queries("x", "deep")) == 7
