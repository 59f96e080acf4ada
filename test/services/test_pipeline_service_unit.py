"""Unit tests for the operation layer shared by the MCP server and the CLI."""

import asyncio
from unittest.mock import patch

import pytest

from gumploop.models.provider import AgentRole, ProviderType
from gumploop.services import pipeline_service
from gumploop.services.state_service import default_state, load_state, save_state
from gumploop.utils.workdir import PipelineFiles

PLAN_TEXT = "# Plan\n" + "Split the parser into a lexer and a recursive descent core. " * 3


def write_plan(agent, message):
    PipelineFiles.for_project(agent.working_directory).plan_file.write_text(PLAN_TEXT)


def approve(agent, message):
    files = PipelineFiles.for_project(agent.working_directory)
    files.review_file(agent.agent_name).write_text("## Status\nAPPROVED\n")


class TestArgumentChecks:
    @pytest.mark.parametrize("task", ["", "   "])
    def test_plan_requires_task(self, isolated_paths, task):
        result = asyncio.run(pipeline_service.plan(task))
        assert result.is_error is True
        assert result.text == "Error: task parameter is required"

    def test_research_requires_question(self, isolated_paths):
        result = asyncio.run(pipeline_service.research(""))
        assert result.is_error is True

    @pytest.mark.parametrize(
        "operation",
        [
            lambda: pipeline_service.plan("task", max_iterations=0),
            lambda: pipeline_service.code(max_iterations=0),
            lambda: pipeline_service.debug(max_iterations=-1),
            lambda: pipeline_service.discover(max_iterations=0),
        ],
    )
    def test_iteration_cap_must_be_positive(self, isolated_paths, operation):
        result = asyncio.run(operation())
        assert result.is_error is True
        assert "maxIterations" in result.text

    def test_invalid_research_depth_is_error(self, isolated_paths, project_dir):
        result = asyncio.run(pipeline_service.research("why?", str(project_dir), depth="medium"))
        assert result.is_error is True
        assert "depth must be one of" in result.text


class TestPhaseResults:
    def test_plan_success_returns_report(self, isolated_paths, project_dir, fake_agents):
        factory, _ = fake_agents({"claude": write_plan, "gemini": approve, "codex": approve})

        result = asyncio.run(
            pipeline_service.plan("Refactor parser", str(project_dir), 2, provider_factory=factory)
        )

        assert result.is_error is False
        assert "Consensus reached" in result.text

    def test_unmet_gate_is_not_an_error(self, isolated_paths, project_dir, fake_agents):
        save_state(default_state(project_dir))
        factory, log = fake_agents()

        result = asyncio.run(
            pipeline_service.code(1, str(project_dir), provider_factory=factory)
        )

        assert result.is_error is False
        assert result.text == "Planning not complete. Run planning phase first."
        assert log.agents == []

    def test_phase_exception_becomes_error_result(self, isolated_paths, project_dir):
        def broken_factory(role, working_directory, target_workspace=None):
            raise RuntimeError("tmux server not running")

        result = asyncio.run(
            pipeline_service.plan("task", str(project_dir), provider_factory=broken_factory)
        )

        assert result.is_error is True
        assert result.text == "Error: tmux server not running"


class TestStatusStopReset:
    def test_status_renders_state_and_artifacts(self, isolated_paths, project_dir):
        state = default_state(project_dir)
        state.current_phase = "coding"
        state.task = "Add caching"
        state.planning_complete = True
        save_state(state)
        PipelineFiles.for_project(project_dir).plan_file.write_text(PLAN_TEXT)

        result = pipeline_service.status()

        assert result.is_error is False
        assert "**Current Phase:** coding" in result.text
        assert "**Task:** Add caching" in result.text
        assert f"**Working Directory:** {project_dir}" in result.text
        assert "- Planning: ✅ Complete" in result.text
        assert "- Coding: ⏳ Pending" in result.text
        assert "- plan.md: ✓ exists" in result.text
        assert "- code-review.md: ✗ missing" in result.text

    def test_status_review_files_follow_role_assignment(
        self, isolated_paths, project_dir, monkeypatch
    ):
        monkeypatch.setattr(
            "gumploop.providers.manager.ROLE_PROVIDERS",
            {
                AgentRole.IMPLEMENTER: ProviderType.CLAUDE_CODE,
                AgentRole.UX_REVIEWER: ProviderType.CODEX,
                AgentRole.TECH_REVIEWER: ProviderType.CLAUDE_CODE,
            },
        )
        save_state(default_state(project_dir))
        PipelineFiles.for_project(project_dir).review_file("codex").write_text("APPROVED")

        result = pipeline_service.status()

        assert "- review-codex.md: ✓ exists" in result.text
        assert "- review-claude.md: ✗ missing" in result.text
        assert "review-gemini.md" not in result.text

    def test_status_without_state(self, isolated_paths):
        result = pipeline_service.status()
        assert "**Current Phase:** None" in result.text

    @patch("gumploop.services.pipeline_service.kill_all_pipeline_sessions")
    def test_stop_kills_sessions_and_clears_phase(self, mock_kill, isolated_paths, project_dir):
        state = default_state(project_dir)
        state.current_phase = "planning"
        state.active_sessions = ["gumploop-abc123-claude", "gumploop-abc123-codex"]
        save_state(state)

        result = pipeline_service.stop()

        assert result.text == "All agents stopped."
        mock_kill.assert_called_once_with(["gumploop-abc123-claude", "gumploop-abc123-codex"])
        state = load_state()
        assert state.current_phase is None
        assert state.active_sessions == []

    @patch("gumploop.services.pipeline_service.kill_all_pipeline_sessions")
    def test_stop_reports_failure(self, mock_kill, isolated_paths):
        mock_kill.side_effect = RuntimeError("boom")
        result = pipeline_service.stop()
        assert result.is_error is True
        assert result.text == "Error: boom"

    @patch("gumploop.services.pipeline_service.kill_all_pipeline_sessions")
    def test_reset_clears_pipeline_dir_and_global_state(
        self, mock_kill, isolated_paths, project_dir
    ):
        state = default_state(project_dir)
        state.planning_complete = True
        save_state(state)
        files = PipelineFiles.for_project(project_dir)
        files.plan_file.write_text(PLAN_TEXT)

        result = pipeline_service.reset()

        assert result.is_error is False
        assert result.text == f"Pipeline reset complete. Cleared: {files.pipeline_dir}"
        assert files.pipeline_dir.is_dir()
        assert list(files.pipeline_dir.iterdir()) == []
        assert not (isolated_paths / ".state.json").exists()
        assert load_state().planning_complete is False
