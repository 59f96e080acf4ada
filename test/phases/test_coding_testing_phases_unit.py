"""Unit tests for the coding, testing and debugging phases."""

import asyncio

from gumploop.phases.coding import run_coding
from gumploop.phases.testing import run_debugging, run_testing
from gumploop.services.state_service import default_state, load_state, save_state
from gumploop.utils.workdir import PipelineFiles


def seed_state(project_dir, **flags):
    state = default_state(project_dir)
    for name, value in flags.items():
        setattr(state, name, value)
    save_state(state)
    return state


def code_review(*statuses):
    """Reviewer writing the given statuses on successive calls."""
    calls = iter(statuses)

    def respond(agent, message):
        files = PipelineFiles.for_project(agent.working_directory)
        files.code_review_file.write_text(f"## Code Review\n\n## Status\n{next(calls)}\n")

    return respond


def tester_writes(*statuses):
    calls = iter(statuses)

    def respond(agent, message):
        files = PipelineFiles.for_project(agent.working_directory)
        if "You are testing the code" in message:
            files.test_results_file.write_text(f"## Test Results\n\n## Status\n{next(calls)}\n")

    return respond


class TestCodingPhase:
    def test_requires_planning(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir)
        factory, log = fake_agents()

        result = asyncio.run(run_coding(3, str(project_dir), factory))

        assert result.success is False
        assert "Planning not complete" in result.report
        assert log.agents == []

    def test_approved_on_second_iteration(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True)
        factory, log = fake_agents({"codex": code_review("NEEDS_REVISION", "CODE_APPROVED")})

        result = asyncio.run(run_coding(5, str(project_dir), factory))

        assert result.success is True
        state = load_state(project_dir)
        assert state.coding_complete is True
        assert state.iteration == 2
        assert state.current_phase == "coding"
        coder = log.by_name("claude")[0]
        assert "plan.md" in coder.messages[0]
        assert "code-review.md" in coder.messages[1]

    def test_cap_exhaustion_still_sets_gate(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True)
        factory, log = fake_agents({"codex": code_review("NEEDS_REVISION", "NEEDS_REVISION")})

        result = asyncio.run(run_coding(2, str(project_dir), factory))

        assert result.success is False
        assert "Max iterations reached" in result.report
        assert load_state(project_dir).coding_complete is True
        assert all(agent.stopped for agent in log.agents)

    def test_uses_global_state_without_work_dir(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True)
        factory, log = fake_agents({"codex": code_review("CODE_APPROVED")})

        result = asyncio.run(run_coding(1, None, factory))

        assert result.success is True
        assert log.agents[0].working_directory == project_dir


class TestTestingPhase:
    def test_requires_coding(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True)
        factory, _ = fake_agents()

        result = asyncio.run(run_testing(str(project_dir), factory))

        assert result.success is False
        assert "Coding not complete" in result.report

    def test_pass(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True, coding_complete=True)
        factory, log = fake_agents({"claude": tester_writes("TESTS_PASS")})

        result = asyncio.run(run_testing(str(project_dir), factory))

        assert result.success is True
        assert "TESTS_PASS" in result.report
        state = load_state(project_dir)
        assert state.testing_complete is True
        assert state.active_sessions == []
        assert log.agents[0].stopped

    def test_fail_marker_wins(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True, coding_complete=True)
        factory, _ = fake_agents({"claude": tester_writes("TESTS_PASS\nTESTS_FAIL")})

        result = asyncio.run(run_testing(str(project_dir), factory))

        assert result.success is False
        assert load_state(project_dir).testing_complete is False


class TestDebuggingPhase:
    def test_fixed_after_second_round(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True, coding_complete=True)
        factory, log = fake_agents({"claude": tester_writes("TESTS_FAIL", "TESTS_PASS")})

        result = asyncio.run(run_debugging(3, str(project_dir), factory))

        assert result.success is True
        state = load_state(project_dir)
        assert state.debugging_complete is True
        assert state.testing_complete is True
        assert state.iteration == 2
        # analyzer, fixer and tester get a fresh session every round
        assert len(log.by_name("codex")) == 2
        assert len(log.by_name("claude")) == 4
        assert all(agent.stopped for agent in log.agents)

    def test_not_fixed_within_cap(self, isolated_paths, project_dir, fake_agents):
        seed_state(project_dir, planning_complete=True, coding_complete=True)
        factory, _ = fake_agents({"claude": tester_writes("TESTS_FAIL", "TESTS_FAIL")})

        result = asyncio.run(run_debugging(2, str(project_dir), factory))

        assert result.success is False
        assert "Could not fix all bugs" in result.report
        assert load_state(project_dir).debugging_complete is False
