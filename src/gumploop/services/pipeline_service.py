"""Pipeline operations exposed through the MCP server and the CLI.

Every operation returns an :class:`OperationResult`. Unexpected failures
become ``is_error=True`` results carrying the error text; nothing raised by
a phase crosses this boundary. A phase that ran but did not reach approval is
not an error: its report says so.
"""

import logging
import shutil
from dataclasses import dataclass
from typing import Awaitable, Optional

from gumploop.constants import (
    DEFAULT_CODE_ITERATIONS,
    DEFAULT_DEBUG_ITERATIONS,
    DEFAULT_DISCOVERY_ITERATIONS,
    DEFAULT_PLAN_ITERATIONS,
)
from gumploop.models.provider import AgentRole
from gumploop.phases.base import PhaseResult, ProviderFactory
from gumploop.phases.coding import run_coding
from gumploop.phases.discovery import run_discovery
from gumploop.phases.planning import run_planning
from gumploop.phases.prompts import DEEP
from gumploop.phases.research import run_research
from gumploop.phases.testing import run_debugging, run_testing
from gumploop.providers.manager import agent_name_for_role
from gumploop.services.session_service import kill_all_pipeline_sessions
from gumploop.services.state_service import delete_global_state, load_state, save_state
from gumploop.utils.workdir import PipelineFiles, get_pipeline_dir

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    text: str
    is_error: bool = False


def _error(message: str) -> OperationResult:
    return OperationResult(f"Error: {message}", is_error=True)


async def _run_phase(name: str, phase: Awaitable[PhaseResult]) -> OperationResult:
    try:
        result = await phase
    except Exception as e:
        logger.error(f"{name} failed: {e}")
        return _error(str(e))
    logger.info(f"{name} finished (success={result.success})")
    return OperationResult(result.report)


def _check_iterations(max_iterations: int) -> Optional[OperationResult]:
    if max_iterations < 1:
        return _error("maxIterations must be at least 1")
    return None


async def plan(
    task: str,
    work_dir: Optional[str] = None,
    max_iterations: int = DEFAULT_PLAN_ITERATIONS,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Planning phase with implementer + UX reviewer + technical reviewer consensus."""
    if not task or not task.strip():
        return _error("task parameter is required")
    invalid = _check_iterations(max_iterations)
    if invalid:
        return invalid
    return await _run_phase(
        "plan", run_planning(task, max_iterations, work_dir, provider_factory=provider_factory)
    )


async def code(
    max_iterations: int = DEFAULT_CODE_ITERATIONS,
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Coder ↔ reviewer loop; requires planning."""
    invalid = _check_iterations(max_iterations)
    if invalid:
        return invalid
    return await _run_phase(
        "code", run_coding(max_iterations, work_dir, provider_factory=provider_factory)
    )


async def test(
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Write and run tests for the implemented code; requires coding."""
    return await _run_phase("test", run_testing(work_dir, provider_factory=provider_factory))


async def debug(
    max_iterations: int = DEFAULT_DEBUG_ITERATIONS,
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Analyze → fix → re-test loop; requires coding."""
    invalid = _check_iterations(max_iterations)
    if invalid:
        return invalid
    return await _run_phase(
        "debug", run_debugging(max_iterations, work_dir, provider_factory=provider_factory)
    )


async def research(
    question: str,
    work_dir: Optional[str] = None,
    depth: str = DEEP,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Gather → analyze → synthesize research on ``question``."""
    if not question or not question.strip():
        return _error("question parameter is required")
    return await _run_phase(
        "research", run_research(question, work_dir, depth, provider_factory=provider_factory)
    )


async def discover(
    work_dir: Optional[str] = None,
    max_iterations: int = DEFAULT_DISCOVERY_ITERATIONS,
    provider_factory: Optional[ProviderFactory] = None,
) -> OperationResult:
    """Explore the codebase and reach consensus on features to build."""
    invalid = _check_iterations(max_iterations)
    if invalid:
        return invalid
    return await _run_phase(
        "discover", run_discovery(work_dir, max_iterations, provider_factory=provider_factory)
    )


def _flag(done: bool, label: str) -> str:
    return f"✅ {label}" if done else "⏳ Pending"


def _exists(path) -> str:
    return "✓ exists" if path.exists() else "✗ missing"


def status() -> OperationResult:
    """Render the persisted pipeline state and the presence of key artifacts."""
    try:
        state = load_state()
        files = PipelineFiles.for_project(state.work_dir)
        artifacts = [
            files.plan_file,
            files.review_file(agent_name_for_role(AgentRole.UX_REVIEWER)),
            files.review_file(agent_name_for_role(AgentRole.TECH_REVIEWER)),
            files.code_review_file,
            files.test_results_file,
            files.research_file,
            files.consensus_file,
        ]
        lines = [
            "## Pipeline Status",
            "",
            f"**Current Phase:** {state.current_phase or 'None'}",
            f"**Task:** {state.task or 'None'}",
            f"**Working Directory:** {state.work_dir}",
            f"**Iteration:** {state.iteration}",
            f"**Active Sessions:** {', '.join(state.active_sessions) or 'None'}",
            f"**Last Update:** {state.last_update}",
            "",
            "### Phase Status",
            f"- Discovery: {_flag(state.discovery_complete, 'Complete')}",
            f"- Research: {_flag(state.research_complete, 'Complete')}",
            f"- Planning: {_flag(state.planning_complete, 'Complete')}",
            f"- Coding: {_flag(state.coding_complete, 'Complete')}",
            f"- Testing: {_flag(state.testing_complete, 'Passed')}",
            f"- Debugging: {_flag(state.debugging_complete, 'Fixed')}",
            "",
            "### Pipeline Files",
            *(f"- {path.name}: {_exists(path)}" for path in artifacts),
        ]
        return OperationResult("\n".join(lines))
    except Exception as e:
        logger.error(f"status failed: {e}")
        return _error(str(e))


def _stop_all_agents() -> None:
    state = load_state()
    kill_all_pipeline_sessions(state.active_sessions)
    state.active_sessions = []
    state.current_phase = None
    save_state(state)


def stop() -> OperationResult:
    """Kill every agent session and clear the current phase."""
    try:
        _stop_all_agents()
    except Exception as e:
        logger.error(f"stop failed: {e}")
        return _error(str(e))
    return OperationResult("All agents stopped.")


def reset() -> OperationResult:
    """Stop all agents, then clear the project's pipeline directory and the global state."""
    try:
        pipeline_dir = get_pipeline_dir(load_state().work_dir)
        _stop_all_agents()
        shutil.rmtree(pipeline_dir, ignore_errors=True)
        delete_global_state()
        pipeline_dir.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        logger.error(f"reset failed: {e}")
        return _error(str(e))
    return OperationResult(f"Pipeline reset complete. Cleared: {pipeline_dir}")
