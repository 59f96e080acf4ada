"""Testing and debugging phases.

Testing starts one implementer session that writes and runs tests, records
``test-results.md`` and signals ``testing_complete``. The run passes iff the
results carry TESTS_PASS and not TESTS_FAIL.

Debugging repeats analyze (technical reviewer), fix (implementer) and
re-test until the tests pass or the cap is reached. Each step gets a fresh
session that is stopped when the step ends.
"""

import asyncio
import logging
from typing import Optional, Tuple

from gumploop.constants import (
    ARTIFACT_SETTLE_SECONDS,
    DEFAULT_DEBUG_ITERATIONS,
    TEST_REPORT_EXCERPT_CHARS,
)
from gumploop.models.provider import AgentRole
from gumploop.phases import prompts
from gumploop.phases.base import (
    PhaseResult,
    PipelineContext,
    ProviderFactory,
    phase_sessions,
    read_artifact,
    remove_artifacts,
    tests_passed,
)
from gumploop.services.state_service import load_state
from gumploop.utils.workdir import get_project_dir

logger = logging.getLogger(__name__)

TESTING_PHASE = "testing"
DEBUGGING_PHASE = "debugging"

CODING_REQUIRED = "Coding not complete. Run coding phase first."


async def run_test_round(ctx: PipelineContext, iteration: int) -> Tuple[bool, str]:
    """Run one tester session; return (passed, test results text)."""
    files = ctx.files
    remove_artifacts(files.test_results_file)

    tester = ctx.create(AgentRole.IMPLEMENTER)
    await ctx.start(tester)
    try:
        await tester.send_message(
            prompts.build_tester_prompt(ctx.project_dir, files, tester.agent_name, iteration)
        )
        await tester.wait_for_progress_event(
            tester.agent_name, "testing_complete", iteration, files.progress_file
        )
        await asyncio.sleep(ARTIFACT_SETTLE_SECONDS)
    finally:
        await ctx.stop(tester)

    results = read_artifact(files.test_results_file)
    return tests_passed(results), results


async def run_testing(
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    state = load_state(get_project_dir(work_dir) if work_dir else None)
    if not state.coding_complete:
        return PhaseResult(False, CODING_REQUIRED)

    ctx = PipelineContext.open(state.work_dir, TESTING_PHASE, provider_factory, state=state)

    async with phase_sessions(ctx):
        ctx.place_windows()
        ctx.log("Starting tester...")
        passed, results = await run_test_round(ctx, 1)
        ctx.log("Tester done.")

    state.testing_complete = passed
    ctx.log("\n All tests passed!" if passed else "\n Tests failed")
    ctx.log(f"\n{results[:TEST_REPORT_EXCERPT_CHARS]}")
    ctx.save()
    return PhaseResult(success=passed, report=ctx.report())


async def run_debugging(
    max_iterations: int = DEFAULT_DEBUG_ITERATIONS,
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    state = load_state(get_project_dir(work_dir) if work_dir else None)
    if not state.coding_complete:
        return PhaseResult(False, CODING_REQUIRED)

    ctx = PipelineContext.open(state.work_dir, DEBUGGING_PHASE, provider_factory, state=state)
    files = ctx.files

    fixed = False
    async with phase_sessions(ctx):
        ctx.place_windows()
        while not fixed and state.iteration < max_iterations:
            state.iteration += 1
            ctx.save()
            ctx.log(f"## Debug Iteration {state.iteration}/{max_iterations}")

            ctx.log("\n**Step 1: Analyzing bugs...**")
            remove_artifacts(files.bug_analysis_file)
            analyzer = ctx.create(AgentRole.TECH_REVIEWER)
            await ctx.start(analyzer)
            await analyzer.send_message(prompts.build_bug_analysis_prompt(files))
            await analyzer.wait_for_completion()
            await ctx.stop(analyzer)
            ctx.log("  Analysis done")

            ctx.log("\n**Step 2: Fixing bugs...**")
            fixer = ctx.create(AgentRole.IMPLEMENTER)
            await ctx.start(fixer)
            await fixer.send_message(prompts.build_fixer_prompt(files))
            await fixer.wait_for_completion()
            await ctx.stop(fixer)
            ctx.log("  Fixes applied")

            ctx.log("\n**Step 3: Re-testing...**")
            fixed, _ = await run_test_round(ctx, state.iteration)
            ctx.log("  Tests pass!" if fixed else "  Tests still failing")

    state.debugging_complete = fixed
    if fixed:
        state.testing_complete = True
    ctx.log("\n **Bugs fixed!**" if fixed else "\n **Could not fix all bugs**")
    ctx.save()
    return PhaseResult(success=fixed, report=ctx.report())
