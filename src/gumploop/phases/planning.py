"""Planning phase: consensus-gated plan review loop.

The implementer writes (then revises) ``plan.md``; the UX and technical
reviewers each write their own review. The loop ends when both reviews are
approved in the same iteration or the iteration cap is reached. Without
consensus the implementer summarizes what is left in
``remaining-issues.md``. ``planningComplete`` is set either way so coding can
proceed from the best plan available.
"""

import logging
from typing import Optional

from gumploop.constants import DEFAULT_PLAN_ITERATIONS, MIN_ARTIFACT_LENGTH
from gumploop.models.provider import AgentRole
from gumploop.phases import prompts
from gumploop.phases.base import (
    PhaseResult,
    PipelineContext,
    ProviderFactory,
    approval_label,
    has_consensus,
    is_approved,
    phase_sessions,
    read_artifact,
    remove_artifacts,
)
from gumploop.utils.workdir import get_project_dir

logger = logging.getLogger(__name__)

PHASE = "planning"


async def run_planning(
    task: str,
    max_iterations: int = DEFAULT_PLAN_ITERATIONS,
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    project_dir = get_project_dir(work_dir)
    ctx = PipelineContext.open(project_dir, PHASE, provider_factory)
    state, files = ctx.state, ctx.files
    state.task = task
    ctx.save()

    implementer = ctx.create(AgentRole.IMPLEMENTER)
    ux = ctx.create(AgentRole.UX_REVIEWER)
    tech = ctx.create(AgentRole.TECH_REVIEWER)
    reviewers = [ux.agent_name, tech.agent_name]
    remove_artifacts(files.plan_file, *(files.review_file(name) for name in reviewers))

    consensus = False
    async with phase_sessions(ctx):
        ctx.place_windows()
        await ctx.start(implementer, ux, tech)
        ctx.log("All agents started.\n")

        while not consensus and state.iteration < max_iterations:
            state.iteration += 1
            ctx.save()
            iteration = state.iteration
            ctx.log(f"## Iteration {iteration}/{max_iterations}")

            ctx.log(f"\n**Step 1: {implementer.agent_name} writing plan...**")
            remove_artifacts(*(files.review_file(name) for name in reviewers))
            await implementer.send_message(
                prompts.build_plan_prompt(
                    task, files, implementer.agent_name, reviewers, iteration, max_iterations
                )
            )
            await implementer.wait_for_progress_event(
                implementer.agent_name, "plan_written", iteration, files.progress_file
            )

            if len(read_artifact(files.plan_file).strip()) < MIN_ARTIFACT_LENGTH:
                logger.warning(f"Plan missing or too short in iteration {iteration}")
                ctx.log("  Warning: Plan file not created or too short!")
                continue
            ctx.log(f"  Done: {implementer.agent_name} ({files.plan_file.name} created)")

            for step, (reviewer, focus) in enumerate(((ux, "ux"), (tech, "tech")), start=2):
                ctx.log(f"\n**Step {step}: {reviewer.agent_name} reviewing...**")
                await reviewer.send_message(
                    prompts.build_plan_review_prompt(
                        files, reviewer.agent_name, focus, iteration, max_iterations
                    )
                )
                await reviewer.wait_for_progress_event(
                    reviewer.agent_name, "review_written", iteration, files.progress_file
                )
                ctx.log(f"  Done: {reviewer.agent_name}")

            reviews = {name: read_artifact(files.review_file(name)) for name in reviewers}
            ctx.log("\n**Results:**")
            for name, review in reviews.items():
                ctx.log(f"- {name}: {approval_label(is_approved(review))}")

            consensus = has_consensus(*reviews.values())
            ctx.log("\n**Consensus reached!**" if consensus else "\nContinuing to next iteration...")

        if not consensus:
            ctx.log(f"\n**Final Step: {implementer.agent_name} summarizing remaining issues...**")
            await implementer.send_message(
                prompts.build_remaining_issues_prompt(
                    files, implementer.agent_name, reviewers, state.iteration
                )
            )
            await implementer.wait_for_progress_event(
                implementer.agent_name, "summary_written", state.iteration, files.progress_file
            )
            ctx.log("\n**Max iterations reached without consensus**")
            ctx.log(f"\nSee: {files.remaining_issues_file}")

    state.planning_complete = True
    ctx.save()
    return PhaseResult(success=consensus, report=ctx.report())
