"""Coding phase: implementer and technical reviewer alternate until CODE_APPROVED."""

import asyncio
import logging
from typing import Optional

from gumploop.constants import (
    ARTIFACT_SETTLE_SECONDS,
    CODE_APPROVED_MARKER,
    DEFAULT_CODE_ITERATIONS,
)
from gumploop.models.provider import AgentRole
from gumploop.phases import prompts
from gumploop.phases.base import (
    PhaseResult,
    PipelineContext,
    ProviderFactory,
    approval_label,
    is_approved,
    phase_sessions,
    read_artifact,
    remove_artifacts,
)
from gumploop.services.state_service import load_state
from gumploop.utils.workdir import get_project_dir

logger = logging.getLogger(__name__)

PHASE = "coding"


async def run_coding(
    max_iterations: int = DEFAULT_CODE_ITERATIONS,
    work_dir: Optional[str] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    state = load_state(get_project_dir(work_dir) if work_dir else None)
    if not state.planning_complete:
        return PhaseResult(False, "Planning not complete. Run planning phase first.")

    ctx = PipelineContext.open(state.work_dir, PHASE, provider_factory, state=state)
    files = ctx.files

    coder = ctx.create(AgentRole.IMPLEMENTER)
    reviewer = ctx.create(AgentRole.TECH_REVIEWER)

    approved = False
    async with phase_sessions(ctx):
        ctx.place_windows()
        await ctx.start(coder, reviewer)
        ctx.log("Agents started.\n")

        while not approved and state.iteration < max_iterations:
            state.iteration += 1
            ctx.save()
            ctx.log(f"## Iteration {state.iteration}/{max_iterations}")

            ctx.log("\n**Step 1: Coder implementing...**")
            await coder.send_message(prompts.build_coder_prompt(files, state.iteration))
            await coder.wait_for_completion()
            ctx.log("  ✓ Coder done")

            ctx.log("\n**Step 2: Reviewer reviewing...**")
            remove_artifacts(files.code_review_file)
            await reviewer.send_message(prompts.build_code_review_prompt(files))
            await reviewer.wait_for_completion()
            await asyncio.sleep(ARTIFACT_SETTLE_SECONDS)
            ctx.log("  ✓ Reviewer done")

            approved = is_approved(read_artifact(files.code_review_file), CODE_APPROVED_MARKER)
            ctx.log(f"\n**Result:** {approval_label(approved, CODE_APPROVED_MARKER)}")
            if not approved:
                ctx.log("Continuing to next iteration...")

    state.coding_complete = True
    if approved:
        ctx.log("\n✅ **Code approved!**")
    else:
        ctx.log("\n❌ **Max iterations reached without approval**")
    ctx.save()
    return PhaseResult(success=approved, report=ctx.report())
