"""Discovery phase: agents explore the codebase and agree on features to build.

1. Explore: every persona analyzes the project from its own angle (parallel).
2. Propose: every persona appends feature proposals to its analysis (parallel).
3. Consensus: the implementer ranks all proposals; both reviewers review the
   ranking; repeat until both approve or the cap is reached.
"""

import logging
from typing import Optional

from gumploop.constants import DEFAULT_DISCOVERY_ITERATIONS
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
    run_parallel,
)
from gumploop.utils.workdir import get_project_dir

logger = logging.getLogger(__name__)

PHASE = "discovery"

# Iterations 1 and 2 are explore and propose; consensus rounds follow
CONSENSUS_ITERATION_OFFSET = 2


async def run_discovery(
    work_dir: Optional[str] = None,
    max_iterations: int = DEFAULT_DISCOVERY_ITERATIONS,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    project_dir = get_project_dir(work_dir)
    ctx = PipelineContext.open(project_dir, PHASE, provider_factory)
    state, files = ctx.state, ctx.files
    state.discovery_complete = False
    state.selected_feature = None
    ctx.save()
    ctx.lines.insert(0, "## Feature Discovery Phase")

    implementer = ctx.create(AgentRole.IMPLEMENTER)
    ux = ctx.create(AgentRole.UX_REVIEWER)
    tech = ctx.create(AgentRole.TECH_REVIEWER)
    personas = [(implementer, "architecture"), (ux, "ux"), (tech, "tech")]
    reviewers = [(ux, "ux"), (tech, "tech")]
    all_agents = [agent.agent_name for agent, _ in personas]
    review_agents = [agent.agent_name for agent, _ in reviewers]

    remove_artifacts(
        *(files.discovery_file(name) for name in all_agents),
        files.consensus_file,
        *(files.consensus_review_file(name) for name in review_agents),
    )

    consensus = False
    async with phase_sessions(ctx):
        ctx.place_windows()
        await ctx.start(implementer, ux, tech)
        ctx.log("All agents started.\n")

        ctx.log("### Phase 1: Codebase Exploration\n")
        state.iteration = 1
        ctx.save()
        await run_parallel(
            *(
                agent.send_message(
                    prompts.build_explore_prompt(project_dir, files, agent.agent_name, focus)
                )
                for agent, focus in personas
            )
        )
        await run_parallel(
            *(
                agent.wait_for_progress_event(
                    agent.agent_name, "explore_done", 1, files.progress_file
                )
                for agent, _ in personas
            )
        )
        for agent, focus in personas:
            ctx.log(f"- {agent.agent_name}: Explored ({focus} focus)")

        ctx.log("\n### Phase 2: Feature Proposals\n")
        state.iteration = 2
        ctx.save()
        await run_parallel(
            *(
                agent.send_message(prompts.build_propose_prompt(files, agent.agent_name))
                for agent, _ in personas
            )
        )
        await run_parallel(
            *(
                agent.wait_for_progress_event(
                    agent.agent_name, "propose_done", 2, files.progress_file
                )
                for agent, _ in personas
            )
        )
        for agent, _ in personas:
            ctx.log(f"- {agent.agent_name}: Proposed features")

        ctx.log("\n### Phase 3: Consensus Loop\n")
        round_num = 0
        while not consensus and round_num < max_iterations:
            round_num += 1
            state.iteration = CONSENSUS_ITERATION_OFFSET + round_num
            ctx.save()
            iteration = state.iteration
            ctx.log(f"#### Consensus Iteration {round_num}/{max_iterations}")

            await implementer.send_message(
                prompts.build_consensus_prompt(
                    files, implementer.agent_name, all_agents, review_agents, round_num, iteration
                )
            )
            await implementer.wait_for_progress_event(
                implementer.agent_name, "consensus_written", iteration, files.progress_file
            )
            ctx.log(f"  - {implementer.agent_name}: Consensus written")

            for reviewer, focus in reviewers:
                await reviewer.send_message(
                    prompts.build_consensus_review_prompt(
                        files,
                        reviewer.agent_name,
                        focus,
                        all_agents,
                        round_num,
                        max_iterations,
                        iteration,
                    )
                )
                await reviewer.wait_for_progress_event(
                    reviewer.agent_name, "consensus_reviewed", iteration, files.progress_file
                )
                ctx.log(f"  - {reviewer.agent_name}: Reviewed")

            reviews = {
                name: read_artifact(files.consensus_review_file(name)) for name in review_agents
            }
            for name, review in reviews.items():
                ctx.log(f"  - {name}: {approval_label(is_approved(review))}")

            consensus = has_consensus(*reviews.values())
            ctx.log("\n**Consensus reached!**\n" if consensus else "")

        if not consensus:
            ctx.log(f"\n**Max iterations ({max_iterations}) reached without full consensus.**\n")

    ctx.log("### Discovery Complete!\n")
    report = read_artifact(files.consensus_file)
    if report:
        ctx.log("## Consensus Report\n")
        ctx.log(report)
    ctx.log("\n---")
    ctx.log("**Next Steps:**")
    ctx.log("1. Review the proposals above")
    ctx.log("2. Select a feature to implement")
    ctx.log("3. Run `plan` with the selected feature as task")

    state.current_phase = None
    state.discovery_complete = True
    ctx.save()
    return PhaseResult(success=consensus, report=ctx.report())
