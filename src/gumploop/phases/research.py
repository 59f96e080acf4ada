"""Research phase: gather sources, analyze from three perspectives, synthesize."""

import logging
from typing import Optional

from gumploop.models.provider import AgentRole
from gumploop.phases import prompts
from gumploop.phases.base import (
    PhaseResult,
    PipelineContext,
    ProviderFactory,
    phase_sessions,
    read_artifact,
    remove_artifacts,
    run_parallel,
)
from gumploop.utils.workdir import get_project_dir

logger = logging.getLogger(__name__)

PHASE = "research"


async def run_research(
    question: str,
    work_dir: Optional[str] = None,
    depth: str = prompts.DEEP,
    provider_factory: Optional[ProviderFactory] = None,
) -> PhaseResult:
    if depth not in prompts.RESEARCH_DEPTHS:
        raise ValueError(f"depth must be one of {', '.join(prompts.RESEARCH_DEPTHS)}")

    project_dir = get_project_dir(work_dir)
    ctx = PipelineContext.open(project_dir, PHASE, provider_factory)
    state, files = ctx.state, ctx.files
    state.task = question
    state.research_complete = False
    ctx.save()
    ctx.lines[:0] = ["## Research Phase", f"**Question:** {question}", f"**Depth:** {depth}"]

    implementer = ctx.create(AgentRole.IMPLEMENTER)
    ux = ctx.create(AgentRole.UX_REVIEWER)
    tech = ctx.create(AgentRole.TECH_REVIEWER)
    perspectives = [(implementer, "architecture"), (ux, "ux"), (tech, "tech")]
    all_agents = [agent.agent_name for agent, _ in perspectives]

    remove_artifacts(
        files.research_file,
        files.research_sources_file,
        *(files.research_analysis_file(name) for name in all_agents),
    )

    async with phase_sessions(ctx):
        ctx.place_windows()
        await ctx.start(implementer, ux, tech)
        ctx.log("All agents started.\n")

        ctx.log("### Phase 1: Gather Sources\n")
        state.iteration = 1
        ctx.save()
        await implementer.send_message(
            prompts.build_gather_prompt(question, depth, files, implementer.agent_name)
        )
        await implementer.wait_for_progress_event(
            implementer.agent_name, "gather_done", 1, files.progress_file
        )
        ctx.log("- Sources gathered\n")

        ctx.log("### Phase 2: Analyze\n")
        state.iteration = 2
        ctx.save()
        await run_parallel(
            *(
                agent.send_message(
                    prompts.build_analyze_prompt(question, files, agent.agent_name, focus)
                )
                for agent, focus in perspectives
            )
        )
        await run_parallel(
            *(
                agent.wait_for_progress_event(
                    agent.agent_name, "analyze_done", 2, files.progress_file
                )
                for agent, _ in perspectives
            )
        )
        for agent, focus in perspectives:
            ctx.log(f"- {agent.agent_name}: {focus} analysis")

        ctx.log("\n### Phase 3: Synthesize\n")
        state.iteration = 3
        ctx.save()
        await implementer.send_message(
            prompts.build_synthesize_prompt(
                question, depth, files, implementer.agent_name, all_agents
            )
        )
        await implementer.wait_for_progress_event(
            implementer.agent_name, "synthesize_done", 3, files.progress_file
        )
        ctx.log("- Final report synthesized\n")

    ctx.log("### Research Complete!\n")
    report = read_artifact(files.research_file)
    if report:
        ctx.log("## Research Report\n")
        ctx.log(report)
    ctx.log("\n---")
    ctx.log("**Next Steps:**")
    ctx.log("1. Review the research report above")
    ctx.log("2. Use findings to inform your implementation")
    ctx.log("3. Run `plan` with insights from research")

    state.current_phase = None
    state.research_complete = bool(report)
    ctx.save()
    return PhaseResult(success=bool(report), report=ctx.report())
