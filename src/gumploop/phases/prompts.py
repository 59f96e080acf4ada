"""Prompt builders for every phase.

Each builder returns plain text; the provider wraps it with the request and
acknowledgment tokens. Prompts that end in a progress event tell the agent
the exact JSON line to append.
"""

import json
from datetime import date
from pathlib import Path
from typing import Dict, List

from gumploop.constants import (
    APPROVED_MARKER,
    CODE_APPROVED_MARKER,
    REVISION_MARKER,
    TESTS_FAIL_MARKER,
    TESTS_PASS_MARKER,
)
from gumploop.utils.workdir import PipelineFiles

QUICK = "quick"
DEEP = "deep"
RESEARCH_DEPTHS = (QUICK, DEEP)


def progress_line(agent: str, action: str, iteration: int) -> str:
    return json.dumps({"agent": agent, "action": action, "iteration": iteration})


def progress_instruction(files: PipelineFiles, agent: str, action: str, iteration: int) -> str:
    return "\n".join(
        [
            "",
            f"# IMPORTANT: When done, append this exact line to {files.progress_file}:",
            progress_line(agent, action, iteration),
        ]
    )


def _review_status_line(is_last_iteration: bool, marker: str = APPROVED_MARKER) -> str:
    if is_last_iteration:
        return f"{marker} (only if all major issues are resolved) or {REVISION_MARKER}"
    return f"{REVISION_MARKER} (you MUST request revision in early iterations)"


# ── Planning ───────────────────────────────────────────────────────────────


def build_plan_prompt(
    task: str,
    files: PipelineFiles,
    agent: str,
    review_agents: List[str],
    iteration: int,
    max_iterations: int,
) -> str:
    parts = [
        "# Task",
        task,
        "",
        "# Iteration Info",
        f"This is iteration {iteration} of {max_iterations}.",
        "",
        "# Instructions",
    ]
    if iteration == 1:
        parts += [
            "Write a detailed implementation plan for this task.",
            f"Save your plan to: {files.plan_file}",
            "",
            "The plan should include:",
            "- Architecture overview",
            "- File structure",
            "- Implementation steps",
            "- Edge cases to handle",
            "- Error handling strategy",
        ]
    else:
        parts += ["Read the reviews in:"]
        parts += [f"- {files.review_file(name)}" for name in review_agents]
        parts += [
            "",
            "Address ALL the issues raised by reviewers.",
            f"Revise your plan in {files.plan_file} based on the feedback.",
        ]
    parts.append(progress_instruction(files, agent, "plan_written", iteration))
    return "\n".join(parts)


PLAN_REVIEW_FOCUS: Dict[str, List[str]] = {
    "ux": [
        "You are a STRICT UX/DX reviewer. Your job is to find problems, not to approve quickly.",
        "Check: API design, error handling, edge cases, documentation, testability.",
    ],
    "tech": [
        "You are a STRICT technical reviewer. Find real problems.",
        "Check: resource leaks, race conditions, type safety, error propagation, testability.",
    ],
}


def build_plan_review_prompt(
    files: PipelineFiles, agent: str, focus: str, iteration: int, max_iterations: int
) -> str:
    is_last = iteration >= max_iterations
    review_file = files.review_file(agent)
    parts = [
        "# Instructions",
        f"First, verify {files.plan_file} exists. If not, wait and check again.",
        "",
        f"Read the plan in {files.plan_file}",
        f"Write your review to {review_file}",
        "",
        "## CRITICAL REVIEW RULES",
        f"- This is iteration {iteration} of {max_iterations}",
        *(f"- {line}" for line in PLAN_REVIEW_FOCUS[focus]),
        (
            "- This is the FINAL iteration. You may approve if all major issues are resolved."
            if is_last
            else "- This is NOT the final iteration. You MUST find issues and request revision."
        ),
        "- Find AT LEAST 3 specific issues or improvements",
        "",
        "## Review Format",
        "### Issues Found (minimum 3)",
        "1. [Specific issue with exact problem]",
        "",
        "### Suggestions",
        "- [Concrete improvement suggestion]",
        "",
        "## Status",
        _review_status_line(is_last),
        progress_instruction(files, agent, "review_written", iteration),
    ]
    return "\n".join(parts)


def build_remaining_issues_prompt(
    files: PipelineFiles, agent: str, review_agents: List[str], iteration: int
) -> str:
    parts = [
        "# Final Review Summary",
        "",
        "Max iterations reached without full consensus.",
        "",
        "Read the final reviews:",
        *(f"- {files.review_file(name)}" for name in review_agents),
        "",
        f"Write a summary of remaining issues to {files.remaining_issues_file}",
        "",
        "Include:",
        "1. Issues that were addressed",
        "2. Issues that still remain",
        "3. Recommended next steps",
        progress_instruction(files, agent, "summary_written", iteration),
    ]
    return "\n".join(parts)


# ── Coding ─────────────────────────────────────────────────────────────────


def build_coder_prompt(files: PipelineFiles, iteration: int) -> str:
    if iteration == 1:
        parts = [
            "# Instructions",
            f"Read the approved plan in {files.plan_file}",
            "Implement the code according to the plan.",
            "Follow the conventions of the existing project.",
            "",
            'After implementing, say "Code implemented."',
        ]
    else:
        parts = [
            "# Instructions",
            f"Read the code review in {files.code_review_file}",
            "Fix the issues mentioned and improve the code.",
            "",
            'After fixing, say "Code revised."',
        ]
    return "\n".join(parts)


def build_code_review_prompt(files: PipelineFiles) -> str:
    parts = [
        "# Instructions",
        f"Review all source files in the project against {files.plan_file}.",
        f"Write your review to {files.code_review_file}",
        "",
        "Include:",
        "## Code Review",
        "- Bugs found",
        "- Missing error handling",
        "- Code quality issues",
        "",
        "## Status",
        f"{CODE_APPROVED_MARKER} (if code is good) or {REVISION_MARKER} (with specific issues)",
    ]
    return "\n".join(parts)


# ── Testing and debugging ──────────────────────────────────────────────────


def build_tester_prompt(project_dir: Path, files: PipelineFiles, agent: str, iteration: int) -> str:
    parts = [
        "# Instructions",
        f"You are testing the code in {project_dir}",
        "",
        "## Steps",
        "1. Read the existing code files in the project",
        "2. Create comprehensive tests using the project's test framework",
        "3. Run the test suite",
        f"4. Write results to: {files.test_results_file}",
        "",
        f"## Required Output Format for {files.test_results_file}:",
        "## Test Results",
        "- Tests run: [number]",
        "- Passed: [number]",
        "- Failed: [number]",
        "",
        "## Output",
        "[test output here]",
        "",
        "## Status",
        f"{TESTS_PASS_MARKER} or {TESTS_FAIL_MARKER}",
        progress_instruction(files, agent, "testing_complete", iteration),
    ]
    return "\n".join(parts)


def build_bug_analysis_prompt(files: PipelineFiles) -> str:
    parts = [
        "# Instructions",
        f"Read {files.test_results_file} to see the failing tests.",
        "Read the code files to understand the bugs.",
        "",
        f"Write your analysis to {files.bug_analysis_file}",
        "",
        "Include:",
        "## Bug Analysis",
        "- Root cause of each failure",
        "- Specific lines to fix",
        "- Fix strategy",
        "",
        "## Status",
        "ANALYSIS_COMPLETE",
    ]
    return "\n".join(parts)


def build_fixer_prompt(files: PipelineFiles) -> str:
    parts = [
        "# Instructions",
        f"Read {files.bug_analysis_file}",
        "Apply the fixes to the code.",
        "Keep changes minimal and focused.",
        "",
        'After fixing, say "Bugs fixed."',
    ]
    return "\n".join(parts)


# ── Discovery ──────────────────────────────────────────────────────────────

DISCOVERY_FOCUS: Dict[str, List[str]] = {
    "architecture": [
        "- **Architecture & Design Patterns**: How is the code organized? What patterns are used?",
        "- **Code Quality**: Are there areas that need improvement?",
        "- **Missing Abstractions**: What's missing that would make the code better?",
        "",
        "Include sections: Architecture Overview, Key Components, Patterns Used, "
        "Gaps & Opportunities",
    ],
    "ux": [
        "- **User/Developer Experience**: How easy is it to use and extend?",
        "- **API Design**: Are the interfaces intuitive?",
        "- **Modern Practices**: What modern features/patterns are missing?",
        "",
        "Include sections: UX/DX Assessment, API Review, Missing Modern Features, Quick Wins",
    ],
    "tech": [
        "- **Performance**: Any bottlenecks or inefficiencies?",
        "- **Security**: Any vulnerabilities or missing validations?",
        "- **Edge Cases**: What's not handled properly?",
        "- **Testing**: Is the code testable? What's missing?",
        "",
        "Include sections: Performance Analysis, Security Review, Edge Cases Not Handled, "
        "Testing Gaps",
    ],
}


def build_explore_prompt(project_dir: Path, files: PipelineFiles, agent: str, focus: str) -> str:
    parts = [
        "# Feature Discovery - Codebase Analysis",
        "",
        "You are analyzing a codebase to understand it deeply and propose new features.",
        "",
        "## Your Task",
        "1. Explore the codebase structure (use ls, find, cat to read files)",
        "2. Understand the architecture, patterns, and tech stack",
        "3. Identify strengths, weaknesses, and gaps",
        "4. Think about what features would add the most value",
        "",
        "## Project Directory",
        str(project_dir),
        "",
        "## Analysis Focus",
        *DISCOVERY_FOCUS[focus],
        "",
        f"Write your analysis to: {files.discovery_file(agent)}",
        progress_instruction(files, agent, "explore_done", 1),
    ]
    return "\n".join(parts)


def build_propose_prompt(files: PipelineFiles, agent: str) -> str:
    parts = [
        "# Feature Discovery - Propose Features",
        "",
        "Based on your codebase analysis, propose 2-3 new features that would add "
        "significant value.",
        "",
        "## Proposal Format (for each feature)",
        "### Feature: [Title]",
        "**Description:** [What it does]",
        "**Reasoning:** [Why this feature is needed - reference your analysis]",
        "**Impact:** high | medium | low",
        "**Effort:** high | medium | low",
        "**Affected Files:** [list]",
        "**Implementation Outline:** [numbered steps]",
        "",
        f"Read your analysis from {files.discovery_file(agent)} and propose features.",
        f"APPEND your proposals to: {files.discovery_file(agent)}",
        progress_instruction(files, agent, "propose_done", 2),
    ]
    return "\n".join(parts)


def build_consensus_prompt(
    files: PipelineFiles,
    agent: str,
    all_agents: List[str],
    review_agents: List[str],
    round_num: int,
    iteration: int,
) -> str:
    if round_num == 1:
        parts = [
            "# Feature Discovery - Build Consensus",
            "",
            "You are the lead architect. Read ALL proposals from all agents and create a "
            "prioritized feature list.",
            "",
            "## Read These Files",
            *(f"- {files.discovery_file(name)}" for name in all_agents),
            "",
            "## Your Task",
            "1. List ALL proposed features from all agents",
            "2. Evaluate each based on: Impact, Effort, Alignment with codebase",
            "3. Score each feature: Score = Impact(3/2/1) × (1/Effort(3/2/1))",
            "4. Rank features by score",
            "5. For the top 3, add your recommendation and a suggested implementation order",
            "",
            f"Write the consensus report to {files.consensus_file}",
        ]
    else:
        parts = [
            "# Feature Discovery - Revise Consensus",
            "",
            "Read the review feedback and revise your ranking.",
            "",
            "## Review Files",
            *(f"- {files.consensus_review_file(name)}" for name in review_agents),
            "",
            "## Your Task",
            "1. Address ALL concerns raised by reviewers",
            "2. Adjust scores/rankings if their arguments are valid",
            "3. Explain any changes you made",
            f"4. Update {files.consensus_file}",
        ]
    parts.append(progress_instruction(files, agent, "consensus_written", iteration))
    return "\n".join(parts)


CONSENSUS_REVIEW_CHECKS = {
    "ux": "Check: Are scores calculated correctly? Is reasoning sound? Any bias?",
    "tech": (
        "Check: Effort estimates realistic? Technical dependencies considered? "
        "Implementation order makes sense?"
    ),
}


def build_consensus_review_prompt(
    files: PipelineFiles,
    agent: str,
    focus: str,
    all_agents: List[str],
    round_num: int,
    max_rounds: int,
    iteration: int,
) -> str:
    is_last = round_num >= max_rounds
    parts = [
        "# Review Consensus Ranking",
        "",
        f"Read the consensus report: {files.consensus_file}",
        "",
        "Also read all original proposals:",
        *(f"- {files.discovery_file(name)}" for name in all_agents),
        "",
        "## Review Rules",
        f"- This is iteration {round_num} of {max_rounds}",
        (
            "- FINAL iteration - approve if major issues are resolved"
            if is_last
            else "- Find at least 2 issues with the ranking"
        ),
        f"- {CONSENSUS_REVIEW_CHECKS[focus]}",
        "",
        f"## Write to {files.consensus_review_file(agent)}",
        "#### Issues Found",
        "#### Suggestions",
        "### Status",
        f"{APPROVED_MARKER} or {REVISION_MARKER}" if is_last else REVISION_MARKER,
        progress_instruction(files, agent, "consensus_reviewed", iteration),
    ]
    return "\n".join(parts)


# ── Research ───────────────────────────────────────────────────────────────


def generate_search_queries(question: str, depth: str = DEEP) -> List[str]:
    queries = [
        f"{question} best practices",
        f"{question} tutorial",
        f"{question} security considerations",
    ]
    if depth == DEEP:
        queries += [
            f"{question} common mistakes",
            f"{question} production ready",
            f"{question} performance optimization",
            f"{question} alternatives comparison",
        ]
    return queries


def build_gather_prompt(question: str, depth: str, files: PipelineFiles, agent: str) -> str:
    queries = generate_search_queries(question, depth)
    parts = [
        "# Research - Gather Sources",
        "",
        "## Research Question",
        question,
        "",
        "## Suggested Search Queries",
        *(f'{i}. "{query}"' for i, query in enumerate(queries, 1)),
        "",
        "## Instructions",
        "1. Use web search to find relevant sources",
        "2. For each useful source, extract the URL, key points, code examples and "
        "best practices mentioned",
        "3. Prefer official documentation, well-regarded tutorials and maintained repositories",
        "",
        f"## Write your findings to: {files.research_sources_file}",
        progress_instruction(files, agent, "gather_done", 1),
    ]
    return "\n".join(parts)


RESEARCH_PERSPECTIVES: Dict[str, List[str]] = {
    "architecture": [
        "Analyze from a **best practices and architecture** perspective:",
        "- What are the recommended patterns?",
        "- What architecture decisions should be made?",
        "- What are the trade-offs between different approaches?",
    ],
    "ux": [
        "Analyze from a **modern trends and developer experience** perspective:",
        "- What tools/libraries are current?",
        "- How can the developer experience be improved?",
        "- What approaches are outdated and should be avoided?",
    ],
    "tech": [
        "Analyze from a **security and edge cases** perspective:",
        "- What are the security considerations?",
        "- What edge cases need handling?",
        "- What are common mistakes?",
    ],
}


def build_analyze_prompt(question: str, files: PipelineFiles, agent: str, focus: str) -> str:
    parts = [
        "# Research Analysis",
        "",
        "## Research Question",
        question,
        "",
        "## Your Focus",
        *RESEARCH_PERSPECTIVES[focus],
        "",
        f"## Read the sources file first: {files.research_sources_file}",
        f"## Write your analysis to: {files.research_analysis_file(agent)}",
        progress_instruction(files, agent, "analyze_done", 2),
    ]
    return "\n".join(parts)


def build_synthesize_prompt(
    question: str, depth: str, files: PipelineFiles, agent: str, all_agents: List[str]
) -> str:
    parts = [
        "# Research - Final Synthesis",
        "",
        "## Original Question",
        question,
        "",
        "## Read These Files",
        f"- {files.research_sources_file} (Raw sources)",
        *(f"- {files.research_analysis_file(name)}" for name in all_agents),
        "",
        f"## Create Final Report: {files.research_file}",
        f"# Research Report: {question}",
        f"**Generated:** {date.today().isoformat()}",
        f"**Depth:** {depth}",
        "",
        "Sections: Executive Summary, Recommended Approach, Key Findings, "
        "Implementation Guide, Code Examples, Pitfalls to Avoid, Checklist, Sources",
        progress_instruction(files, agent, "synthesize_done", 3),
    ]
    return "\n".join(parts)
