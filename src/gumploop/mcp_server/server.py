"""gumploop MCP server (stdio transport)."""

import logging
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from gumploop.constants import (
    DEFAULT_CODE_ITERATIONS,
    DEFAULT_DEBUG_ITERATIONS,
    DEFAULT_DISCOVERY_ITERATIONS,
    DEFAULT_PLAN_ITERATIONS,
    SERVER_NAME,
)
from gumploop.phases.prompts import DEEP
from gumploop.services import pipeline_service
from gumploop.services.pipeline_service import OperationResult
from gumploop.utils.log_config import setup_logging

logger = logging.getLogger(__name__)

mcp = FastMCP(SERVER_NAME)

WorkDir = Annotated[
    Optional[str],
    Field(
        description="Working directory for the pipeline. Agents write code here. "
        "Defaults to the sandbox project directory when omitted or invalid.",
    ),
]


def _unwrap(result: OperationResult) -> str:
    """Return the text, or raise ToolError so the response carries the error flag."""
    if result.is_error:
        raise ToolError(result.text)
    return result.text


@mcp.tool()
async def plan(
    task: Annotated[str, Field(description="The task or feature to plan")],
    workDir: WorkDir = None,
    maxIterations: Annotated[
        int, Field(description="Maximum planning iterations")
    ] = DEFAULT_PLAN_ITERATIONS,
) -> str:
    """Start planning phase with implementer + UX reviewer + technical reviewer consensus.

    Returns when both reviewers approve or max iterations are reached.
    """
    return _unwrap(await pipeline_service.plan(task, workDir, maxIterations))


@mcp.tool()
async def code(
    maxIterations: Annotated[
        int, Field(description="Maximum coding iterations")
    ] = DEFAULT_CODE_ITERATIONS,
    workDir: WorkDir = None,
) -> str:
    """Start coding phase with coder ↔ reviewer loop. Requires planning to be completed first."""
    return _unwrap(await pipeline_service.code(maxIterations, workDir))


@mcp.tool()
async def test(workDir: WorkDir = None) -> str:
    """Start testing phase. Writes and runs tests for the implemented code."""
    return _unwrap(await pipeline_service.test(workDir))


@mcp.tool()
async def debug(
    maxIterations: Annotated[
        int, Field(description="Maximum debug iterations")
    ] = DEFAULT_DEBUG_ITERATIONS,
    workDir: WorkDir = None,
) -> str:
    """Start debugging phase with analyzer → fixer → re-test loop. Requires coding."""
    return _unwrap(await pipeline_service.debug(maxIterations, workDir))


@mcp.tool()
async def research(
    question: Annotated[str, Field(description="The question to research")],
    workDir: WorkDir = None,
    depth: Annotated[
        str, Field(description="quick (3 search queries) or deep (7 search queries)")
    ] = DEEP,
) -> str:
    """Research a topic: gather sources, analyze from three perspectives, synthesize."""
    return _unwrap(await pipeline_service.research(question, workDir, depth))


@mcp.tool()
async def discover(
    workDir: WorkDir = None,
    maxIterations: Annotated[
        int, Field(description="Maximum consensus iterations")
    ] = DEFAULT_DISCOVERY_ITERATIONS,
) -> str:
    """Analyze the codebase and let the agents agree on features worth building."""
    return _unwrap(await pipeline_service.discover(workDir, maxIterations))


@mcp.tool()
def status() -> str:
    """Get current pipeline status."""
    return _unwrap(pipeline_service.status())


@mcp.tool()
def stop() -> str:
    """Stop all running agents and reset current phase."""
    return _unwrap(pipeline_service.stop())


@mcp.tool()
def reset() -> str:
    """Reset entire pipeline state and clear the .gumploop directory."""
    return _unwrap(pipeline_service.reset())


def main():
    """Main entry point for the MCP server."""
    setup_logging()
    logger.info(f"{SERVER_NAME} MCP server running on stdio")
    mcp.run()


if __name__ == "__main__":
    main()
