"""Unit tests for the MCP tool surface."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from gumploop.mcp_server import server
from gumploop.services.pipeline_service import OperationResult


def test_every_operation_is_registered():
    names = {tool.name for tool in asyncio.run(server.mcp.list_tools())}
    assert names == {
        "plan",
        "code",
        "test",
        "debug",
        "research",
        "discover",
        "status",
        "stop",
        "reset",
    }


def test_tool_parameters_are_camel_case():
    tools = {tool.name: tool for tool in asyncio.run(server.mcp.list_tools())}
    properties = tools["plan"].inputSchema["properties"]
    assert set(properties) == {"task", "workDir", "maxIterations"}
    assert tools["plan"].inputSchema["required"] == ["task"]


@patch("gumploop.services.pipeline_service.plan", new_callable=AsyncMock)
def test_success_returns_report_text(mock_plan):
    mock_plan.return_value = OperationResult("## Planning Phase")
    assert asyncio.run(server.plan("Add a cache", "/tmp/work", 2)) == "## Planning Phase"
    mock_plan.assert_awaited_once_with("Add a cache", "/tmp/work", 2)


@patch("gumploop.services.pipeline_service.status")
def test_error_result_raises_tool_error(mock_status):
    mock_status.return_value = OperationResult("Error: disk full", is_error=True)
    with pytest.raises(ToolError, match="disk full"):
        server.status()
