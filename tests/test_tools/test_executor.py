"""Tests for ToolExecutionLayer."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel, Field

from crm_agent.crm import AttioClient, CRMConnectionError, CRMNote
from crm_agent.orchestrator.types import ProcessingContext
from crm_agent.telemetry import TraceContext
from crm_agent.tools import ToolCall, ToolCallState, ToolResult, register_crm_tools
from crm_agent.tools.executor import ToolExecutionLayer
from crm_agent.tools.gate import PREVIEW_MESSAGE
from crm_agent.tools.registry import ToolRegistry
from crm_agent.tools.types import ToolContext, ToolDefinition


class EchoInput(BaseModel):
    text: str = Field(..., min_length=1)


async def echo_handler(args: EchoInput, ctx: ToolContext) -> dict[str, Any]:
    return {"echo": args.text, "message": f"Echoed {args.text}"}


async def failing_handler(args: EchoInput, ctx: ToolContext) -> dict[str, Any]:
    raise CRMConnectionError("Failed to connect to Attio: network down")


@pytest.fixture
def trace_ctx() -> TraceContext:
    """Fixture for trace context."""
    return TraceContext.new_trace()


@pytest.fixture
def request_ctx() -> ProcessingContext:
    """Fixture for the request context handed to handlers."""
    return ProcessingContext(message="test message")


@pytest.fixture
def crm() -> MagicMock:
    """Fixture for a mocked CRM adapter."""
    client = MagicMock(spec=AttioClient)
    client.app_url = "https://app.attio.com"
    client.workspace_slug = "test-ws"
    client.create_note = AsyncMock(
        return_value=CRMNote(id="n1", title="Update from Slack", content="hello")
    )
    return client


@pytest.fixture
def execution_layer(crm: MagicMock) -> ToolExecutionLayer:
    """Fixture for tool execution layer with test tools and the CRM catalog."""
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(name="echo", description="Echo", capability="search", input_model=EchoInput),
        echo_handler,
    )
    registry.register(
        ToolDefinition(
            name="flaky", description="Always fails", capability="search", input_model=EchoInput
        ),
        failing_handler,
    )
    register_crm_tools(registry)
    return ToolExecutionLayer(registry=registry, crm=crm)


@pytest.mark.asyncio
async def test_execute_tool_success(execution_layer, request_ctx, trace_ctx) -> None:
    """Test successful tool execution."""
    call = ToolCall(name="echo", input={"text": "hi"}, call_id="call_1")

    result = await execution_layer.execute(call, False, request_ctx, trace_ctx)

    assert isinstance(result, ToolResult)
    assert result.success is True
    assert result.tool_name == "echo"
    assert result.call_id == "call_1"
    assert result.output == {"echo": "hi"}
    assert result.message == "Echoed hi"
    assert result.error is None
    assert result.state == ToolCallState.SUCCEEDED
    assert result.latency_ms >= 0


@pytest.mark.asyncio
async def test_execute_unknown_tool(execution_layer, request_ctx, trace_ctx) -> None:
    """Test executing an unknown tool returns a failed result instead of raising."""
    call = ToolCall(name="frobnicate", input={}, call_id="call_1")

    result = await execution_layer.execute(call, False, request_ctx, trace_ctx)

    assert result.success is False
    assert result.error == "Unknown tool: frobnicate"
    assert result.output == {}
    assert result.state == ToolCallState.FAILED


@pytest.mark.asyncio
async def test_execute_invalid_input(execution_layer, request_ctx, trace_ctx) -> None:
    """Test input failing validation is reported as a failed result."""
    call = ToolCall(name="echo", input={"text": ""}, call_id="call_1")

    result = await execution_layer.execute(call, False, request_ctx, trace_ctx)

    assert result.success is False
    assert result.error.startswith("Invalid input for echo: text:")


@pytest.mark.asyncio
async def test_execute_handler_exception(execution_layer, request_ctx, trace_ctx) -> None:
    """Test adapter exceptions are normalized into a failed result."""
    call = ToolCall(name="flaky", input={"text": "hi"}, call_id="call_1")

    result = await execution_layer.execute(call, False, request_ctx, trace_ctx)

    assert result.success is False
    assert "network down" in result.error
    assert result.preview is False


@pytest.mark.asyncio
async def test_preview_skips_mutating_tool(execution_layer, crm, request_ctx, trace_ctx) -> None:
    """Test mutating tools in preview mode never reach the adapter."""
    call = ToolCall(
        name="create_note",
        input={"entity_type": "company", "entity_id": "c1", "note_content": "hello"},
        call_id="call_1",
    )

    result = await execution_layer.execute(call, True, request_ctx, trace_ctx)

    assert result.success is True
    assert result.preview is True
    assert result.message == PREVIEW_MESSAGE
    assert result.state == ToolCallState.SKIPPED_PREVIEW
    crm.create_note.assert_not_awaited()


@pytest.mark.asyncio
async def test_preview_does_not_skip_read_tool(execution_layer, request_ctx, trace_ctx) -> None:
    """Test read-only tools run normally in preview mode."""
    call = ToolCall(name="echo", input={"text": "hi"}, call_id="call_1")

    result = await execution_layer.execute(call, True, request_ctx, trace_ctx)

    assert result.preview is False
    assert result.output == {"echo": "hi"}


@pytest.mark.asyncio
async def test_mutating_tool_executes_without_preview(
    execution_layer, crm, request_ctx, trace_ctx
) -> None:
    """Test mutating tools reach the adapter exactly once outside preview mode."""
    call = ToolCall(
        name="create_note",
        input={"entity_type": "company", "entity_id": "c1", "note_content": "hello"},
        call_id="call_1",
    )

    result = await execution_layer.execute(call, False, request_ctx, trace_ctx)

    assert result.success is True
    assert result.preview is False
    assert result.output["note_id"] == "n1"
    crm.create_note.assert_awaited_once_with("company", "c1", "hello", None)


@pytest.mark.asyncio
async def test_invalid_write_input_fails_even_in_preview(
    execution_layer, crm, request_ctx, trace_ctx
) -> None:
    """Test invalid input for a mutating tool is reported instead of previewed."""
    call = ToolCall(name="create_note", input={"entity_type": "company"}, call_id="call_1")

    result = await execution_layer.execute(call, True, request_ctx, trace_ctx)

    assert result.success is False
    assert result.preview is False
    assert "Invalid input for create_note" in result.error
    crm.create_note.assert_not_awaited()
