"""Tool execution layer with input validation, write gating and telemetry.

Every call ends in a ToolResult: unknown tools, invalid input and adapter
failures are reported as failed results, never raised.
"""

import time
from typing import TYPE_CHECKING

from pydantic import ValidationError

from crm_agent.telemetry import (
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_SKIPPED,
    TOOL_CALL_STARTED,
    TraceContext,
    get_logger,
)
from crm_agent.tools.gate import PREVIEW_MESSAGE, should_skip
from crm_agent.tools.registry import ToolRegistry
from crm_agent.tools.types import ToolCall, ToolContext, ToolResult

if TYPE_CHECKING:
    from crm_agent.crm import AttioClient
    from crm_agent.orchestrator.types import ProcessingContext

log = get_logger(__name__)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class ToolExecutionLayer:
    """Dispatches tool calls to their handlers."""

    def __init__(self, registry: ToolRegistry, crm: "AttioClient") -> None:
        """Initialize tool execution layer.

        Args:
            registry: Registry with the available tools.
            crm: CRM adapter handed to handlers through ToolContext.
        """
        self.registry = registry
        self.crm = crm

    async def execute(
        self,
        call: ToolCall,
        preview_mode: bool,
        request: "ProcessingContext",
        trace_ctx: TraceContext,
    ) -> ToolResult:
        """Execute one tool call.

        Args:
            call: The tool call to run.
            preview_mode: When True, mutating tools are skipped and reported
                as awaiting approval.
            request: Context of the run that issued the call.
            trace_ctx: Trace context for telemetry.

        Returns:
            ToolResult with the outcome.
        """
        registered = self.registry.get_tool(call.name)
        if registered is None:
            error_msg = f"Unknown tool: {call.name}"
            log.warning(
                TOOL_CALL_FAILED,
                tool_name=call.name,
                error=error_msg,
                available=self.registry.list_tool_names(),
                trace_id=trace_ctx.trace_id,
            )
            return ToolResult(
                tool_name=call.name,
                input=call.input,
                call_id=call.call_id,
                success=False,
                error=error_msg,
            )

        tool_def, handler = registered

        try:
            arguments = tool_def.input_model.model_validate(call.input)
        except ValidationError as e:
            error_msg = f"Invalid input for {call.name}: {_format_validation_error(e)}"
            log.warning(
                TOOL_CALL_FAILED,
                tool_name=call.name,
                error=error_msg,
                trace_id=trace_ctx.trace_id,
            )
            return ToolResult(
                tool_name=call.name,
                input=call.input,
                call_id=call.call_id,
                success=False,
                error=error_msg,
            )

        if should_skip(call.name, preview_mode):
            log.info(
                TOOL_CALL_SKIPPED,
                tool_name=call.name,
                call_id=call.call_id,
                reason="preview_mode",
                trace_id=trace_ctx.trace_id,
            )
            return ToolResult(
                tool_name=call.name,
                input=call.input,
                call_id=call.call_id,
                success=True,
                preview=True,
                message=PREVIEW_MESSAGE,
            )

        span_ctx, span_id = trace_ctx.new_span()
        log.info(
            TOOL_CALL_STARTED,
            tool_name=call.name,
            arguments=call.input,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        start_time = time.monotonic()
        context = ToolContext(crm=self.crm, request=request, trace=span_ctx)
        try:
            output = await handler(arguments, context)
        except Exception as e:
            latency_ms = (time.monotonic() - start_time) * 1000
            log.error(
                TOOL_CALL_FAILED,
                tool_name=call.name,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=latency_ms,
                trace_id=trace_ctx.trace_id,
                span_id=span_id,
            )
            return ToolResult(
                tool_name=call.name,
                input=call.input,
                call_id=call.call_id,
                success=False,
                error=str(e) or type(e).__name__,
                latency_ms=latency_ms,
            )

        latency_ms = (time.monotonic() - start_time) * 1000
        log.info(
            TOOL_CALL_COMPLETED,
            tool_name=call.name,
            success=True,
            latency_ms=latency_ms,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        message = output.pop("message", None) if isinstance(output, dict) else None
        return ToolResult(
            tool_name=call.name,
            input=call.input,
            call_id=call.call_id,
            success=True,
            output=output if isinstance(output, dict) else {"result": output},
            message=message,
            latency_ms=latency_ms,
        )
