"""Orchestrator: the entry point that turns one message into a RunResult.

The orchestrator never raises: any failure inside a run is converted into
RunResult(success=False, error=<sanitized message>).
"""

import time
import uuid
from typing import Any

from crm_agent.config import get_settings
from crm_agent.config.validators import resolve_path
from crm_agent.conversation_log import (
    ConversationRecord,
    ConversationSink,
    FileConversationSink,
    run_in_background,
)
from crm_agent.crm import AttioClient
from crm_agent.llm_client import ClaudeClient, LLMProvider
from crm_agent.orchestrator.continuation import ContinuationPolicy, KeywordContinuationController
from crm_agent.orchestrator.executor import RunServices, execute_run
from crm_agent.orchestrator.prompts import SYSTEM_PROMPT
from crm_agent.orchestrator.types import (
    ProcessingContext,
    RunResult,
    RunState,
    TaskState,
    ToolUsage,
)
from crm_agent.security import sanitize_error_message
from crm_agent.telemetry import (
    APPROVAL_GRANTED,
    ORCHESTRATOR_FATAL_ERROR,
    REPLY_READY,
    REQUEST_RECEIVED,
    TraceContext,
    get_logger,
)
from crm_agent.tools import ToolCall, ToolExecutionLayer, ToolResult, get_default_registry

log = get_logger(__name__)

PREVIEW_FALLBACK = "This change needs your approval before I make it: {action}."


def _result_from_state(state: RunState) -> RunResult:
    tools_used = [
        ToolUsage(name=r.tool_name, success=r.success, preview=r.preview)
        for r in state.tool_results
    ]
    common: dict[str, Any] = {
        "tool_results": list(state.tool_results),
        "tools_used": tools_used,
        "trace_id": state.trace_id,
        "continuations": state.continuation_depth,
        "llm_calls": state.llm_calls,
    }

    if state.state == TaskState.AWAITING_APPROVAL and state.pending_action is not None:
        answer = state.current_text
        if not answer.strip():
            answer = PREVIEW_FALLBACK.format(action=state.pending_action.action)
        return RunResult(
            success=True,
            answer=answer,
            preview=True,
            pending_action=state.pending_action,
            **common,
        )

    if state.state == TaskState.FAILED:
        error = state.error or RuntimeError("Run failed")
        return RunResult(success=False, error=sanitize_error_message(error), **common)

    return RunResult(
        success=True,
        answer=state.final_answer,
        incomplete=state.incomplete,
        **common,
    )


class Orchestrator:
    """Processes chat messages through the LLM tool-calling loop.

    Usage:
        orchestrator = Orchestrator.from_settings()
        result = await orchestrator.process(ProcessingContext(message="find Acme"))
        if result.pending_action:
            await orchestrator.execute_action(
                result.pending_action.action, result.pending_action.input
            )
    """

    def __init__(
        self,
        llm: LLMProvider,
        executor: ToolExecutionLayer,
        controller: ContinuationPolicy | None = None,
        sink: ConversationSink | None = None,
        max_continuations: int | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        default_preview: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            llm: Completion backend.
            executor: Tool execution layer.
            controller: Continuation policy (keyword heuristics by default).
            sink: Conversation log sink; None disables logging.
            max_continuations: Default continuation ceiling.
            system_prompt: System prompt for every LLM call.
            default_preview: Preview mode used when process() gets None.
        """
        settings = get_settings()
        self.llm = llm
        self.executor = executor
        self.controller = controller or KeywordContinuationController(
            max_continuations=settings.orchestrator_max_continuations,
            max_search_attempts=settings.orchestrator_max_search_attempts,
        )
        self.sink = sink
        self.max_continuations = (
            settings.orchestrator_max_continuations
            if max_continuations is None
            else max_continuations
        )
        self.system_prompt = system_prompt
        self.default_preview = default_preview

    @classmethod
    def from_settings(cls) -> "Orchestrator":
        """Build an orchestrator with Claude, Attio and the default registry."""
        settings = get_settings()
        sink = (
            FileConversationSink(resolve_path(settings.conversation_log_dir))
            if settings.conversation_log_enabled
            else None
        )
        return cls(
            llm=ClaudeClient(),
            executor=ToolExecutionLayer(get_default_registry(), AttioClient()),
            sink=sink,
            default_preview=settings.orchestrator_default_preview,
        )

    async def aclose(self) -> None:
        """Release the HTTP clients owned by the collaborators."""
        await self.executor.crm.aclose()
        close = getattr(self.llm, "aclose", None)
        if close is not None:
            await close()

    async def process(
        self,
        context: ProcessingContext,
        preview: bool | None = None,
        max_continuations: int | None = None,
        continuation_depth: int = 0,
    ) -> RunResult:
        """Process one message end to end.

        Args:
            context: The request.
            preview: Hold mutating tools for approval (default from settings).
            max_continuations: Continuation ceiling for this run.
            continuation_depth: Continuations already spent (for callers
                resuming a run).

        Returns:
            RunResult; never raises.
        """
        start_time = time.monotonic()
        trace_ctx = TraceContext.new_trace()
        preview = self.default_preview if preview is None else preview
        ceiling = self.max_continuations if max_continuations is None else max_continuations

        log.info(
            REQUEST_RECEIVED,
            trace_id=trace_ctx.trace_id,
            user_id=context.user_id,
            channel=context.channel,
            preview=preview,
            attachments=len(context.attachments),
            history_turns=len(context.history),
        )

        try:
            state = RunState(
                request=context,
                trace_id=trace_ctx.trace_id,
                preview=preview,
                max_continuations=max(0, ceiling),
                continuation_depth=max(0, continuation_depth),
            )
            services = RunServices(
                llm=self.llm,
                tools=self.executor,
                controller=self.controller,
                system_prompt=self.system_prompt,
            )
            state = await execute_run(state, services)
            result = _result_from_state(state)
        except Exception as e:
            log.error(
                ORCHESTRATOR_FATAL_ERROR,
                trace_id=trace_ctx.trace_id,
                error=str(e),
                exc_info=True,
            )
            result = RunResult(
                success=False,
                error=sanitize_error_message(e),
                trace_id=trace_ctx.trace_id,
            )

        processing_time_ms = (time.monotonic() - start_time) * 1000
        log.info(
            REPLY_READY,
            trace_id=trace_ctx.trace_id,
            success=result.success,
            preview=result.preview,
            tools=[usage.name for usage in result.tools_used],
            continuations=result.continuations,
            incomplete=result.incomplete,
            duration_ms=processing_time_ms,
        )
        self._log_conversation(context, result, processing_time_ms)
        return result

    async def execute_action(
        self,
        name: str,
        input: dict[str, Any],
        context: ProcessingContext | None = None,
    ) -> ToolResult:
        """Execute a previously previewed action after approval.

        Args:
            name: Tool name from PendingAction.action.
            input: Input from PendingAction.input.
            context: Request the action came from (used for thread links).

        Returns:
            ToolResult of the real execution.
        """
        trace_ctx = TraceContext.new_trace()
        call = ToolCall(name=name, input=input, call_id=f"approved_{uuid.uuid4().hex[:12]}")
        log.info(APPROVAL_GRANTED, trace_id=trace_ctx.trace_id, action=name)
        return await self.executor.execute(
            call,
            preview_mode=False,
            request=context or ProcessingContext(message=""),
            trace_ctx=trace_ctx,
        )

    def _log_conversation(
        self, context: ProcessingContext, result: RunResult, processing_time_ms: float
    ) -> None:
        if self.sink is None:
            return
        record = ConversationRecord(
            conversation_id=context.conversation_id,
            trace_id=result.trace_id or "unknown",
            user_id=context.user_id,
            user_name=context.user_name,
            channel=context.channel,
            thread_ts=context.thread_ts,
            message_ts=context.message_ts,
            user_message=context.message,
            tools_used=[usage.model_dump() for usage in result.tools_used],
            final_response=result.answer,
            success=result.success,
            error=result.error,
            preview=result.preview,
            processing_time_ms=processing_time_ms,
            attachment_count=len(context.attachments),
            continuation_count=result.continuations,
        )
        run_in_background(self.sink.save(record))
