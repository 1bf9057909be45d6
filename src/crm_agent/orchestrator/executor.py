"""Run execution state machine.

A run moves through explicit states driven by step functions:

    INIT -> LLM_CALL -> TOOL_EXECUTION -> EVALUATE_CONTINUATION
                ^                                |
                +--------- (continue) -----------+
                                                 |
                                            SYNTHESIS -> COMPLETED

TOOL_EXECUTION ends the run in AWAITING_APPROVAL when a mutating tool is
held back in preview mode. Continuation is a loop with an explicit depth
counter, so every run makes at most max_continuations + 1 model turns
(plus one retry without images).
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from crm_agent.llm_client import ImageProcessingError, LLMProvider, text_of, tool_uses_of
from crm_agent.orchestrator.continuation import ContinuationPolicy
from crm_agent.orchestrator.prompts import (
    build_continuation_messages,
    build_initial_messages,
    has_images,
    strip_images,
)
from crm_agent.orchestrator.synthesis import mark_incomplete, synthesize
from crm_agent.orchestrator.types import (
    TERMINAL_STATES,
    MaxContinuationsExceeded,
    RunState,
    TaskState,
)
from crm_agent.telemetry import (
    APPROVAL_REQUIRED,
    CONTINUATION_CEILING_REACHED,
    CONTINUATION_DECIDED,
    IMAGE_RETRY,
    ORCHESTRATOR_FATAL_ERROR,
    RUN_FAILED,
    TraceContext,
    get_logger,
)
from crm_agent.tools import PendingAction, ToolCall, ToolExecutionLayer

log = get_logger(__name__)


@dataclass(frozen=True)
class RunServices:
    """Collaborators shared by every step of a run.

    Attributes:
        llm: Completion backend.
        tools: Tool execution layer (registry + CRM adapter).
        controller: Continuation policy.
        system_prompt: System prompt for every LLM call.
    """

    llm: LLMProvider
    tools: ToolExecutionLayer
    controller: ContinuationPolicy
    system_prompt: str


StepFunction = Callable[[RunState, RunServices, TraceContext], Awaitable[TaskState]]


async def execute_run(state: RunState, services: RunServices) -> RunState:
    """Main execution loop: iterate states until terminal.

    Exceptions raised by a step end the run in FAILED with the exception
    stored on the state; nothing propagates to the caller.

    Args:
        state: Fresh run state.
        services: Collaborators for the run.

    Returns:
        The same state object after reaching a terminal state.
    """
    trace_ctx = TraceContext.from_id(state.trace_id)

    step_functions: dict[TaskState, StepFunction] = {
        TaskState.INIT: step_init,
        TaskState.LLM_CALL: step_llm_call,
        TaskState.TOOL_EXECUTION: step_tool_execution,
        TaskState.EVALUATE_CONTINUATION: step_evaluate_continuation,
        TaskState.SYNTHESIS: step_synthesis,
    }

    current = state.state
    try:
        while current not in TERMINAL_STATES:
            state.state = current
            step_func = step_functions.get(current)
            if step_func is None:
                state.error = ValueError(f"Unknown state: {current}")
                current = TaskState.FAILED
                break
            current = await step_func(state, services, trace_ctx)
    except Exception as e:
        log.error(
            ORCHESTRATOR_FATAL_ERROR,
            trace_id=state.trace_id,
            state=state.state.value,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        state.error = e
        current = TaskState.FAILED

    state.state = current
    if current == TaskState.FAILED:
        log.warning(
            RUN_FAILED,
            trace_id=state.trace_id,
            error=str(state.error) if state.error else "Unknown error",
            llm_calls=state.llm_calls,
        )
    return state


async def step_init(state: RunState, services: RunServices, trace_ctx: TraceContext) -> TaskState:
    """Build the first message list from the request."""
    state.messages = build_initial_messages(state.request, state.trace_id)
    return TaskState.LLM_CALL


async def step_llm_call(
    state: RunState, services: RunServices, trace_ctx: TraceContext
) -> TaskState:
    """Call the model; retry once without images if it rejects them.

    Returns:
        TOOL_EXECUTION when the model requested tools, SYNTHESIS otherwise.
    """
    tools = services.tools.registry.get_tool_definitions_for_llm()

    state.llm_calls += 1
    try:
        response = await services.llm.create_completion(
            system_prompt=services.system_prompt,
            messages=state.messages,
            tools=tools,
            trace_id=state.trace_id,
        )
    except ImageProcessingError as e:
        if state.images_stripped or not has_images(state.messages):
            raise
        log.warning(IMAGE_RETRY, trace_id=state.trace_id, error=str(e))
        state.messages = strip_images(state.messages)
        state.images_stripped = True
        state.llm_calls += 1
        response = await services.llm.create_completion(
            system_prompt=services.system_prompt,
            messages=state.messages,
            tools=tools,
            trace_id=state.trace_id,
        )

    state.last_response = response
    state.current_text = text_of(response)
    state.turn_results = []

    if tool_uses_of(response):
        return TaskState.TOOL_EXECUTION
    return TaskState.SYNTHESIS


async def step_tool_execution(
    state: RunState, services: RunServices, trace_ctx: TraceContext
) -> TaskState:
    """Run the requested tools sequentially, in emission order.

    Returns:
        AWAITING_APPROVAL when a write was held back in preview mode,
        EVALUATE_CONTINUATION otherwise.
    """
    if state.last_response is None:
        raise ValueError("tool execution reached without an LLM response")

    for block in tool_uses_of(state.last_response):
        call = ToolCall(name=block["name"], input=block["input"], call_id=block["id"])
        result = await services.tools.execute(call, state.preview, state.request, trace_ctx)
        state.tool_results.append(result)
        state.turn_results.append(result)

        if result.preview:
            state.pending_action = PendingAction(
                action=call.name, input=call.input, call_id=call.call_id
            )
            log.info(
                APPROVAL_REQUIRED,
                trace_id=state.trace_id,
                action=call.name,
                call_id=call.call_id,
            )
            return TaskState.AWAITING_APPROVAL

    return TaskState.EVALUATE_CONTINUATION


async def step_evaluate_continuation(
    state: RunState, services: RunServices, trace_ctx: TraceContext
) -> TaskState:
    """Ask the continuation policy whether another model turn is needed.

    Returns:
        LLM_CALL to continue, SYNTHESIS otherwise.
    """
    if state.last_response is None:
        raise ValueError("continuation check reached without an LLM response")

    decision = services.controller.evaluate(
        state.request,
        state.tool_results,
        state.current_text,
        depth=state.continuation_depth,
        max_continuations=state.max_continuations,
        awaiting_tool_results=state.last_response["stop_reason"] == "tool_use",
    )
    log.info(
        CONTINUATION_DECIDED,
        trace_id=state.trace_id,
        proceed=decision.proceed,
        reason=decision.reason,
        depth=state.continuation_depth,
    )

    if decision.ceiling_reached or (
        decision.proceed and state.continuation_depth >= state.max_continuations
    ):
        marker = MaxContinuationsExceeded(state.max_continuations)
        log.warning(
            CONTINUATION_CEILING_REACHED,
            trace_id=state.trace_id,
            reason=decision.reason,
            detail=str(marker),
        )
        state.incomplete = True
        return TaskState.SYNTHESIS

    if not decision.proceed:
        return TaskState.SYNTHESIS

    state.messages.extend(
        build_continuation_messages(
            state.last_response,
            state.turn_results,
            state.request,
            state.tool_results,
            decision.reason,
        )
    )
    state.continuation_depth += 1
    # Approval only gates the first write attempt of a run
    state.preview = False
    return TaskState.LLM_CALL


async def step_synthesis(
    state: RunState, services: RunServices, trace_ctx: TraceContext
) -> TaskState:
    """Finalize the answer text."""
    answer = synthesize(state.current_text, state.tool_results, state.request)
    if state.incomplete:
        answer = mark_incomplete(answer)
    state.final_answer = answer
    return TaskState.COMPLETED
