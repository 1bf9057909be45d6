"""Core types for the orchestrator.

This module defines the data structures used throughout the orchestrator:
- Attachment / ConversationTurn: inputs carried by one request
- ProcessingContext: read-only request context for one run
- TaskState: State machine states
- RunState: Mutable state container passed through execution steps
- ToolUsage / RunResult: Final result returned to the caller
"""

import base64
import mimetypes
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from crm_agent.llm_client import LLMResponse
from crm_agent.tools import PendingAction, ToolResult


@dataclass(frozen=True)
class Attachment:
    """A file attached to the user message.

    Attributes:
        media_type: MIME type, e.g. "image/png".
        data: Base64-encoded file content.
        filename: Original file name, if known.
    """

    media_type: str
    data: str
    filename: str | None = None

    @classmethod
    def from_path(cls, path: Path) -> "Attachment":
        """Read a local file into an attachment."""
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        data = base64.b64encode(path.read_bytes()).decode("ascii")
        return cls(media_type=media_type, data=data, filename=path.name)


@dataclass(frozen=True)
class ConversationTurn:
    """One earlier message of the conversation."""

    role: Literal["user", "assistant"]
    text: str


@dataclass(frozen=True)
class ProcessingContext:
    """Everything known about the inbound message.

    Created at the start of one run and never mutated afterwards.

    Attributes:
        message: The user's message text.
        attachments: Files attached to the message.
        history: Earlier turns of the conversation, oldest first.
        user_id: Chat user id.
        user_name: Chat display name.
        channel: Chat channel id.
        thread_ts: Thread timestamp, when the message is in a thread.
        message_ts: Timestamp of the message itself.
        conversation_id: Stable id grouping runs of one conversation.
    """

    message: str
    attachments: tuple[Attachment, ...] = ()
    history: tuple[ConversationTurn, ...] = ()
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
    thread_ts: str | None = None
    message_ts: str | None = None
    conversation_id: str = field(default_factory=lambda: str(uuid.uuid4()))


class TaskState(str, Enum):
    """State machine states for one run."""

    INIT = "init"
    LLM_CALL = "llm_call"
    TOOL_EXECUTION = "tool_execution"
    EVALUATE_CONTINUATION = "evaluate_continuation"
    SYNTHESIS = "synthesis"
    COMPLETED = "completed"
    AWAITING_APPROVAL = "awaiting_approval"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.AWAITING_APPROVAL, TaskState.FAILED})


class MaxContinuationsExceeded(Exception):
    """Marker for a run stopped by the continuation ceiling.

    Never raised past the orchestrator: the run completes with
    RunResult.incomplete set and a note appended to the answer.
    """

    def __init__(self, max_continuations: int) -> None:
        self.max_continuations = max_continuations
        super().__init__(f"Stopped after {max_continuations} continuations")


@dataclass
class RunState:
    """Mutable state container passed through execution steps.

    Step functions update this object as the run progresses. tool_results
    is append-only for the whole run.

    Attributes:
        request: The request being processed.
        trace_id: Trace id for telemetry.
        preview: Whether mutating tools are held for approval. Cleared for
            continuation turns.
        max_continuations: Ceiling on extra LLM round-trips.
        continuation_depth: Continuations performed so far.
        messages: Provider message list (user/assistant turns).
        tool_results: Every tool result of the run, in execution order.
        turn_results: Tool results of the latest LLM turn.
        last_response: Latest LLM response.
        current_text: Text of the latest LLM response.
        pending_action: Mutating call held back for approval.
        llm_calls: Number of LLM calls made.
        images_stripped: True once images were removed after a rejection.
        incomplete: True when the continuation ceiling stopped the run.
        final_answer: Answer text once synthesized.
        error: Exception if the run failed.
        state: Current state in the state machine.
    """

    request: ProcessingContext
    trace_id: str
    preview: bool
    max_continuations: int
    continuation_depth: int = 0
    messages: list[dict[str, Any]] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    turn_results: list[ToolResult] = field(default_factory=list)
    last_response: LLMResponse | None = None
    current_text: str = ""
    pending_action: PendingAction | None = None
    llm_calls: int = 0
    images_stripped: bool = False
    incomplete: bool = False
    final_answer: str | None = None
    error: Exception | None = None
    state: TaskState = TaskState.INIT


class ToolUsage(BaseModel):
    """Bookkeeping entry for one tool call of a run."""

    name: str
    success: bool
    preview: bool = False


class RunResult(BaseModel):
    """Terminal output of one orchestrator run."""

    success: bool = Field(..., description="Whether the run produced an answer")
    answer: str | None = Field(None, description="Final user-facing text")
    error: str | None = Field(None, description="Sanitized error when the run failed")
    tool_results: list[ToolResult] = Field(default_factory=list)
    tools_used: list[ToolUsage] = Field(default_factory=list)
    pending_action: PendingAction | None = Field(None, description="Write held for approval")
    preview: bool = Field(False, description="True when the run stopped for approval")
    trace_id: str | None = None
    continuations: int = Field(0, ge=0, description="Continuation turns performed")
    llm_calls: int = Field(0, ge=0)
    incomplete: bool = Field(False, description="Stopped by the continuation ceiling")
