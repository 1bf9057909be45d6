"""Type definitions for the tool execution layer.

This module defines the Pydantic models for tool definitions, tool calls,
results and pending actions, plus the per-call context handed to handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field

from crm_agent.telemetry import TraceContext

if TYPE_CHECKING:
    from crm_agent.crm import AttioClient
    from crm_agent.orchestrator.types import ProcessingContext


class ToolDefinition(BaseModel):
    """Catalog entry for one tool.

    The input model is the single source of truth for the tool's arguments:
    the LLM schema is generated from it and handler input is validated
    against it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., pattern=r"^[a-z][a-z0-9_]{0,63}$", description="Unique tool name")
    description: str = Field(..., min_length=1, description="Description shown to the LLM")
    capability: Literal["search", "fetch_detail", "mutate"] = Field(
        ..., description="What the tool does to CRM state"
    )
    input_model: type[BaseModel] = Field(..., description="Pydantic model for tool input")
    mutating: bool = Field(False, description="Whether the tool changes CRM data")

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool input, in the shape the LLM expects."""
        return clean_schema(self.input_model.model_json_schema())


class ToolCall(BaseModel):
    """One tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    call_id: str


class ToolCallState(str, Enum):
    """Terminal states of a tool call after the write-action gate."""

    SKIPPED_PREVIEW = "skipped_preview"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ToolResult(BaseModel):
    """Immutable outcome of one tool call."""

    model_config = ConfigDict(frozen=True)

    tool_name: str = Field(..., description="Name of the requested tool")
    input: dict[str, Any] = Field(default_factory=dict, description="Input as requested")
    call_id: str | None = Field(None, description="Correlation id of the tool call")
    success: bool = Field(..., description="Whether the call succeeded")
    output: dict[str, Any] = Field(default_factory=dict, description="Tool-specific data")
    message: str | None = Field(None, description="Short human-readable outcome")
    error: str | None = Field(None, description="Error message if failed")
    preview: bool = Field(False, description="True when skipped for approval")
    latency_ms: float = Field(0.0, ge=0, description="Execution latency in milliseconds")

    @property
    def state(self) -> ToolCallState:
        """Gate state this result represents."""
        if self.preview:
            return ToolCallState.SKIPPED_PREVIEW
        return ToolCallState.SUCCEEDED if self.success else ToolCallState.FAILED

    def to_llm_content(self) -> str:
        """Serialize for a tool_result block."""
        payload: dict[str, Any] = {"success": self.success}
        if self.message:
            payload["message"] = self.message
        if self.error:
            payload["error"] = self.error
        if self.output:
            payload["data"] = self.output
        return orjson.dumps(payload, default=str).decode()


class PendingAction(BaseModel):
    """A mutating call held back for approval."""

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., description="Tool name to execute after approval")
    input: dict[str, Any] = Field(default_factory=dict, description="Input to execute with")
    call_id: str = Field(..., description="Tool call id that produced it")


@dataclass(frozen=True)
class ToolContext:
    """Everything a handler may use besides its input.

    Attributes:
        crm: CRM adapter.
        request: Context of the run that issued the call.
        trace: Trace context (span of this call).
    """

    crm: AttioClient
    request: ProcessingContext
    trace: TraceContext


ToolHandler = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


def _resolve_refs(node: Any, defs: dict[str, Any]) -> Any:
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/$defs/"):
            target = dict(defs[ref.split("/")[-1]])
            target.update({k: v for k, v in node.items() if k != "$ref"})
            return _resolve_refs(target, defs)
        return {key: _resolve_refs(value, defs) for key, value in node.items()}
    if isinstance(node, list):
        return [_resolve_refs(item, defs) for item in node]
    return node


def _simplify(node: Any) -> Any:
    if isinstance(node, list):
        return [_simplify(item) for item in node]
    if not isinstance(node, dict):
        return node

    node = {k: v for k, v in node.items() if k != "title"}
    all_of = node.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1 and isinstance(all_of[0], dict):
        merged = dict(all_of[0])
        merged.update({k: v for k, v in node.items() if k != "allOf"})
        node = {k: v for k, v in merged.items() if k != "title"}
    any_of = node.get("anyOf")
    if isinstance(any_of, list):
        non_null = [option for option in any_of if option.get("type") != "null"]
        if len(non_null) == 1 and len(non_null) < len(any_of):
            merged = {k: v for k, v in node.items() if k != "anyOf"}
            merged.update(non_null[0])
            node = merged
    if "default" in node and node["default"] is None:
        del node["default"]

    simplified: dict[str, Any] = {}
    for key, value in node.items():
        if key == "properties" and isinstance(value, dict):
            simplified[key] = {name: _simplify(prop) for name, prop in value.items()}
        else:
            simplified[key] = _simplify(value)
    return simplified


def clean_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Turn a Pydantic JSON schema into a compact tool input_schema.

    Inlines $defs, drops titles and null defaults, and collapses
    Optional[X] (anyOf X/null) into X.

    Args:
        schema: Output of BaseModel.model_json_schema().

    Returns:
        Schema suitable for the provider's tool definition.
    """
    defs = schema.get("$defs", {})
    inlined = _resolve_refs({k: v for k, v in schema.items() if k != "$defs"}, defs)
    return _simplify(inlined)
