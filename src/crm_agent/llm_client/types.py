"""Type definitions for the LLM client module.

This module defines the provider-neutral shapes the orchestrator consumes:
- TextBlock / ToolUseBlock: content blocks of one model response
- LLMResponse: normalized response of one completion call
- LLMProvider: protocol any completion backend implements
- Error classes: hierarchy of LLM client errors
"""

from typing import Any, Literal, Protocol

from typing_extensions import NotRequired, TypedDict


class TextBlock(TypedDict):
    """Free text emitted by the model."""

    type: Literal["text"]
    text: str


class ToolUseBlock(TypedDict):
    """A request from the model to invoke one tool.

    Attributes:
        id: Provider-assigned id, echoed back in the matching tool_result.
        name: Tool name as registered.
        input: Arguments as decoded JSON.
    """

    type: Literal["tool_use"]
    id: str
    name: str
    input: dict[str, Any]


ContentBlock = TextBlock | ToolUseBlock


class LLMResponse(TypedDict):
    """Normalized response from one completion call.

    Attributes:
        content_blocks: Text and tool_use blocks in emission order.
        stop_reason: Why generation stopped ("end_turn", "tool_use", ...).
        usage: Token usage (input_tokens, output_tokens).
        model: Model that produced the response.
    """

    content_blocks: list[ContentBlock]
    stop_reason: str | None
    usage: dict[str, Any]
    model: NotRequired[str]


class LLMProvider(Protocol):
    """Completion backend used by the orchestrator."""

    async def create_completion(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_choice: dict[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> LLMResponse:
        """Run one completion and return its content blocks."""
        ...


def text_of(response: LLMResponse) -> str:
    """Concatenate the text blocks of a response.

    Args:
        response: Normalized LLM response.

    Returns:
        Joined text (newline separated), possibly empty.
    """
    parts = [block["text"] for block in response["content_blocks"] if block["type"] == "text"]
    return "\n".join(part for part in parts if part)


def tool_uses_of(response: LLMResponse) -> list[ToolUseBlock]:
    """Return the tool_use blocks of a response in emission order."""
    return [block for block in response["content_blocks"] if block["type"] == "tool_use"]


# Error hierarchy


class LLMClientError(Exception):
    """Base exception for all LLM client errors."""

    pass


class LLMTimeout(LLMClientError):
    """Raised when an LLM request times out."""

    pass


class LLMConnectionError(LLMClientError):
    """Raised when the provider cannot be reached."""

    pass


class LLMRateLimit(LLMClientError):
    """Raised when the provider returns a rate limit error."""

    pass


class LLMServerError(LLMClientError):
    """Raised when the provider returns an error (5xx)."""

    pass


class LLMInvalidResponse(LLMClientError):
    """Raised when the provider rejects the request or returns something unusable."""

    pass


class ImageProcessingError(LLMClientError):
    """Raised when the provider rejects an image attachment."""

    pass
