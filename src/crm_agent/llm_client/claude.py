"""Claude API client for Anthropic's Claude models.

Wraps AsyncAnthropic.messages.create with tool calling and maps SDK errors
onto the LLM client error hierarchy.
"""

import time
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from crm_agent.config import get_settings
from crm_agent.llm_client.types import (
    ContentBlock,
    ImageProcessingError,
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
)
from crm_agent.telemetry import MODEL_CALL_COMPLETED, MODEL_CALL_ERROR, MODEL_CALL_STARTED, get_logger

log = get_logger(__name__)

_IMAGE_ERROR_MARKERS = ("image", "media_type", "media type")


def _is_image_rejection(error: anthropic.APIStatusError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _IMAGE_ERROR_MARKERS)


def _map_error(error: Exception) -> LLMClientError:
    """Translate an anthropic SDK exception into the client hierarchy.

    Args:
        error: Exception raised by the SDK.

    Returns:
        Matching LLMClientError subclass instance.
    """
    # APITimeoutError subclasses APIConnectionError, so check it first.
    if isinstance(error, anthropic.APITimeoutError):
        return LLMTimeout(str(error))
    if isinstance(error, anthropic.APIConnectionError):
        return LLMConnectionError(str(error))
    if isinstance(error, anthropic.RateLimitError):
        return LLMRateLimit(str(error))
    if isinstance(error, anthropic.BadRequestError):
        if _is_image_rejection(error):
            return ImageProcessingError(str(error))
        return LLMInvalidResponse(str(error))
    if isinstance(error, anthropic.APIStatusError):
        if error.status_code >= 500:
            return LLMServerError(str(error))
        return LLMClientError(str(error))
    return LLMClientError(str(error))


def _to_block(block: Any) -> ContentBlock | None:
    """Convert one SDK content block to a plain dict, dropping other kinds."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return None


class ClaudeClient:
    """Client for the Anthropic Messages API.

    Usage:
        client = ClaudeClient()
        response = await client.create_completion(
            system_prompt="You are a CRM assistant.",
            messages=[{"role": "user", "content": "find Acme"}],
            tools=registry.get_tool_definitions_for_llm(),
        )
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the client, falling back to settings for unset values.

        Args:
            api_key: Anthropic API key.
            model: Model name.
            max_tokens: Maximum tokens per response.
            temperature: Sampling temperature.
            client: Pre-built AsyncAnthropic (tests inject a mock here).

        Raises:
            ValueError: If no API key is available and no client was given.
        """
        settings = get_settings()
        self.model = model or settings.claude_model
        self.max_tokens = max_tokens or settings.claude_max_tokens
        self.temperature = settings.claude_temperature if temperature is None else temperature

        if client is not None:
            self.client = client
            return

        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError(
                "Anthropic API key not configured. Set CRM_AGENT_ANTHROPIC_API_KEY environment variable."
            )
        self.client = AsyncAnthropic(api_key=api_key, timeout=settings.claude_timeout_seconds)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()

    async def create_completion(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_choice: dict[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> LLMResponse:
        """Make one Messages API call.

        Args:
            system_prompt: System prompt text.
            messages: Anthropic-format messages (user/assistant turns).
            tools: Tool schemas, passed through unchanged.
            tool_choice: Optional tool_choice directive.
            trace_id: Trace id for log correlation.

        Returns:
            Normalized LLMResponse.

        Raises:
            LLMClientError: Any provider failure, mapped to a subclass.
        """
        create_params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            create_params["tools"] = tools
        if tool_choice:
            create_params["tool_choice"] = tool_choice

        log.info(
            MODEL_CALL_STARTED,
            model=self.model,
            message_count=len(messages),
            tool_count=len(tools),
            trace_id=trace_id,
        )
        start = time.monotonic()

        try:
            response = await self.client.messages.create(**create_params)
        except anthropic.AnthropicError as e:
            mapped = _map_error(e)
            log.error(
                MODEL_CALL_ERROR,
                model=self.model,
                error=str(e),
                error_type=type(mapped).__name__,
                trace_id=trace_id,
            )
            raise mapped from e

        blocks = [b for b in (_to_block(block) for block in response.content or []) if b]
        usage = {
            "input_tokens": getattr(response.usage, "input_tokens", 0),
            "output_tokens": getattr(response.usage, "output_tokens", 0),
        }

        log.info(
            MODEL_CALL_COMPLETED,
            model=self.model,
            stop_reason=response.stop_reason,
            block_types=[b["type"] for b in blocks],
            latency_ms=round((time.monotonic() - start) * 1000, 1),
            trace_id=trace_id,
            **usage,
        )

        return {
            "content_blocks": blocks,
            "stop_reason": response.stop_reason,
            "usage": usage,
            "model": getattr(response, "model", self.model),
        }
