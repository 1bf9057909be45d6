"""LLM client package: provider protocol, Claude implementation and errors."""

from crm_agent.llm_client.claude import ClaudeClient
from crm_agent.llm_client.types import (
    ContentBlock,
    ImageProcessingError,
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMProvider,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
    TextBlock,
    ToolUseBlock,
    text_of,
    tool_uses_of,
)

__all__ = [
    "ClaudeClient",
    "ContentBlock",
    "ImageProcessingError",
    "LLMClientError",
    "LLMConnectionError",
    "LLMInvalidResponse",
    "LLMProvider",
    "LLMRateLimit",
    "LLMResponse",
    "LLMServerError",
    "LLMTimeout",
    "TextBlock",
    "ToolUseBlock",
    "text_of",
    "tool_uses_of",
]
