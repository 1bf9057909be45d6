"""Prompts and message building for the CRM assistant.

This module contains:
1. The system prompt naming the tools and working principles
2. User turn construction (history, text, validated image attachments)
3. Continuation turn construction (tool_result blocks plus a step summary)
4. Image stripping for the no-images retry
"""

import base64
import binascii
from collections.abc import Sequence
from typing import Any

from crm_agent.llm_client import LLMResponse
from crm_agent.orchestrator.types import Attachment, ProcessingContext
from crm_agent.telemetry import ATTACHMENT_REJECTED, get_logger
from crm_agent.tools import ToolResult

log = get_logger(__name__)

# ============================================================================
# System Prompt
# ============================================================================

SYSTEM_PROMPT = """You are a CRM assistant integrated with Attio CRM and deployed in Slack.

*Core Capabilities*

*Search & Discovery*
- *search_crm*: Find companies, deals, and people by name (supports fuzzy matching)
- *advanced_search*: Filter by deal value, dates, status, stage, industry or location
- *search_related_entities*: Find contacts, deals or companies related to a record
- *search_by_time_range*: Find records created or updated within a period
- *get_entity_details*: Fetch the full record for an id

*Notes*
- *get_notes*: Retrieve notes for a record (search for the record first)
- *create_note*: Add a note; the Slack thread link is attached automatically
- *delete_note*: Remove a note (find it with get_notes first)

*Updates & Creation*
- *update_entity_field*: Update one field on a company, person or deal
- *create_person*, *create_company*, *create_deal*: Create new records

*Images*
- You can read screenshots and documents shared in the conversation and use
  what they contain when searching or writing notes.

*Working Principles*
- Act, don't just plan: call the tools needed to complete the request.
- When asked to count or read notes, call get_notes after finding the record.
- ALWAYS use the exact "id" from search results for entity_id. Never use a
  name, slug or made-up id.
- If a search returns nothing, retry with a spelling variant or a shorter
  name (drop "The", "Inc", "Corp") before giving up.
- For ambiguous matches pick the most likely one (company > deal > person)
  and say which you chose.
- Changes to CRM data may need the user's approval; describe exactly what
  will change.

*Response Format*
- Slack formatting: *single asterisks* for bold, no markdown headers.
- Link records as <url|Name> using the url field from tool results.
- Confirm every change with the new value and a link to the record.
- If the CRM is unavailable, say so briefly and suggest trying again.
"""

IMAGE_OMITTED_NOTE = (
    "[Note: the attached image could not be processed and was removed. "
    "Answer from the text alone and mention that the image was unreadable.]"
)

SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
MAX_IMAGE_BYTES = 5 * 1024 * 1024

_CONTINUATION_HINTS = {
    "note_intent": (
        "The user asked about notes and the record has been found. "
        "Call get_notes with the record id from the results above."
    ),
    "spelling_retry": (
        "The search found nothing. Try a spelling variant or a shorter form of the name."
    ),
}


# ============================================================================
# User turn
# ============================================================================


def attachment_error(attachment: Attachment) -> str | None:
    """Check whether an attachment can be sent to the model as an image.

    Args:
        attachment: Attachment to check.

    Returns:
        Reason it is unusable, or None if it is valid.
    """
    if attachment.media_type not in SUPPORTED_IMAGE_TYPES:
        return f"unsupported media type {attachment.media_type}"
    if not attachment.data:
        return "empty data"
    try:
        raw = base64.b64decode(attachment.data, validate=True)
    except (binascii.Error, ValueError):
        return "invalid base64 data"
    if not raw:
        return "empty data"
    if len(raw) > MAX_IMAGE_BYTES:
        return f"image larger than {MAX_IMAGE_BYTES} bytes"
    return None


def image_blocks(attachments: Sequence[Attachment], trace_id: str | None = None) -> list[dict[str, Any]]:
    """Convert valid image attachments to provider image blocks.

    Invalid attachments are logged and dropped.
    """
    blocks: list[dict[str, Any]] = []
    for attachment in attachments:
        reason = attachment_error(attachment)
        if reason:
            log.warning(
                ATTACHMENT_REJECTED,
                filename=attachment.filename,
                media_type=attachment.media_type,
                reason=reason,
                trace_id=trace_id,
            )
            continue
        blocks.append(
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": attachment.media_type,
                    "data": attachment.data,
                },
            }
        )
    return blocks


def format_user_text(context: ProcessingContext) -> str:
    """Render the user text with the conversation history."""
    text = f"User: {context.message}"
    if context.history:
        lines = [
            f"{'Assistant' if turn.role == 'assistant' else 'User'}: {turn.text}"
            for turn in context.history
        ]
        text += "\n\nConversation History:\n" + "\n".join(lines)
    return text


def build_user_content(
    context: ProcessingContext, trace_id: str | None = None
) -> str | list[dict[str, Any]]:
    """Build the content of the first user turn.

    Args:
        context: The request being processed.
        trace_id: Trace id for rejection logs.

    Returns:
        Plain text when there are no usable images, otherwise a list of
        image blocks followed by one text block.
    """
    text = format_user_text(context)
    images = image_blocks(context.attachments, trace_id)
    if not images:
        return text
    return [*images, {"type": "text", "text": text}]


def build_initial_messages(
    context: ProcessingContext, trace_id: str | None = None
) -> list[dict[str, Any]]:
    """Message list for the first LLM call of a run."""
    return [{"role": "user", "content": build_user_content(context, trace_id)}]


def has_images(messages: Sequence[dict[str, Any]]) -> bool:
    """True if any message carries an image block."""
    return any(
        isinstance(message["content"], list)
        and any(block.get("type") == "image" for block in message["content"])
        for message in messages
    )


def strip_images(messages: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Remove image blocks, noting the omission in the affected turns.

    Args:
        messages: Provider message list.

    Returns:
        New message list; the input is not modified.
    """
    stripped: list[dict[str, Any]] = []
    for message in messages:
        content = message["content"]
        if not isinstance(content, list) or not any(b.get("type") == "image" for b in content):
            stripped.append(message)
            continue
        kept = [block for block in content if block.get("type") != "image"]
        kept.append({"type": "text", "text": IMAGE_OMITTED_NOTE})
        stripped.append({**message, "content": kept})
    return stripped


# ============================================================================
# Continuation turn
# ============================================================================


def _describe(result: ToolResult) -> str:
    if result.preview:
        return f"- {result.tool_name}: awaiting approval"
    if not result.success:
        return f"- {result.tool_name}: failed ({result.error})"
    count = result.output.get("count")
    if isinstance(count, int):
        return f"- {result.tool_name}: succeeded ({count} result{'s' if count != 1 else ''})"
    return f"- {result.tool_name}: succeeded"


def summarize_steps(
    context: ProcessingContext, tool_results: Sequence[ToolResult], reason: str | None = None
) -> str:
    """Text block reminding the model what has been done so far.

    Args:
        context: The request being processed.
        tool_results: Every tool result of the run so far.
        reason: Continuation rule that fired, used to add a hint.

    Returns:
        Summary text.
    """
    lines = ["Completed steps so far:"]
    lines.extend(_describe(result) for result in tool_results)
    hint = _CONTINUATION_HINTS.get(reason or "")
    if hint:
        lines.append("")
        lines.append(hint)
    lines.append("")
    lines.append(f'Continue with the original request: "{context.message}"')
    return "\n".join(lines)


def build_continuation_messages(
    response: LLMResponse,
    turn_results: Sequence[ToolResult],
    context: ProcessingContext,
    all_results: Sequence[ToolResult],
    reason: str | None = None,
) -> list[dict[str, Any]]:
    """Assistant turn plus the user turn that feeds tool results back.

    Args:
        response: The LLM response whose tool calls were executed.
        turn_results: Results of those tool calls, in emission order.
        context: The request being processed.
        all_results: Every tool result of the run so far.
        reason: Continuation rule that fired.

    Returns:
        Two messages to append to the conversation.
    """
    assistant = {"role": "assistant", "content": list(response["content_blocks"])}

    blocks: list[dict[str, Any]] = []
    for result in turn_results:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": result.call_id,
            "content": result.to_llm_content(),
        }
        if not result.success:
            block["is_error"] = True
        blocks.append(block)
    blocks.append({"type": "text", "text": summarize_steps(context, all_results, reason)})

    return [assistant, {"role": "user", "content": blocks}]
