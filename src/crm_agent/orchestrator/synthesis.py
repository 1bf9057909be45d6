"""Response synthesis: turn the model's last turn into the final answer."""

from collections.abc import Sequence

from crm_agent.orchestrator.types import ProcessingContext
from crm_agent.tools import ToolResult

READY_FALLBACK = "I'm ready to help with your CRM. What would you like to look up or update?"
ACTIONS_FALLBACK = "I processed your request. Let me know if you need anything else."
INCOMPLETE_NOTE = (
    "_I reached the limit of follow-up steps for one request, "
    "so this answer may be incomplete._"
)


def synthesize(
    llm_text: str | None,
    tool_results: Sequence[ToolResult],
    context: ProcessingContext | None = None,
) -> str:
    """Build the user-facing answer.

    The model's own text always wins. Generic filler is only used when the
    model produced no prose; no facts are ever made up here.

    Args:
        llm_text: Text of the final LLM turn.
        tool_results: Tool results of the run.
        context: The request (unused by the default rules).

    Returns:
        Answer text.
    """
    if llm_text and llm_text.strip():
        return llm_text
    if not tool_results:
        return READY_FALLBACK
    return ACTIONS_FALLBACK


def mark_incomplete(answer: str) -> str:
    """Append the possibly-incomplete note to an answer."""
    return f"{answer}\n\n{INCOMPLETE_NOTE}"
