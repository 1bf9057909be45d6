"""Continuation controller: decides whether a run needs another LLM turn.

The default policy is a keyword heuristic over the original message text
and the tool results gathered so far. It is best-effort: stopping early is
preferred over looping, and the hard ceiling bounds every run regardless of
what the heuristics say. Any object implementing ContinuationPolicy can
replace it without touching the orchestrator.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from crm_agent.orchestrator.types import ProcessingContext
from crm_agent.telemetry import get_logger
from crm_agent.tools import ToolResult, is_write_action

log = get_logger(__name__)

DEFAULT_MAX_CONTINUATIONS = 3
DEFAULT_MAX_SEARCH_ATTEMPTS = 2

SEARCH_TOOLS = frozenset(
    {"search_crm", "advanced_search", "search_related_entities", "search_by_time_range"}
)
NOTES_TOOL = "get_notes"

_NOTE_INTENT = re.compile(r"\bnotes?\b")
_LOOKUP_INTENT = re.compile(
    r"\b(find|search|look\s*up|lookup|show|who\s+is|get|details?|info)\b"
)


@dataclass(frozen=True)
class ContinuationDecision:
    """Outcome of one continuation check.

    Attributes:
        proceed: Whether to run another LLM turn.
        reason: Rule that decided (e.g. "write_executed", "note_intent").
        ceiling_reached: True when a rule wanted to continue but the
            continuation ceiling was hit.
    """

    proceed: bool
    reason: str
    ceiling_reached: bool = False


class ContinuationPolicy(Protocol):
    """Interface the orchestrator uses to decide on continuations."""

    def evaluate(
        self,
        context: ProcessingContext,
        tool_results: Sequence[ToolResult],
        current_text: str,
        *,
        depth: int,
        max_continuations: int | None = None,
        awaiting_tool_results: bool = False,
    ) -> ContinuationDecision:
        """Decide whether another LLM turn is needed."""
        ...


def _result_count(result: ToolResult) -> int:
    count = result.output.get("count")
    if isinstance(count, int):
        return count
    return len(result.output.get("results") or [])


def has_executed_write(tool_results: Sequence[ToolResult]) -> bool:
    """True if any mutating tool actually ran and succeeded."""
    return any(
        r.success and not r.preview and is_write_action(r.tool_name) for r in tool_results
    )


class KeywordContinuationController:
    """Keyword-heuristic continuation policy.

    Rules, checked in order:

    1. A successfully executed write ends the run.
    2. The message asks about notes, a search found the entity, and no
       notes have been fetched yet.
    3. Every result so far is an empty or failed search, the message looks
       like a lookup, and fewer than max_search_attempts searches ran
       (spelling-variant retry).
    4. The model stopped to wait for tool results. Any preamble it wrote
       alongside the tool calls is not an answer.

    A rule that wants to continue is overridden once depth reaches the
    ceiling.
    """

    def __init__(
        self,
        max_continuations: int = DEFAULT_MAX_CONTINUATIONS,
        max_search_attempts: int = DEFAULT_MAX_SEARCH_ATTEMPTS,
    ) -> None:
        """Initialize the controller.

        Args:
            max_continuations: Default ceiling on continuation turns.
            max_search_attempts: Searches allowed before the spelling
                retry gives up.
        """
        if max_continuations < 0:
            raise ValueError("max_continuations must be >= 0")
        self.max_continuations = max_continuations
        self.max_search_attempts = max_search_attempts

    def evaluate(
        self,
        context: ProcessingContext,
        tool_results: Sequence[ToolResult],
        current_text: str,
        *,
        depth: int,
        max_continuations: int | None = None,
        awaiting_tool_results: bool = False,
    ) -> ContinuationDecision:
        """Decide whether another LLM turn is needed.

        Args:
            context: The request being processed.
            tool_results: Every tool result of the run so far.
            current_text: Text of the latest LLM response.
            depth: Continuations already performed.
            max_continuations: Ceiling override for this run.
            awaiting_tool_results: The model stopped because it emitted
                tool calls and expects their results.

        Returns:
            ContinuationDecision.
        """
        ceiling = self.max_continuations if max_continuations is None else max_continuations

        if has_executed_write(tool_results):
            return ContinuationDecision(proceed=False, reason="write_executed")

        reason = self._continue_reason(context, tool_results, awaiting_tool_results)
        if reason is None:
            return ContinuationDecision(proceed=False, reason="complete")
        if depth >= ceiling:
            return ContinuationDecision(proceed=False, reason=reason, ceiling_reached=True)
        return ContinuationDecision(proceed=True, reason=reason)

    def should_continue(
        self,
        context: ProcessingContext,
        tool_results: Sequence[ToolResult],
        current_text: str,
        depth: int = 0,
    ) -> bool:
        """Bool facade over evaluate()."""
        return self.evaluate(context, tool_results, current_text, depth=depth).proceed

    def _continue_reason(
        self,
        context: ProcessingContext,
        tool_results: Sequence[ToolResult],
        awaiting_tool_results: bool,
    ) -> str | None:
        message = context.message.lower()

        if self._needs_notes(message, tool_results):
            return "note_intent"
        if self._needs_spelling_retry(message, tool_results):
            return "spelling_retry"
        if awaiting_tool_results and tool_results:
            return "awaiting_tool_results"
        return None

    def _needs_notes(self, message: str, tool_results: Sequence[ToolResult]) -> bool:
        if not _NOTE_INTENT.search(message):
            return False
        if any(r.tool_name == NOTES_TOOL for r in tool_results):
            return False
        return any(
            r.tool_name in SEARCH_TOOLS and r.success and _result_count(r) > 0
            for r in tool_results
        )

    def _needs_spelling_retry(self, message: str, tool_results: Sequence[ToolResult]) -> bool:
        if not tool_results or not _LOOKUP_INTENT.search(message):
            return False
        if not all(r.tool_name in SEARCH_TOOLS for r in tool_results):
            return False
        if any(r.success and _result_count(r) > 0 for r in tool_results):
            return False
        return len(tool_results) < self.max_search_attempts
