"""Tests for the keyword continuation controller."""

from typing import Any

import pytest

from crm_agent.orchestrator.continuation import (
    ContinuationDecision,
    KeywordContinuationController,
    has_executed_write,
)
from crm_agent.orchestrator.types import ProcessingContext
from crm_agent.tools import ToolResult


def _result(name: str, success: bool = True, preview: bool = False, **output: Any) -> ToolResult:
    return ToolResult(
        tool_name=name,
        success=success,
        preview=preview,
        output=output,
        error=None if success else "boom",
    )


def _ctx(message: str) -> ProcessingContext:
    return ProcessingContext(message=message)


@pytest.fixture
def controller() -> KeywordContinuationController:
    """Fixture for the default controller."""
    return KeywordContinuationController(max_continuations=3, max_search_attempts=2)


class TestWriteStops:
    """A successfully executed write ends the run."""

    def test_executed_write_never_continues(self, controller) -> None:
        """Test no rule can continue after a successful write."""
        results = [
            _result("search_crm", count=1),
            _result("create_note"),
        ]
        for message in ("how many notes does Acme have", "find Acme", "add a note"):
            decision = controller.evaluate(
                _ctx(message), results, "", depth=0, awaiting_tool_results=True
            )
            assert decision == ContinuationDecision(proceed=False, reason="write_executed")
            assert controller.should_continue(_ctx(message), results, "") is False

    def test_preview_or_failed_write_is_not_executed(self) -> None:
        """Test skipped and failed writes do not count as executed."""
        assert has_executed_write([_result("create_note", preview=True)]) is False
        assert has_executed_write([_result("create_note", success=False)]) is False
        assert has_executed_write([_result("search_crm", count=1)]) is False
        assert has_executed_write([_result("delete_note")]) is True


class TestNoteIntent:
    """Notes questions fetch notes after the entity is found."""

    def test_continues_after_search_only(self, controller) -> None:
        """Test a notes question continues when only a search has run."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(_ctx("How many notes does Acme have?"), results, "", depth=0)

        assert decision.proceed is True
        assert decision.reason == "note_intent"

    def test_stops_once_notes_fetched(self, controller) -> None:
        """Test the rule is satisfied once get_notes has run."""
        results = [_result("search_crm", count=1), _result("get_notes", count=3)]

        decision = controller.evaluate(
            _ctx("how many notes does Acme have"), results, "Acme has 3 notes.", depth=1
        )

        assert decision.proceed is False

    def test_requires_successful_search(self, controller) -> None:
        """Test an empty search does not trigger a notes fetch."""
        results = [_result("search_crm", count=0)]

        decision = controller.evaluate(_ctx("show notes for Acme"), results, "", depth=0)

        assert decision.reason != "note_intent"

    def test_word_boundary(self, controller) -> None:
        """Test 'notebook' is not a notes question."""
        results = [_result("search_crm", count=1)]

        assert controller.should_continue(_ctx("find notebook vendors"), results, "") is False


class TestSpellingRetry:
    """Empty lookups are retried a bounded number of times."""

    def test_retries_after_empty_search(self, controller) -> None:
        """Test one empty search on a lookup continues."""
        results = [_result("search_crm", count=0)]

        decision = controller.evaluate(_ctx("find Acmee Corp"), results, "", depth=0)

        assert decision == ContinuationDecision(proceed=True, reason="spelling_retry")

    def test_retries_after_failed_search(self, controller) -> None:
        """Test a failed search on a lookup continues."""
        results = [_result("search_crm", success=False)]

        assert controller.should_continue(_ctx("look up Acme"), results, "") is True

    def test_stops_at_max_search_attempts(self, controller) -> None:
        """Test retries stop after max_search_attempts searches."""
        results = [_result("search_crm", count=0), _result("search_crm", count=0)]

        assert controller.should_continue(_ctx("find Acmee"), results, "") is False

    def test_requires_lookup_intent(self, controller) -> None:
        """Test non-lookup messages are not retried."""
        results = [_result("search_crm", count=0)]

        assert controller.should_continue(_ctx("Acmee Corp"), results, "") is False

    def test_no_retry_after_a_hit(self, controller) -> None:
        """Test a search that found something is not retried."""
        results = [_result("search_crm", count=0), _result("search_crm", count=2)]

        decision = controller.evaluate(_ctx("find Acme"), results, "Found it", depth=1)

        assert decision.proceed is False


class TestAwaitingToolResults:
    """The model stopped to receive tool results."""

    def test_continues_without_prose(self, controller) -> None:
        """Test an empty tool_use turn continues so the model can answer."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(
            _ctx("Acme Corp"), results, "", depth=0, awaiting_tool_results=True
        )

        assert decision == ContinuationDecision(proceed=True, reason="awaiting_tool_results")

    def test_continues_with_preamble(self, controller) -> None:
        """Test prose written next to the tool calls does not end the run."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(
            _ctx("Acme Corp"),
            results,
            "Let me search for that.",
            depth=0,
            awaiting_tool_results=True,
        )

        assert decision == ContinuationDecision(proceed=True, reason="awaiting_tool_results")

    def test_final_turn_with_prose_stops(self, controller) -> None:
        """Test a turn that ended normally with an answer does not continue."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(
            _ctx("Acme Corp"), results, "Here it is", depth=0, awaiting_tool_results=False
        )

        assert decision.proceed is False

    def test_no_results_does_not_continue(self, controller) -> None:
        """Test there is nothing to feed back without results."""
        decision = controller.evaluate(_ctx("hi"), [], "", depth=0, awaiting_tool_results=True)

        assert decision == ContinuationDecision(proceed=False, reason="complete")


class TestCeiling:
    """The continuation ceiling overrides every rule."""

    def test_ceiling_blocks_continuation(self, controller) -> None:
        """Test reaching max_continuations stops with ceiling_reached."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(
            _ctx("how many notes does Acme have"), results, "", depth=3
        )

        assert decision.proceed is False
        assert decision.ceiling_reached is True
        assert decision.reason == "note_intent"

    def test_per_run_override(self, controller) -> None:
        """Test max_continuations passed per run replaces the default."""
        results = [_result("search_crm", count=1)]

        decision = controller.evaluate(
            _ctx("notes for Acme"), results, "", depth=1, max_continuations=1
        )

        assert decision.ceiling_reached is True

    def test_ceiling_not_flagged_when_complete(self, controller) -> None:
        """Test a finished run at the ceiling is not reported as incomplete."""
        decision = controller.evaluate(_ctx("hello"), [], "Hi!", depth=3)

        assert decision.ceiling_reached is False

    def test_negative_ceiling_rejected(self) -> None:
        """Test the controller refuses a negative ceiling."""
        with pytest.raises(ValueError):
            KeywordContinuationController(max_continuations=-1)
