"""Tests for the Orchestrator run loop.

The LLM provider and the CRM adapter are mocked; the real tool registry,
execution layer, continuation controller and synthesizer are exercised.
"""

import base64
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from crm_agent.conversation_log import ConversationRecord, wait_for_background_tasks
from crm_agent.crm import AttioClient, CRMConnectionError, CRMNote, CRMRecord
from crm_agent.llm_client import ImageProcessingError, LLMConnectionError, LLMResponse
from crm_agent.orchestrator import (
    ACTIONS_FALLBACK,
    Attachment,
    Orchestrator,
    ProcessingContext,
    RunResult,
)
from crm_agent.orchestrator.executor import (
    execute_run,
    step_evaluate_continuation,
    step_tool_execution,
)
from crm_agent.orchestrator.prompts import IMAGE_OMITTED_NOTE
from crm_agent.orchestrator.synthesis import INCOMPLETE_NOTE
from crm_agent.orchestrator.types import RunState, TaskState
from crm_agent.telemetry import TraceContext
from crm_agent.tools import ToolExecutionLayer, get_default_registry

ACME_URL = "https://app.attio.com/test-ws/company/c1/overview"
ACME = CRMRecord(
    id="c1",
    type="company",
    name="Acme Corp",
    description="Widgets",
    url=ACME_URL,
    extra={"domains": ["acme.com"]},
)
NOTE_INPUT = {"entity_type": "company", "entity_id": "c1", "note_content": "hello"}


def text_response(text: str, stop_reason: str = "end_turn") -> LLMResponse:
    """LLM response with a single text block."""
    return {
        "content_blocks": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }


def tool_response(*calls: tuple[str, dict[str, Any]], text: str | None = None) -> LLMResponse:
    """LLM response requesting tools, in order."""
    blocks: list[Any] = []
    if text:
        blocks.append({"type": "text", "text": text})
    for index, (name, tool_input) in enumerate(calls):
        blocks.append({"type": "tool_use", "id": f"tu_{index}", "name": name, "input": tool_input})
    return {"content_blocks": blocks, "stop_reason": "tool_use", "usage": {}}


@pytest.fixture
def crm() -> MagicMock:
    """Fixture for a mocked CRM adapter."""
    client = MagicMock(spec=AttioClient)
    client.app_url = "https://app.attio.com"
    client.workspace_slug = "test-ws"
    client.search = AsyncMock(return_value=[ACME])
    client.list_notes = AsyncMock(
        return_value=[
            CRMNote(id=f"n{i}", title=f"Note {i}", content="text") for i in range(3)
        ]
    )
    client.create_note = AsyncMock(
        return_value=CRMNote(id="n9", title="Update from Slack", content="hello")
    )
    return client


@pytest.fixture
def llm() -> MagicMock:
    """Fixture for a mocked LLM provider; tests set side_effect."""
    provider = MagicMock()
    provider.create_completion = AsyncMock()
    return provider


@pytest.fixture
def orchestrator(llm: MagicMock, crm: MagicMock) -> Orchestrator:
    """Fixture for an orchestrator wired to the mocks."""
    return Orchestrator(
        llm=llm,
        executor=ToolExecutionLayer(get_default_registry(), crm),
        max_continuations=3,
    )


class TestScenarios:
    """End-to-end behaviour for typical requests."""

    @pytest.mark.asyncio
    async def test_simple_read(self, orchestrator, llm, crm) -> None:
        """Test a lookup returns the entity name and link."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme Corp"})),
            text_response(f"Found *<{ACME_URL}|Acme Corp>*"),
        ]

        result = await orchestrator.process(ProcessingContext(message="find Acme Corp"))

        assert isinstance(result, RunResult)
        assert result.success is True
        assert [usage.name for usage in result.tools_used] == ["search_crm"]
        assert result.tools_used[0].success is True
        assert "Acme Corp" in result.answer
        assert ACME_URL in result.answer
        assert result.pending_action is None
        crm.search.assert_awaited_once_with("Acme Corp", "all")

    @pytest.mark.asyncio
    async def test_gated_write(self, orchestrator, llm, crm) -> None:
        """Test a note request in preview mode stops with a pending action."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme Corp"}), ("create_note", NOTE_INPUT)),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="add a note to Acme Corp saying 'hello'"), preview=True
        )

        assert result.success is True
        assert result.preview is True
        assert result.pending_action is not None
        assert result.pending_action.action == "create_note"
        assert result.pending_action.input == NOTE_INPUT
        assert result.pending_action.call_id == "tu_1"
        assert result.answer
        crm.create_note.assert_not_awaited()
        assert llm.create_completion.await_count == 1

    @pytest.mark.asyncio
    async def test_multi_step_notes_count(self, orchestrator, llm, crm) -> None:
        """Test a notes question continues from the search to get_notes."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme"})),
            tool_response(("get_notes", {"entity_type": "company", "entity_id": "c1"})),
            text_response("Acme Corp has 3 notes."),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="how many notes does Acme have")
        )

        assert result.success is True
        assert [usage.name for usage in result.tools_used] == ["search_crm", "get_notes"]
        assert "3" in result.answer
        assert result.continuations == 2
        crm.list_notes.assert_awaited_once_with("company", "c1", 20)

        # messages: user, assistant, first continuation feedback, ...
        messages = llm.create_completion.await_args_list[1].kwargs["messages"]
        feedback = messages[2]["content"]
        assert feedback[0]["type"] == "tool_result"
        assert "get_notes" in feedback[-1]["text"]

    @pytest.mark.asyncio
    async def test_simple_read_with_preamble(self, orchestrator, llm, crm) -> None:
        """Test prose written next to a tool call is not taken as the answer."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme Corp"}), text="Let me search for that."),
            text_response(f"Found *<{ACME_URL}|Acme Corp>*"),
        ]

        result = await orchestrator.process(ProcessingContext(message="find Acme Corp"))

        assert result.success is True
        assert llm.create_completion.await_count == 2
        assert ACME_URL in result.answer
        assert "Let me search" not in result.answer

    @pytest.mark.asyncio
    async def test_multi_step_notes_with_preambles(self, orchestrator, llm, crm) -> None:
        """Test every tool turn with a preamble still gets its results fed back."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme"}), text="Looking up Acme first."),
            tool_response(
                ("get_notes", {"entity_type": "company", "entity_id": "c1"}),
                text="Now fetching its notes.",
            ),
            text_response("Acme Corp has 3 notes."),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="how many notes does Acme have")
        )

        assert result.success is True
        assert llm.create_completion.await_count == 3
        assert result.continuations == 2
        assert "3" in result.answer

    @pytest.mark.asyncio
    async def test_adapter_failure(self, orchestrator, llm, crm) -> None:
        """Test a CRM network error is absorbed into a failed tool result."""
        crm.search.side_effect = CRMConnectionError("Failed to connect to Attio: network down")
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme"})),
            text_response("Sorry, CRM search is temporarily unavailable."),
        ]

        result = await orchestrator.process(ProcessingContext(message="find Acme"))

        assert result.success is True
        assert result.tool_results[0].success is False
        assert "network down" in result.tool_results[0].error
        assert result.answer == "Sorry, CRM search is temporarily unavailable."

    @pytest.mark.asyncio
    async def test_no_tools_answer(self, orchestrator, llm, crm) -> None:
        """Test a plain chat reply makes one LLM call and no tool calls."""
        llm.create_completion.side_effect = [text_response("Hi! How can I help?")]

        result = await orchestrator.process(ProcessingContext(message="hello"))

        assert result.success is True
        assert result.answer == "Hi! How can I help?"
        assert result.tools_used == []
        assert result.llm_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_tool_from_model(self, orchestrator, llm) -> None:
        """Test an unknown tool is reported back to the model, not raised."""
        llm.create_completion.side_effect = [
            tool_response(("frobnicate", {})),
            text_response("I can't do that."),
        ]

        result = await orchestrator.process(ProcessingContext(message="frobnicate Acme"))

        assert result.success is True
        assert result.tool_results[0].error == "Unknown tool: frobnicate"
        assert result.answer == "I can't do that."


class TestProperties:
    """Invariants of the run loop."""

    @pytest.mark.asyncio
    async def test_approval_round_trip(self, orchestrator, llm, crm) -> None:
        """Test executing the pending action calls the adapter exactly once."""
        llm.create_completion.side_effect = [tool_response(("create_note", NOTE_INPUT))]
        result = await orchestrator.process(
            ProcessingContext(message="add a note to Acme saying 'hello'"), preview=True
        )
        crm.create_note.assert_not_awaited()

        action = result.pending_action
        tool_result = await orchestrator.execute_action(action.action, action.input)

        assert tool_result.success is True
        assert tool_result.preview is False
        crm.create_note.assert_awaited_once_with("company", "c1", "hello", None)

    @pytest.mark.asyncio
    async def test_write_stops_the_run(self, orchestrator, llm, crm) -> None:
        """Test no continuation follows a successful write."""
        llm.create_completion.side_effect = [
            tool_response(("create_note", NOTE_INPUT)),
            text_response("should never be requested"),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="add a note to Acme saying 'hello'"), preview=False
        )

        assert result.success is True
        assert result.preview is False
        assert result.answer == ACTIONS_FALLBACK
        assert llm.create_completion.await_count == 1
        crm.create_note.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_continuation_ceiling(self, orchestrator, llm, crm) -> None:
        """Test endless continuation signals stop after max_continuations + 1 calls."""
        llm.create_completion.side_effect = lambda **kwargs: tool_response(
            ("search_crm", {"query": "Acme"})
        )

        result = await orchestrator.process(ProcessingContext(message="Acme"), max_continuations=3)

        assert result.success is True
        assert llm.create_completion.await_count == 4
        assert result.llm_calls == 4
        assert result.continuations == 3
        assert result.incomplete is True
        assert result.answer.endswith(INCOMPLETE_NOTE)

    @pytest.mark.asyncio
    async def test_zero_continuations(self, orchestrator, llm, crm) -> None:
        """Test max_continuations=0 allows exactly one LLM call."""
        llm.create_completion.side_effect = lambda **kwargs: tool_response(
            ("search_crm", {"query": "Acme"})
        )

        result = await orchestrator.process(ProcessingContext(message="Acme"), max_continuations=0)

        assert llm.create_completion.await_count == 1
        assert result.incomplete is True

    @pytest.mark.asyncio
    async def test_continuations_do_not_preview(self, orchestrator, llm, crm) -> None:
        """Test a write requested in a continuation turn is executed."""
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme"})),
            tool_response(("create_note", NOTE_INPUT)),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="add a note to Acme saying 'hello'"), preview=True
        )

        assert result.preview is False
        assert result.pending_action is None
        crm.create_note.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tools_run_sequentially_in_order(self, orchestrator, llm, crm) -> None:
        """Test tool calls of one turn run one after another in emission order."""
        order: list[str] = []

        async def search(query: str, entity_type: str = "all") -> list[CRMRecord]:
            order.append(f"search:{query}")
            return [ACME]

        crm.search.side_effect = search
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "First"}), ("search_crm", {"query": "Second"})),
            text_response("done"),
        ]

        await orchestrator.process(ProcessingContext(message="First and Second"))

        assert order == ["search:First", "search:Second"]


class TestFailures:
    """Failures become structured results."""

    @pytest.mark.asyncio
    async def test_llm_error_becomes_failed_result(self, orchestrator, llm) -> None:
        """Test an LLM failure is converted, never raised."""
        llm.create_completion.side_effect = LLMConnectionError("Connection refused to /v1/messages")

        result = await orchestrator.process(ProcessingContext(message="find Acme"))

        assert result.success is False
        assert result.answer is None
        assert result.error == "Unable to reach an upstream service. Please try again in a moment."
        assert "/v1/messages" not in result.error

    @pytest.mark.asyncio
    async def test_image_rejection_retries_without_images(self, orchestrator, llm) -> None:
        """Test an image rejection is retried once with images stripped."""
        data = base64.b64encode(b"\x89PNG\r\n\x1a\nfake").decode()
        context = ProcessingContext(
            message="who is in this screenshot?",
            attachments=(Attachment(media_type="image/png", data=data),),
        )
        llm.create_completion.side_effect = [
            ImageProcessingError("Could not process image"),
            text_response("I couldn't read the image, but I can help otherwise."),
        ]

        result = await orchestrator.process(context)

        assert result.success is True
        assert llm.create_completion.await_count == 2
        retry_messages = llm.create_completion.await_args_list[1].kwargs["messages"]
        retry_content = retry_messages[0]["content"]
        assert all(block["type"] != "image" for block in retry_content)
        assert retry_content[-1]["text"] == IMAGE_OMITTED_NOTE

    @pytest.mark.asyncio
    async def test_second_image_rejection_fails_run(self, orchestrator, llm) -> None:
        """Test a second image rejection surfaces as a run-level error."""
        data = base64.b64encode(b"\x89PNG\r\n\x1a\nfake").decode()
        context = ProcessingContext(
            message="read this",
            attachments=(Attachment(media_type="image/png", data=data),),
        )
        llm.create_completion.side_effect = [
            ImageProcessingError("Could not process image"),
            ImageProcessingError("Could not process image"),
        ]

        result = await orchestrator.process(context)

        assert result.success is False
        assert "image" in result.error.lower()

    @pytest.mark.asyncio
    async def test_image_error_without_images_is_not_retried(self, orchestrator, llm) -> None:
        """Test no retry happens when the request carried no images."""
        llm.create_completion.side_effect = ImageProcessingError("Could not process image")

        result = await orchestrator.process(ProcessingContext(message="hello"))

        assert result.success is False
        assert llm.create_completion.await_count == 1


class TestConversationLog:
    """The conversation sink is fire-and-forget."""

    @pytest.mark.asyncio
    async def test_record_saved_in_background(self, llm, crm) -> None:
        """Test one record per run reaches the sink."""
        sink = MagicMock()
        sink.save = AsyncMock()
        orchestrator = Orchestrator(
            llm=llm, executor=ToolExecutionLayer(get_default_registry(), crm), sink=sink
        )
        llm.create_completion.side_effect = [
            tool_response(("search_crm", {"query": "Acme"})),
            text_response("Found Acme Corp"),
        ]

        result = await orchestrator.process(
            ProcessingContext(message="find Acme", user_id="U1", channel="C1")
        )
        await wait_for_background_tasks()

        sink.save.assert_awaited_once()
        record = sink.save.await_args.args[0]
        assert isinstance(record, ConversationRecord)
        assert record.trace_id == result.trace_id
        assert record.user_message == "find Acme"
        assert record.user_id == "U1"
        assert record.final_response == "Found Acme Corp"
        assert record.tools_used == [{"name": "search_crm", "success": True, "preview": False}]
        assert record.continuation_count == 1

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_fail_run(self, llm, crm) -> None:
        """Test a failing sink never affects the result."""
        sink = MagicMock()
        sink.save = AsyncMock(side_effect=OSError("disk full"))
        orchestrator = Orchestrator(
            llm=llm, executor=ToolExecutionLayer(get_default_registry(), crm), sink=sink
        )
        llm.create_completion.side_effect = [text_response("Hi!")]

        result = await orchestrator.process(ProcessingContext(message="hello"))
        await wait_for_background_tasks()

        assert result.success is True
        assert result.answer == "Hi!"


class TestStepGuards:
    """Step functions refuse to run on inconsistent state."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("step", "start"),
        [
            (step_tool_execution, TaskState.TOOL_EXECUTION),
            (step_evaluate_continuation, TaskState.EVALUATE_CONTINUATION),
        ],
    )
    async def test_missing_llm_response_fails_run(self, step, start) -> None:
        """Test a step that needs an LLM response fails the run without one."""
        state = RunState(
            request=ProcessingContext(message="find Acme"),
            trace_id="trace-1",
            preview=False,
            max_continuations=3,
            state=start,
        )
        services = MagicMock()

        with pytest.raises(ValueError, match="without an LLM response"):
            await step(state, services, TraceContext.from_id("trace-1"))

        result = await execute_run(state, services)

        assert result.state == TaskState.FAILED
        assert isinstance(result.error, ValueError)
        services.tools.execute.assert_not_called()
