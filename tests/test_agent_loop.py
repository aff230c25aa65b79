"""
Unit tests for the highlight conversation loop.

Run with: python -m pytest tests/test_agent_loop.py -v
"""
import asyncio
import base64
import json

import pytest

from helpers import ScriptedModel, final_turn, highlight_args, tool_call, tool_turn
from pdf_highlight.agent_loop import (
    HIGHLIGHT_PDF_TOOL,
    AwaitingResponse,
    Done,
    DispatchingTool,
    ModelTurn,
    build_initial_messages,
    classify_response,
    run_conversation,
)
from pdf_highlight.errors import (
    ConversationCancelledError,
    MalformedToolCallError,
    UnboundedLoopError,
    UnexpectedStopError,
)


def _tool_results(messages: list[dict]) -> list[dict]:
    return [m for m in messages if m.get("role") == "tool"]


class TestToolSchema:
    """The declared tool must match what the agent is told to call."""

    def test_schema_shape(self):
        function = HIGHLIGHT_PDF_TOOL["function"]
        params = function["parameters"]

        assert function["name"] == "highlight_pdf"
        assert set(params["required"]) == {
            "xCoordinate",
            "yCoordinate",
            "width",
            "height",
            "pageNumber",
            "reason",
        }
        for name in ("xCoordinate", "yCoordinate", "width", "height", "pageNumber"):
            assert params["properties"][name]["type"] == "number"
        assert params["properties"]["reason"]["type"] == "string"


class TestBuildInitialMessages:
    def test_single_user_turn_with_document_and_prompt(self):
        messages = build_initial_messages(b"%PDF-1.7 data", "Review this", "a.pdf")

        assert len(messages) == 1
        assert messages[0]["role"] == "user"
        file_part, text_part = messages[0]["content"]
        assert file_part["file"]["filename"] == "a.pdf"
        encoded = file_part["file"]["file_data"].split(",", 1)[1]
        assert base64.b64decode(encoded) == b"%PDF-1.7 data"
        assert text_part == {"type": "text", "text": "Review this"}


class TestClassifyResponse:
    """Tests for stop-signal classification."""

    def test_stop_is_done(self):
        state = classify_response(final_turn("all good"), turn=1)

        assert isinstance(state, Done)
        assert state.final_message == "all good"

    def test_end_turn_is_done(self):
        assert isinstance(classify_response(final_turn("x", finish_reason="end_turn"), 1), Done)

    def test_tool_calls_dispatch(self):
        state = classify_response(tool_turn(tool_call("c1", highlight_args(1))), turn=2)

        assert isinstance(state, DispatchingTool)
        assert state.turn == 2
        assert len(state.tool_calls) == 1

    def test_tool_calls_win_over_stop(self):
        """Some providers say "stop" while still sending tool calls."""
        response = tool_turn(tool_call("c1", highlight_args(1)), finish_reason="stop")

        assert isinstance(classify_response(response, 1), DispatchingTool)

    @pytest.mark.parametrize("reason", ["length", "content_filter", "error", None])
    def test_other_signals_are_hard_errors(self, reason):
        with pytest.raises(UnexpectedStopError) as exc_info:
            classify_response(final_turn("partial", finish_reason=reason), 1)

        assert exc_info.value.finish_reason == reason

    def test_tool_calls_signal_without_calls(self):
        response = ModelTurn(message={"content": ""}, finish_reason="tool_calls")

        with pytest.raises(UnexpectedStopError, match="sent none"):
            classify_response(response, 1)


class TestRunConversation:
    """Tests for run_conversation."""

    @pytest.mark.asyncio
    async def test_immediate_completion(self, letter_pdf):
        model = ScriptedModel([final_turn("Nothing to flag.")])

        result = await run_conversation(model, letter_pdf, "prompt", page_count=1)

        assert result.final_message == "Nothing to flag."
        assert result.highlights == []
        assert result.turns == 1
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_tool_call_then_completion(self, three_page_pdf):
        model = ScriptedModel(
            [
                tool_turn(tool_call("call_1", highlight_args(page=2))),
                final_turn("One gap found."),
            ]
        )

        result = await run_conversation(model, three_page_pdf, "prompt", page_count=3)

        assert result.final_message == "One gap found."
        assert result.turns == 2
        assert result.tool_calls_count == 1
        assert [h.page_number for h in result.highlights] == [2]

        tool_msgs = _tool_results(result.messages)
        assert len(tool_msgs) == 1
        assert tool_msgs[0]["tool_call_id"] == "call_1"
        assert json.loads(tool_msgs[0]["content"])["status"] == "acknowledged"

    @pytest.mark.asyncio
    async def test_full_history_sent_each_turn(self, letter_pdf):
        model = ScriptedModel(
            [
                tool_turn(tool_call("call_1", highlight_args(page=1))),
                final_turn("done"),
            ]
        )

        await run_conversation(model, letter_pdf, "prompt", page_count=1)

        first, second = model.calls
        assert [m["role"] for m in first] == ["user"]
        assert [m["role"] for m in second] == ["user", "assistant", "tool"]

    @pytest.mark.asyncio
    async def test_malformed_call_rejected_and_loop_continues(self, three_page_pdf):
        """A call missing `reason` is reported back; a later good call succeeds."""
        bad = highlight_args(page=1)
        del bad["reason"]
        model = ScriptedModel(
            [
                tool_turn(tool_call("bad_1", bad)),
                tool_turn(tool_call("good_1", highlight_args(page=2, reason="gap"))),
                final_turn("done"),
            ]
        )

        result = await run_conversation(model, three_page_pdf, "prompt", page_count=3)

        assert [h.reason for h in result.highlights] == ["gap"]
        assert result.rejected_calls == 1
        assert result.tool_calls_count == 2

        bad_result, good_result = _tool_results(result.messages)
        assert bad_result["tool_call_id"] == "bad_1"
        payload = json.loads(bad_result["content"])
        assert payload["status"] == "error"
        assert "reason" in payload["message"]
        assert json.loads(good_result["content"])["status"] == "acknowledged"

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self, letter_pdf):
        bad = highlight_args(page=1)
        del bad["reason"]
        model = ScriptedModel([tool_turn(tool_call("bad_1", bad)), final_turn("done")])

        with pytest.raises(MalformedToolCallError):
            await run_conversation(model, letter_pdf, "prompt", page_count=1, strict=True)

    @pytest.mark.asyncio
    async def test_invalid_json_arguments_reported(self, letter_pdf):
        model = ScriptedModel(
            [tool_turn(tool_call("c1", "{not json")), final_turn("done")]
        )

        result = await run_conversation(model, letter_pdf, "prompt", page_count=1)

        assert result.highlights == []
        payload = json.loads(_tool_results(result.messages)[0]["content"])
        assert payload["status"] == "error"
        assert "JSON" in payload["message"]

    @pytest.mark.asyncio
    async def test_unknown_tool_reported(self, letter_pdf):
        model = ScriptedModel(
            [
                tool_turn(tool_call("c1", highlight_args(page=1), name="delete_page")),
                final_turn("done"),
            ]
        )

        result = await run_conversation(model, letter_pdf, "prompt", page_count=1)

        assert result.highlights == []
        payload = json.loads(_tool_results(result.messages)[0]["content"])
        assert "unknown tool" in payload["message"]

    @pytest.mark.asyncio
    async def test_page_out_of_range_rejected(self, three_page_pdf):
        model = ScriptedModel(
            [tool_turn(tool_call("c1", highlight_args(page=7))), final_turn("done")]
        )

        result = await run_conversation(model, three_page_pdf, "prompt", page_count=3)

        assert result.highlights == []
        assert result.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_order_preserved_across_and_within_turns(self, three_page_pdf):
        """A, B, C keep the order they were issued in, not page order."""
        model = ScriptedModel(
            [
                tool_turn(tool_call("a", highlight_args(page=3, reason="A"))),
                tool_turn(
                    tool_call("b", highlight_args(page=1, reason="B")),
                    tool_call("c", highlight_args(page=2, reason="C")),
                ),
                final_turn("done"),
            ]
        )

        result = await run_conversation(model, three_page_pdf, "prompt", page_count=3)

        assert [h.reason for h in result.highlights] == ["A", "B", "C"]
        assert [m["tool_call_id"] for m in _tool_results(result.messages)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_never_finishing_hits_turn_limit(self, letter_pdf):
        model = ScriptedModel(
            [tool_turn(tool_call("loop", highlight_args(page=1)))], repeat_last=True
        )

        with pytest.raises(UnboundedLoopError) as exc_info:
            await run_conversation(model, letter_pdf, "prompt", page_count=1, max_turns=3)

        assert exc_info.value.max_turns == 3
        assert len(model.calls) == 3

    @pytest.mark.asyncio
    async def test_finishing_on_last_allowed_turn(self, letter_pdf):
        model = ScriptedModel(
            [
                tool_turn(tool_call("c1", highlight_args(page=1))),
                tool_turn(tool_call("c2", highlight_args(page=1))),
                final_turn("done"),
            ]
        )

        result = await run_conversation(model, letter_pdf, "prompt", page_count=1, max_turns=3)

        assert result.turns == 3
        assert len(result.highlights) == 2

    @pytest.mark.asyncio
    async def test_unexpected_stop_propagates(self, letter_pdf):
        model = ScriptedModel([final_turn("cut off", finish_reason="length")])

        with pytest.raises(UnexpectedStopError):
            await run_conversation(model, letter_pdf, "prompt", page_count=1)

    @pytest.mark.asyncio
    async def test_missing_call_id_is_hard_error(self, letter_pdf):
        call = tool_call("", highlight_args(page=1))
        model = ScriptedModel([tool_turn(call), final_turn("done")])

        with pytest.raises(UnexpectedStopError, match="id"):
            await run_conversation(model, letter_pdf, "prompt", page_count=1)

    @pytest.mark.asyncio
    async def test_cancel_between_turns(self, letter_pdf):
        cancel = asyncio.Event()
        model = ScriptedModel(
            [tool_turn(tool_call("c1", highlight_args(page=1)))], repeat_last=True
        )

        def on_iteration(turn, message, tool_results):
            cancel.set()

        with pytest.raises(ConversationCancelledError):
            await run_conversation(
                model,
                letter_pdf,
                "prompt",
                page_count=1,
                on_iteration=on_iteration,
                cancel_event=cancel,
            )

        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_on_iteration_callback(self, letter_pdf):
        seen = []
        model = ScriptedModel(
            [tool_turn(tool_call("c1", highlight_args(page=1))), final_turn("done")]
        )

        await run_conversation(
            model,
            letter_pdf,
            "prompt",
            page_count=1,
            on_iteration=lambda turn, msg, results: seen.append((turn, results is None)),
        )

        assert seen == [(1, False), (2, True)]

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, letter_pdf):
        model = ScriptedModel(
            [
                tool_turn(
                    tool_call("c1", highlight_args(page=1)),
                    usage={"prompt_tokens": 100, "completion_tokens": 10, "cost": 0.01},
                ),
                final_turn(
                    "done",
                    usage={
                        "prompt_tokens": 150,
                        "completion_tokens": 20,
                        "cost": 0.02,
                        "prompt_tokens_details": {"cached_tokens": 90},
                    },
                ),
            ]
        )

        result = await run_conversation(model, letter_pdf, "prompt", page_count=1)

        assert result.usage["prompt_tokens"] == 250
        assert result.usage["completion_tokens"] == 30
        assert result.usage["cached_tokens"] == 90
        assert result.usage["cost"] == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_max_turns_must_be_positive(self, letter_pdf):
        with pytest.raises(ValueError):
            await run_conversation(ScriptedModel([]), letter_pdf, "prompt", max_turns=0)


class TestStates:
    def test_initial_state_is_awaiting(self):
        from pdf_highlight.agent_loop import ConversationState

        state = ConversationState(messages=[])

        assert state.current == AwaitingResponse(turn=0)
        assert not state.done
