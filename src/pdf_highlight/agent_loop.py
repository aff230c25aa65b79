"""Tool-call conversation loop that collects highlight requests.

The loop is a small state machine:

    AwaitingResponse -> Done
    AwaitingResponse -> DispatchingTool -> AwaitingResponse

Done is the only terminal state. Every model call counts as one turn and the
loop refuses to start a turn past max_turns, so it always terminates.

Example usage:

    client = OpenRouterClient()
    call_model = create_model_callable(client, model, tools=[HIGHLIGHT_PDF_TOOL])

    result = await run_conversation(
        call_model=call_model,
        pdf_bytes=pdf_bytes,
        prompt=build_review_prompt(DEFAULT_CANVAS),
        page_count=3,
    )
    print(result.final_message, len(result.highlights))
"""

import asyncio
import base64
import json
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .errors import (
    ConversationCancelledError,
    MalformedToolCallError,
    UnboundedLoopError,
    UnexpectedStopError,
)
from .highlights import HighlightAccumulator, HighlightRecord

HIGHLIGHT_TOOL_NAME = "highlight_pdf"
DEFAULT_MAX_TURNS = 30

# finish_reason values that mean "the model is done talking"
COMPLETION_REASONS = {"stop", "end_turn"}

HIGHLIGHT_PDF_TOOL = {
    "type": "function",
    "function": {
        "name": HIGHLIGHT_TOOL_NAME,
        "description": (
            "Highlight a rectangular region on a page of the PDF and attach a short "
            "reason. Coordinates use the reference canvas described in the prompt, "
            "origin at the top-left corner."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "xCoordinate": {
                    "type": "number",
                    "description": "Left edge of the region",
                },
                "yCoordinate": {
                    "type": "number",
                    "description": "Top edge of the region, measured down from the top of the page",
                },
                "width": {"type": "number", "description": "Region width"},
                "height": {"type": "number", "description": "Region height"},
                "pageNumber": {
                    "type": "number",
                    "description": "1-based page number in the PDF",
                },
                "reason": {
                    "type": "string",
                    "description": "Short rationale shown next to the highlight",
                },
            },
            "required": [
                "xCoordinate",
                "yCoordinate",
                "width",
                "height",
                "pageNumber",
                "reason",
            ],
        },
    },
}


@dataclass
class ModelTurn:
    """One response from the conversation transport."""

    message: dict
    usage: dict = field(default_factory=dict)
    finish_reason: str | None = None


@dataclass(frozen=True)
class AwaitingResponse:
    turn: int


@dataclass(frozen=True)
class DispatchingTool:
    turn: int
    message: dict
    tool_calls: tuple


@dataclass(frozen=True)
class Done:
    turn: int
    message: dict
    final_message: str


LoopState = AwaitingResponse | DispatchingTool | Done


def new_usage() -> dict:
    return {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "cost": 0.0,
        "reasoning_tokens": 0,
        "cached_tokens": 0,
    }


@dataclass
class ConversationState:
    """Turn history plus the current loop state for one invocation."""

    messages: list[dict]
    current: LoopState = field(default_factory=lambda: AwaitingResponse(turn=0))
    usage: dict = field(default_factory=new_usage)
    tool_calls_count: int = 0
    rejected_calls: int = 0

    @property
    def done(self) -> bool:
        return isinstance(self.current, Done)


@dataclass
class ConversationResult:
    """Result of a completed conversation."""

    final_message: str
    highlights: list[HighlightRecord]
    turns: int
    messages: list[dict]
    usage: dict = field(default_factory=new_usage)
    tool_calls_count: int = 0
    rejected_calls: int = 0


# Type aliases
ModelCallable = Callable[[list[dict]], Awaitable[ModelTurn]]
OnIterationFn = Callable[[int, dict, list[dict] | None], None]


def accumulate_usage(total: dict, usage: dict) -> None:
    """Add usage from a response to the running total."""
    total["prompt_tokens"] += usage.get("prompt_tokens", 0) or 0
    total["completion_tokens"] += usage.get("completion_tokens", 0) or 0
    if usage.get("cost") is not None:
        total["cost"] = total.get("cost", 0.0) + float(usage["cost"])

    # Track reasoning tokens (OpenAI models)
    reasoning = 0
    ctd = usage.get("completion_tokens_details") or {}
    if isinstance(ctd, dict):
        reasoning = ctd.get("reasoning_tokens", 0) or 0
    total["reasoning_tokens"] = total.get("reasoning_tokens", 0) + reasoning

    # Track cached prompt tokens
    cached = 0
    ptd = usage.get("prompt_tokens_details") or {}
    if isinstance(ptd, dict):
        cached = ptd.get("cached_tokens", 0) or 0
    # OpenRouter sometimes reports these under native_tokens_details
    ntd = usage.get("native_tokens_details") or {}
    if isinstance(ntd, dict):
        cached = max(cached, (ntd.get("cached_tokens", 0) or 0))
    total["cached_tokens"] = total.get("cached_tokens", 0) + cached


def build_initial_messages(
    pdf_bytes: bytes, prompt: str, filename: str = "document.pdf"
) -> list[dict]:
    """Single user turn carrying the PDF and the prompt."""
    pdf_b64 = base64.b64encode(pdf_bytes).decode()
    return [
        {
            "role": "user",
            "content": [
                {
                    "type": "file",
                    "file": {
                        "filename": filename,
                        "file_data": f"data:application/pdf;base64,{pdf_b64}",
                    },
                },
                {"type": "text", "text": prompt},
            ],
        }
    ]


def classify_response(response: ModelTurn, turn: int) -> LoopState:
    """Decide the next state from a model response's stop signal.

    Tool calls win over finish_reason: some providers report "stop" on a
    message that still carries tool calls.

    Raises:
        UnexpectedStopError: for truncation, content filtering, provider
            errors, or a tool-call signal without any tool calls
    """
    message = response.message
    tool_calls = message.get("tool_calls") or []

    if tool_calls:
        return DispatchingTool(turn=turn, message=message, tool_calls=tuple(tool_calls))

    if response.finish_reason in COMPLETION_REASONS:
        return Done(turn=turn, message=message, final_message=message.get("content") or "")

    if response.finish_reason == "tool_calls":
        raise UnexpectedStopError(
            response.finish_reason, "Model signalled tool_calls but sent none"
        )
    raise UnexpectedStopError(response.finish_reason)


def parse_tool_arguments(raw) -> dict:
    """Decode a tool call's arguments, which arrive as a JSON string."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        args = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedToolCallError(f"Arguments are not valid JSON: {e}") from e
    if not isinstance(args, dict):
        raise MalformedToolCallError("Arguments must be a JSON object")
    return args


def dispatch_tool_call(
    tool_call: dict,
    accumulator: HighlightAccumulator,
    strict: bool = False,
) -> tuple[dict, bool]:
    """Run one tool call against the accumulator.

    Returns:
        (tool result message echoing the call id, accepted)

    Raises:
        MalformedToolCallError: only in strict mode
        UnexpectedStopError: if the call has no id to echo back
    """
    call_id = tool_call.get("id")
    if not call_id:
        raise UnexpectedStopError("tool_calls", "Tool call is missing its id")

    function = tool_call.get("function") or {}
    name = function.get("name")

    try:
        if name != HIGHLIGHT_TOOL_NAME:
            raise MalformedToolCallError(f"unknown tool: {name}")
        args = parse_tool_arguments(function.get("arguments"))
        accumulator.accept(args)
    except MalformedToolCallError as e:
        if strict:
            raise
        content = json.dumps({"status": "error", "message": str(e)})
        accepted = False
    else:
        content = json.dumps(
            {"status": "acknowledged", "highlight_number": len(accumulator)}
        )
        accepted = True

    return {"role": "tool", "tool_call_id": call_id, "content": content}, accepted


async def run_conversation(
    call_model: ModelCallable,
    pdf_bytes: bytes,
    prompt: str,
    page_count: int | None = None,
    filename: str = "document.pdf",
    max_turns: int = DEFAULT_MAX_TURNS,
    strict: bool = False,
    on_iteration: OnIterationFn | None = None,
    cancel_event: asyncio.Event | None = None,
) -> ConversationResult:
    """Exchange turns with the model until it finishes.

    Tool calls within a turn run in the order the model listed them, so the
    accumulated highlights keep the model's order.

    Args:
        call_model: Async function (messages) -> ModelTurn
        pdf_bytes: Document sent in the first user turn
        prompt: Instructions sent alongside the document
        page_count: Pages in the document; highlights beyond it are rejected
        filename: Name attached to the document part
        max_turns: Maximum model calls before giving up
        strict: Raise on the first malformed tool call instead of reporting
            it back to the model
        on_iteration: Optional callback (turn, assistant_msg, tool_results)
        cancel_event: Checked before each turn; when set the loop stops

    Returns:
        ConversationResult with the final text and accepted highlights

    Raises:
        UnboundedLoopError: if the model has not finished after max_turns
        UnexpectedStopError: on a stop signal other than completion or tool use
        ConversationCancelledError: if cancel_event is set between turns
        MalformedToolCallError: on a bad tool call, strict mode only
    """
    if max_turns < 1:
        raise ValueError(f"max_turns must be at least 1, got {max_turns}")

    state = ConversationState(
        messages=build_initial_messages(pdf_bytes, prompt, filename)
    )
    accumulator = HighlightAccumulator(page_count)

    while not state.done:
        current = state.current

        if isinstance(current, AwaitingResponse):
            if current.turn >= max_turns:
                raise UnboundedLoopError(max_turns)
            if cancel_event is not None and cancel_event.is_set():
                raise ConversationCancelledError(
                    f"Cancelled after {current.turn} turns"
                )

            response = await call_model(list(state.messages))
            accumulate_usage(state.usage, response.usage or {})
            message = {"role": "assistant", **response.message}
            state.messages.append(message)
            state.current = classify_response(
                ModelTurn(message, response.usage, response.finish_reason),
                current.turn + 1,
            )

        elif isinstance(current, DispatchingTool):
            tool_results = []
            for tool_call in current.tool_calls:
                result, accepted = dispatch_tool_call(tool_call, accumulator, strict)
                state.tool_calls_count += 1
                if not accepted:
                    state.rejected_calls += 1
                tool_results.append(result)
                state.messages.append(result)

            if on_iteration:
                on_iteration(current.turn, current.message, tool_results)
            state.current = AwaitingResponse(turn=current.turn)

    done = state.current
    if on_iteration:
        on_iteration(done.turn, done.message, None)

    return ConversationResult(
        final_message=done.final_message,
        highlights=accumulator.records,
        turns=done.turn,
        messages=state.messages,
        usage=state.usage,
        tool_calls_count=state.tool_calls_count,
        rejected_calls=state.rejected_calls,
    )
