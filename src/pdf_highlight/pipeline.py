"""Fetch a PDF, let the model highlight it, render and store the result.

Usage:
    store = LocalObjectStore("data")
    call_model = create_model_callable(OpenRouterClient(), model, [HIGHLIGHT_PDF_TOOL])
    result = await run_pipeline(ObjectLocation("inbox", "report.pdf"), store, call_model)
    print(result.summary_text, result.artifact_location)
"""

import asyncio
import json
import sys
import time
from dataclasses import dataclass, field

from .agent_loop import (
    DEFAULT_MAX_TURNS,
    ModelCallable,
    OnIterationFn,
    new_usage,
    run_conversation,
)
from .coords import DEFAULT_CANVAS, CanvasSize
from .errors import EmptyPayloadError, InvalidInputFormatError
from .highlights import HighlightRecord
from .pdf_utils import PDF_CONTENT_TYPE, get_page_count
from .prompts import build_review_prompt
from .renderer import render_highlights
from .storage import (
    ANNOTATED_SUFFIX,
    ObjectLocation,
    ObjectStore,
    annotated_key,
    normalize_content_type,
)


@dataclass
class PipelineResult:
    summary_text: str
    artifact_location: ObjectLocation
    highlights: list[HighlightRecord] = field(default_factory=list)
    turns: int = 0
    rejected_calls: int = 0
    usage: dict = field(default_factory=new_usage)
    elapsed_seconds: float = 0.0


def log_iteration(turn: int, message: dict, tool_results: list[dict] | None) -> None:
    """Default progress callback: one stderr line per turn."""
    if tool_results is None:
        print(f"[turn {turn}] Model finished", file=sys.stderr)
        return

    rejected = 0
    for result in tool_results:
        try:
            status = json.loads(result["content"]).get("status")
        except (json.JSONDecodeError, AttributeError):
            status = None
        if status != "acknowledged":
            rejected += 1

    line = f"[turn {turn}] {len(tool_results)} tool call(s)"
    if rejected:
        line += f", {rejected} rejected"
    print(line, file=sys.stderr)


async def fetch_pdf(store: ObjectStore, source: ObjectLocation) -> bytes:
    """Fetch the source object and check it is a non-empty PDF.

    Raises:
        InvalidInputFormatError: if the content type is not application/pdf
        EmptyPayloadError: if the object has no bytes
    """
    obj = await store.get(source.bucket, source.key)

    content_type = normalize_content_type(obj.content_type)
    if content_type != PDF_CONTENT_TYPE:
        raise InvalidInputFormatError(
            f"{source} has content type {obj.content_type!r}, expected {PDF_CONTENT_TYPE}"
        )
    if not obj.data:
        raise EmptyPayloadError(f"{source} is empty")
    return obj.data


async def run_pipeline(
    source: ObjectLocation,
    store: ObjectStore,
    call_model: ModelCallable,
    canvas: CanvasSize = DEFAULT_CANVAS,
    max_turns: int = DEFAULT_MAX_TURNS,
    instructions: str | None = None,
    strict: bool = False,
    suffix: str = ANNOTATED_SUFFIX,
    on_iteration: OnIterationFn | None = log_iteration,
    cancel_event: asyncio.Event | None = None,
) -> PipelineResult:
    """Run fetch -> conversation -> render -> persist for one document.

    Nothing is written unless the conversation completes normally.

    Args:
        source: Bucket/key of the PDF to review
        store: Object store used for both fetch and persist
        call_model: Async function (messages) -> ModelTurn
        canvas: Canvas size the model is told to reason in
        max_turns: Maximum model calls
        instructions: Extra text appended to the review prompt
        strict: Fail on the first malformed tool call
        suffix: Inserted before the extension of the artifact key
        on_iteration: Progress callback, log_iteration by default
        cancel_event: Checked between turns

    Returns:
        PipelineResult with the model's summary and where the artifact went
    """
    start = time.time()

    print(f"Fetching {source}...", file=sys.stderr)
    pdf_bytes = await fetch_pdf(store, source)
    # PyMuPDF calls block, so they run in a worker thread
    page_count = await asyncio.to_thread(get_page_count, pdf_bytes)
    print(f"Pages: {page_count}", file=sys.stderr)

    conversation = await run_conversation(
        call_model=call_model,
        pdf_bytes=pdf_bytes,
        prompt=build_review_prompt(canvas, instructions),
        page_count=page_count,
        filename=source.key.rsplit("/", 1)[-1],
        max_turns=max_turns,
        strict=strict,
        on_iteration=on_iteration,
        cancel_event=cancel_event,
    )
    print(
        f"Collected {len(conversation.highlights)} highlight(s) in {conversation.turns} turn(s)",
        file=sys.stderr,
    )

    annotated = await asyncio.to_thread(
        render_highlights, pdf_bytes, conversation.highlights, canvas
    )

    target = ObjectLocation(source.bucket, annotated_key(source.key, suffix))
    await store.put(target.bucket, target.key, annotated.pdf_bytes, PDF_CONTENT_TYPE)
    print(f"Output: {target}", file=sys.stderr)

    return PipelineResult(
        summary_text=conversation.final_message,
        artifact_location=target,
        highlights=annotated.highlights,
        turns=conversation.turns,
        rejected_calls=conversation.rejected_calls,
        usage=conversation.usage,
        elapsed_seconds=round(time.time() - start, 1),
    )
