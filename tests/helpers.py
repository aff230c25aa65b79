"""Test doubles shared across test modules."""

import json

import fitz

from pdf_highlight.agent_loop import ModelTurn
from pdf_highlight.errors import ObjectNotFoundError
from pdf_highlight.storage import StoredObject


def make_pdf(sizes: list[tuple[float, float]]) -> bytes:
    """Build a PDF with one page per (width, height), each labelled with its number."""
    doc = fitz.open()
    for i, (width, height) in enumerate(sizes, start=1):
        page = doc.new_page(width=width, height=height)
        page.insert_text(fitz.Point(72, height / 2), f"Body text of page {i}", fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def tool_call(call_id: str, args: dict | str, name: str = "highlight_pdf") -> dict:
    arguments = args if isinstance(args, str) else json.dumps(args)
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": arguments},
    }


def tool_turn(*calls: dict, finish_reason: str = "tool_calls", usage: dict | None = None) -> ModelTurn:
    return ModelTurn(
        message={"role": "assistant", "content": None, "tool_calls": list(calls)},
        usage=usage or {},
        finish_reason=finish_reason,
    )


def final_turn(text: str, finish_reason: str = "stop", usage: dict | None = None) -> ModelTurn:
    return ModelTurn(
        message={"role": "assistant", "content": text},
        usage=usage or {},
        finish_reason=finish_reason,
    )


def highlight_args(page: int, x: float = 100, y: float = 50, width: float = 200,
                   height: float = 30, reason: str = "gap") -> dict:
    return {
        "xCoordinate": x,
        "yCoordinate": y,
        "width": width,
        "height": height,
        "pageNumber": page,
        "reason": reason,
    }


class ScriptedModel:
    """Async model callable that replays a fixed list of responses.

    With repeat_last=True the final response is returned forever.
    """

    def __init__(self, responses: list[ModelTurn], repeat_last: bool = False):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.calls: list[list[dict]] = []

    async def __call__(self, messages: list[dict]) -> ModelTurn:
        self.calls.append(list(messages))
        index = len(self.calls) - 1
        if index >= len(self.responses):
            if not self.repeat_last:
                raise AssertionError(f"Model called {len(self.calls)} times, script has {len(self.responses)}")
            index = len(self.responses) - 1
        return self.responses[index]


class MemoryStore:
    """In-memory ObjectStore."""

    def __init__(self):
        self.objects: dict[tuple[str, str], StoredObject] = {}
        self.puts: list[tuple[str, str, str]] = []

    def add(self, bucket: str, key: str, data: bytes, content_type: str | None = "application/pdf"):
        self.objects[(bucket, key)] = StoredObject(data=data, content_type=content_type)

    async def get(self, bucket: str, key: str) -> StoredObject:
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ObjectNotFoundError(f"No such object: {bucket}/{key}")

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        self.objects[(bucket, key)] = StoredObject(data=data, content_type=content_type)
        self.puts.append((bucket, key, content_type))
