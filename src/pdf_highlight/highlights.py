"""Highlight records and the accumulator the agent's tool calls write into."""

import math
from dataclasses import dataclass
from typing import Any

from .coords import Region
from .errors import MalformedToolCallError

NUMERIC_FIELDS = ("xCoordinate", "yCoordinate", "width", "height", "pageNumber")


@dataclass(frozen=True)
class HighlightRecord:
    """A validated highlight request, in assumed-canvas units."""

    page_number: int
    x: float
    y: float
    width: float
    height: float
    reason: str

    @property
    def region(self) -> Region:
        return Region(self.x, self.y, self.width, self.height)


def _is_number(value: Any) -> bool:
    # bool is an int subclass; "true" is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_highlight_args(args: dict, page_count: int | None = None) -> HighlightRecord:
    """Turn raw `highlight_pdf` arguments into a HighlightRecord.

    Raises:
        MalformedToolCallError: naming every problem found
    """
    if not isinstance(args, dict):
        raise MalformedToolCallError("Tool arguments must be a JSON object")

    problems = []
    missing = [name for name in (*NUMERIC_FIELDS, "reason") if name not in args]
    if missing:
        problems.append(f"missing required field(s): {', '.join(missing)}")

    for name in NUMERIC_FIELDS:
        if name in args and not _is_number(args[name]):
            problems.append(f"{name} must be a number, got {args[name]!r}")

    page = args.get("pageNumber")
    if _is_number(page):
        if not float(page).is_integer():
            problems.append(f"pageNumber must be a whole number, got {page!r}")
        elif page < 1:
            problems.append(f"pageNumber must be >= 1, got {page!r}")
        elif page_count is not None and page > page_count:
            problems.append(
                f"pageNumber {int(page)} is out of range (document has {page_count} pages)"
            )

    for name in ("width", "height"):
        if _is_number(args.get(name)) and args[name] <= 0:
            problems.append(f"{name} must be positive, got {args[name]!r}")

    reason = args.get("reason")
    if "reason" in args and (not isinstance(reason, str) or not reason.strip()):
        problems.append("reason must be non-empty text")

    if problems:
        raise MalformedToolCallError("; ".join(problems))

    return HighlightRecord(
        page_number=int(page),
        x=float(args["xCoordinate"]),
        y=float(args["yCoordinate"]),
        width=float(args["width"]),
        height=float(args["height"]),
        reason=reason.strip(),
    )


class HighlightAccumulator:
    """Ordered, append-only collection of accepted highlights.

    Order of acceptance is the render order.
    """

    def __init__(self, page_count: int | None = None):
        self.page_count = page_count
        self._records: list[HighlightRecord] = []

    def accept(self, args: dict) -> HighlightRecord:
        record = validate_highlight_args(args, self.page_count)
        self._records.append(record)
        return record

    @property
    def records(self) -> list[HighlightRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
