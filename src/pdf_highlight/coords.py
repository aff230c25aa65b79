"""Coordinate mapping between the model's canvas and real PDF pages.

The model cannot see real page geometry, so it reasons on a fixed canvas
(US Letter, 612x792 points) with the origin at the top-left corner. PDF user
space has its origin at the bottom-left and every page has its own size.

Provides:
- map_region: canvas region -> PDF region (bottom-left origin)
- to_top_left: PDF region -> PyMuPDF rect tuple (top-left origin)
- parse_canvas: "612x792" -> CanvasSize
"""

from dataclasses import dataclass

from .errors import InvalidRegionError


@dataclass(frozen=True)
class CanvasSize:
    width: float
    height: float


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle: (x, y) is the corner nearest the origin."""

    x: float
    y: float
    width: float
    height: float


DEFAULT_CANVAS = CanvasSize(612.0, 792.0)


def map_region(
    region: Region,
    canvas: CanvasSize,
    page: CanvasSize,
    clamp: bool = False,
) -> Region:
    """Map a top-left-origin canvas region onto a bottom-left-origin page.

    X and Y scale independently. The vertical flip happens once, after
    scaling: the returned y is the rectangle's bottom edge in page space.

    Args:
        region: Region in canvas units, y measured down from the top
        canvas: Assumed canvas the region was expressed in
        page: Real page size in points
        clamp: Clip the result to the page bounds

    Returns:
        Region in page points, y measured up from the bottom

    Raises:
        InvalidRegionError: if the mapped width or height is negative
    """
    if canvas.width <= 0 or canvas.height <= 0:
        raise ValueError(f"Canvas dimensions must be positive: {canvas}")
    if page.width <= 0 or page.height <= 0:
        raise ValueError(f"Page dimensions must be positive: {page}")

    scale_x = page.width / canvas.width
    scale_y = page.height / canvas.height

    x = region.x * scale_x
    width = region.width * scale_x
    height = region.height * scale_y
    y = page.height - (region.y + region.height) * scale_y

    if width < 0 or height < 0:
        raise InvalidRegionError(
            f"Mapped region has negative size ({width:.2f} x {height:.2f})"
        )

    if clamp:
        x0 = min(max(x, 0.0), page.width)
        y0 = min(max(y, 0.0), page.height)
        x1 = min(max(x + width, 0.0), page.width)
        y1 = min(max(y + height, 0.0), page.height)
        return Region(x0, y0, x1 - x0, y1 - y0)

    return Region(x, y, width, height)


def to_top_left(region: Region, page_height: float) -> tuple[float, float, float, float]:
    """Convert a bottom-left-origin region to (x0, y0, x1, y1) with y pointing down."""
    top = page_height - (region.y + region.height)
    return (region.x, top, region.x + region.width, top + region.height)


def parse_canvas(value: str) -> CanvasSize:
    """Parse a "WIDTHxHEIGHT" string such as "612x792"."""
    parts = value.lower().replace(" ", "").split("x")
    if len(parts) != 2:
        raise ValueError(f"Canvas must look like WIDTHxHEIGHT, got {value!r}")
    try:
        width, height = float(parts[0]), float(parts[1])
    except ValueError:
        raise ValueError(f"Canvas must look like WIDTHxHEIGHT, got {value!r}")
    if width <= 0 or height <= 0:
        raise ValueError(f"Canvas dimensions must be positive, got {value!r}")
    return CanvasSize(width, height)
