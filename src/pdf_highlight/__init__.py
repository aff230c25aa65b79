"""Model-driven PDF highlighting: converse, collect highlights, render, store."""

from .agent_loop import HIGHLIGHT_PDF_TOOL, ConversationResult, ModelTurn, run_conversation
from .coords import DEFAULT_CANVAS, CanvasSize, Region, map_region
from .highlights import HighlightAccumulator, HighlightRecord
from .pipeline import PipelineResult, run_pipeline
from .renderer import AnnotatedDocument, render_highlights
from .storage import HttpObjectStore, LocalObjectStore, ObjectLocation, annotated_key

__all__ = [
    "HIGHLIGHT_PDF_TOOL",
    "ConversationResult",
    "ModelTurn",
    "run_conversation",
    "DEFAULT_CANVAS",
    "CanvasSize",
    "Region",
    "map_region",
    "HighlightAccumulator",
    "HighlightRecord",
    "PipelineResult",
    "run_pipeline",
    "AnnotatedDocument",
    "render_highlights",
    "HttpObjectStore",
    "LocalObjectStore",
    "ObjectLocation",
    "annotated_key",
]
