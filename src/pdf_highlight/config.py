"""Settings read from the environment (and the project's .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .agent_loop import DEFAULT_MAX_TURNS
from .coords import DEFAULT_CANVAS, CanvasSize, parse_canvas
from .errors import ConfigurationError

# Load .env from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

DEFAULT_MODEL = "google/gemini-3-flash-preview"


@dataclass
class Settings:
    model: str = DEFAULT_MODEL
    max_turns: int = DEFAULT_MAX_TURNS
    canvas: CanvasSize = DEFAULT_CANVAS
    store_root: Path = Path(".")
    store_url: str | None = None
    store_token: str | None = None
    api_key: str | None = None

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "Settings":
        """Build settings from PDF_HIGHLIGHT_* variables and OPENROUTER_API_KEY.

        Raises:
            ConfigurationError: naming the variable that holds a bad value
        """
        env = os.environ if environ is None else environ

        max_turns_raw = env.get("PDF_HIGHLIGHT_MAX_TURNS")
        max_turns = DEFAULT_MAX_TURNS
        if max_turns_raw:
            try:
                max_turns = int(max_turns_raw)
            except ValueError:
                raise ConfigurationError(
                    f"PDF_HIGHLIGHT_MAX_TURNS must be an integer, got {max_turns_raw!r}"
                )
            if max_turns < 1:
                raise ConfigurationError(
                    f"PDF_HIGHLIGHT_MAX_TURNS must be at least 1, got {max_turns}"
                )

        canvas = DEFAULT_CANVAS
        canvas_raw = env.get("PDF_HIGHLIGHT_CANVAS")
        if canvas_raw:
            try:
                canvas = parse_canvas(canvas_raw)
            except ValueError as e:
                raise ConfigurationError(f"PDF_HIGHLIGHT_CANVAS: {e}") from e

        return cls(
            model=env.get("PDF_HIGHLIGHT_MODEL") or DEFAULT_MODEL,
            max_turns=max_turns,
            canvas=canvas,
            store_root=Path(env.get("PDF_HIGHLIGHT_STORE_ROOT") or "."),
            store_url=env.get("PDF_HIGHLIGHT_STORE_URL") or None,
            store_token=env.get("PDF_HIGHLIGHT_STORE_TOKEN") or None,
            api_key=env.get("OPENROUTER_API_KEY") or None,
        )
