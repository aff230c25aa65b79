"""CLI entry point for PDF highlighting."""

import asyncio
from pathlib import Path

import click

from .agent_loop import HIGHLIGHT_PDF_TOOL
from .api import OpenRouterClient, create_model_callable
from .config import Settings
from .coords import parse_canvas
from .errors import HighlightError
from .pipeline import run_pipeline
from .storage import HttpObjectStore, LocalObjectStore, ObjectLocation


def _canvas_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_canvas(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


@click.command()
@click.argument("bucket")
@click.argument("key")
@click.option(
    "--model",
    "-m",
    default=None,
    help="Model to converse with (default: $PDF_HIGHLIGHT_MODEL or gemini-3-flash-preview)",
)
@click.option(
    "--max-turns",
    type=click.IntRange(min=1),
    default=None,
    help="Give up if the model has not finished after this many turns (default: 30)",
)
@click.option(
    "--canvas",
    callback=_canvas_option,
    default=None,
    help="Canvas the model reasons in, WIDTHxHEIGHT (default: 612x792)",
)
@click.option(
    "--instructions",
    "-i",
    default=None,
    help="Extra review instructions appended to the prompt",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Fail on the first malformed tool call instead of reporting it to the model",
)
@click.option(
    "--store-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding buckets for the local store (default: $PDF_HIGHLIGHT_STORE_ROOT or .)",
)
@click.option(
    "--store-url",
    default=None,
    help="Base URL of an S3-style HTTP store (overrides --store-root)",
)
def main(
    bucket: str,
    key: str,
    model: str | None,
    max_turns: int | None,
    canvas,
    instructions: str | None,
    strict: bool,
    store_root: Path | None,
    store_url: str | None,
):
    """Have a model review BUCKET/KEY and store a highlighted copy next to it."""
    try:
        settings = Settings.from_env()
    except HighlightError as e:
        raise click.ClickException(str(e))
    if not settings.api_key:
        raise click.ClickException("OPENROUTER_API_KEY environment variable is required")

    model = model or settings.model
    store_url = store_url or settings.store_url
    if store_url:
        store = HttpObjectStore(store_url, token=settings.store_token)
    else:
        store = LocalObjectStore(store_root or settings.store_root)

    click.echo(f"Reviewing: {bucket}/{key}")
    click.echo(f"Model: {model}")

    client = OpenRouterClient()
    call_model = create_model_callable(client, model, tools=[HIGHLIGHT_PDF_TOOL])

    try:
        result = asyncio.run(
            run_pipeline(
                source=ObjectLocation(bucket, key),
                store=store,
                call_model=call_model,
                canvas=canvas or settings.canvas,
                max_turns=max_turns or settings.max_turns,
                instructions=instructions,
                strict=strict,
            )
        )
    except HighlightError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    click.echo(f"\nHighlights: {len(result.highlights)} ({result.rejected_calls} rejected)")
    click.echo(f"Turns: {result.turns}")
    cost = result.usage.get("cost", 0.0)
    click.echo(f"Cost: ${cost:.4f}")
    click.echo(f"Output: {result.artifact_location}")
    click.echo(f"\n{result.summary_text}")


if __name__ == "__main__":
    main()
