import asyncio
import base64
import json
import mimetypes
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from bookly.config import Settings
from bookly.integrations.anthropic_extractor import (
    SUPPORTED_IMAGE_MEDIA_TYPES,
    AnthropicExtractor,
)
from bookly.models import (
    ExtractionOptions,
    InputFragment,
    InventoryItem,
    SmartExtractionResult,
)
from bookly.pipeline.cache import ExtractionCache
from bookly.pipeline.quota import QuotaTracker
from bookly.pipeline.smart_extract import SmartExtractor
from bookly.pipeline.storage import FileStore
from bookly.utils.logging import configure_logging

load_dotenv()

app = typer.Typer(no_args_is_help=True)
cache_app = typer.Typer(no_args_is_help=True, help="Inspect or clear the extraction cache.")
app.add_typer(cache_app, name="cache")

_inventory_adapter = TypeAdapter(list[InventoryItem])


@app.callback(invoke_without_command=True)
def callback(ctx: typer.Context):
    """Bookly AI extraction CLI."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def load_inventory(path: Path | None) -> list[InventoryItem]:
    """Read a JSON list of {name, price, stock} objects; no path means no inventory."""
    if path is None:
        return []
    return _inventory_adapter.validate_json(path.read_bytes())


def build_inputs(texts: list[str], images: list[Path]) -> list[InputFragment]:
    """
    Text fragments first, then one fragment per image file.

    Images become data URLs carrying the MIME type guessed from the file
    name; other files are sent as bare base64 and typed from their leading
    bytes by the extractor.
    """
    inputs = [InputFragment(text=text) for text in texts if text.strip()]
    for image in images:
        encoded = base64.b64encode(image.read_bytes()).decode("ascii")
        mime_type, _ = mimetypes.guess_type(image.name)
        if mime_type in SUPPORTED_IMAGE_MEDIA_TYPES:
            encoded = f"data:{mime_type};base64,{encoded}"
        inputs.append(InputFragment(image_base64=encoded))
    return inputs


def build_smart_extractor(settings: Settings) -> SmartExtractor:
    """Wire the pipeline so the extractor and orchestrator share one quota tracker."""
    quota = QuotaTracker()
    cache = ExtractionCache(FileStore(settings.cache_dir))

    extractor = None
    if settings.anthropic_api_key:
        extractor = AnthropicExtractor(
            api_key=settings.anthropic_api_key,
            quota=quota,
            model=settings.model,
            max_tokens=settings.max_tokens,
            request_timeout=settings.request_timeout,
        )
    else:
        typer.echo(
            "Warning: ANTHROPIC_API_KEY not found. Using basic parsing only.",
            err=True,
        )

    return SmartExtractor(extractor=extractor, quota=quota, cache=cache)


def print_outcome(outcome: SmartExtractionResult) -> None:
    typer.echo(f"Source: {outcome.source}")
    if outcome.error:
        typer.echo(f"Note: {outcome.error}", err=True)
    if outcome.result is not None:
        typer.echo(json.dumps(outcome.result.to_wire(), indent=2, ensure_ascii=False))


@app.command()
def extract(
    text: list[str] | None = typer.Argument(
        None, help="Free-form business input, e.g. 'Ada bought 2 x bags'"
    ),
    image: list[Path] | None = typer.Option(
        None,
        "--image",
        "-i",
        exists=True,
        dir_okay=False,
        help="Image (screenshot, receipt) to include",
    ),
    inventory: Path | None = typer.Option(
        None,
        "--inventory",
        exists=True,
        dir_okay=False,
        help="JSON file with a list of {name, price, stock} products",
    ),
    retry: bool = typer.Option(True, "--retry/--no-retry", help="Retry on quota errors"),
    cache: bool = typer.Option(True, "--cache/--no-cache", help="Use cached results"),
    fallback: bool = typer.Option(
        True, "--fallback/--no-fallback", help="Fall back to basic parsing"
    ),
    max_retries: int = typer.Option(2, "--max-retries", min=0, help="Retries on quota errors"),
):
    """Extract a sale, expense, product or inquiry from free-form input."""
    inputs = build_inputs(text or [], image or [])
    if not inputs:
        typer.echo("Error: provide some text or at least one --image", err=True)
        raise typer.Exit(code=1)

    try:
        products = load_inventory(inventory)
    except ValidationError as e:
        typer.echo(f"Error: invalid inventory file: {e}", err=True)
        raise typer.Exit(code=1) from e

    try:
        settings = Settings.from_env()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    pipeline = build_smart_extractor(settings)
    options = ExtractionOptions(
        use_retry=retry,
        use_cache=cache,
        use_fallback=fallback,
        max_retries=max_retries,
    )

    outcome = asyncio.run(pipeline.smart_extract(inputs, products, options))
    print_outcome(outcome)
    typer.echo(pipeline.quota.format_stats())

    if outcome.result is None:
        raise typer.Exit(code=1)


@cache_app.command("stats")
def cache_stats():
    """Show the number of cached extractions and their size."""
    stats = ExtractionCache(FileStore(Settings.from_env().cache_dir)).stats()
    typer.echo(f"Entries: {stats.entries}")
    typer.echo(f"Size: {stats.size}")


@cache_app.command("clear")
def cache_clear():
    """Delete every cached extraction."""
    ExtractionCache(FileStore(Settings.from_env().cache_dir)).clear()
    typer.echo("Extraction cache cleared")


def main():
    app()


if __name__ == "__main__":
    main()
