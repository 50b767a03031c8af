"""Command-line interface for the page capture service."""

import asyncio
import sys
import json
from pathlib import Path
from typing import Optional

import typer

from pagecapture.batch.models import BatchRecord
from pagecapture.batch.orchestrator import BatchOrchestrator
from pagecapture.batch.store import BatchStatusStore
from pagecapture.capture import build_capture_client, resolve_options
from pagecapture.capture.errors import CaptureError, InvalidInput
from pagecapture.capture.retry import RetryConfig
from pagecapture.config import Settings, get_settings
from pagecapture.logging_config import setup_logging

app = typer.Typer(
    name="pagecapture",
    help="Full-page screenshot capture for website previews",
    no_args_is_help=True,
)


def parse_ids(content: str) -> list[str]:
    """Read ids from a JSON array, or from one id per line."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]
    return [line.strip() for line in content.splitlines() if line.strip()]


def build_orchestrator(
    settings: Settings, output_dir: str | Path, profile: str | None = None
) -> BatchOrchestrator:
    return BatchOrchestrator(
        store=BatchStatusStore(),
        client=build_capture_client(settings),
        output_dir=output_dir,
        default_options=resolve_options(profile or settings.capture_profile),
        retry_config=RetryConfig(
            max_attempts=settings.default_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
    )


async def _run_batch(
    orchestrator: BatchOrchestrator, ids: list[str], concurrency: int, retries: int
) -> BatchRecord | None:
    batch_id = await orchestrator.submit_batch(ids, concurrency=concurrency, retries=retries)
    typer.echo(f"Batch {batch_id} started")
    return await orchestrator.wait_for(batch_id)


@app.command("capture")
def capture(
    item_id: str = typer.Argument(..., help="Website preview ID"),
    output: Path = typer.Option(Path("./screenshot.png"), "--output", "-o", help="Output file path"),
    profile: Optional[str] = typer.Option(None, help="Capture profile (standard, low_memory, fast)"),
    headless: Optional[bool] = typer.Option(None, "--headless/--no-headless", help="Run the browser headless"),
    timeout: Optional[float] = typer.Option(None, help="Per-attempt timeout in seconds"),
):
    """Capture a screenshot of a single website preview."""
    settings = get_settings()
    setup_logging(settings.log_level, stream=sys.stderr)
    try:
        options = resolve_options(profile or settings.capture_profile, headless=headless, timeout=timeout)
        output.parent.mkdir(parents=True, exist_ok=True)
        orchestrator = build_orchestrator(settings, output.parent)
        result = asyncio.run(orchestrator.capture_one(item_id, output, options))
    except InvalidInput as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1)

    if result.success:
        typer.echo(f"Screenshot successfully saved to: {result.output_path}")
        return
    message = result.error.message if isinstance(result.error, CaptureError) else "unknown error"
    typer.echo(f"Failed to capture screenshot: {message}", err=True)
    raise typer.Exit(1)


@app.command("batch")
def batch(
    file: Path = typer.Argument(..., help="File with ids: a JSON array or one id per line"),
    output_dir: Path = typer.Option(Path("./screenshots"), "--output-dir", "-o", help="Output directory"),
    concurrency: int = typer.Option(1, "--concurrency", "-c", help="Concurrent captures"),
    retries: int = typer.Option(3, "--retries", "-r", help="Attempts per id"),
    profile: Optional[str] = typer.Option(None, help="Capture profile (standard, low_memory, fast)"),
):
    """Process multiple website preview IDs from a file."""
    settings = get_settings()
    setup_logging(settings.log_level, stream=sys.stderr)

    if not file.exists():
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1)

    ids = parse_ids(file.read_text(encoding="utf-8"))
    if not ids:
        typer.echo("Error: No IDs found in file", err=True)
        raise typer.Exit(1)

    typer.echo(f"Processing {len(ids)} IDs from file: {file}")
    try:
        orchestrator = build_orchestrator(settings, output_dir, profile)
        record = asyncio.run(_run_batch(orchestrator, ids, concurrency, retries))
    except InvalidInput as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1)

    if record is None:
        typer.echo("Error: batch record missing", err=True)
        raise typer.Exit(1)

    report_path = output_dir / "report.json"
    report_path.write_text(record.model_dump_json(indent=2), encoding="utf-8")

    typer.echo("\nProcessing complete:")
    typer.echo(f"- Total: {record.total}")
    typer.echo(f"- Successful: {record.successful}")
    typer.echo(f"- Failed: {record.failed}")
    typer.echo(f"\nReport saved to: {report_path}")

    if record.failed > 0:
        raise typer.Exit(1)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(3000, help="Port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("pagecapture.main:app", host=host, port=port)


if __name__ == "__main__":
    app()
