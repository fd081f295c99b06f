from __future__ import annotations

from typing import NoReturn, Optional

import typer
import uvicorn

from formbridge.config import settings
from formbridge.domain.models import SurveyResult
from formbridge.exceptions import FormBridgeError
from formbridge.properties import PLACEHOLDER_TOKEN, TOKEN_KEY, PropertiesStore, mask_token
from formbridge.services.activity_log import configure_logging
from formbridge.services.processor import SurveyProcessor, build_processor, resolve_token
from formbridge.services.scheduler import run_scheduler as run_scheduler_loop
from formbridge.storage.factory import build_store
from formbridge.utils.form_ids import extract_form_id

cli = typer.Typer(help="formbridge CLI: sync Typeform surveys into spreadsheets")


@cli.callback()
def main() -> None:
    configure_logging(settings.logging.level)


def _fail(message: str) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def get_processor() -> SurveyProcessor:
    try:
        return build_processor(settings)
    except FormBridgeError as exc:
        _fail(str(exc))


def _print_result(result: SurveyResult) -> None:
    if result.success:
        detail = result.message or f"{result.response_count} responses"
        typer.secho(f"✓ {result.name or result.form_id} ({result.form_id}): {detail}", fg=typer.colors.GREEN)
        if result.sheet_url:
            typer.echo(f"  {result.sheet_url}")
    else:
        typer.secho(f"✗ {result.name or result.form_id} ({result.form_id}): {result.error}", fg=typer.colors.RED)


def _print_batch(results: list[SurveyResult]) -> None:
    for result in results:
        _print_result(result)
    succeeded = sum(1 for r in results if r.success)
    typer.echo(f"{succeeded}/{len(results)} surveys processed successfully.")


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"formbridge {settings.app.version}")


@cli.command()
def about() -> None:
    """Describe the system and its configuration."""
    typer.echo(f"{settings.app.name} v{settings.app.version}")
    typer.echo("Pulls Typeform responses into spreadsheets with a master index and activity log.")
    typer.echo(f"Storage backend: {settings.storage.backend}")
    typer.echo(f"Pre-configured surveys: {len(settings.known_surveys)}")
    for survey in settings.known_surveys:
        typer.echo(f"  - {survey.name} ({survey.id})")


@cli.command()
def init() -> None:
    """Create the master index and log sheets."""
    result = get_processor().initialize_system()
    if not result["success"]:
        _fail(result["message"])
    typer.secho(result["message"], fg=typer.colors.GREEN)


@cli.command("process")
def process(
    survey: str = typer.Argument(..., help="Form ID or share URL"),
    name: Optional[str] = typer.Option(None, help="Display name for the survey"),
) -> None:
    """Process a single survey."""
    form_id = extract_form_id(survey)
    if not form_id:
        _fail("Could not extract a form ID. Enter a valid form ID or URL.")
    try:
        result = get_processor().process_single_survey(form_id, name)
    except FormBridgeError as exc:
        _fail(str(exc))
    _print_result(result)


@cli.command("process-all")
def process_all() -> None:
    """Process every form visible to the API token."""
    try:
        results = get_processor().process_all_surveys()
    except FormBridgeError as exc:
        _fail(str(exc))
    _print_batch(results)


@cli.command("process-known")
def process_known() -> None:
    """Process the pre-configured surveys."""
    try:
        results = get_processor().process_known_surveys()
    except FormBridgeError as exc:
        _fail(str(exc))
    _print_batch(results)


@cli.command("quick-setup")
def quick_setup() -> None:
    """Initialize, verify the token and process the pre-configured surveys."""
    try:
        results = get_processor().quick_setup()
    except FormBridgeError as exc:
        _fail(str(exc))
    _print_batch(results)


@cli.command("test-connection")
def test_connection() -> None:
    """Check that the API token can list forms."""
    status = get_processor().test_api_connection()
    if not status.success:
        _fail(f"API connection failed: {status.error}")
    typer.secho(f"API connection successful. Found {status.count} forms.", fg=typer.colors.GREEN)


@cli.command("manual-test")
def manual_test() -> None:
    """Process the first available form end to end."""
    try:
        result = get_processor().run_manual_test()
    except FormBridgeError as exc:
        _fail(str(exc))
    _print_result(result)


@cli.command("settings")
def settings_command(
    token: Optional[str] = typer.Option(None, help="Store a new API token"),
) -> None:
    """Show or update the stored API token."""
    properties = PropertiesStore(settings.properties_path)
    if token is not None:
        token = token.strip()
        if not token:
            _fail("Token must not be empty.")
        properties.set(TOKEN_KEY, token)
        typer.secho("API token updated successfully.", fg=typer.colors.GREEN)
        return

    current = resolve_token(settings, properties)
    if not current or current == PLACEHOLDER_TOKEN:
        typer.secho("API token not set.", fg=typer.colors.YELLOW)
    else:
        typer.echo(f"API token: {mask_token(current)}")
    typer.echo(f"Storage backend: {settings.storage.backend}")


@cli.command()
def logs(limit: int = typer.Option(20, help="Number of recent entries to show")) -> None:
    """Show the most recent activity log entries."""
    try:
        entries = build_store(settings).read_log(limit)
    except FormBridgeError as exc:
        _fail(str(exc))
    if not entries:
        typer.echo("No log entries.")
    for entry in entries:
        typer.echo(f"{entry.timestamp} | {entry.level.value} | {entry.message}")


@cli.command()
def scheduled() -> None:
    """Run one scheduled processing pass (used by external cron)."""
    results = get_processor().scheduled_processing()
    _print_batch(results)


@cli.command("run-scheduler")
def run_scheduler(
    at: str = typer.Option(settings.scheduler.daily_at, help="Daily run time (HH:MM)"),
) -> None:
    """Run the daily processing trigger in the foreground."""
    processor = get_processor()
    typer.echo(f"Scheduler running; daily processing at {at}. Press Ctrl+C to stop.")
    try:
        run_scheduler_loop(processor, at=at)
    except KeyboardInterrupt:
        typer.echo("Scheduler stopped.")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the formbridge control API server."""
    uvicorn.run(
        "formbridge.api.main:app",
        host=host,
        port=port,
        reload=reload,
        app_dir="src",
    )


if __name__ == "__main__":
    cli()
