"""Command line interface for the micnotes application."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

import typer

from . import config as config_mod
from .assets import RecordedAsset
from .config import ConfigError
from .models import (
    AudioFileRecord,
    ConversationKind,
    Language,
    RecordStatus,
    VeterinaryContext,
    formatted_cost,
    formatted_duration,
)
from .pipeline import ProcessingOrchestrator, ProcessingOutcome, ProcessingState, build_orchestrator
from .profiles import format_profile_context
from .storage import StorageError

app = typer.Typer(add_completion=False, help="Record, transcribe and summarise conversations.")


def _orchestrator() -> ProcessingOrchestrator:
    try:
        return build_orchestrator(config_mod.load_config())
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _print_record(record: AudioFileRecord) -> None:
    typer.secho(f"File: {record.filename}", fg=typer.colors.BLUE)
    typer.echo(f"Id: {record.id}")
    typer.echo(f"Created: {record.created_at:%Y-%m-%d %H:%M}")
    typer.echo(f"Type: {record.kind.display_name} ({record.language.display_name})")
    if record.veterinary_context is not None:
        typer.echo(record.veterinary_context.description)
    if record.status is RecordStatus.PENDING:
        typer.secho("Status: pending (run `micnotes process-pending` to process)", fg=typer.colors.YELLOW)
        return
    typer.echo(f"Duration: {formatted_duration(record)}")
    typer.echo(
        f"Cost: {formatted_cost(record.total_cost)} "
        f"(transcription {formatted_cost(record.transcription_cost)}, "
        f"summary {formatted_cost(record.summarization_cost)}, {record.token_count} tokens)"
    )
    typer.secho("\nSummary:\n" + record.summary, fg=typer.colors.GREEN)
    typer.echo("\nTranscript:\n" + record.transcript)


def _report_outcome(outcome: ProcessingOutcome) -> None:
    if outcome.state is ProcessingState.FAILED:
        typer.secho(f"Processing failed: {outcome.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if outcome.state is ProcessingState.PENDING_SAVED:
        typer.secho(f"Saved {outcome.record.filename} for later with id {outcome.record.id}.", fg=typer.colors.BLUE)
        return
    _print_record(outcome.record)
    typer.secho(f"\nSaved recording with id {outcome.record.id}.", fg=typer.colors.BLUE)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log pipeline activity to stderr"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
) -> None:
    if version:
        typer.echo("micnotes v0.1.0")
        raise typer.Exit()

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command()
def process(
    audio: Path = typer.Argument(..., exists=True, readable=True, help="Path to the recorded audio file."),
    kind: Optional[ConversationKind] = typer.Option(None, "--kind", help="Conversation type."),
    language: Optional[Language] = typer.Option(None, "--language", help="Spoken language."),
    later: bool = typer.Option(False, "--later", help="Save as pending without calling the API."),
    dogs: List[str] = typer.Option([], "--dog", help="Dog profile id (veterinary only, repeatable)."),
    purpose: str = typer.Option("", "--purpose", help="Purpose of the veterinary visit."),
) -> None:
    """Process a recording now, or store it for later."""

    cfg = config_mod.load_config()
    kind = kind or ConversationKind(cfg.default_kind)
    language = language or Language(cfg.default_language)
    context = None
    if kind is ConversationKind.VETERINARY:
        if not dogs:
            typer.secho("Select at least one dog with --dog for a veterinary consultation.", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        context = VeterinaryContext(selected_dogs=frozenset(dogs), visit_purpose=purpose)

    orchestrator = _orchestrator()
    asset = RecordedAsset.from_path(audio.resolve())
    if later:
        outcome = orchestrator.save_for_later(asset, kind, language, context)
    else:
        outcome = asyncio.run(orchestrator.process_recording(asset, kind, language, context))
    _report_outcome(outcome)


@app.command("process-pending")
def process_pending(
    record_id: str = typer.Argument(..., help="Identifier of the pending recording."),
) -> None:
    """Transcribe and summarise a recording that was saved for later."""

    orchestrator = _orchestrator()
    try:
        outcome = asyncio.run(orchestrator.process_pending(record_id))
    except StorageError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    _report_outcome(outcome)


@app.command("list")
def list_command() -> None:
    """List stored recordings."""

    rows = _orchestrator().store.list_records()
    if not rows:
        typer.echo("No recordings found. Use `micnotes process` to add one.")
        return
    header = f"{'ID':<36}  {'Status':<9}  {'Type':<10}  {'Lang':<4}  {'Created':<16}  {'Cost':>8}"
    typer.echo(header)
    typer.echo("-" * len(header))
    for record in rows:
        created = record.created_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(
            f"{record.id:<36}  {record.status.value:<9}  {record.kind.value:<10}  "
            f"{record.language.value:<4}  {created:<16}  {formatted_cost(record.total_cost):>8}"
        )


@app.command()
def show(
    record_id: str = typer.Argument(..., help="Identifier of the recording to display."),
) -> None:
    """Show a stored recording."""

    try:
        record = _orchestrator().store.get(record_id)
    except StorageError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    _print_record(record)


@app.command()
def delete(
    record_ids: List[str] = typer.Argument(..., help="Identifiers of the recordings to delete."),
) -> None:
    """Delete recordings together with their audio files."""

    _orchestrator().delete(record_ids)
    typer.secho(f"Deleted {len(record_ids)} recording(s).", fg=typer.colors.BLUE)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete every recording and its audio."""

    if not yes and not typer.confirm("Delete all recordings? This cannot be undone."):
        raise typer.Exit()
    _orchestrator().clear()
    typer.secho("All recordings deleted.", fg=typer.colors.BLUE)


@app.command()
def stats() -> None:
    """Show cost and usage totals."""

    summary = _orchestrator().store.stats()
    typer.echo(f"Processed: {summary.processed_count}")
    typer.echo(f"Pending: {summary.pending_count}")
    typer.echo(f"Total duration: {summary.total_duration / 60:.1f} min")
    typer.echo(f"Total cost: {formatted_cost(summary.total_cost)}")
    for label, counts in (("By language", summary.by_language), ("By type", summary.by_kind)):
        if counts:
            typer.echo(f"{label}: " + ", ".join(f"{key}={value}" for key, value in sorted(counts.items())))


@app.command()
def profiles() -> None:
    """List dog and owner profiles and preview the prompt context."""

    store = _orchestrator().profiles
    data = store.profiles
    if not data.dogs and not data.owners:
        typer.echo("No profiles stored yet.")
        return
    for dog in data.dogs:
        typer.echo(f"dog    {dog.id}  {dog.display_name}")
    for owner in data.owners:
        typer.echo(f"owner  {owner.id}  {owner.full_name or '-'}")
    typer.secho("\nPrompt context:\n" + format_profile_context(data), fg=typer.colors.GREEN)


@app.command()
def config(
    openai_api_key: Optional[str] = typer.Option(None, help="API key for the OpenAI endpoints."),
    api_base_url: Optional[str] = typer.Option(None, help="Base URL of the OpenAI compatible API."),
    transcription_model: Optional[str] = typer.Option(None, help="Speech-to-text model id."),
    summary_model: Optional[str] = typer.Option(None, help="Chat model id used for summaries."),
    default_language: Optional[Language] = typer.Option(None, help="Language used when --language is omitted."),
    default_kind: Optional[ConversationKind] = typer.Option(None, help="Type used when --kind is omitted."),
    api_timeout: Optional[float] = typer.Option(None, help="HTTP client timeout (seconds) for API calls."),
    data_dir: Optional[Path] = typer.Option(None, help="Directory for the database and audio files."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "openai_api_key": openai_api_key,
            "api_base_url": api_base_url,
            "transcription_model": transcription_model,
            "summary_model": summary_model,
            "default_language": default_language.value if default_language else None,
            "default_kind": default_kind.value if default_kind else None,
            "api_timeout": api_timeout,
            "data_dir": str(data_dir) if data_dir else None,
        }.items()
        if value is not None
    }

    if show or not updates:
        try:
            cfg = config_mod.load_config()
        except ConfigError as exc:
            typer.secho(str(exc), fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        payload = asdict(cfg)
        if payload.get("openai_api_key"):
            payload["openai_api_key"] = payload["openai_api_key"][:6] + "..."
        typer.echo(json.dumps(payload, indent=2, default=str))
        return

    try:
        if "openai_api_key" in updates:
            updates["openai_api_key"] = config_mod.validate_api_key(str(updates["openai_api_key"]))
        config_mod.update_config(**updates)
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def login(
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        help="OpenAI API key (starts with 'sk-').",
        prompt=True,
        hide_input=True,
    ),
) -> None:
    """Store the OpenAI API key."""

    try:
        key = config_mod.validate_api_key(api_key or "")
        config_mod.update_config(openai_api_key=key)
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho("API key stored.", fg=typer.colors.BLUE)


@app.command()
def logout() -> None:
    """Forget the stored API key."""

    try:
        config_mod.update_config(openai_api_key=None)
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho("API key cleared.", fg=typer.colors.BLUE)


@app.command()
def setup() -> None:
    """Run the interactive setup wizard."""

    from .onboarding import run_onboarding

    try:
        run_onboarding()
    except Exception as exc:
        typer.secho(f"Setup failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
) -> None:  # pragma: no cover - long running
    """Run the HTTP API."""

    try:
        import uvicorn
    except ImportError as exc:
        typer.secho(
            "Serving the API needs uvicorn. Install with `pip install \"micnotes[server]\"`.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1) from exc
    uvicorn.run("micnotes.api:app", host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
