"""Command line interface for inspecting and running labflow workflows."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import List, Optional

import typer

from labflow import get_repository
from labflow.config import load_config
from labflow.constants import DEFAULT_MEETING_TYPE
from labflow.contracts import AudioPayload, WorkflowOutcome
from labflow.coordinator import WorkflowCoordinator, build_coordinator
from labflow.errors import RateLimitExceededError
from labflow.persistence import WorkflowStep
from labflow.recorder import StepRecorder

app = typer.Typer(help="CLI for labflow meeting workflows")

# Command groups
steps_app = typer.Typer(help="Commands for inspecting workflow steps")
workflow_app = typer.Typer(help="Commands for running workflows")

app.add_typer(steps_app, name="steps")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    """labflow CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _format_step(step: WorkflowStep) -> str:
    line = f"{step.id}\t{step.step_type.value}\t{step.status.value}\t{step.started_at.isoformat()}"
    if step.processing_time_ms is not None:
        line += f"\t{step.processing_time_ms}ms"
    if step.error_message:
        line += f"\t{step.error_message}"
    return line


@steps_app.command("list")
def steps_list(workflow_id: str) -> None:
    """
    List the steps recorded for a workflow in the order they started.

    Example:
        labflow steps list 0c6f...-workflow-id
        # Output: <step id>  transcription  completed  2026-01-01T10:00:00+00:00  812ms
    """
    recorder = StepRecorder(get_repository())
    steps = asyncio.run(recorder.list_steps(workflow_id))
    if not steps:
        typer.echo("No steps found")
        return
    for step in steps:
        typer.echo(_format_step(step))


@steps_app.command("show")
def steps_show(step_id: str) -> None:
    """Show the full record of one step, including its input and output summaries."""
    recorder = StepRecorder(get_repository())
    step = asyncio.run(recorder.get_step(step_id))
    if step is None:
        typer.echo("Step not found")
        raise typer.Exit(code=1)
    typer.echo(f"Step {step.id} ({step.step_name}): {step.status.value}")
    typer.echo(f"Workflow: {step.workflow_id}")
    typer.echo(f"Started: {step.started_at.isoformat()}")
    if step.completed_at:
        typer.echo(f"Completed: {step.completed_at.isoformat()} ({step.processing_time_ms}ms)")
    typer.echo(f"Input: {step.input_summary}")
    if step.output_summary is not None:
        typer.echo(f"Output: {step.output_summary}")
    if step.error_message:
        typer.echo(f"Error: {step.error_message}")


@steps_app.command("stale")
def steps_stale(
    older_than_minutes: Optional[int] = typer.Option(
        None, help="Age after which a processing step counts as orphaned"
    ),
) -> None:
    """
    List steps stuck in processing, which indicates a crashed or abandoned run.

    Exits with code 2 when stale steps exist so the command can drive alerts.
    """
    config = load_config()
    minutes = older_than_minutes if older_than_minutes is not None else config.steps.stale_after_minutes
    recorder = StepRecorder(get_repository())
    stale = asyncio.run(recorder.find_stale_steps(minutes))
    if not stale:
        typer.echo("No stale steps")
        return
    for step in stale:
        typer.echo(f"{_format_step(step)}\tstuck {int(step.age_seconds() // 60)}m")
    raise typer.Exit(code=2)


@steps_app.command("cleanup")
def steps_cleanup(
    retention_days: Optional[int] = typer.Option(None, help="Keep finished steps this many days"),
) -> None:
    """Delete finished steps older than the retention window."""
    config = load_config()
    days = retention_days if retention_days is not None else config.steps.retention_days
    recorder = StepRecorder(get_repository())
    deleted = asyncio.run(recorder.cleanup_expired_steps(days))
    typer.echo(f"Deleted {deleted} expired steps")


async def _run_workflow(
    coordinator: WorkflowCoordinator, sweep_seconds: float, **kwargs
) -> WorkflowOutcome:
    """Run one workflow with the rate-limit sweeper active for its duration."""
    limiter = coordinator.rate_limiter
    if limiter is not None:
        limiter.start_sweeper(sweep_seconds)
    try:
        return await coordinator.run_complete_workflow(**kwargs)
    finally:
        if limiter is not None:
            await limiter.stop_sweeper()


@workflow_app.command("run")
def workflow_run(
    audio_file: Path,
    recipient: List[str] = typer.Option(..., "--recipient", "-r", help="Summary recipient"),
    lab_name: str = typer.Option(..., help="Lab display name used in the email"),
    initiator: str = typer.Option(..., help="User id starting the workflow"),
    scope: Optional[str] = typer.Option(None, help="Lab id the meeting belongs to"),
    meeting_type: str = typer.Option(DEFAULT_MEETING_TYPE),
    attendee: List[str] = typer.Option([], "--attendee", "-a"),
    individual: Optional[bool] = typer.Option(
        None, "--individual/--single", help="Send one message per recipient"
    ),
) -> None:
    """
    Run the complete pipeline for a recording: transcribe, extract, render, deliver.

    Example:
        labflow workflow run standup.webm -r pi@lab.edu --lab-name "RICCC Lab" --initiator u1
    """
    if not audio_file.exists():
        typer.secho("Audio file does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    content_type = mimetypes.guess_type(audio_file.name)[0] or "application/octet-stream"
    audio = AudioPayload(data=audio_file.read_bytes(), content_type=content_type, filename=audio_file.name)
    config = load_config()
    coordinator = build_coordinator(config, repository=get_repository())

    try:
        outcome = asyncio.run(
            _run_workflow(
                coordinator,
                config.rate_limit_sweep_seconds,
                audio=audio,
                recipients=recipient,
                initiator_id=initiator,
                lab_name=lab_name,
                scope_id=scope,
                meeting_type=meeting_type,
                attendees=attendee,
                individual=individual,
            )
        )
    except RateLimitExceededError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {outcome.workflow_id}: {outcome.status}")
    for stage in ("transcription", "extraction", "rendering", "delivery"):
        result = getattr(outcome, stage)
        if result is None:
            continue
        status = "completed" if result.success else "failed"
        typer.echo(f"- {stage}: {status} ({result.processing_time_ms}ms)")
    if outcome.status != "succeeded":
        typer.secho(outcome.error_message, fg=typer.colors.RED)
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
