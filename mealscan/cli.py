from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from mealscan.config import get_settings
from mealscan.errors import AnalysisError, error_envelope
from mealscan.gemini import GeminiClient
from mealscan.models import AnalysisResult, ErrorDescriptor
from mealscan.orchestrator import AnalysisOrchestrator
from mealscan.session import LifecycleState, SessionState, SessionStateMachine
from mealscan.utils import load_audio, load_image


app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)

VOICE_COMMAND = "!voice"
SEND_COMMAND = "!send"

CONFIDENCE_STYLES = {"high": "green", "medium": "yellow", "low": "red"}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _print_header() -> None:
    title = "[bold]MealScan[/bold]  photo -> macros (estimated)"
    console.print(Panel.fit(title, border_style="bold green"))
    console.print("[dim]Disclaimer:[/dim] Values are estimates produced by an AI model.")


def _build_orchestrator() -> AnalysisOrchestrator:
    settings = get_settings()
    return AnalysisOrchestrator(GeminiClient(settings), settings)


def _echo_json(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _render_result(result: AnalysisResult) -> None:
    table = Table(title="Detected foods", header_style="bold magenta")
    table.add_column("Item", style="bold")
    table.add_column("Weight", justify="right")
    table.add_column("Calories", justify="right")
    table.add_column("Protein", justify="right")
    table.add_column("Fat", justify="right")
    table.add_column("Carbs", justify="right")
    table.add_column("Confidence", justify="right")
    for item in result.items:
        style = CONFIDENCE_STYLES[item.confidence_band]
        table.add_row(
            item.name,
            f"{item.weight_grams:.0f} g",
            f"{item.macros.calories:.0f} kcal",
            f"{item.macros.protein:.1f} g",
            f"{item.macros.fat:.1f} g",
            f"{item.macros.carbs:.1f} g",
            f"[{style}]{item.confidence * 100:.0f}%[/{style}]",
        )
    total = result.total
    table.add_row(
        "[bold]Total[/bold]",
        "",
        f"[bold]{total.calories:.0f} kcal[/bold]",
        f"[bold]{total.protein:.1f} g[/bold]",
        f"[bold]{total.fat:.1f} g[/bold]",
        f"[bold]{total.carbs:.1f} g[/bold]",
        "",
        end_section=True,
    )
    console.print(table)
    if not result.items:
        console.print("[dim]No food was detected.[/dim]")
    if result.summary:
        console.print(Panel(result.summary, title="Summary", border_style="blue"))
    if result.model_label:
        console.print(f"[dim]Model: {result.model_label}[/dim]")


def _render_error(descriptor: ErrorDescriptor, verbose: bool) -> None:
    console.print(f"[red]{descriptor.user_message}[/red]")
    if verbose and descriptor.technical_detail:
        console.print(
            Panel(
                descriptor.technical_detail,
                title=f"Details ({descriptor.kind.value})",
                border_style="dim",
            )
        )


def _session_payload(state: SessionState) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if state.current_result is not None:
        payload["result"] = state.current_result.to_dict()
    if state.pending_correction_text:
        payload["pendingCorrection"] = state.pending_correction_text
    if state.last_error is not None:
        payload.update(error_envelope(state.last_error))
    return payload


def _transcribe_into(
    machine: SessionStateMachine, audio_bytes: bytes, mime_type: str, verbose: bool
) -> SessionState:
    with console.status("[bold green]Transcribing voice...[/bold green]"):
        state = asyncio.run(machine.submit_voice_correction(audio_bytes, mime_type))
    if state.last_error is not None:
        _render_error(state.last_error, verbose)
    elif state.pending_correction_text:
        console.print(f"[cyan]Heard:[/cyan] {state.pending_correction_text}")
    return state


def _interactive_corrections(machine: SessionStateMachine, verbose: bool) -> None:
    console.print(
        f"[dim]Type a correction, '{VOICE_COMMAND} <audio file>' to dictate one, "
        "or press Enter to finish.[/dim]"
    )
    while True:
        pending = machine.state.pending_correction_text
        if pending:
            console.print(f"[dim]Pending:[/dim] {pending}  [dim](type '{SEND_COMMAND}' to submit it)[/dim]")
        raw = Prompt.ask("Correction", default="", show_default=False).strip()
        if not raw:
            return
        if raw == SEND_COMMAND:
            if not pending:
                console.print("[yellow]Nothing to send.[/yellow]")
                continue
            raw = pending
        if raw.startswith(VOICE_COMMAND):
            target = raw[len(VOICE_COMMAND):].strip()
            if not target:
                console.print(f"[red]Usage:[/red] {VOICE_COMMAND} <audio file>")
                continue
            try:
                audio_bytes, mime_type = load_audio(Path(target).expanduser())
                _transcribe_into(machine, audio_bytes, mime_type, verbose)
            except (FileNotFoundError, ValueError) as exc:
                console.print(f"[red]Input error:[/red] {exc}")
            continue

        with console.status("[bold green]Recalculating with your correction...[/bold green]"):
            state = asyncio.run(machine.submit_correction(raw))
        if state.last_error is not None:
            _render_error(state.last_error, verbose)
        if state.current_result is not None:
            _render_result(state.current_result)


@app.command()
def analyze(
    image_path: Path = typer.Argument(..., help="Path to a food image"),
    correction: list[str] | None = typer.Option(
        None, "--correction", "-c", help="Correction to apply after analysis (repeatable)"
    ),
    voice: Path | None = typer.Option(
        None, "--voice", help="Audio file with a spoken correction (transcribed, not applied)"
    ),
    no_interactive: bool = typer.Option(False, "--no-interactive", help="Disable prompts"),
    json_output: bool = typer.Option(False, "--json", help="Print the session as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show technical details"),
) -> None:
    _configure_logging(verbose)
    interactive = not (no_interactive or json_output or correction)
    if not json_output:
        _print_header()

    try:
        image_bytes, mime_type = load_image(image_path)
        audio = load_audio(voice) if voice is not None else None
        machine = SessionStateMachine(_build_orchestrator())
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Input error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if json_output:
        state = asyncio.run(machine.submit_image(image_bytes, mime_type))
    else:
        with console.status("[bold green]Analyzing image...[/bold green]"):
            state = asyncio.run(machine.submit_image(image_bytes, mime_type))

    if state.lifecycle is LifecycleState.ERROR:
        if json_output:
            _echo_json(error_envelope(state.last_error))
        else:
            _render_error(state.last_error, verbose)
        raise typer.Exit(code=2)

    if not json_output:
        _render_result(state.current_result)

    failed = False
    for text in correction or []:
        if json_output:
            state = asyncio.run(machine.submit_correction(text))
        else:
            with console.status("[bold green]Recalculating with your correction...[/bold green]"):
                state = asyncio.run(machine.submit_correction(text))
        if state.last_error is not None:
            failed = True
            if not json_output:
                _render_error(state.last_error, verbose)
        elif not json_output:
            _render_result(state.current_result)

    if audio is not None:
        audio_bytes, audio_mime = audio
        if json_output:
            state = asyncio.run(machine.submit_voice_correction(audio_bytes, audio_mime))
        else:
            state = _transcribe_into(machine, audio_bytes, audio_mime, verbose)
        failed = failed or state.last_error is not None

    if interactive:
        _interactive_corrections(machine, verbose)

    if json_output:
        _echo_json(_session_payload(machine.state))
    if failed:
        raise typer.Exit(code=2)


@app.command()
def describe(
    text: str = typer.Argument(..., help="What you ate, in your own words"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show technical details"),
) -> None:
    _configure_logging(verbose)
    try:
        orchestrator = _build_orchestrator()
    except ValueError as exc:
        console.print(f"[red]Input error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        if json_output:
            result = asyncio.run(orchestrator.analyze_text(text))
        else:
            _print_header()
            with console.status("[bold green]Analyzing description...[/bold green]"):
                result = asyncio.run(orchestrator.analyze_text(text))
    except AnalysisError as exc:
        if json_output:
            _echo_json(error_envelope(exc.descriptor))
        else:
            _render_error(exc.descriptor, verbose)
        raise typer.Exit(code=2) from exc

    if json_output:
        _echo_json({"result": result.to_dict()})
    else:
        _render_result(result)


@app.command()
def transcribe(
    audio_path: Path = typer.Argument(..., help="Audio file with speech"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show technical details"),
) -> None:
    _configure_logging(verbose)
    try:
        audio_bytes, mime_type = load_audio(audio_path)
        orchestrator = _build_orchestrator()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Input error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        text = asyncio.run(orchestrator.transcribe(audio_bytes, mime_type))
    except AnalysisError as exc:
        _render_error(exc.descriptor, verbose)
        raise typer.Exit(code=2) from exc
    typer.echo(text)


if __name__ == "__main__":
    app()
