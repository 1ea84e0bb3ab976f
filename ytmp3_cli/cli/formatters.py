"""
Rich renderables for errors, settings, diagnostics and batch summaries.
"""

from pathlib import Path
from typing import Any, List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ytmp3_cli.core.diagnostics import ToolStatus
from ytmp3_cli.exceptions import PipelineError
from ytmp3_cli.models.config import PipelineConfig, get_quality_info
from ytmp3_cli.models.stats import BatchReport
from ytmp3_cli.models.track import Delegated, Failure, PipelineOutcome, Success
from ytmp3_cli.utils.formatting import format_duration, format_size

SUGGESTIONS_MAP = {
    "ConfigurationError": [
        "• Check the values in your configuration file.",
        "• Run `ytmp3-cli validate` to see which setting is rejected.",
        "• Run `ytmp3-cli init --force` to start from defaults.",
    ],
    "ScratchDirectoryError": [
        "• The temporary directory could not be created.",
        "• Set `scratch_dir` in the configuration to a writable path.",
    ],
    "InvalidQualityError": [
        "• Quality must be 1 (32 kbps) to 4 (192 kbps).",
    ],
    "BundleError": [
        "• No track in the batch was converted, so there is nothing to zip.",
        "• Re-run without --zip to see per-track failures.",
    ],
    "ClientResponseError": [
        "• A request to a media host failed.",
        "• Run `ytmp3-cli diagnose` to check connectivity, then retry.",
    ],
    "TimeoutError": [
        "• An operation timed out, which may indicate network throttling.",
        "• Lower `--workers` so fewer downloads share the connection.",
    ],
}

FAILURE_HINTS = {
    "source_not_found": "The video is unavailable, private or removed.",
    "no_available_source": "No strategy could obtain the audio.",
    "transcode_failed": "ffmpeg could not encode the audio. Run `ytmp3-cli diagnose`.",
    "process_failure": "An external tool failed. Run `ytmp3-cli diagnose`.",
    "network_failure": "The network kept failing. Try again later.",
    "cancelled": "The batch was cancelled.",
    "internal_error": "Unexpected error. Run with -vv for details.",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)
    if isinstance(error, PipelineError) and error.detail != error_msg:
        error_msg = f"{error_msg}\n{error.detail}"

    suggestions = SUGGESTIONS_MAP.get(
        error_type, ["• Re-run with -vv to see the debug log."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]Command failed[/bold red]",
        border_style="red",
        expand=False,
    )


def describe_failure(outcome: Failure) -> str:
    """One-line verdict for a failed track: retry later, unavailable or cancelled."""
    if outcome.cancelled:
        verdict = "[yellow]cancelled[/yellow]"
    elif outcome.retry_later:
        verdict = "[yellow]try again later[/yellow]"
    elif outcome.unavailable:
        verdict = "[red]unavailable[/red]"
    else:
        verdict = "[red]failed[/red]"
    return f"{verdict} after {outcome.attempts} attempts ({outcome.kind.value})"


def print_outcome(outcome: PipelineOutcome, saved_to: Path | None = None):
    """Displays the result of a single-track run."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Track:", outcome.request.label)
    table.add_row("Video ID:", outcome.request.external_id)

    if isinstance(outcome, Success):
        table.add_row("Strategy:", outcome.strategy.value)
        table.add_row("Quality:", get_quality_info(outcome.tier)["name"])
        table.add_row("Size:", format_size(outcome.result.size_bytes))
        table.add_row("File:", f"[green]{saved_to or outcome.filename}[/green]")
        title, border = "[bold green]✓ Converted[/bold green]", "green"
    elif isinstance(outcome, Delegated):
        table.add_row("Service:", outcome.target.service)
        table.add_row("Open:", f"[link={outcome.target.url}]{outcome.target.url}[/link]")
        title, border = "[bold magenta]↪ Delegated[/bold magenta]", "magenta"
    else:
        table.add_row("Result:", describe_failure(outcome))
        table.add_row("Detail:", f"[dim]{outcome.detail}[/dim]")
        hint = FAILURE_HINTS.get(
            (outcome.last_error_kind or outcome.kind).value, ""
        )
        if hint:
            table.add_row("Hint:", hint)
        if not outcome.cancelled:
            table.add_row("Manual:", f"[link={outcome.manual_url}]{outcome.manual_url}[/link]")
        title, border = "[bold red]✗ Failed[/bold red]", "red"

    console.print(Panel(table, title=title, border_style=border, expand=False))


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    lines = [
        f"{key} = {', '.join(map(str, value)) if isinstance(value, list) else value}"
        for key, value in sorted(config_data.items())
    ]

    console.print(
        Panel(
            "\n".join(lines),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: PipelineConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    quality_info = get_quality_info(config.quality)
    table.add_row("Quality:", f"({quality_info['user_code']}) {quality_info['name']}")
    table.add_row("Max Workers:", str(config.max_workers))
    table.add_row("Strategy Order:", " → ".join(config.strategy_order))
    table.add_row(
        "Retries:",
        f"{config.strategy_attempts} per strategy, {config.transcode_attempts} per "
        "transcode",
    )
    table.add_row(
        "Converters:",
        ", ".join(name for name, _ in config.converter_service_pairs()) or "none",
    )
    table.add_row("yt-dlp:", f"[dim]{config.ytdlp_path}[/dim]")
    table.add_row("ffmpeg:", f"[dim]{config.ffmpeg_path}[/dim]")
    table.add_row(
        "Verify Output:", "✓ Enabled" if config.verify_output else "✗ Disabled"
    )
    table.add_row(
        "Cover Art:", "✓ Embedded" if config.embed_artwork else "✗ Skipped"
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Settings OK[/bold green]",
            border_style="green",
        )
    )


def print_diagnostics(statuses: List[ToolStatus]):
    """Displays the advisory tool checks."""
    console = Console()
    table = Table(box=box.ROUNDED)
    table.add_column("Check", style="bold cyan")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Detail", style="dim")
    for status in statuses:
        mark = "[green]✓ ok[/green]" if status.available else "[red]✗ missing[/red]"
        table.add_row(status.name, mark, status.version, status.detail)
    console.print(table)


def print_summary_panel(report: BatchReport):
    """Displays the final summary of a batch."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Converted:", f"[bold green]{len(report.succeeded)}[/bold green]"
    )
    if report.delegated:
        stats_table.add_row(
            "↪ Delegated:", f"[magenta]{len(report.delegated)}[/magenta]"
        )
    hard_failures = [f for f in report.failed if not f.cancelled]
    if hard_failures:
        stats_table.add_row("✗ Failed:", f"[bold red]{len(hard_failures)}[/bold red]")
    if report.cancelled:
        stats_table.add_row("○ Cancelled:", f"[yellow]{len(report.cancelled)}[/yellow]")
    if report.duplicates_removed:
        stats_table.add_row(
            "Duplicates:", f"[dim]{report.duplicates_removed} removed[/dim]"
        )

    stats_table.add_row("", "")
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(report.total_size_bytes)}[/cyan]"
    )
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(report.duration_s)}[/blue]"
    )
    stats_table.add_row("Peak Concurrent:", f"[green]{report.peak_in_flight}[/green]")
    if report.succeeded and report.duration_s > 0:
        tracks_per_minute = (len(report.succeeded) / report.duration_s) * 60
        stats_table.add_row(
            "Throughput:", f"[cyan]{tracks_per_minute:.1f} tracks/min[/cyan]"
        )

    if report.status.value == "cancelled":
        title, border_color = "⚠️  [bold]Batch Cancelled[/bold]", "yellow"
    else:
        title, border_color = "🎵 [bold]Batch Complete![/bold]", "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    if hard_failures or report.delegated:
        detail = Table(box=box.SIMPLE)
        detail.add_column("Track", style="cyan")
        detail.add_column("Result")
        detail.add_column("Link", style="dim")
        for outcome in report.delegated:
            detail.add_row(
                outcome.request.label,
                f"[magenta]delegated to {outcome.target.service}[/magenta]",
                outcome.target.url,
            )
        for outcome in hard_failures:
            detail.add_row(
                outcome.request.label, describe_failure(outcome), outcome.manual_url
            )
        console.print(detail)

    console.print()
