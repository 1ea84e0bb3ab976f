"""
Typer commands for fetching single tracks, running batches and managing config.
"""

import asyncio
import csv
import logging
import os
import re
import signal
import sys
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler

from ytmp3_cli import __version__
from ytmp3_cli.core.batch import BatchController
from ytmp3_cli.core.diagnostics import check_tools
from ytmp3_cli.core.pipeline import PipelineOrchestrator
from ytmp3_cli.exceptions import YtMp3Error
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.stats import BatchReport
from ytmp3_cli.models.track import Success, TrackRequest
from ytmp3_cli.storage.bundle import DEFAULT_BUNDLE_NAME, write_bundle
from ytmp3_cli.storage.config_manager import ConfigManager
from ytmp3_cli.utils.structured_logger import create_structured_logger

from .formatters import (
    print_config,
    print_diagnostics,
    print_outcome,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("ytmp3_cli")

app = typer.Typer(
    name="ytmp3-cli",
    help=(
        "Fetch YouTube audio as tagged MP3s, one track or a whole playlist at a"
        " time. Use 'ytmp3-cli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def _user_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.environ.get("APPDATA") or "~/AppData/Roaming")
    else:
        base_dir = Path(os.environ.get("XDG_CONFIG_HOME") or "~/.config")
    return base_dir.expanduser() / "ytmp3-cli"


CONFIG_DIR = _user_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_URL_ID_RE = re.compile(
    r"(?:youtube\.com/(?:watch\?(?:.*&)?v=|shorts/|embed/)|youtu\.be/)([A-Za-z0-9_-]{11})"
)


def normalize_video_id(value: str) -> str:
    """Accepts a bare 11-character video ID or any common YouTube URL form."""
    value = value.strip()
    if _VIDEO_ID_RE.match(value):
        return value
    match = _URL_ID_RE.search(value)
    if match:
        return match.group(1)
    raise ValueError(f"'{value}' is not a YouTube video ID or URL.")


def parse_track_lines(lines: Iterable[str]) -> list[TrackRequest]:
    """
    Parses `video_id,title,artist[,quality[,album[,artwork_url]]]` lines into
    requests.

    Blank lines and lines starting with '#' are ignored. Fields may be quoted
    so titles can contain commas.
    """
    requests = []
    for lineno, row in enumerate(csv.reader(lines), 1):
        if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
            continue
        fields = [f.strip() for f in row]
        try:
            video_id = normalize_video_id(fields[0])
            quality = int(fields[3]) if len(fields) > 3 and fields[3] else None
        except ValueError as e:
            raise ValueError(f"Line {lineno}: {e}") from e
        requests.append(
            TrackRequest(
                external_id=video_id,
                title=fields[1] if len(fields) > 1 and fields[1] else video_id,
                artist=fields[2] if len(fields) > 2 else "",
                quality_hint=quality,
                album=fields[4] if len(fields) > 4 else "",
                artwork_url=fields[5] if len(fields) > 5 else "",
            )
        )
    return requests


def _load_config(cli_options: dict | None = None) -> PipelineConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _build_orchestrator(config: PipelineConfig, progress: ProgressManager | None = None):
    json_dir = Path(config.json_log_dir).expanduser() if config.json_log_dir else None
    base_logger, events = create_structured_logger(
        json_dir,
        enable_json=json_dir is not None,
        enable_console=log.isEnabledFor(logging.DEBUG),
    )
    orchestrator = PipelineOrchestrator.from_config(
        config,
        event_logger=events,
        on_transition=progress.on_transition if progress else None,
    )
    return orchestrator, base_logger


def _install_sigint(controller: BatchController) -> bool:
    """Routes Ctrl-C to a cooperative batch cancel. Unsupported on Windows."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(
            signal.SIGINT, controller.cancel, "Interrupted by user (Ctrl-C)."
        )
    except (NotImplementedError, RuntimeError):
        return False
    return True


def _remove_sigint() -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        pass


def _write_results(report: BatchReport, output_dir: Path, as_zip: bool) -> None:
    if as_zip:
        write_bundle(report.succeeded, output_dir / DEFAULT_BUNDLE_NAME)
        return
    output_dir.mkdir(parents=True, exist_ok=True)
    for outcome in report.succeeded:
        target = output_dir / outcome.filename
        target.write_bytes(outcome.result.audio_bytes)
        log.debug(f"Saved {target}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log more detail; repeat (-vv) for debug output.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Print the installed version.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Print the effective settings and exit."
    ),
):
    """YouTube to MP3 CLI"""
    if version:
        console.print(f"[bold]ytmp3-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 0:
        log_level = "WARNING"
    logging.getLogger("ytmp3_cli").setLevel(log_level)

    if show_config:
        config = _load_config()
        source = CONFIG_FILE if CONFIG_FILE.is_file() else "built-in defaults"
        print_config(source, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    quality: int | None = typer.Option(
        None, "-q", "--quality", help="Default quality tier (1-4)."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Default number of concurrent tracks."
    ),
    ytdlp_path: str | None = typer.Option(
        None, "--ytdlp", help="Path to the yt-dlp executable."
    ),
    ffmpeg_path: str | None = typer.Option(
        None, "--ffmpeg", help="Path to the ffmpeg executable."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {
            "quality": quality,
            "max_workers": workers,
            "ytdlp_path": ytdlp_path,
            "ffmpeg_path": ffmpeg_path,
        }.items()
        if value is not None
    }
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Try: [cyan]ytmp3-cli fetch <VIDEO_ID> --title ... --artist ...[/cyan]")


@app.command()
def fetch(
    video: str = typer.Argument(..., help="YouTube video ID or URL."),
    title: str | None = typer.Option(None, "--title", "-t", help="Track title tag."),
    artist: str = typer.Option("", "--artist", "-a", help="Track artist tag."),
    quality: int | None = typer.Option(
        None, "-q", "--quality", help="Quality tier: 1 (32k) to 4 (192k)."
    ),
    album: str = typer.Option("", "--album", help="Album tag."),
    artwork: str = typer.Option(
        "", "--artwork", help="Cover image URL to embed as front-cover art."
    ),
    output_dir: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output", help="Directory to write the MP3 into."
    ),
):
    """Fetch a single track and write it as a tagged MP3."""
    try:
        video_id = normalize_video_id(video)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="VIDEO") from e

    config = _load_config(
        {"quality": quality, "output_dir": str(output_dir) if output_dir else None}
    )
    request = TrackRequest(
        external_id=video_id,
        title=title or video_id,
        artist=artist,
        quality_hint=quality,
        album=album,
        artwork_url=artwork,
    )

    async def _fetch_async():
        orchestrator, base_logger = _build_orchestrator(config)
        try:
            with console.status(f"[cyan]Fetching {request.label}...[/cyan]"):
                return await orchestrator.acquire_and_transcode(request)
        finally:
            await orchestrator.aclose()
            base_logger.close()

    outcome = asyncio.run(_fetch_async())

    saved_to = None
    if isinstance(outcome, Success):
        target_dir = Path(config.output_dir).expanduser()
        target_dir.mkdir(parents=True, exist_ok=True)
        saved_to = target_dir / outcome.filename
        saved_to.write_bytes(outcome.result.audio_bytes)

    print_outcome(outcome, saved_to)
    if not outcome.ok:
        raise typer.Exit(code=1)


def _read_lines_from_stdin() -> list[str]:
    """Reads track lines from stdin."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe track lines or"
            " redirect a file.[/yellow]"
        )
        console.print(
            "[dim]Examples:[/dim]\n"
            "  [cyan]cat tracks.csv | ytmp3-cli batch --stdin[/cyan]\n"
            "  [cyan]ytmp3-cli batch --stdin < tracks.csv[/cyan]"
        )
        raise typer.Exit(code=1)
    return sys.stdin.readlines()


@app.command()
def batch(
    source: Path | None = typer.Argument(  # noqa: B008
        None, help="File with one 'video_id,title,artist[,quality]' line per track."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read track lines from standard input."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of tracks processed concurrently."
    ),
    quality: int | None = typer.Option(
        None, "-q", "--quality", help="Default quality tier for lines without one."
    ),
    output_dir: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output", help="Directory to write the MP3s (or ZIP) into."
    ),
    as_zip: bool = typer.Option(
        False, "--zip", help=f"Bundle converted tracks into {DEFAULT_BUNDLE_NAME}."
    ),
):
    """Fetch many tracks concurrently. Ctrl-C cancels the batch cleanly."""
    if stdin:
        lines = _read_lines_from_stdin()
    elif source:
        try:
            lines = source.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[red]✗ Could not read {source}: {e}[/red]")
            raise typer.Exit(code=1) from e
    else:
        console.print(
            "[red]✗ No input provided.[/red] "
            "Use: [cyan]ytmp3-cli batch <FILE>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    try:
        requests = parse_track_lines(lines)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    if not requests:
        console.print("[yellow]⚠️  No track lines found. Nothing to do.[/yellow]")
        raise typer.Exit(code=1)

    config = _load_config(
        {
            "quality": quality,
            "max_workers": workers,
            "output_dir": str(output_dir) if output_dir else None,
        }
    )

    async def _batch_async() -> BatchReport:
        async with ProgressManager(console) as progress:
            orchestrator, base_logger = _build_orchestrator(config, progress)
            controller = orchestrator.create_batch(on_event=progress.on_batch_event)
            progress.initialize_session(len(set(requests)))
            handled = _install_sigint(controller)
            try:
                return await orchestrator.run_batch(requests, controller=controller)
            finally:
                if handled:
                    _remove_sigint()
                await orchestrator.aclose()
                base_logger.close()

    report = asyncio.run(_batch_async())
    print_summary_panel(report)

    if report.succeeded:
        _write_results(report, Path(config.output_dir).expanduser(), as_zip)
    elif as_zip:
        console.print("[yellow]⚠️  Nothing converted; no archive written.[/yellow]")

    if report.status.value == "cancelled" or len(report.failed) == report.total:
        raise typer.Exit(code=1)


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = _load_config()
        print_validation_table(config)
    except YtMp3Error as e:
        console.print(f"[red]✗ Stored settings are invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Check that yt-dlp, ffmpeg and the scratch directory are usable."""
    console.print("\n[bold cyan]Checking tools and settings[/bold cyan]\n")
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Using config file [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[yellow]○ No config file; using built-in defaults.[/yellow]")
    try:
        config = _load_config()
        console.print("[green]✓[/] Configuration is valid and can be loaded.")
    except YtMp3Error as e:
        console.print(f"[red]✗ Stored settings are invalid: {e}[/red]")
        raise typer.Exit(code=1) from e

    statuses = asyncio.run(check_tools(config))
    print_diagnostics(statuses)
    issues_found = not all(s.available for s in statuses)

    console.print()
    if issues_found:
        console.print(
            "[bold red]✗ Fix the failing rows above before running a batch.[/bold red]\n"
        )
        raise typer.Exit(code=1)
    console.print("[bold green]✓ Ready to download.[/bold green]\n")
