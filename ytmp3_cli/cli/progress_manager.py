"""
Manages a Rich Live display for a running batch.
Shows overall progress, per-track pipeline state for in-flight tracks, and
running outcome counts.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from ytmp3_cli.models.track import (
    Delegated,
    Failure,
    PipelineOutcome,
    PipelineState,
    Success,
    TrackRequest,
)
from ytmp3_cli.utils.formatting import format_duration

log = logging.getLogger("ytmp3_cli")

STATE_STYLES = {
    PipelineState.PENDING: "dim",
    PipelineState.RESOLVING: "cyan",
    PipelineState.REDIRECTING: "magenta",
    PipelineState.TRANSCODING: "yellow",
    PipelineState.COMPLETE: "green",
    PipelineState.FAILED: "red",
}


class ProgressManager:
    """
    Live batch display. Wire `on_batch_event` into the BatchController and
    `on_transition` into the PipelineOrchestrator.
    """

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            console=console,
            transient=False,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._overall_task_id: TaskID | None = None
        self._active: dict[TrackRequest, TaskID] = {}
        self._stats = {
            "total_tracks": 0,
            "completed": 0,
            "delegated": 0,
            "failed": 0,
            "cancelled": 0,
            "active": 0,
            "peak_concurrent": 0,
            "start_time": None,
        }

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=7),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        started = self._stats["start_time"]
        elapsed = (datetime.now() - started).total_seconds() if started else 0
        header_text = Text.assemble(
            ("🎵 ytmp3-cli ", "bold cyan"),
            ("│ ", "dim"),
            (f"{self._stats['total_tracks']} tracks, ", "white"),
            (f"elapsed {format_duration(elapsed)}", "yellow"),
        )
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        cells = [
            ("Converted:", "green", "completed"),
            ("Failed:", "red", "failed"),
            ("Delegated:", "magenta", "delegated"),
            ("Cancelled:", "yellow", "cancelled"),
            ("Active:", "cyan", "active"),
            ("Peak:", "magenta", "peak_concurrent"),
        ]
        grid = Table.grid(padding=(0, 2))
        for _ in range(2):
            grid.add_column(style="bold cyan", justify="right")
            grid.add_column()
        for left, right in zip(cells[::2], cells[1::2]):
            row = []
            for label, color, key in (left, right):
                row += [label, f"[{color}]{self._stats[key]}[/{color}]"]
            grid.add_row(*row)

        body = Table.grid()
        body.add_row(grid)
        if self._overall_task_id is not None:
            body.add_row(self.overall_progress)
        return Panel(body, title="[bold]📊 Batch Statistics[/bold]", border_style="blue")

    def _generate_progress_panel(self) -> Panel:
        if not self._active:
            return Panel(
                Text("Waiting for tracks to start...", style="dim italic", justify="center"),
                title="[bold]🎧 Active Tracks[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]🎧 Active Tracks ({len(self._active)})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        if not self.enabled or not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    @staticmethod
    def _describe(request: TrackRequest, state: PipelineState) -> str:
        label = request.label
        if len(label) > 50:
            label = label[:48] + "…"
        style = STATE_STYLES.get(state, "white")
        return f"{label} [{style}]{state.value}[/{style}]"

    def initialize_session(self, total_tracks: int):
        self._stats["total_tracks"] = total_tracks
        self._stats["start_time"] = datetime.now()
        if self.enabled:
            self._overall_task_id = self.overall_progress.add_task(
                "Overall Progress", total=total_tracks, start=True
            )
        self._update_display()

    def on_transition(self, request: TrackRequest, state: PipelineState):
        task_id = self._active.get(request)
        if task_id is not None and self.enabled:
            self.progress.update(task_id, description=self._describe(request, state))
            self._update_display()

    def on_batch_event(
        self, event: str, request: TrackRequest, outcome: Optional[PipelineOutcome]
    ):
        if event == "admitted":
            self._admit(request)
        elif event == "finished" and outcome is not None:
            self._finish(request, outcome)

    def _admit(self, request: TrackRequest):
        if self.enabled:
            self._active[request] = self.progress.add_task(
                self._describe(request, PipelineState.PENDING), total=None
            )
        self._stats["active"] = len(self._active)
        self._stats["peak_concurrent"] = max(
            self._stats["peak_concurrent"], self._stats["active"]
        )
        self._update_display()

    def _finish(self, request: TrackRequest, outcome: PipelineOutcome):
        task_id = self._active.pop(request, None)
        if task_id is not None:
            self.progress.remove_task(task_id)
        self._stats["active"] = len(self._active)

        if isinstance(outcome, Success):
            self._stats["completed"] += 1
        elif isinstance(outcome, Delegated):
            self._stats["delegated"] += 1
        elif isinstance(outcome, Failure) and outcome.cancelled:
            self._stats["cancelled"] += 1
        else:
            self._stats["failed"] += 1
            log.warning(f"[red]✗ {request.label}:[/red] {outcome.detail}")

        if self._overall_task_id is not None:
            done = sum(
                self._stats[k] for k in ("completed", "delegated", "failed", "cancelled")
            )
            self.overall_progress.update(self._overall_task_id, completed=done)
        self._update_display()

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        if not self.enabled:
            return self
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
