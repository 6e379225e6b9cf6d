"""
Manages a Rich Live display for a reconciliation run: overall progress, the
artifacts currently being processed, and running counters.
"""

import asyncio
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text


class ProgressManager:
    """Live view of which artifacts are being removed or fetched."""

    def __init__(self, console: Console, dry_run: bool = False):
        self.console = console
        self.dry_run = dry_run

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )

        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._overall_task_id: TaskID | None = None
        self._active_tasks: dict[TaskID, str] = {}

        self._stats = {
            "total_artifacts": 0,
            "completed": 0,
            "failed": 0,
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
        elapsed_str = "00:00:00"
        if self._stats["start_time"]:
            elapsed = int((datetime.now() - self._stats["start_time"]).total_seconds())
            elapsed_str = (
                f"{elapsed // 3600:02d}:{(elapsed % 3600) // 60:02d}:{elapsed % 60:02d}"
            )
        header_text = Text()
        header_text.append("📦 modcache ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"Run: {elapsed_str}", style="yellow")
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        remaining = (
            self._stats["total_artifacts"]
            - self._stats["completed"]
            - self._stats["failed"]
        )
        stats_table.add_row(
            "Done:",
            f"[green]{self._stats['completed']}[/green]",
            "Failed:",
            f"[red]{self._stats['failed']}[/red]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{self._stats['active']}[/cyan]",
            "Remaining:",
            f"[cyan]{remaining}[/cyan]",
        )
        combined = Table.grid()
        combined.add_row(stats_table)
        if self._overall_task_id is not None:
            combined.add_row(self.overall_progress)
        return Panel(combined, title="[bold]📊 Reconciliation[/bold]", border_style="blue")

    def _generate_progress_panel(self) -> Panel:
        if not self._active_tasks:
            return Panel(
                Text("Waiting for work...", style="dim italic", justify="center"),
                title="[bold]📥 Active[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active ({len(self._active_tasks)})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        if self.dry_run or not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    def initialize_session(self, total_artifacts: int):
        self._stats["total_artifacts"] = total_artifacts
        self._stats["start_time"] = datetime.now()
        if not self.dry_run:
            self._overall_task_id = self.overall_progress.add_task(
                "Artifacts", total=total_artifacts, start=True
            )
        self._update_display()

    def add_artifact_task(self, description: str) -> TaskID | None:
        if self.dry_run:
            return None
        if len(description) > 60:
            description = description[:57] + "..."
        task_id = self.progress.add_task(description, total=None, start=True)
        self._active_tasks[task_id] = description
        self._stats["active"] = len(self._active_tasks)
        self._stats["peak_concurrent"] = max(
            self._stats["peak_concurrent"], self._stats["active"]
        )
        self._update_display()
        return task_id

    def remove_task(
        self, task_id: TaskID | None, success: bool = True, finished: bool = True
    ):
        """
        Drops a task from the active list. With `finished=False` the artifact
        still has work left and is not counted as done yet.
        """
        if finished and success:
            self._stats["completed"] += 1
        elif finished:
            self._stats["failed"] += 1
        if task_id is not None and not self.dry_run:
            self._active_tasks.pop(task_id, None)
            try:
                self.progress.remove_task(task_id)
            except KeyError:
                pass
        self._stats["active"] = len(self._active_tasks)
        if self._overall_task_id is not None:
            self.overall_progress.update(
                self._overall_task_id,
                completed=self._stats["completed"] + self._stats["failed"],
            )
        self._update_display()

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        if self.dry_run:
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
        if self._live and not self.dry_run:
            await asyncio.sleep(0.1)
            self._live.stop()
            self._live = None
