"""
Manages a Rich Live progress display for tool provisioning and for the single
running download.
"""

import asyncio
import logging

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from dba_downloader.models.download import ProvisionStatus
from dba_downloader.utils.formatting import parse_progress_line, shorten

log = logging.getLogger("dba_downloader")


class ProgressManager:
    """
    Renders provisioning statuses and engine progress lines as progress bars.

    Provisioning statuses carry a step and a percent (-1 while the work is
    indeterminate, e.g. extracting an archive). Engine lines carrying an
    'NN.N%' value move the download bar; any other line becomes its label.
    """

    def __init__(self, console: Console, quiet: bool = False):
        self.console = console
        self.quiet = quiet

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )

        self._provision_task: TaskID | None = None
        self._download_task: TaskID | None = None
        self._download_title = ""
        self._last_status = ""
        self._last_percent = 0.0

    @property
    def last_percent(self) -> float:
        return self._last_percent

    @property
    def last_status(self) -> str:
        return self._last_status

    def on_provision_status(self, status: ProvisionStatus) -> None:
        """Sink for the provisioner's status updates."""
        description = (
            f"[cyan][{status.step}/{status.total_steps}][/cyan] {status.label}"
        )
        if status.error:
            description = f"[red]{status.label}[/red]"
        elif status.done:
            description = f"[green]✓ {status.label}[/green]"

        if self._provision_task is None:
            self._provision_task = self.progress.add_task(description, total=100)

        # A task that is not started renders as a pulsing bar
        if status.indeterminate:
            self.progress.reset(
                self._provision_task, start=False, description=description
            )
        else:
            self.progress.start_task(self._provision_task)
            self.progress.update(
                self._provision_task,
                description=description,
                total=100,
                completed=status.percent,
            )

    def start_download(self, title: str) -> None:
        self._last_percent = 0.0
        self._last_status = "Initializing..."
        self._download_title = escape(shorten(title, 50))
        self._download_task = self.progress.add_task(
            f"{self._download_title} [dim]{self._last_status}[/dim]", total=100
        )

    def on_download_line(self, line: str) -> None:
        """Sink for the engine's stdout lines."""
        if self._download_task is None:
            return
        percent, status = parse_progress_line(line)
        if percent is not None:
            self._last_percent = percent
        if status is not None:
            self._last_status = escape(shorten(status))
            log.debug(status)
        self.progress.update(
            self._download_task,
            completed=self._last_percent,
            description=f"{self._download_title} [dim]{self._last_status}[/dim]",
        )

    def finish_download(self, success: bool, status: str) -> None:
        if self._download_task is None:
            return
        style = "green" if success else "yellow"
        self.progress.update(
            self._download_task,
            completed=100 if success else self._last_percent,
            description=f"{self._download_title} [{style}]{status}[/{style}]",
        )
        self._download_task = None

    async def __aenter__(self):
        if not self.quiet:
            self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self.quiet:
            await asyncio.sleep(0.1)
            self.progress.stop()
