"""progress display for downloads and registry queries."""

from contextlib import contextmanager
from typing import Optional
from rich.console import Console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    DownloadColumn,
    TransferSpeedColumn,
    TimeRemainingColumn,
    TaskID,
)


class ProgressManager:
    """renders rich progress on stderr when attached to a terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self._enabled = self._should_show_progress()

    def _should_show_progress(self) -> bool:
        """
        check if we should show progress bars.

        returns false in non-interactive environments (ci/cd, piped output).
        """
        return self.console.is_terminal and not self.console.is_dumb_terminal

    @contextmanager
    def spinner(self, description: str, transient: bool = True):
        """
        show an indeterminate spinner for unknown-duration work.

        yields:
            task id of the spinner, or None when progress is disabled
        """
        if not self._enabled:
            yield None
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=transient,
        ) as progress:
            yield progress.add_task(description, total=None)

    @contextmanager
    def download_progress(self):
        """
        create a download progress context with transfer speed tracking.

        yields:
            Progress instance configured for downloads
        """
        if not self._enabled:
            yield _DummyProgress()
            return

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            yield progress


class _DummyProgress:
    """stand-in used when output is not a terminal."""

    def add_task(self, description: str, total: Optional[int] = None, **kwargs) -> TaskID:
        return TaskID(0)

    def update(self, task_id: TaskID, **kwargs):
        pass
