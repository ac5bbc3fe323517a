# intune_packager/cli/utils/progress.py
"""Progress display utilities"""

from contextlib import contextmanager
from typing import Callable, Generator, Optional

from rich.console import Console
from rich.progress import (
    Progress,
    BarColumn,
    DownloadColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class ProgressManager:
    """Centralized progress management"""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    @contextmanager
    def file_progress(self) -> Generator[Progress, None, None]:
        """Progress bar for file transfers"""
        with Progress(
                TextColumn("[bold blue]{task.fields[filename]}", justify="right"),
                BarColumn(bar_width=None),
                "[progress.percentage]{task.percentage:>3.1f}%",
                "•",
                DownloadColumn(),
                "•",
                TransferSpeedColumn(),
                "•",
                TimeRemainingColumn(),
                console=self.console,
        ) as progress:
            yield progress


def upload_progress_callback(progress: Progress, filename: str) -> Callable[[int, int], None]:
    """Create an upload progress callback

    The task is added on the first report, when the encrypted size is
    known, so runs that never upload leave no empty bar behind.
    """
    task_id: Optional[TaskID] = None

    def callback(completed: int, total: int) -> None:
        nonlocal task_id
        if task_id is None:
            task_id = progress.add_task("upload", filename=filename, total=total)
        progress.update(task_id, completed=completed, total=total)

    return callback
