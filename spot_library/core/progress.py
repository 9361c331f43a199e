"""
Rich progress bars for the two long-running scans.

    Scanning        ✓ 1840  ✗ 3               ━━━━━━━━━━━━━━━━━  64%
    Upgrades        ⬆ 12  ○ 30  ✗ 2            ━━━━━━━━━━━━━━━━━  47%

Each bar exposes an `on_progress` method matching the callback signature
of the scan it follows, so it can be passed straight in. Callbacks arrive
on the coordinating thread only.

Usage:
    from spot_library.core.progress import ScanProgressBar

    with ScanProgressBar() as progress:
        finder.find_duplicates(root, on_progress=progress.on_progress)
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from rich import get_console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Column
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})

DESCRIPTION_WIDTH = 15
STATUS_WIDTH = 35


def _fixed_text(text_format: str, width: int, style: str = "none") -> TextColumn:
    """Text column that never grows past `width` (ellipsis instead)."""
    return TextColumn(
        text_format,
        style=style,
        table_column=Column(width=width, no_wrap=True, overflow="ellipsis"),
    )


class BaseProgressBar(ABC):
    """
    One rich task with a description, a status text and a bar.

    Subclasses keep their own counters and render them in `status()`.
    The total may be None at start (files still being listed); the
    bar pulses until `set_total()` is called.
    """

    def __init__(self, total: int | None, description: str) -> None:
        self.total = total
        self.description = description
        self.completed = 0

        self.console = get_console()
        self.progress = Progress(
            _fixed_text("[white]{task.description}", DESCRIPTION_WIDTH),
            _fixed_text("{task.fields[status]}", STATUS_WIDTH, style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            refresh_per_second=10,
        )
        self.task_id: Optional[TaskID] = None

    def __enter__(self) -> "BaseProgressBar":
        self.console.push_theme(PROGRESS_THEME)
        self.progress.start()
        self.task_id = self.progress.add_task(self.description, total=self.total, status=self.status())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.progress.stop()
        self.console.pop_theme()
        self.task_id = None

    def set_total(self, total: int) -> None:
        self.total = total
        if self.task_id is not None:
            self.progress.update(self.task_id, total=total)

    def refresh(self) -> None:
        if self.task_id is not None:
            self.progress.update(self.task_id, completed=self.completed, status=self.status())

    @abstractmethod
    def status(self) -> str:
        """Counters as rich markup."""


class ScanProgressBar(BaseProgressBar):
    """Tag-reading phase of a duplicate scan: files read and files failed."""

    def __init__(self, total: int | None = None, description: str = "Scanning") -> None:
        super().__init__(total, description)
        self.errors = 0

    def status(self) -> str:
        text = f"[green]✓ {self.completed - self.errors}[/green]"
        if self.errors:
            text += f"  [red]✗ {self.errors}[/red]"
        return text

    def on_progress(self, completed: int, total: int, errors: int = 0) -> None:
        """DuplicateFinder reports cumulative counts, so they replace ours."""
        if total != self.total:
            self.set_total(total)
        self.completed = completed
        self.errors = errors
        self.refresh()


class UpgradeProgressBar(BaseProgressBar):
    """
    Quality-upgrade scan.

    Counts:
        ⬆ lossless source available
        ○ matched (or already lossless) without an upgrade
        ✗ no match: missing tags, catalog failure, task error
    """

    def __init__(self, total: int, description: str = "Upgrades") -> None:
        super().__init__(total, description)
        self.upgradeable = 0
        self.not_available = 0
        self.failed = 0

    def status(self) -> str:
        text = f"[green]⬆ {self.upgradeable}[/green]  [white]○ {self.not_available}[/white]"
        if self.failed:
            text += f"  [red]✗ {self.failed}[/red]"
        return text

    def on_progress(self, completed: int, total: int, suggestion: Any) -> None:
        """
        Callback for QualityUpgradeMatcher.scan_files.

        `suggestion` is the finished QualityUpgradeSuggestion, or None when
        the task raised.
        """
        self.completed = completed
        if suggestion is None or not suggestion.is_matched:
            self.failed += 1
        elif suggestion.is_upgradeable:
            self.upgradeable += 1
        else:
            self.not_available += 1
        self.refresh()
