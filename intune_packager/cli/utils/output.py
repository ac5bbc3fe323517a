# intune_packager/cli/utils/output.py
"""Output formatting utilities"""

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ...constants import EMOJI_ERROR, EMOJI_SUCCESS, EMOJI_WARNING
from ...core.folder_scanner import FolderCheck
from ...models.result import BatchResult, LabelRunResult, OperationStatus
from ...utils.file_utils import format_size

console = Console()

_STATUS_STYLE = {
    OperationStatus.SUCCESS: "green",
    OperationStatus.SKIPPED: "cyan",
    OperationStatus.FAILED: "red",
    OperationStatus.PARTIAL: "yellow",
}


def format_label_result(result: LabelRunResult) -> None:
    """Format and display the outcome of one label run"""
    title = result.display_name or result.folder_name

    if result.is_failed:
        error = result.errors[-1] if result.errors else None
        lines = [f"[red]{EMOJI_ERROR} {title} failed:[/red] {result.message}"]
        if error:
            lines.append(f"[bold]Kind:[/bold] {error.kind.value}")
            if error.code:
                lines.append(f"[bold]Code:[/bold] {error.code}")
        if result.uploaded:
            lines.append("")
            lines.append(f"[yellow]The new version was uploaded as {result.app_id}[/yellow]")

        console.print(Panel("\n".join(lines), title="Label Error", border_style="red"))
        return

    if result.status == OperationStatus.SKIPPED:
        console.print(Panel(f"[cyan]{EMOJI_SUCCESS}[/cyan] {result.message}",
                            title="Up To Date", border_style="cyan"))
        return

    lines = [
        f"[green]{EMOJI_SUCCESS}[/green] {title} uploaded successfully!",
        "",
        f"[bold]Version:[/bold] {result.version}",
        f"[bold]App ID:[/bold] {result.app_id}",
    ]

    size = result.metadata.get("file_size")
    if size:
        lines.append(f"[bold]Size:[/bold] {format_size(size)}")
    if result.unassigned_app_ids:
        lines.append(f"[bold]Unassigned:[/bold] {len(result.unassigned_app_ids)} older version(s)")
    if result.deleted_app_ids:
        lines.append(f"[bold]Deleted:[/bold] {len(result.deleted_app_ids)} older version(s)")
    if result.duration is not None:
        lines.append(f"[bold]Duration:[/bold] {result.duration:.1f}s")

    console.print(Panel("\n".join(lines), title="Label Result", border_style="green"))

    for warning in result.warnings:
        console.print(f"  {EMOJI_WARNING} {warning}")


def format_batch_result(batch: BatchResult) -> None:
    """Format and display a batch summary table"""
    table = Table(title="Batch Summary", box=box.ROUNDED)
    table.add_column("Folder", style="cyan")
    table.add_column("Status")
    table.add_column("Version", style="green")
    table.add_column("Message")

    for result in batch.results:
        style = _STATUS_STYLE.get(result.status, "white")
        table.add_row(
            result.folder_name,
            f"[{style}]{result.status.value}[/{style}]",
            result.version or "-",
            result.message,
        )

    console.print(table)
    console.print(
        f"\n[bold]Total:[/bold] {batch.total_operations}  "
        f"[green]Succeeded:[/green] {batch.successful_operations}  "
        f"[red]Failed:[/red] {batch.failed_operations}  "
        f"[bold]Uploaded:[/bold] {len(batch.uploaded)}"
    )


def format_folder_checks(checks: List[FolderCheck], show_all: bool = False) -> None:
    """Format and display folder readiness"""
    table = Table(title="Managed Titles", box=box.ROUNDED)
    table.add_column("Folder", style="cyan")
    table.add_column("Ready")
    table.add_column("Problems", style="yellow")

    shown = 0
    for check in checks:
        if not show_all and not check.is_ready:
            continue
        shown += 1
        ready = f"[green]{EMOJI_SUCCESS}[/green]" if check.is_ready else f"[red]{EMOJI_ERROR}[/red]"
        table.add_row(check.folder_name, ready, "\n".join(check.problems))

    if shown == 0:
        console.print("[yellow]No automation-ready folders found[/yellow]")
        return
    console.print(table)
