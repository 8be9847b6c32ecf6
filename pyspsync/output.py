"""Console output for the PySpSync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .sync.report import SyncReport
from .sync.scanner import SourceStructure
from .utils import format_size


class OutputFormatter:
    """Prints human-readable (Rich) or JSON output.

    Status messages go to stderr so that ``--json`` output on stdout stays
    machine-readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(message)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(f"[green]{message}[/green]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(message)}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data))

    def output_report(self, report: SyncReport) -> None:
        """Print the result of a sync run."""
        if self.json_output:
            self.output_json(report.to_dict())
            return
        if self.quiet:
            return

        table = Table(title="Upload report", show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        table.add_row("Uploaded", str(report.uploaded_count))
        table.add_row("Failed", str(report.failed_count))
        table.add_row("Locked", str(report.locked_count))
        table.add_row("Failed folder creations", str(report.failed_folder_creations))
        self.console.print(table)

        for path in report.failed_paths:
            self.console.print(f"[red]x[/red] {escape(path)}")
        if report.error_message:
            self.error(report.error_message)
        else:
            self.success(f"Uploaded {report.uploaded_count} file(s).")

    def output_structure(
        self, structure: SourceStructure, total_size: Optional[int] = None
    ) -> None:
        """Print the folders and files a sync run would upload."""
        if self.json_output:
            self.output_json(
                {
                    "root": str(structure.root),
                    "folders": structure.folder_paths,
                    "files": [f.relative_path for f in structure.files],
                    "total_size": total_size,
                }
            )
            return

        for folder in structure.folders:
            self.print(f"[blue]{escape(folder.relative_path)}/[/blue]")
        for entry in structure.files:
            self.print(escape(entry.relative_path))
        summary = f"{len(structure.folders)} folder(s), {len(structure.files)} file(s)"
        if total_size is not None:
            summary = f"{summary}, {format_size(total_size)}"
        self.info(summary)
