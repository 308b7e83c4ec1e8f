"""
Console output for the cleaner: progress log lines, preview table, banners
and the final summary.

Every line shown to the operator is also emitted to the ``large_file_cleaner``
logger so that per-repository log files capture the same narrative.
"""

import logging
from typing import Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from .config import RunContext
from .models import Inventory, RepositoryOutcome, RunSummary, printable_path
from .scanner import BATCH_CHECK_FORMAT
from .utils.size_format import format_size

logger = logging.getLogger(__name__)

PATH_DISPLAY_WIDTH = 38
CONFIRMATION_TOKEN = "YES"

OUTCOME_STYLES = {
    RepositoryOutcome.SUCCESS: "green",
    RepositoryOutcome.SKIPPED: "dim",
    RepositoryOutcome.PARTIAL_FAILURE: "yellow",
    RepositoryOutcome.FAILED: "red",
}


def truncate_path(path: str, width: int = PATH_DISPLAY_WIDTH) -> str:
    """Keep the tail of long paths: ``...`` plus the last ``width - 3`` chars."""
    if len(path) <= width:
        return path
    return "..." + path[-(width - 3) :]


class Display:
    """Textual report and progress log."""

    def __init__(
        self,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
    ):
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def _line(self, label: str, style: str, message: str, level: int) -> None:
        text = printable_path(message)
        self.error_console.print(Text.assemble((f"[{label}]", style), " ", text))
        logger.log(level, message)

    def info(self, message: str) -> None:
        self._line("INFO", "blue", message, logging.INFO)

    def success(self, message: str) -> None:
        self._line("SUCCESS", "green", message, logging.INFO)

    def warning(self, message: str) -> None:
        self._line("WARNING", "yellow", message, logging.WARNING)

    def error(self, message: str) -> None:
        self._line("ERROR", "red", message, logging.ERROR)

    def header(self, title: str) -> None:
        self.error_console.print()
        self.error_console.print(Rule(Text(title, style="bold cyan"), style="cyan"))
        self.error_console.print()

    def subheader(self, title: str) -> None:
        self.error_console.print(Text(f"\n── {title} ──\n", style="bold"))

    def commands(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.error_console.print(Text(f"  {line}"))

    def configuration(self, context: RunContext) -> None:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold")
        table.add_column(style="cyan")
        table.add_row("Parent Directory:", Text(str(context.parent_dir)))
        table.add_row("Size Threshold:", format_size(context.threshold_bytes))
        table.add_row("S3 Bucket:", context.bucket)
        table.add_row("Git Remote:", context.remote)
        table.add_row("Mode:", context.mode_label)
        table.add_row("Output Directory:", Text(str(context.output_dir)))
        self.console.print("Configuration:")
        self.console.print(table)
        self.console.print()

    def preview(self, inventory: Inventory, context: RunContext) -> None:
        """Dry-run table of everything that would be processed."""
        self.header("DRY-RUN PREVIEW")
        self.console.print(
            Text(
                f"The following files are {format_size(context.threshold_bytes)} "
                "or larger and would be processed:\n",
                style="yellow",
            )
        )

        table = Table(show_lines=False)
        table.add_column("REPOSITORY", no_wrap=True)
        table.add_column("FILE PATH", no_wrap=True)
        table.add_column("SIZE", justify="right")
        table.add_column("ORIGIN")
        table.add_column("COMMITS", justify="right")
        for record in inventory.records:
            table.add_row(
                record.repository,
                Text(truncate_path(printable_path(record.path))),
                record.size_human,
                record.origin.value,
                f"{len(record.commits)} commit(s)",
            )
        self.console.print(table)

        self.console.print(Text("\nSummary:", style="bold"))
        self.console.print(f"  Total files to process: {inventory.total_files}")
        self.console.print(f"  Total size: {format_size(inventory.total_bytes)}")
        self.console.print(Text(f"  Report saved to: {context.report_file}"))
        self.console.print(
            Text("\nTo execute these changes, run with --execute flag:", style="yellow")
        )
        self.console.print(
            Text(f"  git-large-file-cleaner {context.parent_dir} --execute\n")
        )

    def confirmation_banner(self, context: RunContext) -> None:
        steps = []
        if not context.skip_archive:
            steps.append("Upload large files to S3")
        steps.append("PERMANENTLY rewrite Git history")
        if not context.skip_publish:
            steps.append("Force-push to remote repositories")
        body = Text()
        body.append("This will:\n")
        for number, step in enumerate(steps, 1):
            body.append(f"  {number}. {step}\n")
        body.append("\nCommit hashes WILL change. All team members must re-clone.\n\n")
        body.append(f"Backups will be saved to: {context.backup_dir}")
        self.console.print(
            Panel(
                body,
                title="WARNING: DESTRUCTIVE OPERATION",
                border_style="red bold",
            )
        )

    def summary(self, summary: RunSummary, context: RunContext) -> None:
        self.header("Execution Complete")

        table = Table()
        table.add_column("REPOSITORY")
        table.add_column("OUTCOME")
        table.add_column("STAGE")
        table.add_column("DETAILS")
        for result in summary.results:
            table.add_row(
                result.repository.name,
                Text(
                    result.outcome.value,
                    style=OUTCOME_STYLES.get(result.outcome, ""),
                ),
                result.stage.value if result.stage else "",
                Text(result.reason or ""),
            )
        self.console.print(table)

        self.console.print("Results:")
        self.console.print(f"  Repositories found:     {summary.total}")
        self.console.print(f"  Repositories processed: {summary.processed}")
        self.console.print(
            Text(f"  Successful:             {summary.successful}", style="green")
        )
        self.console.print(f"  Skipped:                {summary.skipped}")
        self.console.print(
            Text(f"  Failed:                 {summary.failed}", style="red")
        )
        if summary.archive_failures:
            self.console.print(
                Text(
                    f"  Archive failures:       {summary.archive_failures}",
                    style="yellow",
                )
            )
        self.console.print()
        self.console.print("Output files:")
        self.console.print(Text(f"  Report:  {context.report_file}"))
        self.console.print(Text(f"  Backups: {context.backup_dir}"))
        self.console.print(Text(f"  Logs:    {context.log_dir}"))
        self.console.print()

    def manual_verification(self, context: RunContext) -> None:
        self.console.print(Text("Manual Verification Commands:", style="bold"))
        self.console.print()
        self.console.print("# List any remaining large blobs in a repo:")
        self.console.print("cd <repo-dir>")
        self.console.print(
            Text(
                "git rev-list --objects --all | "
                f"git cat-file --batch-check='{BATCH_CHECK_FORMAT}' | "
                f"awk '$1 == \"blob\" && $3 >= {context.threshold_bytes}'"
            )
        )
        self.console.print()
        if not context.skip_archive:
            self.console.print("# Verify S3 uploads:")
            self.console.print(f"aws s3 ls s3://{context.bucket}/ --recursive")
            self.console.print()
        self.console.print("# Check repository integrity:")
        self.console.print("git fsck --full")
