"""
Orchestrator - drives discovery, scanning and the per-repository pipeline.

State machine:
    DISCOVERING -> SCANNING -> PREVIEWING (dry-run, stop)
                            -> CONFIRMING -> PROCESSING -> REPORTING -> DONE
    CONFIRMING -> ABORTED when the operator does not type the exact token.

Scanning always completes for every repository before anything is mutated.
Repositories are processed one at a time; a failure in one is recorded and
the next repository is still attempted.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .archiver import Archiver, S3BlobStore
from .backup import BackupManager, restore_command
from .config import RunContext
from .discovery import discover_repositories
from .display import CONFIRMATION_TOKEN, Display
from .errors import ArchiveError, BackupError, RewriteError, VerificationError
from .inventory import InventoryBuilder, storage_location, write_report
from .models import (
    Inventory,
    LargeObjectRecord,
    Repository,
    RepositoryOutcome,
    RepositoryResult,
    RunSummary,
    Stage,
)
from .publisher import Publisher, PublishStatus
from .rewriter import FilterRepoEngine, HistoryRewriter
from .scanner import ObjectScanner
from .utils.exception_logger import ExceptionLogger
from .utils.repo_log import repository_log
from .utils.size_format import format_size
from .verifier import Verifier

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], str]
CONFIRMATION_PROMPT = f"Type '{CONFIRMATION_TOKEN}' (all caps) to proceed"


class RunState(Enum):
    """Orchestrator states."""

    DISCOVERING = "discovering"
    SCANNING = "scanning"
    PREVIEWING = "previewing"
    CONFIRMING = "confirming"
    PROCESSING = "processing"
    REPORTING = "reporting"
    ABORTED = "aborted"
    DONE = "done"


class Orchestrator:
    """Runs the end-to-end cleanup for every repository under a parent dir."""

    def __init__(
        self,
        context: RunContext,
        confirm: ConfirmFn,
        scanner: Optional[ObjectScanner] = None,
        backup_manager: Optional[BackupManager] = None,
        archiver: Optional[Archiver] = None,
        rewriter: Optional[HistoryRewriter] = None,
        publisher: Optional[Publisher] = None,
        verifier: Optional[Verifier] = None,
        display: Optional[Display] = None,
        exception_logger: Optional[ExceptionLogger] = None,
    ):
        """
        Initialize the orchestrator.

        Collaborators default to the production implementations built from
        ``context``; tests inject their own.

        Args:
            context: Immutable run configuration
            confirm: Called with the prompt text, returns the operator's answer
        """
        self.context = context
        self.confirm = confirm
        self.scanner = scanner or ObjectScanner(
            context.threshold_bytes, exclude_dirs=[context.output_dir]
        )
        self.backup_manager = backup_manager or BackupManager(context.backup_dir)
        if archiver is None and not context.skip_archive:
            archiver = Archiver(
                S3BlobStore(
                    context.bucket,
                    profile=context.aws_profile,
                    region=context.aws_region,
                )
            )
        self.archiver = archiver
        self.rewriter = rewriter or HistoryRewriter(FilterRepoEngine(), context.remote)
        self.publisher = publisher or Publisher(
            context.remote, skip=context.skip_publish
        )
        self.verifier = verifier or Verifier(self.scanner)
        self.display = display or Display()
        self.exception_logger = exception_logger or ExceptionLogger.for_run(
            context.log_dir, context.timestamp
        )

        self.state = RunState.DISCOVERING
        self.history: List[RunState] = [RunState.DISCOVERING]
        self.repositories: List[Repository] = []
        self.inventory = Inventory()

    def _transition(self, state: RunState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def run(self) -> RunSummary:
        """Execute the run and return per-repository results."""
        summary = RunSummary()
        self.context.prepare_output_dirs()

        self.display.subheader("Discovering Git Repositories")
        self.repositories = discover_repositories(self.context.parent_dir)
        if not self.repositories:
            self.display.error(
                f"No Git repositories found in: {self.context.parent_dir}"
            )
            summary.error = "No Git repositories found"
            self._transition(RunState.ABORTED)
            return summary
        self.display.success(f"Found {len(self.repositories)} repositories")

        self._transition(RunState.SCANNING)
        self.inventory = self.scan()

        if self.inventory.is_empty():
            self.display.success(
                f"No files of {format_size(self.context.threshold_bytes)} or more "
                "found in any repository"
            )
            self.display.info("Nothing to clean!")
            self._transition(RunState.DONE)
            return summary

        if not self.context.execute:
            self._transition(RunState.PREVIEWING)
            self.display.preview(self.inventory, self.context)
            self._transition(RunState.DONE)
            return summary

        self._transition(RunState.CONFIRMING)
        if not self.confirmed():
            self.display.info("Aborted by user")
            self._transition(RunState.ABORTED)
            return summary

        self._transition(RunState.PROCESSING)
        self.display.header("Executing Cleanup")
        for repo in self.repositories:
            summary.add(self.process_repository(repo, self.inventory))

        self._transition(RunState.REPORTING)
        self.report(summary)
        self._transition(RunState.DONE)
        return summary

    def scan(self) -> Inventory:
        """Build the full inventory and write the report artifact."""
        self.display.header("Scanning All Repositories")
        builder = InventoryBuilder(self.scanner)

        def on_repository(repo: Repository, count: int) -> None:
            self.display.info(f"{repo.name}: {count} large object(s)")

        with self.display.error_console.status("Scanning repositories..."):
            inventory = builder.build(self.repositories, on_repository)

        write_report(inventory, self.context.report_file, self.context.bucket)
        self.display.success(f"Report generated: {self.context.report_file}")
        self.display.info(f"Total large files found: {inventory.total_files}")
        self.display.info(f"Total size: {format_size(inventory.total_bytes)}")
        return inventory

    def confirmed(self) -> bool:
        self.display.confirmation_banner(self.context)
        answer = self.confirm(CONFIRMATION_PROMPT)
        return answer == CONFIRMATION_TOKEN

    def process_repository(
        self, repo: Repository, inventory: Inventory
    ) -> RepositoryResult:
        """
        Run backup, archive, rewrite, publish and verify for one repository.

        Never raises: every failure is captured in the returned result.
        """
        self.display.header(f"Processing Repository: {repo.name}")
        records = inventory.records_for(repo.name)
        if not records:
            self.display.info("No large files found in this repository")
            return RepositoryResult(repository=repo, outcome=RepositoryOutcome.SKIPPED)

        log_file = self.context.repository_log_file(repo.name)
        result = RepositoryResult(
            repository=repo, outcome=RepositoryOutcome.SUCCESS, log_file=log_file
        )

        with repository_log(log_file):
            self.display.info(f"Log file: {log_file}")
            try:
                self._run_stages(repo, records, inventory, result, log_file)
            except Exception as e:
                stage = result.stage or Stage.BACKING_UP
                self.exception_logger.log_exception(
                    e, context={"repository": repo.name, "stage": stage.value}
                )
                self.display.error(f"Unexpected error during {stage.value}: {e}")
                if result.backup_path is not None:
                    self._show_restore(repo, result.backup_path)
                self._fail(result, stage, str(e))

            if result.outcome is RepositoryOutcome.SUCCESS:
                self.display.success(f"Repository processed: {repo.name}")

        return result

    def _enter(self, result: RepositoryResult, stage: Stage) -> None:
        # A recorded failure keeps the stage it happened in
        if result.outcome is RepositoryOutcome.SUCCESS:
            result.stage = stage

    def _fail(
        self,
        result: RepositoryResult,
        stage: Stage,
        reason: str,
        outcome: RepositoryOutcome = RepositoryOutcome.FAILED,
    ) -> None:
        result.outcome = outcome
        result.stage = stage
        result.reason = reason

    def _show_restore(self, repo: Repository, backup_path: Path) -> None:
        self.display.info("Restore from backup:")
        self.display.commands([restore_command(backup_path, repo)])

    def _run_stages(
        self,
        repo: Repository,
        records: List[LargeObjectRecord],
        inventory: Inventory,
        result: RepositoryResult,
        log_file: Path,
    ) -> None:
        self._enter(result, Stage.BACKING_UP)
        self.display.subheader(f"Creating Backup: {repo.name}")
        try:
            backup_path = self.backup_manager.backup(repo, self.context.timestamp)
        except BackupError as e:
            self.display.error(e.message)
            self.display.error("Backup failed - aborting for safety")
            self._fail(result, Stage.BACKING_UP, e.message)
            return
        result.backup_path = backup_path
        self.display.success(f"Backup created: {backup_path}")

        self._enter(result, Stage.ARCHIVING)
        if not self._archive(repo, records, result):
            return

        self._enter(result, Stage.REWRITING)
        self.display.subheader(f"Rewriting History: {repo.name}")
        request = inventory.rewrite_request(repo.name)
        try:
            rewrite = self.rewriter.rewrite(repo, request, log_file)
        except RewriteError as e:
            self.exception_logger.log_exception(
                e, context={"repository": repo.name, "stage": Stage.REWRITING.value}
            )
            self.display.error(f"History rewrite failed: {e.message}")
            self._show_restore(repo, backup_path)
            self._fail(result, Stage.REWRITING, e.message)
            return
        self.display.success(f"Removed {rewrite.paths_removed} path(s) from history")
        if rewrite.remote_restored:
            self.display.info(f"Restored remote '{self.context.remote}'")

        self._enter(result, Stage.PUBLISHING)
        self._publish(repo, result, log_file)

        self._enter(result, Stage.VERIFYING)
        self.display.subheader(f"Verifying Cleanup: {repo.name}")
        try:
            verification = self.verifier.verify(repo)
        except VerificationError as e:
            self.display.error(f"Verification failed: {e.message}")
            self._fail(result, Stage.VERIFYING, e.message)
            return

        result.remaining_oversized = verification.remaining
        if not verification.clean:
            self.display.error(
                f"Found {verification.remaining} large blob(s) still in history!"
            )
            self.display.info("Run the following to investigate:")
            self.display.commands([verification.diagnostic_command or ""])
            self._fail(
                result,
                Stage.VERIFYING,
                f"{verification.remaining} oversized blob(s) remain",
            )
            return

        self.display.success(
            f"No files of {format_size(self.context.threshold_bytes)} or more "
            "remain in history"
        )
        if verification.size_before is not None and verification.size_after is not None:
            self.display.info(
                f"Repository .git size: {format_size(verification.size_before)} -> "
                f"{format_size(verification.size_after)} after gc"
            )

        if result.outcome is RepositoryOutcome.SUCCESS:
            result.stage = None

    def _archive(
        self,
        repo: Repository,
        records: List[LargeObjectRecord],
        result: RepositoryResult,
    ) -> bool:
        """Upload historical blobs; False when the pipeline must stop here."""
        self.display.subheader(f"Uploading Large Files to S3: {repo.name}")
        if self.context.skip_archive or self.archiver is None:
            self.display.warning("S3 upload skipped (--skip-s3 flag)")
            return True

        report = self.archiver.archive_inventory(repo, records)
        result.archived = len(report.uploaded)
        result.archive_failures = len(report.failures)
        for path, reason in report.failures:
            self.display.error(f"{path}: {reason}")
        self.display.info(
            f"Uploaded {len(report.uploaded)} files, {len(report.failures)} failures"
        )

        try:
            stored = self.archiver.audit(repo)
            self.display.info(
                f"{len(stored)} object(s) stored under "
                f"{storage_location(self.context.bucket, repo.name + '/')}"
            )
        except ArchiveError as e:
            self.display.warning(f"Could not list archived objects: {e.message}")

        if report.has_failures and self.context.strict_archive:
            self.display.error(
                "Archive failures with --strict-archive: history left untouched"
            )
            self._fail(
                result,
                Stage.ARCHIVING,
                f"{len(report.failures)} archive failure(s)",
            )
            return False
        return True

    def _publish(
        self, repo: Repository, result: RepositoryResult, log_file: Path
    ) -> None:
        self.display.subheader(f"Force Pushing: {repo.name}")
        published = self.publisher.publish(repo, log_file)
        result.publish_status = published.status.value

        if published.status is PublishStatus.SUCCESS:
            self.display.success(published.message)
        elif published.status is PublishStatus.SKIPPED:
            self.display.warning(published.message)
            self.display.info("To push manually:")
            self.display.commands(published.manual_commands)
        elif published.status is PublishStatus.PARTIAL:
            self.display.warning(published.message)
            self.display.commands(published.manual_commands)
        else:
            self.display.error(published.message)
            self.display.info("Local rewrite kept. Push manually:")
            self.display.commands(published.manual_commands)
            self._fail(
                result,
                Stage.PUBLISHING,
                published.message,
                outcome=RepositoryOutcome.PARTIAL_FAILURE,
            )

    def report(self, summary: RunSummary) -> None:
        self.display.summary(summary, self.context)
        if summary.failed:
            self.display.warning("Some repositories failed. Check logs for details.")
            return
        self.display.success("All repositories cleaned successfully!")
        self.display.manual_verification(self.context)
