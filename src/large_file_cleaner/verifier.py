"""Post-rewrite verification and object store compaction."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ScanError, VerificationError
from .models import Repository
from .scanner import BATCH_CHECK_FORMAT, ObjectScanner
from .utils.git_runner import run_git_command
from .utils.size_format import format_size

logger = logging.getLogger(__name__)


def directory_size(path: Path) -> int:
    """Total size in bytes of regular files below ``path``."""
    total = 0
    for dirpath, _, filenames in os.walk(path):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                continue
    return total


def diagnostic_command(repo: Repository, threshold_bytes: int) -> str:
    """Shell pipeline listing blobs still at or above the threshold."""
    return (
        f"cd {repo.path} && git rev-list --objects --all | "
        f"git cat-file --batch-check='{BATCH_CHECK_FORMAT}' | "
        f"awk '$1 == \"blob\" && $3 >= {threshold_bytes}'"
    )


@dataclass
class VerificationResult:
    clean: bool
    remaining: int
    size_before: Optional[int] = None
    size_after: Optional[int] = None
    diagnostic_command: Optional[str] = None


class Verifier:
    """Re-walks reachable objects after a rewrite and compacts the store."""

    def __init__(self, scanner: ObjectScanner):
        self.scanner = scanner

    @property
    def threshold_bytes(self) -> int:
        return self.scanner.threshold_bytes

    def verify(self, repo: Repository) -> VerificationResult:
        """
        Assert that no reachable blob is at or above the threshold.

        A clean repository is garbage collected and its ``.git`` size
        reported before and after.

        Raises:
            VerificationError: If reachable objects cannot be enumerated
        """
        try:
            remaining = len(
                self.scanner.list_reachable_blobs(repo, include_unnamed=True)
            )
        except ScanError as e:
            raise VerificationError(e.message, repo.name)

        if remaining:
            logger.error(f"Found {remaining} large blob(s) still in history!")
            return VerificationResult(
                clean=False,
                remaining=remaining,
                diagnostic_command=diagnostic_command(repo, self.threshold_bytes),
            )

        logger.info(
            f"No files of {format_size(self.threshold_bytes)} or more remain in history"
        )
        size_before = directory_size(repo.git_dir)
        logger.info(f"Repository .git size: {format_size(size_before)}")
        self.compact(repo)
        size_after = directory_size(repo.git_dir)
        logger.info(f"Repository .git size after gc: {format_size(size_after)}")

        return VerificationResult(
            clean=True, remaining=0, size_before=size_before, size_after=size_after
        )

    def compact(self, repo: Repository) -> None:
        """Expire reflogs and run an aggressive gc; failures are warnings."""
        logger.info("Running garbage collection...")
        for cmd in (
            ["git", "reflog", "expire", "--expire=now", "--all"],
            ["git", "gc", "--prune=now", "--aggressive"],
        ):
            try:
                run_git_command(cmd, cwd=repo.path, check=True)
            except subprocess.CalledProcessError as e:
                logger.warning(f"{' '.join(cmd)} failed: {(e.stderr or '').strip()}")
                return
