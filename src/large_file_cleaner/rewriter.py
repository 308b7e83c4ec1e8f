"""
History rewriting.

The rewrite itself is delegated to an engine; the default engine is
git-filter-repo, which removes the given paths from every commit and tag,
prunes commits left empty and keeps all other content and metadata intact.
git-filter-repo also drops the remote configuration as a safety measure, so
the rewriter captures the remote URL beforehand and restores it.
"""

import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import RewriteError
from .models import Repository, RewriteRequest
from .utils.git_runner import add_remote, get_remote_url, run_git_command
from .utils.repo_log import append_command_output

logger = logging.getLogger(__name__)

# Longer path lists go through --paths-from-file to stay under ARG_MAX
PATHS_FROM_FILE_THRESHOLD = 50


class RewriteEngine(ABC):
    """
    Abstract history-rewrite capability.

    Any engine that removes a set of paths from all history while preserving
    everything else can be substituted.
    """

    @abstractmethod
    def rewrite(
        self, repo_path: Path, paths: Sequence[str], log_file: Optional[Path] = None
    ) -> None:
        """
        Remove ``paths`` from every commit and tag of the repository.

        Raises:
            RewriteError: If the rewrite fails
        """
        pass


class FilterRepoEngine(RewriteEngine):
    """Rewrite engine invoking ``git-filter-repo --invert-paths``."""

    def __init__(self, executable: str = "git-filter-repo"):
        self.executable = executable

    def build_command(
        self, paths: Sequence[str], paths_file: Optional[Path] = None
    ) -> List[str]:
        cmd = [self.executable]
        if paths_file is not None:
            cmd.extend(["--paths-from-file", str(paths_file)])
        else:
            for path in paths:
                cmd.extend(["--path", path])
        cmd.extend(["--invert-paths", "--force"])
        return cmd

    def rewrite(
        self, repo_path: Path, paths: Sequence[str], log_file: Optional[Path] = None
    ) -> None:
        if not paths:
            return

        with tempfile.TemporaryDirectory(prefix="glfc-paths-") as tmp:
            paths_file: Optional[Path] = None
            if len(paths) > PATHS_FROM_FILE_THRESHOLD:
                paths_file = Path(tmp) / "paths.txt"
                # Plain lines are literal paths in --paths-from-file
                paths_file.write_text(
                    "\n".join(paths) + "\n",
                    encoding="utf-8",
                    errors="surrogateescape",
                )

            cmd = self.build_command(paths, paths_file)
            logger.info(f"Running: {' '.join(cmd)}")
            try:
                result = run_git_command(cmd, cwd=repo_path, check=False)
            except FileNotFoundError as e:
                raise RewriteError(f"{self.executable} is not available: {e}")

        if log_file is not None:
            append_command_output(
                log_file, " ".join(cmd), (result.stdout or "") + (result.stderr or "")
            )

        if result.returncode != 0:
            raise RewriteError(
                f"{self.executable} failed with return code {result.returncode}: "
                f"{(result.stderr or '').strip()}"
            )


@dataclass
class RewriteResult:
    """What a rewrite did to one repository."""

    repository: str
    paths_removed: int
    remote_restored: bool = False
    skipped: bool = False


class HistoryRewriter:
    """Removes inventory paths from history and keeps the remote link."""

    def __init__(self, engine: RewriteEngine, remote: str):
        self.engine = engine
        self.remote = remote

    def rewrite(
        self,
        repo: Repository,
        request: RewriteRequest,
        log_file: Optional[Path] = None,
    ) -> RewriteResult:
        """
        Rewrite ``repo`` so none of ``request.paths`` exist in any revision.

        Args:
            repo: Repository to rewrite (exclusive access assumed)
            request: Distinct paths to remove
            log_file: Repository log receiving engine output

        Returns:
            RewriteResult; an empty request is a no-op

        Raises:
            RewriteError: If the engine fails or the remote cannot be restored
        """
        if request.is_empty:
            logger.warning(f"No files to remove from: {repo.name}")
            return RewriteResult(repository=repo.name, paths_removed=0, skipped=True)

        remote_url = get_remote_url(repo.path, self.remote)
        logger.info(f"Removing {len(request.paths)} file path(s) from history")
        for path in request.paths:
            logger.debug(f"  - {path}")

        try:
            self.engine.rewrite(repo.path, list(request.paths), log_file)
        except RewriteError as e:
            e.repository = repo.name
            raise

        restored = False
        if remote_url and get_remote_url(repo.path, self.remote) is None:
            logger.info(f"Restoring remote '{self.remote}' ({remote_url})")
            try:
                add_remote(repo.path, self.remote, remote_url)
            except subprocess.CalledProcessError as e:
                raise RewriteError(
                    f"History rewritten but remote '{self.remote}' could not be "
                    f"restored: {(e.stderr or '').strip()}",
                    repo.name,
                )
            restored = True

        logger.info("History rewritten successfully")
        return RewriteResult(
            repository=repo.name,
            paths_removed=len(request.paths),
            remote_restored=restored,
        )

