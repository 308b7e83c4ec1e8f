"""Force-push of rewritten history to the configured remote."""

import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .models import Repository
from .utils.git_runner import get_remote_url, run_git_command
from .utils.repo_log import append_command_output

logger = logging.getLogger(__name__)


class PublishStatus(Enum):
    """Result of publishing one repository."""

    SUCCESS = "success"
    PARTIAL = "partial"  # branches pushed, tags failed
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class PublishResult:
    status: PublishStatus
    message: str
    manual_commands: List[str] = field(default_factory=list)

    @property
    def is_failure(self) -> bool:
        return self.status is PublishStatus.FAILED


class Publisher:
    """Force-updates all branches, then all tags, at a remote."""

    def __init__(self, remote: str, skip: bool = False):
        self.remote = remote
        self.skip = skip

    def manual_commands(self, repo: Repository) -> List[str]:
        return [
            f"cd {repo.path}",
            f"git push --force --all {self.remote}",
            f"git push --force --tags {self.remote}",
        ]

    def _push(
        self, repo: Repository, flag: str, log_file: Optional[Path]
    ) -> subprocess.CompletedProcess:
        cmd = ["git", "push", "--force", flag, self.remote]
        result = run_git_command(cmd, cwd=repo.path, check=False)
        if log_file is not None:
            append_command_output(
                log_file, " ".join(cmd), (result.stdout or "") + (result.stderr or "")
            )
        return result

    def publish(
        self, repo: Repository, log_file: Optional[Path] = None
    ) -> PublishResult:
        """
        Push rewritten refs.

        Branch push failure fails the publish step; tag push failure only
        downgrades the result to PARTIAL.
        """
        if self.skip:
            logger.warning("Force push skipped (--skip-push flag)")
            return PublishResult(
                status=PublishStatus.SKIPPED,
                message="Force push skipped; push manually when ready",
                manual_commands=self.manual_commands(repo),
            )

        if get_remote_url(repo.path, self.remote) is None:
            logger.warning(
                f"Remote '{self.remote}' not found. "
                "It may have been removed by git-filter-repo."
            )
            return PublishResult(
                status=PublishStatus.FAILED,
                message=f"Remote '{self.remote}' is not configured",
                manual_commands=[
                    f"cd {repo.path}",
                    f"git remote add {self.remote} <remote-url>",
                    f"git push --force --all {self.remote}",
                    f"git push --force --tags {self.remote}",
                ],
            )

        branches = self._push(repo, "--all", log_file)
        if branches.returncode != 0:
            logger.error(f"Failed to force push branches: {branches.stderr.strip()}")
            return PublishResult(
                status=PublishStatus.FAILED,
                message=f"Branch push failed: {branches.stderr.strip()}",
                manual_commands=self.manual_commands(repo),
            )
        logger.info("Force pushed all branches")

        tags = self._push(repo, "--tags", log_file)
        if tags.returncode != 0:
            logger.warning(f"Failed to force push tags: {tags.stderr.strip()}")
            return PublishResult(
                status=PublishStatus.PARTIAL,
                message="Branches pushed; tag push failed",
                manual_commands=[
                    f"cd {repo.path}",
                    f"git push --force --tags {self.remote}",
                ],
            )
        logger.info("Force pushed all tags")

        return PublishResult(
            status=PublishStatus.SUCCESS, message="Branches and tags pushed"
        )
