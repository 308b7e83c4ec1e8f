"""
Object scanner for oversized files.

Two passes per repository:
- working tree: regular files on disk at or above the threshold
- history: every blob reachable from any ref at or above the threshold,
  with a bounded sample of the commits that reference it

The history pass walks the entire reachable object graph and is by far the
slowest step of a run on large repositories.
"""

import logging
import os
import stat
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional, Set

from .errors import ScanError
from .models import LargeObjectRecord, ObjectOrigin, Repository
from .utils.git_runner import get_git_environment, run_git_command

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_SAMPLE_SIZE = 5
BATCH_CHECK_FORMAT = "%(objecttype) %(objectname) %(objectsize) %(rest)"


@dataclass(frozen=True)
class BlobInfo:
    """A reachable blob reported by the object store."""

    object_id: str
    size_bytes: int
    path: str


def parse_batch_check_line(
    line: str, include_unnamed: bool = False
) -> Optional[BlobInfo]:
    """
    Parse one ``cat-file --batch-check`` line into a BlobInfo.

    Non-blob objects and malformed lines are ignored, as are blobs without a
    path unless ``include_unnamed`` is set.
    """
    parts = line.rstrip("\n").split(" ", 3)
    if len(parts) < 3 or parts[0] != "blob":
        return None
    try:
        size = int(parts[2])
    except ValueError:
        logger.debug(f"Skipping line with invalid size: {line!r}")
        return None
    path = parts[3].strip() if len(parts) == 4 else ""
    if not path and not include_unnamed:
        return None
    return BlobInfo(object_id=parts[1], size_bytes=size, path=path)


class ObjectScanner:
    """Finds oversized objects in a repository's working tree and history."""

    def __init__(
        self,
        threshold_bytes: int,
        commit_sample_size: int = DEFAULT_COMMIT_SAMPLE_SIZE,
        exclude_dirs: Iterable[Path] = (),
    ):
        """
        Initialize the scanner.

        Args:
            threshold_bytes: Objects of this size or larger are reported
            commit_sample_size: Maximum referencing commits kept per blob
            exclude_dirs: Directories never reported from the working tree
                (e.g. the run's own output directory)
        """
        if threshold_bytes <= 0:
            raise ValueError("threshold_bytes must be positive")
        self.threshold_bytes = threshold_bytes
        self.commit_sample_size = commit_sample_size
        self.exclude_dirs = {Path(d).resolve() for d in exclude_dirs}

    def scan(self, repo: Repository) -> List[LargeObjectRecord]:
        """
        Scan working tree then history.

        Unreadable repositories and repositories without any commit produce
        an empty list rather than an error so that one broken repository does
        not abort the run.
        """
        try:
            if not self.has_commits(repo):
                logger.warning(f"Skipping scan of {repo.name}: no commits")
                return []
            working = self.scan_working_tree(repo)
            history = self.scan_history(repo)
        except (ScanError, OSError) as e:
            logger.warning(f"Skipping scan of {repo.name}: {e}")
            return []
        return working + history

    def has_commits(self, repo: Repository) -> bool:
        """
        Check whether any branch, tag or other ref exists.

        Raises:
            ScanError: If the refs cannot be read
        """
        try:
            result = run_git_command(
                ["git", "for-each-ref", "--count=1", "--format=%(objectname)"],
                cwd=repo.path,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise ScanError(
                f"Cannot read refs: {(e.stderr or '').strip()}", repo.name
            )
        return bool(result.stdout.strip())

    def scan_working_tree(self, repo: Repository) -> List[LargeObjectRecord]:
        """List oversized regular files on disk, excluding ``.git``."""
        logger.info(f"Scanning working directory: {repo.name}")
        root = repo.path
        records: List[LargeObjectRecord] = []

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = [
                d
                for d in dirnames
                if d != ".git" and (current / d).resolve() not in self.exclude_dirs
            ]
            for filename in filenames:
                if filename == ".git":
                    continue
                file_path = current / filename
                try:
                    st = os.lstat(file_path)
                except OSError as e:
                    logger.debug(f"Cannot stat {file_path}: {e}")
                    continue
                if not stat.S_ISREG(st.st_mode) or st.st_size < self.threshold_bytes:
                    continue
                records.append(
                    LargeObjectRecord(
                        repository=repo.name,
                        path=file_path.relative_to(root).as_posix(),
                        size_bytes=st.st_size,
                        origin=ObjectOrigin.WORKING_TREE,
                    )
                )

        return sorted(records, key=lambda r: r.path)

    def scan_history(self, repo: Repository) -> List[LargeObjectRecord]:
        """List oversized reachable blobs with their referencing commits."""
        logger.info(f"Scanning Git history: {repo.name}")
        records = []
        for blob in self.list_reachable_blobs(repo):
            commits = self.find_referencing_commits(repo, blob.object_id)
            if not commits:
                logger.warning(
                    f"No commit references blob {blob.object_id} ({blob.path})"
                )
            records.append(
                LargeObjectRecord(
                    repository=repo.name,
                    path=blob.path,
                    size_bytes=blob.size_bytes,
                    origin=ObjectOrigin.HISTORY,
                    object_id=blob.object_id,
                    commits=tuple(commits),
                )
            )
        return records

    def list_reachable_blobs(
        self, repo: Repository, include_unnamed: bool = False
    ) -> List[BlobInfo]:
        """
        Enumerate blobs reachable from any branch or tag at or above threshold.

        Pipes ``git rev-list --objects --all`` into ``git cat-file
        --batch-check`` so the object list is streamed rather than buffered.

        Raises:
            ScanError: If either git process fails
        """
        env = get_git_environment(repo.path)
        with tempfile.TemporaryFile() as rev_stderr:
            output = self._run_object_pipeline(repo, env, rev_stderr)

        seen: Set[str] = set()
        blobs: List[BlobInfo] = []
        for line in output.decode("utf-8", "surrogateescape").splitlines():
            blob = parse_batch_check_line(line, include_unnamed)
            if blob is None or blob.size_bytes < self.threshold_bytes:
                continue
            if blob.object_id in seen:
                continue
            seen.add(blob.object_id)
            logger.debug(f"Found large blob: {blob.path} ({blob.size_bytes} bytes)")
            blobs.append(blob)

        return sorted(blobs, key=lambda b: (b.path, b.object_id))

    def _run_object_pipeline(
        self, repo: Repository, env: Dict[str, str], rev_stderr: IO[bytes]
    ) -> bytes:
        try:
            rev_list = subprocess.Popen(
                ["git", "rev-list", "--objects", "--all"],
                cwd=repo.path,
                env=env,
                stdout=subprocess.PIPE,
                stderr=rev_stderr,
            )
            cat_file = subprocess.Popen(
                ["git", "cat-file", f"--batch-check={BATCH_CHECK_FORMAT}"],
                cwd=repo.path,
                env=env,
                stdin=rev_list.stdout,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ScanError(f"Cannot run git in {repo.path}: {e}", repo.name)

        # Let rev-list receive SIGPIPE if cat-file exits early
        assert rev_list.stdout is not None
        rev_list.stdout.close()
        output, cat_err = cat_file.communicate()
        rev_list.wait()
        rev_stderr.seek(0)
        rev_err = rev_stderr.read()

        if rev_list.returncode != 0:
            raise ScanError(
                f"git rev-list failed for {repo.name}: "
                f"{rev_err.decode('utf-8', 'replace').strip()}",
                repo.name,
            )
        if cat_file.returncode != 0:
            raise ScanError(
                f"git cat-file failed for {repo.name}: "
                f"{cat_err.decode('utf-8', 'replace').strip()}",
                repo.name,
            )

        return output

    def find_referencing_commits(self, repo: Repository, object_id: str) -> List[str]:
        """
        Return up to ``commit_sample_size`` commits that add or change the blob.

        The sample is for display only; it never limits what gets removed.
        """
        try:
            result = run_git_command(
                [
                    "git",
                    "log",
                    "--all",
                    f"--find-object={object_id}",
                    "--format=%H",
                ],
                cwd=repo.path,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.warning(
                f"Commit lookup failed for {object_id} in {repo.name}: {e.stderr}"
            )
            return []

        commits: List[str] = []
        for line in result.stdout.splitlines():
            commit = line.strip()
            if commit and commit not in commits:
                commits.append(commit)
            if len(commits) >= self.commit_sample_size:
                break
        return commits
