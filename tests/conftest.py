"""
Shared pytest fixtures for Git Large File Cleaner tests.

Repositories are real git repositories created in tmp_path; thresholds are
kept small (a few KiB) so "large" files stay cheap to create.
"""

import subprocess
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from large_file_cleaner.config import RunContext
from large_file_cleaner.models import Repository

SMALL_THRESHOLD = 4096


def git(repo_path: Path, *args: str) -> str:
    """Run git in ``repo_path`` and return stripped stdout."""
    result = subprocess.run(
        ["git", *args], cwd=repo_path, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def init_repo(repo_path: Path) -> Repository:
    repo_path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init", "-q"], cwd=repo_path, check=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=repo_path, check=True)
    subprocess.run(
        ["git", "config", "user.email", "test@test.com"], cwd=repo_path, check=True
    )
    subprocess.run(
        ["git", "config", "commit.gpgsign", "false"], cwd=repo_path, check=True
    )
    return Repository(path=repo_path.resolve())


def commit_files(repo_path: Path, files: Dict[str, bytes], message: str) -> str:
    """Write and commit ``files``; returns the new commit id."""
    for rel_path, content in files.items():
        file_path = repo_path / rel_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
    subprocess.run(["git", "add", "-A"], cwd=repo_path, check=True)
    subprocess.run(["git", "commit", "-q", "-m", message], cwd=repo_path, check=True)
    return git(repo_path, "rev-parse", "HEAD")


def blob_id(repo_path: Path, content: bytes) -> str:
    result = subprocess.run(
        ["git", "hash-object", "--stdin"],
        cwd=repo_path,
        input=content,
        capture_output=True,
        check=True,
    )
    return result.stdout.decode().strip()


def payload(size: int, seed: bytes = b"x") -> bytes:
    """Deterministic content of exactly ``size`` bytes."""
    return (seed * size)[:size]


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Repository]:
    """
    Factory creating a committed repository under ``tmp_path/parent``.

    Usage: ``make_repo("name", {"path": b"content"})``
    """

    def _make(
        name: str,
        files: Optional[Dict[str, bytes]] = None,
        message: str = "Initial commit",
    ) -> Repository:
        repo = init_repo(tmp_path / "parent" / name)
        commit_files(repo.path, files or {"README.md": b"# readme\n"}, message)
        return repo

    return _make


@pytest.fixture
def parent_dir(tmp_path: Path) -> Path:
    path = tmp_path / "parent"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def run_context(tmp_path: Path, parent_dir: Path) -> RunContext:
    """Execute-mode context with a small threshold and S3/push disabled."""
    return RunContext(
        parent_dir=parent_dir.resolve(),
        threshold_bytes=SMALL_THRESHOLD,
        execute=True,
        skip_archive=True,
        skip_publish=True,
        timestamp="20240101_120000",
        output_dir=(tmp_path / "output").resolve(),
    )
