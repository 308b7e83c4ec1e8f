"""Repository discovery below a parent directory."""

import logging
import os
from pathlib import Path
from typing import List

from .models import Repository

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 2


def _has_git_metadata(directory: Path) -> bool:
    # .git may be a directory or a gitfile (worktrees, submodules)
    return (directory / ".git").exists()


def discover_repositories(
    parent_dir: Path, max_depth: int = DEFAULT_MAX_DEPTH
) -> List[Repository]:
    """
    Find repository roots whose ``.git`` entry lies at most ``max_depth``
    levels below ``parent_dir``.

    With the default depth this is the parent itself plus its immediate
    subdirectories.

    Args:
        parent_dir: Directory containing repositories
        max_depth: Maximum depth of the ``.git`` entry below ``parent_dir``

    Returns:
        Repositories sorted by path

    Raises:
        NotADirectoryError: If ``parent_dir`` is not a directory
    """
    parent = Path(parent_dir).resolve()
    if not parent.is_dir():
        raise NotADirectoryError(f"Directory does not exist: {parent}")

    # .git at depth d means the repository root is at depth d - 1
    root_depth_limit = max_depth - 1
    found: List[Repository] = []

    for dirpath, dirnames, _ in os.walk(parent):
        current = Path(dirpath)
        depth = len(current.relative_to(parent).parts)

        if _has_git_metadata(current):
            found.append(Repository(path=current))
            logger.info(f"Found: {current.name}")

        if depth >= root_depth_limit:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d != ".git")

    return sorted(found, key=lambda repo: str(repo.path))
