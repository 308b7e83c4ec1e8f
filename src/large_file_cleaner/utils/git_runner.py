"""
Centralized Git command runner with dubious ownership handling.

Every git invocation in the cleaner goes through this module so that
repositories owned by another user (sudo, Docker, CI runners) are still
readable, and so that failures carry the command and stderr with them.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ALLOWED_EXECUTABLES = ("git", "git-filter-repo")


def get_git_environment(repo_dir: Path) -> Dict[str, str]:
    """
    Get environment variables for git commands to handle dubious ownership.

    Args:
        repo_dir: Path to the repository the command runs against

    Returns:
        Dictionary of environment variables for git commands
    """
    env = os.environ.copy()

    # safe.directory always occupies index 0
    env["GIT_CONFIG_COUNT"] = "1"
    env["GIT_CONFIG_KEY_0"] = "safe.directory"
    env["GIT_CONFIG_VALUE_0"] = str(Path(repo_dir).resolve())

    # Shift caller-supplied GIT_CONFIG_* entries up by one
    config_count = 1
    for key in os.environ:
        if not key.startswith("GIT_CONFIG_KEY_"):
            continue
        idx = key.replace("GIT_CONFIG_KEY_", "")
        if not idx.isdigit():
            continue
        new_idx = int(idx) + 1
        env[f"GIT_CONFIG_KEY_{new_idx}"] = os.environ[key]
        if f"GIT_CONFIG_VALUE_{idx}" in os.environ:
            env[f"GIT_CONFIG_VALUE_{new_idx}"] = os.environ[f"GIT_CONFIG_VALUE_{idx}"]
        config_count = max(config_count, new_idx + 1)

    env["GIT_CONFIG_COUNT"] = str(config_count)

    return env


def run_git_command(
    cmd: List[str],
    cwd: Path,
    check: bool = True,
    capture_output: bool = True,
    text: bool = True,
    timeout: Optional[float] = None,
    **kwargs,
) -> subprocess.CompletedProcess:
    """
    Run a git command with proper environment handling for dubious ownership.

    Args:
        cmd: Git command as a list (e.g., ["git", "status"])
        cwd: Working directory for the command
        check: Whether to raise CalledProcessError on non-zero exit
        capture_output: Whether to capture stdout and stderr
        text: Whether to decode output as text
        timeout: Optional timeout in seconds
        **kwargs: Additional arguments to pass to subprocess.run

    Returns:
        CompletedProcess instance with the command result

    Raises:
        ValueError: If the command is not a git command
        subprocess.CalledProcessError: If check=True and command fails
        subprocess.TimeoutExpired: If timeout is exceeded
    """
    if not cmd or cmd[0] not in ALLOWED_EXECUTABLES:
        raise ValueError("Command must start with 'git' or 'git-filter-repo'")

    env = get_git_environment(cwd)
    if "env" in kwargs:
        env.update(kwargs.pop("env"))

    # stdout/stderr redirection and capture_output are mutually exclusive
    if "stdout" in kwargs or "stderr" in kwargs:
        capture_output = False

    logger.debug(f"Running {' '.join(cmd)} in {cwd}")

    return subprocess.run(
        cmd,
        cwd=cwd,
        check=check,
        capture_output=capture_output,
        text=text,
        timeout=timeout,
        env=env,
        **kwargs,
    )


def get_remote_url(repo_dir: Path, remote: str) -> Optional[str]:
    """Return the URL configured for ``remote`` or None when it is missing."""
    try:
        result = run_git_command(
            ["git", "remote", "get-url", remote], cwd=repo_dir, check=True
        )
    except subprocess.CalledProcessError:
        return None
    url = result.stdout.strip()
    return url or None


def add_remote(repo_dir: Path, remote: str, url: str) -> None:
    """Register ``remote`` pointing at ``url``."""
    run_git_command(["git", "remote", "add", remote, url], cwd=repo_dir, check=True)


def find_missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the executables from ``tools`` that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]
