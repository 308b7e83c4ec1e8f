"""Point-in-time repository backups taken before any history rewrite."""

import logging
import shlex
import tarfile
from pathlib import Path

from .errors import BackupError
from .models import Repository
from .utils.size_format import format_size

logger = logging.getLogger(__name__)


def backup_path_for(backup_dir: Path, repo: Repository, timestamp: str) -> Path:
    return backup_dir / f"{repo.name}-{timestamp}.tar.gz"


def restore_command(backup_path: Path, repo: Repository) -> str:
    """Exact shell command that restores ``repo`` from ``backup_path``."""
    return (
        f"rm -rf {shlex.quote(str(repo.path))} && "
        f"tar -xzf {shlex.quote(str(backup_path))} "
        f"-C {shlex.quote(str(repo.path.parent))}"
    )


class BackupManager:
    """Creates compressed archives of whole working copies, ``.git`` included."""

    def __init__(self, backup_dir: Path):
        self.backup_dir = Path(backup_dir)

    def backup(self, repo: Repository, timestamp: str) -> Path:
        """
        Archive ``repo`` into ``<backup_dir>/<name>-<timestamp>.tar.gz``.

        The archive holds a single top-level ``<name>/`` directory so it can be
        extracted next to the original location.

        Args:
            repo: Repository to archive
            timestamp: Run timestamp

        Returns:
            Path of the created archive

        Raises:
            BackupError: If the archive exists already or cannot be written
        """
        backup_file = backup_path_for(self.backup_dir, repo, timestamp)
        if backup_file.exists():
            raise BackupError(
                f"Backup already exists, refusing to overwrite: {backup_file}",
                repo.name,
            )

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(backup_file, "w:gz") as tar:
                tar.add(str(repo.path), arcname=repo.name)
        except (OSError, tarfile.TarError) as e:
            backup_file.unlink(missing_ok=True)
            raise BackupError(
                f"Failed to create backup for {repo.name}: {e}", repo.name
            )

        logger.info(
            f"Backup created: {backup_file} ({format_size(backup_file.stat().st_size)})"
        )
        return backup_file
