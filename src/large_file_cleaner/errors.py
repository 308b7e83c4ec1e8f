"""Exception hierarchy for the cleaner pipeline."""

from typing import Optional


class CleanerError(Exception):
    """Base class for all expected cleaner failures."""

    def __init__(self, message: str, repository: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.repository = repository


class EnvironmentCheckError(CleanerError):
    """Required tool missing or parent directory unusable. Aborts the run."""


class ScanError(CleanerError):
    """Repository objects could not be enumerated."""


class BackupError(CleanerError):
    """Backup archive could not be created."""


class ArchiveError(CleanerError):
    """Blob extraction or upload failed."""


class RewriteError(CleanerError):
    """History rewrite engine failed."""


class VerificationError(CleanerError):
    """Post-rewrite inspection could not be completed."""
