"""Data model shared by the scanning, reporting and processing stages."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

from .utils.size_format import format_size


def printable_path(path: str) -> str:
    """
    Render a filename for text output.

    Paths are kept as decoded with ``surrogateescape`` so raw bytes survive the
    round trip back to git; bytes that are not valid UTF-8 are shown as
    ``\\xNN`` escapes.
    """
    return path.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


class ObjectOrigin(Enum):
    """Where an oversized object was found."""

    WORKING_TREE = "working-tree"
    HISTORY = "history"


@dataclass(frozen=True)
class Repository:
    """A directory containing version-control metadata."""

    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def git_dir(self) -> Path:
        return self.path / ".git"


@dataclass(frozen=True)
class LargeObjectRecord:
    """
    One oversized object discovered in a repository.

    Working-tree rows are unique per path. History rows are unique per blob, so
    a path whose content changed over time yields one history row per version.
    """

    repository: str
    path: str
    size_bytes: int
    origin: ObjectOrigin
    object_id: Optional[str] = None
    commits: Tuple[str, ...] = ()
    storage_key: Optional[str] = None

    @property
    def filename(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def first_commit(self) -> Optional[str]:
        return self.commits[0] if self.commits else None

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)

    @property
    def is_archivable(self) -> bool:
        """Only historical blobs have addressable content in the object store."""
        return self.origin is ObjectOrigin.HISTORY and bool(self.object_id)


@dataclass(frozen=True)
class RewriteRequest:
    """Distinct paths to remove from every revision of one repository."""

    repository: str
    paths: Tuple[str, ...]

    @classmethod
    def from_records(
        cls, repository: str, records: Iterable[LargeObjectRecord]
    ) -> "RewriteRequest":
        paths = sorted({record.path for record in records})
        return cls(repository=repository, paths=tuple(paths))

    @property
    def is_empty(self) -> bool:
        return not self.paths


@dataclass
class Inventory:
    """All oversized objects found during one run, in discovery order."""

    records: List[LargeObjectRecord] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.records)

    @property
    def total_bytes(self) -> int:
        return sum(record.size_bytes for record in self.records)

    def is_empty(self) -> bool:
        return not self.records

    def records_for(self, repository: str) -> List[LargeObjectRecord]:
        return [r for r in self.records if r.repository == repository]

    def rewrite_request(self, repository: str) -> RewriteRequest:
        return RewriteRequest.from_records(repository, self.records_for(repository))


class Stage(Enum):
    """Per-repository processing stages, in execution order."""

    BACKING_UP = "backing-up"
    ARCHIVING = "archiving"
    REWRITING = "rewriting"
    PUBLISHING = "publishing"
    VERIFYING = "verifying"


class RepositoryOutcome(Enum):
    """Terminal state of one repository in destructive mode."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial-failure"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RepositoryResult:
    """Outcome of processing one repository."""

    repository: Repository
    outcome: RepositoryOutcome
    stage: Optional[Stage] = None
    reason: Optional[str] = None
    backup_path: Optional[Path] = None
    log_file: Optional[Path] = None
    archived: int = 0
    archive_failures: int = 0
    publish_status: Optional[str] = None
    remaining_oversized: Optional[int] = None

    @property
    def is_failure(self) -> bool:
        return self.outcome in (
            RepositoryOutcome.FAILED,
            RepositoryOutcome.PARTIAL_FAILURE,
        )


@dataclass
class RunSummary:
    """Aggregated per-repository results for the final report."""

    results: List[RepositoryResult] = field(default_factory=list)
    error: Optional[str] = None

    def add(self, result: RepositoryResult) -> None:
        self.results.append(result)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.outcome is RepositoryOutcome.SUCCESS)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome is RepositoryOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.is_failure)

    @property
    def processed(self) -> int:
        """Repositories that went through the destructive pipeline."""
        return self.total - self.skipped

    @property
    def archive_failures(self) -> int:
        return sum(r.archive_failures for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if (self.failed or self.error) else 0
