"""
Inventory building and the CSV report.

The in-memory Inventory drives every later step; the CSV report is a derived
view of it for human review and audits.
"""

import csv
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .models import (
    Inventory,
    LargeObjectRecord,
    ObjectOrigin,
    Repository,
    printable_path,
)
from .scanner import ObjectScanner

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "repo-name",
    "file-name",
    "file-size",
    "file-size-human",
    "origin",
    "blob-hash",
    "commit-hash",
    "s3-path",
]
NOT_AVAILABLE = "N/A"
COMMIT_SEPARATOR = ";"
UNREFERENCED_COMMIT = "unreferenced"


def storage_key_for(repo_name: str, first_commit: Optional[str], filename: str) -> str:
    """Deterministic object key: ``{repository}/{first commit}/{filename}``."""
    # Keys must be valid UTF-8
    filename = printable_path(filename)
    return f"{repo_name}/{first_commit or UNREFERENCED_COMMIT}/{filename}"


def storage_location(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def _with_storage_key(record: LargeObjectRecord) -> LargeObjectRecord:
    if not record.is_archivable:
        return record
    key = storage_key_for(record.repository, record.first_commit, record.filename)
    return replace(record, storage_key=key)


class InventoryBuilder:
    """Aggregates scanner output across repositories into one Inventory."""

    def __init__(self, scanner: ObjectScanner):
        self.scanner = scanner

    def build(
        self,
        repositories: Iterable[Repository],
        on_repository: Optional[Callable[[Repository, int], None]] = None,
    ) -> Inventory:
        """
        Scan each repository in order and collect its records.

        Args:
            repositories: Repositories in discovery order
            on_repository: Optional callback receiving each repository and the
                number of records it contributed

        Returns:
            Inventory with storage keys assigned to archivable records
        """
        inventory = Inventory()
        for repo in repositories:
            records = [_with_storage_key(r) for r in self.scanner.scan(repo)]
            inventory.records.extend(records)
            if on_repository:
                on_repository(repo, len(records))

        logger.info(f"Total large files found: {inventory.total_files}")
        logger.info(f"Total size: {inventory.total_bytes} bytes")
        return inventory


def write_report(inventory: Inventory, report_file: Path, bucket: str) -> Path:
    """Write the inventory as a fully quoted CSV file."""
    report_file.parent.mkdir(parents=True, exist_ok=True)
    with open(
        report_file, "w", newline="", encoding="utf-8", errors="surrogateescape"
    ) as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(REPORT_COLUMNS)
        for record in inventory.records:
            writer.writerow(
                [
                    record.repository,
                    record.path,
                    record.size_bytes,
                    record.size_human,
                    record.origin.value,
                    record.object_id or NOT_AVAILABLE,
                    COMMIT_SEPARATOR.join(record.commits) or NOT_AVAILABLE,
                    (
                        storage_location(bucket, record.storage_key)
                        if record.storage_key
                        else NOT_AVAILABLE
                    ),
                ]
            )
    logger.info(f"Report generated: {report_file}")
    return report_file


def _optional(value: str) -> Optional[str]:
    return None if value in ("", NOT_AVAILABLE) else value


def _key_from_location(location: Optional[str]) -> Optional[str]:
    if not location or not location.startswith("s3://"):
        return None
    parts = location[len("s3://") :].split("/", 1)
    return parts[1] if len(parts) == 2 else None


def read_report(report_file: Path) -> Inventory:
    """Parse a report written by :func:`write_report` back into an Inventory."""
    records: List[LargeObjectRecord] = []
    with open(
        report_file, newline="", encoding="utf-8", errors="surrogateescape"
    ) as f:
        reader = csv.DictReader(f)
        missing = set(REPORT_COLUMNS) - set(reader.fieldnames or [])
        if missing:
            raise ValueError(
                f"Report {report_file} is missing columns: {', '.join(sorted(missing))}"
            )
        for row in reader:
            commits = _optional(row["commit-hash"])
            records.append(
                LargeObjectRecord(
                    repository=row["repo-name"],
                    path=row["file-name"],
                    size_bytes=int(row["file-size"]),
                    origin=ObjectOrigin(row["origin"]),
                    object_id=_optional(row["blob-hash"]),
                    commits=tuple(commits.split(COMMIT_SEPARATOR)) if commits else (),
                    storage_key=_key_from_location(_optional(row["s3-path"])),
                )
            )
    return Inventory(records=records)
