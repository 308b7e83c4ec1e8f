"""
Archiver - copies historical blob content to external storage before removal.

Blob bytes are extracted unmodified from the object store and uploaded under
``{repository}/{first commit}/{filename}`` so re-runs overwrite the same key.
"""

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ArchiveError
from .inventory import storage_key_for, storage_location
from .models import LargeObjectRecord, Repository
from .utils.git_runner import run_git_command

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 64 * 1024 * 1024


class BlobStore(ABC):
    """
    Abstract interface for durable blob storage.

    Implementations only need put and list; nothing is ever read back or
    deleted by the cleaner.
    """

    @abstractmethod
    def put_object(self, key: str, file_path: Path) -> None:
        """
        Upload the file at ``file_path`` under ``key``.

        Raises:
            ArchiveError: If the upload fails
        """
        pass

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """
        List stored keys starting with ``prefix``.

        Raises:
            ArchiveError: If listing fails
        """
        pass

    @abstractmethod
    def location(self, key: str) -> str:
        """Return the external URL for ``key``."""
        pass


class S3BlobStore(BlobStore):
    """BlobStore backed by an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        client: Optional[Any] = None,
        profile: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """
        Initialize the S3 store.

        Args:
            bucket: Target bucket name
            client: Pre-built boto3 S3 client (tests inject a mock)
            profile: AWS named profile used when no client is given
            region: AWS region used when no client is given
        """
        self.bucket = bucket
        self._client = client
        self._profile = profile
        self._region = region
        self._transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD, use_threads=True
        )

    @property
    def client(self) -> Any:
        # Created lazily so preview runs never need AWS credentials
        if self._client is None:
            session = boto3.Session(
                profile_name=self._profile, region_name=self._region
            )
            self._client = session.client("s3")
        return self._client

    def put_object(self, key: str, file_path: Path) -> None:
        try:
            self.client.upload_file(
                str(file_path), self.bucket, key, Config=self._transfer_config
            )
        except (ClientError, BotoCoreError) as e:
            raise ArchiveError(f"Failed to upload: {self.location(key)}: {e}")

    def list_keys(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise ArchiveError(f"Failed to list {self.location(prefix)}: {e}")
        return keys

    def location(self, key: str) -> str:
        return storage_location(self.bucket, key)


@dataclass
class ArchiveReport:
    """Per-repository upload results."""

    uploaded: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    skipped: int = 0

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


class Archiver:
    """Extracts blobs from a repository and uploads them to a BlobStore."""

    def __init__(self, store: BlobStore):
        self.store = store

    def archive(
        self,
        repo: Repository,
        object_id: str,
        first_commit: Optional[str],
        filename: str,
    ) -> str:
        """
        Upload the exact content of one blob.

        Args:
            repo: Repository holding the blob
            object_id: Blob identifier
            first_commit: First referencing commit (part of the key)
            filename: File name (last part of the key)

        Returns:
            External location of the uploaded object

        Raises:
            ArchiveError: If extraction or upload fails
        """
        key = storage_key_for(repo.name, first_commit, filename)
        fd, temp_name = tempfile.mkstemp(prefix="glfc-blob-")
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                try:
                    run_git_command(
                        ["git", "cat-file", "blob", object_id],
                        cwd=repo.path,
                        check=True,
                        text=False,
                        stdout=out,
                        stderr=subprocess.PIPE,
                    )
                except subprocess.CalledProcessError as e:
                    stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
                    raise ArchiveError(
                        f"Failed to extract blob: {object_id}: {stderr}", repo.name
                    )

            self.store.put_object(key, temp_path)
        finally:
            temp_path.unlink(missing_ok=True)

        location = self.store.location(key)
        logger.info(f"Uploaded: {location}")
        return location

    def archive_inventory(
        self, repo: Repository, records: Iterable[LargeObjectRecord]
    ) -> ArchiveReport:
        """
        Archive every historical blob of one repository.

        Failures are collected per file; working-tree rows have no blob and
        are skipped.
        """
        report = ArchiveReport()
        for record in records:
            if not record.is_archivable:
                report.skipped += 1
                continue
            assert record.object_id is not None
            try:
                location = self.archive(
                    repo, record.object_id, record.first_commit, record.filename
                )
            except ArchiveError as e:
                logger.error(str(e))
                report.failures.append((record.path, e.message))
                continue
            report.uploaded.append(location)

        logger.info(
            f"Uploaded {len(report.uploaded)} files, {len(report.failures)} failures"
        )
        return report

    def audit(self, repo: Repository) -> List[str]:
        """List the keys already stored for ``repo``."""
        return self.store.list_keys(f"{repo.name}/")
