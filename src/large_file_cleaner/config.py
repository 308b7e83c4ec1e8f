"""Configuration management for Git Large File Cleaner."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils.size_format import MIB, megabytes_to_bytes

logger = logging.getLogger(__name__)

DEFAULT_SIZE_MB = 100
DEFAULT_BUCKET = "ot-gb-migration-large-files"
DEFAULT_REMOTE = "origin"
BUCKET_ENV_VAR = "GLFC_BUCKET"
OUTPUT_DIR_PREFIX = "git-cleaner-output-"
REPORT_FILENAME = "large-files-report.csv"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def default_bucket() -> str:
    """Built-in bucket, overridable through the environment."""
    return os.environ.get(BUCKET_ENV_VAR) or DEFAULT_BUCKET


class CleanerDefaults(BaseModel):
    """Defaults loaded from an optional JSON file; CLI flags win over these."""

    model_config = ConfigDict(extra="forbid")

    size_mb: int = Field(
        default=DEFAULT_SIZE_MB, gt=0, description="Size threshold in MB"
    )
    bucket: str = Field(default_factory=default_bucket, description="S3 bucket name")
    remote: str = Field(default=DEFAULT_REMOTE, description="Git remote name")
    aws_profile: Optional[str] = Field(
        default=None, description="AWS named profile for uploads"
    )
    aws_region: Optional[str] = Field(default=None, description="AWS region")

    @field_validator("bucket", "remote")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ConfigManager:
    """Loads cleaner defaults from a JSON file."""

    DEFAULT_CONFIG_NAME = ".git-large-file-cleaner.json"

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    @classmethod
    def for_parent_dir(
        cls, parent_dir: Path, explicit: Optional[Path] = None
    ) -> "ConfigManager":
        """Prefer an explicit --config path, else the file in the parent directory."""
        if explicit is not None:
            return cls(explicit)
        return cls(Path(parent_dir) / cls.DEFAULT_CONFIG_NAME)

    def load(self) -> CleanerDefaults:
        """Load defaults from file, or built-in defaults when the file is absent."""
        if not self.config_path.exists():
            return CleanerDefaults()

        try:
            with open(self.config_path, "r") as f:
                data = json.load(f)
            defaults = CleanerDefaults(**data)
        except Exception as e:
            raise ValueError(f"Failed to load config from {self.config_path}: {e}")

        logger.info(f"Loaded defaults from {self.config_path}")
        return defaults


class RunContext(BaseModel):
    """Immutable settings for one invocation, passed to every component."""

    model_config = ConfigDict(frozen=True)

    parent_dir: Path
    threshold_bytes: int = Field(gt=0)
    execute: bool = False
    remote: str = DEFAULT_REMOTE
    bucket: str = DEFAULT_BUCKET
    skip_archive: bool = False
    skip_publish: bool = False
    strict_archive: bool = False
    timestamp: str
    output_dir: Path
    aws_profile: Optional[str] = None
    aws_region: Optional[str] = None

    @classmethod
    def create(
        cls,
        parent_dir: Path,
        size_mb: int = DEFAULT_SIZE_MB,
        output_dir: Optional[Path] = None,
        timestamp: Optional[str] = None,
        **kwargs: Any,
    ) -> "RunContext":
        """Build a context from CLI input, namespacing outputs by timestamp."""
        parent = Path(parent_dir).resolve()
        stamp = timestamp or datetime.now().strftime(TIMESTAMP_FORMAT)
        out = (
            Path(output_dir).resolve()
            if output_dir
            else parent / f"{OUTPUT_DIR_PREFIX}{stamp}"
        )
        return cls(
            parent_dir=parent,
            threshold_bytes=megabytes_to_bytes(size_mb),
            timestamp=stamp,
            output_dir=out,
            **kwargs,
        )

    @property
    def backup_dir(self) -> Path:
        return self.output_dir / "backups"

    @property
    def log_dir(self) -> Path:
        return self.output_dir / "logs"

    @property
    def report_file(self) -> Path:
        return self.output_dir / REPORT_FILENAME

    @property
    def threshold_mb(self) -> float:
        return self.threshold_bytes / MIB

    @property
    def mode_label(self) -> str:
        return "EXECUTE" if self.execute else "DRY-RUN"

    def repository_log_file(self, repo_name: str) -> Path:
        return self.log_dir / f"{repo_name}-{self.timestamp}.log"

    def prepare_output_dirs(self) -> None:
        """Create report, backup and log directories."""
        for directory in (self.output_dir, self.backup_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)
