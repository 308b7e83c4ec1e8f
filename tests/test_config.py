"""Tests for configuration loading and the run context."""

import json

import pytest
from pydantic import ValidationError

from large_file_cleaner.config import (
    BUCKET_ENV_VAR,
    DEFAULT_BUCKET,
    CleanerDefaults,
    ConfigManager,
    RunContext,
)


class TestCleanerDefaults:
    def test_builtin_values(self, monkeypatch):
        monkeypatch.delenv(BUCKET_ENV_VAR, raising=False)
        defaults = CleanerDefaults()
        assert defaults.size_mb == 100
        assert defaults.bucket == DEFAULT_BUCKET
        assert defaults.remote == "origin"

    def test_bucket_from_environment(self, monkeypatch):
        monkeypatch.setenv(BUCKET_ENV_VAR, "team-archive")
        assert CleanerDefaults().bucket == "team-archive"

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            CleanerDefaults(size=5)

    def test_blank_remote_rejected(self):
        with pytest.raises(ValidationError):
            CleanerDefaults(remote="  ")


class TestConfigManager:
    def test_absent_file_gives_defaults(self, tmp_path):
        defaults = ConfigManager.for_parent_dir(tmp_path).load()
        assert defaults.size_mb == 100

    def test_file_in_parent_dir_is_used(self, tmp_path):
        (tmp_path / ConfigManager.DEFAULT_CONFIG_NAME).write_text(
            json.dumps({"size_mb": 25, "bucket": "b", "aws_region": "eu-west-1"})
        )

        defaults = ConfigManager.for_parent_dir(tmp_path).load()

        assert defaults.size_mb == 25
        assert defaults.bucket == "b"
        assert defaults.aws_region == "eu-west-1"

    def test_explicit_path_wins(self, tmp_path):
        (tmp_path / ConfigManager.DEFAULT_CONFIG_NAME).write_text(json.dumps({"size_mb": 25}))
        explicit = tmp_path / "custom.json"
        explicit.write_text(json.dumps({"size_mb": 7}))

        assert ConfigManager.for_parent_dir(tmp_path, explicit).load().size_mb == 7

    @pytest.mark.parametrize("content", ["{not json", '{"size_mb": -1}'])
    def test_invalid_file_raises(self, tmp_path, content):
        path = tmp_path / "bad.json"
        path.write_text(content)

        with pytest.raises(ValueError, match="Failed to load config"):
            ConfigManager(path).load()


class TestRunContext:
    def test_create_derives_paths(self, tmp_path):
        context = RunContext.create(tmp_path, size_mb=100, timestamp="20240101_120000")

        assert context.threshold_bytes == 104857600
        assert context.output_dir == tmp_path.resolve() / "git-cleaner-output-20240101_120000"
        assert context.backup_dir == context.output_dir / "backups"
        assert context.log_dir == context.output_dir / "logs"
        assert context.report_file == context.output_dir / "large-files-report.csv"
        assert context.repository_log_file("repo1") == (
            context.log_dir / "repo1-20240101_120000.log"
        )
        assert context.mode_label == "DRY-RUN"
        assert context.threshold_mb == 100

    def test_explicit_output_dir(self, tmp_path):
        context = RunContext.create(tmp_path, output_dir=tmp_path / "out", execute=True)
        assert context.output_dir == (tmp_path / "out").resolve()
        assert context.mode_label == "EXECUTE"

    def test_context_is_immutable(self, tmp_path):
        context = RunContext.create(tmp_path)
        with pytest.raises(ValidationError):
            context.execute = True

    def test_threshold_must_be_positive(self, tmp_path):
        with pytest.raises(ValidationError):
            RunContext.create(tmp_path, size_mb=0)

    def test_prepare_output_dirs(self, tmp_path):
        context = RunContext.create(tmp_path, output_dir=tmp_path / "out")
        context.prepare_output_dirs()
        assert context.backup_dir.is_dir()
        assert context.log_dir.is_dir()
