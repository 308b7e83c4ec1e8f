"""Tests for ObjectScanner - working tree and history passes against real repos."""

import os
import subprocess

import pytest

from large_file_cleaner.errors import ScanError
from large_file_cleaner.models import ObjectOrigin, Repository
from large_file_cleaner.scanner import ObjectScanner, parse_batch_check_line

from conftest import SMALL_THRESHOLD, blob_id, commit_files, git, init_repo, payload


class TestParseBatchCheckLine:
    """Test parsing of cat-file --batch-check output."""

    def test_blob_with_path(self):
        blob = parse_batch_check_line("blob abc123 5000 assets/video.mp4")
        assert blob is not None
        assert blob.object_id == "abc123"
        assert blob.size_bytes == 5000
        assert blob.path == "assets/video.mp4"

    def test_path_with_spaces_is_kept_whole(self):
        blob = parse_batch_check_line("blob abc123 5000 my dir/big file.bin")
        assert blob is not None
        assert blob.path == "my dir/big file.bin"

    def test_non_blob_ignored(self):
        assert parse_batch_check_line("tree def456 120 src") is None
        assert parse_batch_check_line("commit 0123 250") is None

    def test_unnamed_blob_only_when_requested(self):
        assert parse_batch_check_line("blob abc123 5000") is None
        blob = parse_batch_check_line("blob abc123 5000", include_unnamed=True)
        assert blob is not None
        assert blob.path == ""

    def test_malformed_size_ignored(self):
        assert parse_batch_check_line("blob abc123 huge file.bin") is None


class TestObjectScannerInit:
    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            ObjectScanner(0)


class TestScanWorkingTree:
    """Test the on-disk pass."""

    def test_threshold_is_inclusive(self, make_repo):
        repo = make_repo("wt")
        (repo.path / "exact.bin").write_bytes(payload(SMALL_THRESHOLD))
        (repo.path / "below.bin").write_bytes(payload(SMALL_THRESHOLD - 1))

        records = ObjectScanner(SMALL_THRESHOLD).scan_working_tree(repo)

        assert [r.path for r in records] == ["exact.bin"]
        assert records[0].origin is ObjectOrigin.WORKING_TREE
        assert records[0].size_bytes == SMALL_THRESHOLD
        assert records[0].object_id is None

    def test_nested_paths_are_relative_posix(self, make_repo):
        repo = make_repo("wt")
        nested = repo.path / "data" / "raw"
        nested.mkdir(parents=True)
        (nested / "dump.sql").write_bytes(payload(SMALL_THRESHOLD * 2))

        records = ObjectScanner(SMALL_THRESHOLD).scan_working_tree(repo)

        assert [r.path for r in records] == ["data/raw/dump.sql"]

    def test_git_directory_is_skipped(self, make_repo):
        repo = make_repo("wt")
        (repo.path / ".git" / "big-pack").write_bytes(payload(SMALL_THRESHOLD * 2))

        assert ObjectScanner(SMALL_THRESHOLD).scan_working_tree(repo) == []

    def test_excluded_directory_is_skipped(self, make_repo):
        repo = make_repo("wt")
        output = repo.path / "git-cleaner-output-20240101_120000"
        output.mkdir()
        (output / "backup.tar.gz").write_bytes(payload(SMALL_THRESHOLD * 2))

        scanner = ObjectScanner(SMALL_THRESHOLD, exclude_dirs=[output])

        assert scanner.scan_working_tree(repo) == []

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_are_not_followed(self, make_repo, tmp_path):
        repo = make_repo("wt")
        target = tmp_path / "outside.bin"
        target.write_bytes(payload(SMALL_THRESHOLD * 2))
        os.symlink(target, repo.path / "link.bin")

        assert ObjectScanner(SMALL_THRESHOLD).scan_working_tree(repo) == []


class TestScanHistory:
    """Test the reachable-object pass."""

    def test_deleted_file_is_found_in_history_only(self, make_repo):
        content = payload(SMALL_THRESHOLD * 2, b"h")
        repo = make_repo("hist", {"old/dump.bin": content})
        added = git(repo.path, "rev-parse", "HEAD")
        git(repo.path, "rm", "-q", "old/dump.bin")
        git(repo.path, "commit", "-q", "-m", "Remove dump")
        removed = git(repo.path, "rev-parse", "HEAD")

        scanner = ObjectScanner(SMALL_THRESHOLD)
        records = scanner.scan(repo)

        assert len(records) == 1
        record = records[0]
        assert record.origin is ObjectOrigin.HISTORY
        assert record.path == "old/dump.bin"
        assert record.object_id == blob_id(repo.path, content)
        assert record.size_bytes == len(content)
        assert set(record.commits) == {added, removed}

    def test_committed_large_file_appears_in_both_passes(self, make_repo):
        repo = make_repo("both", {"model.bin": payload(SMALL_THRESHOLD + 10)})

        records = ObjectScanner(SMALL_THRESHOLD).scan(repo)

        assert sorted(r.origin.value for r in records) == ["history", "working-tree"]
        assert {r.path for r in records} == {"model.bin"}

    def test_history_threshold_is_inclusive(self, make_repo):
        repo = make_repo(
            "edge",
            {
                "exact.bin": payload(SMALL_THRESHOLD, b"e"),
                "below.bin": payload(SMALL_THRESHOLD - 1, b"b"),
            },
        )

        records = ObjectScanner(SMALL_THRESHOLD).scan_history(repo)

        assert [r.path for r in records] == ["exact.bin"]

    def test_identical_content_reported_once(self, make_repo):
        content = payload(SMALL_THRESHOLD * 2, b"d")
        repo = make_repo("dupes", {"a/copy.bin": content, "b/copy.bin": content})

        records = ObjectScanner(SMALL_THRESHOLD).scan_history(repo)

        assert len(records) == 1
        assert records[0].object_id == blob_id(repo.path, content)

    def test_changed_content_gives_one_row_per_version(self, make_repo):
        first = payload(SMALL_THRESHOLD * 2, b"1")
        second = payload(SMALL_THRESHOLD * 2, b"2")
        repo = make_repo("versions", {"data.bin": first})
        commit_files(repo.path, {"data.bin": second}, "Update data")

        records = ObjectScanner(SMALL_THRESHOLD).scan_history(repo)

        assert [r.path for r in records] == ["data.bin", "data.bin"]
        assert {r.object_id for r in records} == {
            blob_id(repo.path, first),
            blob_id(repo.path, second),
        }

    def test_commit_sample_is_capped(self, make_repo):
        content = payload(SMALL_THRESHOLD * 2, b"c")
        repo = make_repo("churn", {"big.bin": content})
        for round_number in range(3):
            git(repo.path, "rm", "-q", "big.bin")
            git(repo.path, "commit", "-q", "-m", f"Remove {round_number}")
            commit_files(repo.path, {"big.bin": content}, f"Re-add {round_number}")

        records = ObjectScanner(SMALL_THRESHOLD, commit_sample_size=2).scan_history(repo)

        assert len(records) == 1
        assert len(records[0].commits) == 2

    def test_scan_is_repeatable(self, make_repo):
        repo = make_repo("stable", {"x.bin": payload(SMALL_THRESHOLD * 3)})
        scanner = ObjectScanner(SMALL_THRESHOLD)

        assert scanner.scan(repo) == scanner.scan(repo)

    def test_branch_only_blob_is_found(self, make_repo):
        repo = make_repo("branches")
        default_branch = git(repo.path, "rev-parse", "--abbrev-ref", "HEAD")
        git(repo.path, "checkout", "-q", "-b", "feature")
        commit_files(repo.path, {"feature.bin": payload(SMALL_THRESHOLD * 2)}, "Feature")
        git(repo.path, "checkout", "-q", default_branch)

        records = ObjectScanner(SMALL_THRESHOLD).scan(repo)

        assert [(r.path, r.origin) for r in records] == [
            ("feature.bin", ObjectOrigin.HISTORY)
        ]


class TestUnreadableRepository:
    """A broken repository yields no records instead of aborting the run."""

    def test_scan_returns_empty_list(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        broken = tmp_path / "broken"
        (broken / ".git").mkdir(parents=True)
        (broken / "big.bin").write_bytes(payload(SMALL_THRESHOLD * 2))
        repo = Repository(path=broken)

        scanner = ObjectScanner(SMALL_THRESHOLD)

        with pytest.raises(ScanError):
            scanner.list_reachable_blobs(repo)
        assert scanner.scan(repo) == []

    def test_missing_git_binary_raises_scan_error(self, make_repo, monkeypatch):
        repo = make_repo("nogit")

        def fail(*args, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(subprocess, "Popen", fail)

        with pytest.raises(ScanError):
            ObjectScanner(SMALL_THRESHOLD).list_reachable_blobs(repo)

    def test_repository_without_commits_yields_nothing(self, tmp_path):
        repo = init_repo(tmp_path / "fresh")
        (repo.path / "big.bin").write_bytes(payload(SMALL_THRESHOLD * 2))

        scanner = ObjectScanner(SMALL_THRESHOLD)

        assert scanner.has_commits(repo) is False
        assert scanner.scan_working_tree(repo) != []
        assert scanner.scan(repo) == []

    def test_committed_repository_has_commits(self, make_repo):
        assert ObjectScanner(SMALL_THRESHOLD).has_commits(make_repo("done")) is True
