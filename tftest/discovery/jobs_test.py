"""Tests for directory-walk job discovery."""

from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path

import pytest

from tftest.console import Console
from tftest.discovery.jobs import DiscoveryError, discover_jobs, find_test_files
from tftest.job import JobNotExecutedError


def _console() -> Console:
    return Console(stdout=io.StringIO(), stderr=io.StringIO())


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")


class TestFindTestFiles:
    """Tests for the per-directory pattern match."""

    def test_sorted_matches(self):
        """Matches come back in lexical order."""
        names = ["z_test.py", "main.tf", "a_test.py", "helper.py"]
        assert find_test_files(names, "*_test.py") == ["a_test.py", "z_test.py"]

    def test_no_matches(self):
        """No matching names gives an empty list."""
        assert find_test_files(["main.tf", "test.py"], "*_test.py") == []

    def test_case_sensitive(self):
        """Matching does not fold case."""
        assert find_test_files(["A_TEST.PY"], "*_test.py") == []


class TestDiscoverJobs:
    """Tests for discover_jobs over real directory trees."""

    def test_selects_only_directories_with_test_files(self):
        """Directories with a test file become jobs, siblings without do not."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "bucket" / "bucket_test.py")
            _touch(root / "bucket" / "main.tf")
            _touch(root / "iam" / "iam_test.py")
            _touch(root / "modules" / "main.tf")

            jobs = discover_jobs(str(root), ["A=1"], _console())

            assert [j.name for j in jobs] == ["bucket", "iam"]

    def test_root_never_a_job(self):
        """Test files directly in the root do not make the root a job."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "root_test.py")
            assert discover_jobs(str(root), [], _console()) == []

    def test_nested_directories_qualify(self):
        """Qualifying directories are found at any depth."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "group" / "kms" / "kms_test.py")

            jobs = discover_jobs(str(root), [], _console())

            assert [j.name for j in jobs] == ["kms"]
            assert jobs[0].path == os.path.join(os.path.abspath(tmpdir), "group", "kms")

    def test_first_lexical_match_chosen(self):
        """With several test files the first in lexical order wins."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "job" / "zeta_test.py")
            _touch(root / "job" / "alpha_test.py")

            jobs = discover_jobs(str(root), [], _console())

            assert os.path.basename(jobs[0].test_file) == "alpha_test.py"

    def test_match_is_not_recursive(self):
        """A test file in a child directory does not qualify its parent."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "parent" / "child" / "child_test.py")

            jobs = discover_jobs(str(root), [], _console())

            assert [j.name for j in jobs] == ["child"]

    def test_directory_named_like_test_file_ignored(self):
        """Only files count as test-file matches."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "job" / "sub_test.py").mkdir(parents=True)

            assert discover_jobs(str(root), [], _console()) == []

    def test_job_fields(self):
        """Job descriptors carry paths, env and an unexecuted error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "config" / "config_test.py")
            console = _console()

            jobs = discover_jobs(str(root), ["A=1", "B=2"], console)

            job = jobs[0]
            base = os.path.abspath(tmpdir)
            assert job.root_path == base
            assert job.path == os.path.join(base, "config")
            assert job.test_file == os.path.join(base, "config", "config_test.py")
            assert job.provider_file == os.path.join(base, "config", "provider.tf")
            assert job.env == ["A=1", "B=2"]
            assert job.stdout is console.out
            assert job.stderr is console.err
            assert isinstance(job.error, JobNotExecutedError)
            assert job.state == "start"

    def test_jobs_do_not_share_env_list(self):
        """Each job gets its own env list so per-job additions stay local."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "a" / "a_test.py")
            _touch(root / "b" / "b_test.py")

            jobs = discover_jobs(str(root), ["A=1"], _console())
            jobs[0].env.append("MOTO_PORT=1")

            assert jobs[1].env == ["A=1"]

    def test_custom_pattern(self):
        """A custom pattern selects different entry points."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _touch(root / "job" / "bucket_check.py")
            _touch(root / "other" / "other_test.py")

            jobs = discover_jobs(str(root), [], _console(), pattern="*_check.py")

            assert [j.name for j in jobs] == ["job"]

    def test_empty_tree(self):
        """A tree with no test files yields no jobs and no error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "empty").mkdir()
            assert discover_jobs(tmpdir, [], _console()) == []

    def test_missing_root_raises(self):
        """A root that does not exist aborts discovery."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(DiscoveryError, match="failed to access path"):
                discover_jobs(os.path.join(tmpdir, "missing"), [], _console())

    @pytest.mark.skipif(
        os.name != "posix" or os.geteuid() == 0,
        reason="permission bits are not enforced for this user",
    )
    def test_unreadable_directory_raises(self):
        """An unreadable directory under the root aborts discovery."""
        with tempfile.TemporaryDirectory() as tmpdir:
            locked = Path(tmpdir) / "locked"
            locked.mkdir()
            locked.chmod(0)
            try:
                with pytest.raises(DiscoveryError):
                    discover_jobs(tmpdir, [], _console())
            finally:
                locked.chmod(0o755)
