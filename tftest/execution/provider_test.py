"""Tests for provider.tf rendering."""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

import pytest

from tftest.config.services import DEFAULT_SERVICES
from tftest.execution.provider import render_provider, write_provider


class TestRenderProvider:
    """Tests for the rendered provider contents."""

    def test_restricted_services(self):
        """Only the requested services get endpoints."""
        content = render_provider(["s3", "iam"], 4567)
        assert '\t\ts3 = "http://localhost:4567"\n' in content
        assert '\t\tiam = "http://localhost:4567"\n' in content
        assert "kms =" not in content

    def test_default_services(self):
        """An empty list selects every built-in service."""
        content = render_provider([], 5000)
        endpoint_lines = [l for l in content.splitlines() if "http://localhost:5000" in l]
        assert len(endpoint_lines) == len(DEFAULT_SERVICES)
        assert "codestarnotifications" not in content

    def test_static_flags(self):
        """Validation checks that need a real cloud are disabled."""
        content = render_provider(["s3"], 1)
        for flag in (
            "s3_force_path_style",
            "skip_credentials_validation",
            "skip_metadata_api_check",
            "skip_requesting_account_id",
        ):
            assert flag in content
            line = next(l for l in content.splitlines() if flag in l)
            assert line.rstrip().endswith("= true")

    def test_local_backend(self):
        """State goes to a local terraform.tfstate in the job directory."""
        content = render_provider(["s3"], 1)
        assert 'backend "local"' in content
        assert 'path = "terraform.tfstate"' in content

    def test_braces_balanced(self):
        """Every opened block is closed."""
        content = render_provider(["s3", "sqs"], 1)
        assert content.count("{") == content.count("}")


class TestWriteProvider:
    """Tests for writing provider.tf to disk."""

    def test_writes_file(self):
        """The rendered provider is written to the given path."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "provider.tf"
            write_provider(str(path), ["s3"], 1234)
            assert path.read_text() == render_provider(["s3"], 1234)

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    def test_owner_only_permissions(self):
        """The file is created readable and writable by the owner only."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "provider.tf"
            write_provider(str(path), ["s3"], 1234)
            assert stat.S_IMODE(path.stat().st_mode) & 0o077 == 0

    def test_overwrites_existing(self):
        """An existing provider is replaced, not appended to."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "provider.tf"
            path.write_text("stale" * 1000)
            write_provider(str(path), ["s3"], 1)
            assert "stale" not in path.read_text()

    def test_missing_directory_raises(self):
        """Writing into a missing directory raises OSError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(OSError):
                write_provider(os.path.join(tmpdir, "nope", "provider.tf"), ["s3"], 1)
