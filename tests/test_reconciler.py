"""Tests for vault traversal and ignore patterns."""
from __future__ import annotations

import os
from pathlib import Path

import pytest
from conftest import write

from vaultpress.errors import ConfigurationError
from vaultpress.models import MediaType
from vaultpress.processor.reconciler import Reconciler, matches_ignore_pattern, media_type_for


class TestIgnorePatterns:
    """matches_ignore_pattern semantics."""

    @pytest.mark.parametrize("path,patterns,expected", [
        ("README.md", ["README.md"], True),
        ("docs/README.md", ["README.md"], True),
        ("notes/a.md", ["*.tmp"], False),
        ("private/diary.md", ["private/**"], True),
        ("private", ["private/**"], True),
        ("public/private/x.md", ["private/**"], False),
        ("a/b/scratch.md", ["**/scratch.md"], True),
        ("templates/t.md", ["templates/*.md"], True),
        ("other/templates/t.md", ["templates/*.md"], False),
    ])
    def test_patterns(self, path, patterns, expected):
        assert matches_ignore_pattern(path, patterns) is expected


class TestReconciler:
    """Directory walking."""

    def test_sorted_scan_skips_hidden_and_unknown(self, tmp_path: Path):
        write(tmp_path / "b.md", "b")
        write(tmp_path / "a" / "z.md", "z")
        write(tmp_path / "A.markdown", "A")
        write(tmp_path / ".obsidian" / "workspace.md", "x")
        write(tmp_path / ".hidden.md", "x")
        write(tmp_path / "notes.txt", "x")
        write(tmp_path / "clip.mp4", "x")

        scan = Reconciler(tmp_path).scan()

        assert [f.rel_path for f in scan.documents] == ["A.markdown", "a/z.md", "b.md"]
        assert [f.rel_path for f in scan.media] == ["clip.mp4"]

    def test_ignore_and_output_excluded(self, tmp_path: Path):
        write(tmp_path / "README.md", "x")
        write(tmp_path / "keep.md", "x")
        write(tmp_path / "site" / "documents.md", "x")

        scan = Reconciler(tmp_path, ignore=("README.md",), exclude_dirs=(tmp_path / "site",)).scan()

        assert [f.rel_path for f in scan.documents] == ["keep.md"]
        assert scan.ignored == 1

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            Reconciler(tmp_path / "missing").scan()

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="permissions not enforced")
    def test_unreadable_root(self, tmp_path: Path):
        root = tmp_path / "locked"
        root.mkdir()
        root.chmod(0)
        try:
            with pytest.raises(ConfigurationError):
                Reconciler(root).scan()
        finally:
            root.chmod(0o755)


def test_media_types():
    assert media_type_for("a/b.PNG") == MediaType.IMAGE
    assert media_type_for("song.mp3") == MediaType.AUDIO
    assert media_type_for("paper.pdf") == MediaType.OTHER
    assert media_type_for("notes.txt") is None
