# tests/unit/pipeline/test_unit_scanner.py — v1
"""Tests for pipeline/scanner.py — source discovery and filtering."""

from __future__ import annotations

import pytest

from adaptimg.pipeline.scanner import SourceScanner


class TestSourceScanner:
    def test_finds_supported_extensions(self, tmp_assets):
        for name in ("a.jpg", "b.JPEG", "c.png", "d.gif", "e.txt", "f.webp"):
            (tmp_assets / name).write_bytes(b"x")
        entries = SourceScanner().scan(tmp_assets)
        assert [e.filename for e in entries] == ["a.jpg", "b.JPEG", "c.png", "d.gif"]

    def test_recursive_and_flat(self, tmp_assets):
        (tmp_assets / "top.png").write_bytes(b"x")
        (tmp_assets / "sub").mkdir()
        (tmp_assets / "sub" / "deep.png").write_bytes(b"x")
        scanner = SourceScanner(["png"])
        assert len(scanner.scan(tmp_assets)) == 2
        assert len(scanner.scan(tmp_assets, recursive=False)) == 1

    def test_skips_hidden(self, tmp_assets):
        (tmp_assets / ".hidden.png").write_bytes(b"x")
        (tmp_assets / ".cache").mkdir()
        (tmp_assets / ".cache" / "a.png").write_bytes(b"x")
        assert SourceScanner().scan(tmp_assets) == []

    def test_excludes_output_dir(self, tmp_assets):
        out = tmp_assets / "optimized"
        out.mkdir()
        (out / "a.png").write_bytes(b"x")
        (tmp_assets / "b.png").write_bytes(b"x")
        entries = SourceScanner(exclude=[out]).scan(tmp_assets)
        assert [e.filename for e in entries] == ["b.png"]

    def test_key_is_posix_root_joined(self, tmp_assets):
        (tmp_assets / "sub").mkdir()
        (tmp_assets / "sub" / "a.png").write_bytes(b"abc")
        entry = SourceScanner().scan(tmp_assets)[0]
        assert entry.key == f"{tmp_assets.as_posix()}/sub/a.png"
        assert entry.size_bytes == 3
        assert entry.file_path.exists()

    def test_missing_root(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            SourceScanner().scan(tmp_path / "nope")
