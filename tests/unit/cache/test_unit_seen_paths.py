# tests/unit/cache/test_unit_seen_paths.py — v2
"""Tests for cache/seen_paths.py — in-run duplicate path detection."""

from __future__ import annotations

import os

import pytest

from adaptimg.cache.seen_paths import SeenPathSet


class TestSeenPathSet:
    def test_first_claim_wins(self, tmp_path):
        f = tmp_path / "a.png"
        f.write_bytes(b"x")
        seen = SeenPathSet()
        assert seen.claim(f) is True
        assert seen.claim(f) is False
        assert f in seen
        assert len(seen) == 1

    def test_relative_and_absolute_are_same(self, tmp_path, monkeypatch):
        f = tmp_path / "a.png"
        f.write_bytes(b"x")
        monkeypatch.chdir(tmp_path)
        seen = SeenPathSet()
        assert seen.claim("a.png")
        assert not seen.claim(f)

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="no symlinks")
    def test_symlink_resolves_to_target(self, tmp_path):
        f = tmp_path / "a.png"
        f.write_bytes(b"x")
        link = tmp_path / "link.png"
        try:
            link.symlink_to(f)
        except OSError:
            pytest.skip("symlinks not permitted")
        seen = SeenPathSet()
        assert seen.claim(f)
        assert not seen.claim(link)

    def test_non_path_not_contained(self):
        assert 3 not in SeenPathSet()

    def test_clear_allows_reclaim(self, tmp_path):
        f = tmp_path / "a.png"
        f.write_bytes(b"x")
        seen = SeenPathSet()
        assert seen.claim(f)
        seen.clear()
        assert len(seen) == 0
        assert seen.claim(f)
