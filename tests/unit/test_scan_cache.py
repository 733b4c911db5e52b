#!/usr/bin/env python3
"""
Unit tests for the versioned scan cache

Tests cover:
- get/put round trip under one version
- Version change purges every blob
- Disabled cache and corrupt blobs
- Version key computation
"""

import os
import sys
from pathlib import Path

import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from scan_cache import TOOL_VERSION, ScanCache


class TestScanCacheStorage:
    def test_roundtrip(self, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"))
        cache.put("project_map", {"a": {"policy": None}}, "v1")
        assert cache.get("project_map", "v1") == {"a": {"policy": None}}

    def test_miss_on_unknown_key(self, tmp_path):
        cache = ScanCache(str(tmp_path))
        cache.put("one", [1], "v1")
        assert cache.get("two", "v1") is None

    def test_miss_without_marker(self, tmp_path):
        assert ScanCache(str(tmp_path / "fresh")).get("project_map", "v1") is None

    def test_version_change_purges_directory(self, tmp_path):
        cache_dir = tmp_path / "cache"
        cache = ScanCache(str(cache_dir))
        cache.put("one", [1], "v1")
        cache.put("two", [2], "v1")

        assert cache.get("one", "v2") is None
        assert os.listdir(cache_dir) == []
        assert cache.get("two", "v1") is None

    def test_put_new_version_then_get(self, tmp_path):
        cache = ScanCache(str(tmp_path))
        cache.put("one", [1], "v1")
        cache.put("one", [2], "v2")
        assert cache.get("one", "v2") == [2]

    def test_disabled(self, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"), enabled=False)
        cache.put("one", [1], "v1")
        assert cache.get("one", "v1") is None
        assert not (tmp_path / "cache").exists()

    def test_corrupt_blob_is_miss(self, tmp_path):
        cache = ScanCache(str(tmp_path))
        cache.put("one", [1], "v1")
        (tmp_path / "one.cache").write_text("{broken")
        assert cache.get("one", "v1") is None

    def test_unserializable_value_does_not_raise(self, tmp_path):
        cache = ScanCache(str(tmp_path))
        cache.put("one", {"x": object()}, "v1")

    def test_clear_missing_dir(self, tmp_path):
        ScanCache(str(tmp_path / "none")).clear()


class TestComputeVersion:
    def test_deterministic(self):
        a = ScanCache.compute_version("10.0", git_sha="abc", runtime_version="3.11")
        b = ScanCache.compute_version("10.0", git_sha="abc", runtime_version="3.11")
        assert a == b
        assert len(a) == 40

    def test_each_input_matters(self):
        base = ScanCache.compute_version("10.0", git_sha="abc", runtime_version="3.11")
        assert base != ScanCache.compute_version("11.0", git_sha="abc", runtime_version="3.11")
        assert base != ScanCache.compute_version("10.0", git_sha="abd", runtime_version="3.11")
        assert base != ScanCache.compute_version("10.0", git_sha="abc", runtime_version="3.12")

    def test_sha_wins_over_mtimes(self):
        with_both = ScanCache.compute_version("10", git_sha="abc", runtime_version="3", mtimes_hash="m")
        sha_only = ScanCache.compute_version("10", git_sha="abc", runtime_version="3")
        assert with_both == sha_only

    def test_mtimes_used_without_sha(self):
        a = ScanCache.compute_version("10", runtime_version="3", mtimes_hash="m1")
        b = ScanCache.compute_version("10", runtime_version="3", mtimes_hash="m2")
        assert a != b

    def test_tool_version_constant(self):
        assert ScanCache.VERSION == TOOL_VERSION


class TestComputeMtimesHash:
    def test_no_files(self, tmp_path):
        assert ScanCache.compute_mtimes_hash([str(tmp_path / "missing")]) is None

    def test_changes_with_mtime(self, tmp_path):
        routes = tmp_path / "routes"
        routes.mkdir()
        web = routes / "web.php"
        web.write_text("<?php")
        os.utime(web, (1_700_000_000, 1_700_000_000))
        first = ScanCache.compute_mtimes_hash([str(routes)])

        os.utime(web, (1_700_000_100, 1_700_000_100))
        second = ScanCache.compute_mtimes_hash([str(routes)])

        assert first is not None
        assert first != second

    def test_ignores_other_suffixes(self, tmp_path):
        (tmp_path / "notes.txt").write_text("x")
        assert ScanCache.compute_mtimes_hash([str(tmp_path)]) is None

    def test_explicit_file(self, tmp_path):
        kernel = tmp_path / "Kernel.php"
        kernel.write_text("<?php")
        assert ScanCache.compute_mtimes_hash([str(kernel)]) is not None
