#!/usr/bin/env python3
"""
Unit tests for the git helper

All git invocations are mocked - no real repository is required.
"""

import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from exceptions import GitError
from git_helper import GitHelper


class TestParseFileList:
    def test_joins_onto_base(self):
        output = "app/Http/Controllers/A.php\n\nroutes/web.php\n"
        assert GitHelper.parse_file_list(output, "/repo/") == [
            "/repo/app/Http/Controllers/A.php",
            "/repo/routes/web.php",
        ]

    def test_windows_base(self):
        assert GitHelper.parse_file_list("a.php", "C:\\repo") == ["C:/repo/a.php"]

    def test_empty_base(self):
        assert GitHelper.parse_file_list("a.php\n", "") == ["a.php"]


class TestIsGitRepo:
    def test_with_git_dir(self, tmp_path):
        (tmp_path / ".git").mkdir()
        assert GitHelper(str(tmp_path)).is_git_repo()

    def test_without_git_dir(self, tmp_path):
        assert not GitHelper(str(tmp_path)).is_git_repo()


class TestResolveBaseRef:
    def test_first_existing_candidate(self):
        helper = GitHelper("/repo")
        existing = {"main"}

        def fake_run(args):
            if args[:2] == ["rev-parse", "--verify"] and args[2] in existing:
                return "abc\n"
            raise GitError("missing")

        with patch.object(helper, "_run_git", side_effect=fake_run):
            assert helper.resolve_base_ref() == "main"

    def test_falls_back_to_head_parent(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", side_effect=GitError("missing")):
            assert helper.resolve_base_ref() == "HEAD~1"


class TestChangedFiles:
    def test_three_dot_diff(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", return_value="routes/web.php\n") as run:
            files = helper.get_changed_files("origin/main")
        run.assert_called_once_with(["diff", "--name-only", "origin/main...HEAD"])
        assert files == ["/repo/routes/web.php"]

    def test_two_dot_fallback(self):
        helper = GitHelper("/repo")
        with patch.object(
            helper, "_run_git", side_effect=[GitError("no merge base"), "app/A.php\n"]
        ) as run:
            files = helper.get_changed_files("feature")
        assert run.call_args_list[1].args[0] == ["diff", "--name-only", "feature", "HEAD"]
        assert files == ["/repo/app/A.php"]

    def test_both_forms_fail(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", side_effect=GitError("bad ref")):
            with pytest.raises(GitError):
                helper.get_changed_files("nope")

    def test_default_base_resolved(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "resolve_base_ref", return_value="master"), \
             patch.object(helper, "_run_git", return_value="") as run:
            assert helper.get_changed_files() == []
        run.assert_called_once_with(["diff", "--name-only", "master...HEAD"])

    def test_staged(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", return_value="app/B.php\n") as run:
            assert helper.get_staged_files() == ["/repo/app/B.php"]
        run.assert_called_once_with(["diff", "--cached", "--name-only"])


class TestHeadSha:
    def test_sha(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", return_value="deadbeef\n"):
            assert helper.get_head_sha() == "deadbeef"

    def test_error_gives_none(self):
        helper = GitHelper("/repo")
        with patch.object(helper, "_run_git", side_effect=GitError("no commits")):
            assert helper.get_head_sha() is None


class TestRunGit:
    def test_non_zero_exit(self):
        completed = MagicMock(returncode=128, stdout="", stderr="fatal: bad revision")
        with patch("git_helper.subprocess.run", return_value=completed):
            with pytest.raises(GitError, match="exit 128"):
                GitHelper("/repo")._run_git(["rev-parse", "HEAD"])

    def test_timeout(self):
        with patch("git_helper.subprocess.run", side_effect=subprocess.TimeoutExpired("git", 5)):
            with pytest.raises(GitError, match="timed out"):
                GitHelper("/repo", timeout=5)._run_git(["status"])

    def test_git_missing(self):
        with patch("git_helper.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(GitError, match="not installed"):
                GitHelper("/repo")._run_git(["status"])

    def test_passes_timeout_and_cwd(self):
        completed = MagicMock(returncode=0, stdout="ok", stderr="")
        with patch("git_helper.subprocess.run", return_value=completed) as run:
            assert GitHelper("/repo", timeout=7)._run_git(["status"]) == "ok"
        kwargs = run.call_args.kwargs
        assert kwargs["cwd"] == "/repo"
        assert kwargs["timeout"] == 7
