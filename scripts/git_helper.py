"""
Git collaborator for incremental scans.

Thin wrapper over the ``git`` CLI:

- ``is_git_repo`` -- does the project root contain ``.git``
- ``resolve_base_ref`` -- first existing conventional branch ref, else ``HEAD~1``
- ``get_changed_files`` -- files changed between a base ref and HEAD
- ``get_staged_files`` -- files in the index
- ``get_head_sha`` -- current commit id

Changed-file lists are returned as paths joined onto the repository root.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import List, Optional

from exceptions import GitError

logger = logging.getLogger(__name__)

DEFAULT_BASE_CANDIDATES = ("origin/main", "origin/master", "main", "master")
FALLBACK_BASE_REF = "HEAD~1"


class GitHelper:
    """Run git commands against one repository.

    Parameters
    ----------
    repo_path : str
        Repository root.
    timeout : int
        Seconds before a git command is abandoned.
    """

    def __init__(self, repo_path: str, timeout: int = 30) -> None:
        self.repo_path = repo_path
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_git_repo(self) -> bool:
        return os.path.isdir(os.path.join(self.repo_path, ".git"))

    def resolve_base_ref(self) -> str:
        """Return the first existing default branch ref.

        Resolution order: ``origin/main``, ``origin/master``, ``main``,
        ``master``, then ``HEAD~1``.
        """
        for ref in DEFAULT_BASE_CANDIDATES:
            if self._ref_exists(ref):
                logger.info("Using default base ref: %s", ref)
                return ref

        logger.info("No default branch found; using %s as base ref", FALLBACK_BASE_REF)
        return FALLBACK_BASE_REF

    def get_changed_files(self, base: Optional[str] = None) -> List[str]:
        """Files changed between *base* and HEAD.

        Uses the three-dot form (changes since the merge base) and falls back
        to a plain two-ref diff when no merge base can be found.

        Raises
        ------
        GitError
            If both diff forms fail.
        """
        base = base or self.resolve_base_ref()
        try:
            output = self._run_git(["diff", "--name-only", f"{base}...HEAD"])
        except GitError:
            logger.debug("Three-dot diff failed for %s, trying two-ref diff", base)
            output = self._run_git(["diff", "--name-only", base, "HEAD"])

        files = self.parse_file_list(output, self.repo_path)
        logger.info("GitHelper: %d changed file(s) against %s", len(files), base)
        return files

    def get_staged_files(self) -> List[str]:
        output = self._run_git(["diff", "--cached", "--name-only"])
        return self.parse_file_list(output, self.repo_path)

    def get_head_sha(self) -> Optional[str]:
        try:
            sha = self._run_git(["rev-parse", "HEAD"]).strip()
        except GitError as exc:
            logger.debug("Could not read HEAD: %s", exc)
            return None
        return sha or None

    @staticmethod
    def parse_file_list(output: str, base_path: str) -> List[str]:
        """Join each non-empty output line onto *base_path*."""
        base = base_path.replace("\\", "/").rstrip("/")
        files: List[str] = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            files.append(f"{base}/{line}" if base else line)
        return files

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ref_exists(self, ref: str) -> bool:
        try:
            self._run_git(["rev-parse", "--verify", ref])
            return True
        except GitError:
            return False

    def _run_git(self, args: List[str]) -> str:
        """Run a git command and return stdout.

        Raises
        ------
        GitError
            If git is not installed, times out, or exits non-zero.
        """
        cmd = ["git"] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise GitError("git is not installed or not found in PATH")
        except subprocess.TimeoutExpired:
            raise GitError(f"git command timed out: {' '.join(cmd)}")

        if result.returncode != 0:
            raise GitError(
                f"git command failed (exit {result.returncode}): "
                f"{' '.join(cmd)}\n{result.stderr.strip()}"
            )

        return result.stdout
