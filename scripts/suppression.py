"""
Finding suppression: persisted baseline and inline ignore comments.

Suppression never removes a finding.  It returns a copy carrying a
``suppressed_reason`` so reports can still show (and count) it.  A finding
that is already suppressed passes through untouched, so whichever stage
suppresses first wins and applying a stage twice changes nothing.

Baseline file format (JSON array)::

    [
      {
        "fingerprint": "3f2a...",
        "check": "route-authorization",
        "severity": "high",
        "message": "Route [GET] users has no authorization protection.",
        "file": "app/Http/Controllers/UserController.php",
        "line": 12
      }
    ]

Inline ignore::

    // guard:ignore dangerous-query-input
    $query->orderBy($request->sort);   // guard:ignore all
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from fingerprint import normalize_path
from schemas.finding import Finding

logger = logging.getLogger(__name__)

DEFAULT_BASELINE_PATH = "storage/guard/baseline.json"
DEFAULT_IGNORE_MARKER = "guard:ignore"

BASELINE_REASON = "baseline"
INLINE_REASON = "inline-ignore"


# ============================================================================
# Baseline
# ============================================================================


class BaselineManager:
    """Save, load and apply fingerprint baselines."""

    def save(self, findings: Iterable[Finding], path: str) -> int:
        """Write one record per distinct fingerprint.

        Args:
            findings: Findings to accept.
            path: Destination file; parent directories are created.

        Returns:
            Number of records written.
        """
        records: List[Dict[str, object]] = []
        seen: Set[str] = set()

        for finding in findings:
            fingerprint = finding.fingerprint
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            records.append({
                "fingerprint": fingerprint,
                "check": finding.check,
                "severity": finding.severity.value,
                "message": finding.message,
                "file": normalize_path(finding.file),
                "line": finding.line,
            })

        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        with open(path, "w", encoding="utf-8") as fh:
            json.dump(records, fh, indent=2)
            fh.write("\n")

        logger.info("Saved %d baseline entries to %s", len(records), path)
        return len(records)

    def load(self, path: str) -> Set[str]:
        """Return the fingerprint set stored at *path*.

        A missing, unreadable or malformed file yields an empty set.
        """
        if not os.path.isfile(path):
            return set()

        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load baseline %s: %s", path, exc)
            return set()

        if not isinstance(data, list):
            logger.warning("Ignoring baseline %s: expected a JSON array", path)
            return set()

        fingerprints = {
            entry["fingerprint"]
            for entry in data
            if isinstance(entry, dict) and isinstance(entry.get("fingerprint"), str)
        }
        logger.info("Loaded %d baseline fingerprints from %s", len(fingerprints), path)
        return fingerprints

    def suppress(self, findings: Iterable[Finding], fingerprints: Set[str]) -> List[Finding]:
        result: List[Finding] = []
        for finding in findings:
            if not finding.is_suppressed and finding.fingerprint in fingerprints:
                finding = finding.with_suppression(BASELINE_REASON)
            result.append(finding)
        return result


# ============================================================================
# Inline ignores
# ============================================================================


class InlineIgnoreManager:
    """Honor ``// guard:ignore <check>`` comments.

    The flagged line and the line directly above it are inspected.  File
    contents are cached on the instance, so one manager should serve one
    scan.

    Args:
        marker: Directive keyword following ``//``.
        base_path: Directory that relative finding paths are resolved against.
    """

    def __init__(self, marker: str = DEFAULT_IGNORE_MARKER, base_path: Optional[str] = None) -> None:
        self.marker = marker
        self.base_path = base_path
        self._file_cache: Dict[str, Optional[List[str]]] = {}

    def apply(self, findings: Iterable[Finding]) -> List[Finding]:
        result: List[Finding] = []
        for finding in findings:
            if finding.is_suppressed or finding.file is None or finding.line is None:
                result.append(finding)
                continue

            if self.is_ignored(finding.file, finding.line, finding.check):
                logger.debug("Inline ignore for %s at %s:%d", finding.check, finding.file, finding.line)
                finding = finding.with_suppression(INLINE_REASON)
            result.append(finding)
        return result

    def is_ignored(self, file: str, line: int, check: str) -> bool:
        lines = self._lines(file)
        if not lines:
            return False

        directive = re.compile(
            r"//\s*" + re.escape(self.marker) + r"\s+(" + re.escape(check) + r"|all)\b"
        )

        # line is 1-based: index line-1 is the flagged line, line-2 the one above
        for index in (line - 1, line - 2):
            if 0 <= index < len(lines) and directive.search(lines[index]):
                return True
        return False

    def clear_cache(self) -> None:
        self._file_cache = {}

    def _lines(self, file: str) -> Optional[List[str]]:
        if file in self._file_cache:
            return self._file_cache[file]

        path = Path(file)
        if not path.is_absolute() and self.base_path:
            path = Path(self.base_path) / path

        try:
            lines: Optional[List[str]] = path.read_text(encoding="utf-8", errors="replace").split("\n")
        except OSError as exc:
            logger.debug("Cannot read %s for inline ignores: %s", path, exc)
            lines = None

        self._file_cache[file] = lines
        return lines
