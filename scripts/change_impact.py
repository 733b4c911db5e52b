"""
Change-impact analysis for incremental scans.

Given the set of changed files, decide how much of the route-dependent
surface needs to be evaluated:

- ``full``     -- no change set (full scan requested) or a route file changed
- ``filtered`` -- only controllers changed; keep route findings whose
  controller file is in the change set
- ``skipped``  -- nothing route-related changed; drop route findings

Filtering fails open: a route finding whose action cannot be resolved to a
file (closures, unknown classes) is always kept.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Set

from diagnostics import ScanDiagnostics
from routing import ActionResolver, controller_class
from schemas.finding import Finding

logger = logging.getLogger(__name__)

ROUTE_CHECKS = ("route-authorization", "intent-auth")
DEFAULT_CONTROLLERS_PATH = "app/Http/Controllers"

# Relative or absolute, with or without the .php extension.
ROUTE_FILE_RE = re.compile(r"(?:^|/)routes/[^/.]+(?:\.php)?$")


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


def controller_file_pattern(controllers_path: str = DEFAULT_CONTROLLERS_PATH) -> "re.Pattern[str]":
    """Match any file below *controllers_path*; directory names may hold dots."""
    root = _normalize(controllers_path).strip("/")
    if root.startswith("./"):
        root = root[2:]
    return re.compile(r"(?:^|/)" + re.escape(root) + r"/(?:[^/]+/)*[^/.]+(?:\.php)?$")


CONTROLLER_FILE_RE = controller_file_pattern()


class ScanMode(str, Enum):
    FULL = "full"
    FILTERED = "filtered"
    SKIPPED = "skipped"


def is_route_file(path: str) -> bool:
    return bool(ROUTE_FILE_RE.search(_normalize(path)))


def is_controller_file(path: str, controllers_path: Optional[str] = None) -> bool:
    pattern = CONTROLLER_FILE_RE if controllers_path is None else controller_file_pattern(controllers_path)
    return bool(pattern.search(_normalize(path)))


def determine_route_scan_mode(
    changed_files: Optional[Iterable[str]],
    controllers_path: Optional[str] = None,
) -> ScanMode:
    """Classify a change set.

    ``None`` means a full scan was requested.  Route files take priority
    over controller files under *controllers_path* (``app/Http/Controllers``
    when not given); anything else skips route checks.
    """
    if changed_files is None:
        return ScanMode.FULL

    files = list(changed_files)
    if any(is_route_file(f) for f in files):
        return ScanMode.FULL
    if any(is_controller_file(f, controllers_path) for f in files):
        return ScanMode.FILTERED
    return ScanMode.SKIPPED


def _path_key(path: str, base_path: Optional[str] = None) -> str:
    """Comparison key: project-relative, forward slashes, no ``.php``."""
    normalized = _normalize(path)
    if base_path:
        base = _normalize(base_path).rstrip("/") + "/"
        if normalized.startswith(base):
            normalized = normalized[len(base):]
    if normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.endswith(".php"):
        normalized = normalized[: -len(".php")]
    return normalized


def filter_route_findings(
    findings: Iterable[Finding],
    changed_files: Iterable[str],
    resolver: ActionResolver,
    diagnostics: Optional[ScanDiagnostics] = None,
    base_path: Optional[str] = None,
) -> List[Finding]:
    """Keep route findings whose controller changed; keep everything else.

    Parameters
    ----------
    findings : iterable of Finding
        Scanner output.
    changed_files : iterable of str
        Changed paths, absolute under *base_path* or project-relative.
    resolver : ActionResolver
        Maps an action to its project-relative source file.
    diagnostics : ScanDiagnostics | None
        Receives a warning for each controller class that cannot be resolved.
    base_path : str | None
        Project root used to relativize absolute changed paths.
    """
    changed: Set[str] = {_path_key(f, base_path) for f in changed_files}
    kept: List[Finding] = []

    for finding in findings:
        if finding.check not in ROUTE_CHECKS:
            kept.append(finding)
            continue

        action = finding.context.get("action")
        cls = controller_class(action)
        if cls is None:
            kept.append(finding)
            continue

        resolved = resolver.resolve(action)
        if resolved is None:
            if diagnostics is not None:
                diagnostics.add_warning(
                    f"Could not resolve controller '{cls}' to a source file; keeping its route findings."
                )
            kept.append(finding)
            continue

        if _path_key(resolved, base_path) in changed:
            kept.append(finding)
        else:
            logger.debug("Dropping %s finding for unchanged %s", finding.check, resolved)

    return kept


def drop_route_findings(findings: Iterable[Finding]) -> List[Finding]:
    return [f for f in findings if f.check not in ROUTE_CHECKS]


def apply_scan_mode(
    findings: Iterable[Finding],
    mode: ScanMode,
    changed_files: Optional[Iterable[str]],
    resolver: ActionResolver,
    diagnostics: Optional[ScanDiagnostics] = None,
    base_path: Optional[str] = None,
) -> List[Finding]:
    findings = list(findings)
    if mode == ScanMode.FILTERED and changed_files is not None:
        result = filter_route_findings(findings, changed_files, resolver, diagnostics, base_path)
    elif mode == ScanMode.SKIPPED:
        result = drop_route_findings(findings)
    else:
        result = findings

    logger.info("Route scan mode %s: %d -> %d findings", mode.value, len(findings), len(result))
    return result
