"""
Scanner - runs an ordered list of checks.

Findings are concatenated in registration order.  A check that raises does
not abort the batch: the failure is logged, recorded as a ``CheckFailure``
and the next check runs.

Usage::

    scanner = Scanner([RouteAuthorizationCheck(...), DangerousQueryInputCheck(...)])
    result = scanner.scan(severity="high")
    for finding in result.findings:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from checks.base import Check
from diagnostics import ScanDiagnostics
from schemas.finding import Finding

logger = logging.getLogger(__name__)

SEVERITY_FILTERS = ("all", "high", "medium", "low")


@dataclass
class CheckFailure:
    """A check that raised instead of returning findings."""

    check: str
    error: str


@dataclass
class ScanResult:
    """Findings plus everything that went wrong while producing them."""

    findings: List[Finding] = field(default_factory=list)
    failures: List[CheckFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


def filter_by_severity(findings: Iterable[Finding], severity: str = "all") -> List[Finding]:
    """Keep findings of exactly *severity*; ``"all"`` keeps everything."""
    if severity == "all":
        return list(findings)
    return [f for f in findings if f.severity == severity]


class Scanner:
    """Ordered check runner with per-check failure isolation.

    Parameters
    ----------
    checks : iterable of Check
        Checks in the order their findings should appear.
    diagnostics : ScanDiagnostics | None
        Sink that receives one error entry per failed check.
    """

    def __init__(
        self,
        checks: Iterable[Check] = (),
        diagnostics: Optional[ScanDiagnostics] = None,
    ) -> None:
        self.checks: List[Check] = []
        self.diagnostics = diagnostics if diagnostics is not None else ScanDiagnostics()
        self.failures: List[CheckFailure] = []
        for check in checks:
            self.add_check(check)

    def add_check(self, check: Check) -> None:
        self.checks.append(check)

    def run(self) -> List[Finding]:
        self.failures = []
        findings: List[Finding] = []

        for check in self.checks:
            try:
                produced = check.run()
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.error("Check %s failed: %s", check.name, error, exc_info=True)
                self.failures.append(CheckFailure(check=check.name, error=error))
                self.diagnostics.add_error(f"{check.name}: {error}")
                continue

            logger.debug("Check %s produced %d finding(s)", check.name, len(produced))
            findings.extend(produced)

        logger.info(
            "Scanner ran %d check(s): %d finding(s), %d failure(s)",
            len(self.checks),
            len(findings),
            len(self.failures),
        )
        return findings

    def run_and_filter(self, severity: str = "all") -> List[Finding]:
        if severity not in SEVERITY_FILTERS:
            raise ValueError(
                f"Invalid severity '{severity}'. Must be one of: {', '.join(SEVERITY_FILTERS)}"
            )
        return filter_by_severity(self.run(), severity)

    def scan(self, severity: str = "all") -> ScanResult:
        findings = self.run_and_filter(severity)
        return ScanResult(
            findings=findings,
            failures=list(self.failures),
            warnings=list(self.diagnostics.warnings),
        )
