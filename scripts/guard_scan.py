#!/usr/bin/env python3
"""
Route guard entry points.

``run_guard_scan`` wires configuration, collaborators and the default
pipeline together and returns a ``GuardScanReport``.  ``write_baseline``
runs a full scan and stores the fingerprints of every unsuppressed finding
so that later runs with ``use_baseline`` only report new problems.

Usage:
    from guard_scan import run_guard_scan

    report = run_guard_scan(
        "/path/to/app",
        routes=[{"uri": "posts", "methods": ["GET"], "action": "App\\\\Http\\\\Controllers\\\\PostController@index"}],
        policy=policy_dict,
    )
    if report.has_blocking_findings:
        ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from change_impact import ScanMode
from config_loader import build_unified_config, validate_config
from exceptions import BaselineError, PolicyError, ScannerError
from pipeline import PipelineContext, PipelineOrchestrator, StageResult, build_default_stages
from routing import ActionResolver, ConventionActionResolver, RouteProvider, StaticRouteProvider
from schemas.finding import Finding, Severity
from schemas.policy import GuardPolicy
from source_provider import SourceProvider
from suppression import BaselineManager

logger = logging.getLogger(__name__)

RoutesLike = Union[RouteProvider, Iterable[Any], None]
PolicyLike = Union[GuardPolicy, Mapping[str, Any], None]


@dataclass
class GuardScanReport:
    """Everything a caller needs after one scan.

    ``findings`` keeps suppressed findings (with ``suppressed_reason`` set)
    so reporters can show them separately.
    """

    findings: List[Finding] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    scan_mode: ScanMode = ScanMode.FULL
    changed_files: Optional[List[str]] = None
    stage_results: List[StageResult] = field(default_factory=list)

    @property
    def active_findings(self) -> List[Finding]:
        return [f for f in self.findings if not f.is_suppressed]

    @property
    def suppressed_findings(self) -> List[Finding]:
        return [f for f in self.findings if f.is_suppressed]

    @property
    def summary(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.active_findings:
            counts[finding.severity.value] += 1
        counts["suppressed"] = len(self.suppressed_findings)
        counts["total"] = len(self.findings)
        return counts

    @property
    def has_blocking_findings(self) -> bool:
        return any(f.severity == Severity.HIGH for f in self.active_findings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_mode": self.scan_mode.value,
            "summary": self.summary,
            "findings": [f.to_dict() for f in self.findings],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


# ---------------------------------------------------------------------------
# Collaborator coercion
# ---------------------------------------------------------------------------

def _route_provider(routes: RoutesLike) -> Optional[RouteProvider]:
    if routes is None:
        return None
    if isinstance(routes, RouteProvider):
        return routes
    return StaticRouteProvider(routes)


def _policy(policy: PolicyLike) -> Optional[GuardPolicy]:
    if policy is None or isinstance(policy, GuardPolicy):
        return policy
    try:
        return GuardPolicy.from_dict(dict(policy))
    except ValueError as exc:
        raise PolicyError(f"Invalid guard policy: {exc}") from exc


def _check_config(config: Dict[str, Any]) -> None:
    errors = []
    for issue in validate_config(config):
        if issue.startswith("ERROR:"):
            errors.append(issue)
        else:
            logger.warning("%s", issue)
    if errors:
        raise ScannerError("Invalid configuration: " + "; ".join(errors))


def _require_baseline(config: Dict[str, Any], source_provider: SourceProvider) -> None:
    if not (config.get("use_baseline") and config.get("baseline_strict")):
        return
    path = source_provider.resolve(config["baseline_path"])
    if not os.path.isfile(path):
        raise BaselineError(
            f"Baseline file {path} not found. Run write_baseline() first or disable baseline_strict."
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def run_guard_scan(
    project_root: str,
    routes: RoutesLike = None,
    policy: PolicyLike = None,
    config: Optional[Dict[str, Any]] = None,
    changed_files: Optional[Iterable[str]] = None,
    action_resolver: Optional[ActionResolver] = None,
) -> GuardScanReport:
    """Scan one application and return the report.

    Args:
        project_root: Root of the application.
        routes: A ``RouteProvider`` or an iterable of ``RouteDescriptor``/dicts.
            ``None`` disables the route checks.
        policy: ``GuardPolicy`` or its dict form.  ``None`` disables the
            intent checks.
        config: Explicit overrides on top of defaults, ``.guard.yml`` and env.
        changed_files: Change set for an incremental scan.  ``None`` lets
            ``changed_only``/``staged`` decide.
        action_resolver: Maps route actions to files.  Defaults to the
            namespace convention.

    Raises:
        ScannerError: configuration has errors.
        PolicyError: the policy dict does not validate.
        BaselineError: strict baseline requested but the file is missing.
    """
    resolved_config = build_unified_config(repo_path=project_root, overrides=config)
    _check_config(resolved_config)

    source_provider = SourceProvider(project_root, resolved_config.get("namespace_roots"))
    _require_baseline(resolved_config, source_provider)

    ctx = PipelineContext(
        config=resolved_config,
        target_path=project_root,
        route_provider=_route_provider(routes),
        source_provider=source_provider,
        action_resolver=action_resolver or ConventionActionResolver(source_provider),
        policy=_policy(policy),
        changed_files=list(changed_files) if changed_files is not None else None,
    )

    orchestrator = PipelineOrchestrator(build_default_stages(resolved_config), resolved_config)
    ctx, results = orchestrator.run(project_root, ctx)

    report = GuardScanReport(
        findings=list(ctx.findings),
        warnings=list(ctx.diagnostics.warnings),
        errors=list(ctx.diagnostics.errors) + list(ctx.errors),
        scan_mode=ctx.scan_mode,
        changed_files=ctx.changed_files,
        stage_results=results,
    )
    logger.info(
        "Guard scan finished: %d active, %d suppressed, %d warning(s), %d error(s)",
        len(report.active_findings),
        len(report.suppressed_findings),
        len(report.warnings),
        len(report.errors),
    )
    return report


def write_baseline(
    project_root: str,
    routes: RoutesLike = None,
    policy: PolicyLike = None,
    config: Optional[Dict[str, Any]] = None,
    path: Optional[str] = None,
) -> int:
    """Run a full scan and save every unsuppressed finding as the baseline.

    Returns the number of baseline records written.
    """
    overrides = dict(config or {})
    overrides.update({
        "use_baseline": False,
        "baseline_strict": False,
        "changed_only": False,
        "staged": False,
        "severity": "all",
    })

    report = run_guard_scan(project_root, routes=routes, policy=policy, config=overrides)

    resolved = build_unified_config(repo_path=project_root, overrides=config)
    target = path or resolved["baseline_path"]
    target = str(SourceProvider(project_root).resolve(target))

    return BaselineManager().save(report.active_findings, target)
