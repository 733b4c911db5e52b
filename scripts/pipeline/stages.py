"""
Concrete Pipeline Stages.

Each stage wraps one module of the guard into the ``PipelineStage``
protocol:

    0.5  ChangeDetectionStage       change set and route scan mode
    1.0  GuardScanStage             checks + scanner + severity filter
    1.5  RouteImpactFilterStage     narrow or drop route findings
    2.0  ProjectMapEnrichmentStage  model/policy/ability on route findings
    2.1  PolicyEnrichmentStage      declared intent on mass-assignment findings
    3.0  InlineIgnoreStage          ``// guard:ignore`` comments
    3.1  BaselineSuppressionStage   baseline file and policy baseline entries

Stages are designed to be independently testable:
    - Each can be instantiated without the others
    - ``should_run`` checks config flags and collaborators before executing
    - Failures are logged and do not crash the pipeline
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from change_impact import ROUTE_CHECKS, ScanMode, apply_scan_mode, determine_route_scan_mode
from checks import (
    DangerousQueryInputCheck,
    IntentAuthCheck,
    IntentMassAssignmentCheck,
    MassAssignmentCheck,
    RouteAuthorizationCheck,
)
from checks.base import Check
from exceptions import GitError
from git_helper import GitHelper
from intent_enricher import IntentEnricher
from project_map import ProjectMap
from route_protection import RouteProtectionDetector
from scan_cache import ScanCache
from scanner import Scanner
from suppression import BaselineManager, InlineIgnoreManager

from .base_stage import BaseStage, FindingTransformStage
from .protocol import PipelineContext

logger = logging.getLogger(__name__)


# ============================================================================
# Phase 0: Change detection
# ============================================================================


class ChangeDetectionStage(BaseStage):
    """Phase 0.5: Resolve the change set and the route scan mode.

    A change set handed in by the caller is used as is.  Otherwise, when
    ``changed_only`` or ``staged`` is enabled, git is asked.  A git failure
    degrades to a full scan with a diagnostics warning.
    """

    name = "phase0_5_change_detection"
    title = "Change Detection"
    phase_number = 0.5

    def should_run(self, ctx: PipelineContext) -> bool:
        config = ctx.config
        return (
            ctx.changed_files is not None
            or bool(config.get("changed_only"))
            or bool(config.get("staged"))
        )

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        source = "caller"
        if ctx.changed_files is None:
            source = "staged" if ctx.config.get("staged") else "diff"
            ctx.changed_files = self._detect(ctx)

        ctx.scan_mode = determine_route_scan_mode(
            ctx.changed_files,
            controllers_path=ctx.config.get("controllers_path") or None,
        )

        count = len(ctx.changed_files) if ctx.changed_files is not None else 0
        logger.info(
            "Change detection (%s): %d changed file(s), route scan mode %s",
            source, count, ctx.scan_mode.value,
        )
        return {"source": source, "changed_files": count, "scan_mode": ctx.scan_mode.value}

    def _detect(self, ctx: PipelineContext) -> Optional[List[str]]:
        git = GitHelper(ctx.target_path, timeout=int(ctx.config.get("git_timeout", 30)))
        if not git.is_git_repo():
            ctx.diagnostics.add_warning(
                f"{ctx.target_path} is not a git repository; running a full scan."
            )
            return None

        try:
            if ctx.config.get("staged"):
                return git.get_staged_files()
            return git.get_changed_files(ctx.config.get("base_ref") or None)
        except GitError as exc:
            ctx.diagnostics.add_warning(f"Could not determine changed files ({exc}); running a full scan.")
            return None


# ============================================================================
# Phase 1: Scan
# ============================================================================


class GuardScanStage(BaseStage):
    """Phase 1: Build the enabled checks and run them through the scanner."""

    name = "phase1_guard_scan"
    title = "Guard Scan"
    phase_number = 1.0

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        checks = self.build_checks(ctx)
        scanner = Scanner(checks, diagnostics=ctx.diagnostics)
        result = scanner.scan(ctx.config.get("severity", "all"))

        ctx.findings.extend(result.findings)
        ctx.check_failures.extend(result.failures)

        return {
            "checks_run": [c.name for c in checks],
            "findings": len(result.findings),
        }

    def build_checks(self, ctx: PipelineContext) -> List[Check]:
        """Checks in reporting order: route, pattern, then intent checks."""
        config = ctx.config
        detector = RouteProtectionDetector(config.get("auth_middlewares") or ())
        controllers_path = config.get("controllers_path", "app/Http/Controllers")
        models_path = config.get("models_path", "app/Models")
        route_checks_enabled = (
            ctx.route_provider is not None and ctx.scan_mode != ScanMode.SKIPPED
        )
        if ctx.route_provider is not None and not route_checks_enabled:
            logger.info("No route-related changes; route checks skipped")

        checks: List[Check] = []

        if route_checks_enabled:
            checks.append(RouteAuthorizationCheck(
                ctx.route_provider,
                ctx.source_provider,
                detector=detector,
                public_routes=config.get("public_routes") or (),
            ))

        checks.append(DangerousQueryInputCheck(
            ctx.source_provider,
            controllers_path=controllers_path,
            only_files=ctx.changed_files,
        ))
        checks.append(MassAssignmentCheck(
            ctx.source_provider,
            models_path=models_path,
            controllers_path=controllers_path,
            only_files=ctx.changed_files,
        ))

        if ctx.policy is not None:
            if route_checks_enabled:
                checks.append(IntentAuthCheck(ctx.route_provider, ctx.policy, detector=detector))
            checks.append(IntentMassAssignmentCheck(
                ctx.source_provider,
                ctx.policy,
                ctx.diagnostics,
                models_path=models_path,
            ))

        return checks


class RouteImpactFilterStage(FindingTransformStage):
    """Phase 1.5: Keep only route findings affected by the change set."""

    name = "phase1_5_route_impact_filter"
    title = "Route Impact Filter"
    phase_number = 1.5
    required_stages = ["phase1_guard_scan"]

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.scan_mode != ScanMode.FULL

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        before = len(ctx.findings)
        ctx.findings = apply_scan_mode(
            ctx.findings,
            ctx.scan_mode,
            ctx.changed_files,
            ctx.action_resolver,
            diagnostics=ctx.diagnostics,
            base_path=ctx.target_path,
        )
        return {"scan_mode": ctx.scan_mode.value, "dropped": before - len(ctx.findings)}


# ============================================================================
# Phase 2: Enrichment
# ============================================================================


class ProjectMapEnrichmentStage(FindingTransformStage):
    """Phase 2: Attach inferred model, policy and ability to route findings."""

    name = "phase2_project_map_enrichment"
    title = "Project Map Enrichment"
    phase_number = 2.0
    required_stages = ["phase1_guard_scan"]

    def should_run(self, ctx: PipelineContext) -> bool:
        return (
            ctx.route_provider is not None
            and ctx.source_provider is not None
            and any(f.check in ROUTE_CHECKS for f in ctx.findings)
        )

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        config = ctx.config
        cache: Optional[ScanCache] = None
        version: Optional[str] = None

        if config.get("cache_enabled") and config.get("cache_dir"):
            cache = ScanCache(str(ctx.source_provider.resolve(config["cache_dir"])))
            version = self.cache_version(ctx)

        project_map = ProjectMap(
            ctx.route_provider,
            ctx.source_provider,
            cache=cache,
            cache_version=version,
            model_namespace=config.get("model_namespace", "App\\Models"),
            policy_namespace=config.get("policy_namespace", "App\\Policies"),
        )
        ctx.findings = project_map.enrich(ctx.findings)
        return {"actions": len(project_map.entries), "from_cache": project_map.loaded_from_cache}

    @staticmethod
    def cache_version(ctx: PipelineContext) -> str:
        config = ctx.config
        git_sha = None
        git = GitHelper(ctx.target_path, timeout=int(config.get("git_timeout", 30)))
        if git.is_git_repo():
            git_sha = git.get_head_sha()

        mtimes_hash = None
        if git_sha is None:
            paths = [str(ctx.source_provider.resolve(p)) for p in config.get("cache_mtime_paths", [])]
            mtimes_hash = ScanCache.compute_mtimes_hash(paths, ctx.source_provider.suffix)

        return ScanCache.compute_version(
            str(config.get("framework_version", "")),
            git_sha=git_sha,
            mtimes_hash=mtimes_hash,
        )


class PolicyEnrichmentStage(FindingTransformStage):
    """Phase 2.1: Attach declared model intent to mass-assignment findings."""

    name = "phase2_1_policy_enrichment"
    title = "Policy Enrichment"
    phase_number = 2.1
    required_stages = ["phase1_guard_scan"]

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.policy is not None and bool(ctx.policy.data.models) and bool(ctx.findings)

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        ctx.findings = IntentEnricher.enrich(ctx.findings, ctx.policy)
        enriched = sum(1 for f in ctx.findings if "intent_mode" in f.context)
        return {"enriched": enriched}


# ============================================================================
# Phase 3: Suppression
# ============================================================================


class InlineIgnoreStage(FindingTransformStage):
    """Phase 3: Mark findings silenced by inline ignore comments."""

    name = "phase3_inline_ignore"
    title = "Inline Ignores"
    phase_number = 3.0
    required_stages = ["phase1_guard_scan"]

    def should_run(self, ctx: PipelineContext) -> bool:
        return bool(ctx.config.get("allow_inline_ignores", True)) and bool(ctx.findings)

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        manager = InlineIgnoreManager(
            marker=ctx.config.get("inline_ignore_marker") or "guard:ignore",
            base_path=ctx.target_path,
        )
        ctx.findings = manager.apply(ctx.findings)
        return {"marker": manager.marker}


class BaselineSuppressionStage(FindingTransformStage):
    """Phase 3.1: Mark findings accepted by the baseline.

    Fingerprints come from the baseline file (when ``use_baseline`` is on)
    and from unexpired ``baseline.findings`` entries of the policy.
    """

    name = "phase3_1_baseline_suppression"
    title = "Baseline Suppression"
    phase_number = 3.1
    required_stages = ["phase1_guard_scan"]

    def __init__(self, today: Optional[date] = None) -> None:
        self.today = today

    def should_run(self, ctx: PipelineContext) -> bool:
        has_policy_baseline = ctx.policy is not None and bool(ctx.policy.baseline.findings)
        return bool(ctx.findings) and (bool(ctx.config.get("use_baseline")) or has_policy_baseline)

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        manager = BaselineManager()
        fingerprints = set()

        if ctx.config.get("use_baseline"):
            path = ctx.config.get("baseline_path", "storage/guard/baseline.json")
            if ctx.source_provider is not None:
                path = str(ctx.source_provider.resolve(path))
            fingerprints |= manager.load(path)

        if ctx.policy is not None:
            self._report_policy_entries(ctx)
            fingerprints |= ctx.policy.baseline_fingerprints(self.today)

        ctx.findings = manager.suppress(ctx.findings, fingerprints)
        return {"fingerprints": len(fingerprints)}

    def _report_policy_entries(self, ctx: PipelineContext) -> None:
        defaults = ctx.policy.defaults
        for entry in ctx.policy.expired_baseline_entries(self.today):
            message = f"Baseline entry '{entry.id}' expired on {entry.expires}; it no longer suppresses findings."
            if defaults.baseline_expired_is_error:
                ctx.diagnostics.add_error(message)
            else:
                ctx.diagnostics.add_warning(message)

        if defaults.baseline_require_expiry:
            for entry in ctx.policy.baseline.findings:
                if entry.expires is None:
                    ctx.diagnostics.add_warning(f"Baseline entry '{entry.id}' has no expiry date.")


# ============================================================================
# Factory: Build default pipeline
# ============================================================================


def build_default_stages(config: Dict[str, Any]) -> List[BaseStage]:
    """Build the default set of pipeline stages.

    Returns all stages; the orchestrator uses ``should_run`` to skip
    stages whose features are disabled or whose inputs are missing.
    """
    return [
        ChangeDetectionStage(),
        GuardScanStage(),
        RouteImpactFilterStage(),
        ProjectMapEnrichmentStage(),
        PolicyEnrichmentStage(),
        InlineIgnoreStage(),
        BaselineSuppressionStage(),
    ]
