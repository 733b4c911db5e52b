"""
Pipeline Protocol - Defines the stage interface and shared context.

Every pipeline stage implements the ``PipelineStage`` protocol. Stages are
composed into an ordered pipeline by ``PipelineOrchestrator``.

The ``PipelineContext`` dataclass holds all mutable state that flows through
the pipeline.  Stages read what they need and write their contributions.

The ``StageResult`` dataclass captures the outcome of a single stage
execution for logging and error reporting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from change_impact import ScanMode
from diagnostics import ScanDiagnostics


@dataclass
class PipelineContext:
    """Shared mutable state flowing through the pipeline.

    Attributes
    ----------
    config : dict
        Flat configuration dict produced by ``config_loader.build_unified_config``.
    target_path : str
        Root of the application being scanned.
    route_provider : RouteProvider | None
        Source of route descriptors.  Route checks are skipped without one.
    source_provider : SourceProvider | None
        Reads controller, model and policy sources under ``target_path``.
    action_resolver : ActionResolver | None
        Maps route actions to controller files for change-impact filtering.
    policy : GuardPolicy | None
        Declarative intent policy; intent checks and policy enrichment are
        skipped without one.
    findings : list[Finding]
        The primary mutable data.  Starts empty; the scan stage fills it;
        later stages filter, enrich and suppress.
    changed_files : list[str] | None
        Change set for incremental scans.  ``None`` means full scan.
    scan_mode : ScanMode
        Route scan mode derived from ``changed_files``.
    diagnostics : ScanDiagnostics
        Scan-scoped warning and error sink shared with the checks.
    check_failures : list
        ``CheckFailure`` records from the scanner.
    phase_timings : dict
        Wall-clock seconds per stage, keyed by ``stage.name``.
    errors : list
        Non-fatal stage errors collected during the run.
    """

    # -- Immutable configuration --
    config: Dict[str, Any] = field(default_factory=dict)
    target_path: str = ""

    # -- Collaborators --
    route_provider: Any = None
    source_provider: Any = None
    action_resolver: Any = None
    policy: Any = None

    # -- Primary pipeline data --
    findings: List[Any] = field(default_factory=list)

    # -- Incremental scanning --
    changed_files: Optional[List[str]] = None
    scan_mode: ScanMode = ScanMode.FULL

    # -- Diagnostics --
    diagnostics: ScanDiagnostics = field(default_factory=ScanDiagnostics)
    check_failures: List[Any] = field(default_factory=list)

    # -- Phase timings --
    phase_timings: Dict[str, float] = field(default_factory=dict)

    # -- Error collection --
    errors: List[str] = field(default_factory=list)


@dataclass
class StageResult:
    """Outcome returned by each pipeline stage.

    Attributes
    ----------
    success : bool
        Whether the stage completed without fatal errors.
    stage_name : str
        Identifier matching ``PipelineStage.name``.
    duration_seconds : float
        Wall-clock execution time.
    findings_before : int
        Number of findings in context before execution.
    findings_after : int
        Number of findings in context after execution.
    error : str | None
        Human-readable error message if the stage failed.
    skipped : bool
        ``True`` if the stage was intentionally skipped (preconditions not met).
    skip_reason : str
        Why the stage was skipped.
    metadata : dict
        Stage-specific metadata (check counts, suppression counts, ...).
    """

    success: bool
    stage_name: str
    duration_seconds: float = 0.0
    findings_before: int = 0
    findings_after: int = 0
    error: Optional[str] = None
    skipped: bool = False
    skip_reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PipelineStage(Protocol):
    """Protocol that every pipeline stage must implement.

    Stages are composable, independently testable units that:
    1. Declare their name and dependencies
    2. Check whether they should run (preconditions)
    3. Execute their logic, mutating ``PipelineContext``
    4. Return a ``StageResult`` with outcome metadata

    Example
    -------
    ::

        class MyStage:
            name = "my_stage"
            display_name = "My Custom Stage"
            phase_number = 2.5
            required_stages: list[str] = []

            def should_run(self, ctx: PipelineContext) -> bool:
                return True

            def execute(self, ctx: PipelineContext) -> StageResult:
                return StageResult(success=True, stage_name=self.name)

            def rollback(self, ctx: PipelineContext) -> None:
                pass
    """

    @property
    def name(self) -> str:
        """Unique stage identifier, e.g. ``phase1_guard_scan``."""
        ...

    @property
    def display_name(self) -> str:
        """Human-readable name, e.g. ``Phase 1: Guard Scan``."""
        ...

    @property
    def phase_number(self) -> float:
        """Numeric phase for ordering.  Float to allow sub-phases (1.5, 2.1)."""
        ...

    @property
    def required_stages(self) -> List[str]:
        """Names of stages that must complete before this one."""
        ...

    def should_run(self, ctx: PipelineContext) -> bool:
        """Check preconditions.  Return ``False`` to skip this stage."""
        ...

    def execute(self, ctx: PipelineContext) -> StageResult:
        """Execute the stage logic, mutating ``ctx``."""
        ...

    def rollback(self, ctx: PipelineContext) -> None:
        """Optional cleanup if the stage fails."""
        ...
