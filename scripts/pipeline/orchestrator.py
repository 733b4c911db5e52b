"""
Pipeline Orchestrator - Composes and runs pipeline stages.

Features:
- Dependency resolution (validates ``required_stages`` graph)
- Conditional execution (``should_run`` checks)
- Graceful degradation on stage failure
- Per-stage timing
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from .protocol import PipelineContext, PipelineStage, StageResult

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Compose and execute pipeline stages in phase order.

    Parameters
    ----------
    stages : list[PipelineStage]
        Stages to run.  Automatically sorted by ``phase_number``.
    config : dict
        Flat configuration dict (from ``config_loader.build_unified_config``).

    Example
    -------
    ::

        pipeline = PipelineOrchestrator(build_default_stages(config), config)
        ctx, results = pipeline.run("/path/to/app", ctx)
    """

    def __init__(
        self,
        stages: List[PipelineStage],
        config: Dict[str, Any],
    ):
        self.stages = sorted(stages, key=lambda s: s.phase_number)
        self.config = config
        self._validate_dependencies()

    def _validate_dependencies(self) -> None:
        """Verify that all ``required_stages`` references are satisfiable.

        Raises
        ------
        ValueError
            If a stage declares a dependency on a stage not in the pipeline.
        """
        stage_names = {s.name for s in self.stages}
        for stage in self.stages:
            for dep in stage.required_stages:
                if dep not in stage_names:
                    raise ValueError(
                        f"Stage '{stage.name}' requires '{dep}' which is "
                        f"not registered in the pipeline.  Available: "
                        f"{sorted(stage_names)}"
                    )

    def _build_context(self, target_path: str) -> PipelineContext:
        return PipelineContext(config=self.config, target_path=target_path)

    def run(
        self,
        target_path: str,
        ctx: Optional[PipelineContext] = None,
    ) -> Tuple[PipelineContext, List[StageResult]]:
        """Execute the full pipeline.

        Parameters
        ----------
        target_path : str
            Root of the application being scanned.
        ctx : PipelineContext | None
            Optional pre-built context carrying the collaborators.  If
            ``None``, a bare one is created via ``_build_context``.

        Returns
        -------
        tuple[PipelineContext, list[StageResult]]
            The final context and one result per attempted stage.
        """
        if ctx is None:
            ctx = self._build_context(target_path)

        results: List[StageResult] = []
        completed_stages: set[str] = set()
        pipeline_start = time.time()

        logger.info(
            "Pipeline starting with %d stages targeting %s",
            len(self.stages),
            target_path,
        )

        for stage in self.stages:
            # -- Check dependencies --
            unmet = [dep for dep in stage.required_stages if dep not in completed_stages]
            if unmet:
                results.append(StageResult(
                    success=False,
                    stage_name=stage.name,
                    error=f"Unmet dependencies: {unmet}",
                    skipped=True,
                    skip_reason=f"Unmet dependencies: {unmet}",
                ))
                logger.warning("Skipping %s: unmet deps %s", stage.display_name, unmet)
                continue

            # -- Check preconditions --
            try:
                if not stage.should_run(ctx):
                    results.append(StageResult(
                        success=True,
                        stage_name=stage.name,
                        skipped=True,
                        skip_reason="Preconditions not met (should_run=False)",
                        findings_before=len(ctx.findings),
                        findings_after=len(ctx.findings),
                    ))
                    completed_stages.add(stage.name)
                    logger.info("Skipping %s: should_run returned False", stage.display_name)
                    continue
            except Exception as exc:
                results.append(StageResult(
                    success=False,
                    stage_name=stage.name,
                    error=f"should_run check failed: {exc}",
                    skipped=True,
                    skip_reason=f"should_run raised: {exc}",
                ))
                completed_stages.add(stage.name)
                logger.warning("Skipping %s: should_run raised %s", stage.display_name, exc)
                continue

            # -- Execute --
            findings_before = len(ctx.findings)
            stage_start = time.time()
            logger.info("Starting %s ...", stage.display_name)

            try:
                result = stage.execute(ctx)
            except Exception as exc:
                result = StageResult(
                    success=False,
                    stage_name=stage.name,
                    error=f"{type(exc).__name__}: {exc}",
                )
                logger.error(
                    "Stage %s failed with %s (continuing)",
                    stage.display_name,
                    result.error,
                    exc_info=True,
                )

            result.duration_seconds = time.time() - stage_start
            result.findings_before = findings_before
            result.findings_after = len(ctx.findings)
            ctx.phase_timings[stage.name] = result.duration_seconds
            results.append(result)
            completed_stages.add(stage.name)

            if result.success:
                logger.info(
                    "Completed %s in %.2fs (findings: %d -> %d)",
                    stage.display_name,
                    result.duration_seconds,
                    result.findings_before,
                    result.findings_after,
                )
                continue

            logger.warning("Stage %s reported failure: %s", stage.display_name, result.error)
            ctx.errors.append(f"{stage.display_name}: {result.error}")
            try:
                stage.rollback(ctx)
            except Exception as rb_exc:
                logger.warning("Rollback for %s failed: %s", stage.display_name, rb_exc)

        # -- Finalize --
        pipeline_duration = time.time() - pipeline_start
        ctx.phase_timings["_total"] = pipeline_duration

        logger.info(
            "Pipeline completed in %.2fs: %d stages run, %d findings, %d errors",
            pipeline_duration,
            len([r for r in results if not r.skipped]),
            len(ctx.findings),
            len(ctx.errors),
        )

        return ctx, results
