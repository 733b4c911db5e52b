"""
Base classes for guard pipeline stages.

``BaseStage`` wraps ``_execute`` with timing and failure isolation and
reports, for every stage, what happened to the findings it saw:

- ``suppressed``     -- findings newly marked suppressed by the stage
- ``failed_checks``  -- checks whose failure the scanner recorded during it

``FindingTransformStage`` additionally snapshots ``ctx.findings`` so a
stage that rewrites the list can be rolled back by the orchestrator.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .protocol import PipelineContext, StageResult

logger = logging.getLogger(__name__)


def count_suppressed(findings: List[Any]) -> int:
    return sum(1 for f in findings if getattr(f, "is_suppressed", False))


class BaseStage(ABC):
    """Abstract base class that satisfies the ``PipelineStage`` protocol.

    Subclasses define ``name``, ``phase_number`` and ``title`` (or a full
    ``display_name``) and implement ``_execute(ctx)``.
    """

    title: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def phase_number(self) -> float:
        ...

    @property
    def display_name(self) -> str:
        return f"Phase {self.phase_number:g}: {self.title or self.name}"

    @property
    def required_stages(self) -> List[str]:
        return []

    def should_run(self, ctx: PipelineContext) -> bool:
        return True

    @abstractmethod
    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        """Mutate ``ctx`` and return stage-specific metadata."""
        ...

    def execute(self, ctx: PipelineContext) -> StageResult:
        findings_before = len(ctx.findings)
        suppressed_before = count_suppressed(ctx.findings)
        failures_before = len(ctx.check_failures)
        start = time.time()

        try:
            metadata = dict(self._execute(ctx) or {})
        except Exception as exc:
            logger.error("%s failed: %s", self.display_name, exc, exc_info=True)
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=time.time() - start,
                findings_before=findings_before,
                findings_after=len(ctx.findings),
                error=f"{type(exc).__name__}: {exc}",
            )

        failed = [f.check for f in ctx.check_failures[failures_before:]]
        if failed:
            logger.warning("%s: %d check(s) failed: %s", self.display_name, len(failed), ", ".join(failed))
        metadata.setdefault("failed_checks", failed)
        metadata.setdefault("suppressed", count_suppressed(ctx.findings) - suppressed_before)

        return StageResult(
            success=True,
            stage_name=self.name,
            duration_seconds=time.time() - start,
            findings_before=findings_before,
            findings_after=len(ctx.findings),
            metadata=metadata,
        )

    def rollback(self, ctx: PipelineContext) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FindingTransformStage(BaseStage):
    """Stage that rewrites ``ctx.findings``; restores them if it fails."""

    _snapshot: Optional[List[Any]] = None

    def execute(self, ctx: PipelineContext) -> StageResult:
        self._snapshot = list(ctx.findings)
        return super().execute(ctx)

    def rollback(self, ctx: PipelineContext) -> None:
        if self._snapshot is not None:
            ctx.findings = list(self._snapshot)
            logger.info("%s rolled back to %d findings", self.display_name, len(ctx.findings))
