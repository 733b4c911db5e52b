"""
Pipeline Stage Interface for the route guard.

Key components:
- ``PipelineStage`` -- Protocol every stage implements
- ``PipelineContext`` -- Shared mutable state flowing through stages
- ``StageResult`` -- Outcome returned by each stage
- ``PipelineOrchestrator`` -- Composes and runs stages in order
- ``BaseStage`` -- ABC for stages; reports suppression and check failures
- ``FindingTransformStage`` -- BaseStage that can roll back ``ctx.findings``
- ``build_default_stages`` -- Factory for the standard guard pipeline
"""

from .protocol import PipelineStage, PipelineContext, StageResult
from .orchestrator import PipelineOrchestrator
from .base_stage import BaseStage, FindingTransformStage
from .stages import (
    ChangeDetectionStage,
    GuardScanStage,
    RouteImpactFilterStage,
    ProjectMapEnrichmentStage,
    PolicyEnrichmentStage,
    InlineIgnoreStage,
    BaselineSuppressionStage,
    build_default_stages,
)

__all__ = [
    # Core protocol
    "PipelineStage",
    "PipelineContext",
    "StageResult",
    # Orchestrator
    "PipelineOrchestrator",
    # Base classes
    "BaseStage",
    "FindingTransformStage",
    # Concrete stages
    "ChangeDetectionStage",
    "GuardScanStage",
    "RouteImpactFilterStage",
    "ProjectMapEnrichmentStage",
    "PolicyEnrichmentStage",
    "InlineIgnoreStage",
    "BaselineSuppressionStage",
    # Factory
    "build_default_stages",
]
