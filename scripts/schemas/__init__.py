"""
Pydantic schemas for the route guard pipeline

This package contains the typed records that flow through a scan: findings
and their per-check context payloads, route descriptors supplied by the host
framework, and the in-memory declarative policy.
"""

from .finding import (
    CONTEXT_TYPES,
    Finding,
    FindingContext,
    IntentAuthContext,
    MassAssignmentContext,
    ModelIntentContext,
    PatternContext,
    RouteContext,
    Severity,
    coerce_context,
)
from .routes import CLOSURE_ACTION, RouteDescriptor
from .policy import (
    AuthRequirement,
    AuthRule,
    AuthSpec,
    BaselineEntry,
    BaselineSpec,
    DataSpec,
    GuardPolicy,
    ModelSpec,
    PolicyDefaults,
    ProjectMeta,
    RouteSelector,
)

__all__ = [
    # Findings
    "Finding",
    "Severity",
    "FindingContext",
    "RouteContext",
    "IntentAuthContext",
    "PatternContext",
    "MassAssignmentContext",
    "ModelIntentContext",
    "CONTEXT_TYPES",
    "coerce_context",
    # Routes
    "RouteDescriptor",
    "CLOSURE_ACTION",
    # Policy
    "RouteSelector",
    "AuthRequirement",
    "AuthRule",
    "AuthSpec",
    "ModelSpec",
    "DataSpec",
    "BaselineEntry",
    "BaselineSpec",
    "ProjectMeta",
    "PolicyDefaults",
    "GuardPolicy",
]
