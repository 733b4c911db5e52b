"""
Finding Schema - the immutable result record produced by every check.

Hierarchy:
    FindingContext          - open base payload (extra keys allowed)
    RouteContext            - route-authorization findings
    IntentAuthContext       - declarative auth findings
    PatternContext          - line-pattern findings (dangerous query input)
    MassAssignmentContext   - mass-assignment findings
    ModelIntentContext      - declarative model findings
    Finding                 - the record itself

Findings are frozen.  Every "mutation" (suppression, enrichment, AI
suggestion) returns a new instance.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fingerprint import compute_fingerprint

SUPPRESSION_REASONS = {"baseline", "inline-ignore"}


class Severity(str, Enum):
    """Finding severity levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Context payloads
# ---------------------------------------------------------------------------


class FindingContext(BaseModel):
    """Base context payload.

    The ``extra = "allow"`` policy lets enrichment stages attach keys
    (``model_fqcn``, ``policy``, ``intent_mode`` ...) that the producing
    check knows nothing about.
    """

    model_config = ConfigDict(extra="allow", frozen=True, protected_namespaces=())

    def as_dict(self) -> Dict[str, Any]:
        """Declared fields first, extras after, ``None`` values dropped."""
        return self.model_dump(exclude_none=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.as_dict().get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.as_dict()

    def merged(self, extra: Mapping[str, Any]) -> "FindingContext":
        """Return a payload of the same kind with *extra* laid over it."""
        return type(self).model_validate({**self.as_dict(), **dict(extra)})


class RouteContext(FindingContext):
    uri: str = ""
    methods: List[str] = Field(default_factory=list)
    action: str = ""
    middleware: List[str] = Field(default_factory=list)
    has_form_request: Optional[bool] = None


class IntentAuthContext(RouteContext):
    matched_rule_ids: List[str] = Field(default_factory=list)
    route_name: str = ""
    require: Dict[str, Any] = Field(default_factory=dict)


class PatternContext(FindingContext):
    pattern: str = ""
    snippet: str = ""


class MassAssignmentContext(PatternContext):
    model: Optional[str] = None
    model_file: Optional[str] = None


class ModelIntentContext(FindingContext):
    model_fqcn: str = ""
    pattern: str = ""
    intent_mode: str = ""
    forbidden_attribute: Optional[str] = None


CONTEXT_TYPES: Dict[str, Type[FindingContext]] = {
    "route-authorization": RouteContext,
    "intent-auth": IntentAuthContext,
    "dangerous-query-input": PatternContext,
    "mass-assignment": MassAssignmentContext,
    "intent-mass-assignment": ModelIntentContext,
}


def coerce_context(check: str, value: Any) -> FindingContext:
    """Turn a plain mapping into the payload registered for *check*."""
    if isinstance(value, FindingContext):
        return value
    payload_type = CONTEXT_TYPES.get(check, FindingContext)
    return payload_type.model_validate(dict(value or {}))


# ---------------------------------------------------------------------------
# Finding
# ---------------------------------------------------------------------------


class Finding(BaseModel):
    """One reported issue.

    Attributes
    ----------
    check : str
        Name of the producing check, e.g. ``route-authorization``.
    severity : Severity
        ``high``, ``medium`` or ``low``.
    file, line : str | None, int | None
        Location, when the finding has one.
    context : FindingContext
        Check-specific payload.
    suppressed_reason : str | None
        ``None``, ``"baseline"`` or ``"inline-ignore"``.
    """

    model_config = ConfigDict(frozen=True)

    check: str
    severity: Severity
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    context: FindingContext = Field(default_factory=FindingContext)
    fix_hint: str = ""
    ai_suggestion: Optional[str] = None
    suppressed_reason: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_context(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["context"] = coerce_context(data.get("check", ""), data.get("context"))
        return data

    @field_validator("suppressed_reason")
    @classmethod
    def validate_suppressed_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SUPPRESSION_REASONS:
            raise ValueError(
                f"suppressed_reason must be one of {sorted(SUPPRESSION_REASONS)}, got '{v}'"
            )
        return v

    # -- Factories --

    @classmethod
    def high(cls, check: str, message: str, **kwargs: Any) -> "Finding":
        return cls(check=check, severity=Severity.HIGH, message=message, **kwargs)

    @classmethod
    def medium(cls, check: str, message: str, **kwargs: Any) -> "Finding":
        return cls(check=check, severity=Severity.MEDIUM, message=message, **kwargs)

    @classmethod
    def low(cls, check: str, message: str, **kwargs: Any) -> "Finding":
        return cls(check=check, severity=Severity.LOW, message=message, **kwargs)

    # -- Copy-on-write helpers --

    def with_suppression(self, reason: str) -> "Finding":
        if reason not in SUPPRESSION_REASONS:
            raise ValueError(f"Unknown suppression reason: {reason}")
        return self.model_copy(update={"suppressed_reason": reason})

    def with_ai_suggestion(self, suggestion: str) -> "Finding":
        return self.model_copy(update={"ai_suggestion": suggestion})

    def with_merged_context(self, extra: Mapping[str, Any]) -> "Finding":
        return self.model_copy(update={"context": self.context.merged(extra)})

    @property
    def is_suppressed(self) -> bool:
        return self.suppressed_reason is not None

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "check": self.check,
            "severity": self.severity.value,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "context": self.context.as_dict(),
            "fix_hint": self.fix_hint,
            "fingerprint": self.fingerprint,
        }
        if self.ai_suggestion is not None:
            data["ai_suggestion"] = self.ai_suggestion
        if self.suppressed_reason is not None:
            data["suppressed_reason"] = self.suppressed_reason
        return data
