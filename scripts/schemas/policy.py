"""
Policy Schemas - the in-memory, already-validated security policy.

The policy document is authored by users and validated by a separate loader
before it reaches the scanner.  These models only give it a typed shape and
the small amount of behaviour the checks need (selector matching,
canonicalisation of auth requirements, model lookup, baseline expiry).

Hierarchy:
    RouteSelector       - declarative AND/OR matcher over route identity
    AuthRequirement     - what a matched route must satisfy
    AuthRule            - id + selector + requirement
    AuthSpec            - guards, roles, abilities, rules
    ModelSpec / DataSpec
    BaselineEntry / BaselineSpec
    ProjectMeta / PolicyDefaults
    GuardPolicy         - the whole document
"""

from __future__ import annotations

import json
from datetime import date
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MASS_ASSIGNMENT_MODES = {"explicit_allowlist", "guarded"}
AUTH_MODES = {"deny_by_default", "allow_by_default"}


# ---------------------------------------------------------------------------
# Route selector
# ---------------------------------------------------------------------------


class RouteSelector(BaseModel):
    """Matcher over ``(route name, uri, method)``.

    When ``any`` is set the selector is a pure OR over its children and the
    sibling criteria are ignored.  Otherwise every present criterion must
    hold.  A selector with no criteria and no ``any`` never matches.
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    prefix: Optional[str] = None
    uri: Optional[str] = None
    methods: Optional[List[str]] = None
    any: Optional[List["RouteSelector"]] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_routes(cls, data: Any) -> Any:
        # Policy documents write selectors as ``match: {routes: {...}}``.
        if isinstance(data, dict) and "routes" in data and isinstance(data["routes"], dict):
            return data["routes"]
        return data

    @field_validator("methods")
    @classmethod
    def uppercase_methods(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return [m.strip().upper() for m in v]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteSelector":
        return cls.model_validate(data)

    def is_empty(self) -> bool:
        return (
            self.name is None
            and self.prefix is None
            and self.uri is None
            and self.methods is None
            and self.any is None
        )

    def matches(self, route_name: Optional[str], uri: str, method: str) -> bool:
        if self.any is not None:
            for child in self.any:
                if child.matches(route_name, uri, method):
                    return True
            return False

        if self.is_empty():
            return False

        if self.name is not None and not fnmatchcase(route_name or "", self.name):
            return False

        if self.prefix is not None and not uri.startswith(self.prefix):
            return False

        if self.uri is not None and uri != self.uri:
            return False

        if self.methods is not None and method.upper() not in self.methods:
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        if self.any is not None:
            return {"any": [child.to_dict() for child in self.any]}
        return self.model_dump(exclude_none=True, exclude={"any"})


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthRequirement(BaseModel):
    """Requirement attached to an auth rule.

    Serialised keys follow the policy document (``rolesAny``,
    ``abilitiesAny``); Python attributes are snake_case.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    authenticated: bool = True
    public: bool = False
    reason: Optional[str] = None
    guard: Optional[str] = None
    roles_any: Optional[List[str]] = Field(default=None, alias="rolesAny")
    abilities_any: Optional[List[str]] = Field(default=None, alias="abilitiesAny")

    def to_canonical_dict(self) -> Dict[str, Any]:
        """Structural form used to collapse identical requirements.

        ``authenticated`` and ``public`` are always present, optional fields
        only when set, list values sorted, keys sorted.
        """
        result: Dict[str, Any] = {
            "authenticated": self.authenticated,
            "public": self.public,
        }
        if self.guard is not None:
            result["guard"] = self.guard
        if self.reason is not None:
            result["reason"] = self.reason
        if self.roles_any is not None:
            result["rolesAny"] = sorted(self.roles_any)
        if self.abilities_any is not None:
            result["abilitiesAny"] = sorted(self.abilities_any)
        return dict(sorted(result.items()))

    def canonical_key(self) -> str:
        return json.dumps(self.to_canonical_dict(), sort_keys=True, separators=(",", ":"))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"authenticated": self.authenticated}
        if self.public:
            result["public"] = True
        if self.reason is not None:
            result["reason"] = self.reason
        if self.guard is not None:
            result["guard"] = self.guard
        if self.roles_any is not None:
            result["rolesAny"] = list(self.roles_any)
        if self.abilities_any is not None:
            result["abilitiesAny"] = list(self.abilities_any)
        return result


class AuthRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    match: RouteSelector
    require: AuthRequirement = Field(default_factory=AuthRequirement)


class AuthSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    guards: Dict[str, Any] = Field(default_factory=dict)
    roles: List[str] = Field(default_factory=list)
    abilities: List[str] = Field(default_factory=list)
    rules: List[AuthRule] = Field(default_factory=list)

    @field_validator("rules")
    @classmethod
    def sort_rules(cls, v: List[AuthRule]) -> List[AuthRule]:
        return sorted(v, key=lambda r: r.id)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class ModelSpec(BaseModel):
    """Mass-assignment expectations for one model class."""

    model_config = ConfigDict(frozen=True)

    fqcn: str
    mode: str = "explicit_allowlist"
    allow: List[str] = Field(default_factory=list)
    forbid: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def unwrap_mass_assignment(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("massAssignment"), dict):
            ma = data["massAssignment"]
            data = {k: v for k, v in data.items() if k != "massAssignment"}
            data.setdefault("mode", ma.get("mode", "explicit_allowlist"))
            data.setdefault("allow", ma.get("allow", []))
            data.setdefault("forbid", ma.get("forbid", []))
        return data

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        v = v.strip()
        if v not in MASS_ASSIGNMENT_MODES:
            raise ValueError(f"mode must be one of {sorted(MASS_ASSIGNMENT_MODES)}, got '{v}'")
        return v

    @property
    def short_name(self) -> str:
        return self.fqcn.rsplit("\\", 1)[-1]


class DataSpec(BaseModel):
    """Model specs, keyed and ordered by FQCN.

    Accepts either a list of specs or the document form
    ``{"App\\Models\\User": {"massAssignment": {...}}}``.
    """

    model_config = ConfigDict(frozen=True)

    models: List[ModelSpec] = Field(default_factory=list)

    @field_validator("models", mode="before")
    @classmethod
    def models_from_mapping(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return [{"fqcn": fqcn, **(spec or {})} for fqcn, spec in v.items()]
        return v

    @field_validator("models")
    @classmethod
    def sort_models(cls, v: List[ModelSpec]) -> List[ModelSpec]:
        return sorted(v, key=lambda m: m.fqcn)

    def get(self, fqcn: str) -> Optional[ModelSpec]:
        for spec in self.models:
            if spec.fqcn == fqcn:
                return spec
        return None


# ---------------------------------------------------------------------------
# Baseline entries
# ---------------------------------------------------------------------------


class BaselineEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    fingerprint: str
    reason: str = ""
    expires: Optional[date] = None

    def is_expired(self, today: Optional[date] = None) -> bool:
        if self.expires is None:
            return False
        return self.expires < (today or date.today())


class BaselineSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    findings: List[BaselineEntry] = Field(default_factory=list)

    @field_validator("findings")
    @classmethod
    def sort_findings(cls, v: List[BaselineEntry]) -> List[BaselineEntry]:
        return sorted(v, key=lambda e: e.id)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class ProjectMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    framework: str = "laravel"
    php: str = ""
    laravel: str = ""


class PolicyDefaults(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    auth_mode: str = Field(default="deny_by_default", alias="authMode")
    baseline_require_expiry: bool = Field(default=False, alias="baselineRequireExpiry")
    baseline_expired_is_error: bool = Field(default=True, alias="baselineExpiredIsError")

    @field_validator("auth_mode")
    @classmethod
    def validate_auth_mode(cls, v: str) -> str:
        v = v.strip()
        if v not in AUTH_MODES:
            raise ValueError(f"authMode must be one of {sorted(AUTH_MODES)}, got '{v}'")
        return v


class GuardPolicy(BaseModel):
    """Top-level declarative policy."""

    model_config = ConfigDict(frozen=True)

    version: str = "0.1"
    project: ProjectMeta = Field(default_factory=ProjectMeta)
    defaults: PolicyDefaults = Field(default_factory=PolicyDefaults)
    auth: AuthSpec = Field(default_factory=AuthSpec)
    data: DataSpec = Field(default_factory=DataSpec)
    baseline: BaselineSpec = Field(default_factory=BaselineSpec)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardPolicy":
        return cls.model_validate(data)

    def find_model(self, fqcn: str) -> Optional[ModelSpec]:
        return self.data.get(fqcn)

    def baseline_fingerprints(self, today: Optional[date] = None) -> Set[str]:
        """Fingerprints of policy baseline entries that have not expired."""
        return {
            entry.fingerprint
            for entry in self.baseline.findings
            if not entry.is_expired(today)
        }

    def expired_baseline_entries(self, today: Optional[date] = None) -> List[BaselineEntry]:
        return [entry for entry in self.baseline.findings if entry.is_expired(today)]
