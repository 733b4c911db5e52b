"""
Declarative mass-assignment check.

For each model declared in the policy, read the model source and verify it
against the declared mode:

- ``explicit_allowlist``: a ``$fillable`` list must exist and must not
  contain any attribute from the model's forbid list.
- ``guarded``: ``$guarded`` must not be an empty array.

A model whose file cannot be found is a diagnostics warning, not a finding.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from checks.base import Check
from checks.patterns import FILLABLE_BLOCK_RE, FILLABLE_PRESENT_RE, GUARDED_EMPTY_RE, QUOTED_STRING_RE
from diagnostics import ScanDiagnostics
from schemas.finding import Finding
from schemas.policy import GuardPolicy, ModelSpec
from source_provider import PathLike, SourceProvider

logger = logging.getLogger(__name__)


def model_relative_path(fqcn: str, suffix: str = ".php") -> str:
    """``App\\Models\\Admin\\User`` -> ``Admin/User.php``.

    Segments after ``Models`` are kept; without a ``Models`` segment only the
    class name is used.
    """
    parts = fqcn.lstrip("\\").split("\\")
    if "Models" in parts:
        relative = parts[parts.index("Models") + 1:]
    else:
        relative = parts[-1:]
    return "/".join(relative) + suffix


def extract_fillable(contents: str) -> List[str]:
    match = FILLABLE_BLOCK_RE.search(contents)
    if not match:
        return []
    return QUOTED_STRING_RE.findall(match.group(1))


class IntentMassAssignmentCheck(Check):
    """Check model sources against ``policy.data.models``."""

    def __init__(
        self,
        source_provider: SourceProvider,
        policy: GuardPolicy,
        diagnostics: ScanDiagnostics,
        models_path: PathLike = "app/Models",
    ) -> None:
        self.source_provider = source_provider
        self.policy = policy
        self.diagnostics = diagnostics
        self.models_path = models_path

    @property
    def name(self) -> str:
        return "intent-mass-assignment"

    def run(self) -> List[Finding]:
        findings: List[Finding] = []
        for spec in self.policy.data.models:
            findings.extend(self.check_model(spec))
        return findings

    def resolve_model_file(self, fqcn: str) -> Optional[Path]:
        path = self.source_provider.resolve(self.models_path) / model_relative_path(
            fqcn, self.source_provider.suffix
        )
        return path if path.is_file() else None

    def check_model(self, spec: ModelSpec) -> List[Finding]:
        path = self.resolve_model_file(spec.fqcn)
        if path is None:
            self.diagnostics.add_warning(
                f"Model file not found for '{spec.fqcn}'. Cannot verify mass-assignment compliance."
            )
            return []

        contents = self.source_provider.read(path)
        if contents is None:
            self.diagnostics.add_warning(f"Could not read model file for '{spec.fqcn}': {path}")
            return []

        if spec.mode == "explicit_allowlist":
            return self._check_explicit_allowlist(spec, str(path), contents)
        if spec.mode == "guarded":
            return self._check_guarded(spec, str(path), contents)
        return []

    def _check_explicit_allowlist(self, spec: ModelSpec, file: str, contents: str) -> List[Finding]:
        fqcn = spec.fqcn
        if not FILLABLE_PRESENT_RE.search(contents):
            return [
                Finding.high(
                    check=self.name,
                    message=(
                        f"Model '{fqcn}' is declared as explicit_allowlist in intent spec "
                        "but has no $fillable property."
                    ),
                    file=file,
                    context={
                        "model_fqcn": fqcn,
                        "pattern": "missing_fillable",
                        "intent_mode": spec.mode,
                    },
                    fix_hint="Add a $fillable property to the model listing allowed mass-assignable attributes.",
                )
            ]

        fillable = set(extract_fillable(contents))
        findings: List[Finding] = []
        for forbidden in spec.forbid:
            if forbidden not in fillable:
                continue
            findings.append(
                Finding.high(
                    check=self.name,
                    message=f"Model '{fqcn}' has forbidden attribute '{forbidden}' in $fillable (per intent spec).",
                    file=file,
                    context={
                        "model_fqcn": fqcn,
                        "pattern": f"forbidden_in_fillable:{forbidden}",
                        "intent_mode": spec.mode,
                        "forbidden_attribute": forbidden,
                    },
                    fix_hint=f"Remove '{forbidden}' from $fillable or update the intent spec.",
                )
            )
        return findings

    def _check_guarded(self, spec: ModelSpec, file: str, contents: str) -> List[Finding]:
        if not GUARDED_EMPTY_RE.search(contents):
            return []
        return [
            Finding.high(
                check=self.name,
                message=(
                    f"Model '{spec.fqcn}' is declared as guarded in intent spec but has "
                    "$guarded = [] (all attributes mass-assignable)."
                ),
                file=file,
                context={
                    "model_fqcn": spec.fqcn,
                    "pattern": "guarded_empty",
                    "intent_mode": spec.mode,
                },
                fix_hint=(
                    "Populate the $guarded array with attributes that should not be "
                    "mass-assignable, or switch to $fillable."
                ),
            )
        ]
