"""
Mass assignment check.

Two passes over raw source text:

1. Collect "unsafe" models: classes extending ``Model``/``Authenticatable``/
   ``Pivot`` whose ``$guarded`` is empty or that define no ``$fillable``.
2. Scan controllers for ``create``/``update``/``fill`` calls fed by bulk
   request input.  Raw input (``all()``, ``input()``) is high severity;
   ``validated()`` input is medium because the target model is still
   unprotected.

When the model class is not on the flagged line, the previous lines are
searched for one of the unsafe model names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from checks.base import Check
from checks.patterns import (
    CLASS_NAME_RE,
    EXTENDS_MODEL_RE,
    FILLABLE_PRESENT_RE,
    GUARDED_EMPTY_RE,
    MASS_ASSIGNMENT_HIGH_PATTERNS,
    MASS_ASSIGNMENT_MEDIUM_PATTERNS,
    MODEL_BACKSCAN_LINES,
    MODEL_CONTEXT_TEMPLATE,
    compile_model_table,
)
from schemas.finding import Finding, Severity
from source_provider import PathLike, SourceProvider

logger = logging.getLogger(__name__)

HIGH_FIX_HINT = (
    "Use $request->only([...]) or $request->validated() instead of $request->all(). "
    "Define $fillable on the model."
)
MEDIUM_FIX_HINT = (
    "validated() is a good practice, but also define $fillable on the model for defense in depth."
)


@dataclass
class UnsafeModel:
    """A model class that accepts arbitrary attributes."""

    name: str
    file: str
    reason: str


class MassAssignmentCheck(Check):
    """Detect bulk request input flowing into unprotected models.

    Parameters
    ----------
    source_provider : SourceProvider
        Reads model and controller files.
    models_path, controllers_path : str
        Roots, relative to the project root or absolute.
    only_files : iterable of path | None
        Restrict the controller pass to these files.  The model pass always
        covers every model.
    """

    def __init__(
        self,
        source_provider: SourceProvider,
        models_path: PathLike = "app/Models",
        controllers_path: PathLike = "app/Http/Controllers",
        only_files: Optional[Iterable[PathLike]] = None,
    ) -> None:
        self.source_provider = source_provider
        self.models_path = models_path
        self.controllers_path = controllers_path
        self.only_files = list(only_files) if only_files is not None else None

    @property
    def name(self) -> str:
        return "mass-assignment"

    def run(self) -> List[Finding]:
        unsafe_models = self.find_unsafe_models()
        if not unsafe_models:
            return []
        return self._scan_controllers(unsafe_models)

    # ------------------------------------------------------------------
    # Pass 1: models
    # ------------------------------------------------------------------

    def find_unsafe_models(self) -> Dict[str, UnsafeModel]:
        unsafe: Dict[str, UnsafeModel] = {}

        for path in self.source_provider.iter_files(self.models_path):
            contents = self.source_provider.read(path)
            if contents is None:
                continue

            class_match = CLASS_NAME_RE.search(contents)
            if not class_match or not EXTENDS_MODEL_RE.search(contents):
                continue

            class_name = class_match.group(1)
            if GUARDED_EMPTY_RE.search(contents):
                reason = "$guarded is set to an empty array, so all attributes are mass assignable"
            elif not FILLABLE_PRESENT_RE.search(contents):
                reason = "No $fillable property defined"
            else:
                continue

            unsafe[class_name] = UnsafeModel(name=class_name, file=str(path), reason=reason)

        if unsafe:
            logger.debug("Unsafe models: %s", ", ".join(sorted(unsafe)))
        return unsafe

    # ------------------------------------------------------------------
    # Pass 2: controllers
    # ------------------------------------------------------------------

    def _scan_controllers(self, unsafe_models: Dict[str, UnsafeModel]) -> List[Finding]:
        if not self.source_provider.resolve(self.controllers_path).is_dir():
            return []

        model_names = list(unsafe_models)
        high = compile_model_table(MASS_ASSIGNMENT_HIGH_PATTERNS, model_names)
        medium = compile_model_table(MASS_ASSIGNMENT_MEDIUM_PATTERNS, model_names)
        context_re = compile_model_table((("context", MODEL_CONTEXT_TEMPLATE),), model_names)[0][1]

        findings: List[Finding] = []
        files = self.source_provider.files_to_scan(self.controllers_path, self.only_files)

        for path in files:
            contents = self.source_provider.read(path)
            if contents is None:
                continue

            lines = contents.split("\n")
            for index, line in enumerate(lines):
                for severity, table in ((Severity.HIGH, high), (Severity.MEDIUM, medium)):
                    findings.extend(
                        self._match_line(path, lines, index, line, severity, table, unsafe_models, context_re)
                    )

        return findings

    def _match_line(
        self,
        path: PathLike,
        lines: Sequence[str],
        index: int,
        line: str,
        severity: Severity,
        table: List[Tuple[str, Pattern[str]]],
        unsafe_models: Dict[str, UnsafeModel],
        context_re: Pattern[str],
    ) -> List[Finding]:
        results: List[Finding] = []

        for label, pattern in table:
            match = pattern.search(line)
            if not match:
                continue

            model_name = match.group(1) if pattern.groups else None
            if model_name is None:
                model_name = self._infer_model(lines, index, context_re)

            unsafe = unsafe_models.get(model_name) if model_name else None
            model_info = f" Model {model_name}: {unsafe.reason}." if unsafe else ""

            if severity is Severity.HIGH:
                message = f"Mass assignment risk: {label}.{model_info}"
                fix_hint = HIGH_FIX_HINT
            else:
                message = (
                    f"Mass assignment with validated(): {label}.{model_info} "
                    "Using validated() is safer, but the model itself lacks protection."
                )
                fix_hint = MEDIUM_FIX_HINT

            results.append(
                Finding(
                    check=self.name,
                    severity=severity,
                    message=message,
                    file=str(path),
                    line=index + 1,
                    context={
                        "pattern": label,
                        "snippet": line.strip(),
                        "model": model_name,
                        "model_file": unsafe.file if unsafe else None,
                    },
                    fix_hint=fix_hint,
                )
            )

        return results

    @staticmethod
    def _infer_model(lines: Sequence[str], index: int, context_re: Pattern[str]) -> Optional[str]:
        """Search the flagged line and up to ten lines above it for a model name."""
        for i in range(index, max(0, index - MODEL_BACKSCAN_LINES) - 1, -1):
            match = context_re.search(lines[i])
            if match:
                return match.group(1)
        return None
