"""
Scan-scoped diagnostics collector.

Resolution problems (missing model files, unresolvable actions) and isolated
check failures are not findings.  They are collected here and handed back to
the caller next to the finding list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class ScanDiagnostics:
    """Warnings and errors gathered during one scan invocation.

    Attributes
    ----------
    warnings : list[str]
        Non-fatal resolution notes, deduplicated, in first-seen order.
    errors : list[str]
        Per-check or per-stage failures that were isolated.
    """

    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        if message in self.warnings:
            return
        logger.warning("%s", message)
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
