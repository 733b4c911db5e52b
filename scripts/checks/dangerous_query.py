"""
Dangerous query input check.

Flags controller lines that pass request input (or sort/order variables, or
concatenated strings) straight into query-builder methods.  One finding per
matching ``(line, pattern)`` pair.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from checks.base import Check
from checks.patterns import DANGEROUS_QUERY_PATTERNS, compile_table
from schemas.finding import Finding
from source_provider import PathLike, SourceProvider

logger = logging.getLogger(__name__)

FIX_HINT = (
    "Never pass raw request input into query builder methods. "
    "Validate and whitelist allowed values before use."
)


class DangerousQueryInputCheck(Check):
    """Line-pattern scan of controller sources.

    Parameters
    ----------
    source_provider : SourceProvider
        Reads controller files.
    controllers_path : str
        Controller root, relative to the project root or absolute.
    only_files : iterable of path | None
        Restrict the scan to these files (incremental mode).  Files outside
        ``controllers_path`` or without the source suffix are ignored.
    """

    def __init__(
        self,
        source_provider: SourceProvider,
        controllers_path: PathLike = "app/Http/Controllers",
        only_files: Optional[Iterable[PathLike]] = None,
    ) -> None:
        self.source_provider = source_provider
        self.controllers_path = controllers_path
        self.only_files = list(only_files) if only_files is not None else None
        self._patterns = compile_table(DANGEROUS_QUERY_PATTERNS)

    @property
    def name(self) -> str:
        return "dangerous-query-input"

    def run(self) -> List[Finding]:
        findings: List[Finding] = []
        files = self.source_provider.files_to_scan(self.controllers_path, self.only_files)

        for path in files:
            contents = self.source_provider.read(path)
            if contents is None:
                continue

            for index, line in enumerate(contents.split("\n")):
                for label, pattern in self._patterns:
                    if not pattern.search(line):
                        continue
                    findings.append(
                        Finding.high(
                            check=self.name,
                            message=f"Dangerous query input detected: {label}.",
                            file=str(path),
                            line=index + 1,
                            context={"pattern": label, "snippet": line.strip()},
                            fix_hint=FIX_HINT,
                        )
                    )

        logger.debug("%s: %d finding(s) in %d file(s)", self.name, len(findings), len(files))
        return findings
