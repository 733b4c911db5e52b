"""
Model/controller source provider.

Maps fully-qualified class names to files by a PSR-4 style convention
(namespace prefix -> directory), enumerates source files under a root, and
reads them.  Everything is plain text: no parsing beyond the brace matching
needed to cut a method body out of a class file.

Usage::

    provider = SourceProvider("/path/to/app", {"App\\\\": "app/"})
    source = provider.read_class("App\\\\Http\\\\Controllers\\\\UserController")
    method = locate_method(source, "show")
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_NAMESPACE_ROOTS: Dict[str, str] = {"App\\": "app/"}
DEFAULT_SUFFIX = ".php"


# ============================================================================
# Method location
# ============================================================================


@dataclass
class MethodSource:
    """Text of one method: its parameter list and its full definition."""

    name: str
    signature: str
    body: str


def _match_delimiter(text: str, start: int, opening: str, closing: str) -> Optional[int]:
    """Return the index of the delimiter closing the one at *start*."""
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return index
    return None


def locate_method(source: Optional[str], method: str) -> Optional[MethodSource]:
    """Find ``function <method>(...) { ... }`` in *source*.

    Method names are matched case-insensitively.  Abstract or interface
    declarations yield an empty body.  Returns ``None`` when the method is
    not declared in this file.
    """
    if not source:
        return None

    pattern = re.compile(r"function\s+&?" + re.escape(method) + r"\s*\(", re.IGNORECASE)
    match = pattern.search(source)
    if not match:
        return None

    params_end = _match_delimiter(source, match.end() - 1, "(", ")")
    if params_end is None:
        return None
    signature = source[match.end():params_end]

    brace = source.find("{", params_end)
    semicolon = source.find(";", params_end)
    if brace == -1 or (semicolon != -1 and semicolon < brace):
        return MethodSource(name=method, signature=signature, body="")

    body_end = _match_delimiter(source, brace, "{", "}")
    if body_end is None:
        body_end = len(source) - 1

    return MethodSource(
        name=method,
        signature=signature,
        body=source[match.start():body_end + 1],
    )


_USE_RE = re.compile(r"^\s*use\s+\\?([\w\\]+?)(?:\s+as\s+(\w+))?\s*;", re.MULTILINE)
_NAMESPACE_RE = re.compile(r"^\s*namespace\s+([\w\\]+)\s*;", re.MULTILINE)


def resolve_class_reference(source: str, reference: str) -> str:
    """Resolve a class name as written in *source* to a FQCN.

    Honors ``use`` imports (with aliases) and the file's namespace.
    """
    if reference.startswith("\\"):
        return reference.lstrip("\\")

    head, _, tail = reference.partition("\\")
    for match in _USE_RE.finditer(source):
        fqcn, alias = match.group(1), match.group(2)
        short = alias or fqcn.rsplit("\\", 1)[-1]
        if short == head:
            return fqcn + ("\\" + tail if tail else "")

    namespace = _NAMESPACE_RE.search(source)
    if namespace:
        return f"{namespace.group(1)}\\{reference}"
    return reference


# ============================================================================
# Provider
# ============================================================================


class SourceProvider:
    """Read class sources under a project root.

    Parameters
    ----------
    project_root : str | Path
        Root of the scanned application.
    namespace_roots : dict[str, str] | None
        Namespace prefix to directory (relative to ``project_root``).
    suffix : str
        Source file extension.
    """

    def __init__(
        self,
        project_root: PathLike,
        namespace_roots: Optional[Dict[str, str]] = None,
        suffix: str = DEFAULT_SUFFIX,
    ) -> None:
        self.project_root = Path(project_root)
        self.namespace_roots = dict(namespace_roots or DEFAULT_NAMESPACE_ROOTS)
        self.suffix = suffix

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve(self, path: PathLike) -> Path:
        """Absolute path for *path*, relative paths anchored at the project root."""
        candidate = Path(str(path).replace("\\", "/"))
        if candidate.is_absolute():
            return candidate
        return self.project_root / candidate

    def relative(self, path: PathLike) -> str:
        """Project-relative POSIX path, or the normalised input when outside the root."""
        resolved = self.resolve(path)
        try:
            return resolved.relative_to(self.project_root).as_posix()
        except ValueError:
            return str(path).replace("\\", "/")

    def path_for_class(self, fqcn: str) -> Optional[Path]:
        fqcn = fqcn.lstrip("\\")
        for prefix in sorted(self.namespace_roots, key=len, reverse=True):
            if fqcn.startswith(prefix):
                rest = fqcn[len(prefix):].replace("\\", "/")
                return self.project_root / self.namespace_roots[prefix] / (rest + self.suffix)
        return None

    def class_exists(self, fqcn: str) -> bool:
        path = self.path_for_class(fqcn)
        return path is not None and path.is_file()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, path: PathLike) -> Optional[str]:
        resolved = self.resolve(path)
        try:
            return resolved.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Could not read %s: %s", resolved, exc)
            return None

    def read_class(self, fqcn: str) -> Optional[str]:
        path = self.path_for_class(fqcn)
        if path is None:
            return None
        return self.read(path)

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def iter_files(self, root: PathLike) -> Iterator[Path]:
        """Yield every source file under *root*, sorted for stable output."""
        directory = self.resolve(root)
        if not directory.is_dir():
            return
        for path in sorted(directory.rglob("*" + self.suffix)):
            if path.is_file():
                yield path

    def select_files(self, only_files: Iterable[PathLike], root: PathLike) -> List[Path]:
        """Restrict an explicit file list to readable sources under *root*."""
        root_prefix = self.resolve(root).as_posix().rstrip("/") + "/"
        selected: List[Path] = []
        for entry in only_files:
            resolved = self.resolve(entry)
            normalized = resolved.as_posix()
            if (
                normalized.endswith(self.suffix)
                and normalized.startswith(root_prefix)
                and resolved.is_file()
                and os.access(resolved, os.R_OK)
            ):
                selected.append(resolved)
        return selected

    def files_to_scan(self, root: PathLike, only_files: Optional[Iterable[PathLike]] = None) -> List[Path]:
        if only_files is not None:
            return self.select_files(only_files, root)
        return list(self.iter_files(root))
