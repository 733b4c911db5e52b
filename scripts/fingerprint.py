"""
Deterministic finding identity.

A fingerprint is the SHA-1 hex digest of
``check|severity|normalized file|line|primary id``.  The primary id depends
on the check family so that route findings are keyed by route identity,
model findings by model identity and everything else by snippet text.

Path normalization is intentionally lossy: scans run from different
checkout locations (or from Windows and POSIX machines) must agree.

Note that the line number is part of the digest, so inserting lines above a
flagged statement changes its fingerprint.  Baselines depend on this exact
behaviour and it must not change silently.
"""

from __future__ import annotations

import hashlib
import os
import re
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

# Project-relative anchors, tried in order.  The first one found wins.
_PATH_ANCHORS = (
    re.compile(r"(app/.*)$"),
    re.compile(r"(tests/.*)$"),
    re.compile(r"(routes/.*)$"),
)


def sha1_hex(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def normalize_path(path: Optional[str]) -> str:
    """Reduce *path* to a stable project-relative form.

    Parameters
    ----------
    path : str | None
        Absolute or relative file path, either separator style.

    Returns
    -------
    str
        ``""`` for missing paths, the suffix starting at the first known
        anchor (``app/``, ``tests/``, ``routes/``), or the basename.
    """
    if not path:
        return ""

    normalized = path.replace("\\", "/")

    for anchor in _PATH_ANCHORS:
        match = anchor.search(normalized)
        if match:
            return match.group(1)

    return os.path.basename(normalized)


def _join_sorted(values: Optional[Iterable[Any]]) -> str:
    return ",".join(sorted(str(v) for v in (values or [])))


def _route_id(ctx: Mapping[str, Any]) -> str:
    return "route:{}:{}:{}".format(
        _join_sorted(ctx.get("methods")),
        ctx.get("uri", ""),
        ctx.get("action", ""),
    )


def _model_id(ctx: Mapping[str, Any]) -> str:
    return "model:{}:{}".format(ctx.get("model", ""), ctx.get("pattern", ""))


def _intent_auth_id(ctx: Mapping[str, Any]) -> str:
    return "intent-auth:{}:{}:{}:{}".format(
        _join_sorted(ctx.get("matched_rule_ids")),
        ctx.get("uri", ""),
        ctx.get("route_name", "") or "",
        _join_sorted(ctx.get("methods")),
    )


def _intent_model_id(ctx: Mapping[str, Any]) -> str:
    return "model:{}:{}".format(ctx.get("model_fqcn", ""), ctx.get("pattern", ""))


def _snippet_id(ctx: Mapping[str, Any]) -> str:
    snippet = str(ctx.get("snippet", "") or "")
    return "snippet:" + sha1_hex(snippet.strip())


PRIMARY_ID_BUILDERS: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "route-authorization": _route_id,
    "mass-assignment": _model_id,
    "intent-auth": _intent_auth_id,
    "intent-mass-assignment": _intent_model_id,
}


def primary_identifier(check: str, context: Mapping[str, Any]) -> str:
    """Return the check-family specific identity component."""
    builder = PRIMARY_ID_BUILDERS.get(check, _snippet_id)
    return builder(context)


def compute_fingerprint(finding: Any) -> str:
    """Compute the 40-character fingerprint of *finding*.

    Works on any object exposing ``check``, ``severity``, ``file``, ``line``
    and a mapping-like ``context`` (``Finding`` instances use their payload's
    ``as_dict``).
    """
    context = finding.context
    if hasattr(context, "as_dict"):
        context = context.as_dict()

    severity = getattr(finding.severity, "value", finding.severity)
    line = "" if finding.line is None else str(finding.line)

    parts = [
        finding.check,
        str(severity),
        normalize_path(finding.file),
        line,
        primary_identifier(finding.check, context or {}),
    ]
    return sha1_hex("|".join(parts))
