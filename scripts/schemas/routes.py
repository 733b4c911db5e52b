"""
Route descriptor schema.

A read-only snapshot of one entry in the host framework's routing table.
The route provider builds these; checks only read them.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CLOSURE_ACTION = "Closure"


class RouteDescriptor(BaseModel):
    """Route identity as seen by the checks.

    ``methods`` is normalised at construction: uppercased, ``HEAD`` removed,
    deduplicated and sorted.  ``action`` is ``Class@method``, an invokable
    ``Class``, or ``Closure``; a ``[Class, method]`` pair is accepted and
    joined.
    """

    model_config = ConfigDict(frozen=True)

    uri: str
    methods: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    middleware: List[str] = Field(default_factory=list)
    action: str = CLOSURE_ACTION

    @field_validator("methods")
    @classmethod
    def normalize_methods(cls, v: List[str]) -> List[str]:
        return sorted({m.strip().upper() for m in v if m.strip().upper() != "HEAD"})

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> str:
        if v is None:
            return CLOSURE_ACTION
        if isinstance(v, (list, tuple)):
            if len(v) == 2:
                return f"{v[0]}@{v[1]}"
            if len(v) == 1:
                return str(v[0])
            raise ValueError(f"action pair must have one or two items, got {len(v)}")
        return str(v)

    @property
    def normalized_uri(self) -> str:
        """URI with exactly one leading slash."""
        return "/" + self.uri.lstrip("/")

    @property
    def is_closure(self) -> bool:
        return self.action.startswith(CLOSURE_ACTION)
