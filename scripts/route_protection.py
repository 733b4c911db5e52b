"""
Route protection detection.

Pure predicates over a route's middleware list.  A middleware entry counts as
authenticating when it equals one of the configured names or is that name
with parameters (``auth:api`` for ``auth``).
"""

from __future__ import annotations

from typing import Iterable, Sequence

DEFAULT_AUTH_MIDDLEWARES = ("auth", "auth:sanctum")


class RouteProtectionDetector:
    """Classify middleware chains for auth presence.

    Parameters
    ----------
    auth_middlewares : iterable of str
        Names that mean "this route requires an authenticated user".
    """

    def __init__(self, auth_middlewares: Iterable[str] = DEFAULT_AUTH_MIDDLEWARES) -> None:
        self.auth_middlewares = tuple(auth_middlewares)

    def has_auth_middleware(self, middleware: Sequence[str]) -> bool:
        for entry in middleware:
            for name in self.auth_middlewares:
                if entry == name or entry.startswith(name + ":"):
                    return True
        return False

    @staticmethod
    def has_guard_middleware(middleware: Sequence[str], guard: str) -> bool:
        return f"auth:{guard}" in middleware
