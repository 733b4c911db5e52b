"""
Routing collaborators.

- ``RouteProvider`` -- anything that can list the application's routes
- ``StaticRouteProvider`` -- routes supplied up front (dumped route table, tests)
- ``ActionResolver`` -- maps a route action to its backing source file
- ``ConventionActionResolver`` -- resolves by namespace convention
- ``StaticActionResolver`` -- deterministic mapping, used in tests
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

from schemas.routes import CLOSURE_ACTION, RouteDescriptor
from source_provider import SourceProvider

logger = logging.getLogger(__name__)

ActionLike = Union[str, List[str], Tuple[str, ...], None]


def parse_action(action: ActionLike) -> Optional[Tuple[str, str]]:
    """Split an action into ``(class, method)``.

    Accepts ``"Class@method"``, ``["Class", "method"]`` and an invokable
    ``"Class"`` (method ``__invoke``).  Closures and empty actions give
    ``None``.
    """
    if isinstance(action, (list, tuple)):
        if not action:
            return None
        cls = str(action[0])
        method = str(action[1]) if len(action) > 1 else "__invoke"
        return cls.lstrip("\\"), method

    if not action or action.startswith(CLOSURE_ACTION):
        return None

    if "@" in action:
        cls, method = action.split("@", 1)
        return cls.lstrip("\\"), method

    return action.lstrip("\\"), "__invoke"


def controller_class(action: ActionLike) -> Optional[str]:
    parsed = parse_action(action)
    return parsed[0] if parsed else None


# ============================================================================
# Route providers
# ============================================================================


@runtime_checkable
class RouteProvider(Protocol):
    """Source of route descriptors (the host framework's router state)."""

    def routes(self) -> List[RouteDescriptor]:
        ...


class StaticRouteProvider:
    """Route provider over a fixed list.

    Items may be ``RouteDescriptor`` instances or plain dicts with the same
    keys (as found in a dumped route table).
    """

    def __init__(self, routes: Iterable[Union[RouteDescriptor, Mapping[str, Any]]] = ()) -> None:
        self._routes = [
            r if isinstance(r, RouteDescriptor) else RouteDescriptor.model_validate(dict(r))
            for r in routes
        ]

    def routes(self) -> List[RouteDescriptor]:
        return list(self._routes)


# ============================================================================
# Action resolvers
# ============================================================================


@runtime_checkable
class ActionResolver(Protocol):
    """Resolve a route action to a project-relative source path (or ``None``)."""

    def resolve(self, action: ActionLike) -> Optional[str]:
        ...


class ConventionActionResolver:
    """Resolve controller actions through a ``SourceProvider`` naming convention."""

    def __init__(self, source_provider: SourceProvider) -> None:
        self.source_provider = source_provider

    def resolve(self, action: ActionLike) -> Optional[str]:
        cls = controller_class(action)
        if cls is None:
            return None

        path = self.source_provider.path_for_class(cls)
        if path is None or not path.is_file():
            logger.debug("No source file for controller %s", cls)
            return None

        return self.source_provider.relative(path)


class StaticActionResolver:
    """Resolver backed by an explicit ``{action or class: path}`` mapping."""

    def __init__(self, mapping: Optional[Dict[str, str]] = None) -> None:
        self.mapping = dict(mapping or {})

    def resolve(self, action: ActionLike) -> Optional[str]:
        if isinstance(action, str) and action in self.mapping:
            return self.mapping[action]
        cls = controller_class(action)
        if cls is None:
            return None
        return self.mapping.get(cls)
