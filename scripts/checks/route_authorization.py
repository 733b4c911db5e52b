"""
Route authorization check.

A route is reported when none of these protect it:

- it is listed in ``public_routes`` (exact URI, or glob when the pattern
  contains ``*``)
- its middleware chain contains an auth middleware
- its controller method calls an authorization helper
- its controller constructor calls ``$this->authorizeResource(``

Controller sources are inspected as text through the ``SourceProvider``.
"""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional

from checks.base import Check
from checks.patterns import (
    AUTHORIZE_CALL_RE,
    AUTHORIZE_RESOURCE_RE,
    BUILTIN_TYPES,
    FORM_REQUEST_BASE_RE,
    PARAMETER_TYPE_RE,
)
from route_protection import RouteProtectionDetector
from routing import RouteProvider, parse_action
from schemas.finding import Finding
from schemas.routes import RouteDescriptor
from source_provider import SourceProvider, locate_method, resolve_class_reference

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_ROUTES = ("up", "health", "sanctum/csrf-cookie")

FIX_HINT = (
    "Add auth middleware to this route or its group, "
    "or call $this->authorize() in the controller method."
)


class RouteAuthorizationCheck(Check):
    """Report routes with no visible authorization."""

    def __init__(
        self,
        route_provider: RouteProvider,
        source_provider: SourceProvider,
        detector: Optional[RouteProtectionDetector] = None,
        public_routes: Iterable[str] = DEFAULT_PUBLIC_ROUTES,
    ) -> None:
        self.route_provider = route_provider
        self.source_provider = source_provider
        self.detector = detector or RouteProtectionDetector()
        self.public_routes = [p.lstrip("/") for p in public_routes]

    @property
    def name(self) -> str:
        return "route-authorization"

    def run(self) -> List[Finding]:
        findings: List[Finding] = []

        for route in self.route_provider.routes():
            if self.is_public_route(route.uri):
                continue
            if self.detector.has_auth_middleware(route.middleware):
                continue
            if self.controller_calls_authorize(route.action):
                continue
            if self.constructor_calls_authorize_resource(route.action):
                continue

            findings.append(self._build_finding(route))

        return findings

    def _build_finding(self, route: RouteDescriptor) -> Finding:
        context = {
            "uri": route.uri,
            "methods": list(route.methods),
            "action": route.action,
            "middleware": list(route.middleware),
        }
        if self.method_has_form_request(route.action):
            context["has_form_request"] = True

        methods = "|".join(route.methods)
        return Finding.high(
            check=self.name,
            message=f"Route [{methods}] {route.uri} has no authorization protection.",
            context=context,
            fix_hint=FIX_HINT,
        )

    # ------------------------------------------------------------------
    # Exemptions
    # ------------------------------------------------------------------

    def is_public_route(self, uri: str) -> bool:
        uri = uri.lstrip("/")
        for pattern in self.public_routes:
            if uri == pattern:
                return True
            if "*" in pattern and fnmatchcase(uri, pattern):
                return True
        return False

    def _controller_source(self, action: str) -> Optional[str]:
        parsed = parse_action(action)
        if parsed is None:
            return None
        return self.source_provider.read_class(parsed[0])

    def controller_calls_authorize(self, action: str) -> bool:
        parsed = parse_action(action)
        if parsed is None:
            return False
        method = locate_method(self._controller_source(action), parsed[1])
        return bool(method and AUTHORIZE_CALL_RE.search(method.body))

    def constructor_calls_authorize_resource(self, action: str) -> bool:
        constructor = locate_method(self._controller_source(action), "__construct")
        return bool(constructor and AUTHORIZE_RESOURCE_RE.search(constructor.body))

    def method_has_form_request(self, action: str) -> bool:
        """True when the action type-hints a custom ``FormRequest`` subclass."""
        parsed = parse_action(action)
        if parsed is None:
            return False

        source = self._controller_source(action)
        method = locate_method(source, parsed[1])
        if method is None or source is None:
            return False

        for parameter in method.signature.split(","):
            match = PARAMETER_TYPE_RE.match(parameter)
            if not match:
                continue

            type_name = match.group(1)
            if type_name.lower() in BUILTIN_TYPES:
                continue

            fqcn = resolve_class_reference(source, type_name)
            if fqcn == "Illuminate\\Http\\Request":
                continue

            request_source = self.source_provider.read_class(fqcn)
            if request_source and FORM_REQUEST_BASE_RE.search(request_source):
                return True

        return False
