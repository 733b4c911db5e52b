"""
Declarative auth check.

Evaluates the policy's auth rules against every route.  Rules whose
requirements are structurally identical are collapsed so that one route
yields at most one finding per distinct requirement, listing every
contributing rule id.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from checks.base import Check
from route_protection import RouteProtectionDetector
from routing import RouteProvider
from schemas.finding import Finding
from schemas.policy import AuthRequirement, AuthRule, GuardPolicy
from schemas.routes import RouteDescriptor

logger = logging.getLogger(__name__)


def rule_matches_route(rule: AuthRule, route_name: str, uri: str, methods: List[str]) -> bool:
    """Selector match against any of the route's methods.

    A selector restricting methods must first share at least one method
    with the route.
    """
    selector = rule.match
    if selector.methods is not None and not set(methods) & set(selector.methods):
        return False
    return any(selector.matches(route_name, uri, method) for method in methods)


def group_by_requirement(rules: List[AuthRule]) -> Dict[str, List[AuthRule]]:
    """Group rules by canonical requirement key, first-seen order."""
    groups: Dict[str, List[AuthRule]] = {}
    for rule in rules:
        groups.setdefault(rule.require.canonical_key(), []).append(rule)
    return groups


class IntentAuthCheck(Check):
    """Check routes against ``policy.auth.rules``."""

    def __init__(
        self,
        route_provider: RouteProvider,
        policy: GuardPolicy,
        detector: Optional[RouteProtectionDetector] = None,
    ) -> None:
        self.route_provider = route_provider
        self.policy = policy
        self.detector = detector or RouteProtectionDetector()

    @property
    def name(self) -> str:
        return "intent-auth"

    def run(self) -> List[Finding]:
        rules = self.policy.auth.rules
        if not rules:
            return []

        findings: List[Finding] = []
        for route in self.route_provider.routes():
            findings.extend(self.check_route(route, rules))
        return findings

    def check_route(self, route: RouteDescriptor, rules: List[AuthRule]) -> List[Finding]:
        uri = route.normalized_uri
        route_name = route.name or ""
        methods = list(route.methods)

        matched = [rule for rule in rules if rule_matches_route(rule, route_name, uri, methods)]
        if not matched:
            return []

        has_auth = self.detector.has_auth_middleware(route.middleware)
        findings: List[Finding] = []

        for group in group_by_requirement(matched).values():
            requirement = group[0].require
            context = {
                "matched_rule_ids": sorted(rule.id for rule in group),
                "uri": uri,
                "route_name": route_name,
                "methods": methods,
                "action": route.action,
                "middleware": list(route.middleware),
                "require": requirement.to_dict(),
            }
            finding = self.evaluate(requirement, has_auth, route.middleware, uri, methods, context)
            if finding is not None:
                findings.append(finding)

        return findings

    def evaluate(
        self,
        requirement: AuthRequirement,
        has_auth: bool,
        middleware: List[str],
        uri: str,
        methods: List[str],
        context: dict,
    ) -> Optional[Finding]:
        methods_str = "|".join(methods)

        if requirement.public:
            if has_auth:
                return None
            return Finding.medium(
                check=self.name,
                message=(
                    f"Route [{methods_str}] {uri} is declared public in intent spec "
                    "but has no auth middleware."
                ),
                context=context,
                fix_hint="Add the URI to public_routes to also silence the route-authorization check.",
            )

        if requirement.authenticated and not has_auth:
            return Finding.high(
                check=self.name,
                message=(
                    f"Route [{methods_str}] {uri} requires authentication per intent spec "
                    "but has no auth middleware."
                ),
                context=context,
                fix_hint="Add auth middleware to this route or its group.",
            )

        guard = requirement.guard
        if guard is not None and not self.detector.has_guard_middleware(middleware, guard):
            return Finding.high(
                check=self.name,
                message=(
                    f"Route [{methods_str}] {uri} requires guard '{guard}' per intent spec "
                    f"but middleware does not include 'auth:{guard}'."
                ),
                context=context,
                fix_hint=f"Add 'auth:{guard}' middleware to this route.",
            )

        return None
