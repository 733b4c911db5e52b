"""
Project map: route action -> inferred model, policy and ability.

Inference is by naming convention only:

- ``UserController`` -> ``App\\Models\\User`` if that class file exists
- ``App\\Models\\User`` -> ``App\\Policies\\UserPolicy`` if that exists
- controller method -> policy ability (``show`` -> ``view`` ...)

The map is cached in the ``ScanCache`` under ``project_map`` and used to add
``model_fqcn``/``policy``/``ability`` to route findings that lack them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from routing import RouteProvider
from scan_cache import ScanCache
from schemas.finding import Finding
from source_provider import SourceProvider

logger = logging.getLogger(__name__)

CACHE_KEY = "project_map"

ABILITY_MAP: Dict[str, str] = {
    "index": "viewAny",
    "show": "view",
    "create": "create",
    "store": "create",
    "edit": "update",
    "update": "update",
    "destroy": "delete",
}

ENRICHED_KEYS = ("model_fqcn", "policy", "ability")


def infer_ability(method: str) -> Optional[str]:
    return ABILITY_MAP.get(method)


class ProjectMap:
    """Lazily built, optionally cached action map.

    Parameters
    ----------
    route_provider : RouteProvider
        Routes to map.
    source_provider : SourceProvider
        Used to check whether inferred classes exist.
    cache : ScanCache | None
        Cache backend; ``None`` disables caching.
    cache_version : str | None
        Version key for the cache; ``None`` disables caching.
    """

    def __init__(
        self,
        route_provider: RouteProvider,
        source_provider: SourceProvider,
        cache: Optional[ScanCache] = None,
        cache_version: Optional[str] = None,
        model_namespace: str = "App\\Models",
        policy_namespace: str = "App\\Policies",
    ) -> None:
        self.route_provider = route_provider
        self.source_provider = source_provider
        self.cache = cache
        self.cache_version = cache_version
        self.model_namespace = model_namespace.rstrip("\\")
        self.policy_namespace = policy_namespace.rstrip("\\")
        self._map: Dict[str, Dict[str, Any]] = {}
        self._built = False
        self.loaded_from_cache = False

    @property
    def entries(self) -> Dict[str, Dict[str, Any]]:
        self.build()
        return dict(self._map)

    def enrich(self, findings: Iterable[Finding]) -> List[Finding]:
        self.build()
        return [self._enrich_finding(f) for f in findings]

    def build(self) -> None:
        if self._built:
            return
        self._built = True

        use_cache = self.cache is not None and self.cache_version is not None
        if use_cache:
            cached = self.cache.get(CACHE_KEY, self.cache_version)
            if isinstance(cached, dict):
                self._map = cached
                self.loaded_from_cache = True
                logger.debug("Loaded project map from cache (%d actions)", len(cached))
                return

        for route in self.route_provider.routes():
            action = route.action
            if route.is_closure or "@" not in action:
                continue

            controller, method = action.split("@", 1)
            model = self.infer_model(controller)
            self._map[action] = {
                "controller": controller,
                "method": method,
                "model": model,
                "model_fqcn": model,
                "policy": self.infer_policy(model) if model else None,
                "ability": infer_ability(method),
            }

        logger.info("Built project map for %d action(s)", len(self._map))

        if use_cache:
            self.cache.put(CACHE_KEY, self._map, self.cache_version)

    def infer_model(self, controller: str) -> Optional[str]:
        short_name = controller.rsplit("\\", 1)[-1]
        model_name = short_name.replace("Controller", "")
        if not model_name or model_name == short_name:
            return None

        fqcn = f"{self.model_namespace}\\{model_name}"
        return fqcn if self.source_provider.class_exists(fqcn) else None

    def infer_policy(self, model: str) -> Optional[str]:
        short_name = model.rsplit("\\", 1)[-1]
        fqcn = f"{self.policy_namespace}\\{short_name}Policy"
        return fqcn if self.source_provider.class_exists(fqcn) else None

    def _enrich_finding(self, finding: Finding) -> Finding:
        action = finding.context.get("action")
        info = self._map.get(action) if action else None
        if not info:
            return finding

        extra = {
            key: info[key]
            for key in ENRICHED_KEYS
            if info.get(key) and key not in finding.context
        }
        if not extra:
            return finding
        return finding.with_merged_context(extra)
