"""
Tests for finding enrichment: the convention-based project map (with its
cache) and the policy intent enricher.
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Ensure scripts/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from intent_enricher import IntentEnricher
from project_map import CACHE_KEY, ProjectMap, infer_ability
from routing import StaticRouteProvider
from scan_cache import ScanCache
from schemas.finding import Finding
from schemas.policy import GuardPolicy
from source_provider import SourceProvider

ROUTES = [
    {"uri": "users", "methods": ["GET"], "action": "App\\Http\\Controllers\\UserController@index"},
    {"uri": "users/{user}", "methods": ["GET"], "action": "App\\Http\\Controllers\\UserController@show"},
    {"uri": "tags", "methods": ["GET"], "action": "App\\Http\\Controllers\\TagController@index"},
    {"uri": "reports", "methods": ["GET"], "action": "App\\Http\\Controllers\\ReportsController@export"},
    {"uri": "about", "methods": ["GET"], "action": "Closure"},
    {"uri": "invoke", "methods": ["GET"], "action": "App\\Http\\Controllers\\ShowDashboard"},
]


@pytest.fixture
def project(tmp_path):
    (tmp_path / "app" / "Models").mkdir(parents=True)
    (tmp_path / "app" / "Policies").mkdir(parents=True)
    (tmp_path / "app" / "Models" / "User.php").write_text("<?php class User extends Model {}")
    (tmp_path / "app" / "Models" / "Tag.php").write_text("<?php class Tag extends Model {}")
    (tmp_path / "app" / "Policies" / "UserPolicy.php").write_text("<?php class UserPolicy {}")
    return tmp_path


def _route_finding(action, **context):
    return Finding.high(
        check="route-authorization",
        message="Route has no authorization protection.",
        context={"uri": "x", "methods": ["GET"], "action": action, **context},
    )


# ============================================================================
# ProjectMap
# ============================================================================


class TestInferAbility:
    @pytest.mark.parametrize("method,ability", [
        ("index", "viewAny"),
        ("show", "view"),
        ("store", "create"),
        ("edit", "update"),
        ("destroy", "delete"),
        ("export", None),
    ])
    def test_ability_map(self, method, ability):
        assert infer_ability(method) == ability


class TestProjectMap:
    def test_entries(self, project):
        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project))
        entries = pmap.entries

        assert set(entries) == {
            "App\\Http\\Controllers\\UserController@index",
            "App\\Http\\Controllers\\UserController@show",
            "App\\Http\\Controllers\\TagController@index",
            "App\\Http\\Controllers\\ReportsController@export",
        }
        show = entries["App\\Http\\Controllers\\UserController@show"]
        assert show["model_fqcn"] == "App\\Models\\User"
        assert show["policy"] == "App\\Policies\\UserPolicy"
        assert show["ability"] == "view"

    def test_model_without_policy(self, project):
        entry = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project)).entries[
            "App\\Http\\Controllers\\TagController@index"
        ]
        assert entry["model_fqcn"] == "App\\Models\\Tag"
        assert entry["policy"] is None

    def test_missing_model(self, project):
        entry = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project)).entries[
            "App\\Http\\Controllers\\ReportsController@export"
        ]
        assert entry["model_fqcn"] is None
        assert entry["ability"] is None

    def test_custom_namespaces(self, project):
        (project / "app" / "Domain").mkdir()
        (project / "app" / "Domain" / "Invoice.php").write_text("<?php")
        routes = [{"uri": "i", "methods": ["GET"], "action": "App\\Http\\Controllers\\InvoiceController@index"}]

        pmap = ProjectMap(
            StaticRouteProvider(routes),
            SourceProvider(project),
            model_namespace="App\\Domain\\",
        )

        assert pmap.entries["App\\Http\\Controllers\\InvoiceController@index"]["model_fqcn"] == "App\\Domain\\Invoice"

    def test_enrich_adds_missing_keys(self, project):
        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project))
        finding = _route_finding("App\\Http\\Controllers\\UserController@show")

        enriched = pmap.enrich([finding])[0]

        assert enriched.context.get("model_fqcn") == "App\\Models\\User"
        assert enriched.context.get("policy") == "App\\Policies\\UserPolicy"
        assert enriched.context.get("ability") == "view"
        assert finding.context.get("policy") is None

    def test_enrich_keeps_existing_keys(self, project):
        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project))
        finding = _route_finding("App\\Http\\Controllers\\UserController@show", policy="App\\Policies\\Custom")

        enriched = pmap.enrich([finding])[0]

        assert enriched.context.get("policy") == "App\\Policies\\Custom"
        assert enriched.context.get("ability") == "view"

    def test_enrich_unknown_action(self, project):
        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project))
        finding = _route_finding("Closure")
        assert pmap.enrich([finding])[0] is finding

    def test_fingerprint_unchanged_by_enrichment(self, project):
        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project))
        finding = _route_finding("App\\Http\\Controllers\\UserController@show")
        assert pmap.enrich([finding])[0].fingerprint == finding.fingerprint


class TestProjectMapCache:
    def test_built_map_is_cached(self, project, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"))
        ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project), cache=cache, cache_version="v1").build()

        cached = cache.get(CACHE_KEY, "v1")
        assert "App\\Http\\Controllers\\UserController@show" in cached

    def test_cache_hit_skips_routes(self, project, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"))
        cache.put(CACHE_KEY, {"A@b": {"model_fqcn": "App\\Models\\A"}}, "v1")
        provider = StaticRouteProvider(ROUTES)

        with patch.object(provider, "routes") as routes:
            pmap = ProjectMap(provider, SourceProvider(project), cache=cache, cache_version="v1")
            assert pmap.entries == {"A@b": {"model_fqcn": "App\\Models\\A"}}
            routes.assert_not_called()
        assert pmap.loaded_from_cache

    def test_version_change_rebuilds(self, project, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"))
        cache.put(CACHE_KEY, {"A@b": {}}, "v1")

        pmap = ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project), cache=cache, cache_version="v2")

        assert "A@b" not in pmap.entries
        assert not pmap.loaded_from_cache
        assert cache.get(CACHE_KEY, "v2") == pmap.entries

    def test_no_version_disables_cache(self, project, tmp_path):
        cache = ScanCache(str(tmp_path / "cache"))
        ProjectMap(StaticRouteProvider(ROUTES), SourceProvider(project), cache=cache).build()
        assert not (tmp_path / "cache").exists()


# ============================================================================
# IntentEnricher
# ============================================================================


def _mass_assignment(model=None, **context):
    return Finding.high(
        check="mass-assignment",
        message="Mass assignment risk: create with $request->all().",
        file="app/Http/Controllers/UserController.php",
        line=12,
        context={"pattern": "create with $request->all()", "snippet": "User::create($request->all());",
                 "model": model, **context},
    )


POLICY = GuardPolicy.from_dict({
    "data": {
        "models": {
            "App\\Models\\User": {"massAssignment": {"mode": "explicit_allowlist", "allow": ["name"], "forbid": ["is_admin"]}},
            "App\\Models\\Post": {"massAssignment": {"mode": "guarded"}},
            "App\\Billing\\Post": {"massAssignment": {"mode": "guarded"}},
        }
    }
})


class TestIntentEnricher:
    def test_by_short_name(self):
        enriched = IntentEnricher.enrich([_mass_assignment(model="User")], POLICY)[0]
        assert enriched.context.get("intent_mode") == "explicit_allowlist"
        assert enriched.context.get("intent_allow") == ["name"]
        assert enriched.context.get("intent_forbid") == ["is_admin"]

    def test_by_fqcn(self):
        finding = _mass_assignment(model="Post", model_fqcn="App\\Billing\\Post")
        enriched = IntentEnricher.enrich([finding], POLICY)[0]
        assert enriched.context.get("intent_mode") == "guarded"
        assert "intent_allow" not in enriched.context

    def test_ambiguous_short_name_skipped(self):
        finding = _mass_assignment(model="Post")
        assert IntentEnricher.enrich([finding], POLICY)[0] is finding

    def test_unknown_model(self):
        finding = _mass_assignment(model="Comment")
        assert IntentEnricher.enrich([finding], POLICY)[0] is finding

    def test_other_checks_untouched(self):
        finding = Finding.high(check="dangerous-query-input", message="x", context={"pattern": "p"})
        assert IntentEnricher.enrich([finding], POLICY)[0] is finding

    def test_empty_policy(self):
        finding = _mass_assignment(model="User")
        assert IntentEnricher.enrich([finding], GuardPolicy())[0] is finding

    def test_unique_short_names(self):
        assert IntentEnricher.unique_short_names(POLICY) == {"User": "App\\Models\\User"}
