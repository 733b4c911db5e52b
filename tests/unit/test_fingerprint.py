#!/usr/bin/env python3
"""
Unit tests for finding fingerprints

Tests cover:
- Path normalization (anchors, separators, basename fallback)
- Primary identifiers per check family
- Fingerprint determinism and sensitivity
- Cross-platform path equivalence
"""

import hashlib
import sys
from pathlib import Path

import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from fingerprint import compute_fingerprint, normalize_path, primary_identifier, sha1_hex
from schemas.finding import Finding


def _route_finding(**overrides):
    data = {
        "check": "route-authorization",
        "severity": "high",
        "message": "Route [GET] posts has no authorization protection.",
        "context": {
            "uri": "posts",
            "methods": ["GET"],
            "action": "App\\Http\\Controllers\\PostController@index",
            "middleware": [],
        },
    }
    data.update(overrides)
    return Finding(**data)


# ---------------------------------------------------------------------------
# normalize_path
# ---------------------------------------------------------------------------


class TestNormalizePath:
    def test_none_and_empty(self):
        assert normalize_path(None) == ""
        assert normalize_path("") == ""

    def test_app_anchor(self):
        assert normalize_path("/var/www/site/app/Models/User.php") == "app/Models/User.php"

    def test_windows_separators(self):
        assert normalize_path("C:\\work\\site\\app\\Models\\User.php") == "app/Models/User.php"

    def test_tests_anchor(self):
        assert normalize_path("/srv/site/tests/Feature/PostTest.php") == "tests/Feature/PostTest.php"

    def test_routes_anchor(self):
        assert normalize_path("/srv/site/routes/web.php") == "routes/web.php"

    def test_app_wins_over_later_anchors(self):
        assert normalize_path("/srv/tests/site/app/Foo.php") == "app/Foo.php"

    def test_basename_fallback(self):
        assert normalize_path("/srv/site/config/auth.php") == "auth.php"


# ---------------------------------------------------------------------------
# primary_identifier
# ---------------------------------------------------------------------------


class TestPrimaryIdentifier:
    def test_route_methods_sorted(self):
        ident = primary_identifier(
            "route-authorization",
            {"methods": ["POST", "GET"], "uri": "posts", "action": "PostController@store"},
        )
        assert ident == "route:GET,POST:posts:PostController@store"

    def test_mass_assignment(self):
        ident = primary_identifier("mass-assignment", {"model": "User", "pattern": "create with $request->all()"})
        assert ident == "model:User:create with $request->all()"

    def test_intent_auth_rule_ids_sorted(self):
        ident = primary_identifier(
            "intent-auth",
            {
                "matched_rule_ids": ["b-rule", "a-rule"],
                "uri": "/admin",
                "route_name": "admin.index",
                "methods": ["POST", "GET"],
            },
        )
        assert ident == "intent-auth:a-rule,b-rule:/admin:admin.index:GET,POST"

    def test_intent_mass_assignment(self):
        ident = primary_identifier(
            "intent-mass-assignment",
            {"model_fqcn": "App\\Models\\User", "pattern": "missing_fillable"},
        )
        assert ident == "model:App\\Models\\User:missing_fillable"

    def test_snippet_default_is_trimmed(self):
        a = primary_identifier("dangerous-query-input", {"snippet": "  $q->orderBy($request->sort);  "})
        b = primary_identifier("dangerous-query-input", {"snippet": "$q->orderBy($request->sort);"})
        assert a == b
        assert a == "snippet:" + sha1_hex("$q->orderBy($request->sort);")


# ---------------------------------------------------------------------------
# compute_fingerprint
# ---------------------------------------------------------------------------


class TestComputeFingerprint:
    def test_matches_documented_layout(self):
        finding = _route_finding(file="/srv/site/routes/web.php", line=12)
        expected = hashlib.sha1(
            "route-authorization|high|routes/web.php|12|"
            "route:GET:posts:App\\Http\\Controllers\\PostController@index".encode("utf-8")
        ).hexdigest()
        assert compute_fingerprint(finding) == expected
        assert finding.fingerprint == expected

    def test_is_forty_hex_chars(self):
        fp = _route_finding().fingerprint
        assert len(fp) == 40
        int(fp, 16)

    def test_deterministic(self):
        assert _route_finding().fingerprint == _route_finding().fingerprint

    def test_missing_line_is_empty_component(self):
        finding = _route_finding()
        expected = sha1_hex(
            "route-authorization|high|||route:GET:posts:App\\Http\\Controllers\\PostController@index"
        )
        assert finding.fingerprint == expected

    def test_message_does_not_matter(self):
        a = _route_finding(message="one")
        b = _route_finding(message="two")
        assert a.fingerprint == b.fingerprint

    def test_severity_changes_fingerprint(self):
        assert _route_finding().fingerprint != _route_finding(severity="medium").fingerprint

    def test_line_changes_fingerprint(self):
        assert _route_finding(line=3).fingerprint != _route_finding(line=4).fingerprint

    def test_file_changes_fingerprint(self):
        a = _route_finding(file="app/Http/Controllers/PostController.php", line=3)
        b = _route_finding(file="app/Http/Controllers/Admin/PostController.php", line=3)
        assert a.fingerprint != b.fingerprint

    def test_windows_and_posix_paths_agree(self):
        posix = _route_finding(file="/home/dev/site/app/Http/Controllers/PostController.php", line=5)
        windows = _route_finding(file="C:\\Users\\dev\\site\\app\\Http\\Controllers\\PostController.php", line=5)
        assert posix.fingerprint == windows.fingerprint

    def test_method_order_does_not_matter(self):
        a = _route_finding(context={"uri": "posts", "methods": ["GET", "POST"], "action": "X@y"})
        b = _route_finding(context={"uri": "posts", "methods": ["POST", "GET"], "action": "X@y"})
        assert a.fingerprint == b.fingerprint

    def test_suppression_does_not_change_fingerprint(self):
        finding = _route_finding(file="app/Http/Controllers/PostController.php", line=1)
        assert finding.with_suppression("baseline").fingerprint == finding.fingerprint

    def test_enrichment_extras_do_not_change_route_fingerprint(self):
        finding = _route_finding()
        enriched = finding.with_merged_context({"model_fqcn": "App\\Models\\Post"})
        assert enriched.fingerprint == finding.fingerprint

    @pytest.mark.parametrize("check", ["dangerous-query-input", "custom-check"])
    def test_snippet_family(self, check):
        a = Finding.high(check=check, message="m", file="app/A.php", line=1, context={"snippet": "x"})
        b = Finding.high(check=check, message="m", file="app/A.php", line=1, context={"snippet": "y"})
        assert a.fingerprint != b.fingerprint
