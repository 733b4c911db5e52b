#!/usr/bin/env python3
"""
Unit tests for the layered configuration loader

Layer precedence: defaults < .guard.yml < GUARD_* env < explicit overrides
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from config_loader import (
    _coerce,
    _load_guard_yml,
    build_unified_config,
    deep_merge,
    flatten_config,
    get_default_config,
    load_env_overrides,
    validate_config,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("GUARD_") or name == "GITHUB_BASE_REF":
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# Defaults and helpers
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_core_keys(self):
        config = get_default_config()
        assert config["auth_middlewares"] == ["auth", "auth:sanctum"]
        assert config["severity"] == "all"
        assert config["baseline_path"] == "storage/guard/baseline.json"
        assert config["inline_ignore_marker"] == "guard:ignore"
        assert config["git_timeout"] == 30

    def test_defaults_are_valid(self):
        assert validate_config(get_default_config()) == []

    def test_fresh_copy_each_call(self):
        a = get_default_config()
        a["auth_middlewares"].append("x")
        assert get_default_config()["auth_middlewares"] == ["auth", "auth:sanctum"]


class TestCoerce:
    @pytest.mark.parametrize("raw,expected", [("1", True), ("true", True), ("YES", True), ("off", False), ("0", False)])
    def test_bool(self, raw, expected):
        assert _coerce(raw, "bool") is expected

    def test_int(self):
        assert _coerce("45", "int") == 45

    def test_list(self):
        assert _coerce(" auth , jwt ,,", "list") == ["auth", "jwt"]

    def test_str(self):
        assert _coerce("high", "str") == "high"


class TestDeepMerge:
    def test_none_skipped(self):
        assert deep_merge({"a": 1, "b": 2}, {"a": None, "b": 3}) == {"a": 1, "b": 3}

    def test_does_not_mutate(self):
        base = {"a": 1}
        deep_merge(base, {"a": 2})
        assert base == {"a": 1}


class TestFlattenConfig:
    def test_nested_sections(self):
        flat = flatten_config({
            "cache": {"enabled": False, "dir": "/tmp/c"},
            "baseline": {"enabled": True, "strict": True, "path": "b.json"},
            "inline_ignores": {"marker": "nosec"},
            "severity": "high",
        })
        assert flat == {
            "cache_enabled": False,
            "cache_dir": "/tmp/c",
            "use_baseline": True,
            "baseline_strict": True,
            "baseline_path": "b.json",
            "inline_ignore_marker": "nosec",
            "severity": "high",
        }

    def test_unknown_nested_key_dropped(self):
        assert flatten_config({"cache": {"ttl": 5}}) == {}


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


class TestGuardYml:
    def test_missing_file(self, tmp_path):
        assert _load_guard_yml(str(tmp_path)) == {}

    def test_loads_and_flattens(self, tmp_path):
        (tmp_path / ".guard.yml").write_text(yaml.safe_dump({
            "auth_middlewares": ["auth", "jwt"],
            "baseline": {"enabled": True},
        }))
        assert _load_guard_yml(str(tmp_path)) == {
            "auth_middlewares": ["auth", "jwt"],
            "use_baseline": True,
        }

    def test_non_mapping_ignored(self, tmp_path):
        (tmp_path / ".guard.yml").write_text("- just\n- a list\n")
        assert _load_guard_yml(str(tmp_path)) == {}

    def test_empty_file(self, tmp_path):
        (tmp_path / ".guard.yml").write_text("")
        assert _load_guard_yml(str(tmp_path)) == {}


class TestEnvOverrides:
    def test_only_present_vars(self, clean_env):
        clean_env.setenv("GUARD_SEVERITY", "high")
        clean_env.setenv("GUARD_USE_BASELINE", "true")
        clean_env.setenv("GUARD_AUTH_MIDDLEWARES", "auth,jwt")
        assert load_env_overrides() == {
            "severity": "high",
            "use_baseline": True,
            "auth_middlewares": ["auth", "jwt"],
        }

    def test_first_name_wins(self, clean_env):
        clean_env.setenv("GUARD_BASE_REF", "develop")
        clean_env.setenv("GITHUB_BASE_REF", "main")
        assert load_env_overrides()["base_ref"] == "develop"

    def test_github_fallback(self, clean_env):
        clean_env.setenv("GITHUB_BASE_REF", "main")
        assert load_env_overrides()["base_ref"] == "main"

    def test_bad_int_skipped(self, clean_env):
        clean_env.setenv("GUARD_GIT_TIMEOUT", "soon")
        assert "git_timeout" not in load_env_overrides()


class TestBuildUnifiedConfig:
    def test_precedence(self, tmp_path, clean_env):
        (tmp_path / ".guard.yml").write_text(yaml.safe_dump({
            "severity": "medium",
            "controllers_path": "src/Controllers",
            "git_timeout": 10,
        }))
        clean_env.setenv("GUARD_SEVERITY", "high")
        clean_env.setenv("GUARD_GIT_TIMEOUT", "20")

        config = build_unified_config(repo_path=str(tmp_path), overrides={"git_timeout": 40})

        assert config["controllers_path"] == "src/Controllers"
        assert config["severity"] == "high"
        assert config["git_timeout"] == 40
        assert config["models_path"] == "app/Models"

    def test_nested_overrides(self, tmp_path, clean_env):
        config = build_unified_config(
            repo_path=str(tmp_path),
            overrides={"baseline": {"enabled": True}, "cache_enabled": False},
        )
        assert config["use_baseline"] is True
        assert config["cache_enabled"] is False

    def test_none_override_keeps_lower_layer(self, tmp_path, clean_env):
        config = build_unified_config(repo_path=str(tmp_path), overrides={"severity": None})
        assert config["severity"] == "all"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateConfig:
    def _config(self, **overrides):
        config = get_default_config()
        config.update(overrides)
        return config

    def test_invalid_severity(self):
        issues = validate_config(self._config(severity="critical"))
        assert any(i.startswith("ERROR:") and "severity" in i for i in issues)

    def test_empty_auth_middlewares_warns(self):
        issues = validate_config(self._config(auth_middlewares=[]))
        assert any(i.startswith("WARNING:") and "auth_middlewares" in i for i in issues)

    def test_auth_middlewares_wrong_type(self):
        issues = validate_config(self._config(auth_middlewares="auth"))
        assert any(i.startswith("ERROR:") for i in issues)

    @pytest.mark.parametrize("timeout", [0, -1, "30"])
    def test_bad_git_timeout(self, timeout):
        issues = validate_config(self._config(git_timeout=timeout))
        assert any("git_timeout" in i for i in issues)

    def test_cache_without_dir(self):
        issues = validate_config(self._config(cache_enabled=True, cache_dir=""))
        assert any("cache_dir" in i for i in issues)

    def test_staged_with_base_ref(self):
        issues = validate_config(self._config(staged=True, base_ref="main"))
        assert any(i.startswith("WARNING:") and "staged" in i for i in issues)

    def test_strict_without_baseline(self):
        issues = validate_config(self._config(baseline_strict=True))
        assert any("baseline_strict" in i for i in issues)
