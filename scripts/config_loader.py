"""
Configuration Loader for the route guard scanner.

Implements a layered configuration system:
    hardcoded defaults < .guard.yml < GUARD_* env vars < explicit overrides

Usage:
    from config_loader import build_unified_config
    config = build_unified_config(repo_path="/path/to/app", overrides={"severity": "high"})
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".guard.yml"

# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------

def get_default_config() -> Dict[str, Any]:
    """Return all configuration parameters with their defaults.

    This is the lowest-priority layer.  Every configurable key must appear
    here so that downstream code never needs to guard against missing keys.
    """
    return {
        # -- Route protection --
        "auth_middlewares": ["auth", "auth:sanctum"],
        "public_routes": ["up", "health", "sanctum/csrf-cookie"],

        # -- Source layout --
        "controllers_path": "app/Http/Controllers",
        "models_path": "app/Models",
        "namespace_roots": {"App\\": "app/"},
        "model_namespace": "App\\Models",
        "policy_namespace": "App\\Policies",

        # -- Output filtering --
        "severity": "all",

        # -- Suppression --
        "allow_inline_ignores": True,
        "inline_ignore_marker": "guard:ignore",
        "use_baseline": False,
        "baseline_strict": False,
        "baseline_path": "storage/guard/baseline.json",

        # -- Enrichment cache --
        "cache_enabled": True,
        "cache_dir": "storage/guard/cache",
        "framework_version": "",
        "cache_mtime_paths": [
            "routes",
            "app/Http/Controllers",
            "app/Policies",
            "app/Providers/AuthServiceProvider.php",
            "app/Http/Kernel.php",
        ],

        # -- Incremental scanning --
        "changed_only": False,
        "staged": False,
        "base_ref": "",
        "git_timeout": 30,
    }

# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

# Mapping: (env_var_name, ...) -> (config_key, type)
# Types: "str", "bool", "int", "list"
_ENV_MAPPINGS: List[tuple] = [
    # Route protection
    (("GUARD_AUTH_MIDDLEWARES",),               "auth_middlewares",     "list"),
    (("GUARD_PUBLIC_ROUTES",),                  "public_routes",        "list"),

    # Source layout
    (("GUARD_CONTROLLERS_PATH",),               "controllers_path",     "str"),
    (("GUARD_MODELS_PATH",),                    "models_path",          "str"),

    # Output
    (("GUARD_SEVERITY",),                       "severity",             "str"),

    # Suppression
    (("GUARD_ALLOW_INLINE_IGNORES",),           "allow_inline_ignores", "bool"),
    (("GUARD_USE_BASELINE",),                   "use_baseline",         "bool"),
    (("GUARD_BASELINE_STRICT",),                "baseline_strict",      "bool"),
    (("GUARD_BASELINE_PATH",),                  "baseline_path",        "str"),

    # Cache
    (("GUARD_CACHE_ENABLED",),                  "cache_enabled",        "bool"),
    (("GUARD_CACHE_DIR",),                      "cache_dir",            "str"),
    (("GUARD_FRAMEWORK_VERSION",),              "framework_version",    "str"),

    # Incremental scanning
    (("GUARD_CHANGED_ONLY",),                   "changed_only",         "bool"),
    (("GUARD_STAGED",),                         "staged",               "bool"),
    (("GUARD_BASE_REF", "GITHUB_BASE_REF"),     "base_ref",             "str"),
    (("GUARD_GIT_TIMEOUT",),                    "git_timeout",          "int"),
]


def _coerce(raw: str, type_tag: str) -> Any:
    """Convert a raw env-var string to the appropriate Python type."""
    if type_tag == "bool":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if type_tag == "int":
        return int(raw)
    if type_tag == "list":
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def load_env_overrides() -> Dict[str, Any]:
    """Load configuration values from explicitly-set environment variables.

    Only variables that are **present** in ``os.environ`` are returned.
    Variables that are absent are skipped so that defaults or file values
    are not accidentally overwritten.  The first name found in a mapping
    tuple wins.
    """
    overrides: Dict[str, Any] = {}

    for env_names, config_key, type_tag in _ENV_MAPPINGS:
        for env_name in env_names:
            if env_name in os.environ:
                try:
                    overrides[config_key] = _coerce(os.environ[env_name], type_tag)
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Ignoring env var %s: could not convert %r to %s (%s)",
                        env_name, os.environ[env_name], type_tag, exc,
                    )
                break  # first match wins

    return overrides

# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into *base*.  Only non-None override values win.

    This operates on **flat** dicts (no recursive descent).  ``None``
    values in *override* are skipped.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is not None:
            merged[key] = value
    return merged


# Nested .guard.yml sections and the flat keys they map to.
_NESTED_SECTIONS: Dict[str, Dict[str, str]] = {
    "cache": {
        "enabled": "cache_enabled",
        "dir": "cache_dir",
        "mtime_paths": "cache_mtime_paths",
    },
    "baseline": {
        "enabled": "use_baseline",
        "strict": "baseline_strict",
        "path": "baseline_path",
    },
    "inline_ignores": {
        "enabled": "allow_inline_ignores",
        "marker": "inline_ignore_marker",
    },
}


def flatten_config(nested: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten known nested sections; unknown keys pass through unchanged."""
    flat: Dict[str, Any] = {}
    for key, value in nested.items():
        section = _NESTED_SECTIONS.get(key)
        if section is not None and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat_key = section.get(sub_key)
                if flat_key is None:
                    logger.warning("Unknown %s.%s in %s; ignoring", key, sub_key, CONFIG_FILENAME)
                    continue
                flat[flat_key] = sub_value
        else:
            flat[key] = value
    return flat

# ---------------------------------------------------------------------------
# .guard.yml loader
# ---------------------------------------------------------------------------

def _load_guard_yml(repo_path: str) -> Dict[str, Any]:
    """Load ``.guard.yml`` from *repo_path* and return a flat config dict.

    Returns an empty dict if the file does not exist.
    """
    yml_path = Path(repo_path) / CONFIG_FILENAME
    if not yml_path.is_file():
        return {}

    logger.info("Loading %s from %s", CONFIG_FILENAME, yml_path)
    with open(yml_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        logger.warning("%s must contain a mapping; ignoring", yml_path)
        return {}

    return flatten_config(raw)

# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def build_unified_config(
    repo_path: str = ".",
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a fully-merged configuration dict.

    Layer precedence (last wins):
        1. Hard-coded defaults          (``get_default_config()``)
        2. ``.guard.yml``               (project-level settings)
        3. Environment variables        (``load_env_overrides()``)
        4. Explicit overrides           (caller-supplied dict)

    Parameters
    ----------
    repo_path:
        Path to the project root (used for ``.guard.yml`` lookup).
    overrides:
        Values the caller wants to force, e.g. from its own option parsing.

    Returns
    -------
    dict
        The fully-resolved, flat configuration dict.
    """
    # -- Layer 1: defaults --
    config = get_default_config()

    # -- Layer 2: .guard.yml --
    guard_yml = _load_guard_yml(repo_path)
    if guard_yml:
        config = deep_merge(config, guard_yml)
        logger.info("Applied %s overrides (%d keys)", CONFIG_FILENAME, len(guard_yml))

    # -- Layer 3: env vars --
    env_overrides = load_env_overrides()
    if env_overrides:
        config = deep_merge(config, env_overrides)
        logger.debug("Applied %d env-var overrides", len(env_overrides))

    # -- Layer 4: explicit overrides --
    if overrides:
        config = deep_merge(config, flatten_config(overrides))
        logger.debug("Applied %d explicit overrides", len(overrides))

    return config

# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------

_VALID_SEVERITIES = {"all", "high", "medium", "low"}


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a configuration dict and return a list of warnings/errors.

    Returns
    -------
    list[str]
        Human-readable warning/error messages.  An empty list means the
        config is valid.
    """
    issues: List[str] = []

    severity = config.get("severity", "all")
    if severity not in _VALID_SEVERITIES:
        issues.append(
            f"ERROR: Invalid severity '{severity}'. "
            f"Must be one of: {', '.join(sorted(_VALID_SEVERITIES))}"
        )

    auth_middlewares = config.get("auth_middlewares")
    if not isinstance(auth_middlewares, list):
        issues.append("ERROR: auth_middlewares must be a list of middleware names.")
    elif not auth_middlewares:
        issues.append(
            "WARNING: auth_middlewares is empty; every route without an explicit "
            "authorize() call will be reported."
        )

    if not isinstance(config.get("public_routes", []), list):
        issues.append("ERROR: public_routes must be a list of URI patterns.")

    if not isinstance(config.get("namespace_roots", {}), dict):
        issues.append("ERROR: namespace_roots must map namespace prefixes to directories.")

    timeout = config.get("git_timeout", 30)
    if not isinstance(timeout, int) or timeout <= 0:
        issues.append(f"ERROR: git_timeout must be a positive integer, got {timeout!r}.")

    if config.get("cache_enabled") and not config.get("cache_dir"):
        issues.append("ERROR: cache_enabled is true but cache_dir is empty.")

    if config.get("staged") and config.get("base_ref"):
        issues.append(
            "WARNING: staged and base_ref are both set; staged files take precedence."
        )

    if config.get("baseline_strict") and not config.get("use_baseline"):
        issues.append("WARNING: baseline_strict has no effect unless use_baseline is true.")

    if not config.get("inline_ignore_marker"):
        issues.append("ERROR: inline_ignore_marker must not be empty.")

    return issues
