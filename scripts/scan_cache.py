"""
Versioned on-disk cache for expensive introspection results.

The cache is keyed by environment, not by input: one ``.version`` marker
file records the version key that the stored blobs were computed under.
Reading with a different version purges the whole directory.  The version
key therefore has to capture everything the cached computation depends on
(tool version, runtime version, framework version, and the commit id or a
hash of source modification times).

Blobs are JSON.  The cache assumes a single writer and does no locking.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

TOOL_VERSION = "1.1.0"
VERSION_FILE = ".version"
BLOB_SUFFIX = ".cache"


class ScanCache:
    """File-based cache gated by a version key.

    Attributes:
        cache_dir: Directory holding the version marker and blobs.
        enabled: When False every ``get`` misses and ``put`` is a no-op.
    """

    VERSION = TOOL_VERSION

    def __init__(self, cache_dir: str, enabled: bool = True) -> None:
        self.cache_dir = cache_dir
        self.enabled = enabled

    def get(self, key: str, version: str) -> Optional[Any]:
        """Return the cached value, or None on any kind of miss.

        A missing or different version marker purges the directory.
        """
        if not self.enabled:
            return None

        if not self._is_version_current(version):
            self.clear()
            return None

        path = self._blob_path(key)
        if not os.path.isfile(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring corrupt cache entry %s: %s", path, e)
            return None

    def put(self, key: str, value: Any, version: str) -> None:
        """Store *value* under *key*, writing the version marker first."""
        if not self.enabled:
            return

        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(os.path.join(self.cache_dir, VERSION_FILE), "w", encoding="utf-8") as f:
                f.write(version)
            with open(self._blob_path(key), "w", encoding="utf-8") as f:
                json.dump(value, f)
            logger.debug("Cached %s under version %s", key, version[:12])
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write cache entry %s: %s", key, e)

    def clear(self) -> None:
        if not os.path.isdir(self.cache_dir):
            return

        removed = 0
        for entry in os.listdir(self.cache_dir):
            path = os.path.join(self.cache_dir, entry)
            if os.path.isfile(path):
                try:
                    os.remove(path)
                    removed += 1
                except OSError as e:
                    logger.warning("Could not remove cache file %s: %s", path, e)
        if removed:
            logger.info("Cleared %d cache file(s) from %s", removed, self.cache_dir)

    # ------------------------------------------------------------------
    # Version keys
    # ------------------------------------------------------------------

    @staticmethod
    def compute_version(
        framework_version: str,
        git_sha: Optional[str] = None,
        runtime_version: Optional[str] = None,
        mtimes_hash: Optional[str] = None,
    ) -> str:
        """Hash the environment into a version key.

        The commit id wins over the modification-time hash when both are
        given.
        """
        if runtime_version is None:
            runtime_version = f"{sys.version_info.major}.{sys.version_info.minor}"

        parts = [
            f"guard:{TOOL_VERSION}",
            f"python:{runtime_version}",
            f"framework:{framework_version}",
        ]
        if git_sha is not None:
            parts.append(f"sha:{git_sha}")
        elif mtimes_hash is not None:
            parts.append(f"mtimes:{mtimes_hash}")

        return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()

    @staticmethod
    def compute_mtimes_hash(paths: Iterable[str], suffix: str = ".php") -> Optional[str]:
        """Hash ``path:mtime`` lines for files (and source files under dirs).

        Returns None when no file was found.
        """
        entries: Dict[str, int] = {}

        for raw in paths:
            path = Path(raw)
            if path.is_file():
                entries[str(path).replace("\\", "/")] = int(path.stat().st_mtime)
            elif path.is_dir():
                for child in path.rglob("*" + suffix):
                    if child.is_file():
                        entries[str(child).replace("\\", "/")] = int(child.stat().st_mtime)

        if not entries:
            return None

        payload = "".join(f"{p}:{entries[p]}\n" for p in sorted(entries))
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _is_version_current(self, version: str) -> bool:
        marker = os.path.join(self.cache_dir, VERSION_FILE)
        if not os.path.isfile(marker):
            return False
        try:
            with open(marker, "r", encoding="utf-8") as f:
                return f.read().strip() == version
        except OSError:
            return False

    def _blob_path(self, key: str) -> str:
        return os.path.join(self.cache_dir, f"{key}{BLOB_SUFFIX}")
