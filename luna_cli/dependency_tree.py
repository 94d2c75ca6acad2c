"""Transitive dependency tree, from ``npm ls`` or from the npm registry.

Registry resolution queries ``GET {registry}/{name}/{version}`` for every
package version reached, with a linear back-off retry and a cache keyed by
``name@version`` so diamond dependencies are fetched once.  Network, process
and sleep access are injected so the builder runs offline in tests.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import time
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from . import __version__
from .config import ScanConfig
from .errors import LocalDependencyError, RegistryError
from .models import PackageDependency

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Dict[str, Any]]
RunFn = Callable[[List[str], str], Tuple[str, str]]
SleepFn = Callable[[float], None]

_RANGE_PREFIX_RE = re.compile(r"^[\^~>=<v\s]+")


def strip_range(version: str) -> str:
    """Reduce a version range to a concrete registry version (``^1.2.0`` -> ``1.2.0``)."""
    cleaned = _RANGE_PREFIX_RE.sub("", version or "").strip()
    if not cleaned or cleaned in ("*", "x"):
        return "latest"
    # "1.0.0 - 2.0.0", "1.x || 2.x": the first bound wins
    return cleaned.split()[0]


def http_fetch_json(url: str) -> Dict[str, Any]:
    """Fetch *url* and decode its JSON body.

    A client error (4xx other than 429) is an answer, not a transient
    failure: its body is returned, or ``{}`` when it is not a JSON object.
    Transport errors, 5xx and 429 propagate so the caller can retry.
    """
    req = urllib.request.Request(
        url,
        headers={"Accept": "application/json", "User-Agent": f"luna-cli/{__version__}"},
    )
    try:
        with urllib.request.urlopen(req, timeout=30) as resp:
            body = resp.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        if exc.code >= 500 or exc.code == 429:
            raise
        logger.debug("Registry answered %d for %s", exc.code, url)
        try:
            data = json.loads(exc.read().decode("utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}
    return json.loads(body)


def run_process(args: List[str], cwd: str) -> Tuple[str, str]:
    """Run *args* in *cwd*; return ``(stdout, stderr)`` whatever the exit code."""
    executable = shutil.which(args[0]) or args[0]
    try:
        proc = subprocess.run(
            [executable, *args[1:]],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        return "", str(exc)
    return proc.stdout, proc.stderr


class DependencyTreeBuilder:
    """Resolve declared dependencies into a tree of :class:`PackageDependency`."""

    def __init__(
        self,
        config: ScanConfig,
        fetch: Optional[FetchFn] = None,
        run: Optional[RunFn] = None,
        sleep: SleepFn = time.sleep,
    ):
        self.config = config
        self.fetch = fetch or http_fetch_json
        self.run = run or run_process
        self.sleep = sleep
        self.cache: Dict[str, PackageDependency] = {}
        self._in_progress: Set[str] = set()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def use_local_for(self, src_path: Path) -> bool:
        """Whether the installed-package listing should be used for *src_path*."""
        source = self.config.dependency_source
        if source == "local":
            return True
        if source == "registry":
            return False
        return (Path(src_path) / "node_modules").is_dir()

    def get_node_modules(
        self,
        src_path: Path,
        use_local: bool,
        dependencies: Optional[Dict[str, str]],
        dev_dependencies: Optional[Dict[str, str]] = None,
    ) -> Dict[str, PackageDependency]:
        """Return the dependency tree of the project at *src_path*."""
        if not self.config.components.dependency_tree:
            return {}
        if not use_local and not dependencies and not dev_dependencies:
            return {}
        if use_local:
            return self._list_local(src_path)
        return self.parse_dependencies(dependencies or {}, dev_dependencies or {})

    def _list_local(self, src_path: Path) -> Dict[str, PackageDependency]:
        stdout, stderr = self.run(["npm", "ls", "--all", "--json"], str(src_path))
        if not stdout or not stdout.strip():
            raise LocalDependencyError(stderr.strip() or "npm ls produced no output")
        try:
            listing = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise LocalDependencyError(f"npm ls returned invalid JSON: {exc}") from exc
        return _from_listing(listing.get("dependencies"))

    # ------------------------------------------------------------------
    # Registry resolution
    # ------------------------------------------------------------------

    def parse_dependencies(
        self,
        dependencies: Dict[str, str],
        dev_dependencies: Optional[Dict[str, str]] = None,
    ) -> Dict[str, PackageDependency]:
        """Resolve every declared package (production then development)."""
        merged = {**(dependencies or {}), **(dev_dependencies or {})}
        tree: Dict[str, PackageDependency] = {}
        for name, spec in merged.items():
            tree[name] = self.get_dependencies(name, strip_range(str(spec)))
        return tree

    def get_dependencies(self, name: str, version: str) -> PackageDependency:
        """Resolve one package version and, recursively, its dependencies."""
        key = f"{name}@{version}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Dependency cache hit: %s", key)
            return cached
        if key in self._in_progress:
            logger.debug("Dependency cycle through %s", key)
            return PackageDependency(name=name, version=version)

        encoded = urllib.parse.quote(name, safe="@")
        url = f"{self.config.registry_url.rstrip('/')}/{encoded}/{version}"
        self._in_progress.add(key)
        try:
            metadata = self._fetch_with_retry(url)
            children = self.parse_dependencies(metadata.get("dependencies") or {})
        finally:
            self._in_progress.discard(key)

        package = PackageDependency(
            name=name,
            version=version,
            tags=_keywords(metadata.get("keywords")),
            dependencies=children,
        )
        self.cache[key] = package
        return package

    def _fetch_with_retry(self, url: str) -> Dict[str, Any]:
        attempts = self.config.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self.fetch(url)
            except (OSError, ValueError) as exc:
                if attempt == attempts:
                    break
                delay = attempt * self.config.retry_delay
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s; retrying in %.0fs",
                    url, attempt, attempts, exc, delay,
                )
                self.sleep(delay)
        logger.error("Unable to fetch %s after %d attempts", url, attempts)
        raise RegistryError(url, attempts)


def _keywords(value: Any) -> List[str]:
    # some published manifests carry a single string
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [k for k in value if isinstance(k, str)]
    return []


def _from_listing(listing: Optional[Dict[str, Any]]) -> Dict[str, PackageDependency]:
    """Convert ``npm ls --json`` ``dependencies`` into the tree model."""
    tree: Dict[str, PackageDependency] = {}
    for name, info in (listing or {}).items():
        info = info or {}
        tree[name] = PackageDependency(
            name=name,
            version=str(info.get("version", "")),
            dependencies=_from_listing(info.get("dependencies")),
        )
    return tree
