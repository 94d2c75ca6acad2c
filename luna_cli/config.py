"""Scan configuration: component toggles, debug verbosity, ignore patterns and registry settings."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Tuple

BASE_DIR = Path(os.environ.get("LUNA_HOME", str(Path.home() / ".luna"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS: Tuple[str, ...] = (".js", ".mjs", ".cjs")
DEFAULT_REGISTRY = "https://registry.npmjs.org"
DEPENDENCY_SOURCES = ("auto", "local", "registry")

SKIP_DIRS = {
    "node_modules", ".git", ".hg", ".svn", ".cache", ".next", ".nuxt",
    "coverage", ".nyc_output", "bower_components", ".luna",
}


@dataclass
class Components:
    """Sub-analyses that can be switched off independently."""

    call_graph: bool = True
    library_api: bool = True
    dependency_tree: bool = True


@dataclass
class ScanConfig:
    """Settings passed by reference into every scanner component."""

    debug: bool = False
    components: Components = field(default_factory=Components)
    ignore: List[str] = field(default_factory=list)
    extensions: Tuple[str, ...] = SUPPORTED_EXTENSIONS
    registry_url: str = DEFAULT_REGISTRY
    dependency_source: str = "auto"
    max_attempts: int = 6
    retry_delay: float = 6.0
    read_workers: int = 8
    palette_seed: int = 42

    def with_overrides(self, overrides: Dict[str, Any]) -> "ScanConfig":
        """Return a copy with *overrides* applied (unknown keys are ignored).

        ``components`` may be given as a partial mapping, matching the
        ``"luna": {"components": {...}}`` block of ``package.json``.
        """
        if not overrides:
            return self

        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            attr = _camel_to_snake(key)
            if attr == "components" and isinstance(value, dict):
                current = self.components
                comp_changes = {
                    _camel_to_snake(k): _to_bool(v)
                    for k, v in value.items()
                    if hasattr(current, _camel_to_snake(k))
                }
                changes["components"] = replace(current, **comp_changes)
            elif attr == "extensions" and value:
                changes["extensions"] = tuple(
                    ext if ext.startswith(".") else f".{ext}" for ext in value
                )
            elif attr == "ignore" and value is not None:
                changes["ignore"] = list(value)
            elif attr == "dependency_source":
                if value not in DEPENDENCY_SOURCES:
                    raise ValueError(
                        f"dependency_source must be one of {', '.join(DEPENDENCY_SOURCES)}, got {value!r}"
                    )
                changes[attr] = value
            elif attr == "debug" and value is not None:
                changes[attr] = _to_bool(value)
            elif attr in _SCALAR_FIELDS and value is not None:
                # "6" -> 6, raises ValueError for junk
                changes[attr] = type(getattr(self, attr))(value)
        return replace(self, **changes)


_SCALAR_FIELDS = {
    "registry_url", "max_attempts", "retry_delay", "read_workers", "palette_seed",
}


_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


def _to_bool(value: Any) -> bool:
    """Coerce a flag from TOML, JSON or the command line; junk raises ValueError."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z]+)")


def _camel_to_snake(name: str) -> str:
    # callGraph -> call_graph, libraryAPI -> library_api
    return _CAMEL_RE.sub(r"_\1", name).replace("-", "_").lower()
