"""Mapping of import / require specifiers to project files or packages."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .common import is_dynamic
from .dependency_tree import strip_range
from .models import Manifest, PackageDependency

logger = logging.getLogger(__name__)

RESOLVE_EXTENSIONS = (".js", ".mjs", ".cjs", ".json")
INDEX_FILES = ("index.js", "index.mjs", "index.cjs")


@dataclass
class ResolvedModule:
    """Where a specifier points.

    ``internal`` modules are project files (``id`` is the project-relative
    path); everything else becomes a library node.
    """

    id: str
    internal: bool = False
    external: bool = False
    version: str = ""
    tags: List[str] = field(default_factory=list)
    dynamic: bool = False


def package_root(specifier: str) -> str:
    """``lodash/fp`` -> ``lodash``, ``@scope/pkg/sub`` -> ``@scope/pkg``."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


def _is_path(specifier: str) -> bool:
    return specifier.startswith(".") or os.path.isabs(specifier)


class ModuleResolver:
    """Resolve specifiers against the dependency tree, the manifest and the file set."""

    def __init__(
        self,
        src_path: Path,
        files: Iterable[Path],
        node_modules: Optional[Dict[str, PackageDependency]] = None,
        manifest: Optional[Manifest] = None,
        lock_packages: Optional[Dict[str, str]] = None,
    ):
        self.src_path = Path(src_path).resolve()
        self.files = {str(Path(f)) for f in files}
        self.node_modules = node_modules or {}
        self.declared = manifest.declared if manifest is not None else {}
        self.lock_packages = lock_packages or {}

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def _known_package(self, name: str) -> bool:
        return name in self.node_modules or name in self.declared or name in self.lock_packages

    def _package_module(self, name: str) -> ResolvedModule:
        package = self.node_modules.get(name)
        if package is not None:
            version, tags = package.version, list(package.tags)
        elif name in self.lock_packages:
            version, tags = self.lock_packages[name], []
        else:
            version, tags = strip_range(str(self.declared.get(name, ""))), []
            if version == "latest":
                version = ""
        module_id = f"{name}@{version}" if version else name
        return ResolvedModule(id=module_id, external=True, version=version, tags=tags)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def candidates(self, specifier: str, importer: Path) -> List[str]:
        """Every path *specifier* may denote, most literal first."""
        base = os.path.normpath(os.path.join(os.path.dirname(str(importer)), specifier))
        paths = [base]
        stem, ext = os.path.splitext(base)
        if ext:
            paths.append(stem)
            paths.extend(stem + e for e in RESOLVE_EXTENSIONS if e != ext)
        paths.extend(base + e for e in RESOLVE_EXTENSIONS)
        paths.extend(os.path.join(base, index) for index in INDEX_FILES)
        return paths

    def find_file(self, specifier: str, importer: Path) -> Optional[str]:
        for candidate in self.candidates(specifier, importer):
            if candidate in self.files:
                return candidate
        return None

    def relative_id(self, path: str) -> str:
        rel = os.path.relpath(path, self.src_path)
        return "." if rel == os.curdir else Path(rel).as_posix()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve(self, specifier: str, importer: Path) -> ResolvedModule:
        """Resolve *specifier* as written in *importer*."""
        if is_dynamic(specifier):
            logger.debug("Dynamic specifier %r in %s", specifier, importer)
            return ResolvedModule(id=specifier, dynamic=True)

        if not _is_path(specifier):
            if self._known_package(specifier):
                return self._package_module(specifier)
            root = package_root(specifier)
            if root != specifier and self._known_package(root):
                return self._package_module(root)
            # builtin or undeclared package
            logger.debug("Unresolved library %r in %s", specifier, importer)
            return ResolvedModule(id=specifier)

        found = self.find_file(specifier, importer)
        if found is not None:
            return ResolvedModule(id=self.relative_id(found), internal=True)

        module_id = specifier
        absolute = os.path.normpath(os.path.join(os.path.dirname(str(importer)), specifier))
        if absolute == str(self.src_path) or absolute.startswith(str(self.src_path) + os.sep):
            module_id = self.relative_id(absolute)
        return ResolvedModule(id=module_id)
