"""Reading ``package.json`` and ``package-lock.json`` of the scanned project."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Set

from .errors import ManifestError
from .models import Manifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"
LOCK_FILE = "package-lock.json"


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise ManifestError(f"{path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise ManifestError(f"Could not read {path}: {exc}") from exc


def load_manifest(src_path: Path) -> Manifest:
    """Load the project manifest.

    A project without ``package.json`` still scans: the manifest is empty
    and named after the directory.
    """
    path = Path(src_path) / MANIFEST_FILE
    if not path.exists():
        logger.info("No %s in %s; scanning without declared dependencies", MANIFEST_FILE, src_path)
        return Manifest(name=Path(src_path).resolve().name)

    data = _read_json(path)
    if not isinstance(data, dict):
        raise ManifestError(f"{path} must contain a JSON object")

    luna = data.get("luna") or {}
    if not isinstance(luna, dict):
        logger.warning("Ignoring non-object \"luna\" block in %s", path)
        luna = {}

    return Manifest(
        name=str(data.get("name") or Path(src_path).resolve().name),
        version=str(data.get("version") or ""),
        dependencies=dict(data.get("dependencies") or {}),
        dev_dependencies=dict(data.get("devDependencies") or {}),
        main=data.get("main"),
        luna=luna,
    )


def load_lock_packages(src_path: Path) -> Dict[str, str]:
    """Return ``name -> version`` for every package in ``package-lock.json``.

    Handles the ``packages`` layout (lockfile v2/v3) and the nested
    ``dependencies`` layout (v1).  A missing or unreadable lock file yields
    an empty mapping.
    """
    path = Path(src_path) / LOCK_FILE
    if not path.exists():
        return {}
    try:
        data = _read_json(path)
    except ManifestError as exc:
        logger.warning("Ignoring lock file: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring lock file %s: not a JSON object", path)
        return {}

    packages: Dict[str, str] = {}
    for key, info in (data.get("packages") or {}).items():
        if not key or not isinstance(info, dict):
            continue  # "" is the project itself
        name = info.get("name") or key.rsplit("node_modules/", 1)[-1]
        packages.setdefault(name, str(info.get("version", "")))

    seen: Set[int] = set()

    def walk(deps: Dict[str, Any]) -> None:
        if id(deps) in seen:
            return
        seen.add(id(deps))
        nested = []
        for name, info in deps.items():
            if not isinstance(info, dict):
                continue
            packages.setdefault(name, str(info.get("version", "")))
            nested.append(info.get("dependencies") or {})
        # hoisted entries win over nested copies
        for child in nested:
            walk(child)

    walk(data.get("dependencies") or {})
    return packages
