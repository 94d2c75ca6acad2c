"""Configuration manager for LUNA using TOML files and the project manifest."""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config as config_module
from .config import Components, ScanConfig

logger = logging.getLogger(__name__)


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = config_file or config_module.CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_scan_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[scan]`` section of the user config.

    Returns:
        Mapping of overrides, empty when the file or section is missing.
    """
    return load_full_config(config_file).get("scan", {})


def save_scan_setting(key: str, value: Any, config_file: Optional[Path] = None) -> bool:
    """Persist one ``[scan]`` setting, preserving other sections.

    ``components.<name>`` keys are written into the nested
    ``[scan.components]`` table.

    Returns:
        True if saved successfully, False otherwise.
    """
    if not _is_known_setting(key):
        logger.error("Unknown scan setting %s", key)
        return False

    path = config_file or config_module.CONFIG_FILE
    full = load_full_config(path)
    scan = full.setdefault("scan", {})
    if key.startswith("components."):
        scan.setdefault("components", {})[key.split(".", 1)[1]] = value
    else:
        scan[key] = value

    # Validate before writing
    try:
        build_scan_config(user=scan)
    except (TypeError, ValueError) as exc:
        logger.error("Refusing to save invalid setting %s=%r: %s", key, value, exc)
        return False

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.error("Could not write %s: %s", path, exc)
        return False


def _is_known_setting(key: str) -> bool:
    if key.startswith("components."):
        return key.split(".", 1)[1] in {f.name for f in fields(Components)}
    return key != "components" and key in {f.name for f in fields(ScanConfig)}


def build_scan_config(
    user: Optional[Dict[str, Any]] = None,
    project: Optional[Dict[str, Any]] = None,
    cli: Optional[Dict[str, Any]] = None,
) -> ScanConfig:
    """Merge configuration layers, lowest precedence first.

    Args:
        user: ``[scan]`` table of ``~/.luna/config.toml``.
        project: the ``"luna"`` block of the scanned project's ``package.json``.
        cli: explicit command-line overrides.
    """
    cfg = ScanConfig()
    for layer in (user, project, cli):
        if layer:
            cfg = cfg.with_overrides(layer)
    return cfg
