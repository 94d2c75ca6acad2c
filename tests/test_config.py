"""Tests for scan configuration layering and the user config file."""

from pathlib import Path

import pytest
import toml

from luna_cli.config import ScanConfig
from luna_cli.config_manager import (
    build_scan_config,
    load_full_config,
    load_scan_config,
    save_scan_setting,
)


class TestScanConfig:

    def test_defaults(self):
        config = ScanConfig()

        assert config.components.call_graph and config.components.library_api
        assert config.components.dependency_tree
        assert config.max_attempts == 6
        assert config.retry_delay == 6.0
        assert config.dependency_source == "auto"
        assert config.extensions == (".js", ".mjs", ".cjs")

    def test_camel_case_manifest_block(self):
        config = ScanConfig().with_overrides({
            "components": {"callGraph": False, "libraryAPI": True, "unknownThing": False},
            "ignore": ["dist/**"],
            "registryUrl": "http://localhost:4873",
        })

        assert config.components.call_graph is False
        assert config.components.library_api is True
        assert config.ignore == ["dist/**"]
        assert config.registry_url == "http://localhost:4873"

    def test_overrides_return_a_copy(self):
        base = ScanConfig()
        changed = base.with_overrides({"components": {"dependency_tree": False}})

        assert base.components.dependency_tree is True
        assert changed.components.dependency_tree is False

    def test_extensions_are_normalized(self):
        assert ScanConfig().with_overrides({"extensions": ["js", ".jsx"]}).extensions == (".js", ".jsx")

    def test_scalar_coercion(self):
        config = ScanConfig().with_overrides({"maxAttempts": "3", "retry_delay": 1, "unknown": 1})

        assert config.max_attempts == 3
        assert config.retry_delay == 1.0

        with pytest.raises(ValueError):
            ScanConfig().with_overrides({"max_attempts": "many"})

    @pytest.mark.parametrize("raw,expected", [("false", False), ("True", True), ("0", False), (1, True)])
    def test_flags_parse_strings(self, raw, expected):
        config = ScanConfig().with_overrides({"debug": raw, "components": {"callGraph": raw}})

        assert config.debug is expected
        assert config.components.call_graph is expected

    @pytest.mark.parametrize("raw", ["maybe", 2, [True]])
    def test_flags_reject_junk(self, raw):
        with pytest.raises(ValueError, match="boolean"):
            ScanConfig().with_overrides({"debug": raw})
        with pytest.raises(ValueError, match="boolean"):
            ScanConfig().with_overrides({"components": {"dependency_tree": raw}})

    def test_invalid_dependency_source(self):
        with pytest.raises(ValueError, match="dependency_source"):
            ScanConfig().with_overrides({"dependency_source": "ftp"})


def test_build_scan_config_precedence():
    config = build_scan_config(
        user={"max_attempts": 2, "ignore": ["build/**"], "components": {"call_graph": False}},
        project={"ignore": ["dist/**"], "components": {"libraryAPI": False}},
        cli={"components": {"call_graph": True}},
    )

    assert config.max_attempts == 2
    assert config.ignore == ["dist/**"]
    assert config.components.call_graph is True
    assert config.components.library_api is False


class TestConfigFile:

    def test_missing_file(self, temp_dir: Path):
        assert load_full_config(temp_dir / "none.toml") == {}
        assert load_scan_config(temp_dir / "none.toml") == {}

    def test_unreadable_file_is_ignored(self, temp_dir: Path):
        path = temp_dir / "config.toml"
        path.write_text("[scan\nbroken")

        assert load_full_config(path) == {}

    def test_save_preserves_other_sections(self, temp_dir: Path):
        path = temp_dir / "nested" / "config.toml"
        path.parent.mkdir()
        path.write_text('[ui]\ntheme = "dark"\n')

        assert save_scan_setting("retry_delay", 2.5, path)
        assert save_scan_setting("components.dependency_tree", False, path)

        saved = toml.loads(path.read_text())
        assert saved["ui"] == {"theme": "dark"}
        assert saved["scan"] == {"retry_delay": 2.5, "components": {"dependency_tree": False}}
        assert build_scan_config(user=load_scan_config(path)).retry_delay == 2.5

    def test_save_creates_directory(self, temp_dir: Path):
        path = temp_dir / "a" / "b" / "config.toml"

        assert save_scan_setting("debug", True, path)
        assert load_scan_config(path) == {"debug": True}

    def test_save_rejects_unknown_and_invalid(self, temp_dir: Path):
        path = temp_dir / "config.toml"

        assert not save_scan_setting("colour", "blue", path)
        assert not save_scan_setting("components.linting", True, path)
        assert not save_scan_setting("components", {}, path)
        assert not save_scan_setting("dependency_source", "ftp", path)
        assert not save_scan_setting("max_attempts", "many", path)
        assert not save_scan_setting("components.call_graph", "nope", path)
        assert not path.exists()
