"""Integration tests for CLI commands."""

import json
from pathlib import Path

import toml
from typer.testing import CliRunner

from luna_cli import __version__
from luna_cli import config as config_module
from luna_cli.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"LUNA v{__version__}" in result.stdout


class TestScanCommand:
    """Tests for 'luna scan'."""

    def test_scan_sample_project(self, sample_project_path: Path, temp_dir: Path):
        """Test a full scan writes the report and the JSON elements."""
        result = runner.invoke(app, ["scan", str(sample_project_path), "--output", str(temp_dir), "--json"])

        assert result.exit_code == 0, result.stdout
        assert "successfully generated" in result.stdout
        assert "sample-app@1.2.0" in result.stdout

        report = (temp_dir / "luna.html").read_text(encoding="utf-8")
        assert "sample-app@1.2.0" in report
        elements = json.loads((temp_dir / "luna.json").read_text(encoding="utf-8"))
        ids = {e["data"]["id"] for e in elements}
        assert {"index.js", "lib/greet.js | greet", "express@4.18.2", "mocha@10.2.0"} <= ids

    def test_scan_without_components(self, sample_project_path: Path, temp_dir: Path):
        result = runner.invoke(app, [
            "scan", str(sample_project_path), "-o", str(temp_dir), "--json",
            "--no-call-graph", "--no-library-api", "--no-dependency-tree",
        ])

        assert result.exit_code == 0, result.stdout
        elements = json.loads((temp_dir / "luna.json").read_text(encoding="utf-8"))
        ids = {e["data"]["id"] for e in elements}
        assert "index.js" in ids
        assert not [i for i in ids if " | " in i or "@" in i]

    def test_scan_with_focus(self, sample_project_path: Path, temp_dir: Path):
        result = runner.invoke(app, ["scan", str(sample_project_path), "-o", str(temp_dir), "--json", "--focus", "helper"])

        assert result.exit_code == 0, result.stdout
        elements = json.loads((temp_dir / "luna.json").read_text(encoding="utf-8"))
        ids = {e["data"]["id"] for e in elements}
        assert "lib/greet.js | greet" in ids
        assert "express@4.18.2" not in ids

    def test_scan_nonexistent_path(self):
        result = runner.invoke(app, ["scan", "/nonexistent/path"])

        assert result.exit_code != 0

    def test_scan_invalid_manifest(self, temp_dir: Path):
        (temp_dir / "package.json").write_text("{ not json")
        (temp_dir / "index.js").write_text("run();\n")

        result = runner.invoke(app, ["scan", str(temp_dir)])

        assert result.exit_code == 1
        assert "not valid JSON" in " ".join(result.stdout.split())
        assert not (temp_dir / "luna.html").exists()

    def test_scan_registry_failure_warns(self, temp_dir: Path):
        (temp_dir / "package.json").write_text(json.dumps({"name": "x", "dependencies": {"left-pad": "1.3.0"}}))
        (temp_dir / "index.js").write_text('require("left-pad")("a", 3);\n')
        (temp_dir / "luna_home").mkdir()
        (temp_dir / "luna_home" / "config.toml").write_text("[scan]\nmax_attempts = 1\n")

        result = runner.invoke(app, ["scan", str(temp_dir), "--registry"])

        assert result.exit_code == 0, result.stdout
        assert "Dependency tree skipped" in result.stdout
        assert (temp_dir / "luna.html").exists()


class TestConfigCommands:
    """Tests for 'luna config'."""

    def test_set_and_show(self):
        result = runner.invoke(app, ["config", "set", "components.call_graph", "false"])
        assert result.exit_code == 0, result.stdout
        result = runner.invoke(app, ["config", "set", "ignore", '["dist/**"]'])
        assert result.exit_code == 0, result.stdout

        saved = toml.loads(config_module.CONFIG_FILE.read_text(encoding="utf-8"))
        assert saved == {"scan": {"components": {"call_graph": False}, "ignore": ["dist/**"]}}

        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "components.call_graph" in result.stdout
        assert "dist/**" in result.stdout

    def test_set_unknown_key(self):
        result = runner.invoke(app, ["config", "set", "colour", "blue"])

        assert result.exit_code == 1
        assert not config_module.CONFIG_FILE.exists()

    def test_set_invalid_value(self):
        result = runner.invoke(app, ["config", "set", "dependency_source", "nowhere"])

        assert result.exit_code == 1
        assert "Invalid value" in result.stdout
