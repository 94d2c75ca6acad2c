"""Tests for package.json and package-lock.json loading."""

import json
from pathlib import Path

import pytest

from luna_cli.errors import ManifestError
from luna_cli.manifest import load_lock_packages, load_manifest


def test_sample_manifest(sample_project_path: Path):
    manifest = load_manifest(sample_project_path)

    assert manifest.name == "sample-app"
    assert manifest.version == "1.2.0"
    assert manifest.main == "index.js"
    assert manifest.declared == {"express": "~4.18.2", "lodash": "^4.17.21", "mocha": "^10.2.0"}
    assert manifest.luna["ignore"] == ["dist/**"]


def test_missing_manifest_uses_directory_name(temp_dir: Path):
    manifest = load_manifest(temp_dir)

    assert manifest.name == temp_dir.resolve().name
    assert manifest.declared == {}
    assert manifest.main is None


def test_manifest_with_bom(temp_dir: Path):
    (temp_dir / "package.json").write_bytes(b"\xef\xbb\xbf" + json.dumps({"name": "bom"}).encode())

    assert load_manifest(temp_dir).name == "bom"


@pytest.mark.parametrize("content", ["{ nope", "[1, 2]"])
def test_invalid_manifest(temp_dir: Path, content):
    (temp_dir / "package.json").write_text(content)

    with pytest.raises(ManifestError):
        load_manifest(temp_dir)


def test_non_object_luna_block_is_ignored(temp_dir: Path):
    (temp_dir / "package.json").write_text(json.dumps({"name": "x", "luna": "yes"}))

    assert load_manifest(temp_dir).luna == {}


def test_lockfile_packages_layout(temp_dir: Path):
    (temp_dir / "package-lock.json").write_text(json.dumps({
        "lockfileVersion": 3,
        "packages": {
            "": {"name": "app"},
            "node_modules/express": {"version": "4.18.2"},
            "node_modules/express/node_modules/debug": {"version": "2.6.9"},
            "node_modules/@babel/core": {"version": "7.22.0"},
        },
    }))

    assert load_lock_packages(temp_dir) == {
        "express": "4.18.2",
        "debug": "2.6.9",
        "@babel/core": "7.22.0",
    }


def test_lockfile_nested_layout(temp_dir: Path):
    (temp_dir / "package-lock.json").write_text(json.dumps({
        "lockfileVersion": 1,
        "dependencies": {
            "express": {"version": "4.18.2", "dependencies": {"debug": {"version": "2.6.9"}}},
            "debug": {"version": "4.3.4"},
        },
    }))

    # the hoisted top-level entry is seen first
    assert load_lock_packages(temp_dir) == {"express": "4.18.2", "debug": "4.3.4"}


def test_missing_or_broken_lockfile(temp_dir: Path):
    assert load_lock_packages(temp_dir) == {}
    (temp_dir / "package-lock.json").write_text("broken")
    assert load_lock_packages(temp_dir) == {}
