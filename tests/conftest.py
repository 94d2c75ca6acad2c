"""Pytest configuration and fixtures for LUNA tests."""

import shutil
import tempfile
import urllib.error
import urllib.parse
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

import pytest

from luna_cli.config import DEFAULT_REGISTRY, ScanConfig
from luna_cli.dependency_tree import DependencyTreeBuilder
from luna_cli.parser import JsNode, JsParser

# Registry metadata of the sample project's dependency tree, keyed by name@version
SAMPLE_REGISTRY: Dict[str, Dict[str, Any]] = {
    "express@4.18.2": {
        "dependencies": {"body-parser": "1.20.1", "debug": "2.6.9"},
        "keywords": ["express", "framework", "web"],
    },
    "body-parser@1.20.1": {"dependencies": {"debug": "2.6.9"}},
    "debug@2.6.9": {"dependencies": {"ms": "2.0.0"}, "keywords": ["debug"]},
    "ms@2.0.0": {},
    "lodash@4.17.21": {"keywords": ["modules", "util"]},
    "mocha@10.2.0": {"dependencies": {"debug": "2.6.9"}, "keywords": ["test"]},
}


class FakeRegistry:
    """Deterministic stand-in for the npm registry; records every request."""

    def __init__(self, packages: Dict[str, Dict[str, Any]], failures: Optional[Dict[str, int]] = None):
        self.packages = packages
        # url -> number of leading attempts that fail
        self.failures = dict(failures or {})
        self.calls: List[str] = []

    def __call__(self, url: str) -> Dict[str, Any]:
        self.calls.append(url)
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise urllib.error.URLError("connection reset")
        name, _, version = url[len(DEFAULT_REGISTRY) + 1:].rpartition("/")
        key = f"{urllib.parse.unquote(name)}@{version}"
        if key not in self.packages:
            raise urllib.error.URLError(f"404 {key}")
        return self.packages[key]

    def requests_for(self, key: str) -> int:
        name, version = key.rsplit("@", 1)
        return self.calls.count(f"{DEFAULT_REGISTRY}/{name}/{version}")


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _offline(monkeypatch, temp_dir: Path):
    """Keep every test away from the network, npm and the real user config.

    Code paths that build a default DependencyTreeBuilder (the CLI) get
    the sample registry and a failing ``npm`` instead.
    """
    monkeypatch.setattr("luna_cli.dependency_tree.http_fetch_json", FakeRegistry(SAMPLE_REGISTRY))
    monkeypatch.setattr(
        "luna_cli.dependency_tree.run_process",
        lambda args, cwd: ("", "npm: command not found"),
    )
    monkeypatch.setattr("luna_cli.config.CONFIG_FILE", temp_dir / "luna_home" / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def scan_config() -> ScanConfig:
    return ScanConfig(dependency_source="registry")


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry(SAMPLE_REGISTRY)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def dependency_builder(scan_config: ScanConfig, fake_registry: FakeRegistry, sleeps: SleepRecorder) -> DependencyTreeBuilder:
    return DependencyTreeBuilder(scan_config, fetch=fake_registry, sleep=sleeps)


@pytest.fixture(scope="session")
def js_parser() -> JsParser:
    return JsParser()


@pytest.fixture
def parse(js_parser: JsParser):
    """Parse a JavaScript snippet into its analyzed node list."""
    return js_parser.parse


def find_nodes(nodes: Iterable[JsNode], node_type: str, text: Optional[str] = None) -> List[JsNode]:
    return [n for n in nodes if n.type == node_type and (text is None or n.text == text)]


def find_node(nodes: Iterable[JsNode], node_type: str, text: Optional[str] = None, nth: int = 0) -> JsNode:
    matches = find_nodes(nodes, node_type, text)
    assert len(matches) > nth, f"no {node_type} {text!r} #{nth} in {matches}"
    return matches[nth]
