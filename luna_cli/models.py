"""Core data models shared by the extractors, the dependency builder and the graph assembler."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_COLOR = "#fff"


@dataclass(frozen=True)
class SourceFile:
    path: Path
    contents: str
    is_main: bool = False

    @property
    def loc(self) -> int:
        return len(self.contents.split("\n"))

    @property
    def chars(self) -> int:
        return len(self.contents)

    @property
    def is_data(self) -> bool:
        return self.path.suffix.lower() == ".json"


@dataclass
class CallFact:
    """One resolved invocation edge inside a single file.

    Ids are file-local (``"<label>-<start>-<end>"``); the assembler
    qualifies them with the file id.
    """

    source_id: str
    source_label: str
    target_id: str
    target_label: str
    caller: Dict[str, Any]
    source_type: str = "Function call"


@dataclass
class LibraryUsage:
    """A member of an imported library's surface and how it is used."""

    name: str
    library: str = ""
    source_ids: List[str] = field(default_factory=list)
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    children: Dict[str, "LibraryUsage"] = field(default_factory=dict)


@dataclass
class PackageDependency:
    name: str
    version: str
    tags: List[str] = field(default_factory=list)
    dependencies: Dict[str, "PackageDependency"] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class Manifest:
    name: str = ""
    version: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    main: Optional[str] = None
    luna: Dict[str, Any] = field(default_factory=dict)

    @property
    def declared(self) -> Dict[str, str]:
        """Production and development dependencies, production first."""
        return {**self.dependencies, **self.dev_dependencies}


@dataclass
class GraphNode:
    id: str
    label: str
    color: str = DEFAULT_COLOR
    parent: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    # Equivalence key used by reconciliation, never serialized
    symbol: Optional[str] = None

    def to_element(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "label": self.label, "color": self.color}
        if self.parent is not None:
            payload["parent"] = self.parent
        payload.update(self.data)
        return {"data": payload}


@dataclass
class GraphEdge:
    source: str
    target: str
    color: str = DEFAULT_COLOR
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return f"{self.source} -> {self.target}"

    def to_element(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "color": self.color,
        }
        payload.update(self.data)
        return {"data": payload}
