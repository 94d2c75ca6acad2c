"""JavaScript parser built on Tree-sitter, producing a flattened, parent-linked AST.

Tree-sitter gives an error-tolerant *concrete syntax tree*.  The scanner
works on a flat, pre-order list of :class:`JsNode` wrappers instead:

- only *named* nodes are kept (punctuation and keywords are dropped, but
  keyword tokens that carry a grammar field such as ``kind`` or
  ``operator`` are kept in :attr:`JsNode.attrs`);
- each node links to its parent and exposes its grammar fields;
- after flattening, :func:`luna_cli.scope.analyze_scopes` attaches the
  enclosing scope to every node and a binding to every identifier.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pathspec
import tree_sitter_javascript
from tree_sitter import Language, Parser as TSParser

from .config import SKIP_DIRS, ScanConfig
from .errors import ParseError
from .scope import analyze_scopes

logger = logging.getLogger(__name__)


class JsNode:
    """One named syntax node of a parsed file."""

    __slots__ = (
        "index", "type", "start", "end", "parent", "children", "fields",
        "attrs", "scope", "binding", "_source",
    )

    def __init__(self, index: int, node_type: str, start: int, end: int,
                 parent: Optional["JsNode"], source: bytes) -> None:
        self.index = index
        self.type = node_type
        self.start = start
        self.end = end
        self.parent = parent
        self.children: List[JsNode] = []
        self.fields: Dict[str, JsNode] = {}
        self.attrs: Dict[str, str] = {}
        self.scope = None
        self.binding = None
        self._source = source

    @property
    def text(self) -> str:
        return self._source[self.start:self.end].decode("utf-8", errors="replace")

    def source_slice(self, start: int, end: int) -> str:
        return self._source[start:end].decode("utf-8", errors="replace")

    def field(self, name: str) -> Optional["JsNode"]:
        return self.fields.get(name)

    def position(self) -> Dict[str, object]:
        return {"type": self.type, "start": self.start, "end": self.end}

    def __repr__(self) -> str:
        return f"JsNode({self.type}, {self.start}-{self.end})"


def prepare_source(text: str) -> str:
    """Strip a Unicode BOM and comment out a ``#!`` line (offsets are kept)."""
    if text.startswith("\ufeff"):
        text = text[1:]
    if text.startswith("#!"):
        text = "//" + text[2:]
    return text


class JsParser:
    """Tree-sitter JavaScript parser returning analyzed, flattened node lists."""

    def __init__(self) -> None:
        try:
            # tree-sitter >=0.22 per-language packages expose a
            # language() function that returns the Language capsule.
            self._language = Language(tree_sitter_javascript.language())
            self._parser = TSParser(self._language)
        except Exception as exc:
            raise ParseError(f"Could not load tree-sitter JavaScript grammar: {exc}") from exc
        logger.debug("Loaded tree-sitter parser for javascript")

    def parse(self, source: str) -> List[JsNode]:
        """Parse *source* and return its pre-order node list, scopes resolved."""
        source_bytes = prepare_source(source).encode("utf-8")
        try:
            tree = self._parser.parse(source_bytes)
        except Exception as exc:
            raise ParseError(str(exc)) from exc
        if tree.root_node.has_error:
            logger.debug("Syntax errors recovered while parsing (error-tolerant tree)")
        nodes = _flatten(tree, source_bytes)
        analyze_scopes(nodes)
        return nodes


def _flatten(tree, source: bytes) -> List[JsNode]:
    nodes: List[JsNode] = []
    cursor = tree.walk()
    owners: List[Optional[JsNode]] = [None]

    while True:
        owner = _visit(cursor, owners[-1], nodes, source)
        if cursor.goto_first_child():
            owners.append(owner)
            continue
        while not cursor.goto_next_sibling():
            if not cursor.goto_parent():
                return nodes
            owners.pop()


def _visit(cursor, parent: Optional[JsNode], nodes: List[JsNode], source: bytes) -> Optional[JsNode]:
    ts_node = cursor.node
    field_name = cursor.field_name
    if not ts_node.is_named:
        if parent is not None and field_name:
            parent.attrs[field_name] = source[ts_node.start_byte:ts_node.end_byte].decode("utf-8")
        return parent
    if ts_node.type == "comment":
        return parent

    node = JsNode(len(nodes), ts_node.type, ts_node.start_byte, ts_node.end_byte, parent, source)
    nodes.append(node)
    if parent is not None:
        parent.children.append(node)
        if field_name:
            parent.fields.setdefault(field_name, node)
    return node


# ===================================================================
# Project file discovery
# ===================================================================

def build_ignore_spec(patterns: List[str]) -> pathspec.PathSpec:
    """Compile gitignore-style *patterns* into a matcher."""
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def iter_source_files(project_root: Path, config: ScanConfig) -> Iterator[Path]:
    """Yield every source file under *project_root*, sorted, skipping vendored dirs."""
    spec = build_ignore_spec(config.ignore)
    extensions = {ext.lower() for ext in config.extensions}
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        for name in filenames:
            file_path = Path(dirpath) / name
            if file_path.suffix.lower() not in extensions:
                continue
            rel = file_path.relative_to(project_root).as_posix()
            if spec.match_file(rel):
                logger.debug("Ignoring %s", rel)
                continue
            found.append(file_path.resolve())
    yield from sorted(found)
