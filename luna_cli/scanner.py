"""Project scan: parse every file, run the extractors and assemble one graph.

The graph is built in two phases.  Phase one collects nodes and edges from
the per-file results (files, libraries, API usages, calls) and from the
dependency tree.  Call nodes carry a symbol key ``"<file> | <label>"``.
Phase two (:func:`reconcile`) unifies each call node with the API-usage
node of the same key, so a function exported by one file and used through
``require`` in another is a single node, and rewrites edges and
``sourceIds`` through the merged representatives.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .call_graph import calls_to_graph, extract_calls, qualify
from .colors import ColorPalette
from .config import ScanConfig
from .dependency_tree import DependencyTreeBuilder
from .errors import ParseError, RegistryError
from .library_api import UsageTree, extract_libs
from .manifest import load_lock_packages, load_manifest
from .models import CallFact, GraphEdge, GraphNode, Manifest, PackageDependency, SourceFile
from .parser import JsParser, iter_source_files
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)

ROOT_GROUPS = (
    ("files", "Source Code", None),
    ("libs", "Libraries", None),
    ("unused", "Unused", "libs"),
    ("internal", "Internal", "libs"),
    ("external", "External", "libs"),
    ("deps", "Dependency Tree", None),
)


@dataclass
class ScanResult:
    """Emitted graph plus the intermediate results it was built from."""

    elements: List[Dict[str, Any]]
    files: List[SourceFile] = field(default_factory=list)
    calls: Dict[str, List[CallFact]] = field(default_factory=dict)
    libs: Dict[str, Dict[str, UsageTree]] = field(default_factory=dict)
    node_modules: Dict[str, PackageDependency] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    dependency_error: Optional[str] = None

    @property
    def node_count(self) -> int:
        return sum(1 for e in self.elements if "source" not in e["data"])

    @property
    def edge_count(self) -> int:
        return sum(1 for e in self.elements if "source" in e["data"])


# ===================================================================
# Graph collection
# ===================================================================

class GraphBuilder:
    """Ordered, id-keyed node and edge collections (first node wins)."""

    def __init__(self) -> None:
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[str, GraphEdge] = {}

    def add_node(self, node: GraphNode) -> GraphNode:
        existing = self.nodes.get(node.id)
        if existing is not None:
            return existing
        self.nodes[node.id] = node
        return node

    def add_edge(self, edge: GraphEdge) -> GraphEdge:
        existing = self.edges.get(edge.id)
        if existing is None:
            self.edges[edge.id] = edge
            return edge
        _merge_edge_data(existing, edge)
        return existing

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def elements(self) -> List[Dict[str, Any]]:
        """Serialize nodes, then edges whose endpoints both exist."""
        result = [node.to_element() for node in self.nodes.values()]
        for edge in self.edges.values():
            if edge.source not in self.nodes or edge.target not in self.nodes:
                logger.debug("Dropping dangling edge %s", edge.id)
                continue
            result.append(edge.to_element())
        return result


def _merge_edge_data(into: GraphEdge, other: GraphEdge) -> None:
    for key in ("sourceIds", "nodes"):
        if key in other.data:
            merged = into.data.setdefault(key, [])
            for item in other.data[key]:
                if item not in merged:
                    merged.append(item)


# ===================================================================
# Reconciliation
# ===================================================================

class _UnionFind:
    def __init__(self) -> None:
        self.parent: Dict[str, str] = {}

    def find(self, item: str) -> str:
        root = item
        while self.parent.get(root, root) != root:
            root = self.parent[root]
        while item != root:
            item, self.parent[item] = self.parent.get(item, item), root
        return root

    def union(self, item: str, representative: str) -> None:
        a, b = self.find(item), self.find(representative)
        if a != b:
            self.parent[a] = b


def reconcile(
    nodes: Dict[str, GraphNode],
    edges: Dict[str, GraphEdge],
) -> Tuple[Dict[str, GraphNode], Dict[str, GraphEdge]]:
    """Merge call nodes into the API nodes describing the same symbol.

    Returns new node and edge maps; the inputs are not modified.  Running
    it on its own output returns an equal graph.
    """
    uf = _UnionFind()
    for node in nodes.values():
        if node.symbol is None or node.symbol == node.id:
            continue
        target = nodes.get(node.symbol)
        if target is not None and target.data.get("type") == "API":
            uf.union(node.id, target.id)

    merged_nodes: Dict[str, GraphNode] = {}
    absorbed: Dict[str, List[GraphNode]] = {}
    for node in nodes.values():
        rep = uf.find(node.id)
        if rep != node.id:
            absorbed.setdefault(rep, []).append(node)
    for node_id, node in nodes.items():
        rep = uf.find(node_id)
        if rep != node_id:
            continue
        if node_id in absorbed:
            data = dict(node.data)
            for call_node in absorbed[node_id]:
                if "caller" in call_node.data:
                    data.setdefault("caller", call_node.data["caller"])
            data["type"] = "API"
            node = GraphNode(
                id=node.id, label=node.label, color=node.color,
                parent=node.parent, data=data, symbol=node.id,
            )
        merged_nodes[node_id] = node

    merged_edges: Dict[str, GraphEdge] = {}
    for edge in edges.values():
        data = {key: list(value) if isinstance(value, list) else value for key, value in edge.data.items()}
        if "sourceIds" in data:
            data["sourceIds"] = list(dict.fromkeys(uf.find(sid) for sid in data["sourceIds"]))
        rewritten = GraphEdge(
            source=uf.find(edge.source),
            target=uf.find(edge.target),
            color=edge.color,
            data=data,
        )
        existing = merged_edges.get(rewritten.id)
        if existing is None:
            merged_edges[rewritten.id] = rewritten
        else:
            _merge_edge_data(existing, rewritten)
    return merged_nodes, merged_edges


# ===================================================================
# Scanner
# ===================================================================

def discover_files(src_path: Path, config: ScanConfig) -> List[Path]:
    """Every source file of the project, sorted."""
    return list(iter_source_files(src_path, config))


def _read_file(path: Path) -> Tuple[Path, Optional[str], Optional[str]]:
    try:
        return path, path.read_text(encoding="utf-8", errors="replace"), None
    except OSError as exc:
        return path, None, str(exc)


class Scanner:
    """Drive parsing, extraction, dependency resolution and graph assembly."""

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        dependency_builder: Optional[DependencyTreeBuilder] = None,
        parser: Optional[JsParser] = None,
    ):
        self.config = config or ScanConfig()
        self.dependency_builder = dependency_builder or DependencyTreeBuilder(self.config)
        self.parser = parser or JsParser()

    def scan(self, src_path: Path, manifest: Optional[Manifest] = None) -> ScanResult:
        src_path = Path(src_path).resolve()
        manifest = manifest if manifest is not None else load_manifest(src_path)
        paths = discover_files(src_path, self.config)
        logger.info("Scanning %d source files in %s", len(paths), src_path)

        result = ScanResult(elements=[])
        result.node_modules, result.dependency_error = self._dependency_tree(src_path, manifest)

        main_path = (src_path / manifest.main).resolve() if manifest.main else None
        parsed: Dict[str, Tuple[SourceFile, list]] = {}
        for path, text, error in self._read_all(paths):
            if text is None:
                logger.warning("Unable to read %s: %s", path, error)
                result.skipped.append(str(path))
                continue
            try:
                nodes = self.parser.parse(text)
            except ParseError as exc:
                logger.warning("Unable to parse %s: %s", path, exc)
                result.skipped.append(str(path))
                continue
            source = SourceFile(path=path, contents=text, is_main=(main_path is not None and path == main_path))
            result.files.append(source)
            parsed[str(path)] = (source, nodes)

        for file_key, (source, nodes) in parsed.items():
            # deeply nested expressions exhaust the stack in the recursive walkers
            try:
                result.calls[file_key] = extract_calls(nodes, self.config)
                result.libs[file_key] = extract_libs(nodes, file_key, str(src_path), self.config)
            except RecursionError as exc:
                logger.warning("Unable to analyze %s: %s", source.path, exc)
                result.skipped.append(file_key)
                result.calls.pop(file_key, None)
                result.libs.pop(file_key, None)

        if self.config.debug:
            logger.debug("Function calls: %s", result.calls)
            logger.debug("Libraries: %s", sorted({lib for libs in result.libs.values() for lib in libs}))
            logger.debug("Dependency tree: %s", result.node_modules)

        resolver = ModuleResolver(
            src_path,
            [f.path for f in result.files],
            node_modules=result.node_modules,
            manifest=manifest,
            lock_packages=load_lock_packages(src_path),
        )
        result.elements = assemble_graph(
            src_path,
            [f for f in result.files if str(f.path) in result.calls],
            result.calls,
            result.libs,
            result.node_modules,
            resolver,
            self.config,
        )
        return result

    def _read_all(self, paths: List[Path]) -> Iterable[Tuple[Path, Optional[str], Optional[str]]]:
        if not paths:
            return []
        workers = max(1, min(self.config.read_workers, len(paths)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() keeps the sorted file order
            return list(executor.map(_read_file, paths))

    def _dependency_tree(
        self, src_path: Path, manifest: Manifest
    ) -> Tuple[Dict[str, PackageDependency], Optional[str]]:
        builder = self.dependency_builder
        try:
            tree = builder.get_node_modules(
                src_path,
                builder.use_local_for(src_path),
                manifest.dependencies,
                manifest.dev_dependencies,
            )
        except RegistryError as exc:
            logger.error("Dependency tree unavailable: %s", exc)
            return {}, str(exc)
        return tree, None


def scan(src_path: Path, config: Optional[ScanConfig] = None, **kwargs: Any) -> ScanResult:
    """Scan *src_path* with a default :class:`Scanner`."""
    return Scanner(config, **kwargs).scan(src_path)


# ===================================================================
# Assembly
# ===================================================================

def _iter_tree(tree: Dict[str, PackageDependency], seen: Optional[Set[str]] = None) -> Iterable[PackageDependency]:
    seen = set() if seen is None else seen
    for package in tree.values():
        if package.id in seen:
            continue
        seen.add(package.id)
        yield package
        yield from _iter_tree(package.dependencies, seen)


def assemble_graph(
    src_path: Path,
    files: List[SourceFile],
    calls: Dict[str, List[CallFact]],
    libs: Dict[str, Dict[str, UsageTree]],
    node_modules: Dict[str, PackageDependency],
    resolver: ModuleResolver,
    config: ScanConfig,
) -> List[Dict[str, Any]]:
    """Build the element list for one project from per-file results."""
    src_path = Path(src_path)
    graph = GraphBuilder()
    for group_id, label, parent in ROOT_GROUPS:
        graph.add_node(GraphNode(id=group_id, label=label, parent=parent, data={"group": True}))

    identities = {name for file_libs in libs.values() for name in file_libs}
    identities.update(package.id for package in _iter_tree(node_modules))
    palette = ColorPalette(len(identities), seed=config.palette_seed)

    # Call nodes first: API edges are anchored on them
    call_elements: Dict[str, Dict[str, Any]] = {}
    for source in files:
        file_id = resolver.relative_id(str(source.path))
        call_elements[str(source.path)] = calls_to_graph(calls.get(str(source.path), []), file_id)

    for source in files:
        file_key = str(source.path)
        file_id = resolver.relative_id(file_key)
        _add_file(graph, src_path, source, file_id)
        call_ids = set(call_elements[file_key])

        for spec, api in libs.get(file_key, {}).items():
            module = resolver.resolve(spec, source.path)
            if module.dynamic:
                continue
            lib_id = module.id
            color = palette.color_for(lib_id)
            if not module.internal:
                graph.add_node(GraphNode(
                    id=lib_id,
                    label=lib_id,
                    color=color,
                    parent="external" if module.external else "internal",
                    data={
                        "group": True,
                        "isData": spec.lower().endswith(".json"),
                        "library": {"name": spec, "version": module.version, "tags": module.tags},
                    },
                ))
            if api:
                _add_api(graph, lib_id, color, api, None, file_id, call_ids)
            else:
                graph.add_edge(GraphEdge(source=file_id, target=lib_id, color=color))

    for elements in call_elements.values():
        for element in elements.values():
            if isinstance(element, GraphNode):
                graph.add_node(element)
            else:
                graph.add_edge(element)

    _graft_tree(graph, palette, node_modules, None, set())

    graph.nodes, graph.edges = reconcile(graph.nodes, graph.edges)
    return graph.elements()


def _add_file(graph: GraphBuilder, src_path: Path, source: SourceFile, file_id: str) -> None:
    parent_dir = source.path.parent
    is_root_file = parent_dir == src_path
    if not is_root_file:
        _add_folder(graph, src_path, parent_dir)
    graph.add_node(GraphNode(
        id=file_id,
        label=source.path.name,
        parent="files" if is_root_file else str(parent_dir),
        data={
            "group": True,
            "isData": source.is_data,
            "isMain": source.is_main,
            "filePath": str(source.path),
            "size": {"loc": source.loc, "chars": source.chars},
        },
    ))


def _add_folder(graph: GraphBuilder, src_path: Path, directory: Path) -> None:
    # Ancestors are created once, innermost first
    while directory != src_path and str(directory) not in graph:
        upper = directory.parent
        graph.add_node(GraphNode(
            id=str(directory),
            label=f"/{directory.name}",
            parent="files" if upper == src_path else str(upper),
            data={"group": True, "isFolder": True},
        ))
        if upper == directory:
            break
        directory = upper


def _add_api(
    graph: GraphBuilder,
    lib_id: str,
    color: str,
    api: UsageTree,
    parent_name: Optional[str],
    file_id: str,
    call_ids: Set[str],
) -> None:
    for name, usage in api.items():
        member_id = f"{lib_id} | {name}"
        graph.add_node(GraphNode(
            id=member_id,
            label=name,
            color=color,
            parent=lib_id,
            data={"type": "API"},
            symbol=member_id,
        ))
        if parent_name is not None:
            graph.add_edge(GraphEdge(source=f"{lib_id} | {parent_name}", target=member_id, color=color))

        source_ids = [qualify(file_id, raw) for raw in usage.source_ids if raw]
        anchor = next((sid for sid in source_ids if sid in call_ids), file_id)
        graph.add_edge(GraphEdge(
            source=anchor,
            target=member_id,
            data={"sourceIds": list(dict.fromkeys(source_ids)), "nodes": list(usage.nodes)},
        ))
        if usage.children:
            _add_api(graph, lib_id, color, usage.children, name, file_id, call_ids)


def _graft_tree(
    graph: GraphBuilder,
    palette: ColorPalette,
    tree: Dict[str, PackageDependency],
    parent_id: Optional[str],
    expanded: Set[str],
) -> None:
    for name, package in tree.items():
        package_id = package.id
        color = palette.color_for(package_id, inherit=parent_id)
        library = {"name": name, "version": package.version, "tags": list(package.tags)}
        if parent_id is None:
            if package_id not in graph:
                graph.add_node(GraphNode(
                    id=package_id, label=package_id, color=color, parent="unused",
                    data={"group": True, "library": library},
                ))
        else:
            graph.add_node(GraphNode(
                id=package_id, label=package_id, color=color, parent="deps",
                data={"library": library},
            ))
            graph.add_edge(GraphEdge(source=parent_id, target=package_id, color=color))
        if package.dependencies and package_id not in expanded:
            expanded.add(package_id)
            _graft_tree(graph, palette, package.dependencies, package_id, expanded)
