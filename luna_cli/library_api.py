"""Library API discovery: how the value bound by an import or ``require`` is used.

Every ``import`` statement and ``require(...)`` call produces a usage tree
for its specifier.  A usage tree maps member names to
:class:`~luna_cli.models.LibraryUsage` records.  The records nest for
members that are used further (``fs.promises.readFile``), and carry
the call-source ids of every place the member was referenced.

Supported shapes::

    require("x").member            # property access
    const { a, b: c } = require("x")   # destructuring (renamed binding wins)
    const x = require("x"); x.a(); x()  # plain binding, followed through references
    const i = new (require("x"))()      # instantiation -> "(instance)"
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Set

from .call_graph import call_source_names, find_call_source
from .common import resolve_references, stringify
from .config import ScanConfig
from .models import LibraryUsage
from .parser import JsNode

logger = logging.getLogger(__name__)

UsageTree = Dict[str, LibraryUsage]

INSTANCE = "(instance)"


def reference_name(name: str) -> str:
    """Synthetic member for a library value that is itself called."""
    return f'(reference)\nas "{name}"'


# ===================================================================
# Discovery
# ===================================================================

def discover_api(
    parent: Optional[JsNode],
    api: Optional[UsageTree] = None,
    visited: Optional[Set[int]] = None,
    node: Optional[JsNode] = None,
) -> UsageTree:
    """Classify how *node* is used by its *parent* and record it into *api*.

    *visited* holds the indexes of nodes whose references were already
    followed; it is shared by the whole traversal of one binding.
    """
    api = {} if api is None else api
    visited = set() if visited is None else visited
    if parent is None:
        return api

    handler = _HANDLERS.get(parent.type)
    if handler is None or not handler(parent, node, api, visited):
        logger.debug("No library API shape for %r (used as %r)", parent, node)
    return api


def _member_access(parent: JsNode, node: Optional[JsNode], api: UsageTree, visited: Set[int]) -> bool:
    if node is not None and parent.field("object") is not node:
        return False
    prop = parent.field("property")
    if prop is None or prop.type not in ("property_identifier", "private_property_identifier"):
        # computed access: lib[name]
        return False
    usage = _add_member(api, prop.text, prop, visited)
    # The accessed member is itself a value that can be used further
    if parent.index not in visited:
        visited.add(parent.index)
        discover_api(parent.parent, usage.children, visited, parent)
    return True


def _declarator(parent: JsNode, node: Optional[JsNode], api: UsageTree, visited: Set[int]) -> bool:
    if node is not None and parent.field("value") is not node:
        return False
    target = parent.field("name")
    if target is None:
        return False
    if target.type == "object_pattern":
        _destructure(target, api, visited)
        return True
    if target.type == "identifier":
        _follow_binding(target, api, visited)
        return True
    return False


def _assignment(parent: JsNode, node: Optional[JsNode], api: UsageTree, visited: Set[int]) -> bool:
    if node is not None and parent.field("right") is not node:
        return False
    left = parent.field("left")
    if left is None or left.type != "identifier":
        return False
    _follow_binding(left, api, visited)
    return True


def _instantiation(parent: JsNode, node: Optional[JsNode], api: UsageTree, visited: Set[int]) -> bool:
    if node is not None and parent.field("constructor") is not node:
        return False
    holder = parent.parent
    if holder is None:
        return False
    if holder.type == "variable_declarator":
        name = holder.field("name")
        if name is not None and name.type == "identifier":
            _add_member(api, INSTANCE, name, visited)
            return True
    elif holder.type == "assignment_expression":
        left = holder.field("left")
        prop = left.field("property") if left is not None and left.type == "member_expression" else None
        if prop is not None and prop.type == "property_identifier":
            _add_member(api, INSTANCE, prop, visited)
            return True
    return False


def _parenthesized(parent: JsNode, node: Optional[JsNode], api: UsageTree, visited: Set[int]) -> bool:
    # (require("x")).member, new (require("x"))()
    discover_api(parent.parent, api, visited, parent)
    return True


_HANDLERS = {
    "member_expression": _member_access,
    "variable_declarator": _declarator,
    "assignment_expression": _assignment,
    "new_expression": _instantiation,
    "parenthesized_expression": _parenthesized,
}


def _destructure(pattern: JsNode, api: UsageTree, visited: Set[int]) -> None:
    for prop in pattern.children:
        if prop.type == "shorthand_property_identifier_pattern":
            _add_member(api, prop.text, prop, visited)
        elif prop.type == "object_assignment_pattern":
            left = prop.field("left")
            if left is not None:
                _add_member(api, left.text, left, visited)
        elif prop.type == "pair_pattern":
            key = prop.field("key")
            value = prop.field("value")
            if value is not None and value.type == "assignment_pattern":
                value = value.field("left")
            if value is not None and value.type == "identifier":
                _add_member(api, value.text, value, visited)
            elif key is not None:
                # nested pattern: only the key is recorded
                _add_member(api, _key_text(key), key, visited)
        else:
            logger.debug("Skipping destructured element %r", prop)


def _key_text(key: JsNode) -> str:
    text = key.text
    if key.type == "string" and len(text) >= 2:
        return text[1:-1]
    return text


def _follow_binding(ident: JsNode, api: UsageTree, visited: Set[int]) -> None:
    """Follow every reference of a variable holding the library value."""
    if ident.index in visited:
        return
    visited.add(ident.index)

    called = False
    for ref in resolve_references(ident):
        ref_parent = ref.parent
        if ref_parent is None:
            continue
        if not called and ref_parent.type == "call_expression" and ref_parent.field("function") is ref:
            _record(api, reference_name(ident.text), ident)
            called = True
        if ref.index in visited:
            continue
        visited.add(ref.index)
        discover_api(ref_parent, api, visited, ref)


def _source_id(node: JsNode) -> str:
    source = find_call_source(node)
    if source is None:
        return ""
    return call_source_names(source)[0]


def _record(api: UsageTree, name: str, node: JsNode) -> LibraryUsage:
    usage = api.get(name)
    if usage is None:
        usage = LibraryUsage(name=name)
        api[name] = usage
    usage.source_ids.append(_source_id(node))
    usage.nodes.append(node.position())
    for ref in resolve_references(node):
        usage.source_ids.append(_source_id(ref))
    return usage


def _add_member(api: UsageTree, name: str, node: JsNode, visited: Set[int]) -> LibraryUsage:
    """Record member *name* at *node* and classify the uses of its references."""
    usage = _record(api, name, node)
    for ref in resolve_references(node):
        if ref.index in visited:
            continue
        visited.add(ref.index)
        discover_api(ref.parent, usage.children, visited, ref)
    return usage


def _discover_import(statement: JsNode) -> UsageTree:
    api: UsageTree = {}
    for clause in statement.children:
        if clause.type != "import_clause":
            continue
        for part in clause.children:
            if part.type == "identifier":
                # default import
                _follow_binding(part, api, set())
            elif part.type == "namespace_import":
                for ident in part.children:
                    if ident.type == "identifier":
                        _follow_binding(ident, api, set())
            elif part.type == "named_imports":
                for spec in part.children:
                    if spec.type != "import_specifier":
                        continue
                    local = spec.field("alias") or spec.field("name")
                    if local is not None:
                        _add_member(api, _key_text(local), local, set())
    return api


def _set_library(api: UsageTree, library: str) -> None:
    for usage in api.values():
        usage.library = library
        _set_library(usage.children, library)


# ===================================================================
# Extraction
# ===================================================================

def _is_require(call: JsNode) -> bool:
    callee = call.field("function")
    if callee is None:
        return False
    return callee.type == "import" or (callee.type == "identifier" and callee.text == "require")


def _first_argument(call: JsNode) -> Optional[JsNode]:
    args = call.field("arguments")
    if args is None or args.type != "arguments" or not args.children:
        return None
    return args.children[0]


def _normalize_specifier(name: str, file_path: str, src_path: Optional[str]) -> str:
    if name.startswith("."):
        name = os.path.normpath(os.path.join(os.path.dirname(file_path), name))
    if src_path and src_path in name:
        name = os.path.normpath(name)
    return name


def extract_libs(
    nodes: List[JsNode],
    file_path: str,
    src_path: Optional[str],
    config: ScanConfig,
) -> Dict[str, UsageTree]:
    """Map every library specifier of one file to its usage tree."""
    if not config.components.library_api:
        return {}

    libs: Dict[str, UsageTree] = {}

    def save(name: str, api: UsageTree) -> None:
        if name.lower().endswith(".json"):
            libs[name] = {}
            return
        merged = libs.setdefault(name, {})
        for member, usage in api.items():
            if member in merged:
                merged[member].source_ids.extend(usage.source_ids)
                merged[member].nodes.extend(usage.nodes)
                merged[member].children.update(usage.children)
            else:
                merged[member] = usage
        _set_library(merged, name)

    for node in nodes:
        if node.type == "import_statement":
            name = stringify(node.field("source"))
            if not name:
                logger.debug("Unable to determine library name from import %r (skipping)", node)
                continue
            save(name, {} if name.lower().endswith(".json") else _discover_import(node))
        elif node.type == "call_expression" and _is_require(node):
            name = stringify(_first_argument(node), src_path)
            if not name:
                logger.debug("Unable to determine library name from require %r (skipping)", node)
                continue
            name = _normalize_specifier(name, file_path, src_path)
            if name.lower().endswith(".json"):
                save(name, {})
            else:
                save(name, discover_api(node.parent, {}, set(), node))
    return libs
