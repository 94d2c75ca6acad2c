"""Call graph extraction: for every invocation, its enclosing definition and its resolved target.

Resolution is heuristic.  A call whose target cannot be determined simply
produces no :class:`~luna_cli.models.CallFact`.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

from .common import resolve_references
from .config import ScanConfig
from .models import CallFact, GraphEdge, GraphNode
from .parser import JsNode
from .scope import CLASS_TYPES, FUNCTION_LITERAL_TYPES

logger = logging.getLogger(__name__)

TOPLEVEL = "(toplevel)"
ANONYMOUS = "(anonymous)"

# Parents of a reference that make it a definition site
_DEFINITION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "variable_declarator",
    "method_definition",
})

_NAME_TYPES = frozenset({
    "identifier", "property_identifier", "private_property_identifier",
    "shorthand_property_identifier", "string", "number",
})


# ===================================================================
# Source / target resolution
# ===================================================================

def find_call_source(node: JsNode) -> Optional[JsNode]:
    """Return the function, method or program that *node* is evaluated in."""
    scope = node.scope
    while scope is not None and scope.type not in ("function", "module") and scope.upper is not None:
        scope = scope.upper
    return scope.block if scope is not None else None


def find_call_definition(call: JsNode) -> Optional[JsNode]:
    """Resolve the definition a ``call_expression`` invokes (first match wins)."""
    callee = _strip_parens(call.field("function"))
    if callee is None:
        return None

    # 1. inline function literal: (function () {})()
    if callee.type in FUNCTION_LITERAL_TYPES:
        return callee

    # 2. name or property access bound to a definition
    if callee.type in ("identifier", "member_expression"):
        ident = callee.field("property") if callee.type == "member_expression" else callee
        for ref in resolve_references(ident):
            if ref.parent is not None and ref.parent.type in _DEFINITION_TYPES:
                return ref.parent

    # 3. this.method() inside a class body
    if callee.type == "member_expression":
        obj = callee.field("object")
        prop = callee.field("property")
        if obj is not None and obj.type == "this" and prop is not None:
            method = _find_method(_enclosing(call, "class_body"), prop.text)
            if method is not None:
                return method

    # 4. callback passed as an argument
    args = call.field("arguments")
    if args is not None:
        for arg in args.children:
            if arg.type in FUNCTION_LITERAL_TYPES:
                return arg

    return None


def _strip_parens(node: Optional[JsNode]) -> Optional[JsNode]:
    while node is not None and node.type == "parenthesized_expression" and node.children:
        node = node.children[0]
    return node


def _enclosing(node: JsNode, node_type: str) -> Optional[JsNode]:
    current = node.parent
    while current is not None:
        if current.type == node_type:
            return current
        current = current.parent
    return None


def _find_method(class_body: Optional[JsNode], name: str) -> Optional[JsNode]:
    if class_body is None:
        return None
    for member in class_body.children:
        if member.type != "method_definition":
            continue
        key = member.field("name")
        if key is not None and key.text == name:
            return member
    return None


# ===================================================================
# Naming
# ===================================================================

def _name_of(node: Optional[JsNode]) -> Optional[str]:
    if node is None or node.type not in _NAME_TYPES:
        return None
    text = node.text
    if node.type == "string" and len(text) >= 2:
        text = text[1:-1]
    return text or None


def _own_name(node: JsNode) -> Optional[str]:
    return _name_of(node.field("name"))


def _enclosing_name(node: JsNode) -> Optional[Tuple[str, JsNode]]:
    """Name synthesized from the construct *node* is assigned to."""
    parent = node.parent
    if parent is None:
        return None
    name: Optional[str] = None
    if parent.type == "variable_declarator":
        name = _name_of(parent.field("name"))
    elif parent.type == "pair":
        name = _name_of(parent.field("key"))
    elif parent.type == "field_definition":
        name = _name_of(parent.field("property"))
    elif parent.type == "assignment_expression":
        left = parent.field("left")
        if left is not None and left.type == "member_expression":
            left = left.field("property")
        name = _name_of(left)
    if name is None:
        return None
    return name, parent


def _raw_id(label: str, node: JsNode) -> str:
    return f"{label}-{node.start}-{node.end}"


def call_source_names(source: JsNode) -> Tuple[str, str]:
    """Return ``(source_id, source_label)`` for a call source."""
    if source.type == "program":
        return _raw_id(TOPLEVEL, source), TOPLEVEL
    name = _own_name(source)
    if name is not None:
        return _raw_id(name, source), name
    enclosing = _enclosing_name(source)
    if enclosing is not None:
        name, named_node = enclosing
        return _raw_id(name, named_node), name
    return _raw_id(ANONYMOUS, source), ANONYMOUS


def call_target_names(target: JsNode) -> Tuple[str, str]:
    """Return ``(target_id, target_label)`` for a call target."""
    label = _own_name(target) or ANONYMOUS
    return _raw_id(label, target), label


# ===================================================================
# Extraction
# ===================================================================

def extract_calls(nodes: List[JsNode], config: ScanConfig) -> List[CallFact]:
    """Extract every resolvable call of one file."""
    if not config.components.call_graph:
        return []

    facts: List[CallFact] = []
    for node in nodes:
        if node.type == "call_expression":
            fact = _make_fact(find_call_source(node), find_call_definition(node), node)
            if fact is not None:
                facts.append(fact)
        elif node.type == "class_declaration":
            body = node.field("body")
            if body is None:
                continue
            for member in body.children:
                if member.type == "method_definition":
                    facts.append(_make_fact(node, member, member))
    return facts


def _make_fact(source: Optional[JsNode], target: Optional[JsNode], site: JsNode) -> Optional[CallFact]:
    if source is None or target is None:
        return None
    source_id, source_label = call_source_names(source)
    target_id, target_label = call_target_names(target)
    return CallFact(
        source_id=source_id,
        source_label=source_label,
        target_id=target_id,
        target_label=target_label,
        caller=site.position(),
        source_type="Class" if source.type in CLASS_TYPES else "Function call",
    )


def qualify(file_id: str, raw_id: str) -> str:
    """Project-unique id of a file-local call node."""
    return f"{file_id} | {raw_id}"


def calls_to_graph(facts: List[CallFact], file_id: str) -> Dict[str, Union[GraphNode, GraphEdge]]:
    """Turn one file's facts into its id-keyed map of call nodes and edges.

    Every node carries the symbol key ``"<file> | <label>"`` so that it can
    later be unified with an API-usage node describing the same symbol.
    """
    elements: Dict[str, Union[GraphNode, GraphEdge]] = {}
    for fact in facts:
        source_id = qualify(file_id, fact.source_id)
        target_id = qualify(file_id, fact.target_id)
        if source_id not in elements:
            elements[source_id] = GraphNode(
                id=source_id,
                label=fact.source_label,
                parent=file_id,
                data={"caller": fact.caller, "type": fact.source_type},
                symbol=f"{file_id} | {fact.source_label}",
            )
        if target_id not in elements:
            elements[target_id] = GraphNode(
                id=target_id,
                label=fact.target_label,
                parent=file_id,
                data={"caller": fact.caller, "type": "Function call"},
                symbol=f"{file_id} | {fact.target_label}",
            )
        edge = GraphEdge(source=source_id, target=target_id, data={"caller": fact.caller})
        elements.setdefault(edge.id, edge)
    return elements
