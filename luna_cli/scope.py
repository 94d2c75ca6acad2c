"""Lexical scope and binding resolution over the flattened JavaScript AST.

Mirrors what ``eslint-scope`` provides for ESTree: every node gets the
innermost :class:`Scope` enclosing it, every declared or referencing
identifier gets its :class:`Binding`.  Identifiers with no declaration in
any enclosing scope (``require``, ``module``, ``__dirname``, undeclared
globals) are left unbound.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

if TYPE_CHECKING:
    from .parser import JsNode

logger = logging.getLogger(__name__)

FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",  # tree-sitter-javascript < 0.21
    "generator_function",
    "arrow_function",
    "method_definition",
})

FUNCTION_LITERAL_TYPES = frozenset({
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
})

CLASS_TYPES = frozenset({"class_declaration", "class"})

_BLOCK_TYPES = frozenset({
    "statement_block", "for_statement", "for_in_statement", "switch_statement",
    "class_static_block",
})

REFERENCE_TYPES = frozenset({"identifier", "shorthand_property_identifier"})


class Binding:
    """A declared name and every identifier that reads or writes it."""

    def __init__(self, name: str, scope: "Scope") -> None:
        self.name = name
        self.scope = scope
        self.declarations: List[JsNode] = []
        self.references: List[JsNode] = []

    @property
    def declaration(self) -> Optional["JsNode"]:
        return self.declarations[0] if self.declarations else None

    def __repr__(self) -> str:
        return f"Binding({self.name!r}, refs={len(self.references)})"


class Scope:
    def __init__(self, scope_type: str, block: "JsNode", upper: Optional["Scope"]) -> None:
        self.type = scope_type
        self.block = block
        self.upper = upper
        self.variables: Dict[str, Binding] = {}

    def declare(self, name_node: "JsNode") -> Binding:
        name = name_node.text
        binding = self.variables.get(name)
        if binding is None:
            binding = Binding(name, self)
            self.variables[name] = binding
        binding.declarations.append(name_node)
        name_node.binding = binding
        return binding

    def lookup(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.upper
        return None

    def variable_scope(self) -> "Scope":
        """Nearest scope that ``var`` declarations hoist to."""
        scope = self
        while scope.type not in ("function", "module") and scope.upper is not None:
            scope = scope.upper
        return scope

    def __repr__(self) -> str:
        return f"Scope({self.type}, {self.block!r})"


def analyze_scopes(nodes: List["JsNode"]) -> None:
    """Attach scopes and bindings to a pre-order node list, in place.

    Declarations are collected in a first pass so that hoisted ``var`` and
    function declarations resolve regardless of source order; references
    are resolved in a second pass.
    """
    declared: Set[int] = set()

    for node in nodes:
        outer = node.parent.scope if node.parent is not None else None
        node.scope = _scope_for(node, outer)
        _declare(node, outer, declared)

    for node in nodes:
        if node.type not in REFERENCE_TYPES or node.index in declared:
            continue
        if not _is_reference_position(node):
            continue
        binding = node.scope.lookup(node.text) if node.scope is not None else None
        if binding is None:
            continue
        binding.references.append(node)
        node.binding = binding


def _scope_for(node: "JsNode", outer: Optional[Scope]) -> Optional[Scope]:
    if node.type == "program":
        return Scope("module", node, None)
    if node.type in FUNCTION_TYPES:
        return Scope("function", node, outer)
    if node.type in CLASS_TYPES:
        return Scope("class", node, outer)
    if node.type == "catch_clause":
        return Scope("catch", node, outer)
    if node.type in _BLOCK_TYPES:
        # A function body shares the function's scope
        if node.type == "statement_block" and node.parent is not None and node.parent.type in FUNCTION_TYPES:
            return outer
        return Scope("block", node, outer)
    return outer


def _declare(node: "JsNode", outer: Optional[Scope], declared: Set[int]) -> None:
    node_type = node.type
    scope = node.scope

    def bind(target: Optional[Scope], names: Iterable["JsNode"]) -> None:
        if target is None:
            return
        for name_node in names:
            target.declare(name_node)
            declared.add(name_node.index)

    if node_type in ("function_declaration", "generator_function_declaration", "class_declaration"):
        bind(outer, _identifier(node.field("name")))
    elif node_type in ("function_expression", "function", "generator_function", "class"):
        bind(scope, _identifier(node.field("name")))

    if node_type in FUNCTION_TYPES:
        params = node.field("parameters") or node.field("parameter")
        if params is not None:
            bind(scope, pattern_names(params))
    elif node_type == "variable_declarator":
        kind = declaration_kind(node.parent)
        target = scope.variable_scope() if (kind == "var" and scope is not None) else scope
        bind(target, pattern_names(node.field("name")))
    elif node_type == "for_in_statement" and "kind" in node.attrs:
        target = scope.variable_scope() if node.attrs["kind"] == "var" else scope
        bind(target, pattern_names(node.field("left")))
    elif node_type == "catch_clause":
        bind(scope, pattern_names(node.field("parameter")))
    elif node_type in ("import_clause", "namespace_import"):
        bind(_module_scope(scope), [c for c in node.children if c.type == "identifier"])
    elif node_type == "import_specifier":
        local = node.field("alias") or node.field("name")
        if local is not None and local.type == "identifier":
            bind(_module_scope(scope), [local])


def _identifier(node: Optional["JsNode"]) -> List["JsNode"]:
    return [node] if node is not None and node.type == "identifier" else []


def _module_scope(scope: Optional[Scope]) -> Optional[Scope]:
    while scope is not None and scope.upper is not None:
        scope = scope.upper
    return scope


def declaration_kind(declaration: Optional["JsNode"]) -> str:
    """``var``, ``let`` or ``const`` for a (lexical|variable)_declaration."""
    if declaration is None or declaration.type == "variable_declaration":
        return "var"
    kind = declaration.attrs.get("kind")
    if kind:
        return kind
    return "const" if declaration.text.startswith("const") else "let"


def pattern_names(pattern: Optional["JsNode"]) -> List["JsNode"]:
    """Every identifier bound by a declaration target or parameter list."""
    if pattern is None:
        return []
    ptype = pattern.type
    if ptype in ("identifier", "shorthand_property_identifier_pattern"):
        return [pattern]
    if ptype == "pair_pattern":
        return pattern_names(pattern.field("value"))
    if ptype in ("object_assignment_pattern", "assignment_pattern"):
        return pattern_names(pattern.field("left"))
    if ptype in ("object_pattern", "array_pattern", "rest_pattern", "formal_parameters"):
        names: List[JsNode] = []
        for child in pattern.children:
            names.extend(pattern_names(child))
        return names
    return []


def _is_reference_position(node: "JsNode") -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "import_specifier":
        # ``import { remote as local }``: the remote name is not a local reference
        return False
    if parent.type == "export_specifier" and parent.field("alias") is node:
        return False
    return True
