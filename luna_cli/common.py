"""Reference following and best-effort string reconstruction shared by all extractors."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .parser import JsNode

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"#[^#\s]+#")

_STRING_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0",
}


def resolve_references(node: Optional[JsNode]) -> List[JsNode]:
    """Return every other node that refers to the same binding as *node*.

    References come in source order, followed by the declaration(s).  The
    node itself is excluded.  A missing node, a non-identifier or an
    identifier without binding information yields an empty list.
    """
    if node is None:
        logger.debug("resolve_references called without a node")
        return []
    binding = node.binding
    if binding is None:
        return []

    result: List[JsNode] = []
    seen = {(node.type, node.start, node.end)}
    for ref in list(binding.references) + list(binding.declarations):
        key = (ref.type, ref.start, ref.end)
        if key in seen:
            continue
        seen.add(key)
        result.append(ref)
    return result


def stringify(node: Optional[JsNode], src_path: Optional[str] = None) -> str:
    """Evaluate a literal-ish expression into a string.

    Supports string literals, template strings, ``+`` concatenation,
    parentheses and ``__dirname`` (replaced by *src_path* when given).
    Any other identifier becomes the ``#name#`` placeholder; anything else
    contributes an empty string.
    """
    if node is None:
        return ""

    node_type = node.type
    if node_type == "string":
        return _string_literal(node)
    if node_type == "template_string":
        return _template_literal(node, src_path)
    if node_type == "identifier":
        if node.text == "__dirname" and src_path:
            return src_path
        return f"#{node.text}#"
    if node_type == "binary_expression":
        return stringify(node.field("left"), src_path) + stringify(node.field("right"), src_path)
    if node_type == "parenthesized_expression" and node.children:
        return stringify(node.children[0], src_path)
    if node_type in ("number", "true", "false", "null"):
        return node.text
    return ""


def is_dynamic(value: str) -> bool:
    """True when *value* still holds an unresolved ``#name#`` placeholder."""
    return bool(_PLACEHOLDER_RE.search(value))


def _string_literal(node: JsNode) -> str:
    raw = node.text
    if len(raw) >= 2 and raw[0] in "'\"" and raw[-1] == raw[0]:
        raw = raw[1:-1]
    return _unescape(raw)


def _template_literal(node: JsNode, src_path: Optional[str]) -> str:
    # Raw text between substitutions, substitutions evaluated, in source order
    pieces: List[str] = []
    cursor = node.start + 1  # skip the opening backtick
    for child in node.children:
        if child.type != "template_substitution":
            continue
        pieces.append(node.source_slice(cursor, child.start))
        inner = child.children[0] if child.children else None
        pieces.append(stringify(inner, src_path))
        cursor = child.end
    pieces.append(node.source_slice(cursor, node.end - 1))
    return "".join(pieces)


def _unescape(raw: str) -> str:
    if "\\" not in raw:
        return raw
    out: List[str] = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw):
            nxt = raw[i + 1]
            out.append(_STRING_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
