"""Graph export helpers for the standalone HTML report and JSON element lists."""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Any, Dict, List

from . import __version__

REPORT_FILE = "luna.html"
JSON_FILE = "luna.json"


def report_title(name: str, version: str, fallback: str) -> str:
    """``name@version``, or *fallback* when the project has no name."""
    title = name or fallback
    return f"{title}@{version}" if version else title


def export_json(elements: List[Dict[str, Any]], output_file: Path, focus: str = "") -> Path:
    selected = focused_subgraph(elements, focus)
    output_file.write_text(json.dumps(selected, indent=2), encoding="utf-8")
    return output_file


def export_html(elements: List[Dict[str, Any]], output_file: Path, title: str, focus: str = "") -> Path:
    """Export graph to an interactive HTML report rendered with Cytoscape.js."""
    selected = focused_subgraph(elements, focus)

    # Load interactive template
    template_path = Path(__file__).parent / "templates" / "report.html"

    if template_path.exists():
        template = template_path.read_text(encoding="utf-8")
        # Inject graph data
        doc = (
            template.replace("{{ TITLE }}", html.escape(title))
            .replace("{{ VERSION }}", __version__)
            .replace("{{ GRAPH_DATA }}", _script_json(selected))
        )
    else:
        # Fallback to basic HTML if template not found
        doc = _basic_html_export(selected, title)

    output_file.write_text(doc, encoding="utf-8")
    return output_file


def _script_json(payload: Any) -> str:
    # Safe inside a <script> element
    return json.dumps(payload).replace("</", "<\\/")


def _basic_html_export(elements: List[Dict[str, Any]], title: str) -> str:
    """Fallback basic HTML export."""
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>LUNA | {html.escape(title)}</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; white-space: pre-wrap; }}
  </style>
</head>
<body>
  <h1>{html.escape(title)}</h1>
  <div id="container">
    <div class="panel">
      <h2>Nodes</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Edges</h2>
      <ul id="edges"></ul>
    </div>
  </div>
  <script>
    const elements = {_script_json(elements)};
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    elements.forEach(e => {{
      const li = document.createElement('li');
      if (e.data.source !== undefined) {{
        li.textContent = `${{e.data.source}} --> ${{e.data.target}}`;
        edgesEl.appendChild(li);
      }} else {{
        li.textContent = `${{e.data.id}} (${{e.data.parent || '-'}})`;
        nodesEl.appendChild(li);
      }}
    }});
  </script>
</body>
</html>
"""


def focused_subgraph(elements: List[Dict[str, Any]], focus: str) -> List[Dict[str, Any]]:
    """Restrict *elements* to nodes matching *focus*, their neighbours and ancestors.

    Without a focus, or when nothing matches, every element is kept.
    """
    if not focus:
        return list(elements)

    nodes = {e["data"]["id"]: e for e in elements if "source" not in e["data"]}
    edges = [e for e in elements if "source" in e["data"]]

    focus_ids = {
        node_id
        for node_id, node in nodes.items()
        if focus in node_id or focus in str(node["data"].get("label", ""))
    }

    if not focus_ids:
        return list(elements)

    edge_subset = [
        e for e in edges
        if e["data"]["source"] in focus_ids or e["data"]["target"] in focus_ids
    ]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.add(e["data"]["source"])
        node_subset.add(e["data"]["target"])

    # Compound parents must exist for the children to render
    for node_id in list(node_subset):
        parent = nodes.get(node_id, {}).get("data", {}).get("parent")
        while parent and parent not in node_subset and parent in nodes:
            node_subset.add(parent)
            parent = nodes[parent]["data"].get("parent")

    return [e for e in nodes.values() if e["data"]["id"] in node_subset] + [
        e for e in edge_subset
        if e["data"]["source"] in nodes and e["data"]["target"] in nodes
    ]
