"""Output format routing for walletgraph.

Render sinks for the graph tree. Each takes plain dicts (a session view from
`GraphSession.to_dict()`, a bare node dict, or any other result dict) and
returns a string; the caller writes to stdout.

Design rules:
- JSON: 2-space indent, nested children, utf-8
- JSONL: one node per line, pre-order, children replaced by depth/parentId
- CSV: one row per node, header row always present
- Tree: Rich tree, yellow=expanded address, magenta=collapsed, ⟳=fetch in flight
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterator
from decimal import Decimal
from typing import Any

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

VALID_FORMATS = {"json", "jsonl", "csv", "tree"}

CSV_COLUMNS = [
    "id",
    "type",
    "displayName",
    "parentId",
    "depth",
    "hash",
    "address",
    "feeDisplay",
    "timestamp",
    "direction",
    "isExpandable",
    "isExpanded",
    "isFetching",
]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal values."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


def format_output(data: Any, fmt: str, color: bool = False) -> str:
    """
    Format data for stdout output.

    Args:
        data: Session view, node dict, or any JSON-serialisable value.
        fmt: "json" | "jsonl" | "csv" | "tree"
        color: Emit ANSI styles (tree format only).

    Returns:
        Formatted string ready to write to stdout.

    Raises:
        ValueError: If fmt is not a recognised format.
    """
    fmt = fmt.lower()
    if fmt not in VALID_FORMATS:
        raise ValueError(f"Unknown format {fmt!r}. Valid: {sorted(VALID_FORMATS)}")

    if fmt == "json":
        return format_json(data)
    elif fmt == "jsonl":
        return format_jsonl(data)
    elif fmt == "csv":
        return format_csv(data)
    elif fmt == "tree":
        return format_tree(data, color=color)

    return format_json(data)  # fallback


def iter_flat_nodes(
    node: dict[str, Any], depth: int = 0, parent_id: str | None = None
) -> Iterator[dict[str, Any]]:
    """Flatten a node dict pre-order; children become depth/parentId fields."""
    flat = {k: v for k, v in node.items() if k != "children"}
    flat["depth"] = depth
    flat["parentId"] = parent_id
    yield flat
    for child in node.get("children", []):
        yield from iter_flat_nodes(child, depth + 1, node.get("id"))


def _root_node(data: Any) -> dict[str, Any] | None:
    if isinstance(data, dict) and isinstance(data.get("graph"), dict):
        return data["graph"]
    if isinstance(data, dict) and "id" in data and "children" in data:
        return data
    return None


# ── JSON ─────────────────────────────────────────────────────────────────────


def format_json(data: Any) -> str:
    """Pretty-print data as JSON (2-space indent)."""
    return json.dumps(data, indent=2, cls=DecimalEncoder, ensure_ascii=False)


# ── JSONL ────────────────────────────────────────────────────────────────────


def format_jsonl(data: Any) -> str:
    """
    Format as JSONL.

    A session view emits a `session` header line followed by one line per
    node. Lists emit one line per item; anything else a single line.
    """
    lines: list[str] = []
    root = _root_node(data)

    if root is not None:
        if "graph" in data:
            header = {k: v for k, v in data.items() if k != "graph"}
            header["type"] = "session"
            lines.append(json.dumps(header, cls=DecimalEncoder))
        for flat in iter_flat_nodes(root):
            lines.append(json.dumps(flat, cls=DecimalEncoder))

    elif isinstance(data, list):
        for item in data:
            lines.append(json.dumps(item, cls=DecimalEncoder))

    else:
        lines.append(json.dumps(data, cls=DecimalEncoder))

    return "\n".join(lines)


# ── CSV ──────────────────────────────────────────────────────────────────────


def format_csv(data: Any) -> str:
    """
    Format as CSV with a header row.

    Graphs produce one row per node with CSV_COLUMNS; other data falls back
    to a single JSON-encoded value cell.
    """
    buf = io.StringIO()
    writer = csv.writer(buf)

    root = _root_node(data)
    if root is None:
        writer.writerow(["value"])
        writer.writerow([json.dumps(data, cls=DecimalEncoder)])
        return buf.getvalue()

    writer.writerow(CSV_COLUMNS)
    for flat in iter_flat_nodes(root):
        writer.writerow([_csv_cell(flat.get(col)) for col in CSV_COLUMNS])

    return buf.getvalue()


def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return float(value)
    return value


# ── Tree ─────────────────────────────────────────────────────────────────────


def format_tree(data: Any, color: bool = False) -> str:
    """Render the graph as a Rich tree. Non-graph data is printed as JSON."""
    buf = io.StringIO()
    console = Console(
        file=buf,
        highlight=False,
        markup=True,
        width=120,
        color_system="standard" if color else None,
    )

    root = _root_node(data)
    if root is None:
        console.print_json(json.dumps(data, cls=DecimalEncoder))
        return buf.getvalue()

    tree = Tree(_node_label(root))
    _add_children(tree, root)
    console.print(tree)

    if isinstance(data, dict) and "graph" in data:
        console.print(
            f"Page [bold]{data.get('page', 1)}[/bold] of "
            f"[bold]{data.get('total_pages', 1)}[/bold]  "
            f"Transactions: [bold]{data.get('transaction_count', 0)}[/bold]"
        )
        if data.get("error"):
            console.print(f"[yellow]{data['error']}[/yellow]")

    return buf.getvalue()


def _add_children(branch: Tree, node: dict[str, Any]) -> None:
    for child in node.get("children", []):
        sub = branch.add(_node_label(child))
        _add_children(sub, child)


def _expand_marker(node: dict[str, Any]) -> str:
    if not node.get("isExpandable"):
        return "•"
    return "▾" if node.get("isExpanded") else "▸"


def _node_label(node: dict[str, Any]) -> Text:
    kind = node.get("type", "")
    name = node.get("displayName", node.get("id", ""))

    if kind == "wallet":
        label = Text(name, style="bold blue")
    elif kind == "transaction":
        label = Text(f"{_expand_marker(node)} {name}", style="green")
        if node.get("feeDisplay"):
            label.append(f"  Fee: {node['feeDisplay']}", style="dim")
        if node.get("direction"):
            label.append(f"  ({node['direction']})", style="italic")
    elif kind == "token-transfer":
        label = Text(name, style="cyan")
    elif kind == "address":
        style = "yellow" if node.get("isExpanded") else "magenta"
        label = Text(f"{_expand_marker(node)} {name}", style=style)
    else:
        label = Text(str(name))

    if node.get("isFetching"):
        label.append("  ⟳ loading", style="bold")
    return label


# ── Utility ──────────────────────────────────────────────────────────────────


def mask_api_key(key: str) -> str:
    """
    Mask an API key for safe display.

    'abcdefg123' → 'abcd****'
    '' → '****'
    """
    if not key:
        return "****"
    if len(key) <= 4:
        return "****"
    return key[:4] + "****"
