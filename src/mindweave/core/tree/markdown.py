"""Render node subtrees as markdown."""

import io
from collections.abc import Collection

from mindweave.core.store import GraphStore
from mindweave.models.node import Node


def render_subtree_as_markdown(
    store: GraphStore,
    node_id: str | None = None,
    *,
    max_depth: int | None = None,
    include_content: bool = True,
    collapsed: Collection[str] | None = None,
) -> str:
    """Render a node and its descendants as indented markdown.

    Args:
        store: Store holding the active document.
        node_id: The node to start rendering from (None = every root).
        max_depth: Max levels below the start node to include (None = unlimited).
        include_content: Whether to include node content under the title.
        collapsed: Ids whose children are hidden, as in the outline view.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    if node_id is None:
        starts = store.get_root_nodes()
    else:
        start = store.get_node(node_id)
        if start is None:
            return ""
        starts = [start]

    hidden = set(collapsed or ())
    out = io.StringIO()
    # Explicit stack: documents can be deeper than the recursion limit.
    stack: list[tuple[Node, int]] = [(n, 0) for n in reversed(starts)]
    while stack:
        node, depth = stack.pop()
        indent = "    " * depth

        side = f" ({node.side})" if node.side is not None else ""
        lines = node.title.split("\n")
        out.write(f"{indent}- {lines[0]}{side}\n")
        for line in lines[1:]:
            out.write(f"{indent}  {line}\n")

        if include_content and node.content:
            for content_line in node.content.split("\n"):
                out.write(f"{indent}  > {content_line}\n")

        children = store.get_children(node.id)
        if not children:
            continue

        child_indent = "    " * (depth + 1)
        noun = "child" if len(children) == 1 else "children"
        if node.id in hidden:
            out.write(f"{child_indent}- ... ({len(children)} collapsed {noun}, id={node.id})\n")
            continue
        # Truncation indicator when children are cut off by max_depth
        if max_depth is not None and depth >= max_depth:
            out.write(f"{child_indent}- ... ({len(children)} more {noun}, id={node.id})\n")
            continue
        stack.extend((child, depth + 1) for child in reversed(children))

    return out.getvalue()
