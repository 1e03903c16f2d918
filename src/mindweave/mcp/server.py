"""MCP server exposing mind-map reading and editing tools."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from mindweave.config import resolve_document_path
from mindweave.core.persistence.snapshot import SnapshotFile
from mindweave.core.tree.markdown import render_subtree_as_markdown
from mindweave.core.tree.orientation import apply_orientation
from mindweave.core.workspace import Workspace
from mindweave.models.node import Node, OrientationMode, Side, SpatialView
from mindweave.protocols import PersistenceProtocol


def _breadcrumbs_str(ws: Workspace, node_id: str) -> str:
    ancestors = ws.store.get_ancestors(node_id)
    return " > ".join(a.title[:40] for a in reversed(ancestors))


def _position(node: Node, view: SpatialView) -> dict[str, float] | None:
    pos = node.positions.get(view)
    return {"x": round(pos.x, 1), "y": round(pos.y, 1)} if pos else None


def _node_not_found(node_id: str) -> dict[str, Any]:
    return {"error": f"Node '{node_id}' not found."}


# --- Core functions (testable without MCP context) ---


def mindmap_read_outline(
    ws: Workspace,
    *,
    node_id: str | None = None,
    max_depth: int | None = None,
    include_content: bool = True,
) -> dict[str, Any]:
    """Read the document (or one subtree) as an indented markdown outline.

    Args:
        node_id: Node to start from (None = whole document).
        max_depth: Max depth levels to include (None = unlimited).
        include_content: Include node content under titles.
    """
    if node_id is not None and ws.store.get_node(node_id) is None:
        return _node_not_found(node_id)

    md = render_subtree_as_markdown(
        ws.store,
        node_id,
        max_depth=max_depth,
        include_content=include_content,
        collapsed=ws.selection.collapsed_ids,
    )
    estimated_tokens = len(md) // 4
    result: dict[str, Any] = {
        "content": md,
        "node_count": ws.store.node_count(),
        "estimated_tokens": estimated_tokens,
    }
    if node_id is not None:
        result["breadcrumbs"] = _breadcrumbs_str(ws, node_id)
    if estimated_tokens > 5000:
        result["warning"] = (
            f"Large result (~{estimated_tokens} tokens). Consider using max_depth to limit output."
        )
    return result


def mindmap_get_node(ws: Workspace, *, node_id: str) -> dict[str, Any]:
    """Get a node with its breadcrumbs, side, positions and direct children."""
    node = ws.store.get_node(node_id)
    if node is None:
        return _node_not_found(node_id)

    return {
        "node": {
            "id": node.id,
            "title": node.title,
            "content": node.content,
            "parent_id": node.parent_id,
            "order": node.order,
            "depth": ws.store.get_depth(node_id),
            "side": None if node.side is None else str(node.side),
            "expanded": ws.selection.is_expanded(node_id),
            "positions": {str(view): _position(node, view) for view in SpatialView},
            "modified": node.modified,
        },
        "breadcrumbs": _breadcrumbs_str(ws, node_id),
        "children": [
            {"id": c.id, "title": c.title[:80], "child_count": len(ws.store.get_children(c.id))}
            for c in ws.store.get_children(node_id)
        ],
    }


def mindmap_add_node(
    ws: Workspace,
    *,
    title: str,
    parent_id: str | None = None,
    content: str = "",
) -> dict[str, Any]:
    """Add a node under ``parent_id`` (None = new root), placed in free space."""
    node = ws.create_node(parent_id, title, content)
    if node is None:
        return _node_not_found(parent_id or "")
    return {
        "node_id": node.id,
        "parent_id": node.parent_id,
        "order": node.order,
        "position": _position(node, ws.view),
    }


def mindmap_edit_node(
    ws: Workspace,
    *,
    node_id: str,
    title: str | None = None,
    content: str | None = None,
) -> dict[str, Any]:
    """Change a node's title and/or content."""
    if ws.store.get_node(node_id) is None:
        return _node_not_found(node_id)
    changed = ws.store.update_node(node_id, title=title, content=content)
    return {"node_id": node_id, "changed": changed}


def mindmap_move_node(
    ws: Workspace,
    *,
    node_id: str,
    new_parent_id: str | None,
    new_order: int | None = None,
) -> dict[str, Any]:
    """Reparent a node, optionally at a sibling index; refused inside its own subtree."""
    if ws.store.get_node(node_id) is None:
        return _node_not_found(node_id)
    if new_parent_id is not None and ws.store.get_node(new_parent_id) is None:
        return _node_not_found(new_parent_id)
    if not ws.store.move_node(node_id, new_parent_id, new_order):
        return {"error": f"Cannot move '{node_id}' under its own subtree."}
    node = ws.store.get_node(node_id)
    if node is None:
        return _node_not_found(node_id)
    return {"node_id": node_id, "parent_id": node.parent_id, "order": node.order}


def mindmap_delete_node(ws: Workspace, *, node_id: str, cascade: bool = True) -> dict[str, Any]:
    """Delete a node; without cascade its children move up to its parent."""
    removed = ws.store.delete_node(node_id, cascade)
    if not removed:
        return _node_not_found(node_id)
    return {"deleted": removed, "count": len(removed)}


def mindmap_set_side(ws: Workspace, *, node_id: str, side: str | None) -> dict[str, Any]:
    """Put a depth-1 node on the left or right of the radial map ("left", "right" or None)."""
    if ws.store.get_node(node_id) is None:
        return _node_not_found(node_id)
    try:
        value = None if side is None else Side(side)
    except ValueError:
        return {"error": f"Invalid side '{side}'. Expected 'left' or 'right'."}
    if not ws.store.set_node_side(node_id, value):
        return {"error": f"Node '{node_id}' is not a depth-1 node."}
    return {"node_id": node_id, "side": side}


def mindmap_orient(ws: Workspace, *, mode: str, root_id: str | None = None) -> dict[str, Any]:
    """Split the branches of each root (or of ``root_id``) between left and right."""
    try:
        orientation = OrientationMode(mode)
    except ValueError:
        expected = ", ".join(repr(str(m)) for m in OrientationMode)
        return {"error": f"Invalid orientation '{mode}'. Expected one of {expected}."}
    if root_id is not None and ws.store.get_node(root_id) is None:
        return _node_not_found(root_id)
    changed = apply_orientation(ws.store, orientation, root_id)
    return {"mode": str(orientation), "changed": changed}


def mindmap_link_nodes(
    ws: Workspace,
    *,
    source_id: str,
    target_id: str,
    label: str | None = None,
) -> dict[str, Any]:
    """Add a cross-reference edge between two nodes."""
    edge = ws.store.add_reference_edge(source_id, target_id, label)
    if edge is None:
        return {"error": f"Cannot link '{source_id}' to '{target_id}'."}
    return {"edge_id": edge.id}


def mindmap_declutter(ws: Workspace) -> dict[str, Any]:
    """Run the force layout and settling pass on the active spatial view."""
    ticks = ws.declutter()
    return {"ticks": ticks, "view": str(ws.view)}


def save_if_dirty(ws: Workspace, storage: PersistenceProtocol) -> bool:
    """Write the document back if it changed since the last save."""
    doc = ws.store.document
    if doc is None or not doc.dirty:
        return False
    data = ws.get_snapshot()
    if data is None:
        return False
    written = storage.save(data)
    ws.store.mark_clean()
    return written


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    workspace: Workspace
    snapshot: PersistenceProtocol
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Load the document on startup, release the locator worker on shutdown."""
    snapshot = SnapshotFile(resolve_document_path())
    ws = Workspace()
    data = snapshot.load()
    if data is None:
        logger.info("No document at {}, starting a new one", snapshot.path)
        ws.new_document()
    else:
        ws.load_snapshot(data)
    try:
        yield ServerContext(workspace=ws, snapshot=snapshot)
    finally:
        ws.locator.shutdown()


mcp_server = FastMCP(
    "mindweave",
    instructions="""\
A mind map is a tree of nodes. Every node has a title, optional content, a
parent (roots have none) and a position on the map canvas.

## Workflow
1. Call mindmap_read_outline_tool to see the tree and the node ids.
2. Use mindmap_get_node_tool for one node's details and children.
3. Add, edit, move or delete nodes by id. Changes are saved immediately.

## Tips
- Moving a node under one of its own descendants is refused.
- Only direct children of a root can be placed left or right.
- mindmap_orient_tool places every branch of a root on a side in one call.
- Call mindmap_declutter_tool after adding many nodes to tidy the layout.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


async def _save(ctx: ServerContext) -> None:
    async with ctx.write_lock:
        save_if_dirty(ctx.workspace, ctx.snapshot)


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def mindmap_read_outline_tool(
    ctx: Context,
    node_id: str | None = None,
    max_depth: int | None = None,
    include_content: bool = True,
) -> dict[str, Any]:
    """Read the mind map (or one subtree) as an indented markdown outline.

    Node ids appear in truncation markers; pass one as node_id to drill in.

    Args:
        node_id: Node to start from (None = whole document).
        max_depth: Max depth levels (None = unlimited).
        include_content: Include node content under titles.
    """
    return mindmap_read_outline(
        _ctx(ctx).workspace, node_id=node_id, max_depth=max_depth, include_content=include_content
    )


@mcp_server.tool()
async def mindmap_get_node_tool(ctx: Context, node_id: str) -> dict[str, Any]:
    """Get one node with breadcrumbs, side, positions and direct children.

    Args:
        node_id: Node ID.
    """
    return mindmap_get_node(_ctx(ctx).workspace, node_id=node_id)


@mcp_server.tool()
async def mindmap_add_node_tool(
    ctx: Context,
    title: str,
    parent_id: str | None = None,
    content: str = "",
) -> dict[str, Any]:
    """Add a node as the last child of parent_id, placed next to its parent.

    Args:
        title: Title of the new node.
        parent_id: Parent node ID (None = new root).
        content: Optional longer text.
    """
    result = mindmap_add_node(_ctx(ctx).workspace, title=title, parent_id=parent_id, content=content)
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_edit_node_tool(
    ctx: Context,
    node_id: str,
    title: str | None = None,
    content: str | None = None,
) -> dict[str, Any]:
    """Change a node's title and/or content.

    Args:
        node_id: Node ID to edit.
        title: New title.
        content: New content text.
    """
    result = mindmap_edit_node(_ctx(ctx).workspace, node_id=node_id, title=title, content=content)
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_move_node_tool(
    ctx: Context, node_id: str, new_parent_id: str | None = None, new_order: int | None = None
) -> dict[str, Any]:
    """Move a node (with its subtree) under a new parent.

    Args:
        node_id: Node ID to move.
        new_parent_id: New parent node ID (None = make it a root).
        new_order: Index among the new siblings (None = last).
    """
    result = mindmap_move_node(
        _ctx(ctx).workspace, node_id=node_id, new_parent_id=new_parent_id, new_order=new_order
    )
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_delete_node_tool(ctx: Context, node_id: str, cascade: bool = True) -> dict[str, Any]:
    """Delete a node.

    Args:
        node_id: Node ID to delete.
        cascade: Delete the whole subtree (False = keep children, moving them up).
    """
    result = mindmap_delete_node(_ctx(ctx).workspace, node_id=node_id, cascade=cascade)
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_set_side_tool(ctx: Context, node_id: str, side: str | None = None) -> dict[str, Any]:
    """Place a direct child of a root on the left or right of the map.

    Args:
        node_id: Node ID (must be a direct child of a root).
        side: "left", "right", or None to unset.
    """
    result = mindmap_set_side(_ctx(ctx).workspace, node_id=node_id, side=side)
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_orient_tool(
    ctx: Context, mode: str = "anticlockwise", root_id: str | None = None
) -> dict[str, Any]:
    """Place the branches of each root on the left or right by their order.

    Args:
        mode: "clockwise", "anticlockwise", "left-right" or "right-left".
        root_id: Only this root's branches (None = every root).
    """
    result = mindmap_orient(_ctx(ctx).workspace, mode=mode, root_id=root_id)
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_link_nodes_tool(
    ctx: Context, source_id: str, target_id: str, label: str | None = None
) -> dict[str, Any]:
    """Add a cross-reference between two nodes, outside the tree.

    Args:
        source_id: Node the reference starts at.
        target_id: Node the reference points to.
        label: Optional label.
    """
    result = mindmap_link_nodes(
        _ctx(ctx).workspace, source_id=source_id, target_id=target_id, label=label
    )
    await _save(_ctx(ctx))
    return result


@mcp_server.tool()
async def mindmap_declutter_tool(ctx: Context) -> dict[str, Any]:
    """Spread out connected nodes and resolve overlaps on the map canvas."""
    ws = _ctx(ctx).workspace
    ticks = await ws.declutter_async(tick_interval=0)
    await _save(_ctx(ctx))
    return {"ticks": ticks, "view": str(ws.view)}


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from mindweave.logging_config import configure_logging

    configure_logging(verbose=False)
    logger.info("Starting mindweave MCP server")
    mcp_server.run(transport="stdio")


if __name__ == "__main__":
    run_mcp_server()
