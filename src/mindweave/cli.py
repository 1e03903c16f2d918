"""CLI for mindweave (edit a mind-map snapshot, run the MCP server)."""

import json
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from mindweave.config import resolve_document_path
from mindweave.core.persistence.snapshot import SnapshotFile
from mindweave.core.tree.markdown import render_subtree_as_markdown
from mindweave.core.tree.orientation import apply_orientation
from mindweave.core.workspace import Workspace
from mindweave.logging_config import configure_logging
from mindweave.models.node import OrientationMode, Side

app = typer.Typer(help="mindweave: build and tidy mind maps from the command line.")

FileOption = Annotated[
    Path | None,
    typer.Option("--file", "-f", help="Mind-map snapshot file (default: data directory)"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _open(file: Path | None) -> tuple[Workspace, SnapshotFile]:
    """Load the snapshot into a fresh workspace, exiting if it is missing or broken."""
    snapshot = SnapshotFile(file or resolve_document_path())
    ws = Workspace()
    try:
        data = snapshot.load()
        if data is not None:
            ws.load_snapshot(data)
    except ValueError as e:
        logger.error("Cannot load {}: {}", snapshot.path, e)
        raise typer.Exit(1) from e
    if data is None:
        logger.error("Mind map not found: {}. Run 'new' first.", snapshot.path)
        raise typer.Exit(1)
    return ws, snapshot


def _save(ws: Workspace, snapshot: SnapshotFile) -> None:
    data = ws.get_snapshot()
    if data is not None and snapshot.save(data):
        logger.debug("Saved {}", snapshot.path)


def _require_node(ws: Workspace, node_id: str) -> None:
    if ws.store.get_node(node_id) is None:
        typer.echo(f"Node '{node_id}' not found.")
        raise typer.Exit(1)


@app.command()
def new(
    name: str = typer.Argument("Untitled", help="Document name"),
    root: Annotated[
        str | None,
        typer.Option("--root", "-r", help="Title of the central node"),
    ] = None,
    file: FileOption = None,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Create a new, empty mind map."""
    snapshot = SnapshotFile(file or resolve_document_path())
    if snapshot.exists() and not force:
        logger.error("{} already exists. Use --force to overwrite.", snapshot.path)
        raise typer.Exit(1)

    ws = Workspace()
    ws.new_document(name)
    if root:
        ws.create_node(None, root)
    _save(ws, snapshot)
    typer.echo(f"Created '{name}' at {snapshot.path}")


@app.command()
def add(
    title: str = typer.Argument(..., help="Title of the new node"),
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="Parent node ID (omit for a new root)"),
    ] = None,
    content: str = typer.Option("", "--content", "-c", help="Longer text for the node"),
    file: FileOption = None,
) -> None:
    """Add a node, placed in free space next to its parent."""
    ws, snapshot = _open(file)
    if parent is not None:
        _require_node(ws, parent)
    node = ws.create_node(parent, title, content)
    if node is None:
        typer.echo("Could not add node.")
        raise typer.Exit(1)
    _save(ws, snapshot)
    typer.echo(node.id)


@app.command()
def move(
    node_id: str = typer.Argument(..., help="Node ID to move"),
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-p", help="New parent node ID (omit to make it a root)"),
    ] = None,
    order: Annotated[
        int | None,
        typer.Option("--order", "-o", help="Index among the new siblings (default: last)"),
    ] = None,
    file: FileOption = None,
) -> None:
    """Move a node and its subtree under a new parent."""
    ws, snapshot = _open(file)
    _require_node(ws, node_id)
    if parent is not None:
        _require_node(ws, parent)
    if not ws.store.move_node(node_id, parent, order):
        typer.echo(f"Cannot move '{node_id}' under its own subtree.")
        raise typer.Exit(1)
    _save(ws, snapshot)
    typer.echo(f"Moved {node_id} under {parent or 'top level'}")


@app.command()
def delete(
    node_id: str = typer.Argument(..., help="Node ID to delete"),
    keep_children: bool = typer.Option(
        False, "--keep-children", "-k", help="Move children up instead of deleting them"
    ),
    file: FileOption = None,
) -> None:
    """Delete a node (and, by default, its subtree)."""
    ws, snapshot = _open(file)
    _require_node(ws, node_id)
    removed = ws.store.delete_node(node_id, cascade=not keep_children)
    _save(ws, snapshot)
    noun = "node" if len(removed) == 1 else "nodes"
    typer.echo(f"Deleted {len(removed)} {noun}")


@app.command()
def side(
    node_id: str = typer.Argument(..., help="Direct child of a root"),
    value: str = typer.Argument(..., help="left, right, toggle or none"),
    file: FileOption = None,
) -> None:
    """Put a branch on the left or right of the radial map."""
    ws, snapshot = _open(file)
    _require_node(ws, node_id)
    value = value.lower()
    if value == "toggle":
        ok = ws.store.toggle_node_side(node_id)
    elif value == "none":
        ok = ws.store.set_node_side(node_id, None)
    elif value in (Side.LEFT, Side.RIGHT):
        ok = ws.store.set_node_side(node_id, Side(value))
    else:
        logger.error("Invalid side {!r}. Expected left, right, toggle or none.", value)
        raise typer.Exit(1)

    if not ok:
        typer.echo(f"Node '{node_id}' is not a direct child of a root.")
        raise typer.Exit(1)
    _save(ws, snapshot)
    node = ws.store.get_node(node_id)
    if node is not None:
        typer.echo(f"{node_id}: {node.side or 'unset'}")


@app.command()
def orient(
    mode: OrientationMode = typer.Argument(..., help="clockwise, anticlockwise, left-right or right-left"),
    root: Annotated[
        str | None,
        typer.Option("--root", "-r", help="Only this root's branches (default: every root)"),
    ] = None,
    file: FileOption = None,
) -> None:
    """Split each root's branches between left and right by their order."""
    ws, snapshot = _open(file)
    if root is not None:
        _require_node(ws, root)
    changed = apply_orientation(ws.store, mode, root)
    _save(ws, snapshot)
    typer.echo(f"Changed {len(changed)} side(s)")


@app.command()
def link(
    source_id: str = typer.Argument(..., help="Node the reference starts at"),
    target_id: str = typer.Argument(..., help="Node the reference points to"),
    label: Annotated[str | None, typer.Option("--label", "-l", help="Edge label")] = None,
    file: FileOption = None,
) -> None:
    """Add a cross-reference between two nodes."""
    ws, snapshot = _open(file)
    edge = ws.store.add_reference_edge(source_id, target_id, label)
    if edge is None:
        typer.echo(f"Cannot link '{source_id}' to '{target_id}'.")
        raise typer.Exit(1)
    _save(ws, snapshot)
    typer.echo(edge.id)


@app.command()
def show(
    node_id: str | None = typer.Argument(None, help="Node to start from (default: whole map)"),
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    no_content: bool = typer.Option(False, "--no-content", help="Titles only"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output the raw snapshot"),
    file: FileOption = None,
) -> None:
    """Print the mind map as an outline."""
    ws, _snapshot = _open(file)
    if output_json:
        typer.echo(json.dumps(ws.get_snapshot(), indent=2))
        return
    if node_id is not None:
        _require_node(ws, node_id)

    md = render_subtree_as_markdown(
        ws.store,
        node_id,
        max_depth=max_depth,
        include_content=not no_content,
        collapsed=ws.selection.collapsed_ids,
    )
    typer.echo(md if md else "(empty)")


@app.command()
def declutter(file: FileOption = None) -> None:
    """Spread connected nodes apart, then resolve overlaps."""
    ws, snapshot = _open(file)
    ticks = ws.declutter()
    _save(ws, snapshot)
    typer.echo(f"Layout finished after {ticks} ticks")


@app.command()
def settle(
    steps: Annotated[
        int | None,
        typer.Option("--steps", "-s", help="Max settling iterations"),
    ] = None,
    file: FileOption = None,
) -> None:
    """Push overlapping nodes apart without running the full layout."""
    ws, snapshot = _open(file)
    moved = ws.settle(steps)
    _save(ws, snapshot)
    typer.echo(f"Moved {len(moved)} node(s)")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from mindweave.mcp.server import run_mcp_server

    run_mcp_server()
