"""Plain-dict snapshots of a document and the JSON file that holds them."""

import json
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from mindweave.core.selection import SelectionState
from mindweave.models.document import Document, LayoutSettings, utc_now
from mindweave.models.node import (
    Node,
    Position,
    ReferenceEdge,
    Side,
    SpatialView,
    ViewKind,
    ViewPositions,
)

SCHEMA_VERSION = 1


@dataclass
class LoadedSnapshot:
    """A decoded snapshot: the document plus the view state stored with it."""

    document: Document
    selected_ids: list[str] = field(default_factory=list)
    collapsed_ids: list[str] = field(default_factory=list)


def _encode_position(position: Position | None) -> list[float] | None:
    return None if position is None else [position.x, position.y]


def _decode_position(raw: Any) -> Position | None:
    if raw is None:
        return None
    if not isinstance(raw, list | tuple) or len(raw) != 2:
        msg = f"Invalid position {raw!r}: expected [x, y]"
        raise ValueError(msg)
    try:
        return Position(float(raw[0]), float(raw[1]))
    except TypeError as e:
        msg = f"Invalid position {raw!r}: coordinates must be numbers"
        raise ValueError(msg) from e


def _field(raw: Any, key: str, what: str) -> Any:
    """``raw[key]``, raising ValueError when ``raw`` is not an object or lacks ``key``."""
    if not isinstance(raw, dict):
        msg = f"Invalid {what}: expected an object, got {raw!r}"
        raise ValueError(msg)
    if key not in raw:
        msg = f"Invalid {what}: missing {key!r}"
        raise ValueError(msg)
    return raw[key]


def _items(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        msg = f"Invalid snapshot: {key!r} must be a list"
        raise ValueError(msg)
    return value


def document_to_snapshot(
    document: Document, selection: SelectionState | None = None
) -> dict[str, Any]:
    """Serialize ``document`` (and optionally selection/expansion state) to a dict."""
    collapsed = selection.collapsed_ids if selection else set()
    nodes = [
        {
            "id": node.id,
            "parent_id": node.parent_id,
            "order": node.order,
            "title": node.title,
            "content": node.content,
            "side": None if node.side is None else str(node.side),
            "expanded": node.id not in collapsed,
            "positions": {
                str(view): _encode_position(node.positions.get(view)) for view in SpatialView
            },
            "created": node.created,
            "modified": node.modified,
        }
        for node in document.nodes.values()
    ]
    edges = [
        {"id": e.id, "source_id": e.source_id, "target_id": e.target_id, "label": e.label}
        for e in document.edges
    ]
    return {
        "version": SCHEMA_VERSION,
        "document": {
            "id": document.id,
            "name": document.name,
            "active_view": str(document.layout.active_view),
            "created": document.created,
            "modified": document.modified,
        },
        "nodes": nodes,
        "edges": edges,
        "selection": selection.selected_ids if selection else [],
    }


def snapshot_to_document(data: dict[str, Any]) -> LoadedSnapshot:
    """Rebuild a document from a snapshot dict.

    Raises:
        ValueError: on an unknown schema version, missing or mistyped fields,
            duplicate node ids, nodes whose parent is missing, or a parent
            cycle.
    """
    version = data.get("version")
    if version != SCHEMA_VERSION:
        msg = f"Unsupported snapshot version {version!r}"
        raise ValueError(msg)

    meta = data.get("document", {})
    if not isinstance(meta, dict):
        msg = "Invalid snapshot: 'document' must be an object"
        raise ValueError(msg)
    now = utc_now()
    document = Document(
        name=meta.get("name", "Untitled"),
        layout=LayoutSettings(active_view=ViewKind(meta.get("active_view", ViewKind.MINDMAP))),
        created=meta.get("created", now),
        modified=meta.get("modified", now),
    )
    if "id" in meta:
        document.id = meta["id"]

    collapsed: list[str] = []
    for raw in _items(data, "nodes"):
        node_id = _field(raw, "id", "node")
        if node_id in document.nodes:
            msg = f"Duplicate node id: {node_id!r}"
            raise ValueError(msg)
        positions = raw.get("positions") or {}
        if not isinstance(positions, dict):
            msg = f"Invalid positions on node {node_id!r}"
            raise ValueError(msg)
        side = raw.get("side")
        document.nodes[node_id] = Node(
            id=node_id,
            parent_id=raw.get("parent_id"),
            order=_decode_order(raw.get("order", 0), node_id),
            title=raw.get("title", ""),
            content=raw.get("content", ""),
            positions=ViewPositions(
                mindmap=_decode_position(positions.get(SpatialView.MINDMAP)),
                concept_map=_decode_position(positions.get(SpatialView.CONCEPT_MAP)),
            ),
            side=None if side is None else Side(side),
            created=raw.get("created", now),
            modified=raw.get("modified", now),
        )
        if not raw.get("expanded", True):
            collapsed.append(node_id)

    _check_tree(document)
    _normalize_orders(document)
    _clear_invalid_sides(document)

    for raw in _items(data, "edges"):
        edge_id = _field(raw, "id", "edge")
        source_id = _field(raw, "source_id", "edge")
        target_id = _field(raw, "target_id", "edge")
        if source_id not in document.nodes or target_id not in document.nodes:
            logger.warning("Dropping reference edge {} with a missing endpoint", edge_id)
            continue
        document.edges.append(
            ReferenceEdge(
                id=edge_id,
                source_id=source_id,
                target_id=target_id,
                label=raw.get("label"),
            )
        )

    selected = [
        nid for nid in _items(data, "selection") if isinstance(nid, str) and nid in document.nodes
    ]
    return LoadedSnapshot(document=document, selected_ids=selected, collapsed_ids=collapsed)


def _decode_order(raw: Any, node_id: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        msg = f"Invalid order {raw!r} on node {node_id!r}"
        raise ValueError(msg)
    return int(raw)


def _check_tree(document: Document) -> None:
    nodes = document.nodes
    orphans = sorted(
        n.id for n in nodes.values() if n.parent_id is not None and n.parent_id not in nodes
    )
    if orphans:
        msg = f"Orphaned nodes: {orphans!r}"
        raise ValueError(msg)

    for node in nodes.values():
        current = node.parent_id
        for _ in range(len(nodes)):
            if current is None:
                break
            if current == node.id:
                msg = f"Parent cycle through node {node.id!r}"
                raise ValueError(msg)
            current = nodes[current].parent_id
        else:
            if current is not None:
                msg = f"Parent cycle above node {node.id!r}"
                raise ValueError(msg)


def _normalize_orders(document: Document) -> None:
    """Renumber sibling groups that carry duplicate orders, keeping file order on ties."""
    groups: dict[str | None, list[Node]] = defaultdict(list)
    for node in document.nodes.values():
        groups[node.parent_id].append(node)
    for parent_id, siblings in groups.items():
        if len({s.order for s in siblings}) == len(siblings):
            continue
        logger.debug("Renumbering duplicate sibling orders under {}", parent_id)
        for index, sibling in enumerate(sorted(siblings, key=lambda s: s.order)):
            sibling.order = index


def _clear_invalid_sides(document: Document) -> None:
    nodes = document.nodes
    for node in nodes.values():
        if node.side is None:
            continue
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is None or parent.parent_id is not None:
            logger.debug("Clearing side of {}: not a depth-1 node", node.id)
            node.side = None


class SnapshotFile:
    """A snapshot stored as one JSON file.

    Unchanged contents are not rewritten, so the file's mtime only moves when
    the document did.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> dict[str, Any] | None:
        """Read the snapshot; None if the file does not exist.

        Raises on all other errors.
        """
        try:
            contents = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        data = json.loads(contents)
        if not isinstance(data, dict):
            msg = f"Snapshot {str(self.path)!r} does not hold a JSON object"
            raise ValueError(msg)
        return data

    def save(self, data: dict[str, Any]) -> bool:
        contents = json.dumps(data, sort_keys=True, indent=4) + "\n"
        try:
            if self.path.read_text(encoding="utf-8") == contents:
                logger.debug("Snapshot {} unchanged", self.path)
                return False
        except (FileNotFoundError, UnicodeDecodeError):
            pass

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(contents, encoding="utf-8")
        logger.debug("Wrote snapshot {}", self.path)
        return True
