"""Change events published on the notification bus."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from mindweave.models.node import Position, Side, SpatialView, ViewKind


class EventSource(StrEnum):
    """Layer that originated a change."""

    STORE = "store"
    OUTLINE = "outline"
    MINDMAP = "mindmap"
    CONCEPT_MAP = "concept-map"
    WRITER = "writer"
    LAYOUT = "layout"


class EventKind(StrEnum):
    NODE_CREATED = "node-created"
    NODE_UPDATED = "node-updated"
    NODE_MOVED = "node-moved"
    NODES_POSITIONED = "nodes-positioned"
    NODE_REPARENTED = "node-reparented"
    NODE_DELETED = "node-deleted"
    NODE_SELECTED = "node-selected"
    NODES_SELECTED = "nodes-selected"
    SIBLINGS_REORDERED = "siblings-reordered"
    NODE_EXPANDED = "node-expanded"
    NODE_COLLAPSED = "node-collapsed"
    NODE_SIDE_CHANGED = "node-side-changed"
    EDGE_CREATED = "edge-created"
    EDGE_DELETED = "edge-deleted"
    VIEW_CHANGED = "view-changed"
    DOCUMENT_LOADED = "document-loaded"
    DOCUMENT_CLEARED = "document-cleared"


@dataclass(frozen=True)
class Event:
    """Base class; every event knows its kind and carries its origin."""

    kind: ClassVar[EventKind]
    source: EventSource


@dataclass(frozen=True)
class NodeCreated(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_CREATED
    node_id: str
    parent_id: str | None
    position: Position | None
    view: SpatialView


@dataclass(frozen=True)
class NodeUpdated(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_UPDATED
    node_id: str
    changes: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class NodeMoved(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_MOVED
    node_id: str
    view: SpatialView
    position: Position
    previous_position: Position | None


@dataclass(frozen=True)
class NodesPositioned(Event):
    kind: ClassVar[EventKind] = EventKind.NODES_POSITIONED
    view: SpatialView
    positions: tuple[tuple[str, Position], ...]


@dataclass(frozen=True)
class NodeReparented(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_REPARENTED
    node_id: str
    old_parent_id: str | None
    new_parent_id: str | None
    new_order: int


@dataclass(frozen=True)
class NodeDeleted(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_DELETED
    node_id: str
    deleted_ids: tuple[str, ...]
    cascade: bool


@dataclass(frozen=True)
class NodeSelected(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_SELECTED
    node_id: str | None
    scroll_into_view: bool = True


@dataclass(frozen=True)
class NodesSelected(Event):
    kind: ClassVar[EventKind] = EventKind.NODES_SELECTED
    node_ids: tuple[str, ...]


@dataclass(frozen=True)
class SiblingsReordered(Event):
    kind: ClassVar[EventKind] = EventKind.SIBLINGS_REORDERED
    parent_id: str | None
    orders: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class NodeExpanded(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_EXPANDED
    node_id: str


@dataclass(frozen=True)
class NodeCollapsed(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_COLLAPSED
    node_id: str


@dataclass(frozen=True)
class NodeSideChanged(Event):
    kind: ClassVar[EventKind] = EventKind.NODE_SIDE_CHANGED
    node_id: str
    side: Side | None


@dataclass(frozen=True)
class EdgeCreated(Event):
    kind: ClassVar[EventKind] = EventKind.EDGE_CREATED
    edge_id: str
    source_id: str
    target_id: str


@dataclass(frozen=True)
class EdgeDeleted(Event):
    kind: ClassVar[EventKind] = EventKind.EDGE_DELETED
    edge_id: str


@dataclass(frozen=True)
class ViewChanged(Event):
    kind: ClassVar[EventKind] = EventKind.VIEW_CHANGED
    previous_view: ViewKind
    new_view: ViewKind


@dataclass(frozen=True)
class DocumentLoaded(Event):
    kind: ClassVar[EventKind] = EventKind.DOCUMENT_LOADED
    document_id: str
    document_name: str


@dataclass(frozen=True)
class DocumentCleared(Event):
    kind: ClassVar[EventKind] = EventKind.DOCUMENT_CLEARED
