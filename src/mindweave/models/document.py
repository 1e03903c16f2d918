"""The document aggregate that owns nodes and reference edges."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from mindweave.models.node import Node, ReferenceEdge, ViewKind


def utc_now() -> str:
    return datetime.now(tz=UTC).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class LayoutSettings:
    """Per-document view metadata."""

    active_view: ViewKind = ViewKind.MINDMAP


@dataclass
class Document:
    """A mind-map document.

    Nodes are kept in insertion order; sibling order is carried by
    ``Node.order``, not by dict position.
    """

    id: str = field(default_factory=lambda: new_id("doc"))
    name: str = "Untitled"
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[ReferenceEdge] = field(default_factory=list)
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    dirty: bool = False
    created: str = field(default_factory=utc_now)
    modified: str = field(default_factory=utc_now)

    def mark_dirty(self) -> None:
        self.dirty = True
        self.modified = utc_now()

    def mark_clean(self) -> None:
        self.dirty = False
