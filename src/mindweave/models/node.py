"""Domain models for mind-map documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Side(StrEnum):
    """Branch side of a depth-1 node in the radial mind-map."""

    LEFT = "left"
    RIGHT = "right"


class OrientationMode(StrEnum):
    """How depth-1 branches are split between the two sides of a root."""

    CLOCKWISE = "clockwise"
    ANTICLOCKWISE = "anticlockwise"
    LEFT_RIGHT = "left-right"
    RIGHT_LEFT = "right-left"


class SpatialView(StrEnum):
    """Views that place nodes in 2D space and keep their own positions."""

    MINDMAP = "mindmap"
    CONCEPT_MAP = "concept-map"


class ViewKind(StrEnum):
    """Every presentation of a document."""

    OUTLINE = "outline"
    MINDMAP = "mindmap"
    CONCEPT_MAP = "concept-map"
    WRITER = "writer"


@dataclass(frozen=True)
class Position:
    """A point in canvas coordinates."""

    x: float
    y: float

    def offset(self, dx: float, dy: float) -> Position:
        return Position(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Size:
    """Rendered width and height of a node."""

    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle anchored at its top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> Rect:
        return cls(cx - width / 2, cy - height / 2, width, height)

    @classmethod
    def at(cls, position: Position, size: Size) -> Rect:
        return cls(position.x, position.y, size.width, size.height)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Position:
        return Position(self.x + self.width / 2, self.y + self.height / 2)


@dataclass
class ViewPositions:
    """Per-view positions of a node. The outline and writer views have none."""

    mindmap: Position | None = None
    concept_map: Position | None = None

    def get(self, view: SpatialView) -> Position | None:
        if view is SpatialView.MINDMAP:
            return self.mindmap
        return self.concept_map

    def set(self, view: SpatialView, position: Position | None) -> None:
        if view is SpatialView.MINDMAP:
            self.mindmap = position
        else:
            self.concept_map = position


@dataclass
class Node:
    """A single idea in a document tree."""

    id: str
    parent_id: str | None
    order: int
    title: str
    content: str = ""
    positions: ViewPositions = field(default_factory=ViewPositions)
    side: Side | None = None
    created: str = ""
    modified: str = ""


@dataclass(frozen=True)
class ReferenceEdge:
    """A directed cross-reference between two nodes, outside the tree."""

    id: str
    source_id: str
    target_id: str
    label: str | None = None


@dataclass(frozen=True)
class NodeGeometry:
    """Minimal geometry projection handed to layout workers."""

    id: str
    parent_id: str | None
    x: float
    y: float
    width: float
    height: float

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class RootBranches:
    """A root node with its depth-1 children and their sides (radial view)."""

    root: Node
    branches: tuple[tuple[Node, Side | None], ...]
