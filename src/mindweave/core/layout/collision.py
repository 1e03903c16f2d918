"""Rigid rectangular bodies that keep nodes of a spatial view apart.

Bodies are tracked by their center (like a physics engine would), while the
store keeps top-left positions; ``BodyArena.top_left`` converts back.
"""

import math
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from mindweave.config import (
    COLLISION_MARGIN,
    RESIZE_DEBOUNCE_DELAY,
    RESIZE_TOLERANCE,
    SETTLE_STEPS,
)
from mindweave.core.layout.geometry import rects_overlap
from mindweave.models.node import Position, Rect, Size

# Displacements below this are not reported as moves.
_MOVE_EPSILON = 0.1


@dataclass(frozen=True)
class CollisionParams:
    margin: float = COLLISION_MARGIN
    settle_steps: int = SETTLE_STEPS
    debounce_delay: float = RESIZE_DEBOUNCE_DELAY
    resize_tolerance: float = RESIZE_TOLERANCE


@dataclass
class RigidBody:
    center_x: float
    center_y: float
    width: float
    height: float

    @classmethod
    def from_top_left(cls, position: Position, size: Size) -> "RigidBody":
        return cls(
            position.x + size.width / 2,
            position.y + size.height / 2,
            size.width,
            size.height,
        )

    @property
    def rect(self) -> Rect:
        return Rect.from_center(self.center_x, self.center_y, self.width, self.height)

    @property
    def top_left(self) -> Position:
        return Position(self.center_x - self.width / 2, self.center_y - self.height / 2)

    def translate(self, dx: float, dy: float) -> None:
        self.center_x += dx
        self.center_y += dy


def separation_distance(a: RigidBody, b: RigidBody, margin: float) -> tuple[float, float, float]:
    """How far ``b`` must travel away from ``a`` along the center line to clear it.

    Returns:
        ``(distance, ux, uy)`` with ``(ux, uy)`` the unit vector from ``a`` to
        ``b``. Coincident centers separate along +x.
    """
    dx = b.center_x - a.center_x
    dy = b.center_y - a.center_y
    length = math.hypot(dx, dy)
    if length == 0:
        ux, uy = 1.0, 0.0
    else:
        ux, uy = dx / length, dy / length

    candidates = []
    need_x = (a.width + b.width) / 2 + margin
    need_y = (a.height + b.height) / 2 + margin
    if ux != 0:
        candidates.append(need_x / abs(ux) - length)
    if uy != 0:
        candidates.append(need_y / abs(uy) - length)
    # Clearing either axis is enough to end an AABB overlap.
    return max(0.0, min(candidates)), ux, uy


class BodyArena:
    """Bodies keyed by node id for one spatial view."""

    def __init__(self, params: CollisionParams | None = None) -> None:
        self.params = params or CollisionParams()
        self._bodies: dict[str, RigidBody] = {}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._bodies

    def __len__(self) -> int:
        return len(self._bodies)

    def ids(self) -> list[str]:
        return list(self._bodies)

    def body(self, node_id: str) -> RigidBody | None:
        return self._bodies.get(node_id)

    def add(self, node_id: str, position: Position, size: Size) -> RigidBody:
        """Create (or replace) the body of a node placed at top-left ``position``."""
        body = RigidBody.from_top_left(position, size)
        self._bodies[node_id] = body
        return body

    def set_top_left(self, node_id: str, position: Position) -> bool:
        body = self._bodies.get(node_id)
        if body is None:
            return False
        body.center_x = position.x + body.width / 2
        body.center_y = position.y + body.height / 2
        return True

    def resize(self, node_id: str, size: Size) -> bool:
        """Change a body's dimensions, keeping its top-left corner.

        Changes within ``resize_tolerance`` on both axes are ignored.
        """
        body = self._bodies.get(node_id)
        if body is None:
            return False
        tolerance = self.params.resize_tolerance
        if abs(body.width - size.width) < tolerance and abs(body.height - size.height) < tolerance:
            return False
        top_left = body.top_left
        body.width = size.width
        body.height = size.height
        self.set_top_left(node_id, top_left)
        return True

    def remove(self, node_id: str) -> None:
        self._bodies.pop(node_id, None)

    def remove_many(self, node_ids: Iterable[str]) -> None:
        for node_id in node_ids:
            self._bodies.pop(node_id, None)

    def reset(self) -> None:
        self._bodies.clear()

    def top_left(self, node_id: str) -> Position | None:
        body = self._bodies.get(node_id)
        return body.top_left if body else None

    def overlapping_pairs(self) -> list[tuple[str, str]]:
        ids = list(self._bodies)
        margin = self.params.margin
        return [
            (a, b)
            for i, a in enumerate(ids)
            for b in ids[i + 1 :]
            if rects_overlap(self._bodies[a].rect, self._bodies[b].rect, margin)
        ]

    def push_away(self, node_id: str) -> list[str]:
        """Shove every body overlapping ``node_id`` out of the way.

        Pushed bodies push their own neighbours in turn; each body moves at
        most once per call and the dragged body never moves.

        Returns:
            Ids of the bodies that moved, in the order they were pushed.
        """
        if node_id not in self._bodies:
            return []

        margin = self.params.margin
        already_pushed = {node_id}
        moved: list[str] = []
        queue = deque([node_id])
        while queue:
            pusher = self._bodies[queue.popleft()]
            for other_id, other in self._bodies.items():
                if other_id in already_pushed:
                    continue
                if not rects_overlap(pusher.rect, other.rect, margin):
                    continue
                distance, ux, uy = separation_distance(pusher, other, margin)
                other.translate(ux * distance, uy * distance)
                already_pushed.add(other_id)
                moved.append(other_id)
                queue.append(other_id)

        if moved:
            logger.debug("Drag of {} pushed {} node(s)", node_id, len(moved))
        return moved

    def settle(self, steps: int | None = None) -> list[str]:
        """Resolve current overlaps with pairwise separation.

        Each step separates every overlapping pair along the line joining
        their centers, half the distance each. Stops early once nothing
        overlaps.

        Returns:
            Ids of the bodies whose final position differs from the start.
        """
        steps = self.params.settle_steps if steps is None else steps
        start = {nid: (b.center_x, b.center_y) for nid, b in self._bodies.items()}
        margin = self.params.margin

        for step in range(steps):
            pairs = self.overlapping_pairs()
            if not pairs:
                logger.debug("Settled after {} step(s)", step)
                break
            for a_id, b_id in pairs:
                a = self._bodies[a_id]
                b = self._bodies[b_id]
                distance, ux, uy = separation_distance(a, b, margin)
                half = distance / 2
                a.translate(-ux * half, -uy * half)
                b.translate(ux * half, uy * half)
        else:
            if self.overlapping_pairs():
                logger.debug("Overlaps remain after {} settle steps", steps)

        return [
            nid
            for nid, body in self._bodies.items()
            if math.hypot(body.center_x - start[nid][0], body.center_y - start[nid][1])
            > _MOVE_EPSILON
        ]


class ResizeDebouncer:
    """Coalesce per-node size reports until they have been quiet for ``delay`` seconds."""

    def __init__(
        self,
        delay: float = RESIZE_DEBOUNCE_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.delay = delay
        self._clock = clock
        self._pending: dict[str, tuple[Size, float]] = {}

    def schedule(self, node_id: str, size: Size) -> None:
        """Record the latest size; each report restarts the node's quiet period."""
        self._pending[node_id] = (size, self._clock() + self.delay)

    def pending(self) -> list[str]:
        return list(self._pending)

    def cancel(self, node_id: str) -> None:
        self._pending.pop(node_id, None)

    def flush(self, *, force: bool = False) -> dict[str, Size]:
        """Pop and return updates whose quiet period is over (all of them with ``force``)."""
        now = self._clock()
        due = {
            nid: size for nid, (size, deadline) in self._pending.items() if force or deadline <= now
        }
        for nid in due:
            del self._pending[nid]
        return due
